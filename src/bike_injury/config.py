from dataclasses import dataclass
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[2]

DATA_DIR = PROJECT_ROOT / "data"
RAW_DIR = DATA_DIR / "raw"
PROCESSED_DIR = DATA_DIR / "processed"

OUTPUTS_DIR = PROJECT_ROOT / "outputs"
METRICS_DIR = OUTPUTS_DIR / "metrics"
TABLES_DIR = OUTPUTS_DIR / "tables"
LOGS_DIR = OUTPUTS_DIR / "logs"
SPLITS_DIR = OUTPUTS_DIR / "splits"

RAW_FILE = RAW_DIR / "bikemaps_incidents.csv"
MODELING_FILE = PROCESSED_DIR / "bikemaps_modeling.parquet"

# Dataset and experiment identifiers (used in outputs/ metadata)
DATASET_VERSION = "bikemaps_modeling_v1"
EXPERIMENT_NAMESPACE = "injury_models_v1"

# Source schema: the export is expected to carry exactly these columns.
RAW_COLUMNS = [
    "X",
    "pk",
    "date",
    "report_date",
    "details",
    "p_type",
    "i_type",
    "incident_with",
    "injury",
    "impact",
    "trip_purpose",
    "regular_cyclist",
    "helmet",
    "intoxicated",
    "road_conditions",
    "sightlines",
    "cars_on_roadside",
    "bike_lights",
    "terrain",
    "direction",
    "turning",
    "age",
    "birthmonth",
    "sex",
    "riding_on",
    "infrastructure_changed",
    "personal_involvement",
    "longitude",
    "latitude",
]
RAW_NA_VALUES = ["", "NA"]

DATE_COL = "date"
INVOLVEMENT_COL = "personal_involvement"
INJURY_COL = "injury"
INCIDENT_WITH_COL = "incident_with"
SEX_COL = "sex"

# Temporal, free-text, spatial, index and outcome-adjacent fields.
IRRELEVANT_COLS = [
    "X",
    "pk",
    "date",
    "report_date",
    "details",
    "impact",
    "birthmonth",
    "longitude",
    "latitude",
]
# i_type carries the collision / near-miss distinction p_type encodes.
REDUNDANT_COLS = ["p_type"]

TARGET_COL = "injury_level"
POSITIVE_CLASS = "injured"
NEGATIVE_CLASS = "not_injured"
UNKNOWN_CLASS = "unknown"

INJURY_LEVELS = {
    NEGATIVE_CLASS: ["No injury"],
    POSITIVE_CLASS: [
        "Injury, no treatment",
        "Injury, saw family doctor",
        "Injury, hospital emergency visit",
        "Injury, hospitalized",
    ],
    UNKNOWN_CLASS: ["Unknown"],
}

VEHICLE_LEVELS = [
    "Vehicle, head on",
    "Vehicle, side",
    "Vehicle, angle",
    "Vehicle, rear end",
    "Vehicle, open door",
    "Vehicle, passing",
    "Vehicle, turning right",
    "Vehicle, turning left",
]
INCIDENT_WITH_LEVELS = {
    "vehicle": VEHICLE_LEVELS,
    "bicyclist": ["Another cyclist"],
    "pedestrian": ["Pedestrian"],
}
INCIDENT_WITH_OTHER = "other_level"

SEX_LEVELS = {"M": ["M"], "F": ["F"]}
SEX_OTHER = "O"

SENTINEL_VALUES = (
    "I don't know",
    "Don't remember",
    "Don't Remember",
    "I don't remember",
    "Unknown",
)

# Frozen cleaning / validation protocol
DATE_CUTOFF = "2016-11-30"
MISSING_THRESHOLD = 0.5
KEEP_MISSING_INVOLVEMENT = True
TRAIN_PROPORTION = 0.75
CV_FOLDS = 5
OVERSAMPLE_RATIO = 0.5
RANDOM_SEED = 3435
IMPUTER_TREES = 25

MODEL_FAMILIES = ["knn", "logreg", "elastic_net", "random_forest"]
SELECTION_METRIC = "roc_auc"


@dataclass(frozen=True)
class PipelineConfig:
    date_cutoff: str = DATE_CUTOFF
    missing_threshold: float = MISSING_THRESHOLD
    keep_missing_involvement: bool = KEEP_MISSING_INVOLVEMENT
    train_proportion: float = TRAIN_PROPORTION
    cv_folds: int = CV_FOLDS
    oversample_ratio: float = OVERSAMPLE_RATIO
    seed: int = RANDOM_SEED
    imputer_trees: int = IMPUTER_TREES
