from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from bike_injury.config import RAW_COLUMNS, TARGET_COL, VEHICLE_LEVELS
from bike_injury.data.coding import coerce_categorical, tidy_levels


RAW_CHOICES = {
    "p_type": ["collision", "nearmiss"],
    "i_type": [
        "Collision with moving object or vehicle",
        "Collision with stationary object or vehicle",
        "Near collision with moving object or vehicle",
        "Fall",
    ],
    "incident_with": VEHICLE_LEVELS
    + ["Another cyclist", "Pedestrian", "Animal", "Curb", "Skateboard", "other", "I don't know"],
    "trip_purpose": ["Commute", "Recreation", "Exercise", "Personal business", "During work"],
    "regular_cyclist": ["Y", "N", "I don't know"],
    "helmet": ["Y", "N", "I don't remember"],
    "intoxicated": ["Y", "N", "I don't know"],
    "road_conditions": ["Dry", "Wet", "Icy", "Don't remember"],
    "sightlines": ["No obstructions", "View obstructed", "Glare or reflection", "Don't remember"],
    "cars_on_roadside": ["Y", "N", "Don't Remember"],
    "bike_lights": ["NL", "FB", "F", "B", "Unknown"],
    "terrain": ["Uphill", "Downhill", "Flat", "I don't remember"],
    "direction": ["N", "E", "S", "W", "I don't know"],
    "turning": ["Heading straight", "Turning left", "Turning right", "I don't remember"],
    "age": ["1960", "1975", "1985", "1990", "2000"],
    "sex": ["M", "F", "Other", "Unknown"],
    "riding_on": ["Busy street bike lane", "Quiet street", "Off-street path", "Sidewalk", "I don't know"],
    "impact": ["None", "More careful", "Stopped biking"],
    "birthmonth": ["January", "April", "July", "October"],
}

INJURED_RAW = [
    "Injury, no treatment",
    "Injury, saw family doctor",
    "Injury, hospital emergency visit",
    "Injury, hospitalized",
]


def make_raw_incidents(n: int = 400, seed: int = 0) -> pd.DataFrame:
    """Synthetic raw export with the full 29-column header.

    Roughly a third of the records fall before the date cutoff, ~10% are
    witness reports, `infrastructure_changed` is mostly missing, and vehicle
    incidents are more often injurious.
    """

    rng = np.random.default_rng(seed)
    data = {}
    for col, choices in RAW_CHOICES.items():
        data[col] = rng.choice(choices, size=n)

    start = pd.Timestamp("2016-01-01")
    offsets = rng.integers(0, 365 * 3, size=n)
    minutes = rng.integers(0, 24 * 60, size=n)
    dates = start + pd.to_timedelta(offsets, unit="D") + pd.to_timedelta(minutes, unit="m")
    data["date"] = dates.strftime("%Y-%m-%d %H:%M:%S")
    data["report_date"] = (dates + pd.Timedelta(days=2)).strftime("%Y-%m-%d %H:%M:%S")

    vehicle = np.isin(data["incident_with"], VEHICLE_LEVELS)
    p_injured = np.where(vehicle, 0.6, 0.25)
    draw = rng.random(n)
    injury = np.where(draw < p_injured, rng.choice(INJURED_RAW, size=n), "No injury")
    injury = np.where(rng.random(n) < 0.08, "Unknown", injury)
    data["injury"] = injury

    data["personal_involvement"] = rng.choice(["Yes", "No", ""], size=n, p=[0.82, 0.1, 0.08])
    data["infrastructure_changed"] = rng.choice(["", "Y", "N"], size=n, p=[0.8, 0.1, 0.1])
    data["details"] = [f"Report {i} free text" for i in range(n)]
    data["X"] = [str(i + 1) for i in range(n)]
    data["pk"] = [str(10000 + i) for i in range(n)]
    data["longitude"] = np.round(rng.uniform(-123.5, -122.9, size=n), 5).astype(str)
    data["latitude"] = np.round(rng.uniform(48.3, 49.4, size=n), 5).astype(str)

    df = pd.DataFrame(data)[RAW_COLUMNS]
    # Empty strings stand for missing answers, as in the export.
    return df.replace({"": np.nan})


def make_ten_row_incidents() -> pd.DataFrame:
    """6 not injured, 3 injured, 1 unknown; all kept by the selector."""

    df = make_raw_incidents(n=10, seed=11)
    df["date"] = [f"2017-05-{d:02d} 08:00:00" for d in range(1, 11)]
    df["personal_involvement"] = "Yes"
    df["injury"] = ["No injury"] * 6 + INJURED_RAW[:3] + ["Unknown"]
    return df


def make_modeling_table(n: int = 300, seed: int = 0) -> pd.DataFrame:
    """Cleaned-table stand-in: categorical predictors and a binary outcome."""

    rng = np.random.default_rng(seed)
    incident_with = rng.choice(["vehicle", "bicyclist", "pedestrian", "other_level"], size=n, p=[0.5, 0.2, 0.1, 0.2])
    p_injured = np.where(incident_with == "vehicle", 0.55, 0.15)
    outcome = np.where(rng.random(n) < p_injured, "injured", "not_injured")

    table = pd.DataFrame(
        {
            TARGET_COL: outcome,
            "i_type": rng.choice(["Collision", "Near collision", "Fall"], size=n),
            "incident_with": incident_with,
            "helmet": rng.choice(["Y", "N"], size=n),
            "sex": rng.choice(["M", "F", "O"], size=n, p=[0.6, 0.35, 0.05]),
            "road_conditions": rng.choice(["Dry", "Wet", "Icy"], size=n),
        }
    )
    for col in ["helmet", "sex", "road_conditions"]:
        holes = rng.random(n) < 0.1
        table.loc[holes, col] = np.nan
    return pd.DataFrame({c: tidy_levels(coerce_categorical(table[c])) for c in table.columns})


@pytest.fixture
def raw_incidents() -> pd.DataFrame:
    return make_raw_incidents()


@pytest.fixture
def ten_row_incidents() -> pd.DataFrame:
    return make_ten_row_incidents()


@pytest.fixture
def modeling_table() -> pd.DataFrame:
    return make_modeling_table()


@pytest.fixture
def raw_csv(tmp_path: Path, raw_incidents: pd.DataFrame) -> Path:
    path = tmp_path / "bikemaps_incidents.csv"
    raw_incidents.to_csv(path, index=False)
    return path
