from sklearn.ensemble import RandomForestClassifier

RANDOM_FOREST_GRID = {
    "model__max_features": ["sqrt", 0.33, 0.5],
    "model__min_samples_leaf": [1, 5, 10],
}


def build_random_forest(seed: int) -> RandomForestClassifier:
    return RandomForestClassifier(
        n_estimators=500,
        max_features="sqrt",
        min_samples_leaf=1,
        random_state=seed,
    )
