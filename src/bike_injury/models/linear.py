from sklearn.linear_model import LogisticRegression

LOGREG_GRID = {
    "model__C": [0.01, 0.1, 1.0, 10.0, 100.0],
}

ELASTIC_NET_GRID = {
    "model__C": [0.01, 0.1, 1.0, 10.0],
    "model__l1_ratio": [0.0, 0.25, 0.5, 0.75, 1.0],
}


def build_logistic_regression(seed: int) -> LogisticRegression:
    return LogisticRegression(max_iter=5000, solver="lbfgs", random_state=seed)


def build_elastic_net(seed: int) -> LogisticRegression:
    # saga is the only solver that supports the elastic-net penalty.
    return LogisticRegression(
        penalty="elasticnet",
        solver="saga",
        l1_ratio=0.5,
        max_iter=5000,
        random_state=seed,
    )
