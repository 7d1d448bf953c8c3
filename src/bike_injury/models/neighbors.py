from sklearn.neighbors import KNeighborsClassifier

KNN_GRID = {
    "model__n_neighbors": [5, 11, 21, 31, 41],
    "model__weights": ["uniform", "distance"],
}


def build_knn() -> KNeighborsClassifier:
    return KNeighborsClassifier(n_neighbors=11, weights="uniform")
