from typing import Dict
import numpy as np
from sklearn.metrics import accuracy_score, average_precision_score, brier_score_loss, roc_auc_score


def compute_binary_metrics(y_true, y_prob, threshold: float = 0.5) -> Dict[str, float]:
    y_true = np.asarray(y_true, dtype=int)
    y_prob = np.asarray(y_prob, dtype=float)
    y_pred = (y_prob >= threshold).astype(int)
    # AUC-type metrics are undefined when the evaluated rows hold one class.
    two_classes = np.unique(y_true).size >= 2
    return {
        "roc_auc": float(roc_auc_score(y_true, y_prob)) if two_classes else np.nan,
        "pr_auc": float(average_precision_score(y_true, y_prob)) if two_classes else np.nan,
        "brier": float(brier_score_loss(y_true, y_prob)),
        "accuracy": float(accuracy_score(y_true, y_pred)),
    }
