"""
Test-set metrics for trained models.

Classification: accuracy, confusion matrix, macro-averaged precision and
recall, and F1 computed from those two averages. Regression: MSE, RMSE, MAE
and R² in the target's original units.
"""

from typing import Any, Dict, Optional, Sequence

import numpy as np

try:
    from sklearn.metrics import (
        accuracy_score,
        confusion_matrix,
        mean_absolute_error,
        mean_squared_error,
        precision_score,
        r2_score,
        recall_score,
    )
    SKLEARN_AVAILABLE = True
except ImportError:
    SKLEARN_AVAILABLE = False


def f1_from_averages(precision: float, recall: float) -> float:
    """Harmonic mean of averaged precision and recall (0 when both are 0)."""
    if precision + recall == 0:
        return 0.0
    return 2 * precision * recall / (precision + recall)


def compute_classification_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
    labels: Sequence[Any],
    label_names: Optional[Sequence[str]] = None,
) -> Optional[Dict[str, Any]]:
    """Compute classification evaluation metrics.

    Args:
        y_true: True class values
        y_pred: Predicted class values
        labels: Every class value, in display order
        label_names: Display names aligned with ``labels``

    Returns:
        Dictionary with accuracy, precision, recall, f1 and the confusion
        matrix (rows are true classes, columns predicted classes), or None
        without scikit-learn
    """
    if not SKLEARN_AVAILABLE:
        return None

    y_true = np.asarray(y_true).ravel()
    y_pred = np.asarray(y_pred).ravel()
    labels = list(labels)

    # Macro averages include classes absent from the test set as 0.
    precision = float(
        precision_score(y_true, y_pred, labels=labels, average="macro", zero_division=0)
    )
    recall = float(
        recall_score(y_true, y_pred, labels=labels, average="macro", zero_division=0)
    )
    cm = confusion_matrix(y_true, y_pred, labels=labels)

    return {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "precision": precision,
        "recall": recall,
        "f1": f1_from_averages(precision, recall),
        "confusion_matrix": {
            "labels": list(label_names) if label_names is not None else [str(l) for l in labels],
            "matrix": cm.tolist(),
        },
    }


def compute_regression_metrics(
    y_true: np.ndarray,
    y_pred: np.ndarray,
) -> Optional[Dict[str, Optional[float]]]:
    """Compute regression evaluation metrics.

    Args:
        y_true: True values
        y_pred: Predicted values

    Returns:
        Dictionary of metric name -> value, or None without scikit-learn.
        ``r2`` is None with fewer than two samples.
    """
    if not SKLEARN_AVAILABLE:
        return None

    y_true = np.asarray(y_true, dtype=np.float64).ravel()
    y_pred = np.asarray(y_pred, dtype=np.float64).ravel()

    mse = mean_squared_error(y_true, y_pred)
    r2 = float(r2_score(y_true, y_pred)) if len(y_true) >= 2 else None

    return {
        "mse": float(mse),
        "rmse": float(np.sqrt(mse)),
        "mae": float(mean_absolute_error(y_true, y_pred)),
        "r2": r2,
    }
