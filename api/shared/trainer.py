"""
Training orchestration: reconcile -> fit -> evaluate -> metrics.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from .analyzer import TaskType
from .errors import PipelineError, TrainingError
from .logger import get_logger
from .metrics import compute_classification_metrics, compute_regression_metrics
from .model_backend import (
    EpochCallback,
    EvaluationResult,
    FitConfig,
    ModelBackend,
    ModelHandle,
    TrainingSummary,
)
from .pipeline import PreparedDataset
from .reconciler import ReconciledTargets, reconcile_targets

logger = get_logger(__name__)


@dataclass
class TrainingOutcome:
    """Everything produced by one training run."""

    summary: TrainingSummary
    evaluation: Optional[EvaluationResult]
    metrics: Optional[Dict[str, Any]]
    reconciliation: Optional[str] = None
    duration_seconds: float = 0.0
    history: List[Dict[str, float]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "final_loss": self.summary.final_loss,
            "final_accuracy": self.summary.accuracy,
            "epochs": self.summary.epochs,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "metrics": self.metrics,
            "reconciliation": self.reconciliation,
            "duration_seconds": self.duration_seconds,
        }


def _fit_classes(handle: ModelHandle, targets: ReconciledTargets) -> Optional[List[float]]:
    if handle.spec.task_type != TaskType.CLASSIFICATION or targets.width != 1:
        return None
    values = np.concatenate([targets.train_y[:, 0], targets.test_y[:, 0]])
    return sorted(set(values.tolist()))


def _test_metrics(
    backend: ModelBackend,
    handle: ModelHandle,
    prepared: PreparedDataset,
    test_x: np.ndarray,
    test_y: np.ndarray,
) -> Dict[str, Any]:
    outputs = backend.predict_many(handle, test_x)

    if handle.spec.task_type == TaskType.REGRESSION:
        y_true = test_y[:, 0]
        y_pred = outputs[:, 0]
        scaling = prepared.target_scaling
        if scaling is not None:
            y_true = np.array([scaling.unscale(v) for v in y_true])
            y_pred = np.array([scaling.unscale(v) for v in y_pred])
        return compute_regression_metrics(y_true, y_pred)

    if test_y.shape[1] > 1:
        y_true = np.argmax(test_y, axis=1)
        y_pred = np.argmax(outputs, axis=1)
        labels = list(range(test_y.shape[1]))
        names = prepared.class_names(len(labels))
        if names is None or len(names) != len(labels):
            names = tuple(str(i) for i in labels)
        return compute_classification_metrics(y_true, y_pred, labels, names)

    y_true = test_y[:, 0]
    y_pred = outputs[:, 0]
    labels = list(prepared.class_values() or sorted(set(y_true.tolist())))
    names = prepared.class_names()
    if names is None or len(names) != len(labels):
        names = None
    return compute_classification_metrics(y_true, y_pred, labels, names)


def train_model(
    backend: ModelBackend,
    handle: ModelHandle,
    prepared: PreparedDataset,
    epochs: int,
    batch_size: int,
    on_epoch_end: Optional[EpochCallback] = None,
) -> TrainingOutcome:
    """Train a built model on a prepared dataset and evaluate it.

    Args:
        backend: Model backend that built ``handle``
        handle: Model to train
        prepared: Dataset to train on
        epochs: Number of epochs
        batch_size: Mini-batch size
        on_epoch_end: Progress callback, forwarded to the backend

    Returns:
        The training outcome; ``evaluation`` and ``metrics`` are None when
        the test split is empty

    Raises:
        ShapeError: Model and data shapes cannot be reconciled
        TrainingError: The backend failed
    """
    split = prepared.split
    targets = reconcile_targets(
        handle.input_width,
        handle.output_width,
        handle.loss_kind,
        prepared.num_features,
        split.train_y,
        split.test_y,
    )

    config = FitConfig(
        epochs=epochs,
        batch_size=batch_size,
        validation_data=(split.test_x, targets.test_y) if split.has_test_data else None,
        on_epoch_end=on_epoch_end,
        classes=_fit_classes(handle, targets),
    )

    logger.info(
        "Training: %d train / %d test samples, %d epochs, batch size %d",
        split.train_size,
        split.test_size,
        epochs,
        batch_size,
    )
    started = time.time()
    try:
        summary = backend.fit(handle, split.train_x, targets.train_y, config)
        evaluation = None
        metrics = None
        if split.has_test_data:
            evaluation = backend.evaluate(handle, split.test_x, targets.test_y, batch_size)
            metrics = _test_metrics(backend, handle, prepared, split.test_x, targets.test_y)
    except PipelineError:
        raise
    except Exception as e:
        logger.error("Training failed: %s", e)
        raise TrainingError(f"Training failed: {e}") from e

    duration = time.time() - started
    if evaluation is None:
        logger.info("Training finished in %.2fs; no evaluation metrics available", duration)
    else:
        logger.info("Training finished in %.2fs; test loss %.4f", duration, evaluation.loss)

    return TrainingOutcome(
        summary=summary,
        evaluation=evaluation,
        metrics=metrics,
        reconciliation=targets.action,
        duration_seconds=duration,
        history=summary.history,
    )
