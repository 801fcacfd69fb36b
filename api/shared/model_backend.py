"""
Model backend: builds, trains, evaluates and queries feed-forward networks.

The pipeline treats the network as a black box behind ``ModelBackend``. The
only thing it reads from a ``ModelHandle`` is the declared ``ModelSpec``
(input width, output width, loss) used for shape reconciliation.

``SklearnMLPBackend`` implements the protocol with scikit-learn's
multi-layer perceptrons, running one ``partial_fit`` pass per epoch so
progress can be reported after every epoch.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .architecture import LossKind, ModelSpec
from .analyzer import TaskType
from .errors import ShapeError, TrainingError
from .logger import get_logger

try:
    from sklearn.metrics import accuracy_score, log_loss, mean_squared_error
    from sklearn.neural_network import MLPClassifier, MLPRegressor
    SKLEARN_AVAILABLE = True
except ImportError:
    SKLEARN_AVAILABLE = False

logger = get_logger(__name__)

EpochCallback = Callable[[int, Dict[str, float]], None]

# Activation names used by the API -> scikit-learn names.
ACTIVATIONS = {
    "relu": "relu",
    "sigmoid": "logistic",
    "tanh": "tanh",
    "linear": "identity",
}

OPTIMIZERS = {
    "adam": "adam",
    "sgd": "sgd",
}


# ============= Data Models =============


@dataclass
class FitConfig:
    """Training settings passed to ``ModelBackend.fit``.

    Attributes:
        epochs: Number of passes over the training data
        batch_size: Mini-batch size
        validation_data: Optional (x, y) evaluated after each epoch
        on_epoch_end: Called as ``on_epoch_end(epoch, logs)`` after each epoch,
            with a 0-based epoch index, in increasing order
        classes: Every class value the targets can take (single-column
            classification targets only)
    """

    epochs: int
    batch_size: int
    validation_data: Optional[Tuple[np.ndarray, np.ndarray]] = None
    on_epoch_end: Optional[EpochCallback] = None
    classes: Optional[Sequence[float]] = None


@dataclass
class TrainingSummary:
    final_loss: float
    accuracy: Optional[float]
    epochs: int
    history: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class EvaluationResult:
    loss: float
    accuracy: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"loss": self.loss, "accuracy": self.accuracy}


@dataclass
class ModelHandle:
    """Opaque reference to a built model."""

    spec: ModelSpec
    estimator: Any = field(repr=False)
    fitted: bool = False

    @property
    def input_width(self) -> int:
        return self.spec.input_width

    @property
    def output_width(self) -> int:
        return self.spec.output_width

    @property
    def loss_kind(self) -> LossKind:
        return self.spec.loss_kind


# ============= Backend Protocol =============


class ModelBackend(ABC):
    """Operations the pipeline needs from a neural-network library."""

    @abstractmethod
    def build(self, spec: ModelSpec) -> ModelHandle:
        """Create an untrained model for a spec."""

    @abstractmethod
    def fit(
        self,
        handle: ModelHandle,
        train_x: np.ndarray,
        train_y: np.ndarray,
        config: FitConfig,
    ) -> TrainingSummary:
        """Train a model in place."""

    @abstractmethod
    def evaluate(
        self,
        handle: ModelHandle,
        x: np.ndarray,
        y: np.ndarray,
        batch_size: Optional[int] = None,
    ) -> Optional[EvaluationResult]:
        """Loss (and accuracy for classification); None for an empty set."""

    @abstractmethod
    def predict_many(self, handle: ModelHandle, x: np.ndarray) -> np.ndarray:
        """Output rows [n][output_width] for normalized inputs [n][input_width]."""

    def predict(self, handle: ModelHandle, vector: np.ndarray) -> np.ndarray:
        """Output vector for one normalized input vector."""
        vector = np.asarray(vector, dtype=np.float64).reshape(1, -1)
        return self.predict_many(handle, vector)[0]

    def class_probabilities(
        self,
        handle: ModelHandle,
        vector: np.ndarray,
    ) -> Optional[Dict[float, float]]:
        """Class value -> probability for one input, when the model exposes it."""
        return None


# ============= scikit-learn Implementation =============


class SklearnMLPBackend(ModelBackend):
    """ModelBackend on ``MLPClassifier`` / ``MLPRegressor``.

    Classification targets are handed to scikit-learn as class values: one-hot
    rows become their arg-max index, single-column targets are used as-is.
    """

    def __init__(self, random_state: Optional[int] = None):
        """Initialize the backend.

        Args:
            random_state: Seed for weight initialization and batch shuffling
        """
        if not SKLEARN_AVAILABLE:
            raise TrainingError("scikit-learn is not installed; no model backend available")
        self.random_state = random_state

    def build(self, spec: ModelSpec) -> ModelHandle:
        activation = ACTIVATIONS.get(spec.activation)
        if activation is None:
            raise TrainingError(
                f"Activation '{spec.activation}' is not supported; "
                f"choose one of {sorted(ACTIVATIONS)}"
            )
        solver = OPTIMIZERS.get(spec.optimizer_kind)
        if solver is None:
            raise TrainingError(
                f"Optimizer '{spec.optimizer_kind}' is not supported; "
                f"choose one of {sorted(OPTIMIZERS)}"
            )

        params = dict(
            hidden_layer_sizes=spec.hidden_widths,
            activation=activation,
            solver=solver,
            learning_rate_init=spec.learning_rate,
            random_state=self.random_state,
        )
        if spec.task_type == TaskType.CLASSIFICATION:
            estimator = MLPClassifier(**params)
        else:
            estimator = MLPRegressor(**params)

        logger.info(
            "Built %s: input=%d hidden=%s output=%d activation=%s optimizer=%s",
            type(estimator).__name__,
            spec.input_width,
            list(spec.hidden_widths),
            spec.output_width,
            spec.activation,
            spec.optimizer_kind,
        )
        return ModelHandle(spec=spec, estimator=estimator)

    # ----- target conversion -----

    def _to_sklearn_targets(self, handle: ModelHandle, y: np.ndarray) -> np.ndarray:
        if handle.spec.task_type == TaskType.CLASSIFICATION:
            if y.shape[1] > 1:
                return np.argmax(y, axis=1)
            return y[:, 0]
        if y.shape[1] == 1:
            return y[:, 0]
        return y

    def _classes_for(self, handle: ModelHandle, y: np.ndarray, config: FitConfig) -> Optional[np.ndarray]:
        if handle.spec.task_type != TaskType.CLASSIFICATION:
            return None
        if handle.spec.output_width > 1:
            return np.arange(handle.spec.output_width)
        if config.classes is not None:
            return np.unique(np.asarray(config.classes, dtype=np.float64))
        return np.unique(y)

    def _check_input(self, handle: ModelHandle, x: np.ndarray) -> None:
        if x.ndim != 2 or x.shape[1] != handle.spec.input_width:
            raise ShapeError(
                f"Model expects input shape [*, {handle.spec.input_width}] "
                f"but got {list(x.shape)}"
            )

    # ----- training -----

    def fit(
        self,
        handle: ModelHandle,
        train_x: np.ndarray,
        train_y: np.ndarray,
        config: FitConfig,
    ) -> TrainingSummary:
        self._check_input(handle, train_x)
        if train_x.shape[0] == 0:
            raise TrainingError("Training set is empty")

        estimator = handle.estimator
        y = self._to_sklearn_targets(handle, train_y)
        classes = self._classes_for(handle, y, config)
        estimator.set_params(batch_size=max(1, min(config.batch_size, train_x.shape[0])))

        validation = None
        if config.validation_data is not None and len(config.validation_data[0]) > 0:
            validation = config.validation_data

        history: List[Dict[str, float]] = []
        for epoch in range(config.epochs):
            if classes is not None:
                estimator.partial_fit(train_x, y, classes=classes)
            else:
                estimator.partial_fit(train_x, y)

            logs: Dict[str, float] = {"loss": float(estimator.loss_)}
            if classes is not None:
                logs["accuracy"] = float(estimator.score(train_x, y))
            if validation is not None:
                val = self._evaluate_fitted(handle, validation[0], validation[1])
                logs["val_loss"] = val.loss
                if val.accuracy is not None:
                    logs["val_accuracy"] = val.accuracy

            history.append({"epoch": epoch + 1, **logs})
            if config.on_epoch_end is not None:
                config.on_epoch_end(epoch, logs)

        handle.fitted = True
        last = history[-1] if history else {}
        return TrainingSummary(
            final_loss=float(last.get("loss", float("nan"))),
            accuracy=last.get("accuracy"),
            epochs=len(history),
            history=history,
        )

    # ----- evaluation / prediction -----

    def evaluate(
        self,
        handle: ModelHandle,
        x: np.ndarray,
        y: np.ndarray,
        batch_size: Optional[int] = None,
    ) -> Optional[EvaluationResult]:
        if x.shape[0] == 0:
            return None
        self._check_input(handle, x)
        return self._evaluate_fitted(handle, x, y)

    def _evaluate_fitted(self, handle: ModelHandle, x: np.ndarray, y: np.ndarray) -> EvaluationResult:
        estimator = handle.estimator
        y_true = self._to_sklearn_targets(handle, y)

        if handle.spec.task_type == TaskType.CLASSIFICATION:
            proba = estimator.predict_proba(x)
            loss = log_loss(y_true, proba, labels=estimator.classes_)
            accuracy = accuracy_score(y_true, estimator.predict(x))
            return EvaluationResult(loss=float(loss), accuracy=float(accuracy))

        predictions = estimator.predict(x)
        return EvaluationResult(loss=float(mean_squared_error(y_true, predictions)))

    def predict_many(self, handle: ModelHandle, x: np.ndarray) -> np.ndarray:
        x = np.asarray(x, dtype=np.float64)
        self._check_input(handle, x)
        estimator = handle.estimator

        if handle.spec.task_type == TaskType.CLASSIFICATION and handle.spec.output_width > 1:
            return estimator.predict_proba(x)

        predictions = np.asarray(estimator.predict(x), dtype=np.float64)
        return predictions.reshape(x.shape[0], -1)

    def class_probabilities(
        self,
        handle: ModelHandle,
        vector: np.ndarray,
    ) -> Optional[Dict[float, float]]:
        if handle.spec.task_type != TaskType.CLASSIFICATION:
            return None
        x = np.asarray(vector, dtype=np.float64).reshape(1, -1)
        self._check_input(handle, x)
        proba = handle.estimator.predict_proba(x)[0]
        return {float(c): float(p) for c, p in zip(handle.estimator.classes_, proba)}
