"""
Architecture heuristics and model descriptions.

``recommend_architecture`` proposes a feed-forward network for a dataset
shape; it is a pure function of its arguments. ``ModelSpec`` is the complete,
immutable description handed to the model backend, built in one call from a
layer-width sequence.
"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .analyzer import DatasetDescriptor, TaskType

MIN_HIDDEN_LAYERS = 1
MAX_HIDDEN_LAYERS = 3
MIN_LAYER_WIDTH = 10
MAX_FIRST_LAYER_WIDTH = 128
LAYER_SHRINK_FACTOR = 1.5
MIN_BATCH_SIZE = 8
MAX_BATCH_SIZE = 32
MIN_EPOCHS = 50
MAX_EPOCHS = 200
EPOCH_SAMPLE_BUDGET = 10000
DEFAULT_LEARNING_RATE = 0.001
DEFAULT_OPTIMIZER = "adam"


class LossKind(str, Enum):
    CATEGORICAL_CROSSENTROPY = "categorical_crossentropy"
    BINARY_CROSSENTROPY = "binary_crossentropy"
    MEAN_SQUARED_ERROR = "mean_squared_error"


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


@dataclass(frozen=True)
class ArchitectureRecommendation:
    """Suggested network and training settings.

    ``neurons_per_layer`` lists the hidden layer widths followed by the
    output layer width.
    """

    hidden_layer_count: int
    neurons_per_layer: Tuple[int, ...]
    activation_function: str
    output_activation: str
    learning_rate: float
    batch_size: int
    epoch_count: int
    optimizer_kind: str
    task_type: TaskType

    @property
    def total_layers(self) -> int:
        """Input + hidden + output."""
        return self.hidden_layer_count + 2

    @property
    def hidden_widths(self) -> Tuple[int, ...]:
        return self.neurons_per_layer[:-1]

    @property
    def output_width(self) -> int:
        return self.neurons_per_layer[-1]

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["neurons_per_layer"] = list(self.neurons_per_layer)
        data["task_type"] = self.task_type.value
        data["total_layers"] = self.total_layers
        return data


def recommend_architecture(
    num_features: int,
    num_samples: int,
    task_type: TaskType,
    label_count: Optional[int] = None,
) -> ArchitectureRecommendation:
    """Propose an architecture for a dataset shape.

    Args:
        num_features: Width of the feature matrix
        num_samples: Number of samples in the dataset
        task_type: Classification or regression
        label_count: Number of distinct labels for string-label
            classification

    Returns:
        The recommendation
    """
    if num_features < 1:
        raise ValueError(f"num_features must be positive, got {num_features}")
    if num_samples < 1:
        raise ValueError(f"num_samples must be positive, got {num_samples}")

    task_type = TaskType(task_type)
    is_classification = task_type == TaskType.CLASSIFICATION

    hidden_layer_count = _clamp(
        int(math.floor(math.log2(num_features))), MIN_HIDDEN_LAYERS, MAX_HIDDEN_LAYERS
    )

    widths = [_clamp(num_features * 2, MIN_LAYER_WIDTH, MAX_FIRST_LAYER_WIDTH)]
    for _ in range(1, hidden_layer_count):
        widths.append(max(MIN_LAYER_WIDTH, int(math.floor(widths[-1] / LAYER_SHRINK_FACTOR))))

    if is_classification and label_count is not None and label_count > 2:
        widths.append(label_count)
    else:
        widths.append(1)

    return ArchitectureRecommendation(
        hidden_layer_count=hidden_layer_count,
        neurons_per_layer=tuple(widths),
        activation_function="relu",
        output_activation="sigmoid" if is_classification else "linear",
        learning_rate=DEFAULT_LEARNING_RATE,
        batch_size=_clamp(num_samples // 10, MIN_BATCH_SIZE, MAX_BATCH_SIZE),
        epoch_count=_clamp(EPOCH_SAMPLE_BUDGET // num_samples, MIN_EPOCHS, MAX_EPOCHS),
        optimizer_kind=DEFAULT_OPTIMIZER,
        task_type=task_type,
    )


def recommend_for_dataset(descriptor: DatasetDescriptor) -> ArchitectureRecommendation:
    return recommend_architecture(
        descriptor.num_features,
        descriptor.num_samples,
        descriptor.task_type,
        descriptor.label_count,
    )


def default_loss(task_type: TaskType, output_width: int) -> LossKind:
    """Loss matching a task and output width."""
    if TaskType(task_type) == TaskType.REGRESSION:
        return LossKind.MEAN_SQUARED_ERROR
    if output_width > 1:
        return LossKind.CATEGORICAL_CROSSENTROPY
    return LossKind.BINARY_CROSSENTROPY


@dataclass(frozen=True)
class ModelSpec:
    """Fully specified feed-forward network description."""

    input_width: int
    hidden_widths: Tuple[int, ...]
    output_width: int
    activation: str
    output_activation: str
    learning_rate: float
    optimizer_kind: str
    loss_kind: LossKind
    task_type: TaskType

    @classmethod
    def build(
        cls,
        layer_widths: Sequence[int],
        input_width: int,
        task_type: TaskType,
        activation: str = "relu",
        output_activation: Optional[str] = None,
        learning_rate: float = DEFAULT_LEARNING_RATE,
        optimizer_kind: str = DEFAULT_OPTIMIZER,
        loss_kind: Optional[LossKind] = None,
    ) -> "ModelSpec":
        """Create a spec from hidden widths followed by the output width."""
        widths = tuple(int(w) for w in layer_widths)
        if len(widths) < 2:
            raise ValueError("layer_widths needs at least one hidden layer and the output layer")
        if any(w < 1 for w in widths) or input_width < 1:
            raise ValueError(f"Layer widths must be positive, got {[input_width, *widths]}")

        task_type = TaskType(task_type)
        output_width = widths[-1]
        if output_activation is None:
            output_activation = "sigmoid" if task_type == TaskType.CLASSIFICATION else "linear"

        return cls(
            input_width=int(input_width),
            hidden_widths=widths[:-1],
            output_width=output_width,
            activation=activation,
            output_activation=output_activation,
            learning_rate=float(learning_rate),
            optimizer_kind=optimizer_kind,
            loss_kind=LossKind(loss_kind) if loss_kind else default_loss(task_type, output_width),
            task_type=task_type,
        )

    @classmethod
    def from_recommendation(
        cls,
        recommendation: ArchitectureRecommendation,
        input_width: int,
    ) -> "ModelSpec":
        return cls.build(
            recommendation.neurons_per_layer,
            input_width=input_width,
            task_type=recommendation.task_type,
            activation=recommendation.activation_function,
            output_activation=recommendation.output_activation,
            learning_rate=recommendation.learning_rate,
            optimizer_kind=recommendation.optimizer_kind,
        )

    def layer_summary(self) -> List[Dict[str, Any]]:
        """Per dense layer: name, units, activation and parameter count."""
        layers = []
        fan_in = self.input_width
        all_widths = list(self.hidden_widths) + [self.output_width]
        for i, units in enumerate(all_widths):
            is_output = i == len(all_widths) - 1
            layers.append({
                "name": "output" if is_output else f"hidden_{i + 1}",
                "units": units,
                "activation": self.output_activation if is_output else self.activation,
                "parameters": fan_in * units + units,
            })
            fan_in = units
        return layers

    def to_dict(self) -> Dict[str, Any]:
        layers = self.layer_summary()
        return {
            "input_width": self.input_width,
            "hidden_widths": list(self.hidden_widths),
            "output_width": self.output_width,
            "activation": self.activation,
            "output_activation": self.output_activation,
            "learning_rate": self.learning_rate,
            "optimizer_kind": self.optimizer_kind,
            "loss_kind": self.loss_kind.value,
            "task_type": self.task_type.value,
            "layers": layers,
            "total_parameters": sum(layer["parameters"] for layer in layers),
        }
