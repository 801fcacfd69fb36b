"""
Feature and target encoding.

Converts raw table cells into the numeric matrices the model backend
consumes:

- features: one float per feature column, with an explicit policy for
  non-numeric cells (``CategoricalPolicy``)
- targets: one-hot rows for string-label classification, the numeric label
  for numeric classification, and a min-max rescaled value for regression
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .analyzer import DatasetDescriptor, TaskType, first_occurrence, label_key
from .errors import EncodingError
from .ingest import RawTable, coerce_cell, is_number
from .logger import get_logger

logger = get_logger(__name__)

# Guards a zero-range regression target.
RANGE_EPSILON = 1e-8


class CategoricalPolicy(str, Enum):
    """How non-numeric feature cells become numbers.

    ZERO maps every non-numeric cell to 0.0. ORDINAL maps each distinct value
    to its first-occurrence index within the column.
    """

    ZERO = "zero"
    ORDINAL = "ordinal"


@dataclass(frozen=True)
class TargetScaling:
    """Min/max of a regression target, for decoding predictions."""

    minimum: float
    maximum: float

    @property
    def span(self) -> float:
        return self.maximum - self.minimum + RANGE_EPSILON

    def scale(self, value: float) -> float:
        return (value - self.minimum) / self.span

    def unscale(self, value: float) -> float:
        return value * self.span + self.minimum


@dataclass
class EncodedDataset:
    """Unnormalized feature matrix and target matrix, row-aligned."""

    features: np.ndarray
    targets: np.ndarray
    policy: CategoricalPolicy = CategoricalPolicy.ZERO
    target_scaling: Optional[TargetScaling] = None
    category_maps: Dict[str, Tuple[str, ...]] = field(default_factory=dict)

    @property
    def num_samples(self) -> int:
        return int(self.features.shape[0])

    @property
    def num_features(self) -> int:
        return int(self.features.shape[1])

    @property
    def output_width(self) -> int:
        return int(self.targets.shape[1])


def _encode_feature_cell(
    value: Any,
    column: str,
    policy: CategoricalPolicy,
    vocabulary: Optional[Tuple[str, ...]],
) -> float:
    if is_number(value):
        return float(value)

    if policy == CategoricalPolicy.ZERO:
        return 0.0

    text = str(value)
    if vocabulary is None or text not in vocabulary:
        raise EncodingError(
            f"Feature '{column}': category '{text}' was not seen in the training data"
        )
    return float(vocabulary.index(text))


def _build_category_maps(
    table: RawTable,
    feature_names: Sequence[str],
) -> Dict[str, Tuple[str, ...]]:
    maps: Dict[str, Tuple[str, ...]] = {}
    for name in feature_names:
        categories = [str(v) for v in table.column_values(name) if not is_number(v)]
        if categories:
            maps[name] = tuple(first_occurrence(categories))
    return maps


def encode_features(
    table: RawTable,
    feature_names: Sequence[str],
    policy: CategoricalPolicy = CategoricalPolicy.ZERO,
    category_maps: Optional[Mapping[str, Tuple[str, ...]]] = None,
) -> np.ndarray:
    """Encode the feature columns of a table into a float matrix."""
    policy = CategoricalPolicy(policy)
    category_maps = category_maps or {}

    columns = []
    for name in feature_names:
        vocabulary = category_maps.get(name)
        columns.append(
            [_encode_feature_cell(v, name, policy, vocabulary) for v in table.column_values(name)]
        )

    if not columns:
        return np.zeros((table.num_rows, 0), dtype=np.float64)
    return np.asarray(columns, dtype=np.float64).T.copy()


def encode_targets(
    table: RawTable,
    descriptor: DatasetDescriptor,
) -> Tuple[np.ndarray, Optional[TargetScaling]]:
    """Encode the target column.

    Returns:
        Tuple of (target matrix, regression scaling or None)

    Raises:
        EncodingError: A label missing from the descriptor's label list, or a
            non-numeric value in a numeric target
    """
    values = table.column_values(descriptor.target_name)

    if descriptor.task_type == TaskType.CLASSIFICATION and descriptor.labels is not None:
        index = {label: i for i, label in enumerate(descriptor.labels)}
        targets = np.zeros((len(values), len(descriptor.labels)), dtype=np.float64)
        for row, value in enumerate(values):
            key = label_key(value)
            if key not in index:
                raise EncodingError(
                    f"Row {row}: label '{key}' is not in the label list {list(descriptor.labels)}"
                )
            targets[row, index[key]] = 1.0
        return targets, None

    numeric = []
    for row, value in enumerate(values):
        if not is_number(value):
            raise EncodingError(
                f"Row {row}: target '{descriptor.target_name}' value '{value}' is not numeric"
            )
        numeric.append(float(value))
    column = np.asarray(numeric, dtype=np.float64).reshape(-1, 1)

    if descriptor.task_type == TaskType.CLASSIFICATION:
        return column, None

    scaling = TargetScaling(minimum=float(column.min()), maximum=float(column.max()))
    return (column - scaling.minimum) / scaling.span, scaling


def encode_dataset(
    table: RawTable,
    descriptor: DatasetDescriptor,
    categorical_policy: Union[CategoricalPolicy, str] = CategoricalPolicy.ZERO,
) -> EncodedDataset:
    """Encode features and targets of a table.

    Args:
        table: Parsed CSV content
        descriptor: Result of ``analyze_dataset`` for the same table
        categorical_policy: Treatment of non-numeric feature cells

    Returns:
        The unnormalized encoded dataset
    """
    policy = CategoricalPolicy(categorical_policy)
    category_maps: Dict[str, Tuple[str, ...]] = {}
    if policy == CategoricalPolicy.ORDINAL:
        category_maps = _build_category_maps(table, descriptor.feature_names)

    features = encode_features(table, descriptor.feature_names, policy, category_maps)
    targets, scaling = encode_targets(table, descriptor)

    if policy == CategoricalPolicy.ZERO:
        zeroed = [
            name for name in descriptor.feature_names
            if any(not is_number(v) for v in table.column_values(name))
        ]
        if zeroed:
            logger.info("Non-numeric cells encoded as 0 in features: %s", zeroed)

    logger.debug("Encoded features %s, targets %s", features.shape, targets.shape)
    return EncodedDataset(
        features=features,
        targets=targets,
        policy=policy,
        target_scaling=scaling,
        category_maps=category_maps,
    )


def encode_sample(
    values: Union[Mapping[str, Any], Sequence[Any]],
    feature_names: Sequence[str],
    policy: Union[CategoricalPolicy, str] = CategoricalPolicy.ZERO,
    category_maps: Optional[Mapping[str, Tuple[str, ...]]] = None,
) -> np.ndarray:
    """Encode one prediction input with the same rules as the training data.

    Args:
        values: Mapping of feature name to raw value, or a sequence in
            feature order
        feature_names: Feature columns of the dataset
        policy: Policy the dataset was encoded with
        category_maps: Ordinal vocabularies of the dataset

    Returns:
        1-D float vector of length ``len(feature_names)``
    """
    policy = CategoricalPolicy(policy)
    category_maps = category_maps or {}

    if isinstance(values, Mapping):
        missing = [name for name in feature_names if name not in values]
        if missing:
            raise EncodingError(f"Missing values for features: {missing}")
        raw = [values[name] for name in feature_names]
    else:
        raw = list(values)
        if len(raw) != len(feature_names):
            raise EncodingError(
                f"Expected {len(feature_names)} feature values, got {len(raw)}"
            )

    vector: List[float] = []
    for name, value in zip(feature_names, raw):
        if isinstance(value, str):
            value = coerce_cell(value)
        vector.append(_encode_feature_cell(value, name, policy, category_maps.get(name)))
    return np.asarray(vector, dtype=np.float64)


def decode_regression(value: float, scaling: TargetScaling) -> float:
    """Map a scaled regression output back to the target's original units."""
    return float(scaling.unscale(float(value)))
