"""
Dataset preparation and prediction decoding.

``prepare_dataset`` runs analyze -> encode -> normalize -> split on a parsed
table and keeps only what later stages need: the split matrices, the
normalization parameters and the encoding state. The full encoded matrices
are dropped once the split exists.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np

from .analyzer import (
    CLASSIFICATION_THRESHOLD,
    DatasetDescriptor,
    TaskType,
    analyze_dataset,
    label_key,
)
from .architecture import ArchitectureRecommendation, recommend_for_dataset
from .encoder import (
    CategoricalPolicy,
    TargetScaling,
    decode_regression,
    encode_dataset,
    encode_sample,
)
from .ingest import RawTable
from .logger import get_logger
from .normalizer import NormalizationParams, normalize
from .splitter import DEFAULT_TEST_FRACTION, SplitDataset, split_dataset

logger = get_logger(__name__)


@dataclass
class PreparedDataset:
    """A dataset ready for training and prediction."""

    descriptor: DatasetDescriptor
    normalization: NormalizationParams
    split: SplitDataset
    policy: CategoricalPolicy
    output_width: int
    target_scaling: Optional[TargetScaling] = None
    category_maps: Dict[str, Tuple[str, ...]] = field(default_factory=dict)
    test_fraction: float = DEFAULT_TEST_FRACTION
    seed: Optional[int] = None

    @property
    def num_features(self) -> int:
        return self.descriptor.num_features

    def class_values(self) -> Optional[Tuple[float, ...]]:
        """Class values of single-column classification targets."""
        if not self.descriptor.is_classification:
            return None
        if self.descriptor.labels is not None:
            return tuple(float(i) for i in range(len(self.descriptor.labels)))
        return self.descriptor.class_values

    def class_names(self, width: int = 1) -> Optional[Tuple[str, ...]]:
        """Names of the classes, in the column order of a ``width``-wide output.

        Numeric class values spread over several outputs are one-hot by
        value: column i stands for class value i.
        """
        if not self.descriptor.is_classification:
            return None
        if self.descriptor.labels is not None:
            return self.descriptor.labels
        if width > 1:
            return tuple(label_key(float(i)) for i in range(width))
        return tuple(label_key(v) for v in self.descriptor.class_values or ())

    def recommend(self) -> ArchitectureRecommendation:
        return recommend_for_dataset(self.descriptor)

    def summary(self) -> Dict[str, Any]:
        d = self.descriptor
        return {
            "features": list(d.feature_names),
            "target": d.target_name,
            "task_type": d.task_type.value,
            "num_samples": d.num_samples,
            "num_features": d.num_features,
            "labels": list(d.labels) if d.labels is not None else None,
            "class_values": list(d.class_values) if d.class_values is not None else None,
            "output_width": self.output_width,
            "train_size": self.split.train_size,
            "test_size": self.split.test_size,
            "test_fraction": self.test_fraction,
            "categorical_policy": self.policy.value,
            "has_categorical_features": d.has_categorical_features,
            "has_numeric_features": d.has_numeric_features,
            "columns": [
                {"name": c.name, "kind": c.kind.value, "unique_count": c.unique_count}
                for c in d.columns
            ],
            "normalization": self.normalization.to_dict(),
            "target_range": (
                {"min": self.target_scaling.minimum, "max": self.target_scaling.maximum}
                if self.target_scaling else None
            ),
        }


def prepare_dataset(
    table: RawTable,
    target_column: Optional[str] = None,
    task_type: Optional[Union[TaskType, str]] = None,
    test_fraction: float = DEFAULT_TEST_FRACTION,
    seed: Optional[int] = None,
    categorical_policy: Union[CategoricalPolicy, str] = CategoricalPolicy.ZERO,
    classification_threshold: int = CLASSIFICATION_THRESHOLD,
    rng: Optional[np.random.Generator] = None,
) -> PreparedDataset:
    """Analyze, encode, normalize and split a table.

    Args:
        table: Parsed CSV content
        target_column: Target column; defaults to the last column
        task_type: Forced task type; inferred when omitted
        test_fraction: Share of samples held out for evaluation
        seed: Seed for the split permutation
        categorical_policy: Treatment of non-numeric feature cells
        classification_threshold: Max distinct numeric target values for
            inferring classification
        rng: Explicit permutation source (overrides ``seed``)

    Returns:
        The prepared dataset

    Raises:
        SchemaError: Unusable table or target
        EncodingError: Cells that cannot be encoded
        ValueError: test_fraction outside [0, 1)
    """
    descriptor = analyze_dataset(
        table,
        target_column=target_column,
        task_type=task_type,
        classification_threshold=classification_threshold,
    )
    encoded = encode_dataset(table, descriptor, categorical_policy)
    features, params = normalize(encoded.features)
    split = split_dataset(features, encoded.targets, test_fraction, seed=seed, rng=rng)

    logger.info(
        "Prepared dataset: %d samples, %d features, target '%s' (%s), train=%d test=%d",
        descriptor.num_samples,
        descriptor.num_features,
        descriptor.target_name,
        descriptor.task_type.value,
        split.train_size,
        split.test_size,
    )

    return PreparedDataset(
        descriptor=descriptor,
        normalization=params,
        split=split,
        policy=encoded.policy,
        output_width=encoded.output_width,
        target_scaling=encoded.target_scaling,
        category_maps=encoded.category_maps,
        test_fraction=test_fraction,
        seed=seed,
    )


def prepare_input(
    prepared: PreparedDataset,
    values: Union[Mapping[str, Any], Sequence[Any]],
) -> np.ndarray:
    """Encode and normalize one prediction input with the dataset's parameters."""
    vector = encode_sample(
        values,
        prepared.descriptor.feature_names,
        prepared.policy,
        prepared.category_maps,
    )
    return prepared.normalization.apply(vector)


def decode_prediction(
    prepared: PreparedDataset,
    output: np.ndarray,
    class_probabilities: Optional[Mapping[float, float]] = None,
) -> Dict[str, Any]:
    """Turn a raw model output vector into a user-facing prediction.

    Args:
        prepared: Dataset the model was trained on
        output: Model output vector
        class_probabilities: Class value -> probability, for single-output
            classifiers that expose it

    Returns:
        For classification: ``label``, ``probability`` and ``probabilities``.
        For regression: ``value`` in target units and ``scaled_value``.
    """
    output = np.asarray(output, dtype=np.float64).ravel()
    result: Dict[str, Any] = {"raw_output": output.tolist()}

    if not prepared.descriptor.is_classification:
        scaled = float(output[0])
        value = decode_regression(scaled, prepared.target_scaling) if prepared.target_scaling else scaled
        result.update(value=value, scaled_value=scaled)
        return result

    names = prepared.class_names(output.size) or ()

    if output.size > 1:
        if len(names) != output.size:
            names = tuple(str(i) for i in range(output.size))
        index = int(np.argmax(output))
        result.update(
            label=names[index],
            probability=float(output[index]),
            probabilities={name: float(p) for name, p in zip(names, output)},
        )
        return result

    # String labels collapsed to a single column are class indices.
    indexed = prepared.descriptor.labels is not None

    def name_of(value: float) -> str:
        index = int(np.rint(value))
        if indexed and 0 <= index < len(names):
            return names[index]
        return label_key(value)

    label = name_of(float(output[0]))
    probabilities = None
    probability = None
    if class_probabilities:
        probabilities = {name_of(c): float(p) for c, p in class_probabilities.items()}
        probability = probabilities.get(label)

    result.update(label=label, probability=probability, probabilities=probabilities)
    return result
