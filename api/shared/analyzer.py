"""
Dataset analysis: column kinds and task inference.

Inspects a parsed table and a designated target column to decide whether
the task is classification or regression, which label strings exist (in
first-occurrence order) and how each column looks.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple

import pandas as pd

from .errors import SchemaError
from .ingest import RawTable, is_number
from .logger import get_logger

logger = get_logger(__name__)

# Targets with at most this many distinct values are treated as classes.
CLASSIFICATION_THRESHOLD = 10


class TaskType(str, Enum):
    """Supervised-learning task."""

    CLASSIFICATION = "classification"
    REGRESSION = "regression"


class ColumnKind(str, Enum):
    NUMERIC = "numeric"
    CATEGORICAL = "categorical"


@dataclass(frozen=True)
class ColumnDescriptor:
    """Summary of one column from a full scan."""

    name: str
    kind: ColumnKind
    unique_count: int


@dataclass(frozen=True)
class DatasetDescriptor:
    """Everything downstream stages need to know about a dataset.

    Attributes:
        feature_names: Feature columns in header order (never the target)
        target_name: Target column
        num_samples: Number of data rows
        task_type: Inferred or requested task
        labels: Distinct label strings in first-occurrence order; set only for
            string-valued classification targets
        class_values: Distinct numeric classes in first-occurrence order; set
            only for numeric classification targets
        columns: Descriptor for every column, header order
    """

    feature_names: Tuple[str, ...]
    target_name: str
    num_samples: int
    task_type: TaskType
    labels: Optional[Tuple[str, ...]] = None
    class_values: Optional[Tuple[float, ...]] = None
    columns: Tuple[ColumnDescriptor, ...] = ()

    @property
    def num_features(self) -> int:
        return len(self.feature_names)

    @property
    def is_classification(self) -> bool:
        return self.task_type == TaskType.CLASSIFICATION

    @property
    def label_count(self) -> Optional[int]:
        return len(self.labels) if self.labels is not None else None

    @property
    def has_categorical_features(self) -> bool:
        return any(
            c.kind == ColumnKind.CATEGORICAL
            for c in self.columns
            if c.name in self.feature_names
        )

    @property
    def has_numeric_features(self) -> bool:
        return any(
            c.kind == ColumnKind.NUMERIC
            for c in self.columns
            if c.name in self.feature_names
        )


def label_key(value: Any) -> str:
    """Canonical label string for a target cell.

    Integral floats drop their fractional part so ``1`` and ``1.0`` map to
    the same label.
    """
    if is_number(value):
        number = float(value)
        if number.is_integer():
            return str(int(number))
        return repr(number)
    return str(value)


def first_occurrence(values: Sequence[Any]) -> List[Any]:
    """Distinct values in order of first appearance."""
    return list(pd.unique(pd.Series(list(values), dtype=object)))


def describe_column(name: str, values: Sequence[Any], num_samples: int) -> ColumnDescriptor:
    unique_count = len(first_occurrence(values))
    all_numeric = all(is_number(v) for v in values)

    if unique_count <= min(CLASSIFICATION_THRESHOLD, num_samples * 0.1) or not all_numeric:
        kind = ColumnKind.CATEGORICAL
    else:
        kind = ColumnKind.NUMERIC

    return ColumnDescriptor(name=name, kind=kind, unique_count=unique_count)


def analyze_dataset(
    table: RawTable,
    target_column: Optional[str] = None,
    task_type: Optional[TaskType] = None,
    classification_threshold: int = CLASSIFICATION_THRESHOLD,
) -> DatasetDescriptor:
    """Build the DatasetDescriptor for a table.

    Args:
        table: Parsed CSV content
        target_column: Column to predict; defaults to the last column
        task_type: Explicit task selection; inferred when None
        classification_threshold: Maximum distinct target values for an
            inferred classification task

    Returns:
        The dataset descriptor

    Raises:
        SchemaError: Empty dataset, unknown target column, no feature column,
            or regression requested over a non-numeric target
    """
    if table.num_rows == 0:
        raise SchemaError("Dataset has no data rows")

    if len(table.columns) < 2:
        raise SchemaError(
            f"Dataset has only {len(table.columns)} column(s); "
            "need at least one feature column and one target column"
        )

    target = target_column if target_column is not None else table.columns[-1]
    if target not in table.columns:
        raise SchemaError(
            f"Target column '{target}' not found. Available columns: {table.columns}"
        )

    num_samples = table.num_rows
    feature_names = tuple(c for c in table.columns if c != target)
    columns = tuple(
        describe_column(name, table.column_values(name), num_samples)
        for name in table.columns
    )

    target_values = table.column_values(target)
    distinct = first_occurrence(target_values)
    has_strings = any(not is_number(v) for v in target_values)

    if task_type is not None:
        task_type = TaskType(task_type)

    if task_type is None:
        if has_strings or len(distinct) <= classification_threshold:
            task_type = TaskType.CLASSIFICATION
        else:
            task_type = TaskType.REGRESSION
    elif task_type == TaskType.REGRESSION and has_strings:
        raise SchemaError(
            f"Target column '{target}' has non-numeric values; "
            "regression requires a numeric target"
        )

    labels: Optional[Tuple[str, ...]] = None
    class_values: Optional[Tuple[float, ...]] = None
    if task_type == TaskType.CLASSIFICATION:
        if has_strings:
            labels = tuple(first_occurrence([label_key(v) for v in target_values]))
        else:
            class_values = tuple(float(v) for v in distinct)

    descriptor = DatasetDescriptor(
        feature_names=feature_names,
        target_name=target,
        num_samples=num_samples,
        task_type=task_type,
        labels=labels,
        class_values=class_values,
        columns=columns,
    )
    logger.info(
        "Analyzed dataset: target=%s task=%s samples=%d features=%d distinct_targets=%d",
        target,
        task_type.value,
        num_samples,
        len(feature_names),
        len(distinct),
    )
    return descriptor
