"""
Tests for dataset analysis (api.shared.analyzer).
"""

import pytest

from api.shared.analyzer import ColumnKind, TaskType, analyze_dataset, label_key
from api.shared.errors import SchemaError
from api.shared.ingest import parse_csv


class TestTaskInference:
    def test_string_target_is_classification(self, abc_table):
        d = analyze_dataset(abc_table)
        assert d.task_type == TaskType.CLASSIFICATION
        assert d.labels == ("A", "B", "C")
        assert d.class_values is None
        assert d.label_count == 3

    def test_many_distinct_numbers_is_regression(self, regression_table):
        d = analyze_dataset(regression_table)
        assert d.task_type == TaskType.REGRESSION
        assert d.labels is None
        assert d.class_values is None

    def test_few_distinct_numbers_is_classification(self, mixed_table):
        d = analyze_dataset(mixed_table)
        assert d.task_type == TaskType.CLASSIFICATION
        assert d.labels is None
        assert d.class_values == (1.0, 0.0)

    def test_threshold_boundary(self):
        # 10 distinct values -> classification, 11 -> regression
        ten = "x,y\n" + "".join(f"{i},{i}\n" for i in range(10))
        eleven = "x,y\n" + "".join(f"{i},{i}\n" for i in range(11))
        assert analyze_dataset(parse_csv(ten)).task_type == TaskType.CLASSIFICATION
        assert analyze_dataset(parse_csv(eleven)).task_type == TaskType.REGRESSION

    def test_custom_threshold(self):
        text = "x,y\n" + "".join(f"{i},{i}\n" for i in range(5))
        d = analyze_dataset(parse_csv(text), classification_threshold=3)
        assert d.task_type == TaskType.REGRESSION

    def test_forced_task_type(self, regression_table):
        d = analyze_dataset(regression_table, task_type="classification")
        assert d.task_type == TaskType.CLASSIFICATION
        assert len(d.class_values) == 500

    def test_regression_on_strings_rejected(self, abc_table):
        with pytest.raises(SchemaError, match="non-numeric"):
            analyze_dataset(abc_table, task_type=TaskType.REGRESSION)

    def test_mixed_target_treated_as_labels(self):
        table = parse_csv("x,y\n1,a\n2,1\n3,a\n4,2.0\n")
        d = analyze_dataset(table)
        assert d.labels == ("a", "1", "2")


class TestDescriptor:
    def test_label_order_is_first_occurrence(self):
        table = parse_csv("x,y\n1,dog\n2,cat\n3,dog\n4,bird\n5,cat\n")
        assert analyze_dataset(table).labels == ("dog", "cat", "bird")

    def test_feature_names_exclude_target(self, abc_table):
        d = analyze_dataset(abc_table, target_column="x1")
        assert d.feature_names == ("x2", "label")
        assert d.target_name == "x1"

    def test_default_target_is_last_column(self, mixed_table):
        d = analyze_dataset(mixed_table)
        assert d.target_name == "passed"
        assert d.feature_names == ("age", "color", "score")
        assert d.num_features == 3
        assert d.num_samples == 6

    def test_deterministic(self, abc_csv):
        first = analyze_dataset(parse_csv(abc_csv))
        second = analyze_dataset(parse_csv(abc_csv))
        assert first == second

    def test_column_kinds(self, mixed_table):
        d = analyze_dataset(mixed_table)
        kinds = {c.name: c.kind for c in d.columns}
        assert kinds["color"] == ColumnKind.CATEGORICAL
        assert d.has_categorical_features
        assert kinds["age"] == ColumnKind.NUMERIC
        assert d.has_numeric_features

    def test_label_key_merges_integral_floats(self):
        assert label_key(1.0) == "1"
        assert label_key(2.5) == "2.5"
        assert label_key("A") == "A"


class TestSchemaErrors:
    def test_no_rows(self):
        with pytest.raises(SchemaError, match="no data rows"):
            analyze_dataset(parse_csv("a,b\n"))

    def test_single_column(self):
        with pytest.raises(SchemaError, match="at least one feature"):
            analyze_dataset(parse_csv("a\n1\n2\n"))

    def test_unknown_target(self, abc_table):
        with pytest.raises(SchemaError, match="not found"):
            analyze_dataset(abc_table, target_column="missing")
