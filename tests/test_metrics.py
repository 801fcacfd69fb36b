"""
Tests for test-set metrics (api.shared.metrics).
"""

import math

import numpy as np
import pytest

from api.shared import metrics
from api.shared.metrics import (
    compute_classification_metrics,
    compute_regression_metrics,
    f1_from_averages,
)


class TestClassificationMetrics:
    def test_perfect(self):
        m = compute_classification_metrics([0, 1, 2], [0, 1, 2], [0, 1, 2], ["A", "B", "C"])
        assert m["accuracy"] == 1.0
        assert m["precision"] == 1.0
        assert m["recall"] == 1.0
        assert m["f1"] == 1.0
        assert m["confusion_matrix"]["labels"] == ["A", "B", "C"]
        assert m["confusion_matrix"]["matrix"] == [[1, 0, 0], [0, 1, 0], [0, 0, 1]]

    def test_confusion_rows_are_true_classes(self):
        m = compute_classification_metrics([0, 0, 1, 1], [0, 1, 1, 1], [0, 1])
        assert m["confusion_matrix"]["matrix"] == [[1, 1], [0, 2]]
        assert m["accuracy"] == 0.75
        assert m["confusion_matrix"]["labels"] == ["0", "1"]

    def test_f1_from_macro_averages(self):
        m = compute_classification_metrics([0, 0, 1, 1], [0, 1, 1, 1], [0, 1])
        # precision: (1/1 + 2/3) / 2, recall: (1/2 + 2/2) / 2
        assert m["precision"] == pytest.approx(5 / 6)
        assert m["recall"] == pytest.approx(0.75)
        assert m["f1"] == pytest.approx(2 * (5 / 6) * 0.75 / (5 / 6 + 0.75))

    def test_absent_class_counts_as_zero(self):
        m = compute_classification_metrics([0, 0], [0, 0], [0, 1])
        assert m["precision"] == pytest.approx(0.5)
        assert m["recall"] == pytest.approx(0.5)

    def test_f1_zero(self):
        assert f1_from_averages(0.0, 0.0) == 0.0


class TestRegressionMetrics:
    def test_values(self):
        m = compute_regression_metrics(np.array([1.0, 2.0, 3.0]), np.array([1.0, 2.0, 5.0]))
        assert m["mse"] == pytest.approx(4 / 3)
        assert m["rmse"] == pytest.approx(math.sqrt(4 / 3))
        assert m["mae"] == pytest.approx(2 / 3)
        assert m["r2"] == pytest.approx(1 - 4 / 2)

    def test_single_sample_has_no_r2(self):
        m = compute_regression_metrics([2.0], [2.5])
        assert m["r2"] is None
        assert m["mae"] == pytest.approx(0.5)


class TestWithoutSklearn:
    def test_metrics_unavailable(self, monkeypatch):
        monkeypatch.setattr(metrics, "SKLEARN_AVAILABLE", False)
        assert compute_classification_metrics([0, 1], [0, 1], [0, 1]) is None
        assert compute_regression_metrics([1.0, 2.0], [1.0, 2.0]) is None
