"""
Tests for training orchestration (api.shared.trainer).
"""

import numpy as np
import pytest

from api.shared.analyzer import TaskType
from api.shared.architecture import ModelSpec
from api.shared.errors import ShapeError, TrainingError
from api.shared.model_backend import ModelBackend, ModelHandle, SklearnMLPBackend, TrainingSummary
from api.shared.pipeline import prepare_dataset
from api.shared.trainer import train_model


class ExplodingBackend(ModelBackend):
    """Backend whose fit fails with a library-level error."""

    def build(self, spec):
        return ModelHandle(spec=spec, estimator=None)

    def fit(self, handle, train_x, train_y, config):
        raise RuntimeError("weights went NaN")

    def evaluate(self, handle, x, y, batch_size=None):
        return None

    def predict_many(self, handle, x):
        return np.zeros((len(x), handle.output_width))


@pytest.fixture
def backend():
    return SklearnMLPBackend(random_state=0)


class TestTrainModel:
    def test_classification_outcome(self, backend, abc_table):
        prepared = prepare_dataset(abc_table, seed=0)
        handle = backend.build(ModelSpec.from_recommendation(prepared.recommend(), prepared.num_features))
        epochs = []

        outcome = train_model(backend, handle, prepared, epochs=10, batch_size=8,
                              on_epoch_end=lambda epoch, logs: epochs.append(epoch))

        assert epochs == list(range(10))
        assert outcome.summary.epochs == 10
        assert outcome.evaluation is not None
        assert outcome.reconciliation is None
        assert outcome.metrics["confusion_matrix"]["labels"] == ["A", "B", "C"]
        assert sum(map(sum, outcome.metrics["confusion_matrix"]["matrix"])) == 4
        assert outcome.to_dict()["epochs"] == 10

    def test_single_output_model_on_one_hot_targets(self, backend, abc_table):
        prepared = prepare_dataset(abc_table, seed=0)
        handle = backend.build(ModelSpec.build([10, 1], 2, TaskType.CLASSIFICATION))

        outcome = train_model(backend, handle, prepared, epochs=5, batch_size=8)

        assert "collapsed" in outcome.reconciliation
        assert outcome.metrics["confusion_matrix"]["labels"] == ["A", "B", "C"]
        assert set(handle.estimator.classes_.tolist()) == {0.0, 1.0, 2.0}

    def test_regression_metrics_in_target_units(self, backend, regression_table):
        prepared = prepare_dataset(regression_table, seed=0)
        handle = backend.build(ModelSpec.build([10, 1], 1, TaskType.REGRESSION))

        outcome = train_model(backend, handle, prepared, epochs=3, batch_size=32)

        assert set(outcome.metrics) == {"mse", "rmse", "mae", "r2"}
        assert outcome.evaluation.accuracy is None
        assert outcome.summary.accuracy is None

    def test_no_test_split(self, backend, abc_table):
        prepared = prepare_dataset(abc_table, test_fraction=0.0, seed=0)
        handle = backend.build(ModelSpec.build([10, 3], 2, TaskType.CLASSIFICATION))

        outcome = train_model(backend, handle, prepared, epochs=2, batch_size=8)

        assert outcome.evaluation is None
        assert outcome.metrics is None
        assert "val_loss" not in outcome.history[0]

    def test_input_mismatch_is_shape_error(self, backend, abc_table):
        prepared = prepare_dataset(abc_table, seed=0)
        handle = backend.build(ModelSpec.build([10, 3], 5, TaskType.CLASSIFICATION))
        with pytest.raises(ShapeError):
            train_model(backend, handle, prepared, epochs=1, batch_size=8)

    def test_loss_mismatch_is_shape_error(self, backend, abc_table):
        prepared = prepare_dataset(abc_table, seed=0)
        spec = ModelSpec.build([10, 3], 2, TaskType.CLASSIFICATION, loss_kind="binary_crossentropy")
        with pytest.raises(ShapeError, match="binary_crossentropy"):
            train_model(backend, backend.build(spec), prepared, epochs=1, batch_size=8)

    def test_backend_failure_wrapped(self, abc_table):
        prepared = prepare_dataset(abc_table, seed=0)
        backend = ExplodingBackend()
        handle = backend.build(ModelSpec.build([10, 3], 2, TaskType.CLASSIFICATION))

        with pytest.raises(TrainingError, match="weights went NaN") as exc_info:
            train_model(backend, handle, prepared, epochs=1, batch_size=8)
        assert isinstance(exc_info.value.__cause__, RuntimeError)


class ConstantBackend(ExplodingBackend):
    """Backend that trains instantly and always predicts the last output column."""

    def fit(self, handle, train_x, train_y, config):
        return TrainingSummary(final_loss=0.0, accuracy=None, epochs=0)

    def predict_many(self, handle, x):
        outputs = np.zeros((len(x), handle.output_width))
        outputs[:, -1] = 1.0
        return outputs


class TestExpandedClassValues:
    def test_confusion_matrix_columns_follow_class_value(self, one_first_table):
        prepared = prepare_dataset(one_first_table, seed=0)
        backend = ConstantBackend()
        handle = backend.build(ModelSpec.build([10, 2], 1, TaskType.CLASSIFICATION))

        outcome = train_model(backend, handle, prepared, epochs=1, batch_size=8)

        assert "expanded" in outcome.reconciliation
        test_y = prepared.split.test_y[:, 0]
        ones = int((test_y == 1.0).sum())
        zeros = int((test_y == 0.0).sum())
        cm = outcome.metrics["confusion_matrix"]
        assert cm["labels"] == ["0", "1"]
        # every prediction is class value 1
        assert cm["matrix"] == [[0, zeros], [0, ones]]

    def test_sklearn_backend_labels(self, backend, one_first_table):
        prepared = prepare_dataset(one_first_table, seed=0)
        handle = backend.build(ModelSpec.build([10, 2], 1, TaskType.CLASSIFICATION))

        outcome = train_model(backend, handle, prepared, epochs=3, batch_size=8)

        assert outcome.metrics["confusion_matrix"]["labels"] == ["0", "1"]
