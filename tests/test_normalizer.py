"""
Tests for z-score normalization (api.shared.normalizer).
"""

import numpy as np
import pytest

from api.shared.errors import ShapeError
from api.shared.normalizer import NormalizationParams, fit_normalizer, normalize


class TestFit:
    def test_columns_have_zero_mean_unit_std(self):
        rng = np.random.default_rng(3)
        data = np.column_stack([rng.normal(50, 10, 200), rng.uniform(-3, 7, 200)])
        normalized, params = normalize(data)

        assert np.allclose(normalized.mean(axis=0), 0.0, atol=1e-9)
        assert np.allclose(normalized.std(axis=0), 1.0, atol=1e-9)
        assert params.num_features == 2

    def test_population_std(self):
        params = fit_normalizer(np.array([[1.0], [3.0]]))
        assert params.means == (2.0,)
        assert params.stds == (1.0,)

    def test_constant_column_maps_to_zero(self):
        data = np.array([[5.0, 1.0], [5.0, 2.0], [5.0, 3.0]])
        normalized, params = normalize(data)
        assert np.all(np.isfinite(normalized))
        assert np.all(normalized[:, 0] == 0.0)
        assert params.stds[0] == 1.0

    def test_constant_fraction_column(self):
        # mean() of a repeated 0.1 is not exactly 0.1
        data = np.full((7, 1), 0.1)
        normalized, _ = normalize(data)
        assert np.all(normalized == 0.0)

    def test_empty_matrix_rejected(self):
        with pytest.raises(ShapeError):
            fit_normalizer(np.zeros((0, 3)))


class TestApply:
    def test_existing_params_are_reused(self):
        params = NormalizationParams(means=(10.0, 0.0), stds=(2.0, 1.0))
        normalized, used = normalize(np.array([[12.0, 5.0]]), params)
        assert used is params
        assert normalized.tolist() == [[1.0, 5.0]]

    def test_single_sample(self):
        params = NormalizationParams(means=(1.0, 2.0), stds=(1.0, 2.0))
        assert params.apply(np.array([2.0, 6.0])).tolist() == [1.0, 2.0]

    def test_width_mismatch(self):
        params = NormalizationParams(means=(0.0, 0.0), stds=(1.0, 1.0))
        with pytest.raises(ShapeError, match="expected 2 features"):
            params.apply(np.zeros((4, 3)))

    def test_to_dict(self):
        params = NormalizationParams(means=(1.0,), stds=(2.0,))
        assert params.to_dict() == {"means": [1.0], "stds": [2.0]}
