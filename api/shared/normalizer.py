"""
Z-score normalization of feature matrices.

Parameters are fitted once on the full (pre-split) feature matrix and then
reused unchanged for every later input, including single-sample
prediction requests.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .errors import ShapeError


@dataclass(frozen=True)
class NormalizationParams:
    """Per-feature mean and standard deviation.

    ``stds`` never contains 0: a zero-variance feature stores 1, so the
    transform only shifts that feature to a constant 0 column.
    """

    means: Tuple[float, ...]
    stds: Tuple[float, ...]

    @property
    def num_features(self) -> int:
        return len(self.means)

    def apply(self, data: np.ndarray) -> np.ndarray:
        """Normalize a 2-D matrix or a single 1-D sample."""
        data = np.asarray(data, dtype=np.float64)
        width = data.shape[-1] if data.ndim else 0
        if data.ndim not in (1, 2) or width != self.num_features:
            raise ShapeError(
                f"Cannot normalize data of shape {list(data.shape)}: "
                f"expected {self.num_features} features"
            )
        return (data - np.asarray(self.means)) / np.asarray(self.stds)

    def to_dict(self) -> dict:
        return {"means": list(self.means), "stds": list(self.stds)}


def fit_normalizer(features: np.ndarray) -> NormalizationParams:
    """Compute population mean/std for each feature column."""
    features = np.asarray(features, dtype=np.float64)
    if features.ndim != 2 or features.shape[0] == 0:
        raise ShapeError(
            f"Cannot fit normalization on data of shape {list(features.shape)}"
        )

    means = features.mean(axis=0)
    stds = np.sqrt(((features - means) ** 2).mean(axis=0))

    # Rounding in mean() can leave a tiny spread on constant columns.
    constant = np.ptp(features, axis=0) == 0
    means[constant] = features[0, constant]
    stds[constant | (stds == 0)] = 1.0

    return NormalizationParams(
        means=tuple(float(m) for m in means),
        stds=tuple(float(s) for s in stds),
    )


def normalize(
    features: np.ndarray,
    params: Optional[NormalizationParams] = None,
) -> Tuple[np.ndarray, NormalizationParams]:
    """Normalize a feature matrix.

    Args:
        features: Matrix [n][num_features]
        params: Existing parameters; fitted on ``features`` when omitted

    Returns:
        Tuple of (normalized matrix, parameters used)
    """
    if params is None:
        params = fit_normalizer(features)
    return params.apply(features), params
