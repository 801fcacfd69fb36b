"""
Train/test partitioning.

A single random permutation of the sample indices is cut at
``n - round(n * test_fraction)``: the prefix trains, the suffix tests.
The permutation source is injectable so partitions can be reproduced.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from .errors import ShapeError

DEFAULT_TEST_FRACTION = 0.2


@dataclass(frozen=True)
class SplitIndices:
    train: np.ndarray
    test: np.ndarray


@dataclass
class SplitDataset:
    """Row-aligned train and test matrices plus the indices they came from."""

    train_x: np.ndarray
    train_y: np.ndarray
    test_x: np.ndarray
    test_y: np.ndarray
    indices: SplitIndices

    @property
    def train_size(self) -> int:
        return int(self.train_x.shape[0])

    @property
    def test_size(self) -> int:
        return int(self.test_x.shape[0])

    @property
    def has_test_data(self) -> bool:
        return self.test_size > 0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def held_out_count(num_samples: int, test_fraction: float) -> int:
    return round_half_up(num_samples * test_fraction)


def split_indices(
    num_samples: int,
    test_fraction: float = DEFAULT_TEST_FRACTION,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> SplitIndices:
    """Partition ``range(num_samples)`` into disjoint train/test index sets.

    Args:
        num_samples: Number of samples
        test_fraction: Share of samples held out, in [0, 1)
        seed: Seed for a fresh generator when ``rng`` is not given
        rng: Explicit permutation source

    Returns:
        The train and test indices
    """
    if not 0.0 <= test_fraction < 1.0:
        raise ValueError(f"test_fraction must be in [0, 1), got {test_fraction}")

    if rng is None:
        rng = np.random.default_rng(seed)

    permutation = rng.permutation(num_samples)
    train_count = num_samples - held_out_count(num_samples, test_fraction)
    return SplitIndices(train=permutation[:train_count], test=permutation[train_count:])


def split_dataset(
    features: np.ndarray,
    targets: np.ndarray,
    test_fraction: float = DEFAULT_TEST_FRACTION,
    seed: Optional[int] = None,
    rng: Optional[np.random.Generator] = None,
) -> SplitDataset:
    """Split features and targets with one shared permutation."""
    if features.shape[0] != targets.shape[0]:
        raise ShapeError(
            f"Features have {features.shape[0]} rows but targets have {targets.shape[0]}"
        )

    indices = split_indices(features.shape[0], test_fraction, seed=seed, rng=rng)
    return SplitDataset(
        train_x=features[indices.train],
        train_y=targets[indices.train],
        test_x=features[indices.test],
        test_y=targets[indices.test],
        indices=indices,
    )
