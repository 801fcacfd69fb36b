"""
Shape reconciliation between a built model and the encoded targets.

All one-hot <-> scalar target conversions live here, driven by one policy
table. Input width mismatches are never repaired.

    model output | data width | action
    -------------+------------+---------------------------------------
         k       |     k      | none
         1       |   N > 1    | collapse: arg-max per row
       N > 1     |     1      | expand: one-hot of round(value)
       other     |   other    | ShapeError
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from .architecture import LossKind
from .errors import ShapeError
from .logger import get_logger

logger = get_logger(__name__)


@dataclass
class ReconciledTargets:
    """Targets reshaped to the model's output width.

    ``action`` describes the corrective reshape that was applied, if any.
    """

    train_y: np.ndarray
    test_y: np.ndarray
    action: Optional[str] = None

    @property
    def width(self) -> int:
        return int(self.train_y.shape[1])


def collapse_one_hot(targets: np.ndarray) -> np.ndarray:
    """One-hot rows -> single column of class indices (arg-max)."""
    if targets.shape[0] == 0:
        return np.zeros((0, 1), dtype=np.float64)
    return np.argmax(targets, axis=1).astype(np.float64).reshape(-1, 1)


def expand_to_one_hot(targets: np.ndarray, width: int) -> np.ndarray:
    """Single scalar column -> one-hot rows of ``width`` columns."""
    indices = np.rint(targets[:, 0]).astype(int) if targets.shape[0] else np.zeros(0, dtype=int)
    out_of_range = (indices < 0) | (indices >= width)
    if out_of_range.any():
        bad = sorted(set(indices[out_of_range].tolist()))
        raise ShapeError(
            f"Cannot expand targets of shape {list(targets.shape)} to one-hot width {width}: "
            f"class indices {bad} out of range [0, {width})"
        )
    one_hot = np.zeros((targets.shape[0], width), dtype=np.float64)
    one_hot[np.arange(targets.shape[0]), indices] = 1.0
    return one_hot


def check_loss_compatibility(loss_kind: LossKind, target_width: int) -> None:
    """Fail when a loss cannot consume targets of the given width."""
    try:
        loss_kind = LossKind(loss_kind)
    except ValueError:
        raise ShapeError(f"Unknown loss '{loss_kind}'") from None

    if loss_kind == LossKind.CATEGORICAL_CROSSENTROPY and target_width < 2:
        raise ShapeError(
            f"Loss '{loss_kind.value}' needs one-hot targets (width > 1) "
            f"but targets have width {target_width}"
        )
    if loss_kind == LossKind.BINARY_CROSSENTROPY and target_width != 1:
        raise ShapeError(
            f"Loss '{loss_kind.value}' needs single-column targets "
            f"but targets have width {target_width}"
        )


def reconcile_targets(
    model_input_width: int,
    model_output_width: int,
    loss_kind: LossKind,
    feature_width: int,
    train_y: np.ndarray,
    test_y: np.ndarray,
) -> ReconciledTargets:
    """Match encoded targets to a model's declared shapes.

    Args:
        model_input_width: Number of input features the model expects
        model_output_width: Number of output units of the model
        loss_kind: Loss the model was compiled with
        feature_width: Number of encoded features in the dataset
        train_y: Training targets [n_train][width]
        test_y: Test targets [n_test][width]

    Returns:
        Targets with width ``model_output_width``

    Raises:
        ShapeError: Input mismatch, unsupported output mismatch, or a loss
            that does not accept the resulting target width
    """
    if model_input_width != feature_width:
        raise ShapeError(
            f"Model expects input shape [*, {model_input_width}] "
            f"but data has shape [*, {feature_width}]"
        )

    data_width = int(train_y.shape[1])
    action = None

    if model_output_width == data_width:
        pass
    elif model_output_width == 1 and data_width > 1:
        train_y = collapse_one_hot(train_y)
        test_y = collapse_one_hot(test_y)
        action = f"collapsed one-hot targets of width {data_width} to class indices (arg-max)"
    elif model_output_width > 1 and data_width == 1:
        train_y = expand_to_one_hot(train_y, model_output_width)
        test_y = expand_to_one_hot(test_y, model_output_width)
        action = f"expanded scalar targets to one-hot of width {model_output_width}"
    else:
        raise ShapeError(
            f"Model output shape [*, {model_output_width}] is incompatible "
            f"with target shape [*, {data_width}]"
        )

    if action:
        logger.warning("Reconciled targets: %s", action)

    check_loss_compatibility(loss_kind, int(train_y.shape[1]))
    return ReconciledTargets(train_y=train_y, test_y=test_y, action=action)
