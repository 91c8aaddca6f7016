# compositional_tools/analysis/transform.py
"""
Centered log-ratio (CLR) transform with pseudocount zero replacement.
"""

import logging

import numpy as np
import pandas as pd

from compositional_tools.config import DEFAULT_PSEUDOCOUNT
from compositional_tools.core.tables import CompositionKind, FeatureTable
from compositional_tools.errors import InvalidInputError

logger = logging.getLogger(__name__)


def _as_vector(x) -> np.ndarray:
    try:
        arr = np.asarray(x, dtype=float)
    except (TypeError, ValueError) as e:
        raise InvalidInputError(f"Composition vector is not numeric: {e}") from e
    if arr.ndim != 1:
        raise InvalidInputError(f"Composition vector must be 1-D, got shape {arr.shape}")
    if arr.size == 0:
        raise InvalidInputError("Composition vector is empty")
    if not np.all(np.isfinite(arr)):
        raise InvalidInputError("Composition vector contains NaN or infinite values")
    return arr


def clr(x, pseudocount: float = DEFAULT_PSEUDOCOUNT) -> np.ndarray:
    """
    CLR of a count vector after adding a pseudocount.

    Parameters
    ----------
    x
        non-negative counts, one value per feature
    pseudocount
        strictly positive value added to every entry before taking logs

    Returns
    -------
    clr_x : log(x + eps) - mean(log(x + eps)), sums to ~0
    """
    if pseudocount is None or pseudocount <= 0:
        raise InvalidInputError(f"Pseudocount must be > 0, got {pseudocount}")
    arr = _as_vector(x)
    if (arr < 0).any():
        raise InvalidInputError(f"Negative counts at positions {np.flatnonzero(arr < 0).tolist()}")
    log_x = np.log(arr + pseudocount)
    return log_x - log_x.mean()


def clr_positive(x: np.ndarray) -> np.ndarray:
    """
    CLR of strictly positive compositions, no zero replacement.

    Works along the last axis so a (draws x features) block is transformed in
    one call.
    """
    arr = np.asarray(x, dtype=float)
    if arr.size == 0 or arr.shape[-1] == 0:
        raise InvalidInputError("Composition vector is empty")
    if not np.all(arr > 0):
        raise InvalidInputError("CLR without pseudocount needs strictly positive values")
    log_x = np.log(arr)
    return log_x - log_x.mean(axis=-1, keepdims=True)


def closure(x) -> np.ndarray:
    """Rescale a non-negative vector to proportions summing to 1."""
    arr = _as_vector(x)
    if (arr < 0).any():
        raise InvalidInputError("Cannot close a vector with negative entries")
    total = arr.sum()
    if total <= 0:
        raise InvalidInputError("Cannot close a vector with zero total")
    return arr / total


def clr_table(table: FeatureTable, pseudocount: float = DEFAULT_PSEUDOCOUNT) -> FeatureTable:
    """
    CLR-transform every sample column of a RAW or RELATIVE table.

    A RELATIVE table keeps its proportions as-is, so the pseudocount should be
    on the same scale as the smallest non-zero proportion.
    """
    table.require_kind(CompositionKind.RAW, CompositionKind.RELATIVE, operation="CLR transform")
    if pseudocount is None or pseudocount <= 0:
        raise InvalidInputError(f"Pseudocount must be > 0, got {pseudocount}")
    log_data = np.log(table.data + pseudocount)
    clr_data = log_data - log_data.mean(axis=0)
    logger.debug(f"CLR-transformed {table.shape[1]} samples with pseudocount {pseudocount}")
    return FeatureTable(pd.DataFrame(clr_data, index=table.data.index, columns=table.data.columns),
                        CompositionKind.CLR)
