"""Integer group codes for cluster-robust variance estimation.

Cluster variables must arrive as pandas categorical columns. This module turns
them into consecutive ``0..G-1`` codes over the rows actually present, and
combines several code columns into intersection groups for multiway
clustering.
"""

# robustvcov/core/grouping.py
from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING, Any, Union, cast

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

CodesLike = Union[NDArray[Any], Sequence[NDArray[Any]]]

__all__ = [
    "codes_from_column",
    "group_codes",
]


def _to_codes(z: Any) -> tuple[NDArray[np.int64], int]:
    """Map arbitrary labels to consecutive 0..G-1 integer codes."""
    arr = np.asarray(z).reshape(-1)
    uniq, inv = np.unique(arr, return_inverse=True)
    return cast(NDArray[np.int64], inv.reshape(-1).astype(np.int64, copy=False)), int(uniq.shape[0])


def codes_from_column(column: pd.Series, name: str | None = None) -> tuple[NDArray[np.int64], int]:
    """Return integer codes and cardinality for a categorical column.

    Parameters
    ----------
    column : pandas.Series
        Column with a ``CategoricalDtype``.
    name : str, optional
        Label used in error messages; defaults to ``column.name``.

    Returns
    -------
    codes : (n,) int64 array
        Consecutive codes ``0..G-1``; categories without rows are skipped.
    size : int
        Number of distinct groups present, ``G``.

    Raises
    ------
    TypeError
        If the column is not categorical.
    ValueError
        If the column contains missing values.

    """
    label = name if name is not None else column.name
    if not isinstance(column.dtype, pd.CategoricalDtype):
        msg = (
            f"Cluster variable '{label}' is of type {column.dtype}, "
            "but should be a categorical column."
        )
        raise TypeError(msg)
    raw = np.asarray(column.cat.codes, dtype=np.int64)
    if np.any(raw < 0):
        where = list(np.flatnonzero(raw < 0))
        msg = f"Cluster variable '{label}' has NA at positions {where[:5]}..."
        raise ValueError(msg)
    # categories may be unused once the table has been subset
    return _to_codes(raw)


def group_codes(codes: CodesLike) -> tuple[NDArray[np.int64], int]:
    """Combine several code columns into intersection groups.

    ``codes`` is either an ``(n x m)`` integer array or a sequence of ``m``
    one-dimensional code arrays of equal length. Each distinct row tuple
    becomes one group; the result holds consecutive codes and the number of
    distinct groups.
    """
    if isinstance(codes, np.ndarray):
        C = codes
    else:
        C = np.column_stack([np.asarray(c).reshape(-1) for c in codes])
    if C.ndim == 1:
        C = C.reshape(-1, 1)
    if C.ndim != 2:
        msg = "codes must be 2-dimensional (n x m)"
        raise ValueError(msg)
    uniq, inv = np.unique(C, axis=0, return_inverse=True)
    return inv.reshape(-1).astype(np.int64, copy=False), int(uniq.shape[0])
