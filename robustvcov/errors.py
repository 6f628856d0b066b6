"""Exception types raised by robustvcov.

Shape problems surface as :class:`DimensionError` (a ``ValueError``) and
factorization failures as :class:`SingularMatrixError` (a
``numpy.linalg.LinAlgError``), so callers catching the NumPy/stdlib base
classes keep working.
"""

from __future__ import annotations

import numpy as np

__all__ = ["DimensionError", "SingularMatrixError"]


class DimensionError(ValueError):
    """Matrix shapes violate a container or estimator invariant."""


class SingularMatrixError(np.linalg.LinAlgError):
    """A cross-product matrix is not positive definite."""
