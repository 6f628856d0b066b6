"""Regression building blocks consumed by the variance estimators."""

from __future__ import annotations

import numbers
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import numpy as np

from robustvcov.core import linalg as la
from robustvcov.errors import DimensionError

if TYPE_CHECKING:
    from numpy.typing import NDArray

__all__ = ["VcovData", "make_vcov_data"]


@dataclass(frozen=True)
class VcovData:
    """Container for the inputs of a sandwich variance estimate.

    Attributes
    ----------
    invcrossmatrix : np.ndarray
        Bread matrix, by default ``(X'X)^{-1}``. Square with dimension
        ``regressors.shape[1] * residuals.shape[1]``.
    regressors : np.ndarray
        ``(n x K)`` regressor matrix.
    residuals : np.ndarray
        ``(n,)`` residual vector, or ``(n x L)`` residual matrix for the
        multi-response case used by the rank test.
    df_residual : int
        Residual degrees of freedom.

    Notes
    -----
    ``vcov`` consumes the bread: under simple standard errors the returned
    covariance is ``invcrossmatrix`` scaled in place. Do not reuse
    ``invcrossmatrix`` after calling ``vcov``.

    """

    invcrossmatrix: NDArray[np.float64]
    regressors: NDArray[np.float64]
    residuals: NDArray[np.float64]
    df_residual: int

    @property
    def nobs(self) -> int:
        """Number of observations (rows of the regressor matrix)."""
        return int(self.regressors.shape[0])

    @property
    def residual_rank(self) -> int:
        """1 for vector residuals, 2 for matrix residuals."""
        return int(self.residuals.ndim)

    @classmethod
    def from_fit(
        cls,
        regressors: Any,
        residuals: Any,
        df_residual: int | None = None,
    ) -> VcovData:
        """Build a container from fitted regressors and residuals.

        The bread ``(X'X)^{-1}`` is obtained from the Cholesky factor of
        ``X'X``; collinear regressors raise ``SingularMatrixError``. When
        ``df_residual`` is omitted it defaults to ``n - K``.
        """
        X = la.to_dense(regressors)
        if X.ndim != 2:
            raise DimensionError(f"regressors must be a 2-D matrix; got ndim={X.ndim}.")
        L = la.safe_cholesky(la.tdot(X))
        Linv = la.chol_inverse(L)
        bread = Linv.T @ Linv
        if df_residual is None:
            df_residual = X.shape[0] - X.shape[1]
        return make_vcov_data(bread, X, residuals, df_residual)


def make_vcov_data(
    invcrossmatrix: Any,
    regressors: Any,
    residuals: Any,
    df_residual: int,
) -> VcovData:
    """Validate shapes and return a :class:`VcovData`.

    Raises
    ------
    DimensionError
        If regressors and residuals disagree on the number of rows, if
        ``invcrossmatrix`` is not square, or if its dimension differs from
        ``regressors.shape[1] * residuals.shape[1]``.
    ValueError
        If ``df_residual`` is not a positive integer.

    """
    H = la.to_dense(invcrossmatrix)
    X = la.to_dense(regressors)
    u = la.to_dense(residuals)
    if X.ndim != 2:
        raise DimensionError(f"regressors must be a 2-D matrix; got ndim={X.ndim}.")
    if u.ndim not in (1, 2):
        raise DimensionError(f"residuals must be a vector or a matrix; got ndim={u.ndim}.")
    if X.shape[0] != u.shape[0]:
        raise DimensionError(
            "regressors and residuals should have the same number of rows; "
            f"got {X.shape[0]} and {u.shape[0]}.",
        )
    if H.ndim != 2 or H.shape[0] != H.shape[1]:
        raise DimensionError(f"invcrossmatrix must be a square matrix; got shape {H.shape}.")
    n_resid_cols = 1 if u.ndim == 1 else u.shape[1]
    dim = X.shape[1] * n_resid_cols
    if H.shape[0] != dim:
        raise DimensionError(
            "invcrossmatrix should be a square matrix of dimension "
            f"size(regressors, 2) x size(residuals, 2) = {dim}; got {H.shape[0]}.",
        )
    if isinstance(df_residual, bool) or not isinstance(df_residual, numbers.Integral):
        raise ValueError(f"df_residual must be an integer; got {df_residual!r}.")
    if int(df_residual) <= 0:
        raise ValueError(f"df_residual must be positive; got {df_residual}.")
    return VcovData(H, X, u, int(df_residual))
