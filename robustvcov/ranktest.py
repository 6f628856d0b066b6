"""Kleibergen-Paap rank test for weak identification.

Wald version of the Kleibergen-Paap (2006) rk statistic, matching Stata's
``ranktest (X) (Z), wald full``: the first-stage coefficients are
standardized by Cholesky factors of ``Z'Z`` and ``X'X``, rotated onto the
smallest singular direction, and tested against zero with a robust variance
from the chosen method data.

References
----------
Kleibergen, F., & Paap, R. (2006). Generalized Reduced Rank Tests Using the
Singular Value Decomposition. Journal of Econometrics 133(1).
"""

from __future__ import annotations

import logging
import numbers
import warnings
from typing import TYPE_CHECKING, Any, NamedTuple

import numpy as np
from scipy.stats import chi2

from robustvcov.core import linalg as la
from robustvcov.errors import DimensionError
from robustvcov.vcov.data import make_vcov_data
from robustvcov.vcov.methods import ClusterData, SimpleData, VcovMethodData, shat

if TYPE_CHECKING:
    from numpy.typing import NDArray

LOGGER = logging.getLogger(__name__)

__all__ = ["RankTestResult", "count_instruments", "rank_test"]

# relative tolerance used to spot unit diagonal entries of Pi
_DIAG_RTOL = float(np.sqrt(np.finfo(float).eps))


class RankTestResult(NamedTuple):
    """Rank test outcome; unpacks as ``(statistic, pvalue)``."""

    statistic: float
    pvalue: float


def count_instruments(Pi: Any) -> int:
    """Rows of ``Pi`` minus the diagonal entries approximately equal to one.

    A unit diagonal entry marks a regressor that instruments itself, which
    does not count towards the excluded instruments.
    """
    P = la.to_dense(Pi)
    if P.ndim == 1:
        P = P.reshape(-1, 1)
    diag = np.diagonal(P)
    n_unit = int(np.sum(np.isclose(diag, 1.0, rtol=_DIAG_RTOL, atol=0.0)))
    return int(P.shape[0]) - n_unit


def _rotations(
    theta: NDArray[np.float64], K: int, L: int,
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Rotation matrices ``a_qq`` (L x L-K+1) and ``b_qq`` (1 x K) from the SVD of theta."""
    u, _s, vt = la.svd(theta, full_matrices=True)
    if K > 1:
        u_12 = u[: K - 1, K - 1 : L]
        u_22 = u[K - 1 : L, K - 1 : L]
        v_12 = vt[: K - 1, K - 1 : K]
        v_22 = vt[K - 1 : K, K - 1 : K]
        a_qq = np.vstack([u_12, u_22]) @ la.inv(u_22) @ la.symmetric_matrix_sqrt(u_22 @ u_22.T)
        b_qq = la.symmetric_matrix_sqrt(v_22 @ v_22.T) @ la.inv(v_22.T) @ np.vstack([v_12, v_22]).T
    else:
        a_qq = u @ la.inv(u) @ la.symmetric_matrix_sqrt(u @ u.T)
        b_qq = la.symmetric_matrix_sqrt(vt @ vt.T) @ la.inv(vt.T) @ vt.T
    return a_qq, b_qq


def rank_test(
    X: Any,
    Z: Any,
    Pi: Any,
    vcov_method_data: VcovMethodData,
    df_absorb: int = 0,
) -> RankTestResult:
    """Kleibergen-Paap Wald rk statistic and its chi-squared p-value.

    Parameters
    ----------
    X : (n x K) matrix
        Regressors (endogenous and included exogenous).
    Z : (n x L) matrix
        Instruments, ``L >= K``.
    Pi : (L x K) matrix
        First-stage coefficients of X on Z.
    vcov_method_data : SimpleData | WhiteData | ClusterData
        Prepared variance method. Method data is only read, so one instance
        can serve repeated calls.
    df_absorb : int, default 0
        Degrees of freedom absorbed by fixed effects.

    Returns
    -------
    RankTestResult
        ``statistic`` is the rk Wald statistic rescaled to an F form and
        ``pvalue`` is the upper tail of a chi-squared with ``L - K + 1``
        degrees of freedom at the unscaled statistic.

    Raises
    ------
    DimensionError
        Inconsistent shapes or more regressors than instruments.
    SingularMatrixError
        ``Z'Z``, ``X'X`` or the rotated variance is not positive definite, or
        the trailing singular block of the standardized coefficients is singular.

    """
    Xd = la.to_dense(X)
    Zd = la.to_dense(Z)
    P = la.to_dense(Pi)
    if Xd.ndim == 1:
        Xd = Xd.reshape(-1, 1)
    if Zd.ndim == 1:
        Zd = Zd.reshape(-1, 1)
    if P.ndim == 1:
        P = P.reshape(-1, 1)
    if Xd.shape[0] != Zd.shape[0]:
        raise DimensionError(
            f"X and Z should have the same number of rows; got {Xd.shape[0]} and {Zd.shape[0]}.",
        )
    n = int(Zd.shape[0])
    K = int(Xd.shape[1])
    L = int(Zd.shape[1])
    if K > L:
        raise DimensionError(f"Rank test needs at least as many instruments as regressors; got K={K}, L={L}.")
    if P.shape != (L, K):
        raise DimensionError(f"Pi should have shape ({L}, {K}); got {P.shape}.")
    if isinstance(df_absorb, bool) or not isinstance(df_absorb, numbers.Integral) or df_absorb < 0:
        raise ValueError(f"df_absorb must be a non-negative integer; got {df_absorb!r}.")

    n_instruments = count_instruments(P)
    crossz = la.tdot(Zd)
    crossx = la.tdot(Xd)

    Fmatrix = la.safe_cholesky(crossz, lower=True)
    Gmatrix = la.chol_inverse(la.safe_cholesky(crossx, lower=True))
    theta = Fmatrix.T @ P @ Gmatrix.T
    a_qq, b_qq = _rotations(theta, K, L)

    if isinstance(vcov_method_data, SimpleData):
        vhat = la.eye(L * K) / n
    else:
        Fmatrix_inv = la.chol_inverse(Fmatrix)
        k = np.kron(Gmatrix.T, Fmatrix_inv.T).T
        # df only scales vcov, never shat; keep it valid for tiny samples
        model = make_vcov_data(k, Zd, Xd, max(n - L - df_absorb, 1))
        matrix_vcov2 = shat(vcov_method_data, model)
        vhat = k @ matrix_vcov2 @ k.T

    kronv = np.kron(b_qq, a_qq.T)
    lam = kronv @ la.vec(theta)
    vlab = kronv @ vhat @ kronv.T
    L_vlab = la.safe_cholesky(vlab, lower=True)
    r_kp = float(lam @ la.chol_solve(L_vlab, lam).reshape(-1))
    df = L - K + 1
    p_kp = float(chi2.sf(r_kp, df))

    if n_instruments == 0:
        warnings.warn(
            "Pi has no excluded instruments (every row is a unit diagonal entry); "
            "the F form of the rank statistic is not finite.",
            RuntimeWarning,
            stacklevel=2,
        )
    with np.errstate(divide="ignore", invalid="ignore"):
        if isinstance(vcov_method_data, ClusterData):
            nclust = min(vcov_method_data.size.values())
            F_kp = np.float64(r_kp) / n_instruments * (n - L) / (n - 1) * (nclust - 1) / nclust
        else:
            F_kp = np.float64(r_kp) / n_instruments * (n - L - df_absorb) / n
    LOGGER.debug("Rank test: K=%d L=%d r_kp=%.6g df=%d F_kp=%.6g p=%.6g", K, L, r_kp, df, F_kp, p_kp)
    return RankTestResult(float(F_kp), p_kp)
