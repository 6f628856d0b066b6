"""Dense linear algebra routines for sandwich variance estimation.

This module provides the strict float64 building blocks shared by the variance
estimators and the rank test: cross-products, Cholesky factors and their
inverses, symmetric square roots, group sums and per-observation Kronecker
rows. Factorization failures are raised, never patched with implicit ridges.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import numpy as np
import scipy.linalg as sla

from robustvcov.errors import SingularMatrixError

if TYPE_CHECKING:
    from numpy.typing import NDArray
else:
    NDArray = np.ndarray  # type: ignore[misc,assignment]

# Matrix type alias
Matrix = Any

__all__ = [
    "chol_inverse",
    "chol_solve",
    "crossprod",
    "eye",
    "group_sum",
    "hadamard",
    "inv",
    "row_kron",
    "safe_cholesky",
    "sandwich",
    "svd",
    "symmetric_matrix_sqrt",
    "tdot",
    "to_dense",
    "vec",
]


def _assert_all_finite(*arrays: Matrix) -> None:
    """Raise ValueError if any input contains NaN or Inf."""
    for a in arrays:
        if a is None:
            continue
        ad = np.asarray(a)
        if not np.all(np.isfinite(ad)):
            raise ValueError(
                "Input contains NA/NaN/Inf; please drop/clean rows before estimation.",
            )


def to_dense(A: Matrix) -> NDArray[np.float64]:
    """Convert a matrix-like object to a dense float64 numpy array."""
    return np.asarray(A, dtype=np.float64)


def eye(n: int) -> NDArray[np.float64]:
    return np.eye(int(n), dtype=np.float64)


def crossprod(X: Matrix, Y: Matrix) -> NDArray[np.float64]:
    """Compute X'Y; one-dimensional inputs are treated as columns."""
    Xd = to_dense(X)
    Yd = to_dense(Y)
    if Xd.ndim == 1:
        Xd = Xd.reshape(-1, 1)
    if Yd.ndim == 1:
        Yd = Yd.reshape(-1, 1)
    return Xd.T @ Yd


def tdot(X: Matrix) -> NDArray[np.float64]:
    """X' X (dense result)."""
    # Fail fast on NA/Inf so a bad score matrix never reaches a factorization
    _assert_all_finite(X)
    Xd = to_dense(X)
    if Xd.ndim == 1:
        Xd = Xd.reshape(-1, 1)
    return Xd.T @ Xd


def hadamard(A: Matrix, B: Matrix) -> NDArray[np.float64]:
    """Elementwise product with NumPy broadcasting.

    ``hadamard(X, u.reshape(-1, 1))`` scales row ``i`` of ``X`` by ``u[i]``.
    """
    return to_dense(A) * to_dense(B)


def safe_cholesky(A: Matrix, *, lower: bool = True) -> NDArray[np.float64]:
    """Strict Cholesky factorization without implicit ridges.

    Raises SingularMatrixError if ``A`` is not positive definite.
    """
    Ad = to_dense(A)
    if Ad.ndim != 2 or Ad.shape[0] != Ad.shape[1]:
        msg = f"Cholesky factorization requires a square matrix; got shape {Ad.shape}."
        raise ValueError(msg)
    _assert_all_finite(Ad)
    Ad = (Ad + Ad.T) * 0.5  # symmetrize
    try:
        return sla.cholesky(Ad, lower=lower, check_finite=False)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise SingularMatrixError(f"Cholesky factorization failed: {exc}") from exc


def chol_inverse(L: Matrix, *, lower: bool = True) -> NDArray[np.float64]:
    """Inverse of a triangular Cholesky factor (single triangular solve)."""
    Ld = to_dense(L)
    return sla.solve_triangular(Ld, eye(Ld.shape[0]), lower=lower, check_finite=False)


def chol_solve(
    L: NDArray[np.float64], B: Matrix, *, lower: bool = True,
) -> NDArray[np.float64]:
    """Solve A X = B given Cholesky factor L of A (A = L L')."""
    Bd = to_dense(B)
    if Bd.ndim == 1:
        Bd = Bd.reshape(-1, 1)
    return sla.cho_solve((L, lower), Bd, check_finite=False)


def inv(A: Matrix) -> NDArray[np.float64]:
    """Inverse of a square matrix; raises SingularMatrixError if it is singular."""
    Ad = to_dense(A)
    _assert_all_finite(Ad)
    try:
        return sla.inv(Ad, check_finite=False)
    except (np.linalg.LinAlgError, ValueError) as exc:
        raise SingularMatrixError(f"Matrix inversion failed: {exc}") from exc


def symmetric_matrix_sqrt(A: Matrix) -> NDArray[np.float64]:
    """Compute symmetric square root of a symmetric positive semidefinite matrix using eigendecomposition.
    Returns A^{1/2} such that A^{1/2} @ A^{1/2} = A.
    For PSD matrices, eigenvalues are clipped to non-negative.
    """
    Ad = to_dense(A)
    Ad = (Ad + Ad.T) / 2.0  # symmetrize
    evals, evecs = np.linalg.eigh(Ad)
    evals = np.maximum(evals, 0.0)  # clip negative eigenvalues to 0
    return (evecs * np.sqrt(evals)) @ evecs.T


def svd(
    A: Matrix, full_matrices: bool = True,
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """Singular value decomposition ``A = U @ diag(s) @ Vt``."""
    return sla.svd(to_dense(A), full_matrices=full_matrices)


def group_sum(X: Matrix, codes: Matrix, n_groups: int) -> NDArray[np.float64]:
    """Sum rows of X within groups labelled by consecutive integer codes.

    Parameters
    ----------
    X : (n x p) matrix
    codes : (n,) integer codes in ``0..n_groups-1``
    n_groups : number of groups

    Returns
    -------
    (n_groups x p) dense float64 array whose row ``g`` is the sum of the rows
    of X with code ``g``.

    """
    Xd = to_dense(X)
    if Xd.ndim == 1:
        Xd = Xd.reshape(-1, 1)
    codes_arr = np.asarray(codes, dtype=np.int64).reshape(-1)
    if codes_arr.shape[0] != Xd.shape[0]:
        msg = "codes length must match number of rows in X"
        raise ValueError(msg)
    out = np.zeros((int(n_groups), Xd.shape[1]), dtype=np.float64)
    np.add.at(out, codes_arr, Xd)
    return out


def row_kron(X: Matrix, R: Matrix) -> NDArray[np.float64]:
    """Per-observation Kronecker rows of X and R.

    Row ``i`` of the result equals ``kron(R[i, :], X[i, :])``: entry
    ``l * K + k`` is ``X[i, k] * R[i, l]`` with ``K = X.shape[1]``, so the
    regressor index varies fastest within each residual block.
    """
    Xd = to_dense(X)
    Rd = to_dense(R)
    if Rd.ndim == 1:
        Rd = Rd.reshape(-1, 1)
    n = Xd.shape[0]
    return (Rd[:, :, None] * Xd[:, None, :]).reshape(n, -1)


def vec(A: Matrix) -> NDArray[np.float64]:
    """Stack the columns of A into a single vector (column-major)."""
    return to_dense(A).reshape(-1, order="F")


def sandwich(H: Matrix, S: Matrix) -> NDArray[np.float64]:
    """Sandwich ``H S H`` with bread H and meat S."""
    Hd = to_dense(H)
    return Hd @ to_dense(S) @ Hd
