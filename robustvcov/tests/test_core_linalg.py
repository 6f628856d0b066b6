import pytest
import numpy as np
from robustvcov.core import linalg as la
from robustvcov.errors import SingularMatrixError

# ---------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------

@pytest.fixture
def rng():
    return np.random.default_rng(42)

@pytest.fixture
def data_dense(rng):
    X = rng.standard_normal((100, 4))
    y = X @ np.ones(4) + rng.standard_normal(100)
    return X, y

# ---------------------------------------------------------------------
# Unit Tests: Finite Checks
# ---------------------------------------------------------------------

def test_tdot_rejects_non_finite():
    X = np.array([[1.0, np.nan], [2.0, 3.0]])
    with pytest.raises(ValueError, match="Input contains NA/NaN/Inf"):
        la.tdot(X)

# ---------------------------------------------------------------------
# Unit Tests: Products
# ---------------------------------------------------------------------

def test_crossprod(data_dense):
    X, y = data_dense
    assert np.allclose(la.crossprod(X, X), X.T @ X)
    # vectors are treated as columns
    Xty = la.crossprod(X, y)
    assert Xty.shape == (4, 1)
    assert np.allclose(Xty.ravel(), X.T @ y)

def test_tdot_matches_crossprod(data_dense):
    X, _ = data_dense
    assert np.allclose(la.tdot(X), la.crossprod(X, X))

def test_hadamard_scales_rows():
    X = np.array([[1.0, 2.0], [3.0, 4.0]])
    u = np.array([2.0, -1.0])
    assert np.allclose(la.hadamard(X, u.reshape(-1, 1)), [[2.0, 4.0], [-3.0, -4.0]])

def test_row_kron_ordering():
    # entry l*K + k equals X[i, k] * R[i, l]
    X = np.array([[1.0, 2.0, 3.0], [4.0, 5.0, 6.0]])
    R = np.array([[10.0, 100.0], [-1.0, 0.5]])
    out = la.row_kron(X, R)
    assert out.shape == (2, 6)
    for i in range(2):
        assert np.allclose(out[i], np.kron(R[i], X[i]))
    assert out[0, 1 * 3 + 2] == X[0, 2] * R[0, 1]

def test_vec_is_column_major():
    A = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
    assert np.array_equal(la.vec(A), [1.0, 3.0, 5.0, 2.0, 4.0, 6.0])

def test_sandwich_symmetric(rng):
    for _ in range(5):
        H = rng.standard_normal((3, 3))
        H = H + H.T
        A = rng.standard_normal((3, 3))
        S = A @ A.T
        out = la.sandwich(H, S)
        assert np.allclose(out, out.T)
        assert np.allclose(out, H @ S @ H)

# ---------------------------------------------------------------------
# Unit Tests: Decompositions
# ---------------------------------------------------------------------

def test_safe_cholesky_lower(data_dense):
    X, _ = data_dense
    A = X.T @ X
    L = la.safe_cholesky(A, lower=True)
    assert np.allclose(np.triu(L, 1), 0.0)
    assert np.allclose(L @ L.T, A)

def test_safe_cholesky_singular():
    A = np.array([[1.0, 1.0], [1.0, 1.0]])
    with pytest.raises(SingularMatrixError, match="Cholesky factorization failed"):
        la.safe_cholesky(A)
    # still a LinAlgError for callers using the NumPy base class
    with pytest.raises(np.linalg.LinAlgError):
        la.safe_cholesky(-np.eye(2))

def test_safe_cholesky_rejects_non_finite():
    A = np.array([[2.0, np.inf], [np.inf, 2.0]])
    # bad input is a data error, not a singular matrix
    with pytest.raises(ValueError, match="Input contains NA/NaN/Inf"):
        la.safe_cholesky(A)
    with pytest.raises(ValueError, match="Input contains NA/NaN/Inf"):
        la.safe_cholesky(np.full((2, 2), np.nan))

def test_inv(rng):
    B = rng.standard_normal((3, 3)) + 3.0 * np.eye(3)
    assert np.allclose(la.inv(B) @ B, np.eye(3))
    with pytest.raises(SingularMatrixError, match="Matrix inversion failed"):
        la.inv(np.array([[1.0, 2.0], [2.0, 4.0]]))
    with pytest.raises(SingularMatrixError):
        la.inv(np.zeros((1, 1)))

def test_chol_inverse_and_solve(data_dense):
    X, y = data_dense
    A = X.T @ X
    L = la.safe_cholesky(A)
    Linv = la.chol_inverse(L)
    assert np.allclose(Linv @ L, np.eye(4))
    assert np.allclose(Linv.T @ Linv, np.linalg.inv(A))
    b = X.T @ y
    assert np.allclose(la.chol_solve(L, b).ravel(), np.linalg.solve(A, b))

def test_symmetric_matrix_sqrt(rng):
    B = rng.standard_normal((3, 3))
    A = B @ B.T
    R = la.symmetric_matrix_sqrt(A)
    assert np.allclose(R, R.T)
    assert np.allclose(R @ R, A)
    # orthonormal Gram matrices have the identity as root
    Q, _ = np.linalg.qr(B)
    assert np.allclose(la.symmetric_matrix_sqrt(Q @ Q.T), np.eye(3))

def test_svd_full(rng):
    A = rng.standard_normal((4, 2))
    U, s, Vt = la.svd(A, full_matrices=True)
    assert U.shape == (4, 4)
    assert Vt.shape == (2, 2)
    assert np.allclose(U[:, :2] * s @ Vt, A)

# ---------------------------------------------------------------------
# Unit Tests: Group sums
# ---------------------------------------------------------------------

def test_group_sum():
    X = np.array([[1.0, 1.0], [2.0, 0.0], [3.0, -1.0], [4.0, 5.0]])
    codes = np.array([1, 0, 1, 2])
    out = la.group_sum(X, codes, 3)
    assert np.allclose(out, [[2.0, 0.0], [4.0, 0.0], [4.0, 5.0]])

def test_group_sum_length_mismatch():
    with pytest.raises(ValueError, match="codes length"):
        la.group_sum(np.ones((3, 2)), np.array([0, 1]), 2)
