"""
QR decomposition kernels.

Provides the QR factorization used for every least-squares solve in
glmkit (OLS and each IRLS step) and for the unscaled covariance
(X'WX)⁻¹ = R⁻¹R⁻ᵀ. No normal-equation matrix is ever inverted directly.
"""

from dataclasses import dataclass
from typing import Any
import numpy as np
from numpy.typing import NDArray
from scipy.linalg import solve_triangular

from glmkit.core.exceptions import SingularMatrixError


@dataclass(frozen=True)
class QRResult:
    """
    Result of QR decomposition.

    Attributes:
        Q: Orthogonal matrix (n x p, reduced mode)
        R: Upper triangular matrix (p x p)
        rank: Numerical rank determined from R diagonal
    """
    Q: NDArray[np.floating[Any]]
    R: NDArray[np.floating[Any]]
    rank: int


def qr_cpu(X: NDArray[np.floating[Any]]) -> QRResult:
    """
    Reduced QR decomposition using LAPACK (via NumPy).

    Computes X = QR where Q is orthogonal and R is upper triangular.
    The numerical rank counts diagonal entries of R above
    max(n, p) * eps * max|diag(R)|.
    """
    Q, R = np.linalg.qr(X, mode='reduced')

    diag_R = np.abs(np.diag(R))
    if len(diag_R) > 0 and diag_R.max() > 0:
        tol = max(X.shape) * np.finfo(X.dtype).eps * diag_R.max()
        rank = int(np.sum(diag_R > tol))
    else:
        rank = 0

    return QRResult(Q=Q, R=R, rank=rank)


def qr_solve(
    X: NDArray[np.floating[Any]],
    y: NDArray[np.floating[Any]],
    matrix_name: str = 'X',
) -> tuple[NDArray[np.floating[Any]], QRResult]:
    """
    Solve least squares via QR decomposition.

    Solves: min_β ||y - Xβ||² as
        X = QR
        β = R⁻¹ Q'y

    For a weighted problem pass √W·X and √W·z; the solution then
    satisfies X'WXβ = X'Wz.

    Args:
        X: Design matrix (n x p), must have n >= p
        y: Response vector (n,)
        matrix_name: Name used in the error if X is rank-deficient

    Returns:
        (β, QRResult)

    Raises:
        SingularMatrixError: If X is numerically rank-deficient
    """
    p = X.shape[1]
    qr_result = qr_cpu(X)

    if qr_result.rank < p:
        raise SingularMatrixError(
            f"{matrix_name} is rank-deficient: rank={qr_result.rank}, expected={p}.",
            matrix_name=matrix_name,
            rank=qr_result.rank,
            expected_rank=p,
        )

    Qty = qr_result.Q.T @ y
    beta = solve_triangular(qr_result.R, Qty, lower=False)

    return beta, qr_result


def unscaled_covariance(R: NDArray[np.floating[Any]]) -> NDArray[np.floating[Any]]:
    """
    (R'R)⁻¹ from an upper triangular R, via triangular solves.

    With R from the QR of √W·X this is (X'WX)⁻¹.
    """
    p = R.shape[0]
    R_inv = solve_triangular(R, np.eye(p), lower=False)
    cov = R_inv @ R_inv.T
    return (cov + cov.T) / 2.0
