"""
Linear algebra kernels for glmkit.

All functions use NumPy/SciPy (LAPACK under the hood), return structured
results, and raise immediately with clear messages.

Submodules:
    qr: QR decomposition, least-squares solve, unscaled covariance
"""

from glmkit.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    qr_solve,
    unscaled_covariance,
)

__all__ = [
    "QRResult",
    "qr_cpu",
    "qr_solve",
    "unscaled_covariance",
]
