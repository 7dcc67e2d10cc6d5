"""
Shared compute infrastructure for glmkit.

This module provides timing utilities and linear algebra kernels shared
by the model backends.

IMPORTANT: This is NOT where model backends live. Those go in
{domain}/backends/. This module contains shared NUMERIC infrastructure.

Submodules:
    timing: Execution timing utilities
    linalg: Linear algebra kernels (QR)
"""

from glmkit.core.compute.timing import Timer

__all__ = [
    "Timer",
]
