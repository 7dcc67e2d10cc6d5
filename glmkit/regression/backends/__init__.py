"""
Regression backends.

Each backend takes a Design and a FamilyLink and returns a Result.
"""

from glmkit.regression.backends.cpu_glm import CPUIRLSBackend

__all__ = [
    "CPUIRLSBackend",
]
