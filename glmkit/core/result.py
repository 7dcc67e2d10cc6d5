"""
Generic result container for glmkit computations.

The Result class provides a standardized envelope that backend results use.
This keeps timing, diagnostics and warnings in one place while letting each
model define its own parameter structure.

Design decisions:
    - Generic over parameter payload P for type safety
    - info dict for flexible metadata (method, rank, iteration history)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True) for reproducibility
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Type Parameters:
        P: The parameter payload type

    Attributes:
        params: Model parameters (coefficients, fitted values, deviance, ...)
        info: Structured metadata (method, convergence, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the backend that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=GLMParams(...),
        ...     info={'method': 'irls_qr', 'rank': 3, 'history': [...]},
        ...     timing={'total_seconds': 0.002, 'irls': 0.0015},
        ...     backend_name='cpu_irls'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)
