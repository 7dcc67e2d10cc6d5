"""
IRLS fit control.

Defaults match R's glm.control(): epsilon = 1e-8, maxit = 25.
"""

from dataclasses import dataclass

from glmkit.core.exceptions import ValidationError

DEFAULT_TOL = 1e-8
DEFAULT_MAX_ITER = 25
DEFAULT_MAX_STEP_HALVINGS = 20


@dataclass(frozen=True)
class GLMControl:
    """
    Convergence settings for one IRLS fit.

    Attributes:
        tol: Relative deviance (or coefficient) change that counts as converged
        max_iter: Iteration cap; reaching it raises NonConvergenceError
        max_step_halvings: How many times a step that leaves the valid
                           mean range is halved before it is accepted clamped
    """
    tol: float = DEFAULT_TOL
    max_iter: int = DEFAULT_MAX_ITER
    max_step_halvings: int = DEFAULT_MAX_STEP_HALVINGS

    def __post_init__(self):
        if not (self.tol > 0):
            raise ValidationError(f"tol must be > 0, got {self.tol}")
        if int(self.max_iter) != self.max_iter or self.max_iter < 1:
            raise ValidationError(f"max_iter must be an integer >= 1, got {self.max_iter}")
        if int(self.max_step_halvings) != self.max_step_halvings or self.max_step_halvings < 0:
            raise ValidationError(
                f"max_step_halvings must be an integer >= 0, got {self.max_step_halvings}"
            )
