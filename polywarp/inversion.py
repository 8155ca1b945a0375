"""
Newton's-method inversion of a forward warp.

Given an evaluator for ``F`` and a target point ``P``, find ``X`` such that
``F(X) = P``. This is robust as long as the Jacobian of ``F`` is never
singular. A full Newton step that increases the error is replaced with a
damped one (Numerical Recipes 9.7).
"""

import logging
import warnings
from typing import NamedTuple

import numpy as np
from numpy import dot as np_dot
from numpy import ndarray
from numpy import sqrt as np_sqrt

from polywarp.evaluator import ForwardEvaluator
from polywarp.math import solve3, backtrack_fraction
from polywarp.utils import as_point, as_matrix3

logger = logging.getLogger(__name__)

DEFAULT_TOLERANCE = 0.001
DEFAULT_MAX_ITERATIONS = 500


class InverseConvergenceWarning(RuntimeWarning):
    """
    The iteration budget ran out before the residual met the tolerance.

    The message is the same for every point, so the default filter reports
    it once per call site. The details are on the attributes.

    Attributes:
        point: the target point that was being inverted.
        error: distance between the returned estimate's image and the target.
        iterations: number of Newton steps taken.
    """

    def __init__(self, point: ndarray, error: float, iterations: int):
        self.point = point
        self.error = error
        self.iterations = iterations
        super().__init__("inverse transform: no convergence")


class InversionResult(NamedTuple):
    point: ndarray
    iterations: int
    error: float
    converged: bool


# a singular jacobian turns the iterate into inf/nan; only the engine's own
# arithmetic is quiet about it, evaluators run under the caller's error state
_QUIET = dict(invalid="ignore", over="ignore", divide="ignore")


def _residual(evaluator: ForwardEvaluator, candidate: ndarray, target: ndarray):
    image, jacobian = evaluator.forward_derivative(candidate)
    image = as_point(image)
    with np.errstate(**_QUIET):
        delta_p = image - target
        return delta_p, as_matrix3(jacobian), np_dot(delta_p, delta_p)


def solve_inverse(target, evaluator: ForwardEvaluator, tolerance: float = DEFAULT_TOLERANCE, max_iterations: int = DEFAULT_MAX_ITERATIONS, *, stacklevel: int = 1) -> InversionResult:
    """
    Find the pre-image of ``target`` under the evaluator's forward warp.

    Args:
        target: length-3 point in the warp's output space.
        evaluator: forward evaluator to invert.
        tolerance: convergence threshold on ``|F(X) - target|``.
        max_iterations: cap on Newton steps.
        stacklevel: frame the convergence warning is attributed to, counted
            like ``warnings.warn`` from the caller of this function.

    Returns:
        InversionResult with the estimate, the number of Newton steps, the
        final residual magnitude and whether the tolerance was met. When the
        budget runs out an InverseConvergenceWarning is issued and the best
        estimate is still returned.
    """
    target = as_point(target)
    tolerance_squared = tolerance * tolerance

    # first guess: reflect the forward displacement at the target
    image = as_point(evaluator.forward_point(target))
    with np.errstate(**_QUIET):
        candidate = 2.0 * target - image

    delta_p, jacobian, error_squared = _residual(evaluator, candidate, target)

    # a nan residual is never within tolerance, it iterates until the cap
    i = 0
    while i < max_iterations and not error_squared <= tolerance_squared:
        last_error_squared = error_squared

        # the Newton step
        delta_i = solve3(jacobian, delta_p)

        last_candidate = candidate
        with np.errstate(**_QUIET):
            # diagonal estimate of the gradient of error_squared
            gradient = 2.0 * delta_p * np.diag(jacobian)
            candidate = last_candidate - delta_i
        delta_p, jacobian, error_squared = _residual(
            evaluator, candidate, target)

        if error_squared > last_error_squared:
            # the full step made things worse, take a fraction of it
            f = backtrack_fraction(
                gradient, delta_i, error_squared, last_error_squared)
            with np.errstate(**_QUIET):
                candidate = last_candidate - f * delta_i
            delta_p, jacobian, error_squared = _residual(
                evaluator, candidate, target)
        i += 1

    error = float(np_sqrt(error_squared))
    converged = bool(error_squared <= tolerance_squared)
    logger.debug("inverse iterations: %d", i)

    if not converged:
        warnings.warn(InverseConvergenceWarning(
            target, error, i), stacklevel=stacklevel + 1)

    return InversionResult(candidate, i, error, converged)


def invert_point(target, evaluator: ForwardEvaluator, tolerance: float = DEFAULT_TOLERANCE, max_iterations: int = DEFAULT_MAX_ITERATIONS, *, stacklevel: int = 1) -> ndarray:
    """Return the pre-image of ``target``; see :func:`solve_inverse`."""
    return solve_inverse(target, evaluator, tolerance, max_iterations, stacklevel=stacklevel + 1).point
