"""
Polywarp: numerical inversion of smooth nonlinear 3D warps. Supply the forward
mapping and its Jacobian; the inverse is found by damped Newton iteration.
"""

__version__ = version = "0.1.0"

# exposing the public API of the package
from polywarp.direction import Direction
from polywarp.evaluator import ForwardEvaluator
from polywarp.inversion import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    InverseConvergenceWarning,
    InversionResult,
    invert_point,
    solve_inverse,
)
from polywarp.warp_transform import WarpTransform
from polywarp.warps import AffineWarp, FunctionWarp

__all__ = [
    "Direction",
    "ForwardEvaluator",
    "WarpTransform",
    "AffineWarp",
    "FunctionWarp",
    "invert_point",
    "solve_inverse",
    "InversionResult",
    "InverseConvergenceWarning",
    "DEFAULT_TOLERANCE",
    "DEFAULT_MAX_ITERATIONS",
]
