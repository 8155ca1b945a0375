from typing import Protocol, Tuple, runtime_checkable
from numpy import ndarray


@runtime_checkable
class ForwardEvaluator(Protocol):
    """
    The capability a warp must provide to be inverted.

    Both methods take a float64 (3,) point and must be deterministic,
    side-effect-free functions of that point alone.
    """

    def forward_point(self, point: ndarray) -> ndarray:
        """Map a point through the forward warp."""
        ...

    def forward_derivative(self, point: ndarray) -> Tuple[ndarray, ndarray]:
        """Map a point through the forward warp and return (point, 3x3 Jacobian)."""
        ...
