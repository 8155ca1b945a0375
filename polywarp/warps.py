import numpy as np
from numpy import append as np_append
from numpy import asarray as np_asarray
from numpy import eye as np_eye
from numpy import float64 as np_float64
from numpy import ndarray
from typing import Callable, Iterable, Optional, Tuple, Union
from polywarp.utils import as_point, as_matrix3

_EYE3 = np_eye(3, dtype=np_float64)
_EYE4 = np_eye(4, dtype=np_float64)


class FunctionWarp:
    """
    A forward evaluator built from plain callables.

    Args:
        point_fn: maps a (3,) point to its (3,) image.
        jacobian_fn: maps a (3,) point to its 3x3 Jacobian. When omitted the
            Jacobian is estimated with central differences of ``point_fn``.
        step: finite-difference step, only used without ``jacobian_fn``.
    """
    __slots__ = ("point_fn", "jacobian_fn", "step")

    def __init__(self, point_fn: Callable[[ndarray], Iterable], jacobian_fn: Optional[Callable[[ndarray], Iterable]] = None, step: float = 1e-6):
        step = float(step)
        if step <= 0.0:
            raise ValueError(f"Finite-difference step must be positive, got {step}")
        self.point_fn = point_fn
        self.jacobian_fn = jacobian_fn
        self.step = step

    def forward_point(self, point: ndarray) -> ndarray:
        return as_point(self.point_fn(point))

    def forward_derivative(self, point: ndarray) -> Tuple[ndarray, ndarray]:
        image = self.forward_point(point)
        if self.jacobian_fn is not None:
            return image, as_matrix3(self.jacobian_fn(point))
        return image, self.finite_difference_jacobian(point)

    def finite_difference_jacobian(self, point: ndarray) -> ndarray:
        """Central-difference Jacobian; column k holds d(image)/d(point[k])."""
        point = as_point(point)
        h = self.step
        J = np.empty((3, 3), dtype=np_float64)
        for k in range(3):
            offset = _EYE3[k] * h
            J[:, k] = (self.forward_point(point + offset) -
                       self.forward_point(point - offset)) / (2.0 * h)
        return J

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(point_fn={self.point_fn!r}, jacobian_fn={self.jacobian_fn!r})"


class AffineWarp:
    """
    A 4x4 homogeneous affine map used as a forward evaluator.

    Attributes:
        matrix (ndarray): 4x4 transformation matrix.
    """
    __slots__ = ("matrix",)

    def __init__(self, matrix: Optional[ndarray] = None):
        if matrix is None:
            self.matrix = _EYE4.copy()
        else:
            matrix = np_asarray(matrix, dtype=np_float64)
            if matrix.shape != (4, 4):
                raise ValueError(f"Invalid matrix shape: {matrix.shape}")
            self.matrix = matrix

    @classmethod
    def identity(cls) -> "AffineWarp":
        return cls(_EYE4.copy())

    @classmethod
    def from_values(
        cls,
        translation: Optional[Union[ndarray, Iterable]] = None,
        rotation: Optional[Union[ndarray, Iterable]] = None,
        scale: Optional[Union[float, ndarray, Iterable]] = None,
    ) -> "AffineWarp":
        """
        Create an AffineWarp from its parts. Order of application is:
        scale → rotate → translate.

        Args:
            translation: length-3 array to place in last column.
            rotation: 3x3 rotation matrix.
            scale: scalar or length-3 scale factors.

        Returns:
            A new AffineWarp whose `matrix` encodes the provided information.
        """
        m = _EYE4.copy()
        R = _EYE3 if rotation is None else as_matrix3(rotation)
        S = np.ones(3) if scale is None else np.broadcast_to(
            np_asarray(scale, dtype=np_float64), (3,))
        if np.any(S == 0.0):
            raise ValueError("Scale cannot be zero.")
        # scale each column of the rotation
        m[:3, :3] = R * S
        if translation is not None:
            m[:3, 3] = as_point(translation)
        return cls(m)

    def forward_point(self, point: ndarray) -> ndarray:
        p = np_append(point, 1.0)
        return (self.matrix @ p)[:3]

    def forward_derivative(self, point: ndarray) -> Tuple[ndarray, ndarray]:
        return self.forward_point(point), self.matrix[:3, :3].copy()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(matrix={self.matrix.tolist()})"
