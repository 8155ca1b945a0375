import numpy as np
from numpy import ndarray
from typing import Callable, Iterable, List, Tuple, Union

from polywarp.direction import Direction
from polywarp.evaluator import ForwardEvaluator
from polywarp.inversion import DEFAULT_MAX_ITERATIONS, DEFAULT_TOLERANCE, solve_inverse
from polywarp.math import inv3
from polywarp.utils import as_matrix3, as_point, as_points, narrow

Observer = Callable[["WarpTransform"], None]


class WarpTransform:
    """
    A nonlinear warp that can be applied forward or inverted numerically.

    Only the forward mapping has to be supplied, as a ForwardEvaluator. In
    the inverse direction every point is found by Newton's method against
    that forward mapping.

    Observers registered with ``add_observer`` are called with the transform
    whenever its output may have changed: on every direction toggle and on
    any change of tolerance or iteration cap.

    Instances are not safe to mutate while another thread is transforming
    through them. Share ``inverted()`` copies instead of toggling in place.
    """
    __slots__ = ("_evaluator", "_direction", "_tolerance",
                 "_max_iterations", "_observers", "_revision")

    def __init__(self, evaluator: ForwardEvaluator, tolerance: float = DEFAULT_TOLERANCE, max_iterations: int = DEFAULT_MAX_ITERATIONS, direction: Direction = Direction.FORWARD):
        if not isinstance(evaluator, ForwardEvaluator):
            raise TypeError(
                f"evaluator must provide forward_point and forward_derivative, got {type(evaluator).__name__}")
        if not isinstance(direction, Direction):
            raise TypeError(f"direction must be a Direction, got {direction!r}")
        self._evaluator = evaluator
        self._direction = direction
        self._tolerance = _check_tolerance(tolerance)
        self._max_iterations = _check_max_iterations(max_iterations)
        self._observers: List[Observer] = []
        self._revision = 0

    @property
    def evaluator(self) -> ForwardEvaluator:
        return self._evaluator

    @property
    def direction(self) -> Direction:
        return self._direction

    @property
    def is_inverse(self) -> bool:
        return self._direction is Direction.INVERSE

    @property
    def revision(self) -> int:
        """Incremented each time observers are notified."""
        return self._revision

    @property
    def tolerance(self) -> float:
        """Convergence threshold on the distance |F(X) - target| when inverting."""
        return self._tolerance

    @tolerance.setter
    def tolerance(self, value: float) -> None:
        value = _check_tolerance(value)
        if value != self._tolerance:
            self._tolerance = value
            self._modified()

    @property
    def max_iterations(self) -> int:
        """Cap on the Newton steps taken per inverted point."""
        return self._max_iterations

    @max_iterations.setter
    def max_iterations(self, value: int) -> None:
        value = _check_max_iterations(value)
        if value != self._max_iterations:
            self._max_iterations = value
            self._modified()

    ###########
    # Change notification
    #

    def add_observer(self, callback: Observer) -> Observer:
        """Register ``callback(transform)`` for change notifications. Returns the callback."""
        self._observers.append(callback)
        return callback

    def remove_observer(self, callback: Observer) -> None:
        """Unregister a callback. Raises ValueError if it was never added."""
        self._observers.remove(callback)

    def _modified(self) -> None:
        self._revision += 1
        for callback in tuple(self._observers):
            callback(self)

    ###########
    # Direction
    #

    def toggle_direction(self) -> None:
        """Switch between the forward and the inverse mapping."""
        self._direction = self._direction.toggled()
        self._modified()

    def inverted(self) -> "WarpTransform":
        """
        Get an independent copy of this transform mapping the other way.

        Returns:
            A new WarpTransform with the opposite direction and no observers.
        """
        return self.__class__(self._evaluator, self._tolerance, self._max_iterations, self._direction.toggled())

    ###########
    # Transforming
    #

    def transform_point(self, point: Union[ndarray, Iterable]) -> ndarray:
        """
        Apply this transform to a 3D point.

        Args:
            point: length-3 array.

        Returns:
            Transformed float64 length-3 point.
        """
        return self._transform_point(point, 2)

    def transform_point_and_derivative(self, point: Union[ndarray, Iterable]) -> Tuple[ndarray, ndarray]:
        """
        Apply this transform to a 3D point and get its 3x3 Jacobian there.

        In the inverse direction the derivative is the inverse of the forward
        Jacobian taken at the pre-image, so it matches the returned point.

        Args:
            point: length-3 array.

        Returns:
            (transformed float64 point, float64 3x3 derivative).
        """
        return self._transform_point_and_derivative(point, 2)

    def transform_points(self, points: Union[ndarray, Iterable]) -> ndarray:
        """
        Apply this transform to each row of an (N, 3) array.

        Returns:
            Transformed float64 (N, 3) array.
        """
        points = as_points(points)
        out = np.empty_like(points)
        for k in range(points.shape[0]):
            out[k] = self._transform_point(points[k], 2)
        return out

    def transform_point_float32(self, point: Union[ndarray, Iterable]) -> ndarray:
        """Single precision form of :meth:`transform_point`; the work is done in float64."""
        return narrow(self._transform_point(point, 2))

    def transform_point_and_derivative_float32(self, point: Union[ndarray, Iterable]) -> Tuple[ndarray, ndarray]:
        """Single precision form of :meth:`transform_point_and_derivative`; the work is done in float64."""
        out, derivative = self._transform_point_and_derivative(point, 2)
        return narrow(out), narrow(derivative)

    # stacklevel counts frames from the caller of these helpers, so convergence
    # warnings land on the line that called the public method

    def _transform_point(self, point, stacklevel: int) -> ndarray:
        point = as_point(point)
        if self._direction is Direction.INVERSE:
            return solve_inverse(point, self._evaluator, self._tolerance, self._max_iterations,
                                 stacklevel=stacklevel + 1).point
        return as_point(self._evaluator.forward_point(point))

    def _transform_point_and_derivative(self, point, stacklevel: int) -> Tuple[ndarray, ndarray]:
        point = as_point(point)
        if self._direction is Direction.INVERSE:
            pre_image = solve_inverse(point, self._evaluator, self._tolerance, self._max_iterations,
                                      stacklevel=stacklevel + 1).point
            _, jacobian = self._evaluator.forward_derivative(pre_image)
            return pre_image, inv3(as_matrix3(jacobian))
        image, jacobian = self._evaluator.forward_derivative(point)
        return as_point(image), as_matrix3(jacobian)

    ###########
    # Dunders
    #

    def copy(self) -> "WarpTransform":
        """Copy with the same evaluator, direction and settings, but no observers."""
        return self.__class__(self._evaluator, self._tolerance, self._max_iterations, self._direction)

    def __copy__(self) -> "WarpTransform":
        return self.copy()

    def __repr__(self) -> str:
        return (f"{self.__class__.__name__}(evaluator={self._evaluator!r}, direction={self._direction.name}, "
                f"tolerance={self._tolerance}, max_iterations={self._max_iterations})")


def _check_tolerance(value) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Tolerance must be a number, got {value!r}") from None
    if not value > 0.0:
        raise ValueError(f"Tolerance must be positive, got {value}")
    return value


def _check_max_iterations(value) -> int:
    try:
        is_integer = not isinstance(value, bool) and int(value) == value
    except (TypeError, ValueError, OverflowError):
        is_integer = False
    if not is_integer:
        raise ValueError(f"Max iterations must be an integer, got {value!r}")
    value = int(value)
    if value <= 0:
        raise ValueError(f"Max iterations must be positive, got {value}")
    return value
