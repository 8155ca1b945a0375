# utils.py

import numpy as np
from numpy import asarray as np_asarray
from numpy import float64 as np_float64
from numpy import float32 as np_float32
from numpy import ndarray
from typing import Iterable, Union


def as_point(point: Union[Iterable, ndarray]) -> ndarray:
    """Widen a point to a float64 (3,) array."""
    out = np_asarray(point, dtype=np_float64)
    if out.shape != (3,):
        raise ValueError(f"Point must be a 3D vector, got {out.shape}")
    return out


def as_points(points: Union[Iterable, ndarray]) -> ndarray:
    """Widen a batch of points to a float64 (N, 3) array."""
    out = np_asarray(points, dtype=np_float64)
    if out.ndim != 2 or out.shape[1] != 3:
        raise ValueError(f"Points must be an (N, 3) array, got {out.shape}")
    return out


def as_matrix3(matrix: Union[Iterable, ndarray]) -> ndarray:
    """Widen a matrix to a C-contiguous float64 (3, 3) array."""
    out = np.ascontiguousarray(matrix, dtype=np_float64)
    if out.shape != (3, 3):
        raise ValueError(f"Jacobian must be a 3x3 matrix, got {out.shape}")
    return out


def narrow(values: ndarray) -> ndarray:
    """Narrow a wide result to float32 at the API boundary."""
    return np_asarray(values, dtype=np_float32)
