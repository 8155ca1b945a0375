from polywarp import AffineWarp, FunctionWarp, WarpTransform, solve_inverse
import math
import timeit
import numpy as np
from scipy.spatial.transform import Rotation as R


def swirl_point(p):
    return [p[0] + 0.2 * math.sin(p[2]), p[1] + 0.1 * math.sin(p[0]), p[2] + 0.05 * p[1]]


def swirl_jacobian(p):
    return [[1.0, 0.0, 0.2 * math.cos(p[2])],
            [0.1 * math.cos(p[0]), 1.0, 0.0],
            [0.0, 0.05, 1.0]]


if __name__ == "__main__":
    point = np.array([1.0, 0.5, 2.0])

    affine = AffineWarp.from_values(
        translation=[1, 2, 3], rotation=R.from_euler('xyz', [0.1, 0.2, 0.3]).as_matrix(), scale=2.0)
    analytic = FunctionWarp(swirl_point, swirl_jacobian)
    numeric = FunctionWarp(swirl_point)

    # warmup, compiles the numba kernels
    solve_inverse(point, analytic)

    N = 10_000
    for name, warp in (("affine", affine), ("analytic", analytic), ("finite difference", numeric)):
        forward = WarpTransform(warp, tolerance=1e-9)
        inverse = forward.inverted()
        print(f"{name} iterations: ", solve_inverse(point, warp, 1e-9).iterations)
        print(f"{name} forward: ", timeit.timeit(
            lambda: forward.transform_point(point), number=N))
        print(f"{name} inverse: ", timeit.timeit(
            lambda: inverse.transform_point(point), number=N))
        print(f"{name} inverse derivative: ", timeit.timeit(
            lambda: inverse.transform_point_and_derivative(point), number=N))
        print(f"{name} inverse float32: ", timeit.timeit(
            lambda: inverse.transform_point_float32(point), number=N))

    points = np.random.default_rng(0).uniform(-5, 5, size=(1000, 3))
    inverse = WarpTransform(analytic).inverted()
    print("transform_points x1000: ", timeit.timeit(
        lambda: inverse.transform_points(points), number=10))
