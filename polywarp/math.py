from numba import njit
import numpy as np

# Every kernel here uses error_model="numpy" and no fastmath. A singular matrix
# gives inf/nan instead of raising ZeroDivisionError, and inf/nan propagate.


@njit(inline='always', cache=True, error_model='numpy')
def det3(M):
    """Determinant of a 3 x 3 (faster than np.linalg.det for tiny mats)."""
    return (
        M[0, 0] * (M[1, 1] * M[2, 2] - M[1, 2] * M[2, 1])
        - M[0, 1] * (M[1, 0] * M[2, 2] - M[1, 2] * M[2, 0])
        + M[0, 2] * (M[1, 0] * M[2, 1] - M[1, 1] * M[2, 0])
    )


@njit(cache=True, error_model='numpy')
def inv3(M):
    """Analytic inverse of a 3 x 3"""
    invd = 1.0 / det3(M)
    out = np.empty((3, 3), dtype=np.float64)
    out[0, 0] = (M[1, 1] * M[2, 2] - M[1, 2] * M[2, 1]) * invd
    out[0, 1] = -(M[0, 1] * M[2, 2] - M[0, 2] * M[2, 1]) * invd
    out[0, 2] = (M[0, 1] * M[1, 2] - M[0, 2] * M[1, 1]) * invd
    out[1, 0] = -(M[1, 0] * M[2, 2] - M[1, 2] * M[2, 0]) * invd
    out[1, 1] = (M[0, 0] * M[2, 2] - M[0, 2] * M[2, 0]) * invd
    out[1, 2] = -(M[0, 0] * M[1, 2] - M[0, 2] * M[1, 0]) * invd
    out[2, 0] = (M[1, 0] * M[2, 1] - M[1, 1] * M[2, 0]) * invd
    out[2, 1] = -(M[0, 0] * M[2, 1] - M[0, 1] * M[2, 0]) * invd
    out[2, 2] = (M[0, 0] * M[1, 1] - M[0, 1] * M[1, 0]) * invd
    return out


@njit(cache=True, error_model='numpy')
def solve3(A, b):
    """
    Solve the 3 x 3 system ``A @ x = b`` by Cramer's rule.

    Parameters
    ----------
    A : (3, 3) float64 array
    b : (3,) float64 array

    Returns
    -------
    (3,) float64 array
        x. Garbage (inf/nan) when A is singular.
    """
    invd = 1.0 / det3(A)
    out = np.empty(3, dtype=np.float64)
    for k in range(3):
        Ak = A.copy()
        Ak[0, k] = b[0]
        Ak[1, k] = b[1]
        Ak[2, k] = b[2]
        out[k] = det3(Ak) * invd
    return out


@njit(cache=True, error_model='numpy')
def backtrack_fraction(gradient, delta_i, error_squared, last_error_squared):
    """
    Fraction of a Newton step to take after the full step increased the error.

    Minimizes a quadratic model of the squared error along the step
    (Numerical Recipes 9.7), clamped to [0.1, 0.5].

    Parameters
    ----------
    gradient : (3,) float64 array
        Gradient estimate of the squared error at the previous iterate.
    delta_i : (3,) float64 array
        The rejected Newton step.
    error_squared : float
        Squared error after the full step.
    last_error_squared : float
        Squared error at the previous iterate.

    Returns
    -------
    float
    """
    slope = gradient[0] * delta_i[0] + gradient[1] * delta_i[1] + gradient[2] * delta_i[2]
    f = slope / (2.0 * (error_squared - last_error_squared - slope))
    if f < 0.1:
        f = 0.1
    if f > 0.5:
        f = 0.5
    return f


if __name__ == "__main__":
    import timeit
    from scipy.spatial.transform import Rotation as R

    mat = R.from_euler('xyz', [45, 45, 45], degrees=True).as_matrix() * 2.0
    vec = np.array([1.0, -2.0, 3.0])

    det3(mat)
    inv3(mat)
    solve3(mat, vec)

    N = 1_000_000
    print("det3:", timeit.timeit(lambda: det3(mat), number=N))
    print("inv3:", timeit.timeit(lambda: inv3(mat), number=N))
    print("solve3:", timeit.timeit(lambda: solve3(mat, vec), number=N))
    print("np.linalg.solve:", timeit.timeit(
        lambda: np.linalg.solve(mat, vec), number=N))

    np.testing.assert_allclose(
        inv3(mat) @ mat, np.eye(3), atol=1e-6, err_msg="inv3 failed"
    )
    np.testing.assert_allclose(
        mat @ solve3(mat, vec), vec, atol=1e-6, err_msg="solve3 failed"
    )
