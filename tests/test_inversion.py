import math
import os
import unittest
import warnings
import numpy as np
from polywarp import (
    FunctionWarp,
    InverseConvergenceWarning,
    invert_point,
    solve_inverse,
)


def _sine_shear():
    # F(x, y, z) = (x + 0.1 sin y, y, z)
    return FunctionWarp(
        lambda p: [p[0] + 0.1 * math.sin(p[1]), p[1], p[2]],
        lambda p: [[1.0, 0.1 * math.cos(p[1]), 0.0],
                   [0.0, 1.0, 0.0],
                   [0.0, 0.0, 1.0]],
    )


def _coupled():
    # displacement is a contraction, so F is a bijection of R^3
    return FunctionWarp(
        lambda p: [p[0] + 0.3 * math.sin(p[1]),
                   p[1] + 0.2 * math.sin(p[2]),
                   p[2] + 0.1 * p[0]],
        lambda p: [[1.0, 0.3 * math.cos(p[1]), 0.0],
                   [0.0, 1.0, 0.2 * math.cos(p[2])],
                   [0.1, 0.0, 1.0]],
    )


class CountingWarp:
    """Wraps an evaluator and counts calls to each method."""

    def __init__(self, inner):
        self.inner = inner
        self.point_calls = 0
        self.derivative_calls = 0

    def forward_point(self, point):
        self.point_calls += 1
        return self.inner.forward_point(point)

    def forward_derivative(self, point):
        self.derivative_calls += 1
        return self.inner.forward_derivative(point)


class TestInvertPoint(unittest.TestCase):
    def test_identity_is_fixed_point(self):
        warp = CountingWarp(FunctionWarp(lambda p: p, lambda p: np.eye(3)))
        target = np.array([1.5, -2.0, 7.25])
        result = solve_inverse(target, warp)
        np.testing.assert_array_equal(result.point, target)
        self.assertEqual(result.iterations, 0)
        self.assertTrue(result.converged)
        self.assertEqual(result.error, 0.0)
        self.assertEqual(warp.point_calls, 1)
        self.assertEqual(warp.derivative_calls, 1)

    def test_sine_shear_scenario(self):
        warp = _sine_shear()
        target = np.array([1.0, 0.5, 2.0])
        result = solve_inverse(target, warp, tolerance=1e-6, max_iterations=500)
        self.assertTrue(result.converged)
        self.assertLess(result.iterations, 10)
        residual = np.linalg.norm(warp.forward_point(result.point) - target)
        self.assertLess(residual, 1e-6)

    def test_round_trip(self):
        warp = _coupled()
        rng = np.random.default_rng(7)
        for target in rng.uniform(-5.0, 5.0, size=(20, 3)):
            result = solve_inverse(target, warp, tolerance=1e-9)
            self.assertTrue(result.converged)
            residual = np.linalg.norm(warp.forward_point(result.point) - target)
            self.assertLess(residual, 1e-9)
            self.assertAlmostEqual(result.error, residual, places=12)

    def test_invert_point_returns_point_only(self):
        warp = _coupled()
        target = [0.5, -1.0, 2.0]
        np.testing.assert_array_equal(
            invert_point(target, warp, 1e-8), solve_inverse(target, warp, 1e-8).point)

    def test_accepts_lists_and_ints(self):
        warp = _sine_shear()
        out = invert_point([1, 0, 2], warp)
        self.assertEqual(out.dtype, np.float64)
        self.assertEqual(out.shape, (3,))

    def test_bad_target_shape(self):
        with self.assertRaises(ValueError):
            invert_point([1.0, 2.0], _sine_shear())

    def test_target_not_modified(self):
        target = np.array([1.0, 0.5, 2.0])
        invert_point(target, _coupled())
        np.testing.assert_array_equal(target, [1.0, 0.5, 2.0])


class TestBacktracking(unittest.TestCase):
    def test_damped_steps_converge_where_newton_overshoots(self):
        # Newton on atan overshoots from |x - 5| > 1.39; the first full step
        # from the reflected guess lands further away than it started
        inner = FunctionWarp(
            lambda p: [math.atan(p[0] - 5.0), p[1], p[2]],
            lambda p: [[1.0 / (1.0 + (p[0] - 5.0) ** 2), 0.0, 0.0],
                       [0.0, 1.0, 0.0],
                       [0.0, 0.0, 1.0]],
        )
        warp = CountingWarp(inner)
        target = np.array([0.0, 1.0, 2.0])
        result = solve_inverse(target, warp, tolerance=1e-8)
        self.assertTrue(result.converged)
        np.testing.assert_allclose(result.point, [5.0, 1.0, 2.0], atol=1e-7)
        # one evaluation per step plus the initial one; extra calls are backtracks
        self.assertGreater(warp.derivative_calls, result.iterations + 1)


class TestNonConvergence(unittest.TestCase):
    def test_singular_jacobian_runs_to_cap_and_warns(self):
        # zero derivative along z: the residual along z can never shrink
        warp = FunctionWarp(
            lambda p: [p[0], p[1], 0.0],
            lambda p: np.diag([1.0, 1.0, 0.0]),
        )
        with self.assertWarns(InverseConvergenceWarning) as cm:
            result = solve_inverse([1.0, 2.0, 3.0], warp, max_iterations=25)
        self.assertFalse(result.converged)
        self.assertEqual(result.iterations, 25)
        self.assertEqual(cm.warning.iterations, 25)
        np.testing.assert_array_equal(cm.warning.point, [1.0, 2.0, 3.0])

    def test_slow_evaluator_runs_exactly_max_iterations(self):
        # the reported Jacobian overstates the slope, so every step is tiny
        # and the error shrinks too slowly to ever meet the tolerance
        warp = FunctionWarp(
            lambda p: [p[0], p[1], 2.0 * p[2] + 1.0],
            lambda p: np.diag([1.0, 1.0, 1e9]),
        )
        with self.assertWarns(InverseConvergenceWarning) as cm:
            result = solve_inverse([0.0, 0.0, 0.0], warp, tolerance=1e-6, max_iterations=40)
        self.assertEqual(result.iterations, 40)
        self.assertFalse(result.converged)
        self.assertTrue(np.all(np.isfinite(result.point)))
        self.assertAlmostEqual(cm.warning.error, result.error)
        self.assertGreater(result.error, 1e-6)
        self.assertIn("no convergence", str(cm.warning))

    def test_converged_call_does_not_warn(self):
        with warnings.catch_warnings():
            warnings.simplefilter("error", InverseConvergenceWarning)
            result = solve_inverse([0.2, 0.3, 0.4], _coupled(), tolerance=1e-9)
        self.assertTrue(result.converged)

    def test_message_is_the_same_for_every_point(self):
        warp = FunctionWarp(
            lambda p: [p[0], p[1], 0.0],
            lambda p: np.diag([1.0, 1.0, 0.0]),
        )
        messages = []
        for target in ([1.0, 2.0, 3.0], [-4.0, 0.5, 9.0]):
            with self.assertWarns(InverseConvergenceWarning) as cm:
                solve_inverse(target, warp, max_iterations=3)
            messages.append(str(cm.warning))
            np.testing.assert_array_equal(cm.warning.point, target)
        self.assertEqual(messages[0], messages[1])
        self.assertEqual(messages[0], "inverse transform: no convergence")

    def test_warning_points_at_the_caller(self):
        warp = FunctionWarp(
            lambda p: [p[0], p[1], 0.0],
            lambda p: np.diag([1.0, 1.0, 0.0]),
        )
        with self.assertWarns(InverseConvergenceWarning) as cm:
            solve_inverse([1.0, 2.0, 3.0], warp, max_iterations=2)
        self.assertEqual(os.path.basename(cm.filename), "test_inversion.py")
        with self.assertWarns(InverseConvergenceWarning) as cm:
            invert_point([1.0, 2.0, 3.0], warp, max_iterations=2)
        self.assertEqual(os.path.basename(cm.filename), "test_inversion.py")


class TestEvaluatorErrors(unittest.TestCase):
    def _sqrt_warp(self):
        # the second iterate lands on x = -8, where sqrt is invalid
        return FunctionWarp(
            lambda p: [2.0 * p[0] + 0.0 * np.sqrt(p[0]), p[1], p[2]],
            lambda p: np.diag([-0.5, 1.0, 1.0]),
        )

    def test_floating_point_error_propagates(self):
        warp = self._sqrt_warp()
        with np.errstate(all="raise"):
            with self.assertRaises(FloatingPointError):
                warp.forward_point(np.array([-8.0, 0.0, 0.0]))
            with self.assertRaises(FloatingPointError):
                solve_inverse([4.0, 0.0, 0.0], warp, max_iterations=3)

    def test_other_exceptions_propagate(self):
        def point_fn(p):
            if p[0] < 0.0:
                raise RuntimeError("outside the warp's domain")
            return [2.0 * p[0], p[1], p[2]]

        warp = FunctionWarp(point_fn, lambda p: np.diag([-0.5, 1.0, 1.0]))
        with self.assertRaises(RuntimeError):
            solve_inverse([4.0, 0.0, 0.0], warp, max_iterations=3)


class TestLogging(unittest.TestCase):
    def test_iteration_count_logged_at_debug(self):
        warp = FunctionWarp(lambda p: p, lambda p: np.eye(3))
        with self.assertLogs("polywarp.inversion", "DEBUG") as logs:
            solve_inverse([1.0, 2.0, 3.0], warp)
        self.assertIn("DEBUG:polywarp.inversion:inverse iterations: 0", logs.output)

    def test_newton_steps_logged(self):
        with self.assertLogs("polywarp.inversion", "DEBUG") as logs:
            result = solve_inverse([0.5, -1.0, 2.0], _coupled(), tolerance=1e-9)
        self.assertGreater(result.iterations, 0)
        self.assertEqual(
            logs.output, [f"DEBUG:polywarp.inversion:inverse iterations: {result.iterations}"])


if __name__ == "__main__":
    unittest.main()
