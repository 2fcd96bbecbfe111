"""Tests for the manifold solver."""

import numpy as np
import pytest
from scipy.sparse import csc_matrix

from magpose.core.math.poses import Pose2, Pose3
from magpose.core.math.rotations import Rot3
from magpose.core.models.solve import SolverSettings
from magpose.core.optimization.factor_graph import FactorGraph
from magpose.core.optimization.noise import NoiseModel
from magpose.core.solver.manifold_solver import ManifoldSolver, SolverOptions, solve_normal_equations
from magpose.core.synthetic.magnetometer import MagnetometerSimulator


def heading_graph(true_theta=0.7, initial_theta=0.0):
    """One planar pose observed by a noise-free magnetometer."""
    simulator = MagnetometerSimulator(1.0, np.array([1.0, 0.0]))
    graph = FactorGraph()
    graph.add_variable("x0", Pose2(1.0, 2.0, initial_theta))
    for factor in simulator.make_factors([Pose2(1.0, 2.0, true_theta)]):
        graph.add_factor(factor)
    return graph


def attitude_graph(true_rotation, initial_rotation):
    """One spatial pose observed against two independent reference fields."""
    truth = Pose3(true_rotation, np.array([1.0, 2.0, 3.0]))
    graph = FactorGraph()
    graph.add_variable("x0", Pose3(initial_rotation, np.array([1.0, 2.0, 3.0])))

    for direction in ([1.0, 0.0, 0.0], [0.0, 0.3, 1.0]):
        simulator = MagnetometerSimulator(2.0, np.array(direction))
        for factor in simulator.make_factors([truth]):
            graph.add_factor(factor)
    return graph


class TestSolveNormalEquations:
    """Test the sparse linear solve."""

    def test_regular_system(self):
        """Well-posed systems are solved directly."""
        H = csc_matrix(np.array([[4.0, 1.0], [1.0, 3.0]]))
        b = np.array([1.0, 2.0])

        x = solve_normal_equations(H, b)

        np.testing.assert_allclose(H.toarray() @ x, b)

    def test_singular_system(self):
        """Singular systems fall back to least squares."""
        H = csc_matrix(np.array([[1.0, 0.0], [0.0, 0.0]]))

        x = solve_normal_equations(H, np.array([2.0, 0.0]))

        assert np.all(np.isfinite(x))
        assert x[0] == pytest.approx(2.0)


class TestManifoldSolver:
    """Test Levenberg-Marquardt and Gauss-Newton on magnetometer problems."""

    def test_unknown_method(self):
        """Unknown methods are rejected."""
        with pytest.raises(ValueError):
            ManifoldSolver(SolverOptions(method="dogleg"))

    @pytest.mark.parametrize("method", ["lm", "gauss_newton"])
    def test_recovers_heading(self, method):
        """Heading is recovered from a single planar reading."""
        graph = heading_graph()

        result = ManifoldSolver(SolverOptions(method=method)).solve(graph)

        assert result.success
        assert result.convergence_reason.startswith("Converged")
        assert result.final_cost < result.initial_cost
        assert graph.get_variable("x0").value.theta == pytest.approx(0.7, abs=1e-4)

    def test_translation_untouched(self):
        """Magnetometer steps never move the translation."""
        graph = heading_graph()

        ManifoldSolver().solve(graph)

        np.testing.assert_allclose(graph.get_variable("x0").value.translation(), [1.0, 2.0], atol=1e-12)

    def test_translation_reported_unconstrained(self):
        """Only the heading is constrained by a planar magnetometer."""
        result = ManifoldSolver().solve(heading_graph())

        assert result.unconstrained_dofs == ["x0.x", "x0.y"]

    def test_recovers_attitude(self):
        """Full attitude is recovered from two reference fields."""
        true_rotation = Rot3.from_rotation_vector(np.array([0.2, -0.3, 0.5]))
        graph = attitude_graph(true_rotation, Rot3.identity())

        result = ManifoldSolver().solve(graph)

        assert result.success
        assert graph.get_variable("x0").value.rotation().equals(true_rotation, tol=1e-4)
        assert result.unconstrained_dofs == ["x0.x", "x0.y", "x0.z"]

    def test_cost_history(self):
        """Cost history starts at the initial cost and never increases."""
        result = ManifoldSolver().solve(heading_graph())

        assert result.cost_history[0] == pytest.approx(result.initial_cost)
        assert result.cost_history[-1] == pytest.approx(result.final_cost)
        assert all(b <= a for a, b in zip(result.cost_history, result.cost_history[1:]))

    def test_already_converged(self):
        """Starting at the optimum converges immediately."""
        result = ManifoldSolver().solve(heading_graph(initial_theta=0.7))

        assert result.success
        assert result.iterations <= 1
        assert result.final_cost < 1e-12

    def test_max_iterations(self):
        """Running out of iterations is reported as unsuccessful."""
        graph = heading_graph(true_theta=2.5, initial_theta=0.0)

        result = ManifoldSolver(SolverOptions(max_iterations=1)).solve(graph)

        assert not result.success
        assert result.convergence_reason == "Maximum iterations reached"
        assert result.iterations == 1

    def test_no_free_variables(self):
        """A graph of constants is trivially solved."""
        graph = FactorGraph()
        graph.add_variable("x0", Pose2(), is_constant=True)

        result = ManifoldSolver().solve(graph)

        assert result.success
        assert result.iterations == 0
        assert result.convergence_reason == "No free variables"

    def test_parallel_linearization(self):
        """Threaded linearization converges to the same estimate."""
        rng = np.random.default_rng(11)
        simulator = MagnetometerSimulator(1.0, np.array([0.6, 0.8]), seed=2)
        truths = [Pose2(*rng.uniform(-5, 5, 2), rng.uniform(-np.pi, np.pi)) for _ in range(8)]

        estimates = []
        for workers in (None, 4):
            graph = FactorGraph()
            for i, truth in enumerate(truths):
                graph.add_variable(f"x{i}", truth.retract(np.array([0.0, 0.0, 0.3])))
            for factor in simulator.make_factors(truths):
                graph.add_factor(factor)

            ManifoldSolver(SolverOptions(max_workers=workers)).solve(graph)
            estimates.append([graph.get_variable(f"x{i}").value.theta for i in range(len(truths))])

        np.testing.assert_allclose(estimates[0], estimates[1], atol=1e-9)

    def test_settings_to_options(self):
        """Validated settings configure the solver."""
        options = SolverSettings(method="gauss_newton", max_iterations=20, max_workers=2).to_options()
        solver = ManifoldSolver(options)

        assert solver.options.method == "gauss_newton"
        assert solver.options.max_iterations == 20
        assert solver.options.max_workers == 2

    def test_robust_noise_model(self):
        """Robust noise models still converge on consistent data."""
        simulator = MagnetometerSimulator(1.0, np.array([1.0, 0.0]))
        graph = FactorGraph()
        graph.add_variable("x0", Pose2(0.0, 0.0, 0.0))
        noise = NoiseModel.isotropic(2, 0.1, loss="huber", loss_scale=1.0)
        for factor in simulator.make_factors([Pose2(0.0, 0.0, -0.4)], noise_model=noise):
            graph.add_factor(factor)

        result = ManifoldSolver().solve(graph)

        assert result.success
        assert graph.get_variable("x0").value.theta == pytest.approx(-0.4, abs=1e-4)

    def test_diagnostics_can_be_skipped(self):
        """Disabling diagnostics still solves but reports nothing extra."""
        graph = heading_graph()

        result = ManifoldSolver(SolverSettings(compute_diagnostics=False).to_options()).solve(graph)

        assert result.success
        assert graph.get_variable("x0").value.theta == pytest.approx(0.7, abs=1e-4)
        assert result.residuals == {}
        assert result.unconstrained_dofs == []
        assert result.largest_residuals == []
        assert result.statistics == {}

    def test_residual_statistics_reported(self):
        """Residual statistics reach the result and agree with the final cost."""
        simulator = MagnetometerSimulator(1.0, np.array([1.0, 0.0]), sigma=0.1, seed=5)
        truth = Pose2(0.0, 0.0, 0.4)
        graph = FactorGraph()
        graph.add_variable("x0", Pose2())
        for factor in simulator.make_factors([truth, truth, truth], keys=["x0", "x0", "x0"]):
            graph.add_factor(factor)

        result = ManifoldSolver().solve(graph)

        assert result.final_cost > 0
        assert result.statistics["cost"] == pytest.approx(result.final_cost, rel=1e-9)
        assert set(result.statistics) == {"rms", "max_abs", "cost"}
