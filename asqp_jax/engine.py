"""Quadratic programming engine.

:class:`QPEngine` is the entry point of the package. It builds problems,
solves them and verifies candidate points, applying one set of
:class:`QPEngineOptions` to every numerical test.

A solve runs three stages:

1. The bounds of the problem are folded into extra inequality rows.
2. The active-set solver iterates to a candidate point.
3. The candidate is clamped onto the bounds, absorbing rounding noise.

Example:
    >>> import jax
    >>> import jax.numpy as jnp
    >>> from asqp_jax import QPEngine
    >>>
    >>> jax.config.update("jax_enable_x64", True)
    >>> engine = QPEngine()
    >>> problem = engine.create_problem(
    ...     lambda cfg: cfg.minimizing(2.0 * jnp.eye(2), jnp.array([-4.0, -6.0]))
    ... )
    >>> solution = engine.solve(problem)
    >>> solution.iteration_count
    2
"""

import logging
import math
from typing import Any

import equinox as eqx
import jax

from asqp_jax.clamping import clamp_to_bounds
from asqp_jax.constraints import augment_inequalities
from asqp_jax.diagnostics import (
    check_bounds,
    check_equality,
    check_inequality,
    constraint_violation,
    objective_value,
)
from asqp_jax.exceptions import InfeasibleSolutionError, QPConfigurationError
from asqp_jax.problem import QPProblem, create_problem
from asqp_jax.qp_solver import QPSolution, solve_active_set
from asqp_jax.types import ConfigureFn
from asqp_jax.utils import as_vector, x64_enabled

logger = logging.getLogger(__name__)


class QPEngineOptions(eqx.Module):
    """Engine-wide numerical settings.

    Attributes:
        tolerance: Tolerance used for the step-size convergence test, the
            multiplier sign test, constraint checks and bounds clamping.
        max_iterations: Active-set iteration budget of a single solve.
    """

    tolerance: float = eqx.field(static=True, default=1e-8)
    max_iterations: int = eqx.field(static=True, default=100)

    def __check_init__(self):
        tolerance = self.tolerance
        if (
            isinstance(tolerance, bool)
            or not isinstance(tolerance, (int, float))
            or not math.isfinite(tolerance)
            or tolerance <= 0
        ):
            raise QPConfigurationError(
                f"The tolerance must be a positive finite number, got {tolerance!r}."
            )
        max_iterations = self.max_iterations
        if (
            isinstance(max_iterations, bool)
            or not isinstance(max_iterations, int)
            or max_iterations < 1
        ):
            raise QPConfigurationError(
                f"The max_iterations must be a positive integer, got {max_iterations!r}."
            )


class QPEngine(eqx.Module):
    """Dense convex QP engine based on a primal active-set method.

    The engine holds no mutable state, so a single instance can serve
    concurrent callers as long as they do not share problems being rebuilt.

    Attributes:
        options: Numerical settings.
    """

    options: QPEngineOptions = eqx.field(static=True, default_factory=QPEngineOptions)

    @property
    def tolerance(self) -> float:
        return float(self.options.tolerance)

    def create_problem(self, configure: ConfigureFn) -> QPProblem:
        """Create and configure a problem.

        Args:
            configure: Callable receiving a
                :class:`~asqp_jax.problem.QPProblemConfiguration`.

        Returns:
            The validated problem.

        Raises:
            QPConfigurationError: On inconsistent dimensions, repeated
                ``minimizing``/bounds calls or an undeterminable size.
        """
        return create_problem(configure)

    def solve(self, problem: QPProblem) -> QPSolution:
        """Solve ``problem``.

        Args:
            problem: The problem to solve.

        Returns:
            QPSolution whose ``x`` satisfies the bounds exactly.

        Raises:
            ConvergenceError: If no feasible iterate was found within the
                iteration budget.
            BoundsMismatchError: If the solver result violates a bound by more
                than the tolerance.
            InfeasibleSolutionError: If the converged point violates the
                equality or inequality constraints.
            SingularSystemError: If a linear system stays degenerate.
        """
        if not x64_enabled():
            logger.warning(
                "jax_enable_x64 is disabled; single precision is usually too "
                "coarse for a tolerance of %.1e",
                self.tolerance,
            )

        matrix_a_ineq, vector_b_ineq = augment_inequalities(problem)
        logger.debug(
            "Solving QP with %d variable(s), %d equality row(s), %d inequality "
            "row(s) and %d bound row(s)",
            problem.size,
            problem.n_eq_constraints,
            problem.n_ineq_constraints,
            matrix_a_ineq.shape[0] - problem.n_ineq_constraints,
        )

        solution = solve_active_set(
            problem.matrix_q,
            problem.vector_c,
            problem.matrix_a_eq,
            problem.vector_b_eq,
            matrix_a_ineq,
            vector_b_ineq,
            tol=self.tolerance,
            max_iter=self.options.max_iterations,
        )

        # Iterations started outside an inequality can stop at a stationary
        # point that never entered the feasible region. The check runs before
        # clamping, which may move several coordinates by up to the tolerance.
        if not check_equality(
            problem.matrix_a_eq, problem.vector_b_eq, solution.x, self.tolerance
        ) or not check_inequality(
            problem.matrix_a_ineq, problem.vector_b_ineq, solution.x, self.tolerance
        ):
            violation = float(
                constraint_violation(
                    problem.matrix_a_ineq, problem.vector_b_ineq, solution.x
                )
            )
            raise InfeasibleSolutionError(
                "The solution violates the constraints "
                f"(largest inequality residual {violation:.3e})."
            )

        x = clamp_to_bounds(
            solution.x, problem.lower_bounds, problem.upper_bounds, self.tolerance
        )

        logger.info(
            "Solved QP with %d variable(s) in %d iteration(s), F(x) = %.6e",
            problem.size,
            solution.iteration_count,
            float(objective_value(problem.matrix_q, problem.vector_c, x)),
        )
        return eqx.tree_at(lambda s: s.x, solution, x)

    def fx(self, problem: QPProblem, x: Any) -> float:
        """Compute F(x) = (1/2) x^T Q x + c^T x for ``problem``."""
        point = self._as_point(problem, x)
        return float(objective_value(problem.matrix_q, problem.vector_c, point))

    def check_equality_constraints(self, problem: QPProblem, x: Any) -> bool:
        """Return True when ||A_eq x - b_eq||_2 < tolerance."""
        point = self._as_point(problem, x)
        return check_equality(
            problem.matrix_a_eq, problem.vector_b_eq, point, self.tolerance
        )

    def check_inequality_constraints(self, problem: QPProblem, x: Any) -> bool:
        """Return True when A_ineq x - b_ineq <= tolerance component-wise.

        Only the problem's own inequality rows are checked; use
        :meth:`check_bounds_constraints` for the bounds.
        """
        point = self._as_point(problem, x)
        return check_inequality(
            problem.matrix_a_ineq, problem.vector_b_ineq, point, self.tolerance
        )

    def check_bounds_constraints(self, problem: QPProblem, x: Any) -> bool:
        """Return True when lower <= x <= upper."""
        point = self._as_point(problem, x)
        return check_bounds(problem.lower_bounds, problem.upper_bounds, point)

    @staticmethod
    def _as_point(problem: QPProblem, x: Any) -> jax.Array:
        point = as_vector(x, "vector x")
        if point.shape[0] != problem.size:
            raise QPConfigurationError(
                f"The vector x must have {problem.size} entries, got {point.shape[0]}."
            )
        return point
