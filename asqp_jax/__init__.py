"""ASQP-JAX: dense convex quadratic programming in JAX.

This package solves quadratic programs

    minimize    (1/2) x^T Q x + c^T x
    subject to  A_eq x = b_eq,  A_ineq x <= b_ineq,  lower <= x <= upper

with a primal active-set method over KKT systems. It targets small to
medium dense problems solved eagerly; double precision
(``jax_enable_x64``) is expected.
"""

from asqp_jax.clamping import BoundsClamping, clamp_to_bounds
from asqp_jax.constraints import augment_inequalities, bound_rows
from asqp_jax.diagnostics import (
    check_bounds,
    check_equality,
    check_inequality,
    constraint_violation,
    objective_value,
)
from asqp_jax.engine import QPEngine, QPEngineOptions
from asqp_jax.exceptions import (
    BoundsMismatchError,
    ConvergenceError,
    InfeasibleSolutionError,
    QPConfigurationError,
    QPEngineError,
    QPSolveError,
    SingularSystemError,
)
from asqp_jax.problem import QPProblem, QPProblemConfiguration, create_problem
from asqp_jax.qp_solver import QPSolution, solve_active_set
from asqp_jax.types import ConfigureFn, Matrix, Scalar, Vector

__all__ = [
    # Engine
    "QPEngine",
    "QPEngineOptions",
    "QPSolution",
    # Problem
    "QPProblem",
    "QPProblemConfiguration",
    "create_problem",
    # Solver stages
    "augment_inequalities",
    "bound_rows",
    "solve_active_set",
    "clamp_to_bounds",
    "BoundsClamping",
    # Diagnostics
    "objective_value",
    "check_equality",
    "check_inequality",
    "check_bounds",
    "constraint_violation",
    # Errors
    "QPEngineError",
    "QPConfigurationError",
    "QPSolveError",
    "ConvergenceError",
    "BoundsMismatchError",
    "InfeasibleSolutionError",
    "SingularSystemError",
    # Types
    "ConfigureFn",
    "Scalar",
    "Vector",
    "Matrix",
]
