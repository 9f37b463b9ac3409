"""Primal active-set solver for dense convex QPs.

Solves:
    minimize    (1/2) x^T Q x + c^T x
    subject to  A_eq x = b_eq
                A_ineq x <= b_ineq

Bounds are expected to be already folded into ``A_ineq`` (see
:mod:`asqp_jax.constraints`).

The method starts from the minimum-norm point of the equality hyperplane and
keeps a working set of inequality rows that are treated as equalities. Each
iteration solves the KKT system

    [ Q        A_act^T ] [ dx  ]   [ -(Q x + c)        ]
    [ A_act    0       ] [ lam ] = [ b_act - A_act x   ]

where ``A_act`` stacks the equality rows and then the working-set rows in
working-set order. A step that is too short to matter means the working set
is optimal unless one of its multipliers is negative, in which case that row
is released. Otherwise a ratio test keeps the step inside the inactive
inequalities and the first blocking row joins the working set.

For an inequality ``a^T x <= b`` the Lagrangian is:
    L(x, lam) = F(x) + lam (a^T x - b)

so a binding row has lam >= 0 at the optimum.

Feasible iterates reached by a full, unblocked step are remembered; when the
iteration budget runs out the best of them is returned instead of failing.
"""

import logging
from collections.abc import Sequence
from typing import NamedTuple, Optional

import equinox as eqx
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Bool, Float, jaxtyped

from asqp_jax.diagnostics import check_equality, check_inequality, objective_value
from asqp_jax.exceptions import ConvergenceError, SingularSystemError

logger = logging.getLogger(__name__)

# KKT solutions whose residual exceeds this fraction of the right-hand side
# norm are replaced by the least-squares solution.
KKT_RESIDUAL_RTOL = 1e-6


class QPSolution(eqx.Module):
    """Result of a solve.

    Attributes:
        x: The solution vector.
        iteration_count: Number of active-set iterations consumed. Equal to
            the iteration budget when the best feasible iterate is returned.
        converged: False when the budget ran out and ``x`` is the best
            feasible iterate rather than a verified optimum.
    """

    x: Float[Array, " n"]
    iteration_count: int = eqx.field(static=True)
    converged: bool = eqx.field(static=True, default=True)


class KKTSystem(NamedTuple):
    """KKT matrix for one working set."""

    matrix: Float[Array, "k k"]
    a_active: Float[Array, "m_act n"]
    b_active: Float[Array, " m_act"]


def build_kkt_system(
    matrix_q: Float[Array, "n n"],
    matrix_a_eq: Float[Array, "m_eq n"],
    vector_b_eq: Float[Array, " m_eq"],
    matrix_a_ineq: Float[Array, "m_ineq n"],
    vector_b_ineq: Float[Array, " m_ineq"],
    active_set: Sequence[int],
) -> KKTSystem:
    """Assemble the KKT matrix for the equality rows plus ``active_set``.

    Args:
        matrix_q: Quadratic term Q.
        matrix_a_eq: Equality constraint matrix.
        vector_b_eq: Equality constraint right-hand side.
        matrix_a_ineq: (Augmented) inequality constraint matrix.
        vector_b_ineq: (Augmented) inequality right-hand side.
        active_set: Indices of inequality rows treated as equalities.

    Returns:
        KKTSystem with the block matrix and the active rows.
    """
    if active_set:
        indices = jnp.asarray(active_set, dtype=jnp.int32)
        a_active = jnp.concatenate([matrix_a_eq, matrix_a_ineq[indices]], axis=0)
        b_active = jnp.concatenate([vector_b_eq, vector_b_ineq[indices]])
    else:
        a_active, b_active = matrix_a_eq, vector_b_eq
    m = a_active.shape[0]

    top = jnp.concatenate([matrix_q, a_active.T], axis=1)
    bottom = jnp.concatenate([a_active, jnp.zeros((m, m))], axis=1)
    matrix = jnp.concatenate([top, bottom], axis=0)

    return KKTSystem(matrix=matrix, a_active=a_active, b_active=b_active)


def solve_kkt(
    kkt: KKTSystem, rhs: Float[Array, " k"], n: int
) -> Float[Array, " k"]:
    """Solve the KKT system, falling back to least squares when degenerate.

    The direct solve is always tried first. It is discarded when its primal
    part is not finite, or when its residual shows that a singular matrix
    produced a finite but meaningless solution. The fallback applies the
    pseudo-inverse, i.e. returns the minimum-norm least-squares solution, and
    only drops singular values at the level of rounding noise.

    Raises:
        SingularSystemError: If the fallback direction is not finite either.
    """
    sol = jnp.linalg.solve(kkt.matrix, rhs)
    if bool(jnp.all(jnp.isfinite(sol[:n]))):
        residual = jnp.linalg.norm(kkt.matrix @ sol - rhs)
        if bool(residual <= KKT_RESIDUAL_RTOL * jnp.linalg.norm(rhs)):
            return sol

    logger.debug("KKT system is singular, using the pseudo-inverse solution")
    sol = jnp.linalg.pinv(kkt.matrix) @ rhs
    if not bool(jnp.all(jnp.isfinite(sol[:n]))):
        raise SingularSystemError("The KKT system has no finite least-squares solution.")
    return sol


def project_onto_equalities(
    matrix_a_eq: Float[Array, "m_eq n"],
    vector_b_eq: Float[Array, " m_eq"],
    x: Float[Array, " n"],
) -> Float[Array, " n"]:
    """Move ``x`` onto A_eq x = b_eq with the smallest possible correction.

    Solves (A A^T) lam = b - A x and returns x + A^T lam.

    Raises:
        SingularSystemError: If A A^T cannot be solved (dependent rows).
    """
    if matrix_a_eq.shape[0] == 0:
        return x

    aat = matrix_a_eq @ matrix_a_eq.T
    lam = jnp.linalg.solve(aat, vector_b_eq - matrix_a_eq @ x)
    projected = x + matrix_a_eq.T @ lam
    if not bool(jnp.all(jnp.isfinite(projected))):
        raise SingularSystemError(
            "Unable to project onto the equality constraints; "
            "the matrix Aeq must have independent rows."
        )
    return projected


def _inactive_mask(m: int, active_set: Sequence[int]) -> Bool[Array, " m"]:
    mask = jnp.ones(m, dtype=bool)
    if not active_set:
        return mask
    return mask.at[jnp.asarray(active_set, dtype=jnp.int32)].set(False)


def _first_true(mask: Bool[Array, " m"]) -> Optional[int]:
    if mask.shape[0] == 0 or not bool(jnp.any(mask)):
        return None
    return int(jnp.argmax(mask))


def _ratio_test(
    matrix_a_ineq: Float[Array, "m n"],
    vector_b_ineq: Float[Array, " m"],
    x: Float[Array, " n"],
    dx: Float[Array, " n"],
    inactive: Bool[Array, " m"],
    tol: float,
) -> tuple[float, Optional[int]]:
    """Longest step in [0, 1] along dx that keeps inactive rows satisfied.

    Returns:
        Tuple ``(alpha, blocking)``; ``blocking`` is the lowest row index
        attaining the minimal step, or None when the full step is allowed.
    """
    if matrix_a_ineq.shape[0] == 0:
        return 1.0, None

    a_dx = matrix_a_ineq @ dx
    slack = vector_b_ineq - matrix_a_ineq @ x
    candidates = inactive & (a_dx > tol)
    steps = jnp.where(candidates, slack / jnp.where(candidates, a_dx, 1.0), jnp.inf)

    blocking = int(jnp.argmin(steps))
    alpha = float(steps[blocking])
    if alpha < 1.0:
        return alpha, blocking
    return 1.0, None


@jaxtyped(typechecker=beartype)
def solve_active_set(
    matrix_q: Float[Array, "n n"],
    vector_c: Float[Array, " n"],
    matrix_a_eq: Float[Array, "m_eq n"],
    vector_b_eq: Float[Array, " m_eq"],
    matrix_a_ineq: Float[Array, "m_ineq n"],
    vector_b_ineq: Float[Array, " m_ineq"],
    tol: float = 1e-8,
    max_iter: int = 100,
) -> QPSolution:
    """Solve a convex QP with the primal active-set method.

    Args:
        matrix_q: Quadratic term Q (n x n), symmetric positive semidefinite.
        vector_c: Linear term c (n,).
        matrix_a_eq: Equality constraint matrix (m_eq x n).
        vector_b_eq: Equality constraint RHS (m_eq,).
        matrix_a_ineq: Inequality constraint matrix including bound rows.
        vector_b_ineq: Inequality constraint RHS including bound rows.
        tol: Convergence, multiplier and feasibility tolerance.
        max_iter: Maximum number of active-set iterations.

    Returns:
        QPSolution with the optimum, or with the best feasible iterate when
        the iteration budget runs out.

    Raises:
        ConvergenceError: If the budget runs out without a feasible iterate.
        SingularSystemError: If a linear system stays degenerate.
    """
    n = matrix_q.shape[0]
    m_eq = matrix_a_eq.shape[0]
    m_ineq = matrix_a_ineq.shape[0]

    x = project_onto_equalities(matrix_a_eq, vector_b_eq, jnp.zeros(n))

    # Equality rows are always active and never stored here.
    active_set: list[int] = []
    previous_active_count = -1
    kkt: Optional[KKTSystem] = None

    best_x: Optional[Float[Array, " n"]] = None
    best_fx = float("inf")

    for iteration in range(1, max_iter + 1):
        if kkt is None or previous_active_count != len(active_set):
            previous_active_count = len(active_set)
            kkt = build_kkt_system(
                matrix_q, matrix_a_eq, vector_b_eq, matrix_a_ineq, vector_b_ineq, active_set
            )

        rhs = jnp.concatenate(
            [-(matrix_q @ x + vector_c), kkt.b_active - kkt.a_active @ x]
        )
        sol = solve_kkt(kkt, rhs, n)
        dx = sol[:n]
        multipliers = sol[n:]
        dx_norm = float(jnp.linalg.norm(dx))

        if dx_norm < tol:
            released = _first_true(multipliers[m_eq:] < -tol)
            if released is None:
                logger.info(
                    "Converged after %d iteration(s) with %d active inequality row(s)",
                    iteration,
                    len(active_set),
                )
                return QPSolution(x=x, iteration_count=iteration)

            row = active_set.pop(released)
            logger.debug(
                "Iteration %d: releasing row %d (multiplier %.3e)",
                iteration,
                row,
                float(multipliers[m_eq + released]),
            )
            continue

        inactive = _inactive_mask(m_ineq, active_set)
        alpha, blocking = _ratio_test(
            matrix_a_ineq, vector_b_ineq, x, dx, inactive, tol
        )
        x = x + alpha * dx

        if blocking is None:
            # Rounding in the step can leave a row slightly violated.
            blocking = _first_true(
                inactive & (matrix_a_ineq @ x - vector_b_ineq > tol)
            )

        if blocking is not None:
            active_set.append(blocking)
            logger.debug(
                "Iteration %d: step %.3e, adding row %d", iteration, alpha, blocking
            )
        elif check_equality(matrix_a_eq, vector_b_eq, x, tol) and check_inequality(
            matrix_a_ineq, vector_b_ineq, x, tol
        ):
            fx = float(objective_value(matrix_q, vector_c, x))
            if fx < best_fx:
                best_x, best_fx = x, fx

    if best_x is not None:
        logger.warning(
            "Max iterations (%d) reached, returning the best feasible iterate "
            "(F(x) = %.6e)",
            max_iter,
            best_fx,
        )
        return QPSolution(x=best_x, iteration_count=max_iter, converged=False)

    raise ConvergenceError("Max iterations reached without convergence.")
