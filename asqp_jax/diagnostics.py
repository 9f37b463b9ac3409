"""Objective evaluation and feasibility checks.

These helpers are used inside the active-set loop (to pick the best feasible
iterate) and by :class:`asqp_jax.engine.QPEngine` to let callers verify a
solution after the fact.
"""

from typing import Optional

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asqp_jax.types import Scalar, Vector


@jaxtyped(typechecker=beartype)
def objective_value(
    matrix_q: Float[Array, "n n"],
    vector_c: Float[Array, " n"],
    x: Float[Array, " n"],
) -> Scalar:
    """Compute F(x) = (1/2) x^T Q x + c^T x.

    Args:
        matrix_q: Quadratic term Q.
        vector_c: Linear term c.
        x: Point at which to evaluate.

    Returns:
        The objective value F(x).
    """
    return 0.5 * jnp.dot(x, matrix_q @ x) + jnp.dot(vector_c, x)


@jaxtyped(typechecker=beartype)
def check_equality(
    matrix_a: Float[Array, "m n"],
    vector_b: Float[Array, " m"],
    x: Float[Array, " n"],
    tol: float,
) -> bool:
    """Return True when ||A x - b||_2 < tol.

    An empty constraint block is always satisfied.
    """
    return bool(jnp.linalg.norm(matrix_a @ x - vector_b) < tol)


@jaxtyped(typechecker=beartype)
def check_inequality(
    matrix_a: Float[Array, "m n"],
    vector_b: Float[Array, " m"],
    x: Float[Array, " n"],
    tol: float,
) -> bool:
    """Return True when every component of A x - b is at most tol."""
    return bool(jnp.all(matrix_a @ x - vector_b <= tol))


@jaxtyped(typechecker=beartype)
def check_bounds(
    lower_bounds: Optional[Float[Array, " n"]],
    upper_bounds: Optional[Float[Array, " n"]],
    x: Float[Array, " n"],
) -> bool:
    """Return True when lower <= x <= upper.

    A missing bound is treated as -inf / +inf. The comparison is exact: use
    :func:`asqp_jax.clamping.clamp_to_bounds` first to absorb rounding noise.
    """
    if lower_bounds is not None and bool(jnp.any(x < lower_bounds)):
        return False
    if upper_bounds is not None and bool(jnp.any(x > upper_bounds)):
        return False
    return True


@jaxtyped(typechecker=beartype)
def constraint_violation(
    matrix_a: Float[Array, "m n"],
    vector_b: Float[Array, " m"],
    x: Vector,
) -> Scalar:
    """Largest positive residual of A x <= b (0 when feasible or empty)."""
    residual = matrix_a @ x - vector_b
    return jnp.max(jnp.concatenate([jnp.zeros((1,)), residual]))
