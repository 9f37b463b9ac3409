"""Bound constraints as inequality rows.

The active-set solver only knows about A_eq x = b_eq and A_ineq x <= b_ineq.
Element-wise bounds are therefore folded into extra inequality rows before a
solve:

- lower bounds ``lower <= x`` become ``-I x <= -lower``
- upper bounds ``x <= upper`` become ``I x <= upper``

Lower-bound rows come first, then upper-bound rows, both after the problem's
own inequality rows. The augmented system is derived data: it is rebuilt for
every solve and the problem itself is never modified.
"""

from typing import Optional

import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asqp_jax.problem import QPProblem


@jaxtyped(typechecker=beartype)
def bound_rows(
    size: int,
    lower_bounds: Optional[Float[Array, " n"]],
    upper_bounds: Optional[Float[Array, " n"]],
) -> tuple[Float[Array, "m_bounds n"], Float[Array, " m_bounds"]]:
    """Build the inequality block encoding the bounds.

    Args:
        size: Number of decision variables n.
        lower_bounds: Lower bounds or None.
        upper_bounds: Upper bounds or None.

    Returns:
        Tuple ``(A_bounds, b_bounds)`` with up to 2n rows.
    """
    identity = jnp.eye(size)
    rows = [jnp.zeros((0, size))]
    rhs = [jnp.zeros((0,))]

    if lower_bounds is not None:
        rows.append(-identity)
        rhs.append(-lower_bounds)

    if upper_bounds is not None:
        rows.append(identity)
        rhs.append(upper_bounds)

    return jnp.concatenate(rows, axis=0), jnp.concatenate(rhs)


def augment_inequalities(
    problem: QPProblem,
) -> tuple[Float[Array, "m_aug n"], Float[Array, " m_aug"]]:
    """Append the bound rows of ``problem`` to its inequality system.

    Args:
        problem: The problem to normalize.

    Returns:
        Tuple ``(A_aug, b_aug)``; equal to the problem's own inequality
        system when no bounds are configured.
    """
    a_bounds, b_bounds = bound_rows(
        problem.size, problem.lower_bounds, problem.upper_bounds
    )
    matrix = jnp.concatenate([problem.matrix_a_ineq, a_bounds], axis=0)
    vector = jnp.concatenate([problem.vector_b_ineq, b_bounds])
    return matrix, vector
