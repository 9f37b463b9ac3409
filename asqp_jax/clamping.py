"""Post-solve bounds clamping.

The active-set solver treats bounds as ordinary inequality rows, so a
returned point can sit a rounding error outside a bound. Clamping snaps such
coordinates exactly onto the bound. A coordinate that is further away than
the tolerance means the solver result cannot be trusted, and clamping fails
instead of hiding the violation.
"""

import logging
from typing import Optional

import equinox as eqx
import jax.numpy as jnp
from beartype import beartype
from jaxtyping import Array, Float, jaxtyped

from asqp_jax.exceptions import BoundsMismatchError

logger = logging.getLogger(__name__)


@jaxtyped(typechecker=beartype)
def clamp_to_bounds(
    x: Float[Array, " n"],
    lower_bounds: Optional[Float[Array, " n"]],
    upper_bounds: Optional[Float[Array, " n"]],
    tol: float,
) -> Float[Array, " n"]:
    """Snap near-feasible coordinates of ``x`` onto their bounds.

    Args:
        x: Candidate solution.
        lower_bounds: Lower bounds or None.
        upper_bounds: Upper bounds or None.
        tol: Largest bound violation that is silently corrected.

    Returns:
        A new array equal to ``x`` except for the snapped coordinates. Points
        already within their bounds are returned unchanged.

    Raises:
        BoundsMismatchError: If a coordinate violates a bound by more than tol.
    """
    if lower_bounds is not None:
        below = x < lower_bounds
        if bool(jnp.any(lower_bounds - x > tol)):
            raise BoundsMismatchError("Couldn't match lower bounds.")
        if bool(jnp.any(below)):
            logger.debug("Clamping %d coordinate(s) to lower bounds", int(jnp.sum(below)))
            x = jnp.where(below, lower_bounds, x)

    if upper_bounds is not None:
        above = x > upper_bounds
        if bool(jnp.any(x - upper_bounds > tol)):
            raise BoundsMismatchError("Couldn't match upper bounds.")
        if bool(jnp.any(above)):
            logger.debug("Clamping %d coordinate(s) to upper bounds", int(jnp.sum(above)))
            x = jnp.where(above, upper_bounds, x)

    return x


class BoundsClamping(eqx.Module):
    """Bounds and tolerance bundled for repeated clamping.

    Attributes:
        lower_bounds: Lower bounds or None.
        upper_bounds: Upper bounds or None.
        tolerance: Largest bound violation that is silently corrected.
    """

    lower_bounds: Optional[Float[Array, " n"]]
    upper_bounds: Optional[Float[Array, " n"]]
    tolerance: float = 1e-8

    def apply_to(self, x: Float[Array, " n"]) -> Float[Array, " n"]:
        """Return ``x`` clamped onto the bounds. See :func:`clamp_to_bounds`."""
        return clamp_to_bounds(x, self.lower_bounds, self.upper_bounds, self.tolerance)
