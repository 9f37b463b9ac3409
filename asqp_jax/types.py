"""Type definitions for ASQP-JAX.

This module contains type aliases used throughout the package.
All array types use jaxtyping for runtime shape checking with beartype.
"""

from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from jaxtyping import Array, Float

if TYPE_CHECKING:
    from asqp_jax.problem import QPProblemConfiguration

# Type aliases for common array shapes
Scalar = Float[Array, ""]
Vector = Float[Array, " n"]
Matrix = Float[Array, "m n"]

# Problem configuration callback: receives the builder and chains calls on it.
# The return value is ignored so that both ``lambda cfg: cfg.minimizing(...)``
# and plain ``def`` blocks returning None are accepted.
ConfigureFn = Callable[["QPProblemConfiguration"], Any]
