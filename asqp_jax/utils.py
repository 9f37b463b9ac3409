from typing import Any

import jax
import jax.numpy as jnp

from asqp_jax.exceptions import QPConfigurationError


def as_vector(value: Any, name: str) -> jax.Array:
    """Convert ``value`` to a 1-D floating point JAX array."""
    arr = jnp.asarray(value, dtype=float)
    if arr.ndim != 1:
        raise QPConfigurationError(
            f"The {name} must be a vector, got an array of shape {arr.shape}."
        )
    return arr


def as_matrix(value: Any, name: str) -> jax.Array:
    """Convert ``value`` to a 2-D floating point JAX array."""
    arr = jnp.asarray(value, dtype=float)
    if arr.ndim != 2:
        raise QPConfigurationError(
            f"The {name} must be a matrix, got an array of shape {arr.shape}."
        )
    return arr


def x64_enabled() -> bool:
    """Return True when JAX creates double precision arrays by default."""
    return jnp.zeros(()).dtype == jnp.float64
