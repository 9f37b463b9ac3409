"""Quadratic programming problem model and its builder.

A problem has the form:
    minimize    F(x) = (1/2) x^T Q x + c^T x
    subject to  A_eq x = b_eq
                A_ineq x <= b_ineq
                lower <= x <= upper

Problems are assembled with :func:`create_problem`, which hands a
:class:`QPProblemConfiguration` to a user callback. The configuration only
records the calls it receives as tagged entries. A single finalization pass
then infers the problem size, validates every dimension against it and
materializes the immutable :class:`QPProblem`.

Example:
    >>> import jax.numpy as jnp
    >>> from asqp_jax import create_problem
    >>>
    >>> problem = create_problem(
    ...     lambda cfg: cfg.minimizing(2.0 * jnp.eye(2), jnp.array([-4.0, -6.0]))
    ...     .with_lower_bounds(jnp.zeros(2))
    ... )
    >>> problem.size
    2
"""

from typing import Any, NamedTuple, Optional

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from asqp_jax.exceptions import QPConfigurationError
from asqp_jax.types import ConfigureFn
from asqp_jax.utils import as_matrix, as_vector


class QPProblem(eqx.Module):
    """Immutable dense quadratic program.

    Missing pieces of a configuration are materialized as empty or zero
    arrays, so every field except the bounds is always present.

    Attributes:
        size: Number of decision variables n.
        matrix_q: Quadratic term Q (n x n), assumed symmetric positive
            semidefinite.
        vector_c: Linear term c (n,).
        matrix_a_eq: Equality constraint matrix (m_eq x n).
        vector_b_eq: Equality constraint right-hand side (m_eq,).
        matrix_a_ineq: Inequality constraint matrix (m_ineq x n).
        vector_b_ineq: Inequality constraint right-hand side (m_ineq,).
        lower_bounds: Optional element-wise lower bounds (n,).
        upper_bounds: Optional element-wise upper bounds (n,).
    """

    size: int = eqx.field(static=True)
    matrix_q: Float[Array, "n n"]
    vector_c: Float[Array, " n"]
    matrix_a_eq: Float[Array, "m_eq n"]
    vector_b_eq: Float[Array, " m_eq"]
    matrix_a_ineq: Float[Array, "m_ineq n"]
    vector_b_ineq: Float[Array, " m_ineq"]
    lower_bounds: Optional[Float[Array, " n"]] = None
    upper_bounds: Optional[Float[Array, " n"]] = None

    @property
    def n_eq_constraints(self) -> int:
        return self.matrix_a_eq.shape[0]

    @property
    def n_ineq_constraints(self) -> int:
        return self.matrix_a_ineq.shape[0]


# Tagged configuration entries, recorded in call order.


class _Minimizing(NamedTuple):
    matrix_q: jax.Array
    vector_c: jax.Array


class _Equality(NamedTuple):
    matrix_a: jax.Array
    vector_b: jax.Array


class _Inequality(NamedTuple):
    matrix_a: jax.Array
    vector_b: jax.Array


class _LowerBounds(NamedTuple):
    bounds: jax.Array


class _UpperBounds(NamedTuple):
    bounds: jax.Array


class QPProblemConfiguration:
    """Fluent recorder for the pieces of a quadratic program.

    Every method returns ``self`` so that calls can be chained. Nothing is
    validated until :meth:`build` runs, apart from the rank of the arrays
    (matrices must be 2-D, vectors 1-D).
    """

    def __init__(self) -> None:
        self._entries: list[Any] = []

    def minimizing(self, matrix_q: Any, vector_c: Any) -> "QPProblemConfiguration":
        """Minimize F(x) = (1/2) x^T Q x + c^T x.

        Args:
            matrix_q: Symmetric (usually positive semidefinite) matrix Q.
            vector_c: Linear term c.

        Returns:
            Self.
        """
        self._entries.append(
            _Minimizing(as_matrix(matrix_q, "matrix Q"), as_vector(vector_c, "vector c"))
        )
        return self

    def minimizing_least_squares(
        self, matrix_a: Any, vector_b: Any
    ) -> "QPProblemConfiguration":
        """Minimize the squared residual ||A x - b||^2.

        Expands to Q = 2 A^T A and c = -2 A^T b. The constant b^T b is dropped,
        so F(x) differs from the squared residual by that constant.

        Args:
            matrix_a: Design matrix A (k x n).
            vector_b: Target vector b (k,).

        Returns:
            Self.
        """
        matrix_a = as_matrix(matrix_a, "least squares matrix A")
        vector_b = as_vector(vector_b, "least squares vector b")
        if matrix_a.shape[0] != vector_b.shape[0]:
            raise QPConfigurationError(
                "The least squares matrix A row count must be equal to the "
                "vector b size."
            )
        return self.minimizing(2.0 * matrix_a.T @ matrix_a, -2.0 * matrix_a.T @ vector_b)

    def with_equality(self, matrix_a: Any, vector_b: Any) -> "QPProblemConfiguration":
        """Subject to A_eq x = b_eq. Repeated calls stack their rows."""
        self._entries.append(
            _Equality(as_matrix(matrix_a, "matrix Aeq"), as_vector(vector_b, "vector beq"))
        )
        return self

    def with_inequality(self, matrix_a: Any, vector_b: Any) -> "QPProblemConfiguration":
        """Subject to A_ineq x <= b_ineq. Repeated calls stack their rows."""
        self._entries.append(
            _Inequality(
                as_matrix(matrix_a, "matrix Aineq"), as_vector(vector_b, "vector bineq")
            )
        )
        return self

    def with_lower_bounds(self, lower_bounds: Any) -> "QPProblemConfiguration":
        """Subject to lower <= x."""
        self._entries.append(_LowerBounds(as_vector(lower_bounds, "lower bound")))
        return self

    def with_upper_bounds(self, upper_bounds: Any) -> "QPProblemConfiguration":
        """Subject to x <= upper."""
        self._entries.append(_UpperBounds(as_vector(upper_bounds, "upper bound")))
        return self

    def build(self) -> QPProblem:
        """Validate the recorded entries and materialize the problem.

        Raises:
            QPConfigurationError: If dimensions disagree, if ``minimizing`` or
                a bounds method was called more than once, or if no entry
                allows the problem size to be inferred.
        """
        size: Optional[int] = None

        def check_size(actual: int, message: str) -> None:
            nonlocal size
            if size is None:
                size = actual
            elif size != actual:
                raise QPConfigurationError(message.format(size=size))

        objective: Optional[_Minimizing] = None
        lower: Optional[jax.Array] = None
        upper: Optional[jax.Array] = None
        eq_blocks: list[_Equality] = []
        ineq_blocks: list[_Inequality] = []

        for entry in self._entries:
            if isinstance(entry, _Minimizing):
                rows, cols = entry.matrix_q.shape
                if rows != cols:
                    raise QPConfigurationError("The matrix Q must be a square matrix.")
                if cols != entry.vector_c.shape[0]:
                    raise QPConfigurationError(
                        "The vector c size must be equal to matrix Q columns/rows count."
                    )
                check_size(
                    cols,
                    "The vector c size must be {size} and the matrix Q must be "
                    "{size}x{size}.",
                )
                if objective is not None:
                    raise QPConfigurationError(
                        "Minimizing configuration method already called."
                    )
                objective = entry
            elif isinstance(entry, _Equality):
                if entry.matrix_a.shape[0] != entry.vector_b.shape[0]:
                    raise QPConfigurationError(
                        "The matrix Aeq row count must be equal to the vector beq size."
                    )
                check_size(entry.matrix_a.shape[1], "The matrix Aeq must have {size} columns.")
                eq_blocks.append(entry)
            elif isinstance(entry, _Inequality):
                if entry.matrix_a.shape[0] != entry.vector_b.shape[0]:
                    raise QPConfigurationError(
                        "The matrix Aineq row count must be equal to the vector bineq size."
                    )
                check_size(
                    entry.matrix_a.shape[1], "The matrix Aineq must have {size} columns."
                )
                ineq_blocks.append(entry)
            elif isinstance(entry, _LowerBounds):
                check_size(entry.bounds.shape[0], "The lower bound must have {size} size.")
                if lower is not None:
                    raise QPConfigurationError(
                        "WithLowerBounds configuration method already called."
                    )
                lower = entry.bounds
            elif isinstance(entry, _UpperBounds):
                check_size(entry.bounds.shape[0], "The upper bound must have {size} size.")
                if upper is not None:
                    raise QPConfigurationError(
                        "WithUpperBounds configuration method already called."
                    )
                upper = entry.bounds

        if size is None:
            raise QPConfigurationError("Unable to evaluate QP problem size.")
        if size == 0:
            raise QPConfigurationError("The QP problem must have at least one variable.")

        if objective is None:
            matrix_q = jnp.zeros((size, size))
            vector_c = jnp.zeros((size,))
        else:
            matrix_q, vector_c = objective.matrix_q, objective.vector_c

        matrix_a_eq, vector_b_eq = _stack(eq_blocks, size)
        matrix_a_ineq, vector_b_ineq = _stack(ineq_blocks, size)

        return QPProblem(
            size=size,
            matrix_q=matrix_q,
            vector_c=vector_c,
            matrix_a_eq=matrix_a_eq,
            vector_b_eq=vector_b_eq,
            matrix_a_ineq=matrix_a_ineq,
            vector_b_ineq=vector_b_ineq,
            lower_bounds=lower,
            upper_bounds=upper,
        )


def _stack(blocks: list, size: int) -> tuple[jax.Array, jax.Array]:
    if not blocks:
        return jnp.zeros((0, size)), jnp.zeros((0,))
    matrix = jnp.concatenate([block.matrix_a for block in blocks], axis=0)
    vector = jnp.concatenate([block.vector_b for block in blocks])
    return matrix, vector


def create_problem(configure: ConfigureFn) -> QPProblem:
    """Create a problem from a configuration callback.

    Args:
        configure: Callable receiving a :class:`QPProblemConfiguration`.

    Returns:
        The validated, immutable problem.

    Raises:
        QPConfigurationError: See :meth:`QPProblemConfiguration.build`.
    """
    if configure is None:
        raise QPConfigurationError("A configuration callback is required.")
    configuration = QPProblemConfiguration()
    configure(configuration)
    return configuration.build()
