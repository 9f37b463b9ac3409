"""Exceptions raised by ASQP-JAX.

Configuration problems are reported when the problem or the engine options
are built. Everything that goes wrong while solving derives from
:class:`QPSolveError`.
"""


class QPEngineError(Exception):
    """Base class for all errors raised by the package."""


class QPConfigurationError(QPEngineError, ValueError):
    """Invalid problem setup or engine options, including malformed arrays
    passed to the engine for evaluation.
    """


class QPSolveError(QPEngineError, RuntimeError):
    """A solve call could not produce a trustworthy solution."""


class ConvergenceError(QPSolveError):
    """The iteration budget ran out without any feasible iterate."""


class BoundsMismatchError(QPSolveError):
    """The returned point violates a bound by more than the tolerance."""


class SingularSystemError(QPSolveError):
    """A linear system stayed degenerate after the least-squares fallback."""


class InfeasibleSolutionError(QPSolveError):
    """The converged point violates the equality or inequality constraints."""
