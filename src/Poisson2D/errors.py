"""Exception types for the distributed Poisson solver.

Every failure is fail-fast: the entry points log the error and terminate
the whole MPI job. Errors raised identically on all ranks (configuration,
broadcast input errors, CG breakdown) exit cleanly; rank-local errors
(allocation) abort the communicator.
"""


class Poisson2DError(Exception):
    """Base class for all solver errors."""


class ConfigError(Poisson2DError, ValueError):
    """Invalid run configuration (process grid shape, solver name, ...)."""


class InputError(Poisson2DError, IOError):
    """Missing or malformed problem description."""


class AllocationError(Poisson2DError, MemoryError):
    """Local tile or solver buffers could not be allocated."""


class NumericalBreakdownError(Poisson2DError, ArithmeticError):
    """Conjugate gradient step length is undefined (zero or non-finite p.Ap)."""
