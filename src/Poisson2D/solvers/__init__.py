"""Distributed Poisson solvers.

Both solvers iterate on the same local tile and share one contract
(initialize / step / residual / exchange_field):

- RedBlackSORSolver: red-black SOR, global max-change reduction
- ConjugateGradientSolver: CG, global sum reductions
"""

from ..errors import ConfigError
from .base import BaseSolver
from .cg import CGState, ConjugateGradientSolver
from .sor import DEFAULT_OMEGA, RedBlackSORSolver

SOLVERS = {
    RedBlackSORSolver.name: RedBlackSORSolver,
    ConjugateGradientSolver.name: ConjugateGradientSolver,
}


def create_solver(solver_type: str, context, **kwargs) -> BaseSolver:
    """Factory: 'sor' for red-black SOR, 'cg' for conjugate gradient."""
    try:
        cls = SOLVERS[solver_type]
    except KeyError:
        raise ConfigError(
            f"Unknown solver type: {solver_type}. Use one of {sorted(SOLVERS)}."
        ) from None
    return cls(context, **kwargs)


__all__ = [
    "BaseSolver",
    "CGState",
    "ConjugateGradientSolver",
    "DEFAULT_OMEGA",
    "RedBlackSORSolver",
    "SOLVERS",
    "create_solver",
]
