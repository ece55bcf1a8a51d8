"""MPI 2D Poisson Solver package.

Steady-state solution of a 2D Poisson problem with fixed point sources,
distributed over a 2D Cartesian process grid. Each rank owns a rectangular
tile plus a one-cell halo that is exchanged with its neighbours every
iteration (strided MPI datatypes or packed numpy buffers).

Solvers
-------
- RedBlackSORSolver: red-black SOR (omega = 1.95), global max reduction
- ConjugateGradientSolver: CG with global sum reductions
"""

from .datastructures import (
    GlobalProblem,
    GlobalMetrics,
    LocalMetrics,
    ProcessTopology,
    SourcePoint,
)
from .errors import (
    Poisson2DError,
    ConfigError,
    InputError,
    AllocationError,
    NumericalBreakdownError,
)
from .tile import LocalTile
from .kernels import NumPyKernel, NumbaKernel
from .sources import parse_problem, read_problem, broadcast_problem, place_sources
from .mpi import (
    SolverContext,
    create_topology,
    compute_topology,
    compute_local_domain,
    allocate_tile,
    NumpyHaloExchanger,
    DatatypeHaloExchanger,
)
from .solvers import (
    RedBlackSORSolver,
    ConjugateGradientSolver,
    CGState,
    create_solver,
)
from .convergence import ConvergenceController, ConvergenceState
from .io import write_tile, read_tile_output
from .runner import solve_from_file, run_solver

__all__ = [
    # Data structures
    "GlobalProblem",
    "GlobalMetrics",
    "LocalMetrics",
    "ProcessTopology",
    "SourcePoint",
    "LocalTile",
    "CGState",
    # Errors
    "Poisson2DError",
    "ConfigError",
    "InputError",
    "AllocationError",
    "NumericalBreakdownError",
    # Kernels
    "NumPyKernel",
    "NumbaKernel",
    # Problem setup
    "parse_problem",
    "read_problem",
    "broadcast_problem",
    "place_sources",
    # MPI
    "SolverContext",
    "create_topology",
    "compute_topology",
    "compute_local_domain",
    "allocate_tile",
    "NumpyHaloExchanger",
    "DatatypeHaloExchanger",
    # Solvers
    "RedBlackSORSolver",
    "ConjugateGradientSolver",
    "create_solver",
    "ConvergenceController",
    "ConvergenceState",
    # I/O and running
    "write_tile",
    "read_tile_output",
    "solve_from_file",
    "run_solver",
]
