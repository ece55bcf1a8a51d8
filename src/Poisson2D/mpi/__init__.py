"""MPI topology, domain decomposition and halo communication.

This package provides:
- create_topology / compute_topology: 2D Cartesian process topology
- compute_local_domain / allocate_tile: floor-division domain splitting
- HaloExchanger: Strategies for halo exchange (numpy/datatype)
- SolverContext: Per-rank state threaded through the solvers
"""

from .topology import create_topology, compute_topology, validate_dims
from .decomposition import (
    split_axis,
    check_grid_fits,
    compute_local_domain,
    allocate_tile,
    all_local_domains,
)
from .halo import (
    HaloExchanger,
    NumpyHaloExchanger,
    DatatypeHaloExchanger,
    create_halo_exchanger,
)
from .context import SolverContext

__all__ = [
    "create_topology",
    "compute_topology",
    "validate_dims",
    "split_axis",
    "check_grid_fits",
    "compute_local_domain",
    "allocate_tile",
    "all_local_domains",
    "HaloExchanger",
    "NumpyHaloExchanger",
    "DatatypeHaloExchanger",
    "create_halo_exchanger",
    "SolverContext",
]
