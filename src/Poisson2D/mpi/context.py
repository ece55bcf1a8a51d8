"""Per-process solver context.

SolverContext bundles everything a rank needs to take part in a solve:
- the Cartesian communicator and this rank's topology
- the broadcast problem description
- the halo-padded local tile (with sources placed)
- the halo exchange strategy (numpy buffers or MPI datatypes)

Solvers interact with this single object rather than managing MPI
details directly.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np
from mpi4py import MPI

from ..datastructures import GlobalProblem, ProcessTopology
from ..sources import broadcast_problem, place_sources
from ..tile import LocalTile
from .decomposition import allocate_tile
from .halo import create_halo_exchanger
from .topology import create_topology

log = logging.getLogger(__name__)


class SolverContext:
    """Distributed state of one rank.

    Parameters
    ----------
    comm : MPI.Comm
        Communicator whose ranks match ``topology`` (normally the Cartesian
        communicator returned by ``create_topology``).
    topology : ProcessTopology
        This rank's position and neighbours.
    problem : GlobalProblem
        Global problem description.
    tile : LocalTile
        This rank's tile.
    halo_exchange : str
        'custom' for MPI derived datatypes (default),
        'numpy' for packed buffer copies.

    Example
    -------
    >>> ctx = SolverContext.from_file("input.dat", dims=(2, 2))
    >>> p = ctx.allocate()    # Tile-shaped array with halo
    >>> ctx.sync_halos(p)     # Exchange halo data
    """

    def __init__(
        self,
        comm: MPI.Comm,
        topology: ProcessTopology,
        problem: GlobalProblem,
        tile: LocalTile,
        halo_exchange: str = "custom",
    ):
        self.comm = comm
        self.topology = topology
        self.problem = problem
        self.tile = tile
        self.halo_exchange_type = halo_exchange

        self.rank = topology.rank
        self.size = topology.size
        self.neighbors = topology.neighbors

        self._halo_exchanger = create_halo_exchanger(halo_exchange)
        self._halo_exchanger.setup(tile.dim)

    @classmethod
    def from_file(
        cls,
        input_file,
        dims: Sequence[int],
        comm: MPI.Comm = MPI.COMM_WORLD,
        halo_exchange: str = "custom",
        root: int = 0,
    ) -> "SolverContext":
        """Build topology, load and broadcast the problem, partition, place sources.

        Raises
        ------
        ConfigError
            Process grid does not match the communicator size.
        InputError
            Problem description missing or malformed (raised on all ranks).
        AllocationError
            Local tile could not be allocated.
        """
        cart_comm, topology = create_topology(comm, dims)
        log.info(
            f"({topology.rank}) (x,y)=({topology.coords[0]},{topology.coords[1]})"
        )

        problem, sources = broadcast_problem(cart_comm, input_file, root=root)
        if topology.rank == root:
            log.info(
                f"Problem {problem.nx}x{problem.ny}, precision goal "
                f"{problem.precision_goal:g}, max {problem.max_iter} iterations, "
                f"{len(sources)} sources"
            )

        tile = allocate_tile(problem, topology)
        n_placed = place_sources(tile, problem, sources)
        log.debug(f"({topology.rank}) {tile}, {n_placed} sources")

        return cls(cart_comm, topology, problem, tile, halo_exchange=halo_exchange)

    def allocate(self, dtype=np.float64) -> np.ndarray:
        """Allocate a tile-shaped array with halo."""
        return self.tile.allocate(dtype)

    def sync_halos(self, arr: np.ndarray):
        """Exchange halo data with all neighbours."""
        self._halo_exchanger.exchange(arr, self.comm, self.neighbors)

    def get_halo_size_bytes(self) -> int:
        """Bytes transferred per halo exchange (float64, send + receive)."""
        nx, ny = self.tile.interior_shape
        face = {"top": nx, "bottom": nx, "left": ny, "right": ny}
        return sum(
            face[d] * 8 * 2 for d, n in self.neighbors.items() if n is not None
        )

    def gather_field(self, arr: Optional[np.ndarray] = None, root: int = 0):
        """Assemble the global interior field on ``root``.

        Returns an ``(nx, ny)`` array on ``root`` (global cell (gx, gy) at
        index ``[gx - 1, gy - 1]``), None elsewhere.
        """
        if arr is None:
            arr = self.tile.phi
        local = (self.tile.offset, np.array(self.tile.interior(arr)))
        parts = self.comm.gather(local, root=root)
        if self.rank != root:
            return None

        field = np.zeros(self.problem.gridsize)
        for (ox, oy), data in parts:
            w, h = data.shape
            field[ox:ox + w, oy:oy + h] = data
        return field
