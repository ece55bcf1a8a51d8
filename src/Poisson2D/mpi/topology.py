"""2D Cartesian process topology."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

from mpi4py import MPI

from ..datastructures import ProcessTopology
from ..errors import ConfigError

log = logging.getLogger(__name__)

# Cartesian directions (MPI dimension index)
X_DIR, Y_DIR = 0, 1


def validate_dims(size: int, dims: Sequence[int]) -> Tuple[int, int]:
    """Check that the requested process grid matches the number of ranks."""
    if len(dims) != 2:
        raise ConfigError(f"Process grid must be 2D, got {tuple(dims)}")
    px, py = (int(d) for d in dims)
    if px < 1 or py < 1:
        raise ConfigError(f"Process grid dimensions must be positive, got ({px}, {py})")
    if px * py != size:
        raise ConfigError(
            f"Process grid dimensions do not match number of processes: "
            f"{px} x {py} != {size}"
        )
    return px, py


def _neighbor(rank: int) -> Optional[int]:
    return rank if rank >= 0 else None


def create_topology(
    comm: MPI.Comm, dims: Sequence[int]
) -> Tuple[MPI.Cartcomm, ProcessTopology]:
    """Create a non-periodic 2D Cartesian communicator.

    Rank reordering is allowed, so the returned topology carries the rank
    in the new communicator, which may differ from ``comm.Get_rank()``.

    Raises
    ------
    ConfigError
        If ``px * py`` does not equal the communicator size.
    """
    px, py = validate_dims(comm.Get_size(), dims)

    cart_comm = comm.Create_cart(dims=[px, py], periods=[False, False], reorder=True)

    rank = cart_comm.Get_rank()
    cx, cy = cart_comm.Get_coords(rank)

    top, bottom = cart_comm.Shift(Y_DIR, 1)
    left, right = cart_comm.Shift(X_DIR, 1)

    topology = ProcessTopology(
        rank=rank,
        coords=(cx, cy),
        dims=(px, py),
        neighbors={
            "top": _neighbor(top),
            "bottom": _neighbor(bottom),
            "left": _neighbor(left),
            "right": _neighbor(right),
        },
    )
    log.debug(f"({rank}) (x,y)=({cx},{cy}) neighbors {topology.neighbors}")
    return cart_comm, topology


def compute_topology(size: int, dims: Sequence[int], rank: int) -> ProcessTopology:
    """Topology of ``rank`` without building a communicator.

    Follows MPI's row-major Cartesian layout (last dimension varies
    fastest), which is what ``Create_cart`` produces without reordering.
    """
    px, py = validate_dims(size, dims)
    if not 0 <= rank < size:
        raise ConfigError(f"Rank {rank} outside communicator of size {size}")

    cx, cy = divmod(rank, py)

    def rank_at(x, y):
        if 0 <= x < px and 0 <= y < py:
            return x * py + y
        return None

    return ProcessTopology(
        rank=rank,
        coords=(cx, cy),
        dims=(px, py),
        neighbors={
            "top": rank_at(cx, cy - 1),
            "bottom": rank_at(cx, cy + 1),
            "left": rank_at(cx - 1, cy),
            "right": rank_at(cx + 1, cy),
        },
    )
