"""Halo exchange implementations for 2D tiles.

Each exchange is four combined send/receive transfers, one per direction:

    tag 0: first interior row    -> top,    last halo row    <- bottom
    tag 1: last interior row     -> bottom, first halo row   <- top
    tag 2: first interior column -> left,   last halo column <- right
    tag 3: last interior column  -> right,  first halo column <- left

Here a "row" is fixed y (strided by dimY in the flat buffer) and a
"column" is fixed x (contiguous). Missing neighbours are MPI.PROC_NULL, so
the transfer degenerates to a no-op and the halo keeps its current value.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

import numpy as np
from mpi4py import MPI

from ..errors import ConfigError

# (tag, send to, receive from)
_TRANSFERS = [
    (0, "top", "bottom"),
    (1, "bottom", "top"),
    (2, "left", "right"),
    (3, "right", "left"),
]


def _rank_or_null(rank: Optional[int]) -> int:
    return rank if rank is not None else MPI.PROC_NULL


def _transfer_slices(dim: Tuple[int, int]):
    """Send and receive index tuples per tag, for a tile of shape ``dim``."""
    dx, dy = dim
    interior_x = slice(1, dx - 1)
    interior_y = slice(1, dy - 1)
    return {
        0: ((interior_x, 1), (interior_x, dy - 1)),
        1: ((interior_x, dy - 2), (interior_x, 0)),
        2: ((1, interior_y), (dx - 1, interior_y)),
        3: ((dx - 2, interior_y), (0, interior_y)),
    }


class HaloExchanger(ABC):
    """Abstract base for halo exchange strategies."""

    @abstractmethod
    def setup(self, dim: Tuple[int, int]):
        """Initialize exchange buffers or datatypes for a tile shape."""
        pass

    @abstractmethod
    def exchange(self, arr: np.ndarray, comm: MPI.Comm, neighbors: Dict[str, Optional[int]]):
        """Perform halo exchange on a tile-shaped array."""
        pass

    def _check(self, arr: np.ndarray):
        if arr.shape != self._dim:
            raise ValueError(f"Array shape {arr.shape} does not match tile {self._dim}")


class NumpyHaloExchanger(HaloExchanger):
    """Halo exchange using packed numpy buffer copies and Sendrecv."""

    def setup(self, dim: Tuple[int, int]):
        """Pre-compute send/receive slices."""
        self._dim = tuple(dim)
        self._slices = _transfer_slices(self._dim)

    def exchange(self, arr: np.ndarray, comm: MPI.Comm, neighbors: Dict[str, Optional[int]]):
        """Exchange halos using Sendrecv with buffer copies."""
        self._check(arr)
        for tag, to, frm in _TRANSFERS:
            dest, source = neighbors.get(to), neighbors.get(frm)
            if dest is None and source is None:
                continue

            send_idx, recv_idx = self._slices[tag]
            send = np.ascontiguousarray(arr[send_idx])
            recv = np.empty_like(send)
            comm.Sendrecv(
                send, _rank_or_null(dest), tag, recv, _rank_or_null(source), tag
            )
            if source is not None:
                arr[recv_idx] = recv


class DatatypeHaloExchanger(HaloExchanger):
    """Halo exchange using strided MPI derived datatypes (zero-copy).

    Rows (fixed y) are ``dimX - 2`` doubles with stride ``dimY``; columns
    (fixed x) are ``dimY - 2`` contiguous doubles.
    """

    def setup(self, dim: Tuple[int, int]):
        """Create MPI datatypes and pre-compute flat offsets."""
        self._dim = tuple(dim)
        dx, dy = self._dim

        def flat_idx(x, y):
            return x * dy + y

        row = MPI.DOUBLE.Create_vector(dx - 2, 1, dy)
        row.Commit()
        col = MPI.DOUBLE.Create_vector(dy - 2, 1, 1)
        col.Commit()
        self._datatypes = [row, col]

        # tag -> (datatype, send offset, receive offset)
        self._transfer_info = {
            0: (row, flat_idx(1, 1), flat_idx(1, dy - 1)),
            1: (row, flat_idx(1, dy - 2), flat_idx(1, 0)),
            2: (col, flat_idx(1, 1), flat_idx(dx - 1, 1)),
            3: (col, flat_idx(dx - 2, 1), flat_idx(0, 1)),
        }

    def exchange(self, arr: np.ndarray, comm: MPI.Comm, neighbors: Dict[str, Optional[int]]):
        """Exchange halos in place using MPI datatypes."""
        self._check(arr)
        if arr.dtype != np.float64 or not arr.flags.c_contiguous:
            raise ValueError("Datatype halo exchange needs a C-contiguous float64 array")
        flat = arr.reshape(-1)

        for tag, to, frm in _TRANSFERS:
            dest, source = neighbors.get(to), neighbors.get(frm)
            if dest is None and source is None:
                continue

            dt, send_off, recv_off = self._transfer_info[tag]
            comm.Sendrecv(
                [flat[send_off:], 1, dt], _rank_or_null(dest), tag,
                [flat[recv_off:], 1, dt], _rank_or_null(source), tag,
            )

    def __del__(self):
        """Free MPI datatypes."""
        if hasattr(self, "_datatypes") and not MPI.Is_finalized():
            for dt in self._datatypes:
                if dt != MPI.DATATYPE_NULL:
                    dt.Free()


def create_halo_exchanger(exchange_type: str) -> HaloExchanger:
    """Factory: 'numpy' for buffer-based, 'custom' for MPI datatypes."""
    if exchange_type == "numpy":
        return NumpyHaloExchanger()
    elif exchange_type == "custom":
        return DatatypeHaloExchanger()
    else:
        raise ConfigError(f"Unknown halo_exchange type: {exchange_type}")
