"""Halo-padded local tile of the global grid."""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import AllocationError


class LocalTile:
    """Rectangular subgrid owned by one rank, padded by a one-cell halo.

    Field values and the source mask live in flat buffers of length
    ``dimX * dimY``; cell (x, y) is at ``idx(x, y) = x * dimY + y``. The
    ``phi`` and ``is_source`` attributes are 2D views of the same memory, so
    column exchanges (fixed x) are contiguous and row exchanges (fixed y)
    are strided by ``dimY``.

    Parameters
    ----------
    interior_shape : tuple of int
        Interior width and height (excluding halo).
    offset : tuple of int
        Global coordinate of the cell before the first interior cell, so that
        local (x, y) maps to global (x + ox, y + oy).
    """

    def __init__(self, interior_shape: Tuple[int, int], offset: Tuple[int, int]):
        self.interior_shape = tuple(interior_shape)
        self.offset = tuple(offset)
        self.dim = (self.interior_shape[0] + 2, self.interior_shape[1] + 2)

        self.phi_flat = self.allocate_flat()
        self.source_flat = self.allocate_flat(dtype=np.bool_)
        self.phi = self.phi_flat.reshape(self.dim)
        self.is_source = self.source_flat.reshape(self.dim)

    @property
    def size(self) -> int:
        return self.dim[0] * self.dim[1]

    def idx(self, x: int, y: int) -> int:
        """Flat buffer index of local cell (x, y)."""
        return x * self.dim[1] + y

    def allocate_flat(self, dtype=np.float64) -> np.ndarray:
        """Zeroed flat buffer of tile size."""
        try:
            return np.zeros(self.size, dtype=dtype)
        except MemoryError as e:
            raise AllocationError(
                f"Cannot allocate tile buffer of {self.size} cells"
            ) from e

    def allocate(self, dtype=np.float64) -> np.ndarray:
        """Zeroed 2D array with the tile's halo-padded shape."""
        return self.allocate_flat(dtype).reshape(self.dim)

    def interior(self, arr: np.ndarray) -> np.ndarray:
        """View of the interior region of a tile-shaped array."""
        return arr[1:-1, 1:-1]

    def contains(self, x: int, y: int) -> bool:
        """True if local (x, y) is an interior cell."""
        return 0 < x < self.dim[0] - 1 and 0 < y < self.dim[1] - 1

    def global_coords(self) -> Tuple[np.ndarray, np.ndarray]:
        """Global x and y index arrays of the interior, in tile layout."""
        gx = np.arange(1, self.dim[0] - 1) + self.offset[0]
        gy = np.arange(1, self.dim[1] - 1) + self.offset[1]
        return np.meshgrid(gx, gy, indexing="ij")

    def __repr__(self) -> str:
        return (
            f"LocalTile(interior_shape={self.interior_shape}, "
            f"offset={self.offset})"
        )
