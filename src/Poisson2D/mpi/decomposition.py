"""Domain decomposition of the global grid into per-rank tiles."""

from __future__ import annotations

import logging
from typing import List, Tuple

from ..datastructures import GlobalProblem, ProcessTopology
from ..errors import ConfigError
from ..tile import LocalTile

log = logging.getLogger(__name__)


def split_axis(n: int, n_parts: int, coord: int) -> Tuple[int, int]:
    """Bounds of part ``coord`` when splitting ``n`` cells into ``n_parts``.

    Returns ``(offset, upper)`` with ``offset = n*coord // n_parts`` and
    ``upper = n*(coord+1) // n_parts``. Consecutive parts share their
    boundary, so the parts are contiguous, disjoint and exhaustive; the
    remainder is spread towards higher coordinates.
    """
    offset = n * coord // n_parts
    upper = n * (coord + 1) // n_parts
    return offset, upper


def compute_local_domain(
    gridsize: Tuple[int, int], coords: Tuple[int, int], dims: Tuple[int, int]
) -> Tuple[Tuple[int, int], Tuple[int, int]]:
    """Compute local interior shape and offset for one rank.

    Returns
    -------
    tuple
        ``(interior_shape, offset)``. Global interior cells are numbered
        from 1, so local cell (x, y) is global (x + ox, y + oy).
    """
    bounds = [split_axis(n, p, c) for n, p, c in zip(gridsize, dims, coords)]
    offset = tuple(lo for lo, _ in bounds)
    interior_shape = tuple(hi - lo for lo, hi in bounds)
    return interior_shape, offset


def check_grid_fits(gridsize: Tuple[int, int], dims: Tuple[int, int]):
    """Raise ConfigError if any axis has more processes than cells."""
    for axis, n, p in zip("xy", gridsize, dims):
        if p > n:
            raise ConfigError(
                f"Process grid {tuple(dims)} is larger than grid {tuple(gridsize)} "
                f"along {axis}: some ranks would own no cells"
            )


def allocate_tile(problem: GlobalProblem, topology: ProcessTopology) -> LocalTile:
    """Allocate the zeroed, halo-padded tile owned by this rank.

    Every rank must own at least one cell along each axis.

    Raises
    ------
    ConfigError
        If the process grid is larger than the global grid along an axis.
        Depends only on global values, so every rank raises it.
    AllocationError
        If the tile buffers cannot be allocated.
    """
    check_grid_fits(problem.gridsize, topology.dims)
    interior_shape, offset = compute_local_domain(
        problem.gridsize, topology.coords, topology.dims
    )
    log.debug(f"Rank {topology.rank}: interior {interior_shape}, offset {offset}")
    return LocalTile(interior_shape, offset)


def all_local_domains(
    gridsize: Tuple[int, int], dims: Tuple[int, int]
) -> List[Tuple[Tuple[int, int], Tuple[int, int]]]:
    """Interior shape and offset of every rank, indexed by row-major rank."""
    px, py = dims
    return [
        compute_local_domain(gridsize, (cx, cy), dims)
        for cx in range(px)
        for cy in range(py)
    ]
