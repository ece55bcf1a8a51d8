"""Tests for halo exchange implementations.

Single-rank tests run on MPI.COMM_SELF (a rank can be its own neighbour,
which wraps the tile around). Multi-tile tests use the threaded world
from conftest with the numpy exchanger.
"""

import numpy as np
import pytest
from mpi4py import MPI

from Poisson2D import (
    ConfigError,
    DatatypeHaloExchanger,
    GlobalProblem,
    NumpyHaloExchanger,
    ProcessTopology,
)
from Poisson2D.mpi.halo import create_halo_exchanger

HALO = -1.0

SELF_NEIGHBORS = {"top": 0, "bottom": 0, "left": 0, "right": 0}
NO_NEIGHBORS = {"top": None, "bottom": None, "left": None, "right": None}


def encode(gx, gy):
    return gx * 1000.0 + gy


def encoded_tile(dim, offset=(0, 0)):
    """Tile-shaped array: interior holds encode(global x, global y), halo -1."""
    arr = np.full(dim, HALO)
    x = np.arange(1, dim[0] - 1) + offset[0]
    y = np.arange(1, dim[1] - 1) + offset[1]
    gx, gy = np.meshgrid(x, y, indexing="ij")
    arr[1:-1, 1:-1] = encode(gx, gy)
    return arr


@pytest.fixture(params=[NumpyHaloExchanger, DatatypeHaloExchanger], ids=["numpy", "custom"])
def exchanger_cls(request):
    return request.param


class TestSingleRank:
    """Halo exchange on one rank."""

    def test_no_neighbors_keeps_halo(self, exchanger_cls):
        dim = (6, 5)
        arr = encoded_tile(dim)
        arr[0, :] = 7.0
        expected = arr.copy()

        ex = exchanger_cls()
        ex.setup(dim)
        ex.exchange(arr, MPI.COMM_SELF, NO_NEIGHBORS)

        np.testing.assert_array_equal(arr, expected)

    def test_self_neighbor_wraps(self, exchanger_cls):
        """With itself on every side, each halo receives the opposite edge."""
        dim = (6, 5)
        arr = encoded_tile(dim)
        original = arr.copy()

        ex = exchanger_cls()
        ex.setup(dim)
        ex.exchange(arr, MPI.COMM_SELF, SELF_NEIGHBORS)

        np.testing.assert_array_equal(arr[1:-1, 1:-1], original[1:-1, 1:-1])
        np.testing.assert_array_equal(arr[1:-1, 0], original[1:-1, -2])
        np.testing.assert_array_equal(arr[1:-1, -1], original[1:-1, 1])
        np.testing.assert_array_equal(arr[0, 1:-1], original[-2, 1:-1])
        np.testing.assert_array_equal(arr[-1, 1:-1], original[1, 1:-1])
        # Corners are never exchanged
        for corner in [(0, 0), (0, -1), (-1, 0), (-1, -1)]:
            assert arr[corner] == HALO

    def test_strategies_agree(self):
        dim = (7, 4)
        results = []
        for cls in (NumpyHaloExchanger, DatatypeHaloExchanger):
            arr = encoded_tile(dim, offset=(3, 2))
            ex = cls()
            ex.setup(dim)
            ex.exchange(arr, MPI.COMM_SELF, SELF_NEIGHBORS)
            results.append(arr)
        np.testing.assert_array_equal(results[0], results[1])

    def test_shape_mismatch(self, exchanger_cls):
        ex = exchanger_cls()
        ex.setup((5, 5))
        with pytest.raises(ValueError):
            ex.exchange(np.zeros((6, 5)), MPI.COMM_SELF, NO_NEIGHBORS)

    def test_datatype_needs_float64(self):
        ex = DatatypeHaloExchanger()
        ex.setup((5, 5))
        with pytest.raises(ValueError):
            ex.exchange(np.zeros((5, 5), dtype=np.float32), MPI.COMM_SELF, NO_NEIGHBORS)

    def test_factory(self):
        assert isinstance(create_halo_exchanger("numpy"), NumpyHaloExchanger)
        assert isinstance(create_halo_exchanger("custom"), DatatypeHaloExchanger)
        with pytest.raises(ConfigError):
            create_halo_exchanger("bogus")

    def test_context_sync_halos(self, single_context):
        """A 1x1 context has no neighbours: the boundary halo stays fixed."""
        ctx = single_context(GlobalProblem(nx=4, ny=3, precision_goal=1e-3, max_iter=1))
        arr = encoded_tile(ctx.tile.dim)
        expected = arr.copy()
        ctx.sync_halos(arr)
        np.testing.assert_array_equal(arr, expected)
        assert ctx.get_halo_size_bytes() == 0


class TestDistributed:
    """Halo exchange between tiles of a threaded process grid."""

    @pytest.mark.parametrize("dims", [(2, 3), (3, 1), (1, 2)])
    def test_halo_matches_neighbor_interior(self, thread_world, make_context, dims):
        problem = GlobalProblem(nx=9, ny=7, precision_goal=1e-3, max_iter=1)
        size = dims[0] * dims[1]

        def exchange(comm):
            ctx = make_context(comm, dims, problem)
            arr = encoded_tile(ctx.tile.dim, ctx.tile.offset)
            ctx.sync_halos(arr)
            return ctx, arr

        for ctx, arr in thread_world(size).run(exchange):
            dx, dy = ctx.tile.dim
            ox, oy = ctx.tile.offset
            nb = ctx.neighbors
            faces = {
                "left": [(0, y) for y in range(1, dy - 1)],
                "right": [(dx - 1, y) for y in range(1, dy - 1)],
                "top": [(x, 0) for x in range(1, dx - 1)],
                "bottom": [(x, dy - 1) for x in range(1, dx - 1)],
            }
            for direction, cells in faces.items():
                for x, y in cells:
                    if nb[direction] is None:
                        assert arr[x, y] == HALO
                    else:
                        assert arr[x, y] == encode(x + ox, y + oy)
            for corner in [(0, 0), (0, dy - 1), (dx - 1, 0), (dx - 1, dy - 1)]:
                assert arr[corner] == HALO

    def test_halo_size_bytes(self, thread_world, make_context):
        problem = GlobalProblem(nx=8, ny=6, precision_goal=1e-3, max_iter=1)

        def halo_bytes(comm):
            ctx = make_context(comm, (2, 2), problem)
            return ctx.get_halo_size_bytes()

        # Every 4x3 tile has one horizontal and one vertical neighbour
        assert thread_world(4).run(halo_bytes) == [(4 + 3) * 16] * 4

    def test_gather_field(self, thread_world, make_context):
        problem = GlobalProblem(nx=9, ny=7, precision_goal=1e-3, max_iter=1)

        def gather(comm):
            ctx = make_context(comm, (3, 2), problem)
            arr = encoded_tile(ctx.tile.dim, ctx.tile.offset)
            return ctx.gather_field(arr)

        results = thread_world(6).run(gather)
        assert all(r is None for r in results[1:])

        gx, gy = np.meshgrid(np.arange(1, 10), np.arange(1, 8), indexing="ij")
        np.testing.assert_array_equal(results[0], encode(gx, gy))


def test_topology_neighbors_symmetric():
    """Topology pairs used by the exchange are mutual."""
    from Poisson2D import compute_topology

    dims = (3, 4)
    topos = [compute_topology(12, dims, r) for r in range(12)]
    opposite = {"top": "bottom", "bottom": "top", "left": "right", "right": "left"}
    for t in topos:
        assert isinstance(t, ProcessTopology)
        for direction, nb in t.neighbors.items():
            if nb is not None:
                assert topos[nb].neighbors[opposite[direction]] == t.rank
