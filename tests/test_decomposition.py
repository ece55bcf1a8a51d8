"""Tests for process topology and domain decomposition."""

import numpy as np
import pytest
from mpi4py import MPI

from Poisson2D import ConfigError, GlobalProblem, allocate_tile, compute_topology, create_topology
from Poisson2D.mpi import all_local_domains, compute_local_domain, split_axis, validate_dims


class TestSplitAxis:
    """Tests for floor-division splitting of one axis."""

    def test_remainder_goes_to_later_parts(self):
        """10 cells over 3 parts -> widths 3, 3, 4."""
        bounds = [split_axis(10, 3, c) for c in range(3)]
        assert bounds == [(0, 3), (3, 6), (6, 10)]

    def test_even_split(self):
        bounds = [split_axis(12, 4, c) for c in range(4)]
        assert [hi - lo for lo, hi in bounds] == [3, 3, 3, 3]

    def test_single_part(self):
        assert split_axis(7, 1, 0) == (0, 7)


class TestPartitionCoverage:
    """Every global cell belongs to exactly one tile interior."""

    @pytest.mark.parametrize("nx,ny,px,py", [
        (10, 10, 2, 2), (7, 5, 3, 2), (100, 37, 4, 3), (5, 5, 1, 1), (3, 8, 3, 4), (13, 1, 5, 1),
    ])
    def test_full_coverage_no_overlaps(self, nx, ny, px, py):
        covered = np.zeros((nx, ny), dtype=int)
        for (w, h), (ox, oy) in all_local_domains((nx, ny), (px, py)):
            covered[ox:ox + w, oy:oy + h] += 1
        assert np.all(covered == 1)

    def test_local_domain_of_last_tile(self):
        interior_shape, offset = compute_local_domain((10, 7), (1, 1), (2, 2))
        assert offset == (5, 3)
        assert interior_shape == (5, 4)

    @pytest.mark.parametrize("dims", [(4, 1), (1, 7), (3, 3)])
    def test_more_ranks_than_cells_rejected(self, dims):
        """A process grid wider than the grid would leave ranks without cells."""
        problem = GlobalProblem(nx=2, ny=6, precision_goal=1e-3, max_iter=1)
        size = dims[0] * dims[1]
        for rank in range(size):
            with pytest.raises(ConfigError):
                allocate_tile(problem, compute_topology(size, dims, rank))

    def test_one_cell_per_rank_allowed(self):
        problem = GlobalProblem(nx=2, ny=6, precision_goal=1e-3, max_iter=1)
        shapes = [
            allocate_tile(problem, compute_topology(12, (2, 6), r)).interior_shape
            for r in range(12)
        ]
        assert shapes == [(1, 1)] * 12


class TestTopology:
    """Tests for the 2D Cartesian process topology."""

    def test_grid_mismatch_raises(self):
        with pytest.raises(ConfigError):
            validate_dims(4, (3, 1))

    def test_non_positive_dims_raise(self):
        with pytest.raises(ConfigError):
            validate_dims(0, (0, 2))

    def test_corner_neighbors(self):
        """Rank 0 sits at (0, 0): no top or left neighbour."""
        topo = compute_topology(6, (3, 2), 0)
        assert topo.coords == (0, 0)
        assert topo.neighbors == {"top": None, "bottom": 1, "left": None, "right": 2}
        assert topo.n_neighbors == 2

    def test_interior_rank_has_4_neighbors(self):
        topo = compute_topology(9, (3, 3), 4)
        assert topo.coords == (1, 1)
        assert topo.n_neighbors == 4

    def test_neighbor_reciprocity(self):
        """If A neighbours B, then B neighbours A in the opposite direction."""
        opposites = {"top": "bottom", "bottom": "top", "left": "right", "right": "left"}
        size, dims = 12, (4, 3)
        for rank in range(size):
            topo = compute_topology(size, dims, rank)
            for direction, neighbor in topo.neighbors.items():
                if neighbor is not None:
                    other = compute_topology(size, dims, neighbor)
                    assert other.neighbors[opposites[direction]] == rank

    def test_create_topology_single_rank(self):
        cart_comm, topo = create_topology(MPI.COMM_SELF, (1, 1))
        try:
            assert topo == compute_topology(1, (1, 1), 0)
            assert topo.n_neighbors == 0
        finally:
            cart_comm.Free()

    def test_create_topology_mismatch(self):
        with pytest.raises(ConfigError):
            create_topology(MPI.COMM_SELF, (2, 1))


class TestLocalTile:
    """Tests for tile allocation and flat-buffer layout."""

    def test_tile_shape_and_zeroed(self):
        problem = GlobalProblem(nx=10, ny=7, precision_goal=1e-4, max_iter=10)
        tile = allocate_tile(problem, compute_topology(4, (2, 2), 3))

        assert tile.offset == (5, 3)
        assert tile.dim == (7, 6)
        assert tile.phi_flat.size == 7 * 6
        assert not tile.phi.any()
        assert not tile.is_source.any()

    def test_views_share_flat_buffer(self):
        problem = GlobalProblem(nx=6, ny=5, precision_goal=1e-4, max_iter=10)
        tile = allocate_tile(problem, compute_topology(1, (1, 1), 0))

        tile.phi[2, 3] = 5.0
        tile.is_source[4, 1] = True
        assert tile.phi_flat[tile.idx(2, 3)] == 5.0
        assert tile.source_flat[tile.idx(4, 1)]

    def test_global_coords(self):
        problem = GlobalProblem(nx=10, ny=7, precision_goal=1e-4, max_iter=10)
        tile = allocate_tile(problem, compute_topology(4, (2, 2), 3))
        gx, gy = tile.global_coords()

        assert gx.shape == tile.interior_shape
        assert (gx[0, 0], gy[0, 0]) == (6, 4)
        assert (gx[-1, -1], gy[-1, -1]) == (10, 7)

    def test_interior_bounds(self):
        problem = GlobalProblem(nx=4, ny=3, precision_goal=1e-4, max_iter=10)
        tile = allocate_tile(problem, compute_topology(1, (1, 1), 0))
        assert tile.contains(1, 1) and tile.contains(4, 3)
        assert not tile.contains(0, 1)
        assert not tile.contains(5, 1)
        assert not tile.contains(1, 4)
