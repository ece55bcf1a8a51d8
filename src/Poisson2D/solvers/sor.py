"""Red-black Successive Over-Relaxation solver."""

import math

import numpy as np

from .base import BaseSolver
from .mpi_mixin import MPISolverMixin

# Relaxation factor used for all reference outputs
DEFAULT_OMEGA = 1.95


class RedBlackSORSolver(MPISolverMixin, BaseSolver):
    """Parallel red-black SOR with global max-change stopping metric.

    One iteration relaxes the even cells, exchanges halos, relaxes the odd
    cells and exchanges again. Colour is decided on global coordinates,
    ``(gx + gy) % 2``, so tiles agree on the checkerboard regardless of
    their offsets. Source cells are never updated.
    """

    name = "sor"

    def __init__(self, context, omega: float = DEFAULT_OMEGA, **kwargs):
        super().__init__(context, omega=omega, **kwargs)
        self._parity_offset = sum(self.tile.offset)
        self._global_delta = math.inf

    @property
    def field(self) -> np.ndarray:
        return self.tile.phi

    def initialize(self):
        """Fill halos with the neighbours' initial values (sources)."""
        self._global_delta = math.inf
        self.exchange_field()

    def relax(self, parity: int) -> float:
        """Relax all cells of one colour. Returns the local max change."""
        t0 = self._get_time()
        delta = self.kernel.sor_step(
            self.tile.phi, self.tile.is_source, parity, self._parity_offset
        )
        self.timeseries.compute_times.append(self._get_time() - t0)
        return delta

    def step(self):
        """One red-black iteration followed by a global max reduction."""
        delta1 = self.relax(0)
        self.exchange_field()

        delta2 = self.relax(1)
        self.exchange_field()

        self._global_delta = self._reduce_max(max(delta1, delta2))

    def residual(self) -> float:
        """Largest change of any cell during the last iteration (inf before)."""
        return self._global_delta
