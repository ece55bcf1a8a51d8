"""Conjugate Gradient solver."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from ..errors import NumericalBreakdownError
from ..kernels import neighbor_sum
from .base import BaseSolver
from .mpi_mixin import MPISolverMixin

log = logging.getLogger(__name__)


@dataclass
class CGState:
    """Auxiliary CG arrays (tile-shaped, with halo) and global residue."""

    p: np.ndarray
    r: np.ndarray
    v: np.ndarray
    global_residue: float = 0.0


class ConjugateGradientSolver(MPISolverMixin, BaseSolver):
    """Parallel conjugate gradient with global sum reductions.

    The operator is A u = u - 0.25 * (neighbour sum of u) on free cells and
    the identity on source cells. Residual and search direction start at zero
    on source cells and stay there, so sources are never modified. The
    stopping metric is the global sum of squared residuals.

    Only the search direction ``p`` needs halo exchange per iteration.
    """

    name = "cg"

    def __init__(self, context, **kwargs):
        super().__init__(context, **kwargs)
        self.state: CGState | None = None

    @property
    def field(self) -> np.ndarray:
        return self.state.p

    def initialize(self):
        """Allocate CG arrays and compute the initial residual.

        The residual of the initial field is r = 0.25 * (neighbour sum of phi)
        on free cells, 0 on sources; p starts equal to r.
        """
        self.state = CGState(
            p=self.context.allocate(),
            r=self.context.allocate(),
            v=self.context.allocate(),
        )

        # Neighbouring tiles' sources must be visible in the phi halo
        self.context.sync_halos(self.tile.phi)

        r_int = self.tile.interior(self.state.r)
        r_int[...] = np.where(
            self.tile.interior(self.tile.is_source),
            0.0,
            neighbor_sum(self.tile.phi) * 0.25,
        )
        self.tile.interior(self.state.p)[...] = r_int

        rdotr = self._local_dot(self.state.r, self.state.r)
        self.state.global_residue = self._reduce_sum(rdotr)
        if self.rank == 0:
            log.debug(f"CG initial residue: {self.state.global_residue:.6e}")

    def step(self):
        """One CG iteration: exchange p, v = A p, update phi, r and p."""
        s = self.state
        p, r, v = (self.tile.interior(a) for a in (s.p, s.r, s.v))

        self.exchange_field()

        t0 = self._get_time()
        self.kernel.cg_matvec(s.p, self.tile.is_source, s.v)
        pdotv = self._local_dot(s.p, s.v)
        t_compute = self._get_time() - t0

        global_pdotv = self._reduce_sum(pdotv)
        if global_pdotv == 0.0 or not math.isfinite(global_pdotv):
            raise NumericalBreakdownError(
                f"CG breakdown: p.Ap = {global_pdotv!r} "
                f"(residue {s.global_residue!r})"
            )
        a = s.global_residue / global_pdotv

        t0 = self._get_time()
        self.tile.interior(self.tile.phi)[...] += a * p
        r -= a * v
        new_rdotr = self._local_dot(s.r, s.r)
        t_compute += self._get_time() - t0

        global_new_rdotr = self._reduce_sum(new_rdotr)
        g = global_new_rdotr / s.global_residue
        s.global_residue = global_new_rdotr

        t0 = self._get_time()
        p[...] = r + g * p
        t_compute += self._get_time() - t0
        self.timeseries.compute_times.append(t_compute)

    def residual(self) -> float:
        """Global sum of squared residuals."""
        return self.state.global_residue

    def release(self):
        """Drop CG arrays."""
        self.state = None
