"""Stencil kernels for red-black SOR and conjugate gradient.

Simple kernel implementations - iteration control and communication are
handled by the solvers. Both kernels produce bit-identical results: the
4-neighbour sum is always formed as (x+1) + (x-1) + (y+1) + (y-1).
"""

import numpy as np
import numba
from numba import njit, prange


@njit(parallel=True)
def _sor_step_numba(
    phi: np.ndarray, source: np.ndarray, parity: int, parity_offset: int, omega: float
) -> float:
    """Numba JIT implementation of one red-black SOR half sweep.

    Cells of one colour do not neighbour each other, so columns are
    relaxed in parallel. Each column keeps its own maximum change.
    """
    col_err = np.zeros(phi.shape[0])
    for x in prange(1, phi.shape[0] - 1):
        for y in range(1, phi.shape[1] - 1):
            if (x + y + parity_offset) % 2 == parity and not source[x, y]:
                old_phi = phi[x, y]
                c = (
                    phi[x + 1, y] + phi[x - 1, y] + phi[x, y + 1] + phi[x, y - 1]
                ) * 0.25 - old_phi
                phi[x, y] = old_phi + omega * c
                err = abs(old_phi - phi[x, y])
                if err > col_err[x]:
                    col_err[x] = err

    max_err = 0.0
    for x in range(col_err.shape[0]):
        if col_err[x] > max_err:
            max_err = col_err[x]
    return max_err


@njit(parallel=True)
def _cg_matvec_numba(p: np.ndarray, source: np.ndarray, v: np.ndarray):
    """Numba JIT implementation of v = A p on the interior."""
    for x in prange(1, p.shape[0] - 1):
        for y in range(1, p.shape[1] - 1):
            v[x, y] = p[x, y]
            if not source[x, y]:
                v[x, y] -= (
                    p[x + 1, y] + p[x - 1, y] + p[x, y + 1] + p[x, y - 1]
                ) * 0.25


def neighbor_sum(u: np.ndarray) -> np.ndarray:
    """Sum of the four axis neighbours for every interior cell."""
    return u[2:, 1:-1] + u[:-2, 1:-1] + u[1:-1, 2:] + u[1:-1, :-2]


class NumPyKernel:
    """NumPy-based stencil kernel."""

    def __init__(self, omega: float, specified_numba_threads: int = 1):
        self.omega = omega
        self.observed_numba_threads = None  # Not applicable for NumPy
        self._masks = {}

    def _color_mask(self, shape, parity: int, parity_offset: int) -> np.ndarray:
        """Interior cells with (x + y + parity_offset) % 2 == parity."""
        key = (shape, parity, parity_offset % 2)
        if key not in self._masks:
            x = np.arange(1, shape[0] - 1)
            y = np.arange(1, shape[1] - 1)
            self._masks[key] = (np.add.outer(x, y) + parity_offset) % 2 == parity
        return self._masks[key]

    def sor_step(
        self, phi: np.ndarray, source: np.ndarray, parity: int, parity_offset: int
    ) -> float:
        """Relax all non-source cells of one colour in place.

        Returns the maximum absolute change over the updated cells.
        """
        interior = phi[1:-1, 1:-1]
        mask = self._color_mask(phi.shape, parity, parity_offset) & ~source[1:-1, 1:-1]

        # Cells of one colour only neighbour the other colour, so the
        # vectorised update matches a sequential sweep.
        c = neighbor_sum(phi) * 0.25 - interior
        old_phi = interior[mask]
        new_phi = old_phi + self.omega * c[mask]
        interior[mask] = new_phi

        if old_phi.size == 0:
            return 0.0
        return float(np.max(np.abs(old_phi - new_phi)))

    def cg_matvec(self, p: np.ndarray, source: np.ndarray, v: np.ndarray):
        """v = p - 0.25 * (neighbour sum of p), identity on source cells."""
        p_int = p[1:-1, 1:-1]
        v[1:-1, 1:-1] = np.where(
            source[1:-1, 1:-1], p_int, p_int - neighbor_sum(p) * 0.25
        )

    def warmup(self, warmup_size: int = 10):
        """No-op for NumPy kernel."""
        pass


class NumbaKernel:
    """Numba JIT-compiled stencil kernel."""

    def __init__(self, omega: float, specified_numba_threads: int = 1):
        self.omega = omega

        # Set requested threads (may be clamped by NUMBA_NUM_THREADS env var)
        if specified_numba_threads is not None:
            numba.set_num_threads(
                min(specified_numba_threads, numba.config.NUMBA_NUM_THREADS)
            )

        # Record what Numba actually reports
        self.observed_numba_threads = numba.get_num_threads()

    def sor_step(
        self, phi: np.ndarray, source: np.ndarray, parity: int, parity_offset: int
    ) -> float:
        """Relax all non-source cells of one colour in place."""
        return _sor_step_numba(phi, source, parity, parity_offset, self.omega)

    def cg_matvec(self, p: np.ndarray, source: np.ndarray, v: np.ndarray):
        """v = p - 0.25 * (neighbour sum of p), identity on source cells."""
        _cg_matvec_numba(p, source, v)

    def warmup(self, warmup_size: int = 10):
        """Trigger JIT compilation with a small problem."""
        phi = np.random.randn(warmup_size, warmup_size)
        source = np.zeros((warmup_size, warmup_size), dtype=np.bool_)
        v = np.zeros_like(phi)
        for parity in (0, 1):
            _sor_step_numba(phi, source, parity, 0, self.omega)
        _cg_matvec_numba(phi, source, v)


def create_kernel(use_numba: bool, omega: float, numba_threads: int = 1):
    """Select NumPy or Numba kernel."""
    if use_numba:
        return NumbaKernel(omega=omega, specified_numba_threads=numba_threads)
    return NumPyKernel(omega=omega)
