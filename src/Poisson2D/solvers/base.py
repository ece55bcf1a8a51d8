"""Base class for solvers."""

from abc import ABC, abstractmethod

import numpy as np

from ..datastructures import LocalMetrics
from ..kernels import create_kernel
from ..mpi.context import SolverContext


class BaseSolver(ABC):
    """Abstract base for the distributed iterative solvers.

    A solver owns its auxiliary state and exposes one contract to the
    convergence controller:

    - ``initialize()``: prepare state before the first iteration
    - ``step()``: one full iteration (including its halo exchanges)
    - ``residual()``: current global stopping metric (same on every rank)
    - ``exchange_field()``: halo exchange of the field the solver iterates on

    Parameters
    ----------
    context : SolverContext
        Distributed state of this rank.
    use_numba : bool
        Use Numba JIT kernel (default: False).
    numba_threads : int
        Number of Numba threads (default: 1).
    omega : float
        Relaxation factor (only used by SOR).
    """

    name = "base"

    def __init__(
        self,
        context: SolverContext,
        use_numba: bool = False,
        numba_threads: int = 1,
        omega: float = 1.95,
    ):
        self.context = context
        self.comm = context.comm
        self.rank = context.rank
        self.tile = context.tile
        self.omega = omega

        self.kernel = create_kernel(use_numba, omega, numba_threads)
        self.timeseries = LocalMetrics()

    @property
    def phi(self) -> np.ndarray:
        return self.tile.phi

    @property
    def is_source(self) -> np.ndarray:
        return self.tile.is_source

    @property
    @abstractmethod
    def field(self) -> np.ndarray:
        """Array whose halo is exchanged every iteration."""
        pass

    @abstractmethod
    def initialize(self):
        """Prepare solver state before the first iteration."""
        pass

    @abstractmethod
    def step(self):
        """Run one full iteration."""
        pass

    @abstractmethod
    def residual(self) -> float:
        """Global stopping metric after the last step."""
        pass

    def exchange_field(self) -> float:
        """Exchange the halo of ``field``. Returns time spent."""
        t0 = self._get_time()
        self.context.sync_halos(self.field)
        halo_time = self._get_time() - t0
        self.timeseries.halo_times.append(halo_time)
        return halo_time

    def release(self):
        """Free auxiliary solver state. The tile itself is kept."""
        pass

    def warmup(self, warmup_size: int = 10):
        """Warmup kernel (trigger Numba JIT if used)."""
        self.kernel.warmup(warmup_size=warmup_size)

    def _local_dot(self, a: np.ndarray, b: np.ndarray) -> float:
        """Interior dot product on this rank."""
        return float(np.sum(self.tile.interior(a) * self.tile.interior(b)))

