"""MPI mixin providing common parallel solver functionality."""

import numpy as np
from mpi4py import MPI


class MPISolverMixin:
    """Mixin providing common MPI functionality for parallel solvers.

    Provides shared implementations for:
    - Timing via MPI.Wtime()
    - Global reductions via MPI.Allreduce() (sum and max)

    Expects ``self.comm`` and ``self.rank`` (set by BaseSolver from the
    solver context).
    """

    def _get_time(self) -> float:
        """Get current time using MPI.Wtime()."""
        return MPI.Wtime()

    def _allreduce(self, local_value: float, op) -> float:
        result = np.zeros(1)
        self.comm.Allreduce(np.array([local_value], dtype=np.float64), result, op=op)
        return float(result[0])

    def _reduce_sum(self, local_sum: float) -> float:
        """Reduce sum via MPI Allreduce."""
        return self._allreduce(local_sum, MPI.SUM)

    def _reduce_max(self, local_max: float) -> float:
        """Reduce maximum via MPI Allreduce."""
        return self._allreduce(local_max, MPI.MAX)

    def _barrier(self):
        """Synchronize all ranks before timing."""
        self.comm.Barrier()
