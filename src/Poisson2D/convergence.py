"""Iteration loop and stopping rule."""

from __future__ import annotations

import logging
import time
from enum import Enum

from .datastructures import GlobalMetrics
from .solvers.base import BaseSolver

log = logging.getLogger(__name__)


class ConvergenceState(str, Enum):
    RUNNING = "running"
    CONVERGED = "converged"
    ITERATION_CAP_REACHED = "iteration_cap_reached"


class ConvergenceController:
    """Drive a solver until its global metric reaches the precision goal.

    Running -> Converged when ``solver.residual() <= precision_goal``,
    Running -> IterationCapReached when the iteration count reaches
    ``max_iter``. Both are normal termination. The metric is a global
    aggregate, so every rank takes the same transition at the same count.

    Parameters
    ----------
    solver : BaseSolver
        Solver to drive.
    precision_goal : float
        Stopping threshold for the solver's metric.
    max_iter : int
        Iteration cap (0 runs no iterations).
    """

    def __init__(self, solver: BaseSolver, precision_goal: float, max_iter: int):
        self.solver = solver
        self.precision_goal = precision_goal
        self.max_iter = max_iter

        self.iterations = 0
        self.state = ConvergenceState.RUNNING
        self.metrics = GlobalMetrics()

    def _update_state(self) -> ConvergenceState:
        if self.solver.residual() <= self.precision_goal:
            self.state = ConvergenceState.CONVERGED
        elif self.iterations >= self.max_iter:
            self.state = ConvergenceState.ITERATION_CAP_REACHED
        return self.state

    def tick(self) -> ConvergenceState:
        """Run one solver iteration and update the state."""
        if self.state is not ConvergenceState.RUNNING:
            return self.state

        self.solver.step()
        self.iterations += 1
        self.solver.timeseries.residual_history.append(self.solver.residual())
        return self._update_state()

    def run(self) -> GlobalMetrics:
        """Initialize the solver and iterate until a terminal state."""
        solver = self.solver
        solver.timeseries.clear()

        solver._barrier()
        t_start = solver._get_time()
        cpu_start = time.process_time()

        solver.initialize()
        self._update_state()
        while self.state is ConvergenceState.RUNNING:
            self.tick()

        wall_time = solver._get_time() - t_start
        cpu_time = time.process_time() - cpu_start

        self._finalize(wall_time, cpu_time)
        log.info(f"({solver.rank} / {solver.context.size}) Number of iterations: {self.iterations}")
        return self.metrics

    def _finalize(self, wall_time: float, cpu_time: float):
        """Populate metrics after the loop."""
        ts = self.solver.timeseries
        m = self.metrics
        m.state = self.state.value
        m.converged = self.state is ConvergenceState.CONVERGED
        m.iterations = self.iterations
        m.final_residual = float(self.solver.residual())
        m.wall_time = wall_time
        m.cpu_time = cpu_time
        m.total_compute_time = sum(ts.compute_times)
        m.total_halo_time = sum(ts.halo_times)
        m.observed_numba_threads = self.solver.kernel.observed_numba_threads
