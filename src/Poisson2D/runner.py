"""Solve pipeline, in-process or via mpiexec subprocess."""

from __future__ import annotations

import json
import logging
import os
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Optional, Sequence, Tuple

from mpi4py import MPI

from .convergence import ConvergenceController
from .datastructures import GlobalMetrics
from .io import format_timing, load_summary, output_path, write_tile
from .mpi.context import SolverContext
from .solvers import DEFAULT_OMEGA, BaseSolver, create_solver

log = logging.getLogger(__name__)


def solve_from_file(
    input_file,
    dims: Sequence[int] = (1, 1),
    comm: MPI.Comm = MPI.COMM_WORLD,
    solver_type: str = "sor",
    communicator: str = "custom",
    use_numba: bool = False,
    numba_threads: int = 1,
    omega: float = DEFAULT_OMEGA,
    output_dir: Optional[str] = None,
) -> Tuple[BaseSolver, GlobalMetrics]:
    """Run the full pipeline on every rank of ``comm``.

    Topology -> problem broadcast -> partition -> sources -> solve ->
    per-rank output file (if ``output_dir`` is given).

    Returns
    -------
    tuple
        ``(solver, metrics)`` for this rank. ``solver.context`` holds the
        solved tile.
    """
    context = SolverContext.from_file(
        input_file, dims, comm=comm, halo_exchange=communicator
    )
    solver = create_solver(
        solver_type,
        context,
        use_numba=use_numba,
        numba_threads=numba_threads,
        omega=omega,
    )
    solver.warmup()

    problem = context.problem
    controller = ConvergenceController(solver, problem.precision_goal, problem.max_iter)
    metrics = controller.run()
    solver.release()

    if output_dir is not None:
        path = write_tile(context.tile, output_path(output_dir, context.rank))
        log.debug(f"({context.rank}) wrote {path}")

    log.info(format_timing(context.rank, context.size, metrics))
    return solver, metrics


def run_solver(input_file, px: int = 1, py: int = 1, output: str = None, **kwargs) -> dict:
    """Run the solver on ``px * py`` MPI processes.

    Parameters
    ----------
    input_file : str
        Problem description file.
    px, py : int
        Process grid shape.
    output : str, optional
        Path to save the CSV summary (uses temp file if not provided)
    **kwargs
        Extra options: solver_type, communicator, use_numba, omega, output_dir

    Returns
    -------
    dict
        Summary with config and metrics (or 'error' key on failure)
    """
    # Use temp file if no output path specified
    use_temp = output is None
    if use_temp:
        tmp = tempfile.NamedTemporaryFile(suffix=".csv", delete=False)
        output = tmp.name
        tmp.close()

    config = {"input_file": str(input_file), "px": px, "py": py, "output": output, **kwargs}
    cmd = [
        "mpiexec", "-n", str(px * py),
        sys.executable, "-m", "Poisson2D.helpers.runner_helper", json.dumps(config),
    ]

    # Explicit env: variables exported by this process's MPI runtime break a
    # nested mpiexec under Open MPI
    proc = subprocess.run(cmd, capture_output=True, text=True, env=os.environ.copy())

    if proc.returncode != 0:
        return {"error": proc.stderr, "returncode": proc.returncode}

    if not Path(output).exists() or Path(output).stat().st_size == 0:
        return {"error": "No output file created", "stderr": proc.stderr}

    result = load_summary(output)

    # Clean up temp file if we created one
    if use_temp:
        Path(output).unlink(missing_ok=True)

    return result
