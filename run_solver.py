"""
Solver entry point - runs in-process for a 1x1 process grid, otherwise
re-launches itself under mpiexec with px*py ranks.

Usage:
    python run_solver.py
    python run_solver.py px=2 py=2 solver_type=cg
    python run_solver.py input_file=Experiments/inputs/input.dat communicator=numpy
"""

import logging
import os
import subprocess
import sys

import hydra
from omegaconf import DictConfig, OmegaConf

log = logging.getLogger(__name__)

# Config keys forwarded to the mpiexec workers
_FORWARDED_KEYS = [
    "input_file", "output_dir", "px", "py", "solver_type", "communicator",
    "omega", "use_numba", "numba_threads", "write_output",
]


def _resolve(path: str) -> str:
    """Paths in the config are relative to the launch directory."""
    from hydra.core.hydra_config import HydraConfig

    if os.path.isabs(path) or not HydraConfig.initialized():
        return path
    return os.path.join(hydra.utils.get_original_cwd(), path)


def _run(cfg: DictConfig, comm) -> int:
    """Solve on every rank of ``comm``. Returns the process exit code."""
    from Poisson2D.errors import AllocationError, Poisson2DError
    from Poisson2D.runner import solve_from_file

    rank = comm.Get_rank()
    output_dir = cfg.get("output_dir") if cfg.get("write_output", True) else None

    try:
        solver, metrics = solve_from_file(
            cfg.input_file,
            dims=(cfg.get("px", 1), cfg.get("py", 1)),
            comm=comm,
            solver_type=cfg.get("solver_type", "sor"),
            communicator=cfg.get("communicator", "custom"),
            use_numba=cfg.get("use_numba", False),
            numba_threads=cfg.get("numba_threads", 1),
            omega=cfg.get("omega", 1.95),
            output_dir=output_dir,
        )
    except AllocationError as e:
        log.error(f"Rank {rank}: {e}")
        comm.Abort(1)
    except Poisson2DError as e:
        if rank == 0:
            log.error(f"{type(e).__name__}: {e}")
        return 1

    if solver.rank == 0:
        log.info(
            f"Done: {metrics.state}, {metrics.iterations} iter, "
            f"residual={metrics.final_residual:.3e}, time={metrics.wall_time:.3f}s"
        )
    return 0


@hydra.main(config_path="Experiments/hydra-conf", config_name="config", version_base=None)
def main(cfg: DictConfig) -> None:
    """Entry point - runs in-process or spawns MPI based on px*py."""
    n_ranks = cfg.px * cfg.py
    log.info(f"{cfg.solver_type}, grid {cfg.px}x{cfg.py}, input={cfg.input_file}")

    cfg = OmegaConf.merge(cfg, {
        "input_file": _resolve(cfg.input_file),
        "output_dir": _resolve(cfg.output_dir),
    })

    if n_ranks == 1:
        from mpi4py import MPI

        code = _run(cfg, MPI.COMM_WORLD)
    else:
        code = _spawn_mpi(cfg, n_ranks)
    if code:
        sys.exit(code)


def _spawn_mpi(cfg: DictConfig, n_ranks: int) -> int:
    """Spawn MPI subprocess."""
    env = os.environ.copy()
    env["MPI_SUBPROCESS"] = "1"

    cmd = ["mpiexec", "-n", str(n_ranks), sys.executable, os.path.abspath(__file__)]
    for key in _FORWARDED_KEYS:
        val = cfg.get(key)
        if val is not None:
            cmd.append(f"{key}={val}")

    result = subprocess.run(cmd, capture_output=True, text=True, env=env)
    for line in (result.stdout or "").strip().split("\n"):
        if line:
            log.info(line)
    for line in (result.stderr or "").strip().split("\n"):
        if line:
            log.warning(line) if "error" in line.lower() else log.info(line)
    return result.returncode


def _parse_args(argv) -> DictConfig:
    """Parse key=value args (as passed by _spawn_mpi) into a config."""
    cfg_dict = {}
    for arg in argv:
        if "=" in arg and not arg.startswith("-"):
            key, val = arg.split("=", 1)
            if val.lower() in ("true", "false"):
                cfg_dict[key] = val.lower() == "true"
                continue
            try:
                cfg_dict[key] = float(val) if ("." in val or "e" in val.lower()) else int(val)
            except ValueError:
                cfg_dict[key] = val
    return OmegaConf.create(cfg_dict)


if __name__ == "__main__":
    if os.environ.get("MPI_SUBPROCESS"):
        from mpi4py import MPI

        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        sys.exit(_run(_parse_args(sys.argv[1:]), MPI.COMM_WORLD))
    else:
        main()
