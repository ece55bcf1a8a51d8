"""MPI worker - invoked via: mpiexec -n X python -m Poisson2D.helpers.runner_helper '{config}'"""

import json
import logging
import sys

from mpi4py import MPI

from Poisson2D.errors import AllocationError, Poisson2DError
from Poisson2D.io import save_summary
from Poisson2D.runner import solve_from_file

log = logging.getLogger(__name__)


def main(config: dict, comm: MPI.Comm = MPI.COMM_WORLD) -> int:
    try:
        solver, metrics = solve_from_file(
            config["input_file"],
            dims=(config.get("px", 1), config.get("py", 1)),
            comm=comm,
            solver_type=config.get("solver_type", "sor"),
            communicator=config.get("communicator", "custom"),
            use_numba=config.get("use_numba", False),
            numba_threads=config.get("numba_threads", 1),
            omega=config.get("omega", 1.95),
            output_dir=config.get("output_dir"),
        )
    except AllocationError as e:
        log.error(f"Rank {comm.Get_rank()}: {e}")
        comm.Abort(1)
    except Poisson2DError as e:
        if comm.Get_rank() == 0:
            log.error(f"{type(e).__name__}: {e}")
        return 1

    # Save summary on the root of the solver's communicator
    if solver.rank == 0 and config.get("output"):
        params = {k: v for k, v in config.items() if k != "output"}
        params["n_ranks"] = solver.context.size
        save_summary(config["output"], params, metrics)
        print(f"RESULT:{config['output']}")
    return 0


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    sys.exit(main(json.loads(sys.argv[1])))
