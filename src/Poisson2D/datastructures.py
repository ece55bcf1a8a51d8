"""Data structures for problem configuration, topology and results.

Architecture: Params vs Metrics x Global vs Local

                 Params (input/config)         Metrics (output/results)
                 ─────────────────────         ────────────────────────
Global           GlobalProblem                 GlobalMetrics
(same across     nx, ny, precision_goal,       iterations, state,
ranks / agg)     max_iter                      final_residual, wall_time...

Local            ProcessTopology               LocalMetrics
(per-rank)       rank, coords, neighbors       compute_times[],
                                               halo_times[], residuals[]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import InputError


# ============================================================================
# Global (identical across ranks, or aggregated on rank 0)
# ============================================================================


@dataclass(frozen=True)
class GlobalProblem:
    """Problem description - read once on rank 0, broadcast to all ranks."""

    nx: int
    ny: int
    precision_goal: float
    max_iter: int

    def __post_init__(self):
        if self.nx < 1 or self.ny < 1:
            raise InputError(f"Grid size must be positive, got ({self.nx}, {self.ny})")
        if not self.precision_goal > 0:
            raise InputError(f"Precision goal must be > 0, got {self.precision_goal}")
        if self.max_iter < 0:
            raise InputError(f"Max iterations must be >= 0, got {self.max_iter}")

    @property
    def gridsize(self) -> Tuple[int, int]:
        return (self.nx, self.ny)


@dataclass(frozen=True)
class SourcePoint:
    """Point source in fractional global coordinates."""

    x: float
    y: float
    value: float


@dataclass
class GlobalMetrics:
    """Run results, aggregated across ranks."""

    converged: bool = False
    state: str = "running"
    iterations: int = 0
    final_residual: Optional[float] = None
    wall_time: Optional[float] = None
    cpu_time: Optional[float] = None

    # Timing breakdown (sum across all iterations, this rank)
    total_compute_time: Optional[float] = None
    total_halo_time: Optional[float] = None

    # Numba runtime info (what was actually available)
    observed_numba_threads: Optional[int] = None

    def to_dict(self) -> dict:
        """Flat dict without None values (bools as int)."""
        return {
            k: (int(v) if isinstance(v, bool) else v)
            for k, v in self.__dict__.items()
            if v is not None
        }


# ============================================================================
# Local (per-rank)
# ============================================================================


@dataclass(frozen=True)
class ProcessTopology:
    """Position of one rank in the 2D Cartesian process grid.

    ``coords`` and ``dims`` are ordered (x, y). ``neighbors`` maps each of
    top/bottom/left/right to a rank, or None at a physical boundary.
    """

    rank: int
    coords: Tuple[int, int]
    dims: Tuple[int, int]
    neighbors: Dict[str, Optional[int]]

    @property
    def size(self) -> int:
        return self.dims[0] * self.dims[1]

    @property
    def n_neighbors(self) -> int:
        return sum(n is not None for n in self.neighbors.values())


@dataclass
class LocalMetrics:
    """Per-rank timeseries, accumulated during solve."""

    compute_times: List[float] = field(default_factory=list)
    halo_times: List[float] = field(default_factory=list)

    # Global stopping metric per iteration (identical on every rank)
    residual_history: List[float] = field(default_factory=list)

    def clear(self):
        """Clear all timeseries data."""
        self.compute_times.clear()
        self.halo_times.clear()
        self.residual_history.clear()
