"""Per-process solution output and run summaries."""

from __future__ import annotations

from pathlib import Path

import pandas as pd

from .datastructures import GlobalMetrics
from .tile import LocalTile


def output_path(output_dir, rank: int) -> Path:
    """Solution file of one rank: ``output{rank}.dat``."""
    return Path(output_dir) / f"output{rank}.dat"


def tile_to_frame(tile: LocalTile) -> pd.DataFrame:
    """Interior cells as (global_x, global_y, value), x-major order."""
    gx, gy = tile.global_coords()
    return pd.DataFrame({
        "global_x": gx.ravel(),
        "global_y": gy.ravel(),
        "value": tile.interior(tile.phi).ravel(),
    })


def write_tile(tile: LocalTile, path) -> Path:
    """Write one line ``global_x global_y value`` per interior cell."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tile_to_frame(tile).to_csv(
        path, sep=" ", header=False, index=False, float_format="%f"
    )
    return path


def read_tile_output(path) -> pd.DataFrame:
    """Read a solution file written by ``write_tile``."""
    return pd.read_csv(
        path, sep=r"\s+", header=None, names=["global_x", "global_y", "value"]
    )


def save_summary(path, params: dict, metrics: GlobalMetrics) -> Path:
    """Save run parameters and metrics as a one-row CSV."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    row = {**params, **metrics.to_dict()}
    pd.DataFrame([row]).to_csv(path, index=False)
    return path


def load_summary(path) -> dict:
    """Load a summary written by ``save_summary``."""
    return pd.read_csv(path).iloc[0].to_dict()


def format_timing(rank: int, size: int, metrics: GlobalMetrics) -> str:
    """Per-rank elapsed time line with CPU utilisation."""
    wall = metrics.wall_time or 0.0
    cpu_pct = 100.0 * (metrics.cpu_time or 0.0) / wall if wall > 0 else 0.0
    return f"({rank} / {size}) Elapsed processortime: {wall:14.6f} s ({cpu_pct:5.1f}% CPU)"
