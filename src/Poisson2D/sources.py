"""Problem description loading and point source placement.

Input format (one record per line, labels optional)::

    nx: 100
    ny: 100
    precision goal: 0.0001
    max iterations: 5000
    source: 0.5 0.5 1.0
    source: 0.25 0.75 -1.0

The four header records are required. Source records follow until the end
of input or the first record that does not hold three numbers.
"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from mpi4py import MPI

from .datastructures import GlobalProblem, SourcePoint
from .errors import InputError
from .tile import LocalTile

log = logging.getLogger(__name__)

_HEADER = [
    ("nx", int),
    ("ny", int),
    ("precision_goal", float),
    ("max_iter", int),
]


def _fields(line: str) -> List[str]:
    """Split a record, dropping an optional ``label:`` prefix."""
    if ":" in line:
        line = line.split(":", 1)[1]
    return line.split()


def parse_problem(lines: Iterable[str]) -> Tuple[GlobalProblem, List[SourcePoint]]:
    """Parse a problem description.

    Raises
    ------
    InputError
        If a header record is missing or malformed, or the values are invalid.
    """
    records = (ln.strip() for ln in lines)
    records = [ln for ln in records if ln and not ln.startswith("#")]

    if len(records) < len(_HEADER):
        raise InputError(
            f"Problem description needs {len(_HEADER)} header records, "
            f"got {len(records)}"
        )

    header = {}
    for (name, cast), line in zip(_HEADER, records):
        fields = _fields(line)
        try:
            (value,) = fields
            header[name] = cast(value)
        except ValueError as e:
            raise InputError(f"Malformed '{name}' record: {line!r}") from e

    problem = GlobalProblem(**header)

    sources = []
    for line in records[len(_HEADER):]:
        try:
            x, y, value = (float(v) for v in _fields(line))
        except ValueError:
            log.warning(f"Malformed source record {line!r}, ignoring remaining input")
            break
        sources.append(SourcePoint(x, y, value))

    return problem, sources


def read_problem(path) -> Tuple[GlobalProblem, List[SourcePoint]]:
    """Read a problem description file."""
    path = Path(path)
    try:
        f = open(path, encoding="utf-8")
    except OSError as e:
        raise InputError(f"Error opening {path}: {e}") from e
    with f:
        try:
            return parse_problem(f)
        except InputError:
            raise
        except (UnicodeDecodeError, OSError) as e:
            raise InputError(f"Error reading {path}: {e}") from e


def broadcast_problem(
    comm: MPI.Comm, path=None, root: int = 0
) -> Tuple[GlobalProblem, List[SourcePoint]]:
    """Read the problem on ``root`` and broadcast it to every rank.

    Any load failure on ``root`` is broadcast in place of the problem, so
    all ranks raise ``InputError`` together instead of blocking.
    """
    payload: Optional[tuple] = None
    if comm.Get_rank() == root:
        try:
            payload = ("ok", read_problem(path))
        except InputError as e:
            payload = ("error", str(e))
        except Exception as e:
            log.exception(f"Unexpected error loading {path}")
            payload = ("error", f"{type(e).__name__}: {e}")

    status, data = comm.bcast(payload, root=root)
    if status == "error":
        raise InputError(data)
    return data


def source_cell(problem: GlobalProblem, source: SourcePoint) -> Tuple[int, int]:
    """Global interior cell of a point source (first interior cell is (1, 1))."""
    gx = int(math.floor(source.x * problem.nx)) + 1
    gy = int(math.floor(source.y * problem.ny)) + 1
    return gx, gy


def place_sources(
    tile: LocalTile, problem: GlobalProblem, sources: Iterable[SourcePoint]
) -> int:
    """Fix source values on the cells of ``tile`` that own them.

    Every rank sees the full list and keeps only the sources inside its own
    interior. Later sources on the same cell overwrite earlier ones.

    Returns
    -------
    int
        Number of sources placed on this tile.
    """
    placed = 0
    ox, oy = tile.offset
    for source in sources:
        gx, gy = source_cell(problem, source)
        x, y = gx - ox, gy - oy
        if tile.contains(x, y):
            tile.phi[x, y] = source.value
            tile.is_source[x, y] = True
            placed += 1
    return placed
