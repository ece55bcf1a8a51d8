"""Shared fixtures: problem files, single-rank contexts and a threaded world.

``ThreadWorld`` runs one thread per rank and gives each a communicator
implementing the subset of mpi4py used by the solver (Sendrecv with numpy
buffers, Allreduce, bcast, gather, Barrier). Point-to-point messages are
queued per (source, dest, tag), so ordering matches MPI's non-overtaking
rule. It only supports the numpy halo exchanger.
"""

import queue
import threading
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest
from mpi4py import MPI

from Poisson2D import (
    GlobalProblem,
    SolverContext,
    SourcePoint,
    allocate_tile,
    compute_topology,
    place_sources,
)


class ThreadComm:
    """Per-rank view of a ThreadWorld."""

    def __init__(self, world, rank):
        self.world = world
        self.rank = rank

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def Sendrecv(self, sendbuf, dest, sendtag, recvbuf, source, recvtag):
        if dest != MPI.PROC_NULL:
            self.world.mailbox(self.rank, dest, sendtag).put(np.array(sendbuf, copy=True))
        if source != MPI.PROC_NULL:
            data = self.world.mailbox(source, self.rank, recvtag).get(timeout=self.world.timeout)
            recvbuf[...] = data

    def _collect(self, value):
        self.world.slots[self.rank] = value
        self.world.barrier.wait()
        values = list(self.world.slots)
        self.world.barrier.wait()
        return values

    def Allreduce(self, sendbuf, recvbuf, op=MPI.SUM):
        values = np.array(self._collect(np.array(sendbuf, copy=True)))
        if op == MPI.MAX:
            recvbuf[...] = np.max(values, axis=0)
        elif op == MPI.SUM:
            recvbuf[...] = np.sum(values, axis=0)
        else:
            raise NotImplementedError(op)

    def bcast(self, obj, root=0):
        return self._collect(obj if self.rank == root else None)[root]

    def gather(self, obj, root=0):
        values = self._collect(obj)
        return values if self.rank == root else None

    def Barrier(self):
        self.world.barrier.wait()


class ThreadWorld:
    """In-process stand-in for an MPI job of ``size`` ranks."""

    def __init__(self, size, timeout=30.0):
        self.size = size
        self.timeout = timeout
        self.barrier = threading.Barrier(size, timeout=timeout)
        self.slots = [None] * size
        self._mailboxes = defaultdict(queue.Queue)
        self._lock = threading.Lock()

    def mailbox(self, source, dest, tag):
        with self._lock:
            return self._mailboxes[(source, dest, tag)]

    def run(self, fn):
        """Call ``fn(comm)`` on every rank concurrently; return results by rank."""

        def wrapped(rank):
            try:
                return fn(ThreadComm(self, rank))
            except BaseException:
                self.barrier.abort()
                raise

        with ThreadPoolExecutor(max_workers=self.size) as ex:
            futures = [ex.submit(wrapped, rank) for rank in range(self.size)]
            return [f.result() for f in futures]


def build_context(comm, dims, problem, sources=(), halo_exchange="numpy"):
    """SolverContext from a precomputed topology (no Create_cart)."""
    topology = compute_topology(comm.Get_size(), dims, comm.Get_rank())
    tile = allocate_tile(problem, topology)
    place_sources(tile, problem, sources)
    return SolverContext(comm, topology, problem, tile, halo_exchange=halo_exchange)


@pytest.fixture
def thread_world():
    """Factory: thread_world(size) -> ThreadWorld."""
    return ThreadWorld


@pytest.fixture
def make_context():
    """Factory building a SolverContext for a given communicator."""
    return build_context


@pytest.fixture
def single_context():
    """Factory: single-rank context on MPI.COMM_SELF."""

    def factory(problem, sources=(), halo_exchange="custom"):
        return build_context(MPI.COMM_SELF, (1, 1), problem, sources, halo_exchange)

    return factory


@pytest.fixture
def source_problem():
    """Small problem with one positive and one negative source."""
    problem = GlobalProblem(nx=20, ny=16, precision_goal=1e-6, max_iter=5000)
    sources = [SourcePoint(0.3, 0.4, 1.0), SourcePoint(0.7, 0.6, -1.0)]
    return problem, sources


@pytest.fixture
def write_input(tmp_path):
    """Factory writing a problem description file."""

    def factory(nx=20, ny=16, precision_goal=1e-6, max_iter=5000, sources=(), name="input.dat"):
        lines = [
            f"nx: {nx}",
            f"ny: {ny}",
            f"precision goal: {precision_goal}",
            f"max iterations: {max_iter}",
        ]
        lines += [f"source: {x} {y} {v}" for x, y, v in sources]
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n")
        return path

    return factory
