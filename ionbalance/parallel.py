"""Work partition and collective exchange across a flat group of ranks.

Cells are split into contiguous blocks whose sizes differ by at most one;
each rank updates its own block and then broadcasts it in a packed buffer so
every rank ends the cycle with the full cell array.  Spectra are averaged
with a sum-reduce to rank 0 followed by a broadcast.

Three communicators implement the same small interface:

* :class:`SerialCommunicator`: a single rank, no communication.
* :class:`MPICommunicator`: wraps an ``mpi4py`` communicator.
* :class:`LocalGroup`: ranks running as threads of one process, for
  single-node runs and tests.  All ranks of a group must call the same
  collectives in the same order.
"""
from __future__ import annotations

import logging
import math
import threading
from dataclasses import fields
from typing import Any, Callable, List, Optional, Protocol, Sequence, Tuple, TypeVar

import numpy as np

from .plasma import PlasmaCell
from .spectra import SpectrumSet

logger = logging.getLogger(__name__)

T = TypeVar("T")

__all__ = [
    "get_parallel_nrange",
    "get_max_cells_per_rank",
    "Communicator",
    "SerialCommunicator",
    "MPICommunicator",
    "LocalGroup",
    "comm_buffer_size",
    "pack_spectra",
    "unpack_spectra",
    "gather_extracted_spectrum",
    "cell_state_vector",
    "load_cell_state_vector",
    "exchange_cell_states",
]


def get_parallel_nrange(rank: int, ntotal: int, nproc: int) -> Tuple[int, int]:
    """Return ``(nmin, nmax)``, the half-open range of items owned by ``rank``.

    The first ``ntotal % nproc`` ranks take one extra item.
    """

    if nproc < 1:
        raise ValueError(f"nproc must be at least 1 (got {nproc})")
    if not 0 <= rank < nproc:
        raise ValueError(f"rank {rank} outside 0..{nproc - 1}")
    if ntotal < 0:
        raise ValueError(f"ntotal must be non-negative (got {ntotal})")
    per_rank = ntotal // nproc
    extra = ntotal - nproc * per_rank
    if rank < extra:
        nmin = rank * (per_rank + 1)
        nmax = (rank + 1) * (per_rank + 1)
    else:
        nmin = extra * (per_rank + 1) + (rank - extra) * per_rank
        nmax = extra * (per_rank + 1) + (rank - extra + 1) * per_rank
    return nmin, nmax


def get_max_cells_per_rank(ntotal: int, nproc: int) -> int:
    """Largest block any rank owns; use it to size communication buffers."""

    return int(math.ceil(ntotal / nproc))


class Communicator(Protocol):
    """Collective operations the exchange needs."""

    rank: int
    size: int

    def reduce_sum(self, sendbuf: np.ndarray, recvbuf: np.ndarray, root: int = 0) -> None: ...

    def bcast_array(self, buf: np.ndarray, root: int = 0) -> None: ...

    def barrier(self) -> None: ...


class SerialCommunicator:
    """Single-rank communicator."""

    rank = 0
    size = 1

    def reduce_sum(self, sendbuf: np.ndarray, recvbuf: np.ndarray, root: int = 0) -> None:
        recvbuf[...] = sendbuf

    def bcast_array(self, buf: np.ndarray, root: int = 0) -> None:
        return None

    def barrier(self) -> None:
        return None


class MPICommunicator:
    """Adapter around an ``mpi4py`` communicator (``MPI.COMM_WORLD`` by default)."""

    def __init__(self, comm: Any = None) -> None:
        from mpi4py import MPI

        self._mpi = MPI
        self.comm = MPI.COMM_WORLD if comm is None else comm
        self.rank = int(self.comm.Get_rank())
        self.size = int(self.comm.Get_size())

    def reduce_sum(self, sendbuf: np.ndarray, recvbuf: np.ndarray, root: int = 0) -> None:
        self.comm.Reduce(sendbuf, recvbuf, op=self._mpi.SUM, root=root)

    def bcast_array(self, buf: np.ndarray, root: int = 0) -> None:
        self.comm.Bcast(buf, root=root)

    def barrier(self) -> None:
        self.comm.Barrier()

    def pack_size(self, num_ints: int, num_doubles: int) -> int:
        return int(
            self._mpi.INT.Pack_size(num_ints, self.comm) + self._mpi.DOUBLE.Pack_size(num_doubles, self.comm)
        )


class _LocalCommunicator:
    def __init__(self, group: "LocalGroup", rank: int) -> None:
        self._group = group
        self.rank = rank
        self.size = group.size

    def _exchange(self, value: Any) -> List[Any]:
        group = self._group
        group._slots[self.rank] = value
        group._barrier.wait()
        values = list(group._slots)
        group._barrier.wait()
        return values

    def reduce_sum(self, sendbuf: np.ndarray, recvbuf: np.ndarray, root: int = 0) -> None:
        values = self._exchange(np.array(sendbuf, dtype=float, copy=True))
        if self.rank == root:
            total = np.zeros_like(values[0])
            for value in values:
                total += value
            recvbuf[...] = total

    def bcast_array(self, buf: np.ndarray, root: int = 0) -> None:
        values = self._exchange(np.array(buf, copy=True) if self.rank == root else None)
        if self.rank != root:
            buf[...] = values[root]

    def barrier(self) -> None:
        self._group._barrier.wait()


class LocalGroup:
    """A group of ``size`` ranks that run as threads of the current process."""

    def __init__(self, size: int) -> None:
        if size < 1:
            raise ValueError(f"group size must be at least 1 (got {size})")
        self.size = int(size)
        self._barrier = threading.Barrier(self.size)
        self._slots: List[Any] = [None] * self.size

    def communicator(self, rank: int) -> _LocalCommunicator:
        if not 0 <= rank < self.size:
            raise ValueError(f"rank {rank} outside 0..{self.size - 1}")
        return _LocalCommunicator(self, rank)

    def run(self, func: Callable[[Communicator], T]) -> List[T]:
        """Call ``func(comm)`` on every rank concurrently and return the results by rank.

        If a rank raises, the group barrier is broken so the others stop, and
        the first exception raised is re-raised.
        """

        results: List[Any] = [None] * self.size
        errors: List[Optional[BaseException]] = [None] * self.size

        def target(rank: int) -> None:
            try:
                results[rank] = func(self.communicator(rank))
            except BaseException as exc:  # re-raised below in the calling thread
                errors[rank] = exc
                self._barrier.abort()

        threads = [threading.Thread(target=target, args=(rank,), name=f"rank-{rank}") for rank in range(self.size)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        self._barrier.reset()
        failures = [exc for exc in errors if exc is not None]
        if failures:
            primary = [exc for exc in failures if not isinstance(exc, threading.BrokenBarrierError)]
            raise (primary or failures)[0]
        return results


def comm_buffer_size(num_ints: int, num_doubles: int, comm: Optional[Communicator] = None) -> int:
    """Bytes needed for a packed buffer of ``num_ints`` ints and ``num_doubles`` doubles."""

    if isinstance(comm, MPICommunicator):
        return comm.pack_size(num_ints, num_doubles)
    return int(num_ints * np.dtype(np.intc).itemsize + num_doubles * np.dtype(np.float64).itemsize)


def pack_spectra(spectra: SpectrumSet, nranks: int) -> np.ndarray:
    """Return the send buffer for :func:`gather_extracted_spectrum`.

    Quantity ``k``, wavelength bin ``i`` and spectrum ``j`` land at
    ``k * nspec * nwave + i * nspec + j``, pre-divided by ``nranks``.
    """

    return np.concatenate([np.ascontiguousarray(q.T).ravel() for q in spectra.quantities()]) / nranks


def unpack_spectra(buf: np.ndarray, spectra: SpectrumSet) -> None:
    nspec, nwave = spectra.shape
    block = nspec * nwave
    if buf.size != 4 * block:
        raise ValueError(f"buffer of {buf.size} values does not match 4 x {nspec} x {nwave} spectra")
    for k, quantity in enumerate(spectra.quantities()):
        quantity[...] = buf[k * block : (k + 1) * block].reshape(nwave, nspec).T


def gather_extracted_spectrum(spectra: SpectrumSet, comm: Communicator) -> SpectrumSet:
    """Average ``spectra`` over all ranks in place.

    Every rank must call this; on return all ranks hold the same arrays.
    """

    sendbuf = pack_spectra(spectra, comm.size)
    recvbuf = np.zeros_like(sendbuf)
    comm.reduce_sum(sendbuf, recvbuf, root=0)
    comm.bcast_array(recvbuf, root=0)
    unpack_spectra(recvbuf, spectra)
    return spectra


_INDEX_FIELDS = ("nplasma", "nwind")


def _state_fields() -> List[Tuple[str, str]]:
    return [(item.name, str(item.type)) for item in fields(PlasmaCell) if item.name not in _INDEX_FIELDS]


def cell_state_vector(cell: PlasmaCell) -> np.ndarray:
    """Flatten the mutable state of ``cell`` into one float64 vector."""

    parts = [np.atleast_1d(np.asarray(getattr(cell, name), dtype=np.float64)) for name, _ in _state_fields()]
    return np.concatenate(parts)


def load_cell_state_vector(cell: PlasmaCell, vector: np.ndarray) -> None:
    """Inverse of :func:`cell_state_vector` for a cell with the same array sizes."""

    layout = _state_fields()
    expected = sum(np.size(getattr(cell, name)) for name, _ in layout)
    if expected != vector.size:
        raise ValueError(f"state vector of {vector.size} values does not match cell layout ({expected})")
    offset = 0
    for name, annotation in layout:
        current = getattr(cell, name)
        if isinstance(current, np.ndarray):
            size = current.size
            setattr(cell, name, vector[offset : offset + size].astype(current.dtype))
        else:
            size = 1
            setattr(cell, name, int(vector[offset]) if annotation == "int" else float(vector[offset]))
        offset += size


def exchange_cell_states(cells: Sequence[PlasmaCell], comm: Communicator) -> int:
    """Share every rank's block of updated cells with all other ranks.

    Each rank in turn broadcasts a buffer of ``ceil(N/P)`` rows; row ``k``
    holds the cell index followed by its state vector.  Returns the number of
    cells received from other ranks.
    """

    ncells = len(cells)
    if comm.size == 1 or ncells == 0:
        return 0
    width = cell_state_vector(cells[0]).size + 1
    max_rows = get_max_cells_per_rank(ncells, comm.size)
    logger.debug(
        "exchange_cell_states: %d cells over %d ranks, %d bytes per broadcast",
        ncells, comm.size, comm_buffer_size(0, max_rows * width, comm),
    )
    received = 0
    for root in range(comm.size):
        nmin, nmax = get_parallel_nrange(root, ncells, comm.size)
        buf = np.zeros((max_rows, width))
        if comm.rank == root:
            for row, index in enumerate(range(nmin, nmax)):
                buf[row, 0] = index
                buf[row, 1:] = cell_state_vector(cells[index])
        comm.bcast_array(buf, root=root)
        if comm.rank != root:
            for row in range(nmax - nmin):
                index = int(buf[row, 0])
                load_cell_state_vector(cells[index], buf[row, 1:])
                received += 1
    return received
