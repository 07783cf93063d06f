"""Process communicators and work partitioning for the SPMD solver loops.

Every loop over states in :py:mod:`dragBTE` works on a contiguous block of indices owned by the calling worker and
combines the partial results with :py:meth:`Communicator.allreduce_sum`. Single-process runs use
:py:class:`SerialCommunicator`, distributed runs :py:class:`MPICommunicator` (requires :py:mod:`mpi4py`).
"""

from abc import ABC, abstractmethod

import numpy as np

from . import to_cpu, xp


class Communicator(ABC):
    """Minimal collective-communication interface used by the solvers."""

    @property
    @abstractmethod
    def rank(self) -> int:
        """Index of the calling worker."""

    @property
    @abstractmethod
    def size(self) -> int:
        """Total number of workers."""

    @property
    def is_root(self) -> bool:
        """``True`` on the worker that prints and writes files."""
        return self.rank == 0

    @abstractmethod
    def barrier(self):
        """Block until all workers reach this point."""

    @abstractmethod
    def allreduce_sum(self, array):
        """Return the elementwise sum of `array` over all workers."""

    @abstractmethod
    def bcast(self, obj, root=0):
        """Broadcast a picklable object from `root`."""

    @abstractmethod
    def abort(self, errorcode=1):
        """Terminate all workers."""


class SerialCommunicator(Communicator):
    """Communicator for a single process, all collectives are identities."""

    @property
    def rank(self):
        """Always 0."""
        return 0

    @property
    def size(self):
        """Always 1."""
        return 1

    def barrier(self):
        """Do nothing."""

    def allreduce_sum(self, array):
        """Return `array` unchanged."""
        return array

    def bcast(self, obj, root=0):
        """Return `obj` unchanged."""
        return obj

    def abort(self, errorcode=1):
        """Exit the interpreter with `errorcode`."""
        raise SystemExit(errorcode)


class MPICommunicator(Communicator):
    """Communicator backed by an :py:mod:`mpi4py` intracommunicator.

    Parameters
    ----------
    comm : mpi4py.MPI.Comm, optional
        Communicator to wrap. Defaults to ``MPI.COMM_WORLD``.

    """

    def __init__(self, comm=None):
        """Initialize the MPICommunicator."""
        from mpi4py import MPI

        self._MPI = MPI
        self.comm = MPI.COMM_WORLD if comm is None else comm

    @property
    def rank(self):
        """Rank within the wrapped communicator."""
        return self.comm.Get_rank()

    @property
    def size(self):
        """Size of the wrapped communicator."""
        return self.comm.Get_size()

    def barrier(self):
        """MPI barrier."""
        self.comm.Barrier()

    def allreduce_sum(self, array):
        """Sum `array` over all ranks, device arrays are staged through host memory."""
        buf = np.ascontiguousarray(to_cpu(array))
        self.comm.Allreduce(self._MPI.IN_PLACE, buf, op=self._MPI.SUM)
        return xp.asarray(buf)

    def bcast(self, obj, root=0):
        """Pickle-based broadcast."""
        return self.comm.bcast(obj, root=root)

    def abort(self, errorcode=1):
        """Abort every rank of the wrapped communicator."""
        self.comm.Abort(errorcode)


def get_communicator(kind="serial"):
    """Construct a communicator by name.

    Parameters
    ----------
    kind : {'serial', 'mpi'}
        Which communicator to build.

    Returns
    -------
    Communicator
        The requested communicator.

    """
    if kind == "serial":
        return SerialCommunicator()
    if kind == "mpi":
        return MPICommunicator()
    raise ValueError(f"Unknown communicator: {kind}")


def distribute_points(npts, comm):
    """Return the contiguous block of ``range(npts)`` owned by the calling worker.

    The first ``npts % comm.size`` workers get one extra point, blocks are in ascending rank order.

    Parameters
    ----------
    npts : int
        Number of points to distribute.
    comm : Communicator
        Communicator whose rank and size define the partition.

    Returns
    -------
    range
        Indices assigned to this worker, possibly empty.

    """
    chunk, rem = divmod(int(npts), comm.size)
    start = comm.rank * chunk + min(comm.rank, rem)
    stop = start + chunk + (1 if comm.rank < rem else 0)
    return range(start, stop)
