import threading
import numpy as np
from typing import List

from .errors import SynchronizationError


class SerialCommunicator:
    """Communicator of a single process, reductions are the identity"""

    rank = 0
    size = 1

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        return np.array(array, copy=True)

    def barrier(self):
        pass


class LocalCommunicator:
    """Member `rank` of a `LocalGroup`"""

    def __init__(self, group: "LocalGroup", rank: int):
        self.group = group
        self.rank = rank

    @property
    def size(self) -> int:
        return self.group.size

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        return self.group._allreduce(self.rank, array)

    def barrier(self):
        self.group._wait(self.rank)


class LocalGroup:
    """Group of walkers that run in threads of one process

    Reductions block until all `size` members arrived. The sum is taken in rank order
    by every member, such that all members receive bit-identical arrays.

    Args:
        size: number of walkers in the group
        timeout: seconds to wait for the other walkers before the barrier breaks,
                 if None, wait forever
    """

    def __init__(self, size: int, timeout: float = 60.0):
        if size < 1:
            raise ValueError(" >>> Fatal Error: LocalGroup needs at least one member")
        self.size = size
        self.timeout = timeout
        self._barrier = threading.Barrier(size, timeout=timeout)
        self._buffers = [None for _ in range(size)]
        self.communicators: List[LocalCommunicator] = [
            LocalCommunicator(self, rank) for rank in range(size)
        ]

    def __getitem__(self, rank: int) -> LocalCommunicator:
        return self.communicators[rank]

    def __len__(self) -> int:
        return self.size

    def _wait(self, rank: int):
        try:
            self._barrier.wait()
        except threading.BrokenBarrierError as e:
            raise SynchronizationError(
                f" >>> Fatal Error: Walker {rank} did not meet all {self.size} walkers at the barrier"
            ) from e

    def _allreduce(self, rank: int, array: np.ndarray) -> np.ndarray:
        self._buffers[rank] = np.asarray(array)
        self._wait(rank)

        shapes = set(buf.shape for buf in self._buffers)
        if len(shapes) != 1:
            self._barrier.abort()
            raise SynchronizationError(
                f" >>> Fatal Error: Walkers submitted arrays of different shapes {sorted(shapes)}"
            )

        result = np.array(self._buffers[0], copy=True)
        for buf in self._buffers[1:]:
            result += buf

        # buffers of this round must not be replaced before every walker read them
        self._wait(rank)
        return result


class MPICommunicator:
    """Collective operations with `mpi4py`

    Args:
        comm: mpi4py communicator, defaults to `MPI.COMM_WORLD`
    """

    def __init__(self, comm=None):
        from mpi4py import MPI

        self._MPI = MPI
        self.comm = MPI.COMM_WORLD if comm is None else comm

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()

    @property
    def size(self) -> int:
        return self.comm.Get_size()

    def allreduce_sum(self, array: np.ndarray) -> np.ndarray:
        sendbuf = np.ascontiguousarray(array)
        recvbuf = np.empty_like(sendbuf)
        try:
            self.comm.Allreduce(sendbuf, recvbuf, op=self._MPI.SUM)
        except self._MPI.Exception as e:
            raise SynchronizationError(
                f" >>> Fatal Error: MPI reduction failed on rank {self.rank}: {e}"
            ) from e
        return recvbuf

    def barrier(self):
        self.comm.Barrier()

    def split(self, color: int, key: int = 0) -> "MPICommunicator":
        """split into sub-communicators, e.g. the processes of one walker"""
        return MPICommunicator(self.comm.Split(color, key))
