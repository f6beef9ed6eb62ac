#!/usr/bin/env python
import enum
import numpy as np
from typing import Sequence
from abc import ABC, abstractmethod

from ..interface.sampling_data import Snapshot, CVData
from ..parallel import SerialCommunicator
from ..errors import LifecycleError


class State(enum.Enum):
    UNINITIALIZED = 0
    PRE_SIMULATION = 1
    RUNNING = 2
    POST_SIMULATION = 3


class Method(ABC):
    """Abstract class for sampling methods that are hooked into an MD engine

    The engine calls `pre_simulation` once, `post_integration` after every integration step
    and `post_simulation` once at the end, in this order. Calls out of order raise a `LifecycleError`.

    Args:
        world: communicator of all walkers that share the bias
        comm: communicator of the processes of this walker
        frequency: the method acts every `frequency` calls of `post_integration`
        verbose: print verbose information
    """

    def __init__(
        self,
        world=None,
        comm=None,
        frequency: int = 1,
        verbose: bool = True,
    ):
        if frequency < 1:
            raise ValueError(" >>> Fatal Error: Method frequency has to be a positive integer")

        self.world = SerialCommunicator() if world is None else world
        self.comm = SerialCommunicator() if comm is None else comm
        self.frequency = int(frequency)
        self.verbose = verbose
        self.iteration = 0
        self.state = State.UNINITIALIZED

    @property
    def is_root(self) -> bool:
        """True for the process that writes shared output"""
        return self.world.rank == 0

    def _require(self, hook: str, *states: State):
        if self.state not in states:
            raise LifecycleError(
                f" >>> Fatal Error: `{hook}` called in state {self.state.name}, "
                f"expected {' or '.join(s.name for s in states)}"
            )

    def pre_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        """prepare the method before the first MD step"""
        self._require("pre_simulation", State.UNINITIALIZED)
        self.state = State.PRE_SIMULATION
        self._pre_simulation(snapshot, cvs)
        self.state = State.RUNNING

    def post_integration(self, snapshot: Snapshot, cvs: Sequence[CVData]) -> np.ndarray:
        """apply the method after an integration step

        Returns:
            bias_force: force correction for the engine, zero in steps the method skips
        """
        self._require("post_integration", State.RUNNING)
        self.iteration += 1
        if self.iteration % self.frequency:
            return np.zeros_like(snapshot.forces, dtype=float)
        return self._post_integration(snapshot, cvs)

    def post_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        """finalize the method after the last MD step"""
        self._require("post_simulation", State.RUNNING)
        self._post_simulation(snapshot, cvs)
        self.state = State.POST_SIMULATION

    @abstractmethod
    def _pre_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        pass

    @abstractmethod
    def _post_integration(self, snapshot: Snapshot, cvs: Sequence[CVData]) -> np.ndarray:
        pass

    @abstractmethod
    def _post_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        pass

    @abstractmethod
    def serialize(self) -> dict:
        pass

    @abstractmethod
    def write_restart(self):
        pass

    @abstractmethod
    def restart(self):
        pass
