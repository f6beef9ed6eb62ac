import numpy as np
from dataclasses import dataclass
from typing import Protocol


@dataclass
class Snapshot:
    """The state of the MD engine that is needed to apply the bias."""

    mass: np.ndarray  # Masses, shape (natoms,)
    coords: np.ndarray  # Cartesian coordinates, shape (3 * natoms,)
    velocities: np.ndarray  # Velocities, shape (3 * natoms,)
    forces: np.ndarray  # Forces, shape (3 * natoms,)
    natoms: int  # Number of atoms
    step: int  # MD step number
    dt: float  # MD step size
    epot: float = 0.0  # Potential energy
    temp: float = 0.0  # Temperature in Kelvin


@dataclass
class CVData:
    """Value and gradient of one collective variable."""

    value: float
    gradient: np.ndarray  # d(value)/d(coords), shape (3 * natoms,)


class MDInterface(Protocol):
    def get_snapshot(self) -> Snapshot:
        """Define this function for your MD class to provide the
        required state of the engine for ABF. If you do not
        wish to have this package as a dependency, wrap the import
        in a `try`/`except` clause, e.g.,

        ```
        class MD:
            # Your MD code
            ...

            def get_snapshot(self):
                try:
                    from adaptive_biasing.interface.sampling_data import Snapshot

                    mass       = ...
                    coords     = ...
                    velocities = ...
                    forces     = ...
                    natoms     = ...
                    step       = ...
                    dt         = ...

                    return Snapshot(mass, coords, velocities, forces, natoms, step, dt)
                except ImportError as e:
                    raise NotImplementedError("`get_snapshot()` is missing `adaptive_biasing` package") from e
        ```
        """
        ...
