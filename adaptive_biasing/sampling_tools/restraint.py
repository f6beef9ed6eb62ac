import numpy as np
from typing import List, Sequence

from ..grid import Grid
from ..errors import ConfigurationError


class HarmonicRestraint:
    """Harmonic walls that keep collective variables in [minimum, maximum]

    Inside of [minimum, maximum] the restraint is zero, outside the generalized force
    k * (minimum - xi) or k * (maximum - xi) pushes the CV back.

    Args:
        minimums: lower wall for each CV
        maximums: upper wall for each CV
        spring_constants: force constant for each CV, None or 0 switches the restraint off
    """

    def __init__(
        self,
        minimums: Sequence[float],
        maximums: Sequence[float],
        spring_constants: Sequence[float],
    ):
        if not (len(minimums) == len(maximums) == len(spring_constants)):
            raise ValueError(
                " >>> Fatal Error: Number of restraint minimums, maximums and spring constants does not match"
            )
        self.ncoords = len(spring_constants)
        self.active = np.array(
            [k is not None and k != 0.0 for k in spring_constants], dtype=bool
        )
        self.minimums = np.array(
            [m if a else -np.inf for m, a in zip(minimums, self.active)], dtype=float
        )
        self.maximums = np.array(
            [m if a else np.inf for m, a in zip(maximums, self.active)], dtype=float
        )
        self.spring_constants = np.array(
            [k if a else 0.0 for k, a in zip(spring_constants, self.active)], dtype=float
        )

    @classmethod
    def none(cls, ncoords: int) -> "HarmonicRestraint":
        """no restraint on any of `ncoords` CVs"""
        return cls([None] * ncoords, [None] * ncoords, [None] * ncoords)

    def validate(self, grid: Grid, path: str = "#/restraint"):
        """check that the walls lie outside of the grid by at least one bin width,
        such that restraint and histogram do not overlap

        Args:
            grid: histogram grid
            path: JSON pointer to the restraint definition used in error messages
        """
        if grid.dimension != self.ncoords:
            raise ConfigurationError(
                f"{self.ncoords} restraints given for {grid.dimension} collective variables",
                f"{path}/spring_constants",
            )

        for i in range(self.ncoords):
            if not self.active[i]:
                continue
            if grid.get_periodic(i):
                raise ConfigurationError(
                    f"CV {i} is periodic and cannot be restrained",
                    f"{path}/spring_constants/{i}",
                )
            if self.spring_constants[i] < 0.0:
                raise ConfigurationError(
                    f"spring constant has to be positive, got {self.spring_constants[i]}",
                    f"{path}/spring_constants/{i}",
                )
            dx = grid.get_spacing(i)
            if self.minimums[i] > grid.get_lower(i) - dx + 1.0e-10 * dx:
                raise ConfigurationError(
                    f"restraint minimum {self.minimums[i]} has to be at least one bin width ({dx}) "
                    f"below the lower edge {grid.get_lower(i)} of the histogram",
                    f"{path}/minimums/{i}",
                )
            if self.maximums[i] < grid.get_upper(i) + dx - 1.0e-10 * dx:
                raise ConfigurationError(
                    f"restraint maximum {self.maximums[i]} has to be at least one bin width ({dx}) "
                    f"above the upper edge {grid.get_upper(i)} of the histogram",
                    f"{path}/maximums/{i}",
                )

    def get_forces(self, xi: Sequence[float]) -> np.ndarray:
        """generalized restraint force on each CV

        Args:
            xi: current values of the CVs

        Returns:
            forces: zero inside of the walls
        """
        xi = np.asarray(xi, dtype=float)
        below = xi < self.minimums
        above = xi > self.maximums
        forces = np.zeros(self.ncoords)
        forces[below] = self.spring_constants[below] * (self.minimums[below] - xi[below])
        forces[above] = self.spring_constants[above] * (self.maximums[above] - xi[above])
        return forces

    def get_energies(self, xi: Sequence[float]) -> np.ndarray:
        """restraint energy of each CV"""
        xi = np.asarray(xi, dtype=float)
        forces = self.get_forces(xi)
        return np.divide(
            0.5 * forces * forces,
            self.spring_constants,
            out=np.zeros(self.ncoords),
            where=(self.spring_constants > 0.0),
        )

    def to_lists(self) -> List[list]:
        """minimums, maximums and spring constants, switched off restraints as NaN"""
        return [
            np.where(self.active, self.minimums, np.nan).tolist(),
            np.where(self.active, self.maximums, np.nan).tolist(),
            np.where(self.active, self.spring_constants, np.nan).tolist(),
        ]

    @classmethod
    def from_lists(cls, minimums, maximums, spring_constants) -> "HarmonicRestraint":
        """inverse of `to_lists`"""
        spring_constants = [None if np.isnan(k) else float(k) for k in spring_constants]
        return cls(list(minimums), list(maximums), spring_constants)
