#!/usr/bin/env python
import random
import numpy as np
from typing import Tuple
from .sampling_data import Snapshot
from .. import units


class MD:
    """Langevin dynamics of one particle on 2D test potentials, in atomic units

    Args:
        mass_in: mass of the particle
        coords_in: initial coordinates
        potential: selects the potential energy surface, see `calc_energy_forces_MD`
        dt_in: time step in fs
        target_temp_in: temperature of the Langevin thermostat in Kelvin
        seed_in: seed for the random number generator
    """

    def __init__(
        self,
        mass_in=1.0,
        coords_in=[0.0, 0.0],
        potential="1",
        dt_in=0.1e0,
        target_temp_in=298.15e0,
        seed_in=4911,
    ):
        self.step = 0
        self.coords = np.array(coords_in, dtype=float)
        self.natoms = 1
        self.dt_fs = dt_in
        self.dt = dt_in / units.atomic_to_fs
        self.target_temp = target_temp_in
        self.forces = np.zeros(2 * self.natoms)
        self.bias_forces = np.zeros(2 * self.natoms)
        self.momenta = np.zeros(2 * self.natoms)
        self.potential = potential
        self.rand_gauss = np.zeros(2 * self.natoms)

        if type(seed_in) is int:
            random.seed(seed_in)
        else:
            try:
                random.setstate(seed_in)
            except (TypeError, ValueError) as e:
                raise ValueError(
                    "\tThe provided seed was neither an int nor a state of random"
                ) from e

        self.mass = mass_in
        self.masses = np.full(2, self.mass)

        self.epot = 0.0e0
        self.ekin = 0.0e0
        self.temp = 0.0e0

    def calc_init(self, init_temp=298.15e0):
        """Initial calculation of energy, forces and random momenta

        Args:
           init_temp (float): initial temperature in Kelvin
        """
        self.calc()

        self.momenta = np.zeros(2 * self.natoms)
        self.momenta[0] = random.gauss(0.0, 1.0) * np.sqrt(init_temp * self.mass)
        self.momenta[1] = random.gauss(0.0, 1.0) * np.sqrt(init_temp * self.mass)

        TTT = (np.power(self.momenta, 2) / self.masses).sum() / 2.0
        self.momenta *= np.sqrt(init_temp / (TTT * units.atomic_to_K))
        self.calc_etvp()

    def calc(self):
        """Calculation of energy and forces, the bias force of the last call to `add_bias` is included"""
        (self.epot, self.forces) = self.calc_energy_forces_MD(self.potential)
        self.forces += self.bias_forces

    def calc_energy_forces_MD(self, potential: str = "1") -> Tuple[float, np.ndarray]:
        """Calculate energy and forces (as negative gradient)

        Args:
            potential: selects potential energy function
        """
        import torch

        coords = torch.from_numpy(np.copy(self.coords))
        coords.requires_grad = True

        x = coords[0]
        y = coords[1]

        if potential == "1":
            # double well along x, harmonic along y
            a = 8.0e-6 / units.atomic_to_kJmol
            b = 0.5 / units.atomic_to_kJmol
            d = 80.0
            e = 160.0

            s1 = (x - d) * (x - d)
            s2 = (x - e) * (x - e)

            epot = a * s1 * s2 + b * y * y

        elif potential == "2":
            # two Gaussian wells on the diagonal
            a = 0.005
            b = 0.040
            d = 40.0
            e = 20.0

            exp_1 = torch.exp((-a * (x - d) * (x - d)) + (-b * (y - e) * (y - e)))
            exp_2 = torch.exp((-a * (x + d) * (x + d)) + (-b * (y + e) * (y + e)))

            epot = -torch.log(exp_1 + exp_2) / units.atomic_to_kJmol

        elif potential == "3":
            # harmonic well
            epot = 0.5 * (x * x + y * y) / units.atomic_to_kJmol

        else:
            raise ValueError(f" >>> Fatal Error: Invalid potential `{potential}`")

        forces = -torch.autograd.grad(epot, coords, allow_unused=True)[0]
        return float(epot), forces.detach().numpy()

    def calc_etvp(self):
        """Calculation of kinetic energy and temperature"""
        self.ekin = (np.square(self.momenta) / self.masses).sum()
        self.ekin /= 2.0
        self.temp = (self.ekin * 2.0) / (2 * self.natoms * units.kB_in_atomic)

    def propagate(self, langevin=True, friction=1.0e-3):
        """Propagate momenta/coords with Velocity Verlet

        Args:
           langevin                (bool, True)
           friction                (float, 10^-3 1/fs)
        """
        if langevin:
            prefac = 2.0 / (2.0 + friction * self.dt_fs)
            rand_push = np.sqrt(
                self.target_temp * friction * self.dt_fs * units.kB_in_atomic / 2.0e0
            )
            self.rand_gauss[0] = random.gauss(0, 1)
            self.rand_gauss[1] = random.gauss(0, 1)

            self.momenta += np.sqrt(self.masses) * rand_push * self.rand_gauss
            self.momenta += 0.5e0 * self.dt * self.forces
            self.coords += prefac * self.dt * self.momenta / self.masses

        else:
            self.momenta += 0.5e0 * self.dt * self.forces
            self.coords += self.dt * self.momenta / self.masses

    def up_momenta(self, langevin=True, friction=1.0e-3):
        """Update momenta with Velocity Verlet

        Args:
           langevin                (bool, True)
           friction                (float, 10^-3 1/fs)
        """
        if langevin:
            prefac = (2.0e0 - friction * self.dt_fs) / (2.0e0 + friction * self.dt_fs)
            rand_push = np.sqrt(
                self.target_temp * friction * self.dt_fs * units.kB_in_atomic / 2.0e0
            )
            self.momenta *= prefac
            self.momenta += np.sqrt(self.masses) * rand_push * self.rand_gauss
            self.momenta += 0.5e0 * self.dt * self.forces
        else:
            self.momenta += 0.5e0 * self.dt * self.forces

    def add_bias(self, bias_forces: np.ndarray):
        """replace the force correction of a biasing method in the current forces"""
        bias_forces = np.asarray(bias_forces, dtype=float)
        self.forces += bias_forces - self.bias_forces
        self.bias_forces = bias_forces.copy()

    def get_snapshot(self) -> Snapshot:
        """interface to adaptive_biasing"""
        return Snapshot(
            np.array([self.mass]),
            self.coords,
            self.momenta / self.masses,
            self.forces,
            self.natoms,
            self.step,
            self.dt,
            epot=self.epot,
            temp=self.temp,
        )
