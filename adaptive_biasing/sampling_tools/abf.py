import os, sys
import numpy as np
from typing import Sequence, Tuple

from .method import Method, State
from .restraint import HarmonicRestraint
from .utils import inverse_gradients, cond_avg
from ..grid import Grid, build_grid
from ..interface.sampling_data import Snapshot, CVData
from ..errors import ConfigurationError, PersistenceError, LifecycleError

PRINT_DETAILS = [
    "frequency",
    "cvs",
    "orthogonalization",
    "normalization",
    "gradient",
    "genforce",
    "coords",
    "restraint",
    "biases",
]


class ABF(Method):
    """Adaptive Biasing Force Method

       see: Darve et. al., J. Chem. Phys. (2008); https://doi.org/10.1063/1.2829861

    The generalized force along the CVs is estimated from the time derivative of the
    mass weighted CV momentum W.p by finite differences. Samples are accumulated per bin
    of a grid on every walker and summed over all walkers of `world`.
    The negative mean force of the current bin is applied as bias.

    Args:
        grid: histogram grid, one dimension per CV (see `adaptive_biasing.grid.build_grid`)
        restraint: harmonic walls outside of the grid, None for no walls
        timestep: MD time step
        minimum_count: number of samples per bin where full bias is applied,
                       below the mean force is damped to F / minimum_count
        filename: output file for the histogram of all walkers
        print_details: [print frequency, CVs, orthogonalization coefficients, normalization factors,
                        gradient norms, generalized force samples, bin indices, restraint forces, biases],
                        flags select columns of the walker output, None for no walker output
        backup_frequency: frequency in steps for writing outputs and restart file, -1 for no backups
        unit_conversion: unit conversion from d(momentum)/d(time) to force
        orthogonalization: apply Gram-Schmidt orthogonalization to the CV gradients
        sync_frequency: frequency of the synchronization of the histogram between walkers
        restart_file: name of the restart file, defaults to `<filename>_restart`
        world: communicator of all walkers
        comm: communicator of the processes of this walker
        frequency: frequency of invocation in steps
        verbose: print verbose information
    """

    def __init__(
        self,
        grid: Grid,
        restraint: HarmonicRestraint = None,
        timestep: float = 1.0,
        minimum_count: int = 100,
        filename: str = "F_out",
        print_details: Sequence[int] = None,
        backup_frequency: int = -1,
        unit_conversion: float = 1.0,
        orthogonalization: bool = False,
        sync_frequency: int = 1,
        restart_file: str = None,
        **kwargs,
    ):
        super().__init__(**kwargs)

        self.ncoords = grid.dimension
        self.restraint = HarmonicRestraint.none(self.ncoords) if restraint is None else restraint
        self.restraint.validate(grid)

        if timestep <= 0.0:
            raise ValueError(" >>> Fatal Error: ABF time step has to be positive")
        if sync_frequency < 1:
            raise ValueError(" >>> Fatal Error: ABF synchronization frequency has to be a positive integer")
        if print_details and print_details[0] < 1:
            raise ValueError(" >>> Fatal Error: ABF print frequency `print_details[0]` has to be a positive integer")

        self.timestep = float(timestep)
        self.min_count = int(minimum_count)
        self.filename = filename
        self.print_details = list(print_details) if print_details else []
        self.backup_frequency = int(backup_frequency)
        self.unit_conversion = float(unit_conversion)
        self.orthogonalization = bool(orthogonalization)
        self.sync_frequency = int(sync_frequency)
        self.restart_file = f"{filename}_restart" if restart_file is None else restart_file

        # local accumulators, world accumulators and the histogram of a restart
        self.F = grid.zeros_like(dtype=float, value_shape=(self.ncoords,))
        self.N = grid.zeros_like(dtype=np.int64, value_shape=())
        self.F_world = self.F.copy()
        self.N_world = self.N.copy()
        self.F_prior = self.F.copy()
        self.N_prior = self.N.copy()

        # previous step
        self.wdotp_old = np.zeros(self.ncoords)
        self.bias_old = np.zeros(self.ncoords)

        self._walker_out = None
        self.restart_from = None

        if self.verbose and self.is_root:
            print(f"\n Initialize ABF with {self.ncoords} collective variable(s):")
            for i in range(self.ncoords):
                print(f"\t Minimum{i}:\t{grid.get_lower(i)}")
                print(f"\t Maximum{i}:\t{grid.get_upper(i)}")
                print(f"\t Bins{i}:\t{grid.get_num_points(i)}")
                print(f"\t Periodic{i}:\t{grid.get_periodic(i)}")
                if self.restraint.active[i]:
                    print(
                        f"\t Restraint{i}:\t[{self.restraint.minimums[i]}, {self.restraint.maximums[i]}],"
                        f" k = {self.restraint.spring_constants[i]}"
                    )
            print("\t----------------------------------------------")
            print(f"\t Total number of bins:\t\t{int(np.prod(grid.get_num_points()))}")
            print(f"\t Walkers:\t\t\t{self.world.size}\n")

    @classmethod
    def build(cls, config: dict, world=None, comm=None, path: str = "#", **kwargs) -> "ABF":
        """build ABF from a configuration, e.g. parsed from JSON

        Args:
            config: {"type": "ABF",
                     "grid": {"lower": [..], "upper": [..], "number_points": [..], "periodic": [..]},
                     "restraint": {"minimums": [..], "maximums": [..], "spring_constants": [..]},
                     "timestep": .., "minimum_count": .., "filename": .., "print_details": [..],
                     "backup_frequency": .., "unit_conversion": .., "orthogonalization": ..,
                     "frequency": .., "sync_frequency": .., "restart_file": .., "restart": ..}
            world: communicator of all walkers
            comm: communicator of the processes of this walker
            path: JSON pointer to `config` used in error messages

        Returns:
            the_bias: ABF instance, restarts in `pre_simulation` if "restart" is given
        """
        if not isinstance(config, dict):
            raise ConfigurationError("method definition has to be an object", path)
        if config.get("type", "ABF") != "ABF":
            raise ConfigurationError(f"expected method type `ABF`, got `{config['type']}`", f"{path}/type")
        if "grid" not in config:
            raise ConfigurationError("missing required property `grid`", path)

        grid = build_grid(config["grid"], path=f"{path}/grid")
        restraint = _build_restraint(config.get("restraint"), grid, f"{path}/restraint")

        if "timestep" not in config:
            raise ConfigurationError("missing required property `timestep`", path)
        timestep = _get_number(config, "timestep", path, minimum=0.0, exclusive=True)
        minimum_count = _get_number(config, "minimum_count", path, default=100, integer=True, minimum=0)
        backup_frequency = _get_number(config, "backup_frequency", path, default=-1, integer=True, minimum=-1)
        if backup_frequency == 0:
            raise ConfigurationError("backup frequency has to be positive or -1", f"{path}/backup_frequency")
        unit_conversion = _get_number(config, "unit_conversion", path, default=1.0, minimum=0.0, exclusive=True)
        frequency = _get_number(config, "frequency", path, default=1, integer=True, minimum=1)
        sync_frequency = _get_number(config, "sync_frequency", path, default=1, integer=True, minimum=1)

        orthogonalization = config.get("orthogonalization", False)
        if orthogonalization not in [True, False, 0, 1]:
            raise ConfigurationError("expected a boolean", f"{path}/orthogonalization")

        print_details = config.get("print_details")
        if print_details is not None:
            if not isinstance(print_details, list) or not 1 <= len(print_details) <= len(PRINT_DETAILS):
                raise ConfigurationError(
                    f"expected a list of up to {len(PRINT_DETAILS)} integers {PRINT_DETAILS}",
                    f"{path}/print_details",
                )
            for i, flag in enumerate(print_details):
                if isinstance(flag, bool) or not isinstance(flag, int) or flag < (1 if i == 0 else 0):
                    raise ConfigurationError(f"invalid entry {flag!r}", f"{path}/print_details/{i}")

        for key in ["filename", "restart_file", "restart"]:
            if key in config and not isinstance(config[key], str):
                raise ConfigurationError("expected a string", f"{path}/{key}")

        the_bias = cls(
            grid,
            restraint=restraint,
            timestep=timestep,
            minimum_count=minimum_count,
            filename=config.get("filename", "F_out"),
            restart_file=config.get("restart_file"),
            print_details=print_details,
            backup_frequency=backup_frequency,
            unit_conversion=unit_conversion,
            orthogonalization=bool(orthogonalization),
            sync_frequency=sync_frequency,
            world=world,
            comm=comm,
            frequency=frequency,
            **kwargs,
        )
        the_bias.restart_from = config.get("restart")
        return the_bias

    def _pre_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        if self.restart_from:
            self._restart(self.restart_from)

        xi, grad_xi = self._get_cvs(cvs, snapshot)
        self.wdotp_old, _, _, _ = self._get_wdotp(snapshot, grad_xi)
        self.bias_old = np.zeros(self.ncoords)

        if self.print_details and self.comm.rank == 0:
            self._open_walker_output()

        self.synchronize()

    def _post_integration(self, snapshot: Snapshot, cvs: Sequence[CVData]) -> np.ndarray:

        (xi, grad_xi) = self._get_cvs(cvs, snapshot)
        bink = self.F.get_indices(xi)

        wdotp, W, C, gram = self._get_wdotp(snapshot, grad_xi)

        # derivative of the CV momentum, bias of the previous step removed
        dt = self.timestep * self.frequency
        force_sample = (
            self.unit_conversion * (wdotp - self.wdotp_old) / dt
            - self.bias_old / self.frequency
        )

        # samples of the processes of one walker are already reduced
        if self.comm.rank == 0:
            self.F.at(bink)[...] += force_sample
            self.N[bink] += 1

        if self.iteration % self.sync_frequency == 0:
            self.synchronize()

        mean_force = self.get_mean_force(bink)
        restraint_force = self.restraint.get_forces(xi)

        gen_bias = restraint_force - mean_force
        bias_force = gen_bias @ grad_xi

        self.wdotp_old = wdotp
        self.bias_old = W @ gram @ gen_bias

        if self._walker_out is not None and self.iteration % self.print_details[0] == 0:
            self._write_walker(
                xi, C, W, gram, force_sample, bink, restraint_force, mean_force
            )

        if self.backup_frequency > 0 and self.iteration % self.backup_frequency == 0:
            self.backup()

        return bias_force.reshape(np.shape(snapshot.forces))

    def _post_simulation(self, snapshot: Snapshot, cvs: Sequence[CVData]):
        self.synchronize()
        self.backup()
        if self._walker_out is not None:
            self._walker_out.close()
            self._walker_out = None

    def _get_cvs(self, cvs: Sequence[CVData], snapshot: Snapshot) -> Tuple[np.ndarray, np.ndarray]:
        """values and gradients of the CVs as arrays

        Returns:
            xi: values of CVs, shape (ncoords,)
            grad_xi: gradients of CVs, shape (ncoords, len(coords))
        """
        if len(cvs) != self.ncoords:
            raise ValueError(
                f" >>> Fatal Error: ABF was set up for {self.ncoords} CVs, got {len(cvs)}"
            )
        xi = np.array([cv.value for cv in cvs], dtype=float)
        grad_xi = np.array([np.asarray(cv.gradient, dtype=float).ravel() for cv in cvs])
        if grad_xi.shape[1] != np.size(snapshot.velocities):
            raise ValueError(
                f" >>> Fatal Error: CV gradients of length {grad_xi.shape[1]} do not match "
                f"{np.size(snapshot.velocities)} velocities"
            )
        return xi, grad_xi

    def _get_wdotp(self, snapshot: Snapshot, grad_xi: np.ndarray) -> Tuple[np.ndarray, ...]:
        """mass weighted momentum along the inverse gradients of the CVs

        Returns:
            wdotp: W.p for each CV
            W: coefficients of the inverse gradients
            C: Gram-Schmidt coefficients
            gram: Gram matrix of the CV gradients
        """
        mass = np.asarray(snapshot.mass, dtype=float).ravel()
        vel = np.asarray(snapshot.velocities, dtype=float).ravel()
        momenta = np.repeat(mass, len(vel) // len(mass)) * vel

        # atoms can be distributed over the processes of a walker
        local = np.empty((self.ncoords, self.ncoords + 1))
        local[:, :-1] = grad_xi @ grad_xi.T
        local[:, -1] = grad_xi @ momenta
        reduced = self.comm.allreduce_sum(local)
        gram, jdotp = reduced[:, :-1], reduced[:, -1]

        W, C, _ = inverse_gradients(gram, self.orthogonalization)
        return W @ jdotp, W, C, gram

    def synchronize(self):
        """sum local histograms of all walkers, blocks until all walkers arrived"""
        self.F_world.data = self.F_prior.data + self.world.allreduce_sum(self.F.data)
        self.N_world.data = self.N_prior.data + self.world.allreduce_sum(self.N.data)

    def get_mean_force(self, bink: Sequence[int] = None) -> np.ndarray:
        """mean force F_world / max(N_world, minimum_count), zero for empty bins

        Args:
            bink: grid indices of one bin, if None the whole storage including
                  underflow and overflow bins is returned

        Returns:
            mean_force: shape (ncoords,) or (*grid.shape, ncoords)
        """
        if bink is None:
            return cond_avg(self.F_world.data, self.N_world.data, self.min_count)
        return cond_avg(self.F_world.at(bink), self.N_world.at(bink), self.min_count)

    def backup(self):
        """write restart file and histogram, failures are reported and the simulation continues"""
        if not self.is_root:
            return
        try:
            self.write_restart()
            self.write_output()
        except (OSError, PersistenceError) as e:
            print(f" >>> Warning: ABF backup at iteration {self.iteration} failed: {e}")

    def write_output(self, filename: str = None):
        """write histogram and mean force of all walkers

        Args:
            filename: output file, defaults to `self.filename`
        """
        filename = self.filename if filename is None else filename
        centers = [self.F.get_centers(i) for i in range(self.ncoords)]
        num_points = self.F.get_num_points()

        with open(filename, "w") as fout:
            for i in range(self.ncoords):
                fout.write("%14s\t" % f"CV{i}")
            fout.write("%14s\t" % "hist")
            for i in range(self.ncoords):
                fout.write("%14s\t" % f"mean force {i}")
            fout.write("\n")

            for bink in np.ndindex(*num_points):
                for i in range(self.ncoords):
                    fout.write("%14.6f\t" % centers[i][bink[i]])
                fout.write("%14d\t" % self.N_world.at(bink))
                for force in self.get_mean_force(bink):
                    fout.write("%14.6f\t" % force)
                fout.write("\n")

    def _open_walker_output(self):
        self._walker_out = open(f"{self.filename}_walker{self.world.rank}.dat", "w")
        self._walker_out.write("%14s\t" % "iteration")
        for flag, name in zip(self.print_details[1:], PRINT_DETAILS[1:]):
            if not flag:
                continue
            if name == "orthogonalization":
                for i in range(self.ncoords):
                    for k in range(i + 1):
                        self._walker_out.write("%14s\t" % f"C{i}{k}")
            else:
                for i in range(self.ncoords):
                    self._walker_out.write("%14s\t" % f"{name}{i}")
        self._walker_out.write("\n")

    def _write_walker(self, xi, C, W, gram, force_sample, bink, restraint_force, mean_force):
        columns = {
            "cvs": xi,
            "orthogonalization": C[np.tril_indices(self.ncoords)],
            "normalization": np.diag(W),
            "gradient": np.sqrt(np.diag(gram)),
            "genforce": force_sample,
            "coords": bink,
            "restraint": restraint_force,
            "biases": mean_force,
        }
        self._walker_out.write("%14d\t" % self.iteration)
        for flag, name in zip(self.print_details[1:], PRINT_DETAILS[1:]):
            if not flag:
                continue
            fmt = "%14d\t" if name == "coords" else "%14.6e\t"
            for value in columns[name]:
                self._walker_out.write(fmt % value)
        self._walker_out.write("\n")
        self._walker_out.flush()

    def serialize(self) -> dict:
        """restart document, histograms are the sum over all walkers"""
        grid = self.F_world.serialize()
        minimums, maximums, spring_constants = self.restraint.to_lists()
        return {
            "type": "ABF",
            "lower": grid["lower"],
            "upper": grid["upper"],
            "number_points": grid["number_points"],
            "periodic": grid["periodic"],
            "restraint_minimums": minimums,
            "restraint_maximums": maximums,
            "restraint_spring_constants": spring_constants,
            "timestep": self.timestep,
            "minimum_count": self.min_count,
            "print_details": list(self.print_details),
            "backup_frequency": self.backup_frequency,
            "unit_conversion": self.unit_conversion,
            "orthogonalization": self.orthogonalization,
            "frequency": self.frequency,
            "sync_frequency": self.sync_frequency,
            "F": grid["data"],
            "N": self.N_world.data.ravel().copy(),
            "iteration": self.iteration,
            "filename": self.filename,
        }

    def write_restart(self, filename: str = None):
        """write restart file

        Args:
            filename: name of restart file, defaults to `self.restart_file`
        """
        filename = self.restart_file if filename is None else filename
        np.savez(filename, **self.serialize())
        sys.stdout.flush()

    def restart(self, filename: str = None):
        """restart histogram and iteration from restart file, has to be called before `pre_simulation`

        Args:
            filename: name of restart file
        """
        if self.state != State.UNINITIALIZED:
            raise LifecycleError(" >>> Fatal Error: ABF can only be restarted before `pre_simulation`")
        self._restart(self.restart_file if filename is None else filename)

    def _restart(self, filename: str):
        doc = load_restart(filename)

        geometry = {
            "lower": self.F.get_lower(),
            "upper": self.F.get_upper(),
            "number_points": self.F.get_num_points(),
            "periodic": self.F.get_periodic(),
        }
        for key, value in geometry.items():
            stored = np.atleast_1d(np.asarray(doc[key], dtype=float))
            if stored.shape != value.shape or not np.allclose(stored, value.astype(float)):
                raise PersistenceError(
                    f" >>> Fatal Error: `{key}` of restart file `{filename}` does not match the grid of ABF"
                )

        try:
            self.F_prior.data = np.asarray(doc["F"], dtype=float).reshape(self.F.data.shape)
            self.N_prior.data = np.asarray(doc["N"], dtype=np.int64).reshape(self.N.data.shape)
        except ValueError as e:
            raise PersistenceError(
                f" >>> Fatal Error: Histogram of restart file `{filename}` does not match the grid of ABF"
            ) from e

        self.F.zero()
        self.N.zero()
        self.F_world.data = self.F_prior.data
        self.N_world.data = self.N_prior.data
        self.iteration = int(doc["iteration"])

        if self.verbose and self.is_root:
            print(f" >>> Info: ABF restarted from `{filename}` at iteration {self.iteration}!")

    @classmethod
    def from_restart(cls, filename: str, world=None, comm=None, **kwargs) -> "ABF":
        """rebuild ABF with histogram and settings of a restart file

        Args:
            filename: name of restart file
            world: communicator of all walkers
            comm: communicator of the processes of this walker
        """
        doc = load_restart(filename)
        try:
            grid = Grid(doc["number_points"], doc["lower"], doc["upper"], periodic=doc["periodic"])
            restraint = HarmonicRestraint.from_lists(
                doc["restraint_minimums"],
                doc["restraint_maximums"],
                doc["restraint_spring_constants"],
            )
            the_bias = cls(
                grid,
                restraint=restraint,
                timestep=float(doc["timestep"]),
                minimum_count=int(doc["minimum_count"]),
                filename=str(doc["filename"]),
                print_details=[int(p) for p in doc["print_details"]],
                backup_frequency=int(doc["backup_frequency"]),
                unit_conversion=float(doc["unit_conversion"]),
                orthogonalization=bool(doc["orthogonalization"]),
                sync_frequency=int(doc["sync_frequency"]),
                restart_file=os.path.splitext(filename)[0],
                world=world,
                comm=comm,
                frequency=int(doc["frequency"]),
                **kwargs,
            )
        except (ValueError, TypeError, ConfigurationError) as e:
            raise PersistenceError(f" >>> Fatal Error: Invalid settings in restart file `{filename}`: {e}") from e

        the_bias._restart(filename)
        return the_bias


RESTART_KEYS = [
    "lower",
    "upper",
    "number_points",
    "periodic",
    "restraint_minimums",
    "restraint_maximums",
    "restraint_spring_constants",
    "timestep",
    "minimum_count",
    "print_details",
    "backup_frequency",
    "unit_conversion",
    "orthogonalization",
    "frequency",
    "sync_frequency",
    "F",
    "N",
    "iteration",
    "filename",
]


def load_restart(filename: str) -> dict:
    """read restart document of ABF

    Args:
        filename: name of restart file, `.npz` is appended if missing
    """
    if not filename.endswith(".npz"):
        filename += ".npz"
    try:
        with np.load(filename) as data:
            doc = {key: data[key] for key in data.files}
    except (OSError, ValueError) as e:
        raise PersistenceError(f" >>> Fatal Error: restart file `{filename}` could not be read: {e}") from e

    missing = [key for key in RESTART_KEYS if key not in doc]
    if missing:
        raise PersistenceError(f" >>> Fatal Error: restart file `{filename}` is missing {missing}")
    return doc


def _get_number(
    config: dict,
    key: str,
    path: str,
    default=None,
    integer: bool = False,
    minimum: float = None,
    exclusive: bool = False,
):
    value = config.get(key, default)
    types = (int, np.integer) if integer else (int, float, np.integer, np.floating)
    if isinstance(value, bool) or not isinstance(value, types):
        raise ConfigurationError(f"expected {'an integer' if integer else 'a number'}, got {value!r}", f"{path}/{key}")
    if minimum is not None and (value <= minimum if exclusive else value < minimum):
        raise ConfigurationError(
            f"expected a value {'>' if exclusive else '>='} {minimum}, got {value}", f"{path}/{key}"
        )
    return value


def _build_restraint(config: dict, grid: Grid, path: str) -> HarmonicRestraint:
    if config is None:
        return None
    if not isinstance(config, dict):
        raise ConfigurationError("restraint definition has to be an object", path)

    entries = {}
    for key in ["minimums", "maximums", "spring_constants"]:
        if key not in config:
            raise ConfigurationError(f"missing required property `{key}`", path)
        values = config[key]
        if not isinstance(values, list) or len(values) != grid.dimension:
            raise ConfigurationError(
                f"expected a list with one entry for each of the {grid.dimension} CVs", f"{path}/{key}"
            )
        for i, value in enumerate(values):
            if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
                raise ConfigurationError(f"expected a number or null, got {value!r}", f"{path}/{key}/{i}")
        entries[key] = values

    for i, k in enumerate(entries["spring_constants"]):
        if k and (entries["minimums"][i] is None or entries["maximums"][i] is None):
            raise ConfigurationError("restrained CV needs a minimum and a maximum", f"{path}/minimums/{i}")

    restraint = HarmonicRestraint(entries["minimums"], entries["maximums"], entries["spring_constants"])
    restraint.validate(grid, path)
    return restraint
