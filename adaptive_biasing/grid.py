import numpy as np
from typing import Union, Sequence, Tuple

from .errors import ConfigurationError, OutOfRangeError, PersistenceError


class Grid:
    """Generic grid to store data on a discretized CV space

    The grid discretizes a continuous space, typically spanned by collective variables,
    into `number_points` bins per dimension. Bin `n` of dimension `d` holds the interval
    [lower + n*dx, lower + (n+1)*dx) with dx = (upper - lower) / number_points,
    its position is the center of that interval.

    Non-periodic dimensions carry an underflow bin with index -1 for (-inf, lower)
    and an overflow bin with index `number_points` for [upper, inf).
    In periodic dimensions indices are wrapped modulo `number_points`.

    Every bin stores an element of type `dtype` with shape `value_shape`,
    e.g. `value_shape=(ncv,)` for one force vector per bin.

    Args:
        number_points: number of bins in each dimension
        lower: lower edges of the grid
        upper: upper edges of the grid
        periodic: periodicity of each dimension, defaults to non-periodic
        dtype: data type of stored elements
        value_shape: shape of the element stored in each bin
    """

    def __init__(
        self,
        number_points: Sequence[int],
        lower: Sequence[float],
        upper: Sequence[float],
        periodic: Sequence[bool] = None,
        dtype: Union[type, np.dtype] = float,
        value_shape: Tuple[int, ...] = (),
    ):
        self._number_points = np.asarray(number_points, dtype=int)
        self._lower = np.asarray(lower, dtype=float)
        self._upper = np.asarray(upper, dtype=float)
        if periodic is None:
            periodic = [False for _ in range(len(self._number_points))]
        self._periodic = np.asarray(periodic, dtype=bool)

        if not (
            len(self._number_points)
            == len(self._lower)
            == len(self._upper)
            == len(self._periodic)
        ):
            raise ValueError(
                " >>> Fatal Error: Grid dimensions of `number_points`, `lower`, `upper` and `periodic` do not match"
            )

        self._dx = (self._upper - self._lower) / self._number_points
        self.value_shape = tuple(int(n) for n in value_shape)

        # periodic dimensions have no underflow and overflow bins
        self._offset = np.where(self._periodic, 0, 1)
        shape = tuple(
            int(n) + 2 * int(o) for n, o in zip(self._number_points, self._offset)
        )
        self._data = np.zeros(shape + self.value_shape, dtype=dtype)

    @property
    def dimension(self) -> int:
        return len(self._number_points)

    @property
    def shape(self) -> Tuple[int, ...]:
        """shape of the storage, including underflow and overflow bins"""
        return self._data.shape[: self.dimension]

    @property
    def data(self) -> np.ndarray:
        return self._data

    @data.setter
    def data(self, values: np.ndarray):
        values = np.asarray(values, dtype=self._data.dtype)
        if values.shape != self._data.shape:
            raise ValueError(
                f" >>> Fatal Error: Cannot assign data of shape {values.shape} to grid of shape {self._data.shape}"
            )
        self._data[...] = values

    def _check_dim(self, dim: int, what: str):
        if dim < 0 or dim >= self.dimension:
            raise OutOfRangeError(
                f" >>> Error: {what} requested for dimension {dim} of a {self.dimension}D grid"
            )

    def get_num_points(self, dim: int = None) -> Union[np.ndarray, int]:
        """number of bins, for all dimensions or for dimension `dim`"""
        if dim is None:
            return np.copy(self._number_points)
        self._check_dim(dim, "Grid size")
        return int(self._number_points[dim])

    def get_lower(self, dim: int = None) -> Union[np.ndarray, float]:
        """lower edges, for all dimensions or for dimension `dim`"""
        if dim is None:
            return np.copy(self._lower)
        self._check_dim(dim, "Lower edge")
        return float(self._lower[dim])

    def get_upper(self, dim: int = None) -> Union[np.ndarray, float]:
        """upper edges, for all dimensions or for dimension `dim`"""
        if dim is None:
            return np.copy(self._upper)
        self._check_dim(dim, "Upper edge")
        return float(self._upper[dim])

    def get_periodic(self, dim: int = None) -> Union[np.ndarray, bool]:
        """periodicity, for all dimensions or for dimension `dim`"""
        if dim is None:
            return np.copy(self._periodic)
        self._check_dim(dim, "Periodicity")
        return bool(self._periodic[dim])

    def get_spacing(self, dim: int = None) -> Union[np.ndarray, float]:
        """bin widths, for all dimensions or for dimension `dim`"""
        if dim is None:
            return np.copy(self._dx)
        self._check_dim(dim, "Bin width")
        return float(self._dx[dim])

    def get_centers(self, dim: int) -> np.ndarray:
        """positions of the bins along dimension `dim`"""
        self._check_dim(dim, "Bin centers")
        return self._lower[dim] + (np.arange(self._number_points[dim]) + 0.5) * self._dx[dim]

    def get_indices(self, x: Union[Sequence[float], float]) -> Tuple[int, ...]:
        """get grid indices of the bin that holds point `x`

        Args:
            x: point in CV space

        Returns:
            indices: -1 for underflow and `number_points` for overflow in non-periodic dimensions
        """
        x = np.atleast_1d(np.asarray(x, dtype=float))
        if len(x) != self.dimension:
            raise ValueError(
                f" >>> Fatal Error: Point of dimension {len(x)} does not fit {self.dimension}D grid"
            )

        if np.any(np.isnan(x)) or np.any(np.isinf(x[self._periodic])):
            raise ValueError(f" >>> Fatal Error: Point {x.tolist()} cannot be located on the grid")

        indices = []
        for d in range(self.dimension):
            n = int(self._number_points[d])
            if self._periodic[d]:
                idx = int(np.floor((x[d] - self._lower[d]) / self._dx[d])) % n
            elif x[d] < self._lower[d]:
                idx = -1
            elif x[d] >= self._upper[d]:
                idx = n
            else:
                idx = int(np.floor((x[d] - self._lower[d]) / self._dx[d]))
                # floor can round onto the edges for points right at a boundary
                idx = min(max(idx, 0), n - 1)
            indices.append(idx)
        return tuple(indices)

    def _storage_index(self, indices: Sequence[int]) -> Tuple[int, ...]:
        """map grid indices to indices of the storage array"""
        indices = np.atleast_1d(np.asarray(indices))
        if len(indices) != self.dimension or not np.issubdtype(indices.dtype, np.integer):
            raise IndexError(
                f" >>> Error: Invalid grid indices {indices.tolist()} for grid of shape {tuple(self._number_points)}"
            )

        storage = []
        for d, idx in enumerate(indices):
            n = int(self._number_points[d])
            idx = int(idx)
            if self._periodic[d]:
                idx %= n
            elif idx < -1 or idx > n:
                raise IndexError(
                    f" >>> Error: Grid indices {indices.tolist()} out of range in dimension {d} "
                    f"(valid: -1 to {n}) for grid of shape {tuple(self._number_points)}"
                )
            storage.append(idx + int(self._offset[d]))
        return tuple(storage)

    def at(self, indices: Sequence[int]):
        """element at grid indices, vector elements are returned as views"""
        return self._data[self._storage_index(indices)]

    def set(self, indices: Sequence[int], value):
        self._data[self._storage_index(indices)] = value

    def at_point(self, x: Union[Sequence[float], float]):
        """identical to `self.at(self.get_indices(x))`"""
        return self.at(self.get_indices(x))

    def set_point(self, x: Union[Sequence[float], float], value):
        self.set(self.get_indices(x), value)

    def __getitem__(self, indices):
        return self.at(indices)

    def __setitem__(self, indices, value):
        self.set(indices, value)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Grid):
            return NotImplemented
        return (
            np.array_equal(self._number_points, other._number_points)
            and np.array_equal(self._lower, other._lower)
            and np.array_equal(self._upper, other._upper)
            and np.array_equal(self._periodic, other._periodic)
            and self.value_shape == other.value_shape
            and self._data.dtype == other._data.dtype
            and np.array_equal(self._data, other._data, equal_nan=np.issubdtype(self._data.dtype, np.inexact))
        )

    def copy(self) -> "Grid":
        new = self.zeros_like()
        new._data[...] = self._data
        return new

    def zeros_like(self, dtype=None, value_shape: Tuple[int, ...] = None) -> "Grid":
        """empty grid of the same geometry"""
        return Grid(
            self._number_points,
            self._lower,
            self._upper,
            periodic=self._periodic,
            dtype=self._data.dtype if dtype is None else dtype,
            value_shape=self.value_shape if value_shape is None else value_shape,
        )

    def zero(self):
        self._data[...] = 0

    def serialize(self) -> dict:
        """grid state as dictionary of plain values and flat arrays"""
        return {
            "lower": self._lower.tolist(),
            "upper": self._upper.tolist(),
            "number_points": self._number_points.tolist(),
            "periodic": self._periodic.tolist(),
            "value_shape": list(self.value_shape),
            "dtype": self._data.dtype.str,
            "data": self._data.ravel().copy(),
        }

    @classmethod
    def deserialize(cls, doc: dict) -> "Grid":
        """rebuild grid from the output of `Grid.serialize`"""
        try:
            grid = cls(
                doc["number_points"],
                doc["lower"],
                doc["upper"],
                periodic=doc["periodic"],
                dtype=np.dtype(str(doc["dtype"])),
                value_shape=tuple(int(n) for n in doc["value_shape"]),
            )
            data = np.asarray(doc["data"], dtype=grid._data.dtype)
            grid._data[...] = data.reshape(grid._data.shape)
        except (KeyError, TypeError, ValueError) as e:
            raise PersistenceError(f" >>> Fatal Error: Malformed grid document: {e}") from e
        return grid


def _as_list(value) -> list:
    return list(value) if hasattr(value, "__len__") and not isinstance(value, str) else [value]


def build_grid(
    config: dict,
    path: str = "#/grid",
    dtype: Union[type, np.dtype] = float,
    value_shape: Tuple[int, ...] = (),
) -> Grid:
    """build grid from configuration

    Args:
        config: dictionary with `lower`, `upper`, `number_points` and optionally `periodic`,
                values are lists with one entry per dimension or scalars for 1D grids
        path: JSON pointer to `config` used in error messages
        dtype: data type of grid elements
        value_shape: shape of grid elements

    Returns:
        grid: the validated grid
    """
    if not isinstance(config, dict):
        raise ConfigurationError("grid definition has to be an object", path)

    entries = {}
    for key in ["lower", "upper", "number_points"]:
        if key not in config:
            raise ConfigurationError(f"missing required property `{key}`", path)
        entries[key] = _as_list(config[key])

    dim = len(entries["lower"])
    if dim == 0:
        raise ConfigurationError("grid needs at least one dimension", f"{path}/lower")

    periodic = config.get("periodic", False)
    entries["periodic"] = _as_list(periodic) if hasattr(periodic, "__len__") else [periodic] * dim

    for key, values in entries.items():
        if len(values) != dim:
            raise ConfigurationError(
                f"expected {dim} entries as given by `lower`, got {len(values)}",
                f"{path}/{key}",
            )

    for d in range(dim):
        for key in ["lower", "upper", "number_points"]:
            value = entries[key][d]
            if isinstance(value, (bool, np.bool_)) or not isinstance(value, (int, float, np.integer, np.floating)):
                raise ConfigurationError(f"expected a number, got {value!r}", f"{path}/{key}/{d}")
            if not np.isfinite(value):
                raise ConfigurationError(f"expected a finite number, got {value}", f"{path}/{key}/{d}")

        n = entries["number_points"][d]
        if not float(n).is_integer():
            raise ConfigurationError(f"number of points has to be an integer, got {n}", f"{path}/number_points/{d}")
        if int(n) < 1:
            raise ConfigurationError(f"number of points has to be positive, got {n}", f"{path}/number_points/{d}")
        if not float(entries["lower"][d]) < float(entries["upper"][d]):
            raise ConfigurationError(
                f"lower edge {entries['lower'][d]} is not below upper edge {entries['upper'][d]}",
                f"{path}/upper/{d}",
            )
        if not isinstance(entries["periodic"][d], (bool, np.bool_)):
            raise ConfigurationError("periodicity has to be a boolean", f"{path}/periodic/{d}")

    return Grid(
        [int(n) for n in entries["number_points"]],
        entries["lower"],
        entries["upper"],
        periodic=entries["periodic"],
        dtype=dtype,
        value_shape=value_shape,
    )
