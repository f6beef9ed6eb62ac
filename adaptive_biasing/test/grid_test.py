import numpy as np
import pytest as pytest
from adaptive_biasing.grid import Grid, build_grid
from adaptive_biasing.errors import ConfigurationError, OutOfRangeError, PersistenceError


def grid_1d():
    return build_grid({"lower": [0.0], "upper": [10.0], "number_points": [10]})


def grid_2d():
    return build_grid(
        {
            "lower": [0.0, -np.pi],
            "upper": [1.0, np.pi],
            "number_points": [4, 6],
            "periodic": [False, True],
        },
        value_shape=(2,),
    )


def test_indices_1D():
    grid = grid_1d()
    assert grid.get_indices([2.5]) == (2,)
    assert grid.get_indices([-1.0]) == (-1,)
    assert grid.get_indices([10.0]) == (10,)
    assert grid.get_indices([0.0]) == (0,)
    assert grid.get_indices([9.999999]) == (9,)


def test_indices_inside_domain():
    grid = grid_1d()
    for x in np.linspace(0.0, 10.0, 101)[:-1]:
        assert 0 <= grid.get_indices([x])[0] <= 9


def test_indices_periodic_wrap():
    grid = grid_2d()
    period = 2.0 * np.pi
    for phi in [-3.0, -0.1, 0.3, 2.9]:
        idx = grid.get_indices([0.5, phi])[1]
        for k in [-2, -1, 1, 3]:
            assert grid.get_indices([0.5, phi + k * period])[1] == idx


def test_at_underflow_and_overflow():
    grid = grid_1d()
    grid[(-1,)] = 1.0
    grid[(10,)] = 2.0
    grid.set_point([4.2], 3.0)
    assert grid.at_point([-5.0]) == 1.0
    assert grid.at_point([12.0]) == 2.0
    assert grid.at((4,)) == 3.0
    assert grid.data.shape == (12,)


def test_at_out_of_range():
    grid = grid_1d()
    with pytest.raises(IndexError):
        grid.at((11,))
    with pytest.raises(IndexError):
        grid.at((-2,))
    with pytest.raises(IndexError):
        grid.at((1, 1))


def test_at_periodic_wraps_indices():
    grid = grid_2d()
    grid.at((1, 7))[...] = [1.0, 2.0]
    assert np.all(grid.at((1, 1)) == np.array([1.0, 2.0]))
    assert np.all(grid.at((1, -5)) == np.array([1.0, 2.0]))
    with pytest.raises(IndexError):
        grid.at((5, 0))


def test_vector_elements_are_views():
    grid = grid_2d()
    grid.at((0, 0))[1] += 4.0
    grid.at((0, 0))[1] += 1.0
    assert grid.at((0, 0))[1] == 5.0
    assert grid.at((0, 0))[0] == 0.0


def test_getters():
    grid = grid_2d()
    assert grid.dimension == 2
    assert grid.get_num_points(1) == 6
    assert grid.get_lower(0) == 0.0
    assert grid.get_upper(1) == pytest.approx(np.pi)
    assert grid.get_periodic(1)
    assert not grid.get_periodic(0)
    assert grid.get_spacing(0) == pytest.approx(0.25)
    assert np.allclose(grid.get_centers(0), [0.125, 0.375, 0.625, 0.875])
    assert grid.shape == (6, 6)


@pytest.mark.parametrize("getter", ["get_num_points", "get_lower", "get_upper", "get_periodic", "get_spacing"])
def test_getters_out_of_range(getter):
    grid = grid_2d()
    with pytest.raises(OutOfRangeError):
        getattr(grid, getter)(2)


def test_build_scalars_1D():
    grid = build_grid({"lower": -1.0, "upper": 1.0, "number_points": 20, "periodic": True})
    assert grid.dimension == 1
    assert grid.get_periodic(0)
    assert grid.data.shape == (20,)


@pytest.mark.parametrize(
    "config, path",
    [
        ({"upper": [1.0], "number_points": [2]}, "#/grid"),
        ({"lower": [0.0, 0.0], "upper": [1.0], "number_points": [2, 2]}, "#/grid/upper"),
        ({"lower": [0.0], "upper": [1.0], "number_points": [0]}, "#/grid/number_points/0"),
        ({"lower": [0.0], "upper": [1.0], "number_points": [2.5]}, "#/grid/number_points/0"),
        ({"lower": [0.0, 2.0], "upper": [1.0, 1.0], "number_points": [2, 2]}, "#/grid/upper/1"),
        ({"lower": [0.0], "upper": ["a"], "number_points": [2]}, "#/grid/upper/0"),
        ({"lower": [0.0], "upper": [1.0], "number_points": [2], "periodic": [True, False]}, "#/grid/periodic"),
    ],
)
def test_build_errors(config, path):
    with pytest.raises(ConfigurationError) as e:
        build_grid(config)
    assert e.value.path == path


def test_serialize_roundtrip():
    grid = grid_2d()
    grid.at((-1, 2))[...] = [1.5, -2.0]
    grid.at((4, 5))[...] = [3.0, 7.0]
    doc = grid.serialize()
    assert len(doc["data"]) == 6 * 6 * 2

    new = Grid.deserialize(doc)
    assert new == grid
    assert new.get_periodic(1)
    assert np.all(new.at((4, 5)) == np.array([3.0, 7.0]))

    counts = grid_1d().zeros_like(dtype=np.int64)
    counts[(3,)] = 7
    assert Grid.deserialize(counts.serialize()) == counts


def test_deserialize_malformed():
    doc = grid_1d().serialize()
    doc["data"] = doc["data"][:-1]
    with pytest.raises(PersistenceError):
        Grid.deserialize(doc)
    del doc["lower"]
    with pytest.raises(PersistenceError):
        Grid.deserialize(doc)


def test_indices_infinite():
    grid = grid_1d()
    assert grid.get_indices([np.inf]) == (10,)
    assert grid.get_indices([-np.inf]) == (-1,)
    with pytest.raises(ValueError):
        grid.get_indices([np.nan])
    with pytest.raises(ValueError):
        grid_2d().get_indices([0.5, np.inf])


def test_serialize_roundtrip_nan():
    grid = grid_1d()
    grid[(0,)] = np.nan
    grid[(10,)] = np.inf
    assert Grid.deserialize(grid.serialize()) == grid
    assert grid.copy() == grid
