import numpy as np
import pytest as pytest
from adaptive_biasing.grid import build_grid
from adaptive_biasing.sampling_tools.restraint import HarmonicRestraint
from adaptive_biasing.errors import ConfigurationError


def grid():
    return build_grid(
        {"lower": [0.0, -1.0], "upper": [10.0, 1.0], "number_points": [10, 4], "periodic": [False, True]}
    )


def test_zero_inside():
    restraint = HarmonicRestraint([-1.0, None], [11.0, None], [5.0, None])
    for x in np.linspace(-1.0, 11.0, 25):
        assert np.all(restraint.get_forces([x, 0.3]) == 0.0)


def test_linear_outside():
    restraint = HarmonicRestraint([-1.0, None], [11.0, None], [5.0, None])
    assert restraint.get_forces([-2.0, 0.0])[0] == pytest.approx(5.0)
    assert restraint.get_forces([-3.0, 0.0])[0] == pytest.approx(10.0)
    assert restraint.get_forces([12.5, 0.0])[0] == pytest.approx(-7.5)
    assert restraint.get_energies([12.5, 0.0])[0] == pytest.approx(0.5 * 5.0 * 1.5 * 1.5)

    stiff = HarmonicRestraint([-1.0], [11.0], [10.0])
    assert stiff.get_forces([12.5])[0] == pytest.approx(2.0 * restraint.get_forces([12.5, 0.0])[0])


def test_validate():
    HarmonicRestraint([-1.0, None], [11.0, None], [5.0, None]).validate(grid())
    HarmonicRestraint.none(2).validate(grid())


@pytest.mark.parametrize(
    "restraint, path",
    [
        (HarmonicRestraint([-0.5, None], [11.0, None], [5.0, None]), "#/restraint/minimums/0"),
        (HarmonicRestraint([-1.0, None], [10.5, None], [5.0, None]), "#/restraint/maximums/0"),
        (HarmonicRestraint([-1.0, -2.0], [11.0, 2.0], [5.0, 1.0]), "#/restraint/spring_constants/1"),
        (HarmonicRestraint([-1.0, None], [11.0, None], [-5.0, None]), "#/restraint/spring_constants/0"),
        (HarmonicRestraint([-1.0], [11.0], [5.0]), "#/restraint/spring_constants"),
    ],
)
def test_validate_errors(restraint, path):
    with pytest.raises(ConfigurationError) as e:
        restraint.validate(grid())
    assert e.value.path == path


def test_lists_roundtrip():
    restraint = HarmonicRestraint([-1.0, None], [11.0, None], [5.0, None])
    new = HarmonicRestraint.from_lists(*restraint.to_lists())
    assert np.all(new.active == restraint.active)
    assert np.all(new.spring_constants == restraint.spring_constants)
    assert new.minimums[0] == -1.0
    assert new.maximums[0] == 11.0
