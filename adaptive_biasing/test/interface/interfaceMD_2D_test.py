import numpy as np
import pytest as pytest
from adaptive_biasing import units
from adaptive_biasing.grid import build_grid
from adaptive_biasing.colvars import CV
from adaptive_biasing.interface import MD
from adaptive_biasing.sampling_tools import ABF, HarmonicRestraint


def harmonic_md():
    the_md = MD(
        mass_in=10.0,
        coords_in=[0.5, 0.0],
        potential="3",
        dt_in=0.5,
        target_temp_in=300.0,
        seed_in=42,
    )
    the_md.calc_init(init_temp=300.0)
    return the_md


def test_forces():
    the_md = harmonic_md()
    epot, forces = the_md.calc_energy_forces_MD("3")
    assert epot > 0.0
    assert forces[0] < 0.0
    assert forces[1] == pytest.approx(0.0)

    with pytest.raises(ValueError):
        the_md.calc_energy_forces_MD("4")


def test_add_bias():
    the_md = harmonic_md()
    forces = np.copy(the_md.forces)
    the_md.add_bias(np.array([1.0, 0.0]))
    the_md.add_bias(np.array([2.0, 0.0]))
    assert np.allclose(the_md.forces, forces + [2.0, 0.0])

    snapshot = the_md.get_snapshot()
    assert snapshot.velocities.shape == (2,)
    assert snapshot.dt == pytest.approx(0.5 / units.atomic_to_fs)


def test_abf_on_harmonic_well():
    the_md = harmonic_md()
    the_cv = CV(the_md, requires_grad=True)
    cv_def = ["x"]

    grid = build_grid({"lower": [-4.0], "upper": [4.0], "number_points": [16]})
    the_bias = ABF(
        grid,
        restraint=HarmonicRestraint([-4.5], [4.5], [0.05]),
        timestep=the_md.dt,
        minimum_count=10,
        verbose=False,
    )

    nsteps = 200
    the_bias.pre_simulation(the_md.get_snapshot(), the_cv.get_cvs(cv_def))
    for _ in range(nsteps):
        the_md.propagate(langevin=True)
        the_md.calc()
        the_md.up_momenta(langevin=True)
        the_md.calc_etvp()
        the_md.step += 1

        bias = the_bias.post_integration(the_md.get_snapshot(), the_cv.get_cvs(cv_def))
        assert bias.shape == (2,)
        assert bias[1] == 0.0
        the_md.add_bias(bias)

    assert the_bias.N_world.data.sum() == nsteps
    assert np.all(np.isfinite(the_bias.F_world.data))
    assert np.all(np.isfinite(the_md.coords))
