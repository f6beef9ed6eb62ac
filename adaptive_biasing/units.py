import math

# conversions
J_to_atomic = 1.0 / 4.359744e-18
atomic_to_kJmol = 2625.499639
kJ_to_kcal = 0.239006
atomic_to_K = 315775.04e0
BOHR_to_ANGSTROM = 0.52917721092e0
BOHR_to_NANOMETER = BOHR_to_ANGSTROM / 10.0
DEGREES_per_RADIAN = 180.0 / math.pi
atomic_to_fs = 1.0327503e0  # time unit of amu, Bohr and Hartree

# d(momentum)/dt to force, used as `unit_conversion` of ABF
gAmolfs2_to_kcalmolA = 1.0e4 * kJ_to_kcal  # LAMMPS units real
amunmps2_to_kJmolnm = 1.0  # GROMACS / OpenMM units
atomic_to_atomic = 1.0

# constants
kB_in_SI = 1.380648e-23
R_in_SI = 8.314
kB_in_atomic = kB_in_SI * J_to_atomic
