from .interfaceMD_2D import *
from .sampling_data import *

__all__ = [
    "MD",
    "Snapshot",
    "CVData",
    "MDInterface",
]
