from .method import *
from .restraint import *
from .abf import *
from .utils import *

__all__ = [
    "Method",
    "State",
    "HarmonicRestraint",
    "ABF",
    "load_restart",
]
