from .colvars import *

__all__ = [
    "CV",
]
