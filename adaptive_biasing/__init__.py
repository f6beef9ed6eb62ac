from .grid import Grid, build_grid
from .errors import *
from .parallel import SerialCommunicator, LocalGroup, MPICommunicator

__version__ = "1.0.0"
