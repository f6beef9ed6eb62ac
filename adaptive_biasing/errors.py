class ConfigurationError(ValueError):
    """Invalid or contradictory input, raised while building objects

    Args:
        message: description of the problem
        path: JSON pointer to the offending field, e.g. `#/grid/upper/1`
    """

    def __init__(self, message: str, path: str = "#"):
        self.path = path
        super().__init__(f" >>> Fatal Error: {path}: {message}")


class OutOfRangeError(IndexError):
    """Grid property requested for a dimension the grid does not have"""


class SynchronizationError(RuntimeError):
    """Collective reduction across walkers failed"""


class PersistenceError(OSError):
    """Restart document could not be written or is malformed"""


class LifecycleError(RuntimeError):
    """Method hook called in the wrong order"""
