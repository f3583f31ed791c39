class LncpyError(Exception):
    """Base class for errors raised by lncpy."""


class ConfigurationError(LncpyError, ValueError):
    """Invalid run parameter (window, stagger, padding); raised before any input is read."""


class UnsortedInputError(LncpyError, RuntimeError):
    """Input is not sorted by start within a reference, or a reference is not contiguous."""
