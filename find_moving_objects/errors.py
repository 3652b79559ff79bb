# =============================================================================
# Moving Objects - Errors
# =============================================================================
# Exceptions raised by the bank, the ingestion adapter and the transform
# lookups. Configuration and usage errors are fatal; ingestion and transform
# errors are absorbed by the detector.
# =============================================================================


class MovingObjectsError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(MovingObjectsError, ValueError):
    """Invalid threshold or geometry value. Raised once, at initialization."""


class BankNotInitializedError(MovingObjectsError, RuntimeError):
    """The bank was used before it was initialized."""


class IngestionError(MovingObjectsError):
    """A message could not be turned into a scan. The bank is left unchanged."""


class TransformUnavailableError(MovingObjectsError):
    """No transform between two frames could be found at the given time."""
