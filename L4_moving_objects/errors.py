# =============================================================================
# L4 Moving Objects - Errors
# =============================================================================
# Exception hierarchy for the scan bank.
#
# Configuration and field-catalog errors are fatal for the affected instance.
# Everything raised per message or per object is recoverable: the caller
# discards the message (or the object) and carries on with the next one.
# =============================================================================


class MovingObjectsError(Exception):
    """Base class for all errors raised by the moving-objects layer."""


class ConfigurationError(MovingObjectsError, ValueError):
    """A configuration value is invalid. Fatal, fix the configuration."""


# =============================================================================
# Ingestion
# =============================================================================

class IngestionError(MovingObjectsError):
    """A sensor message could not be written into the bank."""


class FieldResolutionError(IngestionError):
    """A coordinate field is missing from a point cloud or has an unknown datatype."""


class UnsupportedCoordinateWidth(IngestionError):
    """A coordinate field is neither 4 nor 8 bytes wide."""

    def __init__(self, field_name: str, width: int):
        super().__init__(
            f"Cannot read coordinate field '{field_name}' of {width} bytes "
            f"(only float32 and float64 coordinates are supported)"
        )
        self.field_name = field_name
        self.width = width


class NoPointsIngested(IngestionError):
    """No point of a point cloud passed the z-band filter; the message is discarded."""


class ScanShapeError(IngestionError, ValueError):
    """A scan does not have the number of points the bank was opened with."""


# =============================================================================
# Frames
# =============================================================================

class TransformUnavailable(MovingObjectsError):
    """A frame transform could not be looked up (missing data or timeout)."""

    def __init__(self, target_frame: str, source_frame: str, stamp: float,
                 reason: str = ""):
        message = (f"Cannot determine transform from '{source_frame}' to "
                   f"'{target_frame}' at time {stamp:.6f}")
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.target_frame = target_frame
        self.source_frame = source_frame
        self.stamp = stamp
