"""
Error taxonomy for image screening.

Every error raised by the core carries an ErrorKind so that a failed image
can be reported with its kind and message without aborting the batch.
"""

from enum import Enum


class ErrorKind(Enum):
    """Recoverable per-image failure kinds."""
    INVALID_IMAGE_GEOMETRY = "InvalidImageGeometry"
    IMAGE_DECODE = "ImageDecodeError"
    SCHEMA_MISMATCH = "SchemaMismatch"
    MODEL_LOAD = "ModelLoadError"
    INFERENCE = "InferenceError"
    TIMEOUT = "TimeoutError"


class ScreeningError(Exception):
    """Base class for errors recovered at the per-image task boundary."""

    kind: ErrorKind

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidImageGeometry(ScreeningError):
    """Image has zero width or height."""
    kind = ErrorKind.INVALID_IMAGE_GEOMETRY


class ImageDecodeError(ScreeningError):
    """Image bytes are corrupt or in an unsupported format."""
    kind = ErrorKind.IMAGE_DECODE


class SchemaMismatch(ScreeningError):
    """Detector output tensor does not have the expected shape."""
    kind = ErrorKind.SCHEMA_MISMATCH


class ModelLoadError(ScreeningError):
    """Model file is missing or cannot be loaded."""
    kind = ErrorKind.MODEL_LOAD


class InferenceError(ScreeningError):
    """Inference engine failed at runtime."""
    kind = ErrorKind.INFERENCE


class AnalysisTimeoutError(ScreeningError, TimeoutError):
    """Decode or inference did not finish within the allotted time."""
    kind = ErrorKind.TIMEOUT
