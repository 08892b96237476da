"""Exception taxonomy for the image search pipeline.

Staging, inference, and parsing failures route the request to the
fallback keyword search. CatalogUnavailable is the only pipeline error
that aborts a request. CleanupFailure is logged and swallowed by the
orchestrator.
"""

from __future__ import annotations


class ImageSearchError(Exception):
    """Base class for all image search pipeline errors."""


class InputTooLarge(ImageSearchError):
    """Raised when the submitted image exceeds the configured byte limit."""

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"Image is {size} bytes, limit is {limit} bytes")
        self.size = size
        self.limit = limit


class UploadFailure(ImageSearchError):
    """Raised when the temporary asset could not be stored."""


class UnsupportedImage(UploadFailure):
    """Raised when the upload is not a JPEG, PNG, WebP, or GIF image."""


class InferenceError(ImageSearchError):
    """Raised when the vision service returns an error or unusable payload."""


class InferenceTimeout(InferenceError):
    """Raised when the vision service does not answer within the timeout."""


class ParseDegradation(ImageSearchError):
    """Raised when the description holds nothing to parse."""


class CleanupFailure(ImageSearchError):
    """Raised when a temporary asset survives every deletion attempt."""

    def __init__(self, cid: str, attempts: int) -> None:
        super().__init__(f"Failed to delete {cid} after {attempts} attempts")
        self.cid = cid
        self.attempts = attempts


class CatalogUnavailable(ImageSearchError):
    """Raised when the product catalog cannot be read."""
