"""
Error Taxonomy
==============

Exceptions raised by the recognition pipeline.

Only a few outcomes are exceptional. "Nothing found" (no code in the
frame, no digits in a region) and "value out of range" are ordinary
results and are returned as ``None``, never raised.

Hierarchy:
    ScanError
        NotReadyError         - engine used before initialize() finished
        InvalidRegionError    - region bounds fall outside the frame
        EngineFailureError    - underlying decode/recognize call threw
        VisionError
            VisionCredentialError - no API key configured
            VisionNetworkError    - transport failure or non-2xx status
            VisionParseError      - response content is not the expected JSON
            VisionCooldownError   - call attempted inside the cooldown window
"""

from typing import Optional


class ScanError(Exception):
    """Base class for all recognition pipeline errors."""
    pass


class NotReadyError(ScanError):
    """Raised when an adapter is used before it finished initializing."""
    pass


class InvalidRegionError(ScanError):
    """
    Raised when a region descriptor does not fit inside a frame.

    Attributes:
        region_name: Name of the offending region
        bounds: Computed pixel bounds (x, y, width, height)
        frame_size: Frame (width, height)
    """

    def __init__(
        self,
        message: str,
        region_name: Optional[str] = None,
        bounds: Optional[tuple] = None,
        frame_size: Optional[tuple] = None,
    ) -> None:
        super().__init__(message)
        self.region_name = region_name
        self.bounds = bounds
        self.frame_size = frame_size


class EngineFailureError(ScanError):
    """Raised when an OCR or decoder backend call fails."""
    pass


class VisionError(ScanError):
    """Base class for cloud vision failures."""
    pass


class VisionCredentialError(VisionError):
    """Raised when the cloud vision API key is missing."""
    pass


class VisionNetworkError(VisionError):
    """Raised on transport errors or non-success HTTP status."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VisionParseError(VisionError):
    """
    Raised when the vision response cannot be parsed.

    Attributes:
        raw_response: The content that failed to parse
    """

    def __init__(self, message: str, raw_response: Optional[str] = None) -> None:
        super().__init__(message)
        self.raw_response = raw_response


class VisionCooldownError(VisionError):
    """Raised when a vision call is attempted inside its cooldown window."""
    pass
