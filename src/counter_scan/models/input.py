"""
Input Message Schema
====================

Pydantic model for frames posted to the scan service.

Input Contract (from the capture collaborator):
    {
        "frame_id": 1234,
        "timestamp": 1707321234.567,
        "target": "dover-changer-2",
        "width": 640,
        "height": 480,
        "rgba": "<base64 raw RGBA bytes>"
    }

or, with an encoded image instead of raw pixels:
    {
        "frame_id": 1234,
        "timestamp": 1707321234.567,
        "image": "<base64 JPEG or PNG>"
    }

Exactly one of `rgba` or `image` must be present. `width`/`height` are
required with `rgba` and ignored with `image`.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


class FrameMessage(BaseModel):
    """
    Schema for frame messages received over HTTP.

    Attributes:
        frame_id: Capture counter from the producer
        timestamp: UNIX timestamp when the frame was captured
        target: Logical scan target (cooldown key)
        width: Frame width in pixels (raw RGBA only)
        height: Frame height in pixels (raw RGBA only)
        rgba: Base64-encoded raw RGBA bytes
        image: Base64-encoded JPEG/PNG
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "frame_id": 1234,
                "timestamp": 1707321234.567,
                "target": "default",
                "image": "/9j/4AAQSkZJRg...",
            }
        }
    )

    frame_id: int = Field(default=0, ge=0, description="Capture counter")

    timestamp: Optional[float] = Field(
        default=None,
        gt=0,
        description="UNIX capture time; defaults to receive time",
    )

    target: str = Field(
        default="default",
        min_length=1,
        description="Logical scan target used for the cooldown gate",
    )

    width: Optional[int] = Field(default=None, ge=1, description="Frame width")
    height: Optional[int] = Field(default=None, ge=1, description="Frame height")

    rgba: Optional[str] = Field(default=None, description="Base64 raw RGBA bytes")
    image: Optional[str] = Field(default=None, description="Base64 JPEG/PNG")

    @model_validator(mode="after")
    def check_payload(self) -> "FrameMessage":
        """Require exactly one pixel payload."""
        if (self.rgba is None) == (self.image is None):
            raise ValueError("exactly one of 'rgba' or 'image' is required")
        if self.rgba is not None and (self.width is None or self.height is None):
            raise ValueError("'width' and 'height' are required with 'rgba'")
        return self
