"""
Region Models
=============

Where to look for a digital display inside a frame.

Design Philosophy:
    Regions are EXPLICITLY DECLARED in configuration, never discovered at
    runtime. They are expressed as fractions of frame width/height so the
    same configuration works for any capture resolution.

Example Region:
    {
        "name": "primary_display",
        "x": 0.3,
        "y": 0.2,
        "width": 0.4,
        "height": 0.3
    }
"""

from dataclasses import dataclass
from typing import List

import numpy as np
from pydantic import BaseModel, ConfigDict, Field, model_validator


class RegionDescriptor(BaseModel):
    """
    Named rectangle in fractional frame coordinates.

    Attributes:
        name: Region identifier (used in observations and logs)
        x: Left edge as fraction of frame width
        y: Top edge as fraction of frame height
        width: Width as fraction of frame width
        height: Height as fraction of frame height
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(..., min_length=1, description="Region identifier")
    x: float = Field(..., ge=0.0, le=1.0, description="Left edge (fraction)")
    y: float = Field(..., ge=0.0, le=1.0, description="Top edge (fraction)")
    width: float = Field(..., gt=0.0, le=1.0, description="Width (fraction)")
    height: float = Field(..., gt=0.0, le=1.0, description="Height (fraction)")


def default_regions() -> List[RegionDescriptor]:
    """Display regions used when none are configured."""
    return [
        RegionDescriptor(name="primary_display", x=0.3, y=0.2, width=0.4, height=0.3),
        RegionDescriptor(name="full_center", x=0.2, y=0.15, width=0.6, height=0.4),
        RegionDescriptor(name="top_area", x=0.2, y=0.1, width=0.6, height=0.3),
        RegionDescriptor(name="bottom_area", x=0.2, y=0.5, width=0.6, height=0.3),
    ]


class RegionSet(BaseModel):
    """
    Ordered, uniquely named list of regions.

    Attributes:
        regions: Region descriptors in scan order
    """

    regions: List[RegionDescriptor] = Field(
        default_factory=default_regions,
        min_length=1,
        description="Region descriptors in scan order",
    )

    @model_validator(mode="after")
    def check_unique_names(self) -> "RegionSet":
        """Reject duplicate region names."""
        names = [r.name for r in self.regions]
        duplicates = {n for n in names if names.count(n) > 1}
        if duplicates:
            raise ValueError(f"Duplicate region names: {sorted(duplicates)}")
        return self


@dataclass(frozen=True, slots=True)
class CroppedRegion:
    """
    Pixel buffer cut out of a frame.

    Owned by the caller that produced it. Same layout as the source frame
    (RGBA) unless converted to grayscale, in which case channels == 1.

    Attributes:
        name: Source region name
        width: Crop width in pixels
        height: Crop height in pixels
        channels: 4 for RGBA, 1 for grayscale
        pixels: Row-major pixel bytes
    """

    name: str
    width: int
    height: int
    channels: int
    pixels: bytes

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.channels not in (1, 4):
            raise ValueError("channels must be 1 or 4")
        if len(self.pixels) != self.width * self.height * self.channels:
            raise ValueError("pixel buffer does not match crop dimensions")

    @property
    def is_grayscale(self) -> bool:
        return self.channels == 1

    def as_array(self) -> np.ndarray:
        """Read-only view shaped (H, W) for grayscale or (H, W, 4) for RGBA."""
        flat = np.frombuffer(self.pixels, dtype=np.uint8)
        if self.channels == 1:
            return flat.reshape(self.height, self.width)
        return flat.reshape(self.height, self.width, self.channels)

    def __repr__(self) -> str:
        return (
            f"CroppedRegion(name={self.name!r}, "
            f"size={self.width}x{self.height}, channels={self.channels})"
        )
