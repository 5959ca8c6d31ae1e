"""
Frame Data Model
=================

Internal frame representation for the recognition pipeline.

A Frame is the capture boundary: width, height and a row-major RGBA byte
buffer, one byte per channel. Everything downstream (region extraction,
code decoding, cloud vision) consumes this shape.

Design Rules:
    - Frames are immutable once created
    - Pixel data is stored as ``bytes`` so it cannot be written through
    - Consumers get read-only numpy views, never copies
"""

from dataclasses import dataclass

import numpy as np


CHANNELS = 4


@dataclass(frozen=True, slots=True)
class Frame:
    """
    Immutable RGBA frame snapshot.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        pixels: RGBA bytes, row-major, length width * height * 4
        timestamp: Capture time (UNIX seconds)
        frame_id: Capture counter assigned by the producer
    """

    width: int
    height: int
    pixels: bytes
    timestamp: float
    frame_id: int = 0

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.width <= 0 or self.height <= 0:
            raise ValueError(
                f"Frame dimensions must be positive, got {self.width}x{self.height}"
            )
        if not isinstance(self.pixels, bytes):
            # Freeze bytearray/memoryview input
            object.__setattr__(self, "pixels", bytes(self.pixels))
        expected = self.width * self.height * CHANNELS
        if len(self.pixels) != expected:
            raise ValueError(
                f"Pixel buffer length {len(self.pixels)} does not match "
                f"{self.width}x{self.height}x{CHANNELS}={expected}"
            )

    def as_array(self) -> np.ndarray:
        """
        Read-only (height, width, 4) uint8 view over the pixel buffer.

        No pixel data is copied.
        """
        return np.frombuffer(self.pixels, dtype=np.uint8).reshape(
            self.height, self.width, CHANNELS
        )

    @classmethod
    def from_array(
        cls,
        rgba: np.ndarray,
        timestamp: float,
        frame_id: int = 0,
    ) -> "Frame":
        """
        Build a frame from a (height, width, 4) uint8 array.

        Args:
            rgba: RGBA image array
            timestamp: Capture time
            frame_id: Capture counter
        """
        if rgba.ndim != 3 or rgba.shape[2] != CHANNELS:
            raise ValueError(f"Expected (H, W, 4) RGBA array, got {rgba.shape}")
        height, width = rgba.shape[:2]
        return cls(
            width=width,
            height=height,
            pixels=np.ascontiguousarray(rgba, dtype=np.uint8).tobytes(),
            timestamp=timestamp,
            frame_id=frame_id,
        )

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"Frame(frame_id={self.frame_id}, "
            f"size={self.width}x{self.height}, "
            f"timestamp={self.timestamp:.3f})"
        )
