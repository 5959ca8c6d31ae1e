"""
Stream Module
=============

Frame model, ring buffering and pixel codecs.

This module provides the ingestion layer for the scanner:
    - Frame: Immutable RGBA frame (capture boundary)
    - FrameRingBuffer: Fixed-capacity FIFO of recent frames
    - image_codec: Grayscale, JPEG and base64 conversions

Example:
    from counter_scan.stream import Frame, FrameRingBuffer

    buffer = FrameRingBuffer(capacity=3)
    buffer.push(Frame(width=w, height=h, pixels=rgba, timestamp=time.time()))
    frames = buffer.snapshot()
"""

from counter_scan.stream.frame import Frame
from counter_scan.stream.buffer import FrameRingBuffer
from counter_scan.stream.image_codec import (
    ImageDecodeError,
    decode_image_b64,
    decode_rgba_b64,
    encode_frame_jpeg_b64,
    luminance,
)


__all__ = [
    "Frame",
    "FrameRingBuffer",
    "ImageDecodeError",
    "decode_image_b64",
    "decode_rgba_b64",
    "encode_frame_jpeg_b64",
    "luminance",
]
