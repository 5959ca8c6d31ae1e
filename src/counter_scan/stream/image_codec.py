"""
Image Codec
===========

Pixel format conversions between frames, OpenCV matrices and encoded
images.

Design Rules:
    - This is the ONLY place in the codebase that encodes or decodes images
    - Every conversion returns a new array; frame buffers are never written
    - Fails fast on corrupt input
"""

import base64
import binascii
import logging

import cv2
import numpy as np

from counter_scan.stream.frame import CHANNELS, Frame


logger = logging.getLogger(__name__)


# ITU-R BT.601 luma weights
LUMA_WEIGHTS = (0.299, 0.587, 0.114)


class ImageDecodeError(Exception):
    """Raised when image decoding fails."""
    pass


def luminance(rgba: np.ndarray) -> np.ndarray:
    """
    Convert an RGB(A) array to 8-bit grayscale.

    Uses 0.299R + 0.587G + 0.114B, rounded to the nearest integer.

    Args:
        rgba: (H, W, 3) or (H, W, 4) uint8 array

    Returns:
        Grayscale image as np.ndarray (H, W), dtype=uint8
    """
    if rgba.ndim != 3 or rgba.shape[2] < 3:
        raise ValueError(f"Expected (H, W, 3|4) array, got {rgba.shape}")
    rgb = rgba[:, :, :3].astype(np.float32)
    gray = (
        LUMA_WEIGHTS[0] * rgb[:, :, 0]
        + LUMA_WEIGHTS[1] * rgb[:, :, 1]
        + LUMA_WEIGHTS[2] * rgb[:, :, 2]
    )
    return np.clip(np.rint(gray), 0, 255).astype(np.uint8)


def frame_to_bgr(frame: Frame) -> np.ndarray:
    """
    Convert a frame to an OpenCV BGR matrix.

    Args:
        frame: RGBA frame

    Returns:
        BGR image as np.ndarray (H, W, 3), dtype=uint8
    """
    return cv2.cvtColor(frame.as_array(), cv2.COLOR_RGBA2BGR)


def frame_to_grayscale(frame: Frame) -> np.ndarray:
    """Luminance-weighted grayscale copy of a frame."""
    return luminance(frame.as_array())


def encode_frame_jpeg_b64(frame: Frame, quality: int = 80) -> str:
    """
    Compress a frame to JPEG and base64-encode it.

    Args:
        frame: RGBA frame
        quality: JPEG quality 1-100

    Returns:
        Base64 string (no data-URL prefix)
    """
    ok, encoded = cv2.imencode(
        ".jpg",
        frame_to_bgr(frame),
        [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)],
    )
    if not ok:
        raise ImageDecodeError(f"JPEG encoding failed for frame {frame.frame_id}")
    return base64.b64encode(encoded.tobytes()).decode("ascii")


def decode_image_b64(
    image_b64: str,
    timestamp: float,
    frame_id: int = 0,
) -> Frame:
    """
    Decode a base64 JPEG/PNG image into an RGBA frame.

    Args:
        image_b64: Base64-encoded image
        timestamp: Capture time for the frame
        frame_id: Capture counter

    Returns:
        Frame with RGBA pixels

    Raises:
        ImageDecodeError: If decoding fails or image is invalid
    """
    try:
        image_bytes = base64.b64decode(image_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Base64 decode failed for frame {frame_id}: {e}")

    nparr = np.frombuffer(image_bytes, np.uint8)
    bgr = cv2.imdecode(nparr, cv2.IMREAD_COLOR)

    if bgr is None:
        raise ImageDecodeError(
            f"Failed to decode frame {frame_id}: cv2.imdecode returned None"
        )

    if len(bgr.shape) != 3 or bgr.shape[2] != 3:
        raise ImageDecodeError(f"Invalid image shape for frame {frame_id}: {bgr.shape}")

    rgba = cv2.cvtColor(bgr, cv2.COLOR_BGR2RGBA)
    return Frame.from_array(rgba, timestamp=timestamp, frame_id=frame_id)


def decode_rgba_b64(
    rgba_b64: str,
    width: int,
    height: int,
    timestamp: float,
    frame_id: int = 0,
) -> Frame:
    """
    Wrap base64 raw RGBA bytes as a frame.

    Raises:
        ImageDecodeError: If the payload is not base64 or has the wrong length
    """
    try:
        pixels = base64.b64decode(rgba_b64, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ImageDecodeError(f"Base64 decode failed for frame {frame_id}: {e}")

    expected = width * height * CHANNELS
    if len(pixels) != expected:
        raise ImageDecodeError(
            f"RGBA payload for frame {frame_id} has {len(pixels)} bytes, "
            f"expected {expected}"
        )

    return Frame(
        width=width,
        height=height,
        pixels=pixels,
        timestamp=timestamp,
        frame_id=frame_id,
    )
