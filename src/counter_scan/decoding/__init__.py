"""
Decoding Module
===============

Machine-readable code decoding.

Components:
    - CodeDecoderAdapter: Strategy-driven decoder (direct, no_inversion, grayscale)
    - CodeDecoderBackend: Protocol for decoding backends
    - OpenCVQRBackend: Default backend (cv2.QRCodeDetector)
    - parse_code_payload: Structured fields from decoded payloads
"""

from counter_scan.decoding.code_decoder import (
    CodeDecoderAdapter,
    CodeDecoderBackend,
    DecodeStrategy,
    OpenCVQRBackend,
)
from counter_scan.decoding.payload import parse_code_payload

__all__ = [
    "CodeDecoderAdapter",
    "CodeDecoderBackend",
    "DecodeStrategy",
    "OpenCVQRBackend",
    "parse_code_payload",
]
