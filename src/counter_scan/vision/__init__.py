"""
Vision Module
=============

Hosted multimodal fallback for frames local OCR cannot settle.

Components:
    - CloudVisionAdapter: Chat-completions client with call cooldown
    - parse_vision_content: Model answer to VisionResult
"""

from counter_scan.vision.cloud_vision import (
    DEFAULT_ENDPOINT,
    DEFAULT_MODEL,
    CloudVisionAdapter,
    parse_vision_content,
)

__all__ = [
    "CloudVisionAdapter",
    "parse_vision_content",
    "DEFAULT_ENDPOINT",
    "DEFAULT_MODEL",
]
