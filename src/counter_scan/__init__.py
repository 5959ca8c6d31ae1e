"""
CounterScan
===========

Combined machine-readable code + digital counter recognition.

For every frame trigger the service decodes a 2D code, reads the digital
counter display with multi-region multi-frame OCR, optionally asks a
hosted vision model, and fuses the three into one trusted reading.

Components:
    - stream: Frames, ring buffer, image codec
    - regions: Fractional region extraction
    - decoding: Code decoder adapter and payload parser
    - ocr: OCR engines, profiles, value extraction
    - signals: Stability aggregation
    - vision: Cloud vision fallback
    - pipeline: Fusion policy, LangGraph cycle, orchestrator

Example:
    from counter_scan.config import settings

    # Service is started via FastAPI application
    # See main.py for entry point
"""

__version__ = "0.1.0"

__all__ = [
    "__version__",
]
