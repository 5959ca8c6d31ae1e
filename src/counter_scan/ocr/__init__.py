"""
OCR Module
==========

Text recognition for digital counter displays.

Components:
    - OcrEngine: Protocol for recognition backends
    - TesseractOcrEngine: pytesseract-backed engine (production)
    - MockOcrEngine: Deterministic scripted engine
    - OcrProfile / resolve_profile: Typed tuning profiles
    - ValueExtractor: Text to plausible counter value

Design Philosophy:
    OCR is a pluggable black box. The pipeline reasons over extracted
    values and confidences, never over engine internals.
"""

from counter_scan.ocr.engine import MockOcrEngine, OcrEngine, TesseractOcrEngine
from counter_scan.ocr.profiles import PROFILES, OcrProfile, resolve_profile
from counter_scan.ocr.value_extractor import ValueExtractor, digit_runs

__all__ = [
    "OcrEngine",
    "TesseractOcrEngine",
    "MockOcrEngine",
    "OcrProfile",
    "PROFILES",
    "resolve_profile",
    "ValueExtractor",
    "digit_runs",
]
