"""
Data Models
===========

Typed models for the recognition pipeline.

This module re-exports all data models for convenient access.

Models:
    Input:
        - FrameMessage: Schema for frames posted over HTTP

    Regions:
        - RegionDescriptor: Fractional rectangle
        - RegionSet: Validated list of regions
        - CroppedRegion: Extracted pixel buffer

    Readings:
        - CodeReading, CodePayload, Point: Decoder output
        - OcrText, OcrObservation: OCR output
        - StabilityGroup, StableReading: Aggregation output
        - VisionResult, ConfidenceTier: Cloud vision output

    Output:
        - ScanResult: Fused per-cycle result
        - ScanOutcome: Response to one frame trigger
        - CounterSource, ScanStatus, ScanPhase, ReasonCode
"""

from counter_scan.models.input import FrameMessage
from counter_scan.models.region import CroppedRegion, RegionDescriptor, RegionSet
from counter_scan.models.readings import (
    CodePayload,
    CodeReading,
    OcrObservation,
    OcrText,
    Point,
    StabilityGroup,
    StableReading,
)
from counter_scan.models.vision import ConfidenceTier, VisionResult
from counter_scan.models.reason_codes import ReasonCode
from counter_scan.models.output import (
    CounterSource,
    ScanOutcome,
    ScanPhase,
    ScanResult,
    ScanStatus,
)

__all__ = [
    # Input
    "FrameMessage",
    # Regions
    "RegionDescriptor",
    "RegionSet",
    "CroppedRegion",
    # Readings
    "Point",
    "CodePayload",
    "CodeReading",
    "OcrText",
    "OcrObservation",
    "StabilityGroup",
    "StableReading",
    "ConfidenceTier",
    "VisionResult",
    # Output
    "ReasonCode",
    "CounterSource",
    "ScanStatus",
    "ScanPhase",
    "ScanResult",
    "ScanOutcome",
]
