"""
Scan Output Models
==================

This module defines the output contract of the scan orchestrator.

Output Contract:
    {
        "status": "completed",
        "reason": "COUNTER_READ",
        "result": {
            "code_reading": {
                "payload": "Dover, changer 2, 500000 = $500",
                "polygon": [{"x": 10, "y": 12}, ...],
                "source": "code-decoder",
                "strategy": "direct",
                "parsed": {...}
            },
            "counter_value": 963373,
            "counter_source": "ocr",
            "confidence": 71.5,
            "timestamp": 1770500938.284,
            "scan_id": "4f0c..."
        }
    }

Design Rules:
    - `status == "no_result"` always has `result == None`
    - A completed cycle may still have `counter_value == None` (CODE_ONLY)
    - Downstream collaborators consume these values read-only
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from counter_scan.models.readings import CodeReading
from counter_scan.models.reason_codes import ReasonCode


class CounterSource(str, Enum):
    """Where the fused counter value came from."""

    CODE = "code"
    OCR = "ocr"
    VISION = "vision"


class ScanStatus(str, Enum):
    """Whether a trigger produced a completed cycle."""

    COMPLETED = "completed"
    NO_RESULT = "no_result"


class ScanPhase(str, Enum):
    """Per-cycle states of the orchestrator."""

    IDLE = "IDLE"
    BUFFERING = "BUFFERING"
    DECODING = "DECODING"
    RECOGNIZING = "RECOGNIZING"
    AGGREGATING = "AGGREGATING"
    FUSED = "FUSED"


class ScanResult(BaseModel):
    """
    Fused result of one scan cycle.

    Attributes:
        code_reading: Decoded code, if any
        counter_value: Trusted counter value, if any
        counter_source: Origin of counter_value
        confidence: Confidence in counter_value (0-100)
        timestamp: UNIX time the cycle completed
        scan_id: Unique per cycle
    """

    model_config = ConfigDict(frozen=True)

    code_reading: Optional[CodeReading] = Field(
        default=None,
        description="Decoded code (payload + location)",
    )

    counter_value: Optional[int] = Field(
        default=None,
        ge=0,
        description="Trusted counter value",
    )

    counter_source: Optional[CounterSource] = Field(
        default=None,
        description="Origin of the counter value (code, ocr, vision)",
    )

    confidence: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="Confidence in the counter value (0 to 100)",
    )

    timestamp: float = Field(..., description="UNIX time the cycle completed")

    scan_id: str = Field(..., min_length=1, description="Unique cycle identifier")

    @model_validator(mode="after")
    def check_source(self) -> "ScanResult":
        """A counter value always names its source, and vice versa."""
        if (self.counter_value is None) != (self.counter_source is None):
            raise ValueError("counter_value and counter_source must be set together")
        return self


class ScanOutcome(BaseModel):
    """
    Response to one frame trigger.

    Attributes:
        status: completed or no_result
        reason: Single machine-readable reason code
        result: Fused result (completed cycles only)
    """

    model_config = ConfigDict(frozen=True)

    status: ScanStatus
    reason: ReasonCode
    result: Optional[ScanResult] = None

    @model_validator(mode="after")
    def check_result(self) -> "ScanOutcome":
        """Completed outcomes carry a result, declined ones never do."""
        if self.status == ScanStatus.COMPLETED and self.result is None:
            raise ValueError("completed outcome requires a result")
        if self.status == ScanStatus.NO_RESULT and self.result is not None:
            raise ValueError("no_result outcome cannot carry a result")
        return self

    @property
    def has_result(self) -> bool:
        return self.status == ScanStatus.COMPLETED

    @classmethod
    def declined(cls, reason: ReasonCode) -> "ScanOutcome":
        """Outcome for a trigger that did not run a cycle."""
        return cls(status=ScanStatus.NO_RESULT, reason=reason)
