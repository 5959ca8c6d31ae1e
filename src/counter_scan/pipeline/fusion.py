"""
Fusion Policy
=============

Deterministic combination of the three counter sources of one cycle.

Precedence:
    1. Stable OCR value      -> source "ocr",    confidence = group mean
    2. Vision counter value  -> source "vision", confidence = tier score
    3. Code-embedded counter -> source "code",   confidence = 100

OCR and vision read the live display; the code carries the figure
printed when the code was generated.

Reason Codes:
    COUNTER_READ: A counter value was fused
    CODE_ONLY:    A code was decoded but no counter value is trusted
    NO_SIGNAL:    Neither a code nor a counter value
"""

import logging
from dataclasses import dataclass
from typing import Optional

from counter_scan.models.output import CounterSource
from counter_scan.models.readings import CodeReading, StableReading
from counter_scan.models.reason_codes import ReasonCode
from counter_scan.models.vision import VisionResult


logger = logging.getLogger(__name__)


CODE_COUNTER_CONFIDENCE = 100.0


@dataclass(frozen=True, slots=True)
class FusionDecision:
    """Counter value chosen for a cycle, with its provenance."""

    counter_value: Optional[int]
    counter_source: Optional[CounterSource]
    confidence: float
    reason: ReasonCode

    @property
    def has_counter(self) -> bool:
        return self.counter_value is not None

    def __repr__(self) -> str:
        source = self.counter_source.value if self.counter_source else None
        return (
            f"FusionDecision(value={self.counter_value}, source={source}, "
            f"conf={self.confidence:.1f}, reason={self.reason.value})"
        )


class FusionPolicy:
    """
    Picks the trusted counter value of a cycle.

    Stateless; one instance is shared across cycles.

    Example:
        decision = FusionPolicy().fuse(code_reading, stable, vision_result)
    """

    def fuse(
        self,
        code_reading: Optional[CodeReading],
        stable: Optional[StableReading],
        vision: Optional[VisionResult] = None,
    ) -> FusionDecision:
        """
        Combine decoder, stable OCR and vision outputs.

        Args:
            code_reading: Decoded code, if any
            stable: Stable OCR value, if any
            vision: Vision fallback result, if any

        Returns:
            FusionDecision
        """
        if stable is not None:
            decision = FusionDecision(
                counter_value=stable.value,
                counter_source=CounterSource.OCR,
                confidence=stable.confidence,
                reason=ReasonCode.COUNTER_READ,
            )
        elif vision is not None and vision.counter_value is not None:
            decision = FusionDecision(
                counter_value=vision.counter_value,
                counter_source=CounterSource.VISION,
                confidence=vision.confidence,
                reason=ReasonCode.COUNTER_READ,
            )
        elif code_reading is not None and code_reading.embedded_counter is not None:
            decision = FusionDecision(
                counter_value=code_reading.embedded_counter,
                counter_source=CounterSource.CODE,
                confidence=CODE_COUNTER_CONFIDENCE,
                reason=ReasonCode.COUNTER_READ,
            )
        elif code_reading is not None:
            decision = FusionDecision(None, None, 0.0, ReasonCode.CODE_ONLY)
        else:
            decision = FusionDecision(None, None, 0.0, ReasonCode.NO_SIGNAL)

        logger.debug(f"Fused: {decision!r}")
        return decision
