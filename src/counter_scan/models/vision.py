"""
Vision Models
=============

Structured result of the cloud vision fallback.

Response Contract (from the vision service, inside the message content):
    {
        "qrCodeData": "Dover, changer 2, 963373 = $500",
        "digitalCounter": "963373",
        "location": "Dover",
        "machine": "changer 2",
        "monetaryValue": "$500",
        "confidence": "high",
        "rawText": "963373 ..."
    }
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ConfidenceTier(str, Enum):
    """Coarse confidence reported by the vision service."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def score(self) -> float:
        """Numeric confidence on the 0-100 scale used by scan results."""
        return _TIER_SCORES[self]


_TIER_SCORES = {
    ConfidenceTier.HIGH: 90.0,
    ConfidenceTier.MEDIUM: 70.0,
    ConfidenceTier.LOW: 40.0,
}


class VisionResult(BaseModel):
    """
    Parsed vision service response.

    Attributes:
        code_payload: Code data read by the service
        counter_value: Plausible counter value (already validated)
        raw_counter: Counter text as returned by the service
        location: Location hint
        machine: Machine hint
        monetary_value: Dollar amount hint
        confidence_tier: Service-reported confidence
        raw_text: All text the service saw
    """

    model_config = ConfigDict(frozen=True)

    code_payload: Optional[str] = None
    counter_value: Optional[int] = None
    raw_counter: Optional[str] = None
    location: Optional[str] = None
    machine: Optional[str] = None
    monetary_value: Optional[str] = None
    confidence_tier: ConfidenceTier = Field(default=ConfidenceTier.LOW)
    raw_text: Optional[str] = None

    @property
    def confidence(self) -> float:
        return self.confidence_tier.score
