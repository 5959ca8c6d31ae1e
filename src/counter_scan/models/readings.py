"""
Reading Models
==============

Per-cycle readings produced by the decoder and the OCR path.

Models:
    - Point: Polygon vertex in pixel coordinates
    - CodePayload: Structured fields parsed from a decoded code
    - CodeReading: One decoded code (payload + location)
    - OcrText: Raw engine output for one crop
    - OcrObservation: One plausible counter value from one region x frame
    - StabilityGroup: Observations that agreed on a value
    - StableReading: Winning group of a cycle

CodeReading/CodePayload are pydantic models because they are part of the
scan output contract. The OCR-side types are internal and use frozen
dataclasses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


CODE_DECODER_SOURCE = "code-decoder"


class Point(BaseModel):
    """
    2D point in image coordinates.

    Coordinates are in pixels, with origin at top-left of image.
    """

    model_config = ConfigDict(frozen=True)

    x: float = Field(..., description="Horizontal coordinate (pixels from left)")
    y: float = Field(..., description="Vertical coordinate (pixels from top)")


class CodePayload(BaseModel):
    """
    Structured view of a decoded code payload.

    Attributes:
        raw: Payload text exactly as decoded
        is_json: Whether the payload parsed as a JSON object
        data: Parsed JSON object (empty when not JSON)
        location: Normalized location id, if present
        location_name: Location as written in the payload
        machine_id: Derived machine identifier
        changer: Changer number
        counter_value: Counter figure embedded in the code
        amount: Dollar amount embedded in the code
    """

    model_config = ConfigDict(frozen=True)

    raw: str
    is_json: bool = False
    data: Dict[str, Any] = Field(default_factory=dict)
    location: Optional[str] = None
    location_name: Optional[str] = None
    machine_id: Optional[str] = None
    changer: Optional[int] = None
    counter_value: Optional[int] = None
    amount: Optional[int] = None


class CodeReading(BaseModel):
    """
    One decoded machine-readable code.

    Attributes:
        payload: Decoded text (never empty)
        polygon: Corner points of the code in the frame
        source: Always "code-decoder"
        strategy: Decode strategy that produced this reading
        parsed: Structured payload fields
    """

    model_config = ConfigDict(frozen=True)

    payload: str = Field(..., min_length=1)
    polygon: List[Point] = Field(default_factory=list)
    source: str = Field(default=CODE_DECODER_SOURCE)
    strategy: Optional[str] = None
    parsed: Optional[CodePayload] = None

    @property
    def embedded_counter(self) -> Optional[int]:
        """Counter figure carried inside the code, if any."""
        if self.parsed is None:
            return None
        return self.parsed.counter_value


@dataclass(frozen=True, slots=True)
class OcrText:
    """
    Raw OCR engine output for one crop.

    Attributes:
        text: Recognized text
        confidence: Engine confidence 0-100
    """

    text: str
    confidence: float


@dataclass(frozen=True, slots=True)
class OcrObservation:
    """
    One counter value read from one region of one buffered frame.

    Attributes:
        value: Extracted counter value
        confidence: Engine confidence 0-100
        region_name: Region the crop came from
        frame_index: Position of the frame in the ring buffer snapshot
        raw_text: Unparsed engine text
    """

    value: Optional[int]
    confidence: float
    region_name: str
    frame_index: int
    raw_text: str = ""

    def __post_init__(self) -> None:
        """Validate invariants."""
        if not 0.0 <= self.confidence <= 100.0:
            raise ValueError("confidence must be within [0, 100]")


@dataclass(frozen=True, slots=True)
class StabilityGroup:
    """
    Observations that agreed on a single value.

    Attributes:
        value: Shared counter value
        observations: Agreeing observations
    """

    value: int
    observations: Tuple[OcrObservation, ...] = field(default_factory=tuple)

    @property
    def occurrence_count(self) -> int:
        return len(self.observations)

    @property
    def average_confidence(self) -> float:
        if not self.observations:
            return 0.0
        return sum(o.confidence for o in self.observations) / len(self.observations)

    def best(self) -> OcrObservation:
        """Highest-confidence observation in the group."""
        return max(self.observations, key=lambda o: o.confidence)

    def __repr__(self) -> str:
        return (
            f"StabilityGroup(value={self.value}, "
            f"count={self.occurrence_count}, "
            f"avg_conf={self.average_confidence:.1f})"
        )


@dataclass(frozen=True, slots=True)
class StableReading:
    """
    Value accepted by the stability aggregator.

    Attributes:
        group: Winning stability group
        best: Highest-confidence observation of the group
        total_observations: Observations considered in the cycle
    """

    group: StabilityGroup
    best: OcrObservation
    total_observations: int

    @property
    def value(self) -> int:
        return self.group.value

    @property
    def confidence(self) -> float:
        return self.group.average_confidence

    @property
    def occurrence_count(self) -> int:
        return self.group.occurrence_count

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "value": self.value,
            "occurrences": self.occurrence_count,
            "average_confidence": round(self.confidence, 2),
            "best_region": self.best.region_name,
            "total_observations": self.total_observations,
        }
