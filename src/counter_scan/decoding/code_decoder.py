"""
Code Decoder Adapter
====================

Deterministic QR decoding with a configurable retry strategy.

Strategies (tried in configured order):
    - direct:        colour image, then its inverse if nothing was found
    - no_inversion:  colour image only
    - grayscale:     luminance image, then its inverse

Strategies expand into decode attempts; an attempt already made during
the same call is not repeated. By default decoding stops at the first
strategy that finds a code. With ``collect_all`` every strategy runs and
a payload that parses as a JSON object is preferred over plain text.

Design Rules:
    - "No code in frame" returns None, it is not an error
    - Backend exceptions are logged and treated as "no code"
    - The frame is never modified
"""

import json
import logging
from enum import Enum
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import cv2
import numpy as np

from counter_scan.decoding.payload import parse_code_payload
from counter_scan.models.readings import CodeReading, Point
from counter_scan.stream.frame import Frame
from counter_scan.stream.image_codec import frame_to_bgr, frame_to_grayscale


logger = logging.getLogger(__name__)


Detection = Tuple[str, List[Tuple[float, float]]]


class DecodeStrategy(str, Enum):
    """Decode retry strategies."""

    DIRECT = "direct"
    NO_INVERSION = "no_inversion"
    GRAYSCALE = "grayscale"


# (image variant, inverted) pairs per strategy
_ATTEMPTS: Dict[DecodeStrategy, Tuple[Tuple[str, bool], ...]] = {
    DecodeStrategy.DIRECT: (("color", False), ("color", True)),
    DecodeStrategy.NO_INVERSION: (("color", False),),
    DecodeStrategy.GRAYSCALE: (("gray", False), ("gray", True)),
}


class CodeDecoderBackend(Protocol):
    """
    Protocol for 2D-code decoding backends.

    Implementations return the decoded text and its corner points, or
    None when no code was decoded.
    """

    def detect(self, image: np.ndarray) -> Optional[Detection]:
        """
        Decode one code from an image.

        Args:
            image: (H, W, 3) BGR or (H, W) grayscale uint8 array

        Returns:
            (payload, polygon) or None
        """
        ...


class OpenCVQRBackend:
    """QR backend built on OpenCV's QRCodeDetector."""

    def __init__(self) -> None:
        self._detector = cv2.QRCodeDetector()

    def detect(self, image: np.ndarray) -> Optional[Detection]:
        data, points, _ = self._detector.detectAndDecode(image)
        if not data:
            return None
        polygon: List[Tuple[float, float]] = []
        if points is not None:
            polygon = [(float(x), float(y)) for x, y in np.asarray(points).reshape(-1, 2)]
        return data, polygon


def _is_json_payload(payload: str) -> bool:
    try:
        return isinstance(json.loads(payload), dict)
    except ValueError:
        return False


class CodeDecoderAdapter:
    """
    Single decoder for every scanner variant.

    Attributes:
        strategies: Strategies in the order they are tried
        collect_all: Run every strategy and prefer JSON payloads

    Example:
        decoder = CodeDecoderAdapter(
            strategies=[DecodeStrategy.DIRECT, DecodeStrategy.GRAYSCALE],
        )
        reading = decoder.decode(frame)
        if reading is not None:
            print(reading.payload)
    """

    def __init__(
        self,
        backend: Optional[CodeDecoderBackend] = None,
        strategies: Optional[Sequence[DecodeStrategy]] = None,
        collect_all: bool = False,
    ) -> None:
        """
        Initialize decoder adapter.

        Args:
            backend: Decoding backend (OpenCV QR by default)
            strategies: Ordered strategies (default: direct, no_inversion, grayscale)
            collect_all: Try every strategy instead of stopping at the first hit
        """
        self.backend = backend or OpenCVQRBackend()
        self.strategies: Tuple[DecodeStrategy, ...] = tuple(
            DecodeStrategy(s)
            for s in (list(DecodeStrategy) if strategies is None else strategies)
        )
        if not self.strategies:
            raise ValueError("at least one decode strategy is required")
        self.collect_all = collect_all

        self._decode_count: int = 0
        self._hit_count: int = 0
        self._failure_count: int = 0

        logger.info(
            f"CodeDecoderAdapter initialized: "
            f"strategies={[s.value for s in self.strategies]}, "
            f"collect_all={collect_all}"
        )

    def _image_for(self, frame: Frame, variant: str, inverted: bool,
                   cache: Dict[Tuple[str, bool], np.ndarray]) -> np.ndarray:
        key = (variant, inverted)
        if key not in cache:
            if inverted:
                cache[key] = 255 - self._image_for(frame, variant, False, cache)
            elif variant == "gray":
                cache[key] = frame_to_grayscale(frame)
            else:
                cache[key] = frame_to_bgr(frame)
        return cache[key]

    def _attempt(self, frame: Frame, variant: str, inverted: bool,
                 images: Dict[Tuple[str, bool], np.ndarray]) -> Optional[Detection]:
        try:
            return self.backend.detect(self._image_for(frame, variant, inverted, images))
        except Exception as e:
            self._failure_count += 1
            logger.warning(
                f"Decoder backend error (frame={frame.frame_id}, "
                f"variant={variant}, inverted={inverted}): {e}"
            )
            return None

    def _run_strategy(
        self,
        frame: Frame,
        strategy: DecodeStrategy,
        attempts: Dict[Tuple[str, bool], Optional[Detection]],
        images: Dict[Tuple[str, bool], np.ndarray],
    ) -> Optional[Detection]:
        for key in _ATTEMPTS[strategy]:
            if key not in attempts:
                attempts[key] = self._attempt(frame, key[0], key[1], images)
            if attempts[key] is not None:
                return attempts[key]
        return None

    def decode(self, frame: Frame) -> Optional[CodeReading]:
        """
        Decode a code from a frame.

        Args:
            frame: Frame to scan

        Returns:
            CodeReading, or None when no code was found
        """
        self._decode_count += 1
        attempts: Dict[Tuple[str, bool], Optional[Detection]] = {}
        images: Dict[Tuple[str, bool], np.ndarray] = {}
        found: List[Tuple[DecodeStrategy, Detection]] = []

        for strategy in self.strategies:
            detection = self._run_strategy(frame, strategy, attempts, images)
            if detection is None:
                continue
            logger.debug(
                f"Code found (frame={frame.frame_id}, strategy={strategy.value}): "
                f"{detection[0][:60]!r}"
            )
            found.append((strategy, detection))
            if not self.collect_all:
                break

        if not found:
            return None

        strategy, (payload, polygon) = next(
            (item for item in found if _is_json_payload(item[1][0])),
            found[0],
        )

        self._hit_count += 1
        return CodeReading(
            payload=payload,
            polygon=[Point(x=x, y=y) for x, y in polygon],
            strategy=strategy.value,
            parsed=parse_code_payload(payload),
        )

    def get_metrics(self) -> dict:
        """Get decoder metrics for observability."""
        return {
            "decode_count": self._decode_count,
            "hit_count": self._hit_count,
            "failure_count": self._failure_count,
            "strategies": [s.value for s in self.strategies],
        }
