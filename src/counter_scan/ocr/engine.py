"""
OCR Engine
==========

Stateful text recognition behind a small async interface.

This module provides the OcrEngine protocol and two implementations:
    - TesseractOcrEngine: pytesseract-backed engine (production)
    - MockOcrEngine: deterministic scripted engine (tests, dry runs)

Lifecycle:
    configure(profile) -> await initialize() -> await recognize(...)* -> await terminate()

Design Rules:
    - One engine instance is reused across calls (no per-call setup)
    - recognize() on an engine that is not ready raises NotReadyError;
      callers check is_ready() and skip rather than wait
    - Changing the profile requires initialize() again
    - terminate() is idempotent and safe with no call in flight
"""

import asyncio
import logging
from itertools import cycle
from typing import Dict, Iterator, Mapping, Optional, Protocol, Sequence, Set, Tuple

import cv2
import numpy as np
import pytesseract

from counter_scan.errors import EngineFailureError, NotReadyError
from counter_scan.models.readings import OcrText
from counter_scan.models.region import CroppedRegion
from counter_scan.ocr.profiles import OcrProfile, resolve_profile
from counter_scan.stream.image_codec import luminance


logger = logging.getLogger(__name__)


class OcrEngine(Protocol):
    """
    Protocol for OCR backends.

    All implementations provide async initialize/recognize/terminate and a
    synchronous readiness check.
    """

    def is_ready(self) -> bool:
        """Whether recognize() may be called."""
        ...

    def configure(self, profile: OcrProfile) -> None:
        """Apply a tuning profile (takes effect on next initialize)."""
        ...

    async def initialize(self) -> None:
        """Prepare the engine; must complete before recognize()."""
        ...

    async def recognize(self, cropped: CroppedRegion) -> OcrText:
        """
        Recognize text in a cropped region.

        Raises:
            NotReadyError: If the engine is not initialized
            EngineFailureError: If the underlying call fails
        """
        ...

    async def terminate(self) -> None:
        """Release the engine. Idempotent."""
        ...


def prepare_crop(cropped: CroppedRegion, profile: OcrProfile) -> np.ndarray:
    """
    Build the image handed to the OCR backend.

    Grayscale, optional inversion, upscaling and Otsu binarization. The
    crop itself is not modified.

    Args:
        cropped: RGBA or grayscale crop
        profile: Active tuning profile

    Returns:
        (H, W) uint8 array
    """
    if cropped.is_grayscale:
        gray = cropped.as_array().copy()
    else:
        gray = luminance(cropped.as_array())

    if profile.invert:
        gray = 255 - gray

    if profile.scale_factor > 1.0:
        gray = cv2.resize(
            gray,
            None,
            fx=profile.scale_factor,
            fy=profile.scale_factor,
            interpolation=cv2.INTER_CUBIC,
        )

    if profile.binarize:
        _, gray = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)

    return gray


def summarize_tesseract_data(data: Mapping[str, Sequence]) -> OcrText:
    """
    Collapse pytesseract ``image_to_data`` output into text + confidence.

    Confidence is the mean of the word-level confidences; entries with
    negative confidence (layout rows) or empty text are skipped.
    """
    words = []
    confidences = []
    for text, conf in zip(data.get("text", []), data.get("conf", [])):
        try:
            conf_value = float(conf)
        except (TypeError, ValueError):
            continue
        word = str(text).strip()
        if conf_value < 0 or not word:
            continue
        words.append(word)
        confidences.append(conf_value)

    if not words:
        return OcrText(text="", confidence=0.0)

    mean_conf = sum(confidences) / len(confidences)
    return OcrText(text=" ".join(words), confidence=max(0.0, min(100.0, mean_conf)))


class TesseractOcrEngine:
    """
    OCR engine backed by the tesseract binary via pytesseract.

    Attributes:
        profile: Active tuning profile
        tesseract_cmd: Path to the tesseract binary (None = on PATH)
        timeout: Per-call timeout in seconds (0 = none)

    Example:
        engine = TesseractOcrEngine(resolve_profile("seven_segment"))
        await engine.initialize()
        if engine.is_ready():
            result = await engine.recognize(crop)
        await engine.terminate()
    """

    def __init__(
        self,
        profile: Optional[OcrProfile] = None,
        tesseract_cmd: Optional[str] = None,
        timeout: float = 0.0,
    ) -> None:
        """
        Initialize engine adapter (not ready until initialize() runs).

        Args:
            profile: Tuning profile (seven_segment if None)
            tesseract_cmd: Path to tesseract executable
            timeout: Per-call timeout in seconds (0 = none)
        """
        self.profile = profile or resolve_profile()
        self.tesseract_cmd = tesseract_cmd
        self.timeout = timeout

        self._config: str = self.profile.to_tesseract_config()
        self._ready: bool = False
        self._version: Optional[str] = None
        self._init_lock = asyncio.Lock()
        self._in_flight: int = 0
        self._recognize_count: int = 0
        self._error_count: int = 0

    def is_ready(self) -> bool:
        return self._ready

    @property
    def in_flight(self) -> int:
        """Recognition calls currently running."""
        return self._in_flight

    def configure(self, profile: OcrProfile) -> None:
        """
        Apply a new profile.

        If the engine was ready it becomes not ready until initialize()
        runs again.
        """
        self.profile = profile
        self._config = profile.to_tesseract_config()
        if self._ready:
            self._ready = False
            logger.info(
                f"OCR profile changed to '{profile.name}', re-initialization required"
            )

    async def initialize(self) -> None:
        """
        Locate the tesseract binary and mark the engine ready.

        Raises:
            EngineFailureError: If tesseract is not available
        """
        async with self._init_lock:
            if self._ready:
                return

            if self.tesseract_cmd:
                pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd

            try:
                version = await asyncio.to_thread(pytesseract.get_tesseract_version)
            except pytesseract.TesseractNotFoundError as e:
                raise EngineFailureError(f"tesseract binary not found: {e}") from e
            except Exception as e:
                raise EngineFailureError(f"tesseract initialization failed: {e}") from e

            self._version = str(version)
            self._ready = True
            logger.info(
                f"TesseractOcrEngine initialized: version={self._version}, "
                f"profile={self.profile.name}, config='{self._config}'"
            )

    async def recognize(self, cropped: CroppedRegion) -> OcrText:
        """
        Recognize text in a crop.

        Args:
            cropped: Crop from the region extractor

        Returns:
            OcrText with text and mean word confidence (0-100)

        Raises:
            NotReadyError: If the engine is not initialized or was
                terminated while the call was running
            EngineFailureError: If tesseract fails
        """
        if not self._ready:
            raise NotReadyError("OCR engine is not initialized")

        image = prepare_crop(cropped, self.profile)
        self._in_flight += 1
        try:
            data = await asyncio.to_thread(
                pytesseract.image_to_data,
                image,
                lang=self.profile.language,
                config=self._config,
                output_type=pytesseract.Output.DICT,
                timeout=self.timeout,
            )
        except Exception as e:
            self._error_count += 1
            raise EngineFailureError(
                f"tesseract failed on region '{cropped.name}': {e}"
            ) from e
        finally:
            self._in_flight -= 1

        if not self._ready:
            raise NotReadyError("OCR engine was terminated during recognition")

        self._recognize_count += 1
        return summarize_tesseract_data(data)

    async def terminate(self) -> None:
        """Mark the engine not ready. Safe to call repeatedly."""
        if not self._ready:
            return
        self._ready = False
        logger.info(
            f"TesseractOcrEngine terminated "
            f"(recognitions={self._recognize_count}, in_flight={self._in_flight})"
        )

    def get_metrics(self) -> dict:
        """Get engine metrics for observability."""
        return {
            "backend": "tesseract",
            "ready": self._ready,
            "version": self._version,
            "profile": self.profile.name,
            "recognize_count": self._recognize_count,
            "error_count": self._error_count,
            "in_flight": self._in_flight,
        }


class MockOcrEngine:
    """
    Deterministic scripted OCR engine.

    Returns readings keyed by region name. A region with a sequence of
    readings cycles through it, one per call, so a test can script
    per-frame variation. Regions without a script return ``default``.

    Attributes:
        readings: Region name -> sequence of (text, confidence)
        default: Reading for unscripted regions
        failing_regions: Regions whose recognition raises EngineFailureError
        init_delay: Seconds initialize() takes (simulates async startup)
    """

    def __init__(
        self,
        readings: Optional[Mapping[str, Sequence[Tuple[str, float]]]] = None,
        default: Tuple[str, float] = ("", 0.0),
        failing_regions: Optional[Set[str]] = None,
        init_delay: float = 0.0,
        profile: Optional[OcrProfile] = None,
    ) -> None:
        self.profile = profile or resolve_profile()
        self.default = OcrText(text=default[0], confidence=default[1])
        self.failing_regions: Set[str] = set(failing_regions or ())
        self.init_delay = init_delay

        self._scripts: Dict[str, Iterator[Tuple[str, float]]] = {
            name: cycle(list(seq)) for name, seq in (readings or {}).items() if seq
        }
        self._ready: bool = False
        self._recognize_count: int = 0
        self._terminate_count: int = 0

        logger.info(
            f"MockOcrEngine initialized: scripted_regions={sorted(self._scripts)}"
        )

    def is_ready(self) -> bool:
        return self._ready

    @property
    def recognize_count(self) -> int:
        return self._recognize_count

    def configure(self, profile: OcrProfile) -> None:
        self.profile = profile
        self._ready = False

    async def initialize(self) -> None:
        if self.init_delay > 0:
            await asyncio.sleep(self.init_delay)
        self._ready = True

    async def recognize(self, cropped: CroppedRegion) -> OcrText:
        if not self._ready:
            raise NotReadyError("OCR engine is not initialized")

        self._recognize_count += 1
        await asyncio.sleep(0)

        if cropped.name in self.failing_regions:
            raise EngineFailureError(f"scripted failure for region '{cropped.name}'")

        script = self._scripts.get(cropped.name)
        if script is None:
            return self.default
        text, confidence = next(script)
        return OcrText(text=text, confidence=confidence)

    async def terminate(self) -> None:
        self._terminate_count += 1
        self._ready = False

    def get_metrics(self) -> dict:
        """Get engine metrics for observability."""
        return {
            "backend": "mock",
            "ready": self._ready,
            "profile": self.profile.name,
            "recognize_count": self._recognize_count,
        }
