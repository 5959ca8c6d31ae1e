"""
Cloud Vision Fallback
=====================

Reads code data and the counter value from a whole frame with a hosted
multimodal model, used when local OCR cannot settle on a value.

This adapter:
    - Encodes the frame as base64 JPEG
    - Posts an OpenAI-compatible chat-completions request with a fixed
      extraction prompt
    - Parses the model's JSON answer into a VisionResult
    - Enforces its own call cooldown for cost control

Design Rules:
    - Fail fast on missing credentials (no request is sent)
    - Every failure surfaces as a VisionError subclass; the caller
      decides whether it is fatal
    - Counter text from the model goes through the same plausibility
      bounds as OCR output
    - Log every API call
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Callable, Dict, Optional

import requests

from counter_scan.errors import (
    VisionCooldownError,
    VisionCredentialError,
    VisionError,
    VisionNetworkError,
    VisionParseError,
)
from counter_scan.models.vision import ConfidenceTier, VisionResult
from counter_scan.ocr.value_extractor import ValueExtractor
from counter_scan.stream.frame import Frame
from counter_scan.stream.image_codec import encode_frame_jpeg_b64


logger = logging.getLogger(__name__)


DEFAULT_ENDPOINT = "https://api.openai.com/v1/chat/completions"
DEFAULT_MODEL = "gpt-4o-mini"

EXTRACTION_PROMPT = """Analyze this image and extract the following information in JSON format:

1. QR Code Data: If there's a QR code visible, extract its data
2. Digital Counter Value: Look for any digital display showing numbers (like 963373)
3. Location Information: Extract any location names or identifiers
4. Machine Information: Extract any machine/changer identifiers
5. Monetary Values: Extract any dollar amounts or currency values

Return the result as a JSON object with these fields:
{
  "qrCodeData": "extracted QR code data or null",
  "digitalCounter": "extracted counter value or null",
  "location": "extracted location or null",
  "machine": "extracted machine identifier or null",
  "monetaryValue": "extracted dollar amount or null",
  "confidence": "high/medium/low based on clarity",
  "rawText": "all text visible in the image"
}"""

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL | re.IGNORECASE)


def _text_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    if not text or text.lower() in ("null", "none", "n/a"):
        return None
    return text


def parse_vision_content(
    content: str,
    extractor: Optional[ValueExtractor] = None,
) -> VisionResult:
    """
    Parse the model's message content into a VisionResult.

    Args:
        content: Message content (bare JSON or a fenced ```json block)
        extractor: Plausibility bounds for the counter value

    Returns:
        VisionResult

    Raises:
        VisionParseError: If the content is not text holding a JSON object
    """
    extractor = extractor or ValueExtractor()

    if content is None:
        content = ""
    if not isinstance(content, str):
        raise VisionParseError(
            f"vision content is {type(content).__name__}, expected text",
            raw_response=repr(content)[:500],
        )

    match = _FENCE.search(content)
    body = match.group(1) if match else content.strip()

    try:
        data = json.loads(body)
    except ValueError as e:
        raise VisionParseError(f"vision content is not JSON: {e}", raw_response=content) from e
    if not isinstance(data, dict):
        raise VisionParseError("vision content is not a JSON object", raw_response=content)

    raw_counter = _text_or_none(data.get("digitalCounter"))
    counter_value = extractor.extract(raw_counter) if raw_counter else None

    tier_text = (_text_or_none(data.get("confidence")) or "low").lower()
    try:
        tier = ConfidenceTier(tier_text)
    except ValueError:
        tier = ConfidenceTier.LOW

    return VisionResult(
        code_payload=_text_or_none(data.get("qrCodeData")),
        counter_value=counter_value,
        raw_counter=raw_counter,
        location=_text_or_none(data.get("location")),
        machine=_text_or_none(data.get("machine")),
        monetary_value=_text_or_none(data.get("monetaryValue")),
        confidence_tier=tier,
        raw_text=_text_or_none(data.get("rawText")),
    )


class CloudVisionAdapter:
    """
    Hosted vision model client with a call cooldown.

    Attributes:
        endpoint: Chat-completions URL
        model: Model name
        cooldown_seconds: Minimum spacing between calls
        timeout_seconds: HTTP timeout per call
        jpeg_quality: JPEG quality for the uploaded frame

    Example:
        adapter = CloudVisionAdapter(api_key=settings.vision.api_key)
        if adapter.ready_for_call():
            result = await adapter.analyze(frame)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        endpoint: str = DEFAULT_ENDPOINT,
        model: str = DEFAULT_MODEL,
        cooldown_seconds: float = 3.0,
        timeout_seconds: float = 15.0,
        jpeg_quality: int = 80,
        temperature: float = 0.1,
        max_tokens: int = 500,
        extractor: Optional[ValueExtractor] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize vision adapter.

        Args:
            api_key: Bearer token (calls fail with VisionCredentialError if empty)
            endpoint: Chat-completions URL
            model: Model name
            cooldown_seconds: Minimum spacing between calls
            timeout_seconds: HTTP timeout per call
            jpeg_quality: JPEG quality (1-100)
            temperature: Sampling temperature
            max_tokens: Response token cap
            extractor: Counter plausibility bounds
            session: HTTP session (a new requests.Session if None)
            clock: Monotonic clock (injectable for tests)
        """
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative")
        if not 1 <= jpeg_quality <= 100:
            raise ValueError("jpeg_quality must be in [1, 100]")

        self.api_key = api_key
        self.endpoint = endpoint
        self.model = model
        self.cooldown_seconds = cooldown_seconds
        self.timeout_seconds = timeout_seconds
        self.jpeg_quality = jpeg_quality
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.extractor = extractor or ValueExtractor()

        self._session = session or requests.Session()
        self._clock = clock
        self._last_call: Optional[float] = None
        self._api_call_count: int = 0
        self._api_error_count: int = 0

        logger.info(
            f"CloudVisionAdapter initialized: model={model}, "
            f"cooldown={cooldown_seconds}s, credentials={'set' if api_key else 'missing'}"
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key)

    def ready_for_call(self) -> bool:
        """Whether a call now would pass the credential and cooldown checks."""
        return self.has_credentials and self._cooldown_remaining() <= 0

    def _cooldown_remaining(self) -> float:
        if self._last_call is None:
            return 0.0
        return self.cooldown_seconds - (self._clock() - self._last_call)

    def build_request(self, image_b64: str) -> Dict[str, Any]:
        """Chat-completions body for one frame."""
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:image/jpeg;base64,{image_b64}"},
                        },
                    ],
                }
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def _post(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """Blocking HTTP call (run in a worker thread)."""
        try:
            response = self._session.post(
                self.endpoint,
                json=body,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as e:
            raise VisionNetworkError(f"vision request failed: {e}") from e

        if not 200 <= response.status_code < 300:
            raise VisionNetworkError(
                f"vision request returned HTTP {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise VisionParseError(
                f"vision response is not JSON: {e}", raw_response=response.text
            ) from e

    async def analyze(self, frame: Frame) -> VisionResult:
        """
        Read code data and counter value from a frame.

        Args:
            frame: Frame to analyze

        Returns:
            VisionResult

        Raises:
            VisionCredentialError: If no API key is configured
            VisionCooldownError: If called inside the cooldown window
            VisionNetworkError: On transport failure or non-2xx status
            VisionParseError: If the response is not the expected JSON
            VisionError: On any other failure, e.g. the frame cannot be encoded
        """
        if not self.has_credentials:
            raise VisionCredentialError("no API key configured for cloud vision")

        remaining = self._cooldown_remaining()
        if remaining > 0:
            raise VisionCooldownError(f"vision cooldown active ({remaining:.2f}s left)")

        self._last_call = self._clock()
        self._api_call_count += 1

        try:
            image_b64 = await asyncio.to_thread(
                encode_frame_jpeg_b64, frame, self.jpeg_quality
            )
            envelope = await asyncio.to_thread(self._post, self.build_request(image_b64))

            try:
                content = envelope["choices"][0]["message"]["content"]
            except (KeyError, IndexError, TypeError) as e:
                raise VisionParseError(
                    "unexpected vision response envelope",
                    raw_response=json.dumps(envelope)[:500],
                ) from e

            result = parse_vision_content(content, self.extractor)
        except Exception as e:
            self._api_error_count += 1
            logger.error(
                f"Vision API error (frame={frame.frame_id}): {e}. "
                f"Total errors: {self._api_error_count}"
            )
            if isinstance(e, VisionError):
                raise
            raise VisionError(f"vision call failed: {e}") from e

        logger.info(
            f"Vision API: frame={frame.frame_id}, counter={result.counter_value}, "
            f"code={'yes' if result.code_payload else 'no'}, "
            f"confidence={result.confidence_tier.value}"
        )
        return result

    def get_metrics(self) -> dict:
        """Get adapter metrics for observability."""
        return {
            "model": self.model,
            "credentials": self.has_credentials,
            "api_calls": self._api_call_count,
            "api_errors": self._api_error_count,
            "cooldown_remaining": max(0.0, round(self._cooldown_remaining(), 3)),
        }
