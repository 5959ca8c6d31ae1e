"""
Test Configuration
==================

Pytest fixtures and fakes for the counter scan pipeline.
"""

from typing import Callable, List, Optional, Tuple

import numpy as np
import pytest

from counter_scan.models.region import RegionDescriptor
from counter_scan.stream.frame import Frame


CHANGER_PAYLOAD = "Dover, changer 2, 500000 = $500"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeDecoderBackend:
    """
    Scripted decoder backend.

    ``answer`` decides per image; every call is recorded as
    (ndim, first pixel value).
    """

    def __init__(self, answer: Optional[Callable[[np.ndarray], Optional[str]]] = None) -> None:
        self.answer = answer or (lambda image: None)
        self.calls: List[Tuple[int, int]] = []

    def detect(self, image: np.ndarray):
        self.calls.append((image.ndim, int(image.flat[0])))
        payload = self.answer(image)
        if payload is None:
            return None
        return payload, [(1.0, 2.0), (30.0, 2.0), (30.0, 31.0), (1.0, 31.0)]


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, status_code: int = 200, payload=None, text: str = "") -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """Records posts and replays scripted responses or errors."""

    def __init__(self, responses=None) -> None:
        self.responses = list(responses or [])
        self.requests: List[dict] = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def chat_response(content: str, status_code: int = 200) -> FakeResponse:
    """Chat-completions envelope around a message content string."""
    return FakeResponse(
        status_code=status_code,
        payload={"choices": [{"message": {"role": "assistant", "content": content}}]},
    )


@pytest.fixture
def make_frame() -> Callable[..., Frame]:
    """Factory for solid-colour RGBA frames."""

    def _make(
        width: int = 64,
        height: int = 48,
        color: Tuple[int, int, int, int] = (255, 255, 255, 255),
        frame_id: int = 0,
        timestamp: float = 1707321234.5,
    ) -> Frame:
        rgba = np.empty((height, width, 4), dtype=np.uint8)
        rgba[:, :] = color
        return Frame.from_array(rgba, timestamp=timestamp, frame_id=frame_id)

    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def two_regions() -> List[RegionDescriptor]:
    """Two overlapping display regions."""
    return [
        RegionDescriptor(name="primary_display", x=0.3, y=0.2, width=0.4, height=0.3),
        RegionDescriptor(name="full_center", x=0.2, y=0.15, width=0.6, height=0.4),
    ]


@pytest.fixture
def code_backend() -> FakeDecoderBackend:
    """Backend that finds the changer label in every image."""
    return FakeDecoderBackend(lambda image: CHANGER_PAYLOAD)


@pytest.fixture
def empty_backend() -> FakeDecoderBackend:
    """Backend that never finds a code."""
    return FakeDecoderBackend()
