"""
Code Decoder Tests
==================

Tests for the strategy-driven code decoder adapter.
"""

import json

import pytest

from conftest import CHANGER_PAYLOAD, FakeDecoderBackend
from counter_scan.decoding import CodeDecoderAdapter, DecodeStrategy


def only_inverted_gray(image):
    """White frame: only the inverted luminance image is black."""
    if image.ndim == 2 and int(image.flat[0]) == 0:
        return "INVERTED-GRAY"
    return None


class TestCodeDecoderAdapter:
    """Tests for CodeDecoderAdapter."""

    def test_no_code_returns_none(self, make_frame, empty_backend):
        decoder = CodeDecoderAdapter(backend=empty_backend)
        assert decoder.decode(make_frame()) is None

    def test_first_strategy_hit(self, make_frame, code_backend):
        reading = CodeDecoderAdapter(backend=code_backend).decode(make_frame())

        assert reading.payload == CHANGER_PAYLOAD
        assert reading.strategy == "direct"
        assert reading.source == "code-decoder"
        assert len(reading.polygon) == 4
        assert reading.embedded_counter == 500000
        assert len(code_backend.calls) == 1

    def test_attempts_are_not_repeated(self, make_frame):
        backend = FakeDecoderBackend(only_inverted_gray)
        reading = CodeDecoderAdapter(backend=backend).decode(make_frame())

        assert reading.payload == "INVERTED-GRAY"
        assert reading.strategy == "grayscale"
        # color, inverted color, gray, inverted gray; no_inversion reuses color
        assert backend.calls == [(3, 255), (3, 0), (2, 255), (2, 0)]

    def test_no_inversion_strategy_never_inverts(self, make_frame):
        backend = FakeDecoderBackend(only_inverted_gray)
        decoder = CodeDecoderAdapter(backend=backend, strategies=[DecodeStrategy.NO_INVERSION])

        assert decoder.decode(make_frame()) is None
        assert backend.calls == [(3, 255)]

    def test_collect_all_prefers_json(self, make_frame):
        json_payload = json.dumps({"location": "Dover", "counterValue": 963373})

        def answer(image):
            return json_payload if image.ndim == 2 else "plain text"

        first = CodeDecoderAdapter(backend=FakeDecoderBackend(answer)).decode(make_frame())
        assert first.payload == "plain text"

        collected = CodeDecoderAdapter(
            backend=FakeDecoderBackend(answer),
            collect_all=True,
        ).decode(make_frame())
        assert collected.payload == json_payload
        assert collected.strategy == "grayscale"
        assert collected.parsed.counter_value == 963373

    def test_backend_errors_are_treated_as_no_code(self, make_frame):
        def explode(image):
            raise RuntimeError("backend crashed")

        decoder = CodeDecoderAdapter(backend=FakeDecoderBackend(explode))

        assert decoder.decode(make_frame()) is None
        assert decoder.get_metrics()["failure_count"] == 4

    def test_strategies_from_strings(self, empty_backend):
        decoder = CodeDecoderAdapter(backend=empty_backend, strategies=["grayscale", "direct"])
        assert decoder.strategies == (DecodeStrategy.GRAYSCALE, DecodeStrategy.DIRECT)

    def test_empty_strategy_list_rejected(self, empty_backend):
        with pytest.raises(ValueError):
            CodeDecoderAdapter(backend=empty_backend, strategies=[])

    def test_frame_is_not_modified(self, make_frame, code_backend):
        frame = make_frame(color=(12, 34, 56, 255))
        before = frame.pixels
        CodeDecoderAdapter(backend=code_backend).decode(frame)
        assert frame.pixels == before
