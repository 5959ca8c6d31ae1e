"""
Orchestrator Tests
==================

End-to-end scan cycles with fake decoder, mock OCR and fake vision.
"""

import asyncio
import json
import logging

import pytest

from conftest import FakeDecoderBackend, FakeResponse, FakeSession, chat_response
from counter_scan.decoding import CodeDecoderAdapter
from counter_scan.errors import EngineFailureError
from counter_scan.models import CounterSource, ReasonCode, ScanPhase, ScanStatus
from counter_scan.models.region import RegionDescriptor
from counter_scan.ocr import MockOcrEngine
from counter_scan.pipeline import ScanOrchestrator
from counter_scan.vision import CloudVisionAdapter


STABLE_READINGS = {
    "primary_display": [("963373", 82.0)],
    "full_center": [("963373", 74.0), ("96 3373", 40.0)],
}


def make_orchestrator(backend, regions, clock, engine=None, **kwargs):
    return ScanOrchestrator(
        engine=engine or MockOcrEngine(readings=STABLE_READINGS),
        decoder=CodeDecoderAdapter(backend=backend),
        regions=regions,
        clock=clock,
        **kwargs,
    )


class GatedOcrEngine(MockOcrEngine):
    """Mock engine whose recognition waits for a release signal."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.gate = None

    async def recognize(self, cropped):
        await self.gate.wait()
        return await super().recognize(cropped)


class FailingInitEngine(MockOcrEngine):
    async def initialize(self):
        raise EngineFailureError("tesseract binary not found")


class TestScanCycle:
    """Tests for completed scan cycles and fusion."""

    def test_stable_ocr_beats_code_counter(self, make_frame, code_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock)

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.status == ScanStatus.COMPLETED
        assert outcome.reason == ReasonCode.COUNTER_READ
        assert outcome.result.counter_value == 963373
        assert outcome.result.counter_source == CounterSource.OCR
        assert outcome.result.code_reading.payload.startswith("Dover")
        assert orchestrator.last_result == outcome.result
        assert orchestrator.phase == ScanPhase.IDLE

    def test_code_counter_when_ocr_unstable(self, make_frame, code_backend, two_regions, fake_clock):
        engine = MockOcrEngine(readings={"primary_display": [("963373", 90.0)]})
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_value == 500000
        assert outcome.result.counter_source == CounterSource.CODE
        assert outcome.result.confidence == 100.0

    def test_multi_frame_agreement(self, make_frame, empty_backend, fake_clock):
        regions = [RegionDescriptor(name="primary_display", x=0.3, y=0.2, width=0.4, height=0.3)]
        engine = MockOcrEngine(readings={"primary_display": [("963373", 80.0)]})
        orchestrator = make_orchestrator(empty_backend, regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            first = await orchestrator.on_frame(make_frame(frame_id=1))
            second = await orchestrator.on_frame(make_frame(frame_id=2))
            return first, second

        first, second = asyncio.run(run())

        # One region: the second frame in the buffer supplies the agreeing reading
        assert first.reason == ReasonCode.NO_SIGNAL
        assert second.result.counter_value == 963373

    def test_no_signal(self, make_frame, empty_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(
            empty_backend, two_regions, fake_clock, engine=MockOcrEngine()
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.status == ScanStatus.NO_RESULT
        assert outcome.reason == ReasonCode.NO_SIGNAL
        assert outcome.result is None
        assert orchestrator.cooldown_remaining() == 0.0

    def test_engine_not_ready_skips_recognition(self, make_frame, code_backend, two_regions, fake_clock):
        engine = MockOcrEngine(readings=STABLE_READINGS)
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        outcome = asyncio.run(orchestrator.on_frame(make_frame()))

        assert engine.recognize_count == 0
        assert outcome.result.counter_source == CounterSource.CODE
        assert orchestrator.get_metrics()["graph"]["skipped_recognitions"] == 1

    def test_failed_start_keeps_scanning_codes(self, make_frame, code_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(
            code_backend, two_regions, fake_clock, engine=FailingInitEngine()
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert not orchestrator.is_ready
        assert outcome.result.counter_value == 500000

    def test_invalid_region_is_isolated(self, make_frame, empty_backend, two_regions, fake_clock):
        regions = two_regions + [
            RegionDescriptor(name="overflow", x=0.9, y=0.9, width=0.5, height=0.5),
        ]
        orchestrator = make_orchestrator(empty_backend, regions, fake_clock)

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_value == 963373
        assert orchestrator.get_metrics()["graph"]["failed_observations"] == 1

    def test_engine_failure_is_isolated(self, make_frame, empty_backend, fake_clock):
        regions = [
            RegionDescriptor(name="primary_display", x=0.3, y=0.2, width=0.4, height=0.3),
            RegionDescriptor(name="full_center", x=0.2, y=0.15, width=0.6, height=0.4),
            RegionDescriptor(name="top_area", x=0.2, y=0.1, width=0.6, height=0.3),
        ]
        engine = MockOcrEngine(
            readings={"primary_display": [("4521", 70.0)], "full_center": [("4521", 65.0)]},
            failing_regions={"top_area"},
        )
        orchestrator = make_orchestrator(empty_backend, regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_value == 4521

    def test_vision_fallback(self, make_frame, empty_backend, two_regions, fake_clock):
        answer = {"qrCodeData": None, "digitalCounter": "963373", "confidence": "medium"}
        vision = CloudVisionAdapter(
            api_key="sk-test",
            session=FakeSession([chat_response(json.dumps(answer))]),
            clock=fake_clock,
        )
        orchestrator = make_orchestrator(
            empty_backend, two_regions, fake_clock, engine=MockOcrEngine(), vision=vision
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_source == CounterSource.VISION
        assert outcome.result.counter_value == 963373
        assert outcome.result.confidence == 70.0

    def test_vision_error_is_not_fatal(self, make_frame, code_backend, two_regions, fake_clock):
        vision = CloudVisionAdapter(
            api_key="sk-test",
            session=FakeSession([chat_response("no json here")]),
            clock=fake_clock,
        )
        orchestrator = make_orchestrator(
            code_backend, two_regions, fake_clock, engine=MockOcrEngine(), vision=vision
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_source == CounterSource.CODE
        assert orchestrator.get_metrics()["graph"]["vision_failures"] == 1


class TestAdmission:
    """Tests for cooldown, in-flight and stopped triggers."""

    def test_cooldown_suppresses_second_trigger(self, make_frame, code_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, cooldown_seconds=2.0)

        async def run():
            await orchestrator.start()
            first = await orchestrator.on_frame(make_frame(frame_id=1))
            fake_clock.advance(1.0)
            second = await orchestrator.on_frame(make_frame(frame_id=2))
            fake_clock.advance(1.5)
            third = await orchestrator.on_frame(make_frame(frame_id=3))
            return first, second, third

        first, second, third = asyncio.run(run())

        assert first.status == ScanStatus.COMPLETED
        assert second.status == ScanStatus.NO_RESULT
        assert second.reason == ReasonCode.COOLDOWN_ACTIVE
        assert third.status == ScanStatus.COMPLETED
        assert len(orchestrator.history) == 2

    def test_cooldown_is_per_target(self, make_frame, code_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock)

        async def run():
            await orchestrator.start()
            first = await orchestrator.on_frame(make_frame(), target="dover-1")
            other = await orchestrator.on_frame(make_frame(), target="dover-2")
            return first, other

        first, other = asyncio.run(run())

        assert first.has_result
        assert other.has_result

    def test_reset_clears_cooldowns(self, make_frame, code_backend, two_regions, fake_clock):
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock)

        async def run():
            await orchestrator.start()
            await orchestrator.on_frame(make_frame())
            orchestrator.reset()
            return await orchestrator.on_frame(make_frame())

        assert asyncio.run(run()).has_result
        assert orchestrator.buffer.size == 1

    def test_trigger_during_cycle_is_declined(self, make_frame, code_backend, two_regions, fake_clock):
        engine = GatedOcrEngine(readings=STABLE_READINGS)
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        async def run():
            engine.gate = asyncio.Event()
            await orchestrator.start()
            task = asyncio.create_task(orchestrator.on_frame(make_frame(frame_id=1)))
            await asyncio.sleep(0)
            assert orchestrator.in_flight
            declined = await orchestrator.on_frame(make_frame(frame_id=2))
            engine.gate.set()
            completed = await task
            return declined, completed

        declined, completed = asyncio.run(run())

        assert declined.reason == ReasonCode.CYCLE_IN_FLIGHT
        assert completed.has_result
        assert orchestrator.buffer.total_pushed == 1

    def test_stop_waits_for_in_flight_cycle(self, make_frame, code_backend, two_regions, fake_clock):
        engine = GatedOcrEngine(readings=STABLE_READINGS)
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        async def run():
            engine.gate = asyncio.Event()
            await orchestrator.start()
            task = asyncio.create_task(orchestrator.on_frame(make_frame()))
            while orchestrator.phase != ScanPhase.RECOGNIZING:
                await asyncio.sleep(0.01)
            stopper = asyncio.create_task(orchestrator.stop())
            await asyncio.sleep(0)
            engine.gate.set()
            await stopper
            return await task

        outcome = asyncio.run(run())

        assert outcome.result.counter_source == CounterSource.OCR
        assert not engine.is_ready()

    def test_stop_is_idempotent(self, make_frame, code_backend, two_regions, fake_clock):
        engine = MockOcrEngine(readings=STABLE_READINGS)
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            await orchestrator.stop()
            await orchestrator.stop()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.reason == ReasonCode.SCANNER_STOPPED
        assert not engine.is_ready()
        assert engine._terminate_count == 1

    def test_start_is_idempotent(self, code_backend, two_regions, fake_clock):
        engine = MockOcrEngine()
        orchestrator = make_orchestrator(code_backend, two_regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            await orchestrator.start()

        asyncio.run(run())
        assert orchestrator.is_running
        assert orchestrator.is_ready

    def test_invalid_construction(self, code_backend, two_regions, fake_clock):
        with pytest.raises(ValueError):
            make_orchestrator(code_backend, two_regions, fake_clock, buffer_capacity=0)
        with pytest.raises(ValueError):
            make_orchestrator(code_backend, [], fake_clock)


class TestMalformedInputs:
    """Tests for inputs that must not abort a cycle."""

    def test_negative_code_counter_is_ignored(self, make_frame, fake_clock):
        backend = FakeDecoderBackend(lambda image: '{"counterValue": -5}')
        orchestrator = make_orchestrator(
            backend, [RegionDescriptor(name="primary_display", x=0.3, y=0.2, width=0.4, height=0.3)],
            fake_clock, engine=MockOcrEngine(),
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.status == ScanStatus.COMPLETED
        assert outcome.reason == ReasonCode.CODE_ONLY
        assert outcome.result.counter_value is None
        assert outcome.result.code_reading.payload == '{"counterValue": -5}'

    def test_vision_content_parts_are_not_fatal(self, make_frame, code_backend, two_regions, fake_clock):
        envelope = {"choices": [{"message": {"content": [{"type": "text", "text": "{}"}]}}]}
        vision = CloudVisionAdapter(
            api_key="sk-test",
            session=FakeSession([FakeResponse(payload=envelope)]),
            clock=fake_clock,
        )
        orchestrator = make_orchestrator(
            code_backend, two_regions, fake_clock, engine=MockOcrEngine(), vision=vision
        )

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.result.counter_source == CounterSource.CODE
        assert orchestrator.get_metrics()["graph"]["vision_failures"] == 1

    def test_very_long_ocr_text_is_not_fatal(self, make_frame, empty_backend, two_regions, fake_clock):
        engine = MockOcrEngine(default=("1" * 5000, 90.0))
        orchestrator = make_orchestrator(empty_backend, two_regions, fake_clock, engine=engine)

        async def run():
            await orchestrator.start()
            return await orchestrator.on_frame(make_frame())

        outcome = asyncio.run(run())

        assert outcome.status == ScanStatus.NO_RESULT
        assert outcome.reason == ReasonCode.NO_SIGNAL

    def test_invalid_region_logged_once_per_frame_size(
        self, make_frame, empty_backend, two_regions, fake_clock, caplog
    ):
        regions = two_regions + [
            RegionDescriptor(name="overflow", x=0.9, y=0.9, width=0.5, height=0.5),
        ]
        orchestrator = make_orchestrator(empty_backend, regions, fake_clock)

        async def run():
            await orchestrator.start()
            await orchestrator.on_frame(make_frame(frame_id=1))
            fake_clock.advance(5.0)
            await orchestrator.on_frame(make_frame(frame_id=2))

        with caplog.at_level(logging.ERROR, logger="counter_scan.pipeline.graph"):
            asyncio.run(run())

        config_errors = [
            r for r in caplog.records
            if r.levelno == logging.ERROR and "overflow" in r.getMessage()
        ]
        assert len(config_errors) == 1
        # Second cycle sees two buffered frames
        assert orchestrator.get_metrics()["graph"]["failed_observations"] == 3
