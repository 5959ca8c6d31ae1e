"""
Scan Orchestrator
=================

Entry point for frame triggers: admission control around the cycle graph.

For each trigger the orchestrator decides, without awaiting anything,
whether a cycle may run:

    stopped            → no_result / SCANNER_STOPPED
    cycle in flight    → no_result / CYCLE_IN_FLIGHT  (not queued)
    target cooling down → no_result / COOLDOWN_ACTIVE

Otherwise it runs the cycle graph and wraps the fusion decision into a
ScanOutcome. A cycle that found neither a code nor a counter returns
no_result / NO_SIGNAL and does not start a cooldown.

Cooldown:
    Per target, measured on a monotonic clock from the last cycle that
    produced a result. It is a gate, not a lock: declined triggers
    return immediately.

Lifecycle:
    await start()   → initializes the OCR engine (idempotent)
    await stop()    → waits (bounded) for an in-flight cycle, then
                      terminates the engine (idempotent)
"""

import asyncio
import logging
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Optional, Sequence, Tuple

from counter_scan.decoding.code_decoder import CodeDecoderAdapter
from counter_scan.errors import EngineFailureError
from counter_scan.models.output import ScanOutcome, ScanPhase, ScanResult, ScanStatus
from counter_scan.models.reason_codes import ReasonCode
from counter_scan.models.region import RegionDescriptor, default_regions
from counter_scan.ocr.engine import OcrEngine
from counter_scan.ocr.value_extractor import ValueExtractor
from counter_scan.pipeline.fusion import FusionPolicy
from counter_scan.pipeline.graph import ScanCycleGraph
from counter_scan.signals.stability import StabilityAggregator
from counter_scan.stream.buffer import FrameRingBuffer
from counter_scan.stream.frame import Frame
from counter_scan.vision.cloud_vision import CloudVisionAdapter


logger = logging.getLogger(__name__)


class ScanOrchestrator:
    """
    Owns the per-scanner state and runs scan cycles.

    Attributes:
        engine: OCR engine (owned: started and terminated here)
        cooldown_seconds: Per-target gap after a cycle with a result
        stop_timeout: Seconds stop() waits for an in-flight cycle

    Example:
        orchestrator = ScanOrchestrator(engine=TesseractOcrEngine())
        await orchestrator.start()
        outcome = await orchestrator.on_frame(frame, target="dover-2")
        if outcome.has_result:
            print(outcome.result.counter_value)
        await orchestrator.stop()
    """

    def __init__(
        self,
        engine: OcrEngine,
        decoder: Optional[CodeDecoderAdapter] = None,
        regions: Optional[Sequence[RegionDescriptor]] = None,
        buffer_capacity: int = 3,
        cooldown_seconds: float = 2.0,
        max_workers: int = 4,
        stability_threshold: int = 2,
        value_extractor: Optional[ValueExtractor] = None,
        vision: Optional[CloudVisionAdapter] = None,
        vision_timeout: float = 20.0,
        history_size: int = 10,
        stop_timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize orchestrator.

        Args:
            engine: OCR engine
            decoder: Code decoder (default strategies if None)
            regions: OCR regions (four default regions if None)
            buffer_capacity: Frames kept for multi-frame recognition
            cooldown_seconds: Per-target cooldown after a result
            max_workers: Concurrent recognition calls
            stability_threshold: Agreeing observations for a stable value
            value_extractor: OCR text to counter value
            vision: Vision fallback (disabled if None)
            vision_timeout: Seconds to wait for the vision call
            history_size: Results kept in history
            stop_timeout: Seconds stop() waits for an in-flight cycle
            clock: Monotonic clock (injectable for tests)
        """
        if cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be non-negative")
        if history_size < 1:
            raise ValueError("history_size must be at least 1")

        self.engine = engine
        self.cooldown_seconds = cooldown_seconds
        self.stop_timeout = stop_timeout
        self._clock = clock

        self.buffer = FrameRingBuffer(capacity=buffer_capacity)
        self.graph = ScanCycleGraph(
            buffer=self.buffer,
            decoder=decoder or CodeDecoderAdapter(),
            engine=engine,
            regions=list(regions) if regions is not None else default_regions(),
            value_extractor=value_extractor,
            aggregator=StabilityAggregator(threshold=stability_threshold),
            fusion=FusionPolicy(),
            vision=vision,
            max_workers=max_workers,
            vision_timeout=vision_timeout,
            on_phase=self._set_phase,
        )

        self._phase: ScanPhase = ScanPhase.IDLE
        self._started: bool = False
        self._stopped: bool = False
        self._in_flight: bool = False
        self._cycle_done: Optional[asyncio.Event] = None
        self._last_result_at: Dict[str, float] = {}
        self._history: Deque[ScanResult] = deque(maxlen=history_size)

        self._cycles: int = 0
        self._declined: Dict[str, int] = {}
        self._reasons: Dict[str, int] = {}

        logger.info(
            f"ScanOrchestrator initialized: buffer={buffer_capacity}, "
            f"cooldown={cooldown_seconds}s, workers={max_workers}, "
            f"threshold={stability_threshold}"
        )

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    def _set_phase(self, phase: ScanPhase) -> None:
        self._phase = phase

    @property
    def phase(self) -> ScanPhase:
        """Current cycle phase (IDLE between cycles)."""
        return self._phase

    @property
    def is_running(self) -> bool:
        return self._started and not self._stopped

    @property
    def is_ready(self) -> bool:
        """Whether the OCR engine can recognize."""
        return self.engine.is_ready()

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    @property
    def last_result(self) -> Optional[ScanResult]:
        return self._history[-1] if self._history else None

    @property
    def history(self) -> Tuple[ScanResult, ...]:
        """Recent results, oldest first."""
        return tuple(self._history)

    def cooldown_remaining(self, target: str = "default") -> float:
        """Seconds until ``target`` accepts a new cycle (0 if it does now)."""
        last = self._last_result_at.get(target)
        if last is None:
            return 0.0
        return max(0.0, self.cooldown_seconds - (self._clock() - last))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """
        Initialize the OCR engine.

        An engine that fails to initialize is logged; the orchestrator
        still runs and cycles skip recognition.
        """
        if self.is_running:
            return
        self._started = True
        self._stopped = False

        try:
            await self.engine.initialize()
        except EngineFailureError as e:
            logger.error(f"OCR engine failed to initialize, recognition disabled: {e}")
            return

        logger.info("ScanOrchestrator started")

    async def stop(self) -> None:
        """Wait for an in-flight cycle (bounded) and terminate the engine."""
        if self._stopped:
            return
        self._stopped = True

        if self._in_flight and self._cycle_done is not None:
            try:
                await asyncio.wait_for(self._cycle_done.wait(), timeout=self.stop_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    f"In-flight cycle did not finish within {self.stop_timeout}s, "
                    f"terminating engine anyway"
                )

        await self.engine.terminate()
        logger.info(f"ScanOrchestrator stopped after {self._cycles} cycles")

    def reset(self) -> None:
        """Clear the frame buffer and every cooldown."""
        dropped = self.buffer.clear()
        self._last_result_at.clear()
        logger.info(f"ScanOrchestrator reset (dropped {dropped} buffered frames)")

    # -------------------------------------------------------------------------
    # Triggers
    # -------------------------------------------------------------------------

    def _decline(self, reason: ReasonCode) -> ScanOutcome:
        self._declined[reason.value] = self._declined.get(reason.value, 0) + 1
        return ScanOutcome.declined(reason)

    async def on_frame(self, frame: Frame, target: str = "default") -> ScanOutcome:
        """
        Handle one frame trigger.

        Args:
            frame: Newest frame
            target: Logical scan target (cooldown key)

        Returns:
            ScanOutcome; completed outcomes carry a ScanResult
        """
        if self._stopped:
            return self._decline(ReasonCode.SCANNER_STOPPED)
        if self._in_flight:
            return self._decline(ReasonCode.CYCLE_IN_FLIGHT)
        if self.cooldown_remaining(target) > 0:
            return self._decline(ReasonCode.COOLDOWN_ACTIVE)

        self._in_flight = True
        self._cycle_done = asyncio.Event()
        try:
            state = await self.graph.run(frame, target)
        finally:
            self._in_flight = False
            self._phase = ScanPhase.IDLE
            self._cycle_done.set()

        self._cycles += 1
        decision = state["decision"]
        self._reasons[decision.reason.value] = self._reasons.get(decision.reason.value, 0) + 1

        if decision.reason == ReasonCode.NO_SIGNAL:
            logger.debug(f"Cycle {self._cycles} [{target}]: no signal")
            return ScanOutcome(status=ScanStatus.NO_RESULT, reason=ReasonCode.NO_SIGNAL)

        result = ScanResult(
            code_reading=state.get("code_reading"),
            counter_value=decision.counter_value,
            counter_source=decision.counter_source,
            confidence=decision.confidence,
            timestamp=time.time(),
            scan_id=uuid.uuid4().hex,
        )
        self._last_result_at[target] = self._clock()
        self._history.append(result)

        logger.info(
            f"Cycle {self._cycles} [{target}]: reason={decision.reason.value}, "
            f"counter={result.counter_value}, "
            f"source={result.counter_source.value if result.counter_source else None}, "
            f"conf={result.confidence:.1f}, code={'yes' if result.code_reading else 'no'}"
        )
        return ScanOutcome(status=ScanStatus.COMPLETED, reason=decision.reason, result=result)

    def get_metrics(self) -> dict:
        """Get orchestrator metrics for observability."""
        return {
            "phase": self._phase.value,
            "running": self.is_running,
            "engine_ready": self.is_ready,
            "cycles": self._cycles,
            "reasons": dict(self._reasons),
            "declined": dict(self._declined),
            "history_size": len(self._history),
            "buffer": self.buffer.metrics(),
            "graph": self.graph.get_metrics(),
            "decoder": self.graph.decoder.get_metrics(),
            "regions": self.graph.region_extractor.get_metrics(),
            "stability": self.graph.aggregator.get_metrics(),
        }
