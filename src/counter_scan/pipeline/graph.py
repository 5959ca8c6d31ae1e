"""
Scan Cycle Graph
================

LangGraph state machine for one recognition cycle.

LangGraph is used for CONTROL FLOW only: every node is deterministic
apart from the optional vision call, and no node reasons with a model.

Graph Structure:
    START → buffer → decode → recognize → aggregate → fuse → END

    buffer:    push the triggering frame, snapshot the ring buffer
    decode:    run the code decoder on the newest frame
    recognize: OCR every region x buffered frame (bounded fan-out),
               concurrently with the optional vision fallback
    aggregate: pick the stable OCR value
    fuse:      apply the fusion policy

Design Rules:
    - Every recognition task is joined before aggregation
    - A failing region or frame never fails the cycle
    - An engine that is not ready is skipped, never awaited
    - Vision errors and timeouts are logged and treated as "no vision"
"""

import asyncio
import logging
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Sequence, Tuple, TypedDict

from langgraph.graph import END, StateGraph

from counter_scan.decoding.code_decoder import CodeDecoderAdapter
from counter_scan.errors import InvalidRegionError, ScanError, VisionError
from counter_scan.models.output import ScanPhase
from counter_scan.models.readings import CodeReading, OcrObservation, StableReading
from counter_scan.models.region import RegionDescriptor
from counter_scan.models.vision import VisionResult
from counter_scan.ocr.engine import OcrEngine
from counter_scan.ocr.value_extractor import ValueExtractor
from counter_scan.pipeline.fusion import FusionDecision, FusionPolicy
from counter_scan.regions.extractor import RegionExtractor
from counter_scan.signals.stability import StabilityAggregator
from counter_scan.stream.buffer import FrameRingBuffer
from counter_scan.stream.frame import Frame
from counter_scan.vision.cloud_vision import CloudVisionAdapter


logger = logging.getLogger(__name__)


class ScanCycleState(TypedDict, total=False):
    """
    State passed through the cycle graph.

    Attributes:
        frame: Triggering frame
        target: Logical scan target
        frames: Ring buffer snapshot, oldest first
        code_reading: Decoder output
        observations: One entry per recognized region x frame
        vision: Vision fallback output
        stable: Stable OCR value
        decision: Fusion output
    """
    frame: Frame
    target: str
    frames: Tuple[Frame, ...]
    code_reading: Optional[CodeReading]
    observations: List[OcrObservation]
    vision: Optional[VisionResult]
    stable: Optional[StableReading]
    decision: Optional[FusionDecision]


class ScanCycleGraph:
    """
    Compiled cycle graph plus the components its nodes call.

    The graph holds no per-cycle state between runs; the ring buffer is
    the only state that carries over from one cycle to the next.
    """

    def __init__(
        self,
        buffer: FrameRingBuffer,
        decoder: CodeDecoderAdapter,
        engine: OcrEngine,
        regions: Sequence[RegionDescriptor],
        region_extractor: Optional[RegionExtractor] = None,
        value_extractor: Optional[ValueExtractor] = None,
        aggregator: Optional[StabilityAggregator] = None,
        fusion: Optional[FusionPolicy] = None,
        vision: Optional[CloudVisionAdapter] = None,
        max_workers: int = 4,
        vision_timeout: float = 20.0,
        on_phase: Optional[Callable[[ScanPhase], None]] = None,
    ) -> None:
        """
        Initialize the cycle graph.

        Args:
            buffer: Ring buffer shared with the orchestrator
            decoder: Code decoder
            engine: OCR engine (may not be ready yet)
            regions: Regions recognized in every buffered frame
            region_extractor: Crop helper
            value_extractor: OCR text to counter value
            aggregator: Stability aggregator
            fusion: Fusion policy
            vision: Vision fallback (disabled if None)
            max_workers: Concurrent recognition calls
            vision_timeout: Seconds to wait for the vision call
            on_phase: Called on every phase change
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        if not regions:
            raise ValueError("at least one region is required")

        self.buffer = buffer
        self.decoder = decoder
        self.engine = engine
        self.regions: Tuple[RegionDescriptor, ...] = tuple(regions)
        self.region_extractor = region_extractor or RegionExtractor()
        self.value_extractor = value_extractor or ValueExtractor()
        self.aggregator = aggregator or StabilityAggregator()
        self.fusion = fusion or FusionPolicy()
        self.vision = vision
        self.max_workers = max_workers
        self.vision_timeout = vision_timeout
        self._on_phase = on_phase

        self._skipped_recognitions: int = 0
        self._failed_observations: int = 0
        self._vision_failures: int = 0
        self._invalid_by_size: Dict[Tuple[int, int], FrozenSet[str]] = {}

        self._graph = self._build_graph()

        logger.info(
            f"ScanCycleGraph initialized: regions={[r.name for r in self.regions]}, "
            f"max_workers={max_workers}, vision={'on' if vision else 'off'}"
        )

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(ScanCycleState)

        workflow.add_node("buffer", self._buffer_node)
        workflow.add_node("decode", self._decode_node)
        workflow.add_node("recognize", self._recognize_node)
        workflow.add_node("aggregate", self._aggregate_node)
        workflow.add_node("fuse", self._fuse_node)

        workflow.set_entry_point("buffer")
        workflow.add_edge("buffer", "decode")
        workflow.add_edge("decode", "recognize")
        workflow.add_edge("recognize", "aggregate")
        workflow.add_edge("aggregate", "fuse")
        workflow.add_edge("fuse", END)

        return workflow.compile()

    def _enter(self, phase: ScanPhase) -> None:
        if self._on_phase is not None:
            self._on_phase(phase)

    # -------------------------------------------------------------------------
    # Nodes
    # -------------------------------------------------------------------------

    async def _buffer_node(self, state: ScanCycleState) -> Dict[str, Any]:
        self._enter(ScanPhase.BUFFERING)
        self.buffer.push(state["frame"])
        return {"frames": self.buffer.snapshot()}

    async def _decode_node(self, state: ScanCycleState) -> Dict[str, Any]:
        self._enter(ScanPhase.DECODING)
        code_reading = await asyncio.to_thread(self.decoder.decode, state["frame"])
        return {"code_reading": code_reading}

    async def _recognize_node(self, state: ScanCycleState) -> Dict[str, Any]:
        self._enter(ScanPhase.RECOGNIZING)
        frames = state.get("frames", ())
        observations, vision = await asyncio.gather(
            self._recognize_all(frames),
            self._call_vision(state["frame"]),
        )
        return {"observations": observations, "vision": vision}

    async def _aggregate_node(self, state: ScanCycleState) -> Dict[str, Any]:
        self._enter(ScanPhase.AGGREGATING)
        return {"stable": self.aggregator.aggregate(state.get("observations", []))}

    async def _fuse_node(self, state: ScanCycleState) -> Dict[str, Any]:
        self._enter(ScanPhase.FUSED)
        decision = self.fusion.fuse(
            state.get("code_reading"),
            state.get("stable"),
            state.get("vision"),
        )
        return {"decision": decision}

    # -------------------------------------------------------------------------
    # Recognition
    # -------------------------------------------------------------------------

    async def _recognize_all(self, frames: Sequence[Frame]) -> List[OcrObservation]:
        """OCR every region of every frame; failures are dropped."""
        if not self.engine.is_ready():
            self._skipped_recognitions += 1
            logger.info("OCR engine not ready, skipping recognition")
            return []

        semaphore = asyncio.Semaphore(self.max_workers)
        tasks = []
        for index, frame in enumerate(frames):
            invalid = self._invalid_regions(frame.width, frame.height)
            for region in self.regions:
                if region.name in invalid:
                    self._failed_observations += 1
                    continue
                tasks.append(self._recognize_one(semaphore, index, frame, region))

        results = await asyncio.gather(*tasks)
        return [obs for obs in results if obs is not None]

    def _invalid_regions(self, width: int, height: int) -> FrozenSet[str]:
        """Names of regions that do not fit a frame size; logged once per size."""
        size = (width, height)
        if size not in self._invalid_by_size:
            errors = self.region_extractor.validate(self.regions, width, height)
            for error in errors:
                logger.error(f"Region configuration error: {error}")
            self._invalid_by_size[size] = frozenset(e.region_name for e in errors)
        return self._invalid_by_size[size]

    async def _recognize_one(
        self,
        semaphore: asyncio.Semaphore,
        frame_index: int,
        frame: Frame,
        region: RegionDescriptor,
    ) -> Optional[OcrObservation]:
        async with semaphore:
            try:
                cropped = self.region_extractor.extract(frame, region)
                ocr_text = await self.engine.recognize(cropped)
            except InvalidRegionError as e:
                self._failed_observations += 1
                logger.error(f"Skipping region (frame_index={frame_index}): {e}")
                return None
            except ScanError as e:
                self._failed_observations += 1
                logger.warning(
                    f"Recognition failed (region={region.name}, "
                    f"frame_index={frame_index}): {e}"
                )
                return None

        value = self.value_extractor.extract(ocr_text.text)
        observation = OcrObservation(
            value=value,
            confidence=max(0.0, min(100.0, ocr_text.confidence)),
            region_name=region.name,
            frame_index=frame_index,
            raw_text=ocr_text.text,
        )
        logger.debug(
            f"OCR {region.name}[{frame_index}]: text={ocr_text.text!r}, "
            f"value={value}, conf={observation.confidence:.1f}"
        )
        return observation

    async def _call_vision(self, frame: Frame) -> Optional[VisionResult]:
        if self.vision is None or not self.vision.ready_for_call():
            return None
        try:
            return await asyncio.wait_for(
                self.vision.analyze(frame), timeout=self.vision_timeout
            )
        except asyncio.TimeoutError:
            self._vision_failures += 1
            logger.warning(
                f"Vision fallback timed out after {self.vision_timeout}s "
                f"(frame={frame.frame_id})"
            )
        except VisionError as e:
            self._vision_failures += 1
            logger.warning(f"Vision fallback unavailable (frame={frame.frame_id}): {e}")
        return None

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    async def run(self, frame: Frame, target: str = "default") -> ScanCycleState:
        """
        Run one full cycle for a triggering frame.

        Args:
            frame: Newest frame
            target: Logical scan target

        Returns:
            Final graph state (decision always set)
        """
        return await self._graph.ainvoke({"frame": frame, "target": target})

    def get_metrics(self) -> Dict[str, Any]:
        """Get graph metrics for observability."""
        return {
            "regions": len(self.regions),
            "max_workers": self.max_workers,
            "skipped_recognitions": self._skipped_recognitions,
            "failed_observations": self._failed_observations,
            "vision_failures": self._vision_failures,
        }
