"""
Frame Ring Buffer
=================

Fixed-capacity FIFO of the most recent frames.

The buffer feeds temporal averaging: every configured region is read from
every buffered frame, so a single bad capture is outvoted by its
neighbours. Capacity trades stability against latency, since each extra
frame adds one OCR call per region per cycle.

Design Rules:
    - Never exceeds capacity (drops oldest on overflow)
    - Snapshots share frames, they never copy pixel data
    - Does NOT process or modify frames
"""

import logging
from collections import deque
from typing import Deque, Optional, Tuple

from counter_scan.stream.frame import Frame


logger = logging.getLogger(__name__)


class FrameRingBuffer:
    """
    Bounded ring of frames, oldest first.

    Attributes:
        capacity: Maximum number of frames retained
        evicted_count: Frames dropped to make room
        total_pushed: Frames ever pushed

    Example:
        buffer = FrameRingBuffer(capacity=3)
        buffer.push(frame)
        for index, frame in enumerate(buffer.snapshot()):
            ...
    """

    def __init__(self, capacity: int = 3) -> None:
        """
        Initialize ring buffer.

        Args:
            capacity: Frames to retain. Must be >= 1.
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._frames: Deque[Frame] = deque(maxlen=capacity)
        self._evicted_count: int = 0
        self._total_pushed: int = 0

    @property
    def capacity(self) -> int:
        """Maximum buffer size."""
        return self._capacity

    @property
    def size(self) -> int:
        """Current number of frames in buffer."""
        return len(self._frames)

    @property
    def evicted_count(self) -> int:
        """Number of frames evicted due to overflow."""
        return self._evicted_count

    @property
    def total_pushed(self) -> int:
        """Total frames ever pushed into buffer."""
        return self._total_pushed

    def __len__(self) -> int:
        return len(self._frames)

    def push(self, frame: Frame) -> bool:
        """
        Append a frame, evicting the oldest if full.

        Args:
            frame: Frame to add

        Returns:
            True if the oldest frame was evicted to make room.
        """
        self._total_pushed += 1
        evicted = len(self._frames) == self._capacity
        if evicted:
            self._evicted_count += 1
            logger.debug(
                f"Ring buffer full, evicting frame {self._frames[0].frame_id}"
            )
        self._frames.append(frame)
        return evicted

    def snapshot(self) -> Tuple[Frame, ...]:
        """
        Current frames, oldest to newest.

        Returns:
            Tuple of the buffered frames (shared, not copied).
        """
        return tuple(self._frames)

    def latest(self) -> Optional[Frame]:
        """Most recently pushed frame, or None if empty."""
        if not self._frames:
            return None
        return self._frames[-1]

    def clear(self) -> int:
        """
        Remove all frames.

        Returns:
            Number of frames cleared.
        """
        cleared = len(self._frames)
        self._frames.clear()
        if cleared:
            logger.debug(f"Ring buffer cleared ({cleared} frames)")
        return cleared

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, capacity, evicted_count, total_pushed
        """
        return {
            "size": self.size,
            "capacity": self._capacity,
            "evicted_count": self._evicted_count,
            "total_pushed": self._total_pushed,
        }
