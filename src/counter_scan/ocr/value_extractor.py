"""
Counter Value Extraction
========================

Parses raw OCR text into a plausible counter value.

Selection rule:
    1. Find every maximal run of digits in the text
    2. Keep the longest run; on equal length keep the larger number
    3. Reject it (return None) unless both its digit count and its value
       fall inside the configured bounds

The longest run is assumed to be the full counter reading; shorter runs
are usually label fragments or glare artifacts. Out-of-range values are
discarded, never clamped.
"""

import logging
import re
from typing import List, Optional


logger = logging.getLogger(__name__)


_DIGIT_RUN = re.compile(r"\d+")


def digit_runs(text: str) -> List[str]:
    """Maximal digit runs of a string, in order of appearance."""
    return _DIGIT_RUN.findall(text or "")


class ValueExtractor:
    """
    Text to counter value parser with plausibility bounds.

    Attributes:
        min_digits: Shortest accepted run
        max_digits: Longest accepted run
        min_value: Smallest accepted value
        max_value: Largest accepted value

    Example:
        extractor = ValueExtractor()
        extractor.extract("abc963373xyz")  # 963373
        extractor.extract("12 99")         # 99
        extractor.extract("no digits")     # None
    """

    def __init__(
        self,
        min_digits: int = 2,
        max_digits: int = 7,
        min_value: int = 1,
        max_value: int = 9_999_999,
    ) -> None:
        if min_digits < 1 or max_digits < min_digits:
            raise ValueError("require 1 <= min_digits <= max_digits")
        if min_value < 0 or max_value < min_value:
            raise ValueError("require 0 <= min_value <= max_value")

        self.min_digits = min_digits
        self.max_digits = max_digits
        self.min_value = min_value
        self.max_value = max_value

    def select_run(self, text: str) -> Optional[str]:
        """
        Longest digit run, ties broken by larger numeric value.

        Runs are compared as strings; at equal length string order is
        numeric order, so no run is converted to int here.

        Returns:
            The selected run, or None if the text has no digits
        """
        runs = digit_runs(text)
        if not runs:
            return None
        return max(runs, key=lambda run: (len(run), run))

    def is_plausible(self, run: str) -> bool:
        """Whether a digit run passes the digit-count and range bounds."""
        if not self.min_digits <= len(run) <= self.max_digits:
            return False
        return self.min_value <= int(run) <= self.max_value

    def extract(self, raw_text: str) -> Optional[int]:
        """
        Parse a counter value from OCR text.

        Args:
            raw_text: Unprocessed engine output

        Returns:
            Counter value, or None if absent or implausible
        """
        run = self.select_run(raw_text)
        if run is None:
            return None

        if not self.is_plausible(run):
            logger.debug(f"Rejected implausible value {run!r} from {raw_text!r}")
            return None

        return int(run)
