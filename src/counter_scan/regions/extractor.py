"""
Region Extraction
=================

Crops fractional regions out of frames.

This module handles:
    - Loading region sets from JSON files
    - Converting fractional descriptors to pixel bounds
    - Copying region pixels into new buffers
    - Luminance grayscale conversion of crops

Bounds are never clamped. A descriptor that reaches outside the frame, or
that truncates to zero pixels, is a configuration bug and raises
InvalidRegionError.

Example:
    from counter_scan.regions import RegionExtractor

    extractor = RegionExtractor()
    crop = extractor.extract(frame, region)
    gray = extractor.to_grayscale(crop)
"""

import json
import logging
import math
from pathlib import Path
from typing import Iterable, List, Tuple

import numpy as np

from counter_scan.errors import InvalidRegionError
from counter_scan.models.region import CroppedRegion, RegionDescriptor, RegionSet
from counter_scan.stream.frame import CHANNELS, Frame
from counter_scan.stream.image_codec import luminance


logger = logging.getLogger(__name__)


PixelBounds = Tuple[int, int, int, int]


def load_regions_from_file(path: str) -> List[RegionDescriptor]:
    """
    Load a region set from a JSON file.

    The file holds either a list of region objects or
    ``{"regions": [...]}``.

    Args:
        path: Path to the JSON file

    Returns:
        Validated region descriptors in scan order

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the JSON is invalid
    """
    file_path = Path(path)

    if not file_path.exists():
        raise FileNotFoundError(f"Region file not found: {path}")

    logger.info(f"Loading regions from: {path}")

    with open(file_path, "r") as f:
        data = json.load(f)

    if isinstance(data, list):
        data = {"regions": data}

    region_set = RegionSet.model_validate(data)
    logger.info(f"Loaded {len(region_set.regions)} regions")
    return list(region_set.regions)


class RegionExtractor:
    """
    Cuts region descriptors out of frames.

    Stateless apart from counters; one instance is shared by the
    orchestrator for every region x frame pair.
    """

    def __init__(self) -> None:
        self._extracted_count: int = 0
        self._invalid_count: int = 0

    @staticmethod
    def pixel_bounds(region: RegionDescriptor, width: int, height: int) -> PixelBounds:
        """
        Pixel-space bounds of a region.

        Each fraction is multiplied by the matching frame dimension and
        truncated to an integer.

        Returns:
            (x, y, width, height) in pixels
        """
        return (
            math.floor(region.x * width),
            math.floor(region.y * height),
            math.floor(region.width * width),
            math.floor(region.height * height),
        )

    def check_bounds(self, region: RegionDescriptor, width: int, height: int) -> PixelBounds:
        """
        Compute bounds and reject regions that do not fit.

        Raises:
            InvalidRegionError: If the crop is empty or exceeds the frame
        """
        x0, y0, w, h = self.pixel_bounds(region, width, height)

        if w == 0 or h == 0:
            raise InvalidRegionError(
                f"Region '{region.name}' is empty at {width}x{height} "
                f"(computed {w}x{h})",
                region_name=region.name,
                bounds=(x0, y0, w, h),
                frame_size=(width, height),
            )

        if x0 + w > width or y0 + h > height:
            raise InvalidRegionError(
                f"Region '{region.name}' bounds ({x0},{y0} {w}x{h}) exceed "
                f"frame {width}x{height}",
                region_name=region.name,
                bounds=(x0, y0, w, h),
                frame_size=(width, height),
            )

        return x0, y0, w, h

    def validate(
        self,
        regions: Iterable[RegionDescriptor],
        width: int,
        height: int,
    ) -> List[InvalidRegionError]:
        """
        Check a region list against a frame size without extracting.

        Returns:
            One error per region that does not fit (empty when all valid)
        """
        errors = []
        for region in regions:
            try:
                self.check_bounds(region, width, height)
            except InvalidRegionError as e:
                errors.append(e)
        return errors

    def extract(
        self,
        frame: Frame,
        region: RegionDescriptor,
        grayscale: bool = False,
    ) -> CroppedRegion:
        """
        Copy a region of a frame into a new buffer.

        Args:
            frame: Source frame (not modified)
            region: Fractional region descriptor
            grayscale: Convert the crop to 1-channel luminance

        Returns:
            CroppedRegion of size floor(width*W) x floor(height*H)

        Raises:
            InvalidRegionError: If the region does not fit the frame
        """
        try:
            x0, y0, w, h = self.check_bounds(region, frame.width, frame.height)
        except InvalidRegionError:
            self._invalid_count += 1
            raise

        source = frame.as_array()
        span = np.ascontiguousarray(source[y0:y0 + h, x0:x0 + w])

        self._extracted_count += 1

        if grayscale:
            return CroppedRegion(
                name=region.name,
                width=w,
                height=h,
                channels=1,
                pixels=luminance(span).tobytes(),
            )

        return CroppedRegion(
            name=region.name,
            width=w,
            height=h,
            channels=CHANNELS,
            pixels=span.tobytes(),
        )

    def to_grayscale(self, cropped: CroppedRegion) -> CroppedRegion:
        """
        Luminance-weighted grayscale copy of an RGBA crop.

        Grayscale crops are returned unchanged.
        """
        if cropped.is_grayscale:
            return cropped

        gray = luminance(cropped.as_array())
        return CroppedRegion(
            name=cropped.name,
            width=cropped.width,
            height=cropped.height,
            channels=1,
            pixels=gray.tobytes(),
        )

    def get_metrics(self) -> dict:
        """Get extractor metrics for observability."""
        return {
            "extracted_count": self._extracted_count,
            "invalid_count": self._invalid_count,
        }
