"""
Region Tests
============

Tests for fractional region extraction and region sets.
"""

import json

import pytest
from pydantic import ValidationError

from counter_scan.errors import InvalidRegionError
from counter_scan.models.region import RegionDescriptor, RegionSet, default_regions
from counter_scan.regions import RegionExtractor, load_regions_from_file


class TestRegionExtractor:
    """Tests for RegionExtractor."""

    @pytest.mark.parametrize(
        "x,y,width,height,expected",
        [
            (0.3, 0.2, 0.4, 0.3, (25, 14)),
            (0.0, 0.0, 1.0, 1.0, (64, 48)),
            (0.5, 0.5, 0.5, 0.5, (32, 24)),
        ],
    )
    def test_crop_dimensions_are_floored(self, make_frame, x, y, width, height, expected):
        region = RegionDescriptor(name="r", x=x, y=y, width=width, height=height)
        crop = RegionExtractor().extract(make_frame(), region)

        assert (crop.width, crop.height) == expected
        assert len(crop.pixels) == expected[0] * expected[1] * 4

    def test_crop_copies_the_right_pixels(self, make_frame):
        frame = make_frame(width=4, height=4, color=(0, 0, 0, 255))
        rgba = frame.as_array().copy()
        rgba[2, 2] = (10, 20, 30, 255)
        frame = type(frame).from_array(rgba, timestamp=1.0)

        region = RegionDescriptor(name="corner", x=0.5, y=0.5, width=0.5, height=0.5)
        crop = RegionExtractor().extract(frame, region)

        assert crop.as_array()[0, 0].tolist() == [10, 20, 30, 255]

    def test_out_of_bounds_region_raises(self, make_frame):
        region = RegionDescriptor(name="overflow", x=0.8, y=0.1, width=0.4, height=0.2)
        extractor = RegionExtractor()

        with pytest.raises(InvalidRegionError) as excinfo:
            extractor.extract(make_frame(), region)

        assert excinfo.value.region_name == "overflow"
        assert excinfo.value.frame_size == (64, 48)
        assert extractor.get_metrics()["invalid_count"] == 1

    def test_empty_region_raises(self, make_frame):
        region = RegionDescriptor(name="tiny", x=0.0, y=0.0, width=0.01, height=0.5)
        with pytest.raises(InvalidRegionError):
            RegionExtractor().extract(make_frame(), region)

    def test_validate_reports_every_bad_region(self):
        regions = default_regions() + [
            RegionDescriptor(name="overflow", x=0.9, y=0.9, width=0.5, height=0.5),
        ]
        errors = RegionExtractor().validate(regions, 640, 480)
        assert [e.region_name for e in errors] == ["overflow"]

    def test_grayscale_crop(self, make_frame):
        region = RegionDescriptor(name="r", x=0.0, y=0.0, width=0.5, height=0.5)
        crop = RegionExtractor().extract(make_frame(color=(255, 0, 0, 255)), region, grayscale=True)

        assert crop.is_grayscale
        assert int(crop.as_array()[0, 0]) == 76


class TestRegionModels:
    """Tests for region descriptors and sets."""

    def test_fractions_are_bounded(self):
        with pytest.raises(ValidationError):
            RegionDescriptor(name="r", x=1.2, y=0.0, width=0.5, height=0.5)

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValidationError):
            RegionDescriptor(name="r", x=0, y=0, width=0.5, height=0.5, angle=3)

    def test_duplicate_names_rejected(self):
        region = RegionDescriptor(name="same", x=0, y=0, width=0.5, height=0.5)
        with pytest.raises(ValidationError):
            RegionSet(regions=[region, region])

    def test_default_regions(self):
        names = [r.name for r in default_regions()]
        assert names == ["primary_display", "full_center", "top_area", "bottom_area"]

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "regions.json"
        path.write_text(json.dumps({
            "regions": [{"name": "display", "x": 0.1, "y": 0.1, "width": 0.5, "height": 0.2}],
        }))

        regions = load_regions_from_file(str(path))

        assert [r.name for r in regions] == ["display"]

    def test_load_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_regions_from_file(str(tmp_path / "missing.json"))
