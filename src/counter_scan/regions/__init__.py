"""
Regions Module
==============

Fractional region descriptors and crop extraction.
"""

from counter_scan.regions.extractor import RegionExtractor, load_regions_from_file

__all__ = [
    "RegionExtractor",
    "load_regions_from_file",
]
