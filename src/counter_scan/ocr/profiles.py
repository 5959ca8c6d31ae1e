"""
OCR Profiles
============

Typed tuning parameter sets for the OCR engine.

Each profile enumerates the recognised tuning options with explicit
defaults. Unknown keys are rejected at construction, so a typo in
configuration fails at startup instead of being silently ignored.

Named profiles:
    - seven_segment: digits only, single text line, aggressive noise
      suppression for LED / seven-segment counters (default)
    - digits_block:  digits only, single uniform block
    - permissive:    any character, sparse text

Example:
    profile = resolve_profile("seven_segment", {"page_segmentation_mode": 8})
    config = profile.to_tesseract_config()
"""

from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field


class OcrProfile(BaseModel):
    """
    OCR engine tuning parameters.

    Attributes:
        name: Profile name (for logs)
        language: Tesseract language code
        char_whitelist: Allowed characters (None = any)
        page_segmentation_mode: Tesseract --psm value
        engine_mode: Tesseract --oem value
        preserve_interword_spaces: Keep spacing between words
        heavy_noise_reduction: textord_heavy_nr
        noise_removal: textord_noise_removal
        min_linesize: textord_min_linesize
        noise_sizelimit: textord_noise_sizelimit
        noise_snmin: textord_noise_snmin
        scale_factor: Upscale crops before recognition
        invert: Invert crops (light digits on dark displays)
        binarize: Apply Otsu thresholding before recognition
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: str = Field(default="custom", description="Profile name")
    language: str = Field(default="eng", min_length=1)
    char_whitelist: Optional[str] = Field(default="0123456789")
    page_segmentation_mode: int = Field(default=7, ge=0, le=13)
    engine_mode: int = Field(default=3, ge=0, le=3)
    preserve_interword_spaces: bool = False
    heavy_noise_reduction: bool = True
    noise_removal: bool = True
    min_linesize: float = Field(default=2.0, gt=0)
    noise_sizelimit: float = Field(default=8.0, gt=0)
    noise_snmin: float = Field(default=0.3, gt=0)
    scale_factor: float = Field(default=2.0, ge=1.0, le=8.0)
    invert: bool = False
    binarize: bool = True

    def to_tesseract_config(self) -> str:
        """Render the profile as tesseract command-line flags."""
        parts: List[str] = [
            f"--oem {self.engine_mode}",
            f"--psm {self.page_segmentation_mode}",
        ]
        variables = {
            "preserve_interword_spaces": int(self.preserve_interword_spaces),
            "textord_heavy_nr": int(self.heavy_noise_reduction),
            "textord_noise_removal": int(self.noise_removal),
            "textord_min_linesize": self.min_linesize,
            "textord_noise_sizelimit": self.noise_sizelimit,
            "textord_noise_snmin": self.noise_snmin,
        }
        if self.char_whitelist:
            variables["tessedit_char_whitelist"] = self.char_whitelist
        for key, value in variables.items():
            parts.append(f"-c {key}={value}")
        return " ".join(parts)


PROFILES: Dict[str, OcrProfile] = {
    "seven_segment": OcrProfile(name="seven_segment"),
    "digits_block": OcrProfile(
        name="digits_block",
        page_segmentation_mode=6,
    ),
    "permissive": OcrProfile(
        name="permissive",
        char_whitelist=None,
        page_segmentation_mode=11,
        heavy_noise_reduction=False,
        scale_factor=1.0,
    ),
}


def resolve_profile(
    name: str = "seven_segment",
    overrides: Optional[Mapping[str, Any]] = None,
) -> OcrProfile:
    """
    Look up a named profile and apply overrides.

    Args:
        name: Registered profile name
        overrides: Field overrides; unknown keys are rejected

    Returns:
        Validated OcrProfile

    Raises:
        ValueError: If the profile name is unknown
        pydantic.ValidationError: If an override key or value is invalid
    """
    if name not in PROFILES:
        raise ValueError(
            f"Unknown OCR profile '{name}'. Available: {sorted(PROFILES)}"
        )
    base = PROFILES[name]
    if not overrides:
        return base
    return OcrProfile.model_validate({**base.model_dump(), **dict(overrides)})
