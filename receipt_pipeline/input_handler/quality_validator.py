"""
Quality Validator Module.

This module inspects raw receipt image bytes and flags images that are
unlikely to OCR well. Checks are split into blocking errors and
non-blocking warnings:

    - Resolution: error below the minimum, warning when marginal
    - File size: error outside the accepted byte range
    - Sharpness: Laplacian variance, error below the minimum
    - Contrast: luminance standard deviation, warning outside range
    - Brightness: mean luminance, warning when too dark or overexposed

The validator is pure inspection. It never modifies the image.

Author: ML Engineering Team
"""

import io
from dataclasses import dataclass, asdict, field, fields
from typing import Any, Dict, List, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import get_section
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.helpers import format_file_size, merge_dicts
from receipt_pipeline.utils.exceptions import QualityError

# Initialize module logger
logger = get_logger(__name__)


# Remediation hints attached to every QualityError
QUALITY_SUGGESTIONS = [
    "Use a resolution of at least 900x600 pixels",
    "Ensure good lighting without glare",
    "Hold the camera steady and focus on the receipt",
    "Flatten the receipt to avoid distortion",
]


@dataclass
class ValidationConfig:
    """
    Thresholds for the quality gates.

    Attributes:
        min_width / min_height: Minimum resolution in pixels (error)
        min_file_size / max_file_size: Accepted byte range (error)
        min_sharpness: Minimum Laplacian variance (error)
        min_contrast / max_contrast: Luminance std-dev range (warning)
        min_brightness / max_brightness: Mean luminance range (warning)
        marginal_factor: Multiplier under which a passing value is marginal
        analysis_max_dimension: Longest side used for pixel statistics
    """
    min_width: int = 600
    min_height: int = 400
    min_file_size: int = 50 * 1024
    max_file_size: int = 10 * 1024 * 1024
    min_sharpness: float = 20.0
    min_contrast: float = 30.0
    max_contrast: float = 110.0
    min_brightness: float = 50.0
    max_brightness: float = 200.0
    marginal_factor: float = 1.5
    analysis_max_dimension: int = 1500

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> 'ValidationConfig':
        """
        Build thresholds from settings.yaml, then apply overrides.

        Args:
            overrides: Per-call threshold values that win over settings.

        Returns:
            ValidationConfig instance.
        """
        values = merge_dicts(get_section("validation"), overrides or {})
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})


@dataclass
class QualityMetrics:
    """Measured image statistics. None when the bytes could not be decoded."""
    byte_size: int
    width: Optional[int] = None
    height: Optional[int] = None
    format: Optional[str] = None
    has_alpha: Optional[bool] = None
    sharpness: Optional[float] = None
    contrast: Optional[float] = None
    brightness: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class QualityReport:
    """
    Outcome of validating one image.

    Attributes:
        errors: Blocking problems
        warnings: Non-blocking problems, folded into recommendations later
        metrics: Measured statistics
    """
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    metrics: Optional[QualityMetrics] = None

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'errors': list(self.errors),
            'warnings': list(self.warnings),
            'metrics': self.metrics.to_dict() if self.metrics else None
        }

    def __repr__(self) -> str:
        return (
            f"QualityReport(valid={self.is_valid}, "
            f"errors={len(self.errors)}, warnings={len(self.warnings)})"
        )


def laplacian_variance(gray: np.ndarray) -> float:
    """
    Variance of the 4-neighbour Laplacian of a greyscale image.

    Low values indicate blur.

    Args:
        gray: 2-D array of luminance values.

    Returns:
        Laplacian variance (0.0 for images smaller than 3x3).
    """
    g = gray.astype(np.float64)
    if g.shape[0] < 3 or g.shape[1] < 3:
        return 0.0

    lap = (
        g[:-2, 1:-1] + g[2:, 1:-1] + g[1:-1, :-2] + g[1:-1, 2:]
        - 4.0 * g[1:-1, 1:-1]
    )
    return float(lap.var())


class QualityValidator:
    """
    Quality gates for receipt photos.

    Example:
        >>> validator = QualityValidator()
        >>> report = validator.validate(image_bytes)
        >>> if not report.is_valid:
        ...     print(report.errors)
    """

    def __init__(self, config: Optional[ValidationConfig] = None) -> None:
        """
        Initialize the validator.

        Args:
            config: Thresholds. Defaults to the validation section of settings.yaml.
        """
        self.config = config or ValidationConfig.from_config()
        logger.debug(
            f"QualityValidator initialized (min={self.config.min_width}x"
            f"{self.config.min_height}, sharpness>={self.config.min_sharpness})"
        )

    def validate(self, data: bytes) -> QualityReport:
        """
        Inspect image bytes.

        Args:
            data: Encoded image bytes.

        Returns:
            QualityReport with errors, warnings and metrics.
        """
        cfg = self.config
        report = QualityReport(metrics=QualityMetrics(byte_size=len(data)))

        self._check_file_size(len(data), report)

        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            report.errors.append(f"Failed to decode image: {e}")
            logger.warning(f"Image could not be decoded: {e}")
            return report

        metrics = report.metrics
        metrics.width, metrics.height = image.size
        metrics.format = image.format
        metrics.has_alpha = image.mode in ('RGBA', 'LA', 'PA') or 'transparency' in image.info

        self._check_resolution(image.width, image.height, report)

        gray = self._analysis_array(image)
        metrics.sharpness = round(laplacian_variance(gray), 2)
        metrics.contrast = round(float(np.std(gray)), 2)
        metrics.brightness = round(float(np.mean(gray)), 2)

        if metrics.sharpness < cfg.min_sharpness:
            report.errors.append(
                f"Image is too blurry (sharpness: {metrics.sharpness:.2f}). "
                f"Please use a clearer image with better focus."
            )
        elif metrics.sharpness < cfg.min_sharpness * cfg.marginal_factor:
            report.warnings.append(
                f"Image sharpness is marginal ({metrics.sharpness:.2f}). "
                f"Consider using a clearer image."
            )

        if metrics.contrast < cfg.min_contrast:
            report.warnings.append(
                f"Image has low contrast ({metrics.contrast:.2f}). "
                f"Better lighting may improve results."
            )
        elif metrics.contrast > cfg.max_contrast:
            report.warnings.append(
                f"Image has very high contrast ({metrics.contrast:.2f}). "
                f"Avoid harsh shadows and glare."
            )

        if metrics.brightness < cfg.min_brightness:
            report.warnings.append(
                f"Image is too dark (brightness: {metrics.brightness:.2f}). "
                f"Better lighting may improve results."
            )
        elif metrics.brightness > cfg.max_brightness:
            report.warnings.append(
                f"Image is overexposed (brightness: {metrics.brightness:.2f}). "
                f"Reduce lighting or exposure."
            )

        for warning in report.warnings:
            logger.warning(f"Image quality: {warning}")

        logger.info(
            f"Quality check: valid={report.is_valid}, {metrics.width}x{metrics.height}, "
            f"{format_file_size(metrics.byte_size)}, sharpness={metrics.sharpness}, "
            f"contrast={metrics.contrast}, brightness={metrics.brightness}"
        )
        return report

    def validate_or_raise(self, data: bytes) -> QualityReport:
        """
        Validate and raise on any blocking problem.

        Args:
            data: Encoded image bytes.

        Returns:
            The QualityReport when the image is valid.

        Raises:
            QualityError: With the errors, warnings and remediation suggestions.
        """
        report = self.validate(data)
        if not report.is_valid:
            raise QualityError(report.errors, report.warnings, QUALITY_SUGGESTIONS)
        return report

    def _check_file_size(self, size: int, report: QualityReport) -> None:
        cfg = self.config
        if size < cfg.min_file_size:
            report.errors.append(
                f"File size too small: {size / 1024:.2f}KB. "
                f"Minimum: {cfg.min_file_size / 1024:.2f}KB"
            )
        elif size > cfg.max_file_size:
            report.errors.append(
                f"File size too large: {size / 1024 / 1024:.2f}MB. "
                f"Maximum: {cfg.max_file_size / 1024 / 1024:.2f}MB"
            )

    def _check_resolution(self, width: int, height: int, report: QualityReport) -> None:
        cfg = self.config
        factor = cfg.marginal_factor
        if width < cfg.min_width or height < cfg.min_height:
            report.errors.append(
                f"Image resolution too low: {width}x{height}. "
                f"Minimum: {cfg.min_width}x{cfg.min_height}"
            )
        elif width < cfg.min_width * factor or height < cfg.min_height * factor:
            report.warnings.append(
                f"Image resolution is marginal: {width}x{height}. "
                f"Recommended: {int(cfg.min_width * factor)}x{int(cfg.min_height * factor)} or higher"
            )

    def _analysis_array(self, image: Image.Image) -> np.ndarray:
        """Greyscale luminance array, reduced to bound the cost of statistics."""
        if image.mode in ('RGBA', 'LA', 'PA', 'P'):
            # Transparent regions count as white paper
            rgba = image.convert('RGBA')
            background = Image.new('RGBA', rgba.size, (255, 255, 255, 255))
            image = Image.alpha_composite(background, rgba)

        gray = image.convert('L')
        limit = self.config.analysis_max_dimension
        if limit and max(gray.size) > limit:
            gray.thumbnail((limit, limit), Image.LANCZOS)

        return np.asarray(gray, dtype=np.float64)


def validate_image(data: bytes, config: Optional[ValidationConfig] = None) -> QualityReport:
    """
    Convenience function to validate image bytes.

    Args:
        data: Encoded image bytes.
        config: Optional thresholds.

    Returns:
        QualityReport.
    """
    return QualityValidator(config).validate(data)


def validate_image_or_raise(
    data: bytes,
    config: Optional[ValidationConfig] = None
) -> QualityReport:
    """Convenience function that raises QualityError on invalid images."""
    return QualityValidator(config).validate_or_raise(data)
