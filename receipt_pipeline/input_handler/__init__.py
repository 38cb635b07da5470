"""
Input Handler Module for the Receipt Extraction Pipeline.

This module provides functionality for:
    - Checking content type and size at the pipeline boundary
    - Validating image quality before OCR
    - Preprocessing images for OCR

Supported formats:
    - JPEG, PNG, WebP

Author: ML Engineering Team
"""

from .handler import InputHandler, RawImage
from .quality_validator import (
    QualityValidator,
    QualityReport,
    QualityMetrics,
    ValidationConfig,
    validate_image,
    validate_image_or_raise
)
from .image_processor import (
    ImageProcessor,
    PreprocessingConfig,
    PreprocessingResult,
    preprocess_image,
    quick_preprocess,
    full_preprocess
)

__all__ = [
    'InputHandler',
    'RawImage',
    'QualityValidator',
    'QualityReport',
    'QualityMetrics',
    'ValidationConfig',
    'validate_image',
    'validate_image_or_raise',
    'ImageProcessor',
    'PreprocessingConfig',
    'PreprocessingResult',
    'preprocess_image',
    'quick_preprocess',
    'full_preprocess'
]
