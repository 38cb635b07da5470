"""
OCR Engine Module for the Receipt Extraction Pipeline.

This module wraps an external OCR engine behind a line-level contract:
    - Lazy, idempotent backend start and explicit shutdown
    - Engine-native confidences normalized to 0-1
    - Version-tolerant line extraction (rich lines, per-word report, flat text)

Supports multiple OCR backends:
    - Tesseract (primary)
    - PaddleOCR (optional)

Author: ML Engineering Team
"""

from .engine import OCREngine, PaddleOCRWrapper
from .tesseract_backend import TesseractBackend
from .ocr_result import (
    BoundingBox,
    EngineResponse,
    OCRWord,
    OcrLine,
    infer_confidence_scale,
    normalize_confidence,
    parse_tsv_report,
    split_flat_text
)

__all__ = [
    'OCREngine',
    'PaddleOCRWrapper',
    'TesseractBackend',
    'BoundingBox',
    'EngineResponse',
    'OCRWord',
    'OcrLine',
    'infer_confidence_scale',
    'normalize_confidence',
    'parse_tsv_report',
    'split_flat_text'
]
