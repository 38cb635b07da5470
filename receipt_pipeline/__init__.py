"""
Receipt Extraction Pipeline - Source Package.

This package contains all core modules of the receipt extraction
pipeline. Each module has a single responsibility.

Modules:
    - input_handler: Boundary checks, image quality validation, preprocessing
    - ocr_engine: OCR adapter returning text lines with confidences
    - parser: Receipt parsing into items, totals, date and merchant
    - evaluation: Confidence scoring and recommendations
    - pipeline: End-to-end orchestration
    - utils: Logging, exceptions and helpers

Architecture:
    Input → Validation → Preprocessing → OCR → Parsing → Scoring
"""

__version__ = "1.0.0"
__author__ = "ML Engineering Team"

__all__ = [
    'input_handler',
    'ocr_engine',
    'parser',
    'evaluation',
    'pipeline',
    'utils'
]
