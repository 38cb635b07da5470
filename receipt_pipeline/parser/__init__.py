"""
Receipt Parser Module.

This module turns OCR lines into structured receipts:
    - Amount and date normalization tolerant of OCR noise
    - Tagged line classification (noise, merchant, date, total, item)
    - Item, total, merchant and date extraction with confidence gating

Author: ML Engineering Team
"""

from .receipt import ExtractedItem, ParsedReceipt
from .normalizers import AmountNormalizer, DateNormalizer, PriceMatch
from .line_classifier import (
    AmountMatch,
    ItemMatch,
    LineClassification,
    LineClassifier,
    LineKind,
    ParserConfig
)
from .receipt_parser import ReceiptParser, parse_receipt

__all__ = [
    'ExtractedItem',
    'ParsedReceipt',
    'AmountNormalizer',
    'DateNormalizer',
    'PriceMatch',
    'AmountMatch',
    'ItemMatch',
    'LineClassification',
    'LineClassifier',
    'LineKind',
    'ParserConfig',
    'ReceiptParser',
    'parse_receipt'
]
