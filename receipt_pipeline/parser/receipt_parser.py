"""
Receipt Parser Module.

This module turns OCR lines into a ParsedReceipt. Every line is tagged by
the LineClassifier; the parser keeps the per-receipt state:

    - the merchant is searched only among the first few non-empty lines
    - the first plausible date wins
    - subtotal and tax keep their first match, total its bottom-most one
    - multi-line items and label-only totals consume the following
      price-only line
    - items from low-confidence lines are dropped

The parser never raises on malformed input: an empty or unreadable line
list yields an empty, zero-confidence receipt.

Usage:
    from receipt_pipeline.parser import parse_receipt

    receipt = parse_receipt(ocr_lines)
    print(receipt.merchant_name, receipt.total, len(receipt.items))

Author: ML Engineering Team
"""

import datetime
from typing import Any, Iterable, Optional

from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.helpers import safe_mean
from receipt_pipeline.ocr_engine.ocr_result import normalize_confidence
from .line_classifier import AmountMatch, ItemMatch, LineClassifier, LineKind, ParserConfig
from .receipt import ExtractedItem, ParsedReceipt

# Initialize module logger
logger = get_logger(__name__)


# Labels whose amount is the receipt total
TOTAL_LABELS = ('total', 'amount_due', 'balance_due')


def _line_text(line: Any) -> str:
    if isinstance(line, dict):
        return str(line.get('text') or '')
    return str(getattr(line, 'text', '') or '')


def _line_confidence(line: Any) -> float:
    value = line.get('confidence') if isinstance(line, dict) else getattr(line, 'confidence', 0.0)
    return normalize_confidence(value)


class ReceiptParser:
    """
    Heuristic receipt parser.

    Attributes:
        config: Parser thresholds
        classifier: Line classifier sharing the same thresholds

    Example:
        >>> parser = ReceiptParser()
        >>> receipt = parser.parse_receipt([OcrLine("GROCERY STORE", 0.95), OcrLine("Apples 2.99", 0.9)])
        >>> receipt.merchant_name, receipt.items[0].price
        ('GROCERY STORE', 2.99)
    """

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        """
        Initialize the parser.

        Args:
            config: Parser thresholds. Defaults to the parser section of settings.yaml.
        """
        self.config = config or ParserConfig.from_config()
        self.classifier = LineClassifier(self.config)

    def parse_receipt(
        self,
        lines: Iterable[Any],
        today: Optional[datetime.date] = None
    ) -> ParsedReceipt:
        """
        Parse OCR lines into a structured receipt.

        Args:
            lines: OcrLine objects (or dicts with text/confidence) in reading order.
            today: Reference day for the plausible date window.

        Returns:
            ParsedReceipt. Empty input gives no items, no metadata and confidence 0.
        """
        lines = list(lines or [])
        texts = [_line_text(line) for line in lines]
        confidences = [_line_confidence(line) for line in lines]

        receipt = ParsedReceipt(raw_text='\n'.join(texts))
        if not lines:
            logger.info("Parsed receipt: no OCR lines")
            return receipt

        dropped = 0
        position = 0
        skip_next = False

        for index, text in enumerate(texts):
            if skip_next:
                skip_next = False
                continue

            merchant_position = None
            if text.strip():
                if receipt.merchant_name is None and position < self.config.merchant_search_lines:
                    merchant_position = position
                position += 1

            next_index = index + 1 if index + 1 < len(texts) else None
            next_text = texts[next_index] if next_index is not None else None

            result = self.classifier.classify(
                text,
                index,
                next_text=next_text,
                merchant_position=merchant_position,
                confidence=confidences[index],
                today=today
            )

            if result.kind == LineKind.MERCHANT:
                receipt.merchant_name = result.payload
                logger.debug(f"Merchant at line {index}: {result.payload!r}")

            elif result.kind == LineKind.DATE:
                if receipt.date is None:
                    receipt.date = result.payload
                    logger.debug(f"Date at line {index}: {result.payload}")

            elif result.kind == LineKind.TOTAL:
                self._apply_amount(receipt, result.payload)
                skip_next = result.consumes_next

            elif result.kind == LineKind.ITEM:
                confidence = confidences[index]
                raw_text = text.strip()
                if result.consumes_next:
                    confidence = min(confidence, confidences[next_index])
                    raw_text = f"{raw_text} {next_text.strip()}"
                    skip_next = True

                item = self._build_item(result.payload, confidence, index, raw_text)
                if item is None:
                    dropped += 1
                else:
                    receipt.items.append(item)

        receipt.confidence = self._calculate_confidence(receipt)

        logger.info(
            f"Parsed receipt: {len(receipt.items)} items ({dropped} dropped), "
            f"merchant={receipt.merchant_name!r}, date={receipt.date}, "
            f"total={receipt.total}, confidence={receipt.confidence:.2f}"
        )
        return receipt

    def _apply_amount(self, receipt: ParsedReceipt, match: AmountMatch) -> None:
        if match.amount is None:
            return
        if match.label == 'subtotal':
            if receipt.subtotal is None:
                receipt.subtotal = match.amount
        elif match.label == 'tax':
            if receipt.tax is None:
                receipt.tax = match.amount
        elif match.label in TOTAL_LABELS:
            # Bottom-most total wins
            receipt.total = match.amount

    def _build_item(
        self,
        match: ItemMatch,
        confidence: float,
        line_number: int,
        raw_text: str
    ) -> Optional[ExtractedItem]:
        if confidence < self.config.min_item_confidence:
            logger.debug(
                f"Dropped item {match.name!r} from line {line_number} "
                f"(confidence {confidence:.2f} < {self.config.min_item_confidence})"
            )
            return None

        try:
            return ExtractedItem(
                name=match.name,
                price=match.price,
                quantity=match.quantity,
                confidence=confidence,
                line_number=line_number,
                raw_text=raw_text
            )
        except ValueError as e:
            logger.debug(f"Dropped item from line {line_number}: {e}")
            return None

    @staticmethod
    def _calculate_confidence(receipt: ParsedReceipt) -> float:
        """Mean of the average item confidence and merchant/date/total presence."""
        item_confidence = safe_mean(item.confidence for item in receipt.items)
        signals = [
            item_confidence,
            1.0 if receipt.merchant_name else 0.0,
            1.0 if receipt.date else 0.0,
            1.0 if receipt.total is not None else 0.0,
        ]
        return round(sum(signals) / len(signals), 4)


def parse_receipt(
    lines: Iterable[Any],
    config: Optional[ParserConfig] = None,
    today: Optional[datetime.date] = None
) -> ParsedReceipt:
    """
    Convenience function to parse OCR lines.

    Args:
        lines: OcrLine objects in reading order.
        config: Optional parser thresholds.
        today: Reference day for the date window.

    Returns:
        ParsedReceipt.
    """
    return ReceiptParser(config).parse_receipt(lines, today=today)
