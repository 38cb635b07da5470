"""
Receipt Data Classes.

This module defines the structured output of the receipt parser.

Classes:
    ExtractedItem: One purchasable line with price and quantity
    ParsedReceipt: Items plus merchant, date and totals

Author: ML Engineering Team
"""

import datetime
import json
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# Sanity bound for a single item price
MAX_ITEM_PRICE = 10000.0


@dataclass
class ExtractedItem:
    """
    One recognized purchasable line.

    Invariants (checked on construction):
        - quantity >= 1
        - price, when present, is inside (0, 10000)
        - confidence is inside [0, 1]

    Attributes:
        name: Cleaned item description
        price: Line total, or None when no price was read
        quantity: Units purchased (default 1)
        confidence: Confidence of the source OCR line(s)
        line_number: Index of the source line in the OCR output
        raw_text: Source line text
        id: Unique identifier

    Example:
        >>> item = ExtractedItem(name="Apples", price=2.99, confidence=0.93, line_number=1)
        >>> item.quantity
        1
    """
    name: str
    price: Optional[float] = None
    quantity: int = 1
    confidence: float = 0.0
    line_number: int = 0
    raw_text: str = ""
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError(f"quantity must be >= 1, got {self.quantity}")
        if self.price is not None and not 0 < self.price < MAX_ITEM_PRICE:
            raise ValueError(f"price must be in (0, {MAX_ITEM_PRICE:.0f}), got {self.price}")
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"confidence must be in [0, 1], got {self.confidence}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'price': self.price,
            'quantity': self.quantity,
            'confidence': round(self.confidence, 4),
            'line_number': self.line_number,
            'raw_text': self.raw_text
        }


@dataclass
class ParsedReceipt:
    """
    Structured receipt produced by the parser.

    Attributes:
        items: Extracted items in line order
        total: Grand total, if found
        subtotal: Subtotal, if found
        tax: Tax amount, if found
        date: Purchase date, if found inside the plausible window
        merchant_name: Store name, if found near the top
        confidence: Aggregate parse confidence in [0, 1]
        raw_text: OCR text the receipt was parsed from
    """
    items: List[ExtractedItem] = field(default_factory=list)
    total: Optional[float] = None
    subtotal: Optional[float] = None
    tax: Optional[float] = None
    date: Optional[datetime.date] = None
    merchant_name: Optional[str] = None
    confidence: float = 0.0
    raw_text: str = ""

    @property
    def item_count(self) -> int:
        return len(self.items)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-serializable dictionary (date as ISO string)."""
        return {
            'items': [item.to_dict() for item in self.items],
            'total': self.total,
            'subtotal': self.subtotal,
            'tax': self.tax,
            'date': self.date.isoformat() if self.date else None,
            'merchant_name': self.merchant_name,
            'confidence': round(self.confidence, 4),
            'raw_text': self.raw_text
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def __repr__(self) -> str:
        return (
            f"ParsedReceipt(merchant={self.merchant_name!r}, items={self.item_count}, "
            f"total={self.total}, confidence={self.confidence:.2f})"
        )
