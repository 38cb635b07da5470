"""
Line Classifier Module.

This module tags a single OCR line with what it contributes to a
receipt. The checks run in a fixed order and the first match wins:

    1. NOISE         blank lines, banners, counters, reference numbers
    2. MERCHANT      store name near the top of the receipt
    3. DATE          purchase date inside the plausible window
    4. TOTAL         subtotal / tax / total / amount due / balance due
    5. ITEM          name with a price, or a name followed by a price-only line
    6. UNCLASSIFIED  everything else

Classification is pure and keeps no state; the parser decides which
checks apply (e.g. merchant search only near the top).

Author: ML Engineering Team
"""

import datetime
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from config import get_section
from receipt_pipeline.utils.helpers import merge_dicts
from receipt_pipeline.utils.logger import get_logger
from .normalizers import DEFAULT_DATE_FORMATS, AmountNormalizer, DateNormalizer

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class ParserConfig:
    """
    Thresholds of the receipt parser.

    Attributes:
        min_item_confidence: Items from lines below this confidence are dropped
        min_merchant_confidence: Merchant lines below this confidence are ignored
        merchant_search_lines: Number of leading non-empty lines searched for the merchant
        merchant_score_threshold: Minimum heuristic score of a merchant line
        currency_symbol: Primary currency symbol
        date_formats: strptime formats tried before dateutil
        max_price: Exclusive upper sanity bound of an item price
        max_total: Exclusive upper sanity bound of subtotal/tax/total
        date_window_years_back / date_window_years_ahead: Plausible date window
    """
    min_item_confidence: float = 0.6
    min_merchant_confidence: float = 0.6
    merchant_search_lines: int = 5
    merchant_score_threshold: float = 0.5
    currency_symbol: str = "$"
    date_formats: List[str] = field(default_factory=lambda: list(DEFAULT_DATE_FORMATS))
    max_price: float = 10000.0
    max_total: float = 100000.0
    date_window_years_back: int = 5
    date_window_years_ahead: int = 1

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> 'ParserConfig':
        """Build from the parser section of settings.yaml, then apply overrides."""
        values = merge_dicts(get_section("parser"), overrides or {})
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in values.items() if k in known})


class LineKind(Enum):
    """What a line contributes to the receipt."""
    NOISE = "noise"
    MERCHANT = "merchant"
    DATE = "date"
    TOTAL = "total"
    ITEM = "item"
    UNCLASSIFIED = "unclassified"


@dataclass
class AmountMatch:
    """Labelled amount; ``amount`` is None when the label line carries no price."""
    label: str
    amount: Optional[float] = None


@dataclass
class ItemMatch:
    """Item candidate read from one line (or a name line plus its price line)."""
    name: str
    price: Optional[float] = None
    quantity: int = 1


@dataclass
class LineClassification:
    """
    Tagged result of classifying one line.

    Attributes:
        kind: Line kind
        index: Position of the line in the OCR output
        payload: str (merchant), datetime.date (date), AmountMatch (total)
                 or ItemMatch (item); None otherwise
        consumes_next: The following price-only line belongs to this one
    """
    kind: LineKind
    index: int
    payload: Union[str, datetime.date, AmountMatch, ItemMatch, None] = None
    consumes_next: bool = False


class LineClassifier:
    """
    Ordered pattern cascade over single receipt lines.

    Example:
        >>> classifier = LineClassifier()
        >>> classifier.classify("Apples 2.99", 1).kind
        <LineKind.ITEM: 'item'>
        >>> classifier.classify("Total 4.84", 5).payload
        AmountMatch(label='total', amount=4.84)
    """

    NOISE_PATTERNS = [
        re.compile(r'\bthank(?:s|\s+you)\b', re.IGNORECASE),
        re.compile(r'\b(?:total\s+)?(?:number\s+of\s+)?items?\s*(?:sold|count)?\s*[:#=]?\s*\d+\s*$', re.IGNORECASE),
        re.compile(r'^\s*(?:receipt|order|transaction|trans|invoice|ref|reference|ticket)\b', re.IGNORECASE),
        re.compile(r'^\s*(?:cashier|terminal|register|reg|operator|clerk|server|lane|till|store\s*(?:#|no))\b', re.IGNORECASE),
        re.compile(r'^\s*(?:payment|card|change|cash|tender|visa|mastercard|amex|debit|credit|approval|auth)\b', re.IGNORECASE),
        re.compile(r'^\s*(?:time\b.*|\d{1,2}:\d{2}(?::\d{2})?\s*(?:[ap]\.?m\.?)?)\s*$', re.IGNORECASE),
        re.compile(r'\b(?:welcome|visit\s+us|come\s+again|have\s+a\s+(?:nice|great)\s+day)\b', re.IGNORECASE),
        re.compile(r'^\s*(?:tel|phone|ph|fax)\b', re.IGNORECASE),
        re.compile(r'^[\W_]+$'),
    ]

    # Ordered amount labels
    AMOUNT_LABELS = [
        ('subtotal', re.compile(r'\bsub[\s\-]*total\b', re.IGNORECASE)),
        ('tax', re.compile(r'\b(?:sales\s+)?tax\b|\b(?:hst|gst|vat)\b', re.IGNORECASE)),
        ('total', re.compile(r'\bgrand\s+total\b|\btotal\b', re.IGNORECASE)),
        ('amount_due', re.compile(r'\bamount\s+due\b', re.IGNORECASE)),
        ('balance_due', re.compile(r'\bbalance(?:\s+due)?\b', re.IGNORECASE)),
    ]

    MERCHANT_KEYWORDS = re.compile(r'store|shop|market|mart|inc|ltd|llc|corp', re.IGNORECASE)
    MERCHANT_EXCLUSIONS = [
        re.compile(r'\b(?:receipt|invoice|bill)\b', re.IGNORECASE),
        re.compile(r'\d{3,}'),
        re.compile(r'\bthank', re.IGNORECASE),
        re.compile(r'\b(?:welcome|visit)\b', re.IGNORECASE),
    ]
    TITLE_CASE = re.compile(r"^[A-Z][a-z'&.]+(?:\s+[A-Z][a-z'&.]+)*$")

    QUANTITY_PATTERNS = [
        re.compile(r'^\s*(\d{1,3})\s*[xX×]\s+'),
        re.compile(r'(\d{1,3})\s*@'),
        re.compile(r'\bqty\s*[:.]?\s*(\d{1,3})\b', re.IGNORECASE),
        re.compile(r'\bquantity\s*[:.]?\s*(\d{1,3})\b', re.IGNORECASE),
    ]
    NAME_CLEANUP = [
        re.compile(r'^\s*\d{1,3}\s*[xX×]\s+'),
        re.compile(r'\s*\d{1,3}\s*@.*$'),
        re.compile(r'\s*@\s*$'),
        re.compile(r'\bqty\s*[:.]?\s*\d+', re.IGNORECASE),
        re.compile(r'\bquantity\s*[:.]?\s*\d+', re.IGNORECASE),
        re.compile(r'\s*[\$€£¥₹]+\s*$'),
        re.compile(r'\s+\d{10,}\s*[A-Z]?\s*$'),
        re.compile(r'\s+[A-Z]\s*$'),
        re.compile(r'[\s:\-*#]+$'),
    ]

    def __init__(self, config: Optional[ParserConfig] = None) -> None:
        """
        Initialize the classifier.

        Args:
            config: Parser thresholds. Defaults to the parser section of settings.yaml.
        """
        self.config = config or ParserConfig.from_config()
        self.amounts = AmountNormalizer(self.config.currency_symbol)
        self.dates = DateNormalizer(
            input_formats=self.config.date_formats,
            years_back=self.config.date_window_years_back,
            years_ahead=self.config.date_window_years_ahead
        )

    # ------------------------------------------------------------------
    # Individual checks
    # ------------------------------------------------------------------

    def is_noise(self, text: str) -> bool:
        """Blank lines and lines that never carry receipt data."""
        if not text or not text.strip():
            return True
        return any(pattern.search(text) for pattern in self.NOISE_PATTERNS)

    def is_price_only(self, text: Optional[str]) -> bool:
        """
        True for lines holding nothing but a price (plus currency or flag).

        Example:
            >>> LineClassifier().is_price_only("$ 2.99 F")
            True
        """
        if not text:
            return False
        prices = self.amounts.find_prices(text)
        if len(prices) != 1:
            return False
        rest = text[:prices[0].start] + text[prices[0].end:]
        rest = re.sub(r'[\$€£¥₹]', '', rest)
        rest = re.sub(r'\b[A-Z]\b', '', rest)
        return not rest.strip()

    def score_merchant(self, text: str, position: int, next_text: Optional[str] = None) -> Optional[float]:
        """
        Heuristic score of a merchant-name candidate.

        Prefers all-caps, short lines at the very top and store keywords;
        penalizes digits.

        Args:
            text: Line text.
            position: Position among the leading non-empty lines (0-based).
            next_text: Text of the following line.

        Returns:
            Score, or None when the line cannot be a merchant name.
        """
        text = text.strip()
        if len(text) < 3 or not re.search(r'[A-Za-z]', text):
            return None
        if any(pattern.search(text) for pattern in self.MERCHANT_EXCLUSIONS):
            return None
        if self.amounts.find_prices(text) or self.match_amount_label(text) is not None:
            return None
        if self.is_price_only(next_text):
            # Name line of a multi-line item
            return None

        score = 0.0
        letters = re.sub(r'[^A-Za-z]', '', text)
        if letters.isupper() and len(text) > 3:
            score += 0.3
        score += {0: 0.3, 1: 0.2, 2: 0.1}.get(position, 0.0)
        if self.MERCHANT_KEYWORDS.search(text):
            score += 0.2
        if self.TITLE_CASE.match(text):
            score += 0.1
        if 3 <= len(text) <= 30:
            score += 0.1
        if re.search(r'\d', text):
            score -= 0.4
        if re.search(r'[\$€£¥₹]', text):
            score -= 0.3

        return round(score, 4)

    def match_date(self, text: str, today: Optional[datetime.date] = None) -> Optional[datetime.date]:
        """First plausible date in the line."""
        return self.dates.extract_date(text, today)

    def match_amount_label(self, text: str) -> Optional[AmountMatch]:
        """
        First matching amount label and the amount after it.

        Amounts outside (0, max_total) are treated as missing.
        """
        for label, pattern in self.AMOUNT_LABELS:
            match = pattern.search(text)
            if not match:
                continue

            prices = [p for p in self.amounts.find_prices(text) if p.start >= match.end()]
            amount = prices[-1].value if prices else None
            if amount is not None and not 0 < amount < self.config.max_total:
                logger.debug(f"Discarded implausible {label} amount {amount}")
                amount = None
            return AmountMatch(label=label, amount=amount)

        return None

    def extract_quantity(self, text: str) -> int:
        """Quantity from '3 x', '3 @', 'qty: 3' or 'quantity 3'; default 1."""
        for pattern in self.QUANTITY_PATTERNS:
            match = pattern.search(text)
            if match:
                return max(1, int(match.group(1)))
        return 1

    def clean_item_name(self, name: str) -> str:
        """Strip quantity markers, unit prices, barcodes, flags and currency symbols."""
        for pattern in self.NAME_CLEANUP:
            name = pattern.sub('', name)
        return ' '.join(name.split())

    @staticmethod
    def is_valid_name(name: str) -> bool:
        return len(name) >= 2 and re.search(r'[A-Za-z]', name) is not None

    def match_item(self, text: str, next_text: Optional[str] = None) -> Optional[ItemMatch]:
        """
        Item candidate from the line, or from the line plus a price-only next line.

        Price is the last price on the line (the line total). Prices outside
        (0, max_price) reject the candidate.
        """
        prices = self.amounts.find_prices(text)

        if prices:
            price = prices[-1].value
            name = self.clean_item_name(text[:prices[0].start])
        elif self.is_price_only(next_text):
            price = self.amounts.find_prices(next_text)[-1].value
            name = self.clean_item_name(text)
        else:
            return None

        if not 0 < price < self.config.max_price:
            logger.debug(f"Rejected item price {price} outside sanity bound: {text!r}")
            return None
        if not self.is_valid_name(name):
            return None

        return ItemMatch(name=name, price=price, quantity=self.extract_quantity(text))

    # ------------------------------------------------------------------
    # Cascade
    # ------------------------------------------------------------------

    def classify(
        self,
        text: str,
        index: int,
        next_text: Optional[str] = None,
        merchant_position: Optional[int] = None,
        confidence: float = 1.0,
        today: Optional[datetime.date] = None
    ) -> LineClassification:
        """
        Classify one line.

        Args:
            text: Line text.
            index: Position of the line in the OCR output.
            next_text: Text of the following line (multi-line items and labels).
            merchant_position: Position among leading non-empty lines while the
                merchant is still searched for; None disables the merchant check.
            confidence: Line confidence (gates merchant candidates).
            today: Reference day for the date window.

        Returns:
            LineClassification.
        """
        if self.is_noise(text):
            return LineClassification(LineKind.NOISE, index)

        text = text.strip()

        if merchant_position is not None and confidence >= self.config.min_merchant_confidence:
            score = self.score_merchant(text, merchant_position, next_text)
            if score is not None and score >= self.config.merchant_score_threshold:
                return LineClassification(LineKind.MERCHANT, index, text)

        found_date = self.match_date(text, today)
        if found_date is not None:
            return LineClassification(LineKind.DATE, index, found_date)

        amount = self.match_amount_label(text)
        if amount is not None:
            consumes_next = amount.amount is None and self.is_price_only(next_text)
            if consumes_next:
                amount.amount = self.amounts.find_prices(next_text)[-1].value
                if not 0 < amount.amount < self.config.max_total:
                    amount.amount = None
            return LineClassification(LineKind.TOTAL, index, amount, consumes_next=consumes_next)

        item = self.match_item(text, next_text)
        if item is not None:
            consumes_next = not self.amounts.find_prices(text)
            return LineClassification(LineKind.ITEM, index, item, consumes_next=consumes_next)

        return LineClassification(LineKind.UNCLASSIFIED, index)
