"""
Data Normalizers Module.

This module turns noisy OCR tokens into typed values:
    - Prices and amounts (OCR digit confusions, comma decimals,
      thousands separators, stray currency symbols)
    - Dates (ordered patterns, explicit formats, dateutil fallback,
      plausibility window)

Author: ML Engineering Team
"""

import datetime
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from dateutil import parser as date_parser

from config import get_config
from receipt_pipeline.utils.logger import get_logger

# Initialize module logger
logger = get_logger(__name__)


DEFAULT_DATE_FORMATS = [
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%m-%d-%y",
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%d/%m/%Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%d %b %Y",
    "%d %B %Y",
]

_MONTHS = r'(?:Jan|Feb|Mar|Apr|May|Jun|Jul|Aug|Sep|Sept|Oct|Nov|Dec)[a-z]*\.?'


@dataclass
class PriceMatch:
    """A price token found in a line."""
    value: float
    start: int
    end: int
    raw: str


class AmountNormalizer:
    """
    Parses prices and amounts as OCR reads them off receipts.

    Tolerates 'O'/'o' read in place of '0', a comma as decimal separator,
    thousands separators and currency symbols.

    Example:
        >>> normalizer = AmountNormalizer()
        >>> normalizer.to_float("12.9O")
        12.9
        >>> normalizer.to_float("$ 5.49")
        5.49
        >>> normalizer.to_float("12,99")
        12.99
    """

    # Currency symbols and codes to remove
    CURRENCY_SYMBOLS = ['$', '€', '£', '¥', '₹']
    CURRENCY_CODES = ['USD', 'EUR', 'GBP', 'CAD', 'AUD']

    # A decimal amount not embedded in a longer number
    PRICE_PATTERN = re.compile(
        r'(?<![\d.,])'
        r'(\d{1,3}(?:[.,]\d{3})+[.,][0-9Oo]{2}'
        r'|\d[0-9Oo]*[.,][0-9Oo]{1,2})'
        r'(?!\d|[.,]\d)'
    )

    def __init__(self, currency_symbol: Optional[str] = None) -> None:
        """
        Initialize the amount normalizer.

        Args:
            currency_symbol: Primary currency symbol. Defaults to parser.currency_symbol.
        """
        self.currency_symbol = currency_symbol or get_config("parser.currency_symbol", "$")
        self.symbols = list(dict.fromkeys([self.currency_symbol] + self.CURRENCY_SYMBOLS))

    def clean(self, amount_str: str) -> str:
        """
        Strip currency markers and whitespace, fix O/0 confusion.

        Args:
            amount_str: Raw amount string.

        Returns:
            String containing only digits, separators and minus.
        """
        for symbol in self.symbols:
            amount_str = amount_str.replace(symbol, '')
        for code in self.CURRENCY_CODES:
            amount_str = re.sub(rf'\b{code}\b', '', amount_str, flags=re.IGNORECASE)

        # Only an O touching digits or separators is a misread zero
        amount_str = re.sub(r'(?<=[\d.,])[Oo]|[Oo](?=[\d.,])', '0', amount_str)
        return re.sub(r'[^\d,.\-]', '', amount_str)

    def _resolve_separators(self, amount_str: str) -> str:
        """Convert to a dot-decimal string without thousands separators."""
        last_dot = amount_str.rfind('.')
        last_comma = amount_str.rfind(',')

        if last_dot >= 0 and last_comma >= 0:
            # Whichever separator comes last is the decimal point
            if last_comma > last_dot:
                return amount_str.replace('.', '').replace(',', '.')
            return amount_str.replace(',', '')

        separator = ',' if last_comma >= 0 else '.'
        position = max(last_dot, last_comma)
        if position < 0:
            return amount_str

        decimals = amount_str[position + 1:]
        if amount_str.count(separator) == 1 and 1 <= len(decimals) <= 2:
            return amount_str.replace(separator, '.')
        return amount_str.replace(separator, '')

    def to_float(self, amount_str: Optional[str]) -> Optional[float]:
        """
        Convert an amount string to float.

        Args:
            amount_str: Amount as read by OCR, e.g. "$1,234.5O".

        Returns:
            Float value, or None if it is not a number.
        """
        if not amount_str:
            return None

        cleaned = self.clean(amount_str)
        if not re.search(r'\d', cleaned):
            return None

        try:
            return round(float(self._resolve_separators(cleaned)), 2)
        except ValueError:
            logger.debug(f"Could not parse amount: {amount_str!r}")
            return None

    def find_prices(self, text: str) -> List[PriceMatch]:
        """
        Find every decimal price token in a line.

        Args:
            text: Line text.

        Returns:
            Matches in order of appearance.

        Example:
            >>> [m.value for m in AmountNormalizer().find_prices("2 @ 1.50 3.00")]
            [1.5, 3.0]
        """
        matches = []
        for match in self.PRICE_PATTERN.finditer(text):
            value = self.to_float(match.group(1))
            if value is not None:
                matches.append(PriceMatch(value, match.start(1), match.end(1), match.group(1)))
        return matches

    def extract_amount(self, text: str) -> Optional[float]:
        """Last price on a line (the line total on receipts), or None."""
        prices = self.find_prices(text)
        return prices[-1].value if prices else None


class DateNormalizer:
    """
    Finds purchase dates in receipt lines.

    Candidates are tried in pattern order; each is parsed with the
    configured strptime formats, then dateutil. Dates outside
    [Jan 1 of (year - 5), Dec 31 of (year + 1)] are OCR garbage and are
    rejected.

    Attributes:
        input_formats: strptime formats tried before dateutil
        years_back / years_ahead: Plausibility window around today

    Example:
        >>> normalizer = DateNormalizer()
        >>> normalizer.parse("01/15/2024")
        datetime.date(2024, 1, 15)
    """

    # Ordered candidate patterns
    DATE_PATTERNS = [
        # MM/DD/YYYY, MM-DD-YY, DD/MM/YYYY
        re.compile(r'\b\d{1,2}[/\-.]\d{1,2}[/\-.]\d{2,4}\b'),
        # YYYY-MM-DD
        re.compile(r'\b\d{4}[/\-.]\d{1,2}[/\-.]\d{1,2}\b'),
        # Mon DD, YYYY
        re.compile(rf'\b{_MONTHS}\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b', re.IGNORECASE),
        # DD Month YYYY
        re.compile(rf'\b\d{{1,2}}(?:st|nd|rd|th)?\s+{_MONTHS}\s+\d{{4}}\b', re.IGNORECASE),
    ]

    def __init__(
        self,
        input_formats: Optional[List[str]] = None,
        years_back: Optional[int] = None,
        years_ahead: Optional[int] = None
    ) -> None:
        """Initialize the date normalizer with configuration."""
        self.input_formats = input_formats or get_config("parser.date_formats", DEFAULT_DATE_FORMATS)
        self.years_back = years_back if years_back is not None else get_config(
            "parser.date_window_years_back", 5
        )
        self.years_ahead = years_ahead if years_ahead is not None else get_config(
            "parser.date_window_years_ahead", 1
        )

    def window(self, today: Optional[datetime.date] = None) -> Tuple[datetime.date, datetime.date]:
        """Plausible purchase-date range around today."""
        today = today or datetime.date.today()
        return (
            datetime.date(today.year - self.years_back, 1, 1),
            datetime.date(today.year + self.years_ahead, 12, 31)
        )

    def _clean_date_string(self, date_str: str) -> str:
        date_str = ' '.join(date_str.split())
        # Ordinal suffixes (1st, 2nd, 3rd, 4th) and abbreviation dots
        date_str = re.sub(r'(\d+)(st|nd|rd|th)\b', r'\1', date_str, flags=re.IGNORECASE)
        return re.sub(r'([A-Za-z])\.', r'\1', date_str)

    def parse(self, date_str: str) -> Optional[datetime.date]:
        """
        Parse a date candidate (no window check).

        Args:
            date_str: Candidate text, e.g. "Jan 15, 2024".

        Returns:
            Parsed date or None.
        """
        if not date_str:
            return None

        date_str = self._clean_date_string(date_str)

        for fmt in self.input_formats:
            try:
                return datetime.datetime.strptime(date_str, fmt).date()
            except ValueError:
                continue

        try:
            return date_parser.parse(date_str, dayfirst=False).date()
        except (ValueError, OverflowError):
            logger.debug(f"Could not parse date: {date_str!r}")
            return None

    def is_plausible(self, value: datetime.date, today: Optional[datetime.date] = None) -> bool:
        start, end = self.window(today)
        return start <= value <= end

    def extract_date(self, text: str, today: Optional[datetime.date] = None) -> Optional[datetime.date]:
        """
        First plausible date found in a line.

        Args:
            text: Line text.
            today: Reference day for the window (defaults to today).

        Returns:
            Date or None.
        """
        for pattern in self.DATE_PATTERNS:
            for match in pattern.finditer(text):
                value = self.parse(match.group(0))
                if value is None:
                    continue
                if self.is_plausible(value, today):
                    return value
                logger.debug(f"Rejected implausible date {value} from {text!r}")
        return None
