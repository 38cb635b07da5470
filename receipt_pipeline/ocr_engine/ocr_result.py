"""
OCR Result Data Classes.

This module defines the line-level contract at the OCR boundary and the
helpers that derive it from the different shapes an engine can answer
with:

    - rich per-line objects (text, confidence, box)
    - a tabular per-word report (Tesseract ``image_to_data`` TSV)
    - a flat text blob with only an overall confidence

Classes:
    BoundingBox: Axis-aligned pixel box
    OCRWord: Word row of a per-word report
    OcrLine: Recognized line with a 0-1 confidence
    EngineResponse: Raw answer of an OCR backend

Author: ML Engineering Team
"""

import csv
import io
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from receipt_pipeline.utils.helpers import clamp, safe_mean


# Columns that identify a line in Tesseract's per-word report
LINE_KEY_COLUMNS = ('page_num', 'block_num', 'par_num', 'line_num')


# Native confidence scale of Tesseract reports
TESSERACT_CONFIDENCE_SCALE = 100.0


def normalize_confidence(value: Any, scale: Optional[float] = None) -> float:
    """
    Normalize an engine confidence to the 0-1 range.

    With a known ``scale`` (100 for percentages, 1 for fractions) the value
    is divided by it. Without one, values above 1 are read as percentages;
    this is only suitable for a lone value of unknown origin. Anything
    unparsable, NaN or negative (Tesseract reports -1 for non-word rows)
    becomes 0.

    Example:
        >>> normalize_confidence(96.5)
        0.965
        >>> normalize_confidence(0.9, scale=100)
        0.009
    """
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 0.0
    if value != value:  # NaN
        return 0.0
    if scale is None:
        scale = 100.0 if value > 1.0 else 1.0
    if scale <= 0:
        return 0.0
    return clamp(value / scale)


def infer_confidence_scale(values: Iterable[Any]) -> float:
    """
    Decide the scale of a whole batch of confidences at once.

    A batch with any value above 1 is on the percentage scale.
    """
    for value in values:
        try:
            if float(value) > 1.0:
                return 100.0
        except (TypeError, ValueError):
            continue
    return 1.0


@dataclass
class BoundingBox:
    """Pixel box as (x0, y0) top-left and (x1, y1) bottom-right."""
    x0: int
    y0: int
    x1: int
    y1: int

    @property
    def center_y(self) -> float:
        return (self.y0 + self.y1) / 2.0

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        return BoundingBox(
            min(self.x0, other.x0),
            min(self.y0, other.y0),
            max(self.x1, other.x1),
            max(self.y1, other.y1)
        )

    @classmethod
    def from_value(cls, value: Any) -> Optional['BoundingBox']:
        """
        Build a box from the shapes engines commonly return.

        Accepts a BoundingBox, a dict with x0/y0/x1/y1 keys, a flat
        (x0, y0, x1, y1) sequence or a polygon of (x, y) points.
        """
        if value is None:
            return None
        if isinstance(value, BoundingBox):
            return value
        try:
            if isinstance(value, dict):
                return cls(int(value['x0']), int(value['y0']), int(value['x1']), int(value['y1']))
            points = list(value)
            if points and isinstance(points[0], (list, tuple)):
                xs = [p[0] for p in points]
                ys = [p[1] for p in points]
                return cls(int(min(xs)), int(min(ys)), int(max(xs)), int(max(ys)))
            if len(points) == 4:
                return cls(*(int(v) for v in points))
        except (KeyError, TypeError, ValueError):
            return None
        return None

    def to_dict(self) -> Dict[str, int]:
        return {'x0': self.x0, 'y0': self.y0, 'x1': self.x1, 'y1': self.y1}


@dataclass
class OCRWord:
    """
    Single word row of a per-word OCR report.

    Attributes:
        text: Recognized token
        confidence: Engine-native confidence (Tesseract: 0-100, -1 for none)
        bbox: Word box
        line_key: (page, block, paragraph, line) identifiers when known
    """
    text: str
    confidence: float
    bbox: BoundingBox
    line_key: Optional[Tuple[int, int, int, int]] = None

    def __repr__(self) -> str:
        return f"OCRWord('{self.text}', conf={self.confidence:.1f})"


@dataclass
class OcrLine:
    """
    One recognized line, in engine reading order.

    Attributes:
        text: Line text
        confidence: Certainty in [0, 1]
        bbox: Optional line box

    Example:
        >>> OcrLine("Apples 2.99", 0.93)
        OcrLine('Apples 2.99', conf=0.93)
    """
    text: str
    confidence: float = 0.0
    bbox: Optional[BoundingBox] = None

    def __post_init__(self) -> None:
        self.confidence = normalize_confidence(self.confidence)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], scale: Optional[float] = None) -> 'OcrLine':
        """
        Build a line from an engine's rich per-line object.

        Args:
            data: Dict with text, confidence and optional bbox.
            scale: Native confidence scale, when the caller knows it.
        """
        return cls(
            text=str(data.get('text') or ''),
            confidence=normalize_confidence(data.get('confidence', 0.0), scale),
            bbox=BoundingBox.from_value(data.get('bbox'))
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'text': self.text,
            'confidence': round(self.confidence, 4),
            'bbox': self.bbox.to_dict() if self.bbox else None
        }

    def __repr__(self) -> str:
        return f"OcrLine('{self.text}', conf={self.confidence:.2f})"


@dataclass
class EngineResponse:
    """
    Raw answer of an OCR backend.

    Any field may be missing depending on engine and version. The adapter
    prefers ``lines``, then ``tsv``, then ``text``.

    Attributes:
        lines: Rich per-line dicts with text/confidence/bbox
        tsv: Tabular per-word report (Tesseract image_to_data format)
        text: Flat text blob
        confidence: Overall engine confidence (native scale)
        confidence_scale: Native scale of ``lines`` and ``confidence``
            (100 for percentages, 1 for fractions). None when the backend
            does not say; the adapter then decides once per response.
    """
    lines: Optional[List[Dict[str, Any]]] = None
    tsv: Optional[str] = None
    text: Optional[str] = None
    confidence: Optional[float] = None
    confidence_scale: Optional[float] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


def _to_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _to_float(value: Any, default: float = -1.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_tsv_words(tsv: str) -> List[OCRWord]:
    """
    Read the word rows of a tab-separated per-word report.

    Rows without text (page, block, paragraph and line rows) are skipped.

    Args:
        tsv: Report text with a header row.

    Returns:
        Words in report order.
    """
    if not tsv or not tsv.strip():
        return []

    reader = csv.DictReader(io.StringIO(tsv), delimiter='\t', quoting=csv.QUOTE_NONE)
    header = reader.fieldnames or []
    has_line_keys = all(column in header for column in LINE_KEY_COLUMNS)

    words = []
    for row in reader:
        text = (row.get('text') or '').strip()
        if not text:
            continue

        left = _to_int(row.get('left'))
        top = _to_int(row.get('top'))
        bbox = BoundingBox(
            left,
            top,
            left + _to_int(row.get('width')),
            top + _to_int(row.get('height'))
        )

        line_key = None
        if has_line_keys:
            line_key = tuple(_to_int(row.get(column)) for column in LINE_KEY_COLUMNS)

        words.append(OCRWord(
            text=text,
            confidence=_to_float(row.get('conf')),
            bbox=bbox,
            line_key=line_key
        ))

    return words


def _group_by_line_key(words: List[OCRWord]) -> List[List[OCRWord]]:
    groups: Dict[Tuple[int, int, int, int], List[OCRWord]] = {}
    for word in words:
        groups.setdefault(word.line_key, []).append(word)
    return list(groups.values())


def _group_by_position(words: List[OCRWord]) -> List[List[OCRWord]]:
    """Cluster words whose vertical centre falls inside the current line's band."""
    groups: List[List[OCRWord]] = []
    band: Optional[BoundingBox] = None

    for word in sorted(words, key=lambda w: (w.bbox.y0, w.bbox.x0)):
        if band is not None and band.y0 <= word.bbox.center_y <= band.y1:
            groups[-1].append(word)
            band = band.union(word.bbox)
        else:
            groups.append([word])
            band = word.bbox

    return groups


def words_to_line(words: Iterable[OCRWord]) -> OcrLine:
    """
    Merge the words of one line.

    Word confidences are on Tesseract's 0-100 scale; -1 means the word has
    no score and is left out. Confidence is the mean of the scored words
    and the box is the union of the word boxes.
    """
    words = sorted(words, key=lambda w: w.bbox.x0)

    bbox = words[0].bbox
    for word in words[1:]:
        bbox = bbox.union(word.bbox)

    scores = [
        normalize_confidence(w.confidence, TESSERACT_CONFIDENCE_SCALE)
        for w in words
        if w.confidence >= 0
    ]
    return OcrLine(
        text=' '.join(w.text for w in words),
        confidence=safe_mean(scores),
        bbox=bbox
    )


def parse_tsv_report(tsv: str) -> List[OcrLine]:
    """
    Derive lines from a tabular per-word report.

    Words are grouped by (page, block, paragraph, line) when those columns
    exist, otherwise by vertical position.

    Args:
        tsv: Tab-separated report (Tesseract image_to_data format).

    Returns:
        Lines in reading order (may be empty).

    Example:
        >>> lines = parse_tsv_report(pytesseract.image_to_data(image))
    """
    words = parse_tsv_words(tsv)
    if not words:
        return []

    if all(w.line_key is not None for w in words):
        groups = _group_by_line_key(words)
    else:
        groups = _group_by_position(words)

    return [words_to_line(group) for group in groups]


def mean_word_confidence(tsv: str) -> Optional[float]:
    """Mean word confidence of a per-word report (0-100), None if it has no scored words."""
    scores = [w.confidence for w in parse_tsv_words(tsv) if w.confidence >= 0]
    if not scores:
        return None
    return safe_mean(scores)


def split_flat_text(text: str, confidence: float) -> List[OcrLine]:
    """
    Last-resort line list from a flat text blob.

    Every non-blank line gets the same overall confidence.
    """
    if not text:
        return []
    return [
        OcrLine(text=line.strip(), confidence=confidence)
        for line in text.splitlines()
        if line.strip()
    ]
