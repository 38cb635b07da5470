"""
Confidence Scorer Module.

This module grades a parsed receipt against the OCR lines it came from
and produces a single verdict plus advice for the user:

    - OCR quality: mean line confidence, share of low-confidence lines
    - Parsing quality: items extracted, items carrying a price
    - Completeness: weighted presence of total, date, merchant and items
    - Per-field confidence for total, date, merchant and items

The overall score is a weighted sum of non-negative terms, so raising any
input while holding the others fixed never lowers it.

Usage:
    from receipt_pipeline.evaluation import analyze_confidence

    analysis = analyze_confidence(receipt, ocr_lines)
    if analysis.status == 'poor':
        print('\\n'.join(analysis.recommendations))

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from config import get_section
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.helpers import clamp, safe_mean
from receipt_pipeline.ocr_engine.ocr_result import OcrLine
from receipt_pipeline.parser.line_classifier import LineClassifier
from receipt_pipeline.parser.receipt import ParsedReceipt
from receipt_pipeline.parser.receipt_parser import TOTAL_LABELS

# Initialize module logger
logger = get_logger(__name__)


# Field status buckets
CONFIDENCE_THRESHOLDS = {
    'high': 0.85,
    'medium': 0.70,
    'low': 0.50
}

# Overall status buckets, checked in order
OVERALL_STATUS_THRESHOLDS = [
    ('excellent', 0.9),
    ('good', 0.75),
    ('fair', 0.6)
]

# Confidence reported for a present field whose source line was not found
FIELD_FALLBACK_CONFIDENCE = {
    'total': 0.5,
    'date': 0.5,
    'merchant': 0.6
}

DEFAULT_COMPLETENESS_WEIGHTS = {
    'total': 0.3,
    'date': 0.2,
    'merchant': 0.2,
    'items': 0.3
}

RECOMMENDATIONS = {
    'low_ocr': "Low OCR confidence detected. Consider retaking the photo with better lighting and focus.",
    'low_lines': "Many lines have low confidence. Ensure the receipt is flat and all text is clearly visible.",
    'no_text': "No text was recognized. Make sure the image shows a receipt and is in focus.",
    'no_items': "No items were extracted. Verify the receipt format and ensure item names and prices are visible.",
    'missing_prices': "Some items are missing price information. Ensure all prices are clearly visible.",
    'no_total': "Total amount not found. Make sure the total is clearly visible in the image.",
    'no_date': "Purchase date not found. Include the date section of the receipt in the image.",
    'no_merchant': "Merchant name not detected. Include the store name/header in the image.",
    'low_overall': (
        "Overall confidence is low. For best results: use good lighting, hold the camera steady "
        "and keep the receipt flat and fully visible."
    )
}


def get_confidence_status(confidence: float) -> str:
    """
    Bucket a field confidence.

    Returns:
        'high', 'medium', 'low' or 'very-low'
    """
    if confidence >= CONFIDENCE_THRESHOLDS['high']:
        return 'high'
    if confidence >= CONFIDENCE_THRESHOLDS['medium']:
        return 'medium'
    if confidence >= CONFIDENCE_THRESHOLDS['low']:
        return 'low'
    return 'very-low'


def get_overall_status(confidence: float) -> str:
    """
    Bucket the overall confidence.

    Returns:
        'excellent', 'good', 'fair' or 'poor'
    """
    for status, threshold in OVERALL_STATUS_THRESHOLDS:
        if confidence >= threshold:
            return status
    return 'poor'


@dataclass
class ScoringConfig:
    """
    Weights of the overall confidence formula.

    Attributes:
        ocr_weight: Weight of the mean OCR line confidence
        item_weight: Weight of the mean item confidence
        completeness_weight: Weight of the completeness score
        completeness_weights: Per-field presence weights (total, date, merchant, items)
        low_line_ratio: Share of low-confidence lines that triggers advice
        priced_item_ratio: Minimum share of items with a price
    """
    ocr_weight: float = 0.3
    item_weight: float = 0.3
    completeness_weight: float = 0.4
    completeness_weights: Dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_COMPLETENESS_WEIGHTS)
    )
    low_line_ratio: float = 0.3
    priced_item_ratio: float = 0.7

    def __post_init__(self) -> None:
        weights = [self.ocr_weight, self.item_weight, self.completeness_weight]
        weights.extend(self.completeness_weights.values())
        if any(weight < 0 for weight in weights):
            raise ValueError("Scoring weights must be non-negative")

    @classmethod
    def from_config(cls, overrides: Optional[Dict[str, Any]] = None) -> 'ScoringConfig':
        """Build from the scoring section of settings.yaml plus overrides."""
        values = dict(get_section("scoring"))
        values.update(overrides or {})

        completeness = dict(DEFAULT_COMPLETENESS_WEIGHTS)
        completeness.update(values.pop('completeness_weights', None) or {})

        known = {name for name in cls.__dataclass_fields__ if name != 'completeness_weights'}
        kwargs = {key: value for key, value in values.items() if key in known and value is not None}
        return cls(completeness_weights=completeness, **kwargs)


@dataclass
class FieldConfidence:
    """Confidence of one extracted field."""
    field: str
    confidence: float
    status: str
    has_value: bool

    def to_dict(self) -> Dict[str, Any]:
        return {
            'field': self.field,
            'confidence': round(self.confidence, 4),
            'status': self.status,
            'has_value': self.has_value
        }


@dataclass
class ConfidenceAnalysis:
    """
    Detailed confidence analysis of one receipt.

    Attributes:
        overall: Weighted overall confidence in [0, 1]
        status: excellent / good / fair / poor
        fields: Per-field confidence for total, date, merchant, items
        ocr_quality: avg_confidence, low_confidence_lines, total_lines
        parsing_quality: items_extracted, items_with_prices, avg_item_confidence
        completeness: has_total, has_date, has_merchant, has_items, score
        recommendations: Advice for the user, in a fixed order
    """
    overall: float
    status: str
    fields: List[FieldConfidence] = field(default_factory=list)
    ocr_quality: Dict[str, Any] = field(default_factory=dict)
    parsing_quality: Dict[str, Any] = field(default_factory=dict)
    completeness: Dict[str, Any] = field(default_factory=dict)
    recommendations: List[str] = field(default_factory=list)

    def get_field(self, name: str) -> Optional[FieldConfidence]:
        for item in self.fields:
            if item.field == name:
                return item
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'overall': round(self.overall, 4),
            'status': self.status,
            'fields': [item.to_dict() for item in self.fields],
            'ocr_quality': dict(self.ocr_quality),
            'parsing_quality': dict(self.parsing_quality),
            'completeness': dict(self.completeness),
            'recommendations': list(self.recommendations)
        }


def _as_line(line: Any) -> OcrLine:
    if isinstance(line, OcrLine):
        return line
    if isinstance(line, dict):
        return OcrLine.from_dict(line)
    return OcrLine(text=str(getattr(line, 'text', '') or ''), confidence=getattr(line, 'confidence', 0.0))


class ConfidenceScorer:
    """
    Grades parsed receipts.

    The scorer keeps no state between calls.

    Example:
        >>> scorer = ConfidenceScorer()
        >>> analysis = scorer.analyze(receipt, ocr_lines)
        >>> analysis.status
        'good'
    """

    def __init__(
        self,
        config: Optional[ScoringConfig] = None,
        classifier: Optional[LineClassifier] = None
    ) -> None:
        """
        Initialize the scorer.

        Args:
            config: Scoring weights. Defaults to the scoring section of settings.yaml.
            classifier: Line classifier used to locate field source lines.
        """
        self.config = config or ScoringConfig.from_config()
        self.classifier = classifier or LineClassifier()

    def analyze(
        self,
        receipt: ParsedReceipt,
        lines: Iterable[Any],
        quality_warnings: Optional[List[str]] = None
    ) -> ConfidenceAnalysis:
        """
        Perform the full confidence analysis.

        Args:
            receipt: Parser output.
            lines: OCR lines the receipt was parsed from.
            quality_warnings: Image quality warnings to turn into advice.

        Returns:
            ConfidenceAnalysis. Never raises on empty input.
        """
        lines = [_as_line(line) for line in (lines or [])]

        ocr_quality = self.analyze_ocr_quality(lines)
        parsing_quality = self.analyze_parsing_quality(receipt)
        completeness = self.analyze_completeness(receipt)
        fields = self.calculate_field_confidence(receipt, lines)

        overall = clamp(
            self.config.ocr_weight * ocr_quality['avg_confidence']
            + self.config.item_weight * parsing_quality['avg_item_confidence']
            + self.config.completeness_weight * completeness['score']
        )

        analysis = ConfidenceAnalysis(
            overall=overall,
            status=get_overall_status(overall),
            fields=fields,
            ocr_quality=ocr_quality,
            parsing_quality=parsing_quality,
            completeness=completeness
        )
        analysis.recommendations = self.generate_recommendations(analysis, quality_warnings)

        logger.info(
            f"Confidence analysis: overall={overall:.2f} ({analysis.status}), "
            f"{len(analysis.recommendations)} recommendations"
        )
        return analysis

    def analyze_ocr_quality(self, lines: List[OcrLine]) -> Dict[str, Any]:
        if not lines:
            return {'avg_confidence': 0.0, 'low_confidence_lines': 0, 'total_lines': 0}

        low = sum(1 for line in lines if line.confidence < CONFIDENCE_THRESHOLDS['medium'])
        return {
            'avg_confidence': round(safe_mean(line.confidence for line in lines), 4),
            'low_confidence_lines': low,
            'total_lines': len(lines)
        }

    def analyze_parsing_quality(self, receipt: ParsedReceipt) -> Dict[str, Any]:
        items = receipt.items
        return {
            'items_extracted': len(items),
            'items_with_prices': sum(1 for item in items if item.price is not None),
            'avg_item_confidence': round(safe_mean(item.confidence for item in items), 4)
        }

    def analyze_completeness(self, receipt: ParsedReceipt) -> Dict[str, Any]:
        """Weighted presence score over total, date, merchant and items."""
        present = {
            'total': receipt.total is not None,
            'date': receipt.date is not None,
            'merchant': receipt.merchant_name is not None,
            'items': len(receipt.items) > 0
        }
        weights = self.config.completeness_weights
        score = sum(weights.get(name, 0.0) for name, has_value in present.items() if has_value)

        return {
            'has_total': present['total'],
            'has_date': present['date'],
            'has_merchant': present['merchant'],
            'has_items': present['items'],
            'score': round(clamp(score), 4)
        }

    def calculate_field_confidence(
        self,
        receipt: ParsedReceipt,
        lines: List[OcrLine]
    ) -> List[FieldConfidence]:
        """
        Confidence of the line each field was read from.

        Absent fields score 0 ('very-low'). Present fields whose source line
        cannot be located fall back to a fixed confidence.
        """
        located = {
            'total': self._locate_total(receipt, lines) if receipt.total is not None else None,
            'date': self._locate_date(receipt, lines) if receipt.date is not None else None,
            'merchant': self._locate_merchant(receipt, lines) if receipt.merchant_name else None
        }
        present = {
            'total': receipt.total is not None,
            'date': receipt.date is not None,
            'merchant': receipt.merchant_name is not None
        }

        fields = []
        for name in ('total', 'date', 'merchant'):
            if not present[name]:
                fields.append(FieldConfidence(name, 0.0, 'very-low', False))
                continue
            line = located[name]
            confidence = line.confidence if line is not None else FIELD_FALLBACK_CONFIDENCE[name]
            fields.append(FieldConfidence(name, confidence, get_confidence_status(confidence), True))

        if receipt.items:
            confidence = safe_mean(item.confidence for item in receipt.items)
            fields.append(FieldConfidence('items', confidence, get_confidence_status(confidence), True))
        else:
            fields.append(FieldConfidence('items', 0.0, 'very-low', False))

        return fields

    def _locate_total(self, receipt: ParsedReceipt, lines: List[OcrLine]) -> Optional[OcrLine]:
        # Bottom-most total-like line, as in the parser
        for index in range(len(lines) - 1, -1, -1):
            match = self.classifier.match_amount_label(lines[index].text)
            if match is None or match.label not in TOTAL_LABELS:
                continue
            if match.amount == receipt.total:
                return lines[index]
            following = lines[index + 1] if index + 1 < len(lines) else None
            if match.amount is None and following is not None and self.classifier.is_price_only(following.text):
                if self.classifier.amounts.extract_amount(following.text) == receipt.total:
                    return lines[index]
        return None

    def _locate_date(self, receipt: ParsedReceipt, lines: List[OcrLine]) -> Optional[OcrLine]:
        for line in lines:
            if self.classifier.match_date(line.text) == receipt.date:
                return line
        return None

    def _locate_merchant(self, receipt: ParsedReceipt, lines: List[OcrLine]) -> Optional[OcrLine]:
        for line in lines:
            if line.text.strip() == receipt.merchant_name:
                return line
        return None

    def generate_recommendations(
        self,
        analysis: ConfidenceAnalysis,
        quality_warnings: Optional[List[str]] = None
    ) -> List[str]:
        """Deterministic advice derived from threshold breaches."""
        recommendations = []
        ocr = analysis.ocr_quality
        parsing = analysis.parsing_quality
        completeness = analysis.completeness

        if ocr['total_lines'] == 0:
            recommendations.append(RECOMMENDATIONS['no_text'])
        else:
            if ocr['avg_confidence'] < CONFIDENCE_THRESHOLDS['medium']:
                recommendations.append(RECOMMENDATIONS['low_ocr'])
            if ocr['low_confidence_lines'] / ocr['total_lines'] > self.config.low_line_ratio:
                recommendations.append(RECOMMENDATIONS['low_lines'])

        if parsing['items_extracted'] == 0:
            recommendations.append(RECOMMENDATIONS['no_items'])
        elif parsing['items_with_prices'] < parsing['items_extracted'] * self.config.priced_item_ratio:
            recommendations.append(RECOMMENDATIONS['missing_prices'])

        if not completeness['has_total']:
            recommendations.append(RECOMMENDATIONS['no_total'])
        if not completeness['has_date']:
            recommendations.append(RECOMMENDATIONS['no_date'])
        if not completeness['has_merchant']:
            recommendations.append(RECOMMENDATIONS['no_merchant'])

        if analysis.overall < CONFIDENCE_THRESHOLDS['medium']:
            recommendations.append(RECOMMENDATIONS['low_overall'])

        for warning in quality_warnings or []:
            recommendations.append(f"Image quality: {warning}")

        return recommendations


def analyze_confidence(
    receipt: ParsedReceipt,
    lines: Iterable[Any],
    quality_warnings: Optional[List[str]] = None,
    config: Optional[ScoringConfig] = None
) -> ConfidenceAnalysis:
    """
    Convenience function to analyze a parsed receipt.

    Args:
        receipt: Parser output.
        lines: OCR lines.
        quality_warnings: Optional image quality warnings.
        config: Optional scoring weights.

    Returns:
        ConfidenceAnalysis.
    """
    return ConfidenceScorer(config).analyze(receipt, lines, quality_warnings)


def meets_quality_threshold(analysis: ConfidenceAnalysis, threshold: float = 0.5) -> bool:
    """True if the overall confidence reaches the threshold."""
    return analysis.overall >= threshold
