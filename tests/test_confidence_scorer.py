import datetime

import pytest

from receipt_pipeline.evaluation import (
    ConfidenceScorer,
    ScoringConfig,
    analyze_confidence,
    get_confidence_status,
    get_overall_status,
    meets_quality_threshold,
)
from receipt_pipeline.ocr_engine import OcrLine
from receipt_pipeline.parser import ExtractedItem, ParsedReceipt, ReceiptParser

THIS_YEAR = datetime.date.today().year


def _receipt(items=1, priced=True, total=True, date=True, merchant=True, item_confidence=0.8):
    return ParsedReceipt(
        items=[
            ExtractedItem(name=f"Item {i}", price=1.99 if priced else None, confidence=item_confidence)
            for i in range(items)
        ],
        total=9.99 if total else None,
        date=datetime.date(THIS_YEAR, 1, 2) if date else None,
        merchant_name="GROCERY STORE" if merchant else None,
    )


def _lines(confidence, count=5):
    return [OcrLine(f"line {i}", confidence) for i in range(count)]


@pytest.fixture
def scorer():
    return ConfidenceScorer(ScoringConfig())


@pytest.mark.parametrize(
    "value, status",
    [(0.95, "high"), (0.85, "high"), (0.7, "medium"), (0.5, "low"), (0.49, "very-low")],
)
def test_confidence_status(value, status):
    assert get_confidence_status(value) == status


@pytest.mark.parametrize(
    "value, status",
    [(0.9, "excellent"), (0.8, "good"), (0.6, "fair"), (0.59, "poor")],
)
def test_overall_status(value, status):
    assert get_overall_status(value) == status


def test_nothing_found_is_poor_with_recommendations(scorer):
    analysis = scorer.analyze(ParsedReceipt(), [])

    assert analysis.overall == 0.0
    assert analysis.status == "poor"
    assert analysis.recommendations
    assert any("No text was recognized" in r for r in analysis.recommendations)
    assert any("No items were extracted" in r for r in analysis.recommendations)
    assert all(f.status == "very-low" and not f.has_value for f in analysis.fields)


def test_overall_formula(scorer):
    analysis = scorer.analyze(_receipt(), _lines(0.9))

    assert analysis.ocr_quality["avg_confidence"] == pytest.approx(0.9)
    assert analysis.parsing_quality["avg_item_confidence"] == pytest.approx(0.8)
    assert analysis.completeness["score"] == pytest.approx(1.0)
    assert analysis.overall == pytest.approx(0.3 * 0.9 + 0.3 * 0.8 + 0.4 * 1.0)
    assert analysis.status == "excellent"


def test_monotonic_in_ocr_confidence(scorer):
    receipt = _receipt()
    scores = [scorer.analyze(receipt, _lines(c)).overall for c in (0.2, 0.5, 0.8, 1.0)]

    assert scores == sorted(scores)


def test_monotonic_in_priced_items(scorer):
    lines = _lines(0.8)
    scores = [scorer.analyze(_receipt(items=n), lines).overall for n in (0, 1, 3, 6)]

    assert scores == sorted(scores)


@pytest.mark.parametrize("field", ["total", "date", "merchant", "items"])
def test_monotonic_in_completeness(scorer, field):
    lines = _lines(0.8)
    without = dict(total=True, date=True, merchant=True, items=1)
    without[field] = 0 if field == "items" else False

    lower = scorer.analyze(_receipt(**without), lines).overall
    higher = scorer.analyze(_receipt(), lines).overall

    assert higher >= lower


def test_weights_come_from_settings():
    config = ScoringConfig.from_config({"ocr_weight": 0.5})

    assert config.ocr_weight == 0.5
    assert config.item_weight == 0.3
    assert config.completeness_weights == {"total": 0.3, "date": 0.2, "merchant": 0.2, "items": 0.3}


def test_negative_weights_are_rejected():
    with pytest.raises(ValueError):
        ScoringConfig(ocr_weight=-0.1)


def test_field_confidence_uses_source_lines():
    lines = [
        OcrLine("GROCERY STORE", 0.97),
        OcrLine(f"Date: 01/02/{THIS_YEAR}", 0.74),
        OcrLine("Apples 2.99", 0.9),
        OcrLine("Total 2.99", 0.88),
    ]
    receipt = ReceiptParser().parse_receipt(lines)

    analysis = analyze_confidence(receipt, lines)

    assert analysis.get_field("merchant").confidence == pytest.approx(0.97)
    assert analysis.get_field("merchant").status == "high"
    assert analysis.get_field("date").confidence == pytest.approx(0.74)
    assert analysis.get_field("date").status == "medium"
    assert analysis.get_field("total").confidence == pytest.approx(0.88)
    assert analysis.get_field("items").confidence == pytest.approx(0.9)


def test_unlocated_fields_fall_back(scorer):
    analysis = scorer.analyze(_receipt(), _lines(0.9))

    assert analysis.get_field("total").confidence == 0.5
    assert analysis.get_field("date").confidence == 0.5
    assert analysis.get_field("merchant").confidence == 0.6


def test_recommendations_for_missing_prices_and_low_lines(scorer):
    analysis = scorer.analyze(_receipt(items=3, priced=False), _lines(0.4))

    assert any("missing price" in r for r in analysis.recommendations)
    assert any("Many lines have low confidence" in r for r in analysis.recommendations)
    assert any("Low OCR confidence" in r for r in analysis.recommendations)


def test_quality_warnings_become_recommendations(scorer):
    analysis = scorer.analyze(_receipt(), _lines(0.95), quality_warnings=["Image is too dark"])

    assert analysis.recommendations[-1] == "Image quality: Image is too dark"


def test_good_receipt_has_no_recommendations(scorer):
    analysis = scorer.analyze(_receipt(item_confidence=0.95), _lines(0.95))

    assert analysis.status == "excellent"
    assert analysis.recommendations == []


def test_meets_quality_threshold(scorer):
    analysis = scorer.analyze(_receipt(), _lines(0.9))

    assert meets_quality_threshold(analysis)
    assert not meets_quality_threshold(analysis, threshold=0.99)


def test_to_dict_shape(scorer):
    data = scorer.analyze(_receipt(), _lines(0.9)).to_dict()

    assert set(data) == {
        "overall", "status", "fields", "ocr_quality", "parsing_quality", "completeness", "recommendations"
    }
    assert [f["field"] for f in data["fields"]] == ["total", "date", "merchant", "items"]
