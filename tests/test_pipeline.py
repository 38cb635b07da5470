import datetime
import json

import pytest

from receipt_pipeline.ocr_engine import EngineResponse, OCREngine
from receipt_pipeline.pipeline import ReceiptPipeline, run_pipeline
from receipt_pipeline.utils.exceptions import QualityError, UnsupportedImageTypeError

THIS_YEAR = datetime.date.today().year

RECEIPT_LINES = [
    {"text": "GROCERY STORE", "confidence": 95},
    {"text": f"Date: 03/14/{THIS_YEAR}", "confidence": 92},
    {"text": "Apples 2.99", "confidence": 93},
    {"text": "Bananas 1.49", "confidence": 91},
    {"text": "Subtotal 4.48", "confidence": 94},
    {"text": "Tax 0.36", "confidence": 90},
    {"text": "Total 4.84", "confidence": 96},
    {"text": "Thank you!", "confidence": 89},
]


class FakeBackend:
    name = "fake"

    def __init__(self, lines=None):
        self.lines = lines
        self.started = 0
        self.stopped = 0
        self.images = []

    def start(self):
        self.started += 1

    def stop(self):
        self.stopped += 1

    def run(self, image):
        self.images.append(image)
        return EngineResponse(lines=self.lines)


@pytest.fixture
def backend():
    return FakeBackend(RECEIPT_LINES)


@pytest.fixture
def pipeline(backend):
    return ReceiptPipeline(ocr_engine=OCREngine(backend))


def test_process_runs_every_stage(pipeline, backend, sharp_png):
    result = pipeline.process(sharp_png, "image/png")
    receipt = result.parsed_receipt

    assert [(i.name, i.price) for i in receipt.items] == [("Apples", 2.99), ("Bananas", 1.49)]
    assert receipt.merchant_name == "GROCERY STORE"
    assert receipt.date == datetime.date(THIS_YEAR, 3, 14)
    assert (receipt.subtotal, receipt.tax, receipt.total) == (4.48, 0.36, 4.84)
    assert result.ocr_line_count == len(RECEIPT_LINES)
    assert result.quality_report.is_valid
    assert result.preprocessing.operations_applied == []
    assert result.confidence.overall >= 0.7
    assert result.confidence.status == "excellent"
    assert backend.images[0].size == (1000, 700)


def test_minimal_preprocessing_is_the_default(pipeline):
    assert pipeline.processor.config.level == "minimal"


def test_result_is_json_serializable(pipeline, sharp_png):
    data = json.loads(pipeline.process(sharp_png, "image/png").to_json())

    assert data["parsed_receipt"]["total"] == 4.84
    assert data["parsed_receipt"]["date"] == f"{THIS_YEAR}-03-14"
    assert data["confidence"]["status"] == "excellent"
    assert data["quality"]["is_valid"] is True
    assert data["ocr_line_count"] == len(RECEIPT_LINES)


def test_quality_failure_stops_before_ocr(pipeline, backend, small_png):
    with pytest.raises(QualityError):
        pipeline.process(small_png, "image/png")

    assert backend.images == []


def test_validation_can_be_disabled(backend, small_png):
    pipeline = ReceiptPipeline(ocr_engine=OCREngine(backend), validate=False)

    result = pipeline.process(small_png, "image/png")

    assert result.quality_report is None
    assert len(result.parsed_receipt.items) == 2


def test_quality_warnings_reach_recommendations(backend, dark_png):
    result = ReceiptPipeline(ocr_engine=OCREngine(backend)).process(dark_png, "image/png")

    assert any(r.startswith("Image quality: Image is too dark") for r in result.confidence.recommendations)


def test_preprocessing_level_can_be_chosen(backend, sharp_png):
    pipeline = ReceiptPipeline(ocr_engine=OCREngine(backend), preprocessing_level="quick")

    result = pipeline.process(sharp_png, "image/png")

    assert result.preprocessing.operations_applied == ["grayscale", "normalization"]
    assert backend.images[0].mode == "L"


def test_no_text_is_a_poor_result_not_an_error(sharp_png):
    pipeline = ReceiptPipeline(ocr_engine=OCREngine(FakeBackend()))

    result = pipeline.process(sharp_png, "image/png")

    assert result.parsed_receipt.items == []
    assert result.confidence.status == "poor"
    assert result.confidence.recommendations


def test_unsupported_type_is_rejected_at_the_boundary(pipeline, sharp_png):
    with pytest.raises(UnsupportedImageTypeError):
        pipeline.process(sharp_png, "image/gif")


def test_process_file(pipeline, sharp_png, tmp_path):
    path = tmp_path / "receipt.png"
    path.write_bytes(sharp_png)

    result = pipeline.process_file(path)

    assert result.parsed_receipt.total == 4.84


def test_close_terminates_the_engine(backend, sharp_png):
    with ReceiptPipeline(ocr_engine=OCREngine(backend)) as pipeline:
        pipeline.process(sharp_png, "image/png")
        pipeline.process(sharp_png, "image/png")

    assert backend.started == 1
    assert backend.stopped == 1


def test_run_pipeline_returns_structured_errors(pipeline, small_png):
    error = run_pipeline(small_png, "image/png", pipeline=pipeline)

    assert error["kind"] == "validation"
    assert "resolution too low" in error["message"]
    assert error["suggestions"]
    assert error["details"]["errors"]


def test_run_pipeline_returns_result_dict(pipeline, sharp_png):
    data = run_pipeline(sharp_png, "image/png", pipeline=pipeline)

    assert data["parsed_receipt"]["merchant_name"] == "GROCERY STORE"
    assert len(data["parsed_receipt"]["items"]) == 2
