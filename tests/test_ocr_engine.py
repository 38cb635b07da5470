import sys

import pytesseract
import pytest

from receipt_pipeline.ocr_engine import (
    EngineResponse,
    OCREngine,
    OcrLine,
    TesseractBackend,
    normalize_confidence,
    parse_tsv_report,
    split_flat_text,
)
from receipt_pipeline.parser import parse_receipt
from receipt_pipeline.utils.exceptions import OCREngineNotAvailableError, OCRProcessingError

TSV_HEADER = "level\tpage_num\tblock_num\tpar_num\tline_num\tword_num\tleft\ttop\twidth\theight\tconf\ttext"


def _tsv(*rows):
    return "\n".join([TSV_HEADER] + ["\t".join(str(v) for v in row) for row in rows])


RECEIPT_TSV = _tsv(
    (1, 1, 0, 0, 0, 0, 0, 0, 800, 600, -1, ""),
    (4, 1, 1, 1, 1, 0, 10, 10, 300, 30, -1, ""),
    (5, 1, 1, 1, 1, 1, 10, 10, 100, 30, 96, "GROCERY"),
    (5, 1, 1, 1, 1, 2, 120, 10, 100, 30, 90, "STORE"),
    (4, 1, 1, 1, 2, 0, 10, 50, 300, 30, -1, ""),
    (5, 1, 1, 1, 2, 1, 10, 50, 100, 30, 88, "Apples"),
    (5, 1, 1, 1, 2, 2, 200, 50, 60, 30, 92, "2.99"),
)


class FakeBackend:
    name = "fake"

    def __init__(self, response=None, start_error=None, run_error=None):
        self.response = response or EngineResponse()
        self.start_error = start_error
        self.run_error = run_error
        self.starts = 0
        self.stops = 0
        self.runs = 0

    def start(self):
        self.starts += 1
        if self.start_error:
            raise self.start_error

    def stop(self):
        self.stops += 1

    def run(self, image):
        self.runs += 1
        if self.run_error:
            raise self.run_error
        return self.response


@pytest.mark.parametrize(
    "value, expected",
    [(96.5, 0.965), (0.8, 0.8), (100, 1.0), (-1, 0.0), ("n/a", 0.0), (None, 0.0), (float("nan"), 0.0)],
)
def test_normalize_confidence(value, expected):
    assert normalize_confidence(value) == pytest.approx(expected)


@pytest.mark.parametrize(
    "value, scale, expected",
    [(1, 100, 0.01), (0.9, 100, 0.009), (95, 100, 0.95), (0.9, 1, 0.9), (95, 1, 1.0), (float("nan"), 100, 0.0)],
)
def test_normalize_confidence_with_known_scale(value, scale, expected):
    assert normalize_confidence(value, scale) == pytest.approx(expected)


def test_rich_lines_are_used_first(sharp_png):
    backend = FakeBackend(EngineResponse(
        lines=[{"text": "GROCERY STORE", "confidence": 95}, {"text": "  ", "confidence": 90}],
        tsv=RECEIPT_TSV,
        text="ignored",
    ))

    lines = OCREngine(backend).recognize(sharp_png)

    assert lines == [OcrLine("GROCERY STORE", 0.95)]


def test_tsv_report_rebuilds_lines(sharp_png):
    lines = OCREngine(FakeBackend(EngineResponse(tsv=RECEIPT_TSV))).recognize(sharp_png)

    assert [line.text for line in lines] == ["GROCERY STORE", "Apples 2.99"]
    assert lines[0].confidence == pytest.approx(0.93)
    assert lines[1].confidence == pytest.approx(0.90)
    assert lines[0].bbox.to_dict() == {"x0": 10, "y0": 10, "x1": 220, "y1": 40}


def test_tsv_without_line_columns_groups_by_position():
    tsv = "left\ttop\twidth\theight\tconf\ttext\n" \
          "10\t10\t50\t20\t90\tMilk\n" \
          "100\t12\t50\t20\t80\t3.49\n" \
          "10\t60\t50\t20\t70\tTotal\n"

    lines = parse_tsv_report(tsv)

    assert [line.text for line in lines] == ["Milk 3.49", "Total"]
    assert lines[0].confidence == pytest.approx(0.85)


def test_flat_text_uses_engine_confidence(sharp_png):
    backend = FakeBackend(EngineResponse(text="Apples 2.99\n\nTotal 2.99\n", confidence=80))

    lines = OCREngine(backend).recognize(sharp_png)

    assert lines == [OcrLine("Apples 2.99", 0.8), OcrLine("Total 2.99", 0.8)]


def test_flat_text_without_confidence_uses_configured_fallback(sharp_png):
    lines = OCREngine(FakeBackend(EngineResponse(text="Apples 2.99"))).recognize(sharp_png)

    assert lines == [OcrLine("Apples 2.99", 0.5)]


def test_empty_response_is_not_an_error(sharp_png):
    assert OCREngine(FakeBackend()).recognize(sharp_png) == []


def test_split_flat_text_skips_blank_lines():
    assert split_flat_text(" A \n\n B", 0.7) == [OcrLine("A", 0.7), OcrLine("B", 0.7)]
    assert split_flat_text("", 0.7) == []


def test_initialize_is_idempotent(sharp_png):
    backend = FakeBackend(EngineResponse(text="x"))
    engine = OCREngine(backend)

    engine.initialize()
    engine.initialize()
    engine.recognize(sharp_png)

    assert backend.starts == 1
    assert engine.initialized


def test_terminate_releases_and_allows_restart():
    backend = FakeBackend()
    engine = OCREngine(backend)

    engine.terminate()
    assert backend.stops == 0

    with engine:
        assert engine.initialized
    assert not engine.initialized
    assert backend.stops == 1

    engine.initialize()
    assert backend.starts == 2


def test_start_failure_is_reported_as_not_available():
    engine = OCREngine(FakeBackend(start_error=RuntimeError("worker crashed")))

    with pytest.raises(OCREngineNotAvailableError, match="fake"):
        engine.initialize()
    assert not engine.initialized


def test_run_failure_is_reported_not_retried(sharp_png):
    backend = FakeBackend(run_error=RuntimeError("boom"))

    with pytest.raises(OCRProcessingError, match="boom") as exc_info:
        OCREngine(backend).recognize(sharp_png)

    assert backend.runs == 1
    assert exc_info.value.kind == "recognition"


def test_undecodable_image_raises_processing_error():
    with pytest.raises(OCRProcessingError, match="decode"):
        OCREngine(FakeBackend()).recognize(b"not an image")


def test_unknown_backend_falls_back_to_tesseract():
    engine = OCREngine("abbyy")

    assert engine.backend_name == "tesseract"
    assert isinstance(engine.backend, TesseractBackend)


def test_paddleocr_falls_back_when_not_installed(monkeypatch):
    monkeypatch.setitem(sys.modules, "paddleocr", None)

    engine = OCREngine("paddleocr")

    assert engine.backend_name == "tesseract"


def test_overall_confidence_is_a_percentage():
    lines = [OcrLine("a", 0.9), OcrLine("b", 0.7)]

    assert OCREngine.calculate_overall_confidence(lines) == 80.0
    assert OCREngine.calculate_overall_confidence([]) == 0.0


def test_low_tesseract_word_scores_stay_low():
    tsv = _tsv(
        (5, 1, 1, 1, 1, 1, 10, 10, 100, 30, 1, "GarbIe"),
        (5, 1, 1, 1, 1, 2, 120, 10, 60, 30, 0.9, "7.49"),
        (5, 1, 1, 1, 2, 1, 10, 50, 100, 30, -1, "~"),
    )

    lines = parse_tsv_report(tsv)

    assert lines[0].text == "GarbIe 7.49"
    assert lines[0].confidence == pytest.approx(0.0095)
    assert lines[1].confidence == 0.0


def test_low_confidence_tsv_line_is_not_an_item(sharp_png):
    tsv = _tsv(
        (5, 1, 1, 1, 1, 1, 10, 10, 100, 30, 1, "GarbIe"),
        (5, 1, 1, 1, 1, 2, 120, 10, 60, 30, 0.9, "7.49"),
    )
    lines = OCREngine(FakeBackend(EngineResponse(tsv=tsv))).recognize(sharp_png)

    assert lines[0].confidence < 0.05
    assert parse_receipt(lines).items == []


def test_rich_lines_use_the_declared_scale(sharp_png):
    backend = FakeBackend(EngineResponse(
        lines=[{"text": "Apples 2.99", "confidence": 0.9}, {"text": "Total 2.99", "confidence": 1}],
        confidence_scale=100,
    ))

    lines = OCREngine(backend).recognize(sharp_png)

    assert [line.confidence for line in lines] == pytest.approx([0.009, 0.01])


def test_undeclared_scale_is_decided_once_per_response(sharp_png):
    backend = FakeBackend(EngineResponse(
        lines=[{"text": "GROCERY STORE", "confidence": 95}, {"text": "GarbIe", "confidence": 0.9}],
    ))

    lines = OCREngine(backend).recognize(sharp_png)

    assert [line.confidence for line in lines] == pytest.approx([0.95, 0.009])


def test_tesseract_backend_declares_percentage_scale(monkeypatch):
    tsv = _tsv((5, 1, 1, 1, 1, 1, 10, 10, 100, 30, 80, "Milk"))
    monkeypatch.setattr(pytesseract, "image_to_data", lambda *args, **kwargs: tsv)

    response = TesseractBackend(language="eng").run(object())

    assert response.confidence_scale == 100
    assert response.confidence == pytest.approx(80.0)


@pytest.fixture
def fake_tesseract(monkeypatch):
    monkeypatch.setattr(pytesseract, "get_tesseract_version", lambda: "5.3.0")
    monkeypatch.setattr(pytesseract, "get_languages", lambda *args, **kwargs: ["eng", "deu", "osd"])


def test_start_checks_installed_languages(fake_tesseract):
    backend = TesseractBackend(language="eng+deu")

    backend.start()

    assert backend.version == "5.3.0"
    assert backend.get_available_languages() == ["eng", "deu"]


def test_start_fails_when_language_data_is_missing(fake_tesseract):
    engine = OCREngine(TesseractBackend(language="eng+fra"))

    with pytest.raises(OCREngineNotAvailableError) as exc_info:
        engine.initialize()

    assert "fra" in exc_info.value.details["reason"]
    assert "eng" in exc_info.value.details["reason"]
    assert not engine.initialized


def test_tesseract_cmd_is_applied_before_start(monkeypatch):
    monkeypatch.setattr(pytesseract.pytesseract, "tesseract_cmd", "tesseract")

    TesseractBackend(cmd="/opt/tesseract/bin/tesseract")

    assert pytesseract.pytesseract.tesseract_cmd == "/opt/tesseract/bin/tesseract"
