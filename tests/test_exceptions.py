import pytest

from receipt_pipeline.utils.exceptions import (
    EmptyImageError,
    ImageTooLargeError,
    InputError,
    OCREngineNotAvailableError,
    OCRProcessingError,
    PreprocessingError,
    QualityError,
    ReceiptPipelineError,
    RecognitionError,
    UnsupportedImageTypeError,
    ValidationError,
)


@pytest.mark.parametrize(
    "error, kind, parent",
    [
        (UnsupportedImageTypeError("image/gif", ["image/png"]), "input", InputError),
        (ImageTooLargeError(20 * 1024 * 1024, 10 * 1024 * 1024), "input", InputError),
        (EmptyImageError(), "input", InputError),
        (QualityError(["Image is too blurry"]), "validation", ValidationError),
        (PreprocessingError("deskew", "osd failed"), "preprocessing", ReceiptPipelineError),
        (OCREngineNotAvailableError("tesseract", "missing"), "recognition", RecognitionError),
        (OCRProcessingError("tesseract", "crashed"), "recognition", RecognitionError),
    ],
)
def test_hierarchy_and_kind(error, kind, parent):
    assert isinstance(error, parent)
    assert isinstance(error, ReceiptPipelineError)
    assert error.kind == kind
    assert error.to_dict()["kind"] == kind


def test_to_dict_omits_empty_suggestions():
    data = EmptyImageError().to_dict()

    assert data == {"kind": "input", "message": "No image data provided", "details": {}}


def test_quality_error_carries_checks():
    error = QualityError(["too blurry"], ["too dark"], ["Use better lighting"])

    assert error.errors == ["too blurry"]
    assert error.warnings == ["too dark"]
    assert error.to_dict() == {
        "kind": "validation",
        "message": "Image validation failed: too blurry",
        "details": {"errors": ["too blurry"], "warnings": ["too dark"]},
        "suggestions": ["Use better lighting"],
    }


def test_image_too_large_message():
    error = ImageTooLargeError(15 * 1024 * 1024, 10 * 1024 * 1024)

    assert str(error).startswith("Image size 15.00MB exceeds 10MB limit")


def test_preprocessing_error_names_operation():
    error = PreprocessingError("normalization", "bad mode")

    assert error.operation == "normalization"
    assert error.message == "Image preprocessing failed during 'normalization': bad mode"
