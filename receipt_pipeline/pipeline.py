"""
Receipt Pipeline Module.

This module chains the stages of receipt extraction:

    Input check -> Quality validation -> Preprocessing -> OCR -> Parsing
                                                                  |
                                                          Confidence scoring

Validation and preprocessing failures stop the run with a typed error.
An image without text or without items is not an error; it comes back as
a low-confidence result with recommendations.

Usage:
    from receipt_pipeline.pipeline import ReceiptPipeline

    with ReceiptPipeline() as pipeline:
        result = pipeline.process_file("receipt.jpg")
        print(result.to_json())

Author: ML Engineering Team
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from config import get_config
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.exceptions import ReceiptPipelineError
from receipt_pipeline.input_handler import (
    ImageProcessor,
    InputHandler,
    PreprocessingConfig,
    PreprocessingResult,
    QualityReport,
    QualityValidator
)
from receipt_pipeline.ocr_engine import OCREngine
from receipt_pipeline.parser import ParsedReceipt, ReceiptParser
from receipt_pipeline.evaluation import ConfidenceAnalysis, ConfidenceScorer

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class PipelineResult:
    """
    Output of one pipeline run.

    Attributes:
        parsed_receipt: Structured receipt
        confidence: Confidence analysis of the receipt
        quality_report: Image quality report (None when validation is off)
        preprocessing: Preprocessing audit trail
        ocr_line_count: Number of OCR lines recognized
    """
    parsed_receipt: ParsedReceipt
    confidence: ConfidenceAnalysis
    quality_report: Optional[QualityReport] = None
    preprocessing: Optional[PreprocessingResult] = None
    ocr_line_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        """JSON-serializable form: the receipt and its confidence analysis."""
        return {
            'parsed_receipt': self.parsed_receipt.to_dict(),
            'confidence': self.confidence.to_dict(),
            'quality': self.quality_report.to_dict() if self.quality_report else None,
            'preprocessing': self.preprocessing.to_dict() if self.preprocessing else None,
            'ocr_line_count': self.ocr_line_count
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


class ReceiptPipeline:
    """
    End-to-end receipt extraction.

    Stages run strictly in order. The OCR engine is the only stage holding
    state across requests; it is started on first use and released by
    close() (or by leaving the context manager).

    Attributes:
        input_handler: Content type and size check
        validator: Image quality validator
        processor: Image preprocessor
        ocr_engine: OCR adapter
        parser: Receipt parser
        scorer: Confidence scorer
        validate: Whether quality validation runs

    Example:
        >>> pipeline = ReceiptPipeline(preprocessing_level='minimal')
        >>> result = pipeline.process(image_bytes, 'image/jpeg')
        >>> result.confidence.status
        'good'
    """

    def __init__(
        self,
        ocr_engine: Optional[OCREngine] = None,
        validator: Optional[QualityValidator] = None,
        processor: Optional[ImageProcessor] = None,
        parser: Optional[ReceiptParser] = None,
        scorer: Optional[ConfidenceScorer] = None,
        validate: Optional[bool] = None,
        preprocessing_level: Optional[str] = None,
        input_handler: Optional[InputHandler] = None
    ) -> None:
        """
        Initialize the pipeline.

        Any stage may be injected; missing stages are built from settings.yaml.

        Args:
            ocr_engine: OCR adapter (shared across requests).
            validator: Quality validator.
            processor: Image preprocessor. Ignored when preprocessing_level is given.
            parser: Receipt parser.
            scorer: Confidence scorer.
            validate: Run quality validation. Defaults to validation.enabled.
            preprocessing_level: 'minimal', 'quick' or 'full'.
            input_handler: Boundary check.
        """
        self.input_handler = input_handler or InputHandler()
        self.validator = validator or QualityValidator()

        if preprocessing_level is not None:
            processor = ImageProcessor(PreprocessingConfig.from_config({'level': preprocessing_level}))
        self.processor = processor or ImageProcessor()

        self.ocr_engine = ocr_engine or OCREngine()
        self.parser = parser or ReceiptParser()
        self.scorer = scorer or ConfidenceScorer()
        self.validate = validate if validate is not None else get_config("validation.enabled", True)

        logger.debug(
            f"ReceiptPipeline ready (validate={self.validate}, "
            f"preprocessing={self.processor.config.level})"
        )

    def __enter__(self) -> 'ReceiptPipeline':
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()

    def close(self) -> None:
        """Release the OCR engine."""
        self.ocr_engine.terminate()

    def process(self, data: bytes, content_type: str) -> PipelineResult:
        """
        Run every stage on one image.

        Args:
            data: Encoded image bytes.
            content_type: Declared MIME type.

        Returns:
            PipelineResult.

        Raises:
            InputError: If the type or size is rejected at the boundary.
            QualityError: If validation is on and the image fails it.
            PreprocessingError: If preprocessing fails.
            RecognitionError: If the OCR engine cannot start or run.
        """
        raw = self.input_handler.load(data, content_type)
        logger.info(f"Processing {raw!r}")

        quality_report = None
        if self.validate:
            quality_report = self.validator.validate_or_raise(raw.data)
        else:
            logger.debug("Quality validation disabled")

        preprocessing = self.processor.preprocess(raw.data)
        lines = self.ocr_engine.recognize(preprocessing.image_bytes)
        receipt = self.parser.parse_receipt(lines)

        warnings = quality_report.warnings if quality_report else None
        analysis = self.scorer.analyze(receipt, lines, quality_warnings=warnings)

        logger.info(
            f"Pipeline complete: {len(lines)} lines, {receipt.item_count} items, "
            f"overall confidence {analysis.overall:.2f} ({analysis.status})"
        )

        return PipelineResult(
            parsed_receipt=receipt,
            confidence=analysis,
            quality_report=quality_report,
            preprocessing=preprocessing,
            ocr_line_count=len(lines)
        )

    def process_file(self, filepath: Union[str, Path]) -> PipelineResult:
        """
        Run the pipeline on an image file.

        Args:
            filepath: Path to a JPEG, PNG or WebP image.

        Returns:
            PipelineResult.
        """
        raw = self.input_handler.load_file(filepath)
        return self.process(raw.data, raw.content_type)


def run_pipeline(
    data: bytes,
    content_type: str,
    pipeline: Optional[ReceiptPipeline] = None
) -> Dict[str, Any]:
    """
    Run the pipeline and return a JSON-serializable outcome.

    Pipeline errors are returned, not raised, as
    {"kind", "message", "details", "suggestions"?}.

    Args:
        data: Encoded image bytes.
        content_type: Declared MIME type.
        pipeline: Pipeline to use. A temporary one is created and closed otherwise.

    Returns:
        Result dictionary or structured error dictionary.
    """
    owned = pipeline is None
    pipeline = pipeline or ReceiptPipeline()

    try:
        return pipeline.process(data, content_type).to_dict()
    except ReceiptPipelineError as e:
        logger.error(f"Pipeline failed ({e.kind}): {e.message}")
        return e.to_dict()
    finally:
        if owned:
            pipeline.close()
