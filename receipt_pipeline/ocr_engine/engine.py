"""
Main OCR Engine Module.

This module provides the OCREngine adapter: one long-lived recognition
backend, started lazily at most once, that turns image bytes into a list
of OcrLine objects with 0-1 confidences.

Backends answer in different shapes depending on engine and version. The
adapter extracts lines with a fixed cascade:

    1. rich per-line objects, when the backend provides them
    2. the tabular per-word report, grouped into lines
    3. as a last resort, the flat text split on newlines, every line
       tagged with the engine's overall confidence

Usage:
    from receipt_pipeline.ocr_engine import OCREngine

    with OCREngine() as engine:
        lines = engine.recognize(image_bytes)

Author: ML Engineering Team
"""

import io
from typing import Any, List, Optional, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from config import get_config
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.helpers import safe_mean
from receipt_pipeline.utils.exceptions import (
    OCREngineNotAvailableError,
    OCRProcessingError,
    RecognitionError
)
from .ocr_result import (
    EngineResponse,
    OcrLine,
    infer_confidence_scale,
    normalize_confidence,
    parse_tsv_report,
    split_flat_text
)
from .tesseract_backend import TesseractBackend

# Initialize module logger
logger = get_logger(__name__)


class OCREngine:
    """
    OCR adapter with an explicit worker lifecycle.

    The host application owns the instance: it may call ``initialize()``
    at startup (redundant calls are no-ops), share the engine across
    requests and call ``terminate()`` on shutdown. ``recognize()``
    initializes lazily if needed.

    Supported Backends:
        - tesseract: Tesseract OCR via pytesseract (default)
        - paddleocr: PaddleOCR, if installed (falls back to tesseract)

    Attributes:
        backend_name: Name of the active OCR backend
        backend: The active backend instance
        initialized: Whether the backend worker is running

    Example:
        >>> engine = OCREngine()
        >>> engine.initialize()
        >>> lines = engine.recognize(image_bytes)
        >>> print(f"{len(lines)} lines, {engine.calculate_overall_confidence(lines):.1f}%")
        >>> engine.terminate()
    """

    SUPPORTED_BACKENDS = ['tesseract', 'paddleocr']

    def __init__(
        self,
        backend: Union[str, Any, None] = None,
        language: Optional[str] = None
    ) -> None:
        """
        Initialize the OCR adapter (the backend is not started yet).

        Args:
            backend: Backend name, or a ready backend object exposing
                    start/stop/run. Defaults to ``ocr.engine``.
            language: OCR target language. Defaults to the backend setting.
        """
        self.language = language
        self.flat_text_confidence = normalize_confidence(
            get_config("ocr.flat_text_confidence", 0.5)
        )
        self.initialized = False

        if backend is None or isinstance(backend, str):
            self.backend_name = (backend or get_config("ocr.engine", "tesseract")).lower()
            if self.backend_name == "pytesseract":
                self.backend_name = "tesseract"
            self.backend = self._create_backend()
        else:
            self.backend = backend
            self.backend_name = getattr(backend, 'name', type(backend).__name__)

        logger.debug(f"OCR Engine configured with backend: {self.backend_name}")

    def _create_backend(self):
        """
        Instantiate the selected backend (not started).

        Returns:
            Backend instance.
        """
        if self.backend_name == "paddleocr":
            try:
                import paddleocr  # noqa: F401
            except ImportError:
                logger.warning("PaddleOCR not available, falling back to Tesseract")
                self.backend_name = "tesseract"
            else:
                return PaddleOCRWrapper(
                    language=self.language or get_config("ocr.paddleocr.lang", "en")
                )

        elif self.backend_name != "tesseract":
            logger.warning(
                f"Unknown backend '{self.backend_name}', falling back to tesseract"
            )
            self.backend_name = "tesseract"

        return TesseractBackend(language=self.language)

    def initialize(self) -> None:
        """
        Start the backend worker. No-op if already initialized.

        Raises:
            OCREngineNotAvailableError: If the backend cannot be started.
        """
        if self.initialized:
            return

        try:
            self.backend.start()
        except RecognitionError:
            raise
        except Exception as e:
            raise OCREngineNotAvailableError(self.backend_name, str(e))

        self.initialized = True
        logger.info(f"OCR Engine initialized with backend: {self.backend_name}")

    def terminate(self) -> None:
        """Release the backend worker. A later initialize() starts a new one."""
        if not self.initialized:
            return

        try:
            self.backend.stop()
        finally:
            self.initialized = False
            logger.info(f"OCR Engine terminated ({self.backend_name})")

    def __enter__(self) -> 'OCREngine':
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.terminate()

    def recognize(self, data: bytes) -> List[OcrLine]:
        """
        Recognize text lines in encoded image bytes.

        Args:
            data: Encoded image bytes (typically preprocessed PNG).

        Returns:
            Lines in reading order with 0-1 confidences. May be empty.

        Raises:
            OCREngineNotAvailableError: If the backend cannot be started.
            OCRProcessingError: If decoding or recognition fails.
        """
        self.initialize()

        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError, ValueError) as e:
            raise OCRProcessingError(self.backend_name, f"Failed to decode image: {e}")

        if image.mode not in ('RGB', 'L'):
            image = image.convert('RGB')

        try:
            response = self.backend.run(image)
        except RecognitionError:
            raise
        except Exception as e:
            logger.error(f"OCR processing failed: {e}")
            raise OCRProcessingError(self.backend_name, str(e))

        lines = self._extract_lines(response, image)

        logger.info(
            f"OCR completed: {len(lines)} lines, "
            f"avg confidence: {self.calculate_overall_confidence(lines):.1f}%"
        )
        return lines

    def _extract_lines(self, response: EngineResponse, image: Image.Image) -> List[OcrLine]:
        """Apply the rich -> per-word report -> flat text cascade."""
        scale = response.confidence_scale
        if scale is None:
            # One scale for the whole response, never guessed per value
            scale = infer_confidence_scale(
                [line.get('confidence') for line in response.lines or [] if isinstance(line, dict)]
                + [response.confidence]
            )

        if response.lines:
            lines = [
                line if isinstance(line, OcrLine) else OcrLine.from_dict(line, scale)
                for line in response.lines
            ]
            lines = [line for line in lines if line.text.strip()]
            if lines:
                logger.debug(f"Using {len(lines)} rich lines from {self.backend_name}")
                return lines

        if response.tsv:
            lines = parse_tsv_report(response.tsv)
            if lines:
                logger.debug(f"Rebuilt {len(lines)} lines from per-word report")
                return lines

        text = response.text
        if not text and hasattr(self.backend, 'get_raw_text'):
            try:
                text = self.backend.get_raw_text(image)
            except RecognitionError:
                raise
            except Exception as e:
                raise OCRProcessingError(self.backend_name, str(e))

        if response.confidence is not None:
            confidence = normalize_confidence(response.confidence, scale)
        else:
            confidence = self.flat_text_confidence

        lines = split_flat_text(text or '', confidence)
        if lines:
            logger.warning(
                f"No line-level data from {self.backend_name}; split flat text into "
                f"{len(lines)} lines at confidence {confidence:.2f}"
            )
        return lines

    @staticmethod
    def calculate_overall_confidence(lines: List[OcrLine]) -> float:
        """
        Mean line confidence as a percentage.

        Args:
            lines: Recognized lines.

        Returns:
            Percentage in [0, 100], 0.0 for no lines.
        """
        return round(safe_mean(line.confidence for line in lines) * 100, 2)


class PaddleOCRWrapper:
    """PaddleOCR backend answering with rich per-line objects."""

    name = "paddleocr"

    def __init__(self, language: str = "en"):
        self.language = language
        self.ocr = None

    def start(self) -> None:
        from paddleocr import PaddleOCR

        self.ocr = PaddleOCR(use_angle_cls=True, lang=self.language)

    def stop(self) -> None:
        self.ocr = None

    def run(self, image: Image.Image) -> EngineResponse:
        """Recognize text lines using PaddleOCR."""
        # PaddleOCR expects a BGR NumPy array
        bgr = np.array(image.convert('RGB'))[..., ::-1].copy()
        results = self.ocr.ocr(bgr, cls=True)

        # One page, each entry is [box_points, (text, confidence)]
        lines = []
        for page in results or []:
            for box, (text, conf) in page or []:
                lines.append({'text': str(text), 'confidence': float(conf), 'bbox': box})

        return EngineResponse(lines=lines, confidence_scale=1.0)
