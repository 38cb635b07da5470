"""
Tesseract OCR Backend.

This module wraps the Tesseract binary through pytesseract. It answers
with the tabular per-word report (``image_to_data``) so the adapter can
rebuild lines with per-line confidences, and exposes the flat text and
orientation detection as extra capabilities.

Requirements:
    - Tesseract OCR installed on the system
    - pytesseract Python package

Author: ML Engineering Team
"""

from typing import Any, Dict, List, Optional

import pytesseract
from PIL import Image

from config import get_config
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.exceptions import OCREngineNotAvailableError, OCRProcessingError
from .ocr_result import TESSERACT_CONFIDENCE_SCALE, EngineResponse, mean_word_confidence

# Initialize module logger
logger = get_logger(__name__)


class TesseractBackend:
    """
    Tesseract OCR backend implementation.

    Attributes:
        language: Tesseract language code (e.g., "eng")
        psm: Page Segmentation Mode (6 = single uniform block of text)
        oem: OCR Engine Mode (3 = default, LSTM + legacy)
        extra_config: Additional Tesseract command-line options
        cmd: Path to the tesseract executable (None = search PATH)

    Example:
        >>> backend = TesseractBackend()
        >>> backend.start()
        >>> response = backend.run(image)
        >>> backend.stop()
    """

    name = "tesseract"

    def __init__(
        self,
        language: Optional[str] = None,
        psm: Optional[int] = None,
        oem: Optional[int] = None,
        extra_config: Optional[str] = None,
        cmd: Optional[str] = None
    ) -> None:
        """Initialize the Tesseract backend with configuration."""
        self.language = language or get_config("ocr.tesseract.lang", "eng")
        self.psm = psm if psm is not None else get_config("ocr.tesseract.psm", 6)
        self.oem = oem if oem is not None else get_config("ocr.tesseract.oem", 3)
        self.extra_config = extra_config if extra_config is not None else get_config("ocr.tesseract.config", "")
        self.cmd = cmd or get_config("ocr.tesseract.cmd")
        self.version: Optional[str] = None

        # Orientation detection may run before start(), so the binary path is set here
        if self.cmd:
            pytesseract.pytesseract.tesseract_cmd = self.cmd

        logger.debug(
            f"TesseractBackend configured (lang={self.language}, "
            f"psm={self.psm}, oem={self.oem})"
        )

    def start(self) -> None:
        """
        Check that the Tesseract binary is reachable and has the configured
        language data installed.

        Raises:
            OCREngineNotAvailableError: If Tesseract is not installed or a
                configured language is missing.
        """
        try:
            self.version = str(pytesseract.get_tesseract_version())
        except (pytesseract.TesseractNotFoundError, OSError) as e:
            raise OCREngineNotAvailableError(self.name, f"not installed or not in PATH: {e}")

        try:
            installed = self.get_available_languages()
        except (pytesseract.TesseractError, OSError) as e:
            raise OCREngineNotAvailableError(self.name, f"cannot list languages: {e}")

        # Multi-language codes look like "eng+deu"
        missing = [lang for lang in self.language.split('+') if lang not in installed]
        if missing:
            self.version = None
            raise OCREngineNotAvailableError(
                self.name,
                f"language data not installed: {', '.join(missing)} "
                f"(available: {', '.join(installed) or 'none'})"
            )

        logger.info(f"Tesseract version: {self.version} (lang={self.language})")

    def stop(self) -> None:
        """Tesseract runs one process per call; there is nothing to release."""
        self.version = None

    def _build_config(self) -> str:
        """
        Build Tesseract configuration string.

        Returns:
            Configuration string for Tesseract.
        """
        config_parts = [
            f"--psm {self.psm}",
            f"--oem {self.oem}"
        ]

        if self.extra_config:
            config_parts.append(self.extra_config)

        return ' '.join(config_parts)

    def run(self, image: Image.Image) -> EngineResponse:
        """
        Recognize an image and return the per-word report.

        Args:
            image: PIL Image to process.

        Returns:
            EngineResponse with ``tsv`` and an overall ``confidence``.

        Raises:
            OCRProcessingError: If Tesseract fails.
        """
        config = self._build_config()
        logger.debug(f"Running Tesseract OCR (config: {config})")

        try:
            tsv = pytesseract.image_to_data(
                image,
                lang=self.language,
                config=config,
                output_type=pytesseract.Output.STRING
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            raise OCRProcessingError(self.name, str(e))

        return EngineResponse(
            tsv=tsv,
            confidence=mean_word_confidence(tsv),
            confidence_scale=TESSERACT_CONFIDENCE_SCALE,
            metadata={'psm': self.psm, 'oem': self.oem, 'version': self.version}
        )

    def get_raw_text(self, image: Image.Image) -> str:
        """
        Extract only the text content (no boxes or confidences).

        Args:
            image: PIL Image to process.

        Returns:
            Extracted text as string.

        Raises:
            OCRProcessingError: If Tesseract fails.
        """
        try:
            text = pytesseract.image_to_string(
                image,
                lang=self.language,
                config=self._build_config()
            )
        except (pytesseract.TesseractError, RuntimeError, OSError) as e:
            raise OCRProcessingError(self.name, str(e))
        return text.strip()

    def detect_orientation(self, image: Image.Image) -> Dict[str, Any]:
        """
        Detect page orientation with Tesseract OSD.

        Args:
            image: PIL Image to analyze.

        Returns:
            Dictionary with orientation, rotate and orientation_conf.

        Raises:
            pytesseract.TesseractError: If OSD cannot decide (e.g. too little text).
        """
        osd = pytesseract.image_to_osd(image, output_type=pytesseract.Output.DICT)
        return {
            'orientation': osd.get('orientation', 0),
            'rotate': osd.get('rotate', 0),
            'orientation_conf': osd.get('orientation_conf', 0.0),
            'script': osd.get('script', 'unknown')
        }

    def get_available_languages(self) -> List[str]:
        """
        Installed Tesseract language data, used by start() to check the
        configured language.

        Returns:
            Language codes, without the orientation-only 'osd' data.
        """
        return [lang for lang in pytesseract.get_languages() if lang != 'osd']
