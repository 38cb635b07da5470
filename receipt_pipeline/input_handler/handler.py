"""
Main Input Handler Module.

This module guards the boundary between the hosting application and the
receipt pipeline. Image bytes are checked against the content-type
allow-list and the size ceiling before any stage runs.

Usage:
    from receipt_pipeline.input_handler import InputHandler

    handler = InputHandler()
    raw = handler.load(upload_bytes, "image/jpeg")

    # From disk (content type guessed from the extension)
    raw = handler.load_file("receipt.png")

Classes:
    RawImage: Image bytes plus declared MIME type
    InputHandler: Allow-list and size-ceiling checks

Author: ML Engineering Team
"""

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from config import get_config
from receipt_pipeline.utils.logger import get_logger
from receipt_pipeline.utils.helpers import format_file_size
from receipt_pipeline.utils.exceptions import (
    EmptyImageError,
    ImageTooLargeError,
    InputError,
    UnsupportedImageTypeError
)

# Initialize module logger
logger = get_logger(__name__)


DEFAULT_SUPPORTED_TYPES = ['image/jpeg', 'image/png', 'image/webp']
DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

# Non-standard MIME names seen from browsers and phones
CONTENT_TYPE_ALIASES = {
    'image/jpg': 'image/jpeg',
    'image/pjpeg': 'image/jpeg',
    'image/x-png': 'image/png',
}


@dataclass
class RawImage:
    """
    Image bytes accepted at the pipeline boundary.

    Attributes:
        data: Encoded image bytes
        content_type: Canonical MIME type (aliases resolved)
    """
    data: bytes
    content_type: str

    @property
    def size(self) -> int:
        return len(self.data)

    def to_dict(self) -> Dict[str, Any]:
        return {'content_type': self.content_type, 'size': self.size}

    def __repr__(self) -> str:
        return f"RawImage(type='{self.content_type}', size={format_file_size(self.size)})"


class InputHandler:
    """
    Entry check for receipt images.

    Attributes:
        supported_types: Allowed canonical MIME types
        max_file_size: Size ceiling in bytes

    Example:
        >>> handler = InputHandler()
        >>> raw = handler.load(b"...", "image/jpg")
        >>> raw.content_type
        'image/jpeg'
    """

    def __init__(
        self,
        supported_types: Optional[List[str]] = None,
        max_file_size: Optional[int] = None
    ) -> None:
        """
        Initialize the InputHandler.

        Args:
            supported_types: Allowed MIME types. Defaults to input.supported_types.
            max_file_size: Size ceiling in bytes. Defaults to input.max_file_size.
        """
        if supported_types is None:
            supported_types = get_config("input.supported_types", DEFAULT_SUPPORTED_TYPES)
        if max_file_size is None:
            max_file_size = get_config("input.max_file_size", DEFAULT_MAX_FILE_SIZE)

        self.supported_types = [t.lower() for t in supported_types]
        self.max_file_size = int(max_file_size)

        logger.debug(
            f"InputHandler initialized (types={self.supported_types}, "
            f"max_size={format_file_size(self.max_file_size)})"
        )

    @staticmethod
    def normalize_content_type(content_type: Optional[str]) -> str:
        """
        Canonicalize a declared MIME type.

        Parameters after ';' are dropped and known aliases resolved.

        Args:
            content_type: Declared content type, e.g. "image/JPG; q=1".

        Returns:
            Canonical lowercase MIME type ('' for None).
        """
        if not content_type:
            return ''
        mime = content_type.split(';', 1)[0].strip().lower()
        return CONTENT_TYPE_ALIASES.get(mime, mime)

    def validate_image_type(self, content_type: Optional[str]) -> bool:
        """Return True if content_type (or its alias) is on the allow-list."""
        return self.normalize_content_type(content_type) in self.supported_types

    def validate_file_size(self, size: int) -> bool:
        """Return True if size is non-zero and within the ceiling."""
        return 0 < size <= self.max_file_size

    def load(self, data: bytes, content_type: str) -> RawImage:
        """
        Check image bytes at the boundary.

        Args:
            data: Encoded image bytes.
            content_type: Declared MIME type.

        Returns:
            RawImage with the canonical content type.

        Raises:
            UnsupportedImageTypeError: If the type is not on the allow-list.
            EmptyImageError: If data is empty.
            ImageTooLargeError: If data exceeds the size ceiling.
        """
        if not self.validate_image_type(content_type):
            logger.warning(f"Rejected unsupported content type: {content_type}")
            raise UnsupportedImageTypeError(content_type, self.supported_types)

        if not data:
            logger.warning("Rejected empty image buffer")
            raise EmptyImageError()

        size = len(data)
        if size > self.max_file_size:
            logger.warning(
                f"Rejected image of {format_file_size(size)} "
                f"(limit {format_file_size(self.max_file_size)})"
            )
            raise ImageTooLargeError(size, self.max_file_size)

        raw = RawImage(data=bytes(data), content_type=self.normalize_content_type(content_type))
        logger.debug(f"Accepted {raw!r}")
        return raw

    def load_file(self, filepath: Union[str, Path]) -> RawImage:
        """
        Read an image from disk and check it like an upload.

        The content type is guessed from the file extension.

        Args:
            filepath: Path to the image file.

        Returns:
            RawImage read from disk.

        Raises:
            InputError: If the path is missing or not a file.
            UnsupportedImageTypeError: If the extension maps to no allowed type.
        """
        path = Path(filepath)

        if not path.exists():
            raise InputError(f"File not found: {filepath}", {"filepath": str(filepath)})
        if not path.is_file():
            raise InputError(f"Path is not a file: {filepath}", {"filepath": str(filepath)})

        content_type, _ = mimetypes.guess_type(path.name)
        if content_type is None and path.suffix.lower() == '.webp':
            # Older mimetypes tables lack webp
            content_type = 'image/webp'

        logger.info(f"Loading image file: {path.name}")
        return self.load(path.read_bytes(), content_type or path.suffix.lower())
