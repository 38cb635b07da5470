"""
Custom Exceptions Module.

This module defines all custom exceptions used throughout the receipt
extraction pipeline. Every exception can render itself as the structured
error handed back to the hosting application:
``{"kind", "message", "suggestions"?, "details"}``.

Exception Hierarchy:
    ReceiptPipelineError (base)
    ├── InputError                       kind="input"
    │   ├── UnsupportedImageTypeError
    │   ├── ImageTooLargeError
    │   └── EmptyImageError
    ├── ValidationError                  kind="validation"
    │   └── QualityError
    ├── PreprocessingError               kind="preprocessing"
    └── RecognitionError                 kind="recognition"
        ├── OCREngineNotAvailableError
        └── OCRProcessingError

Empty results (no OCR lines, no parsed items) are not errors; they surface
as low-confidence analyses instead.
"""

from typing import Any, Dict, List, Optional


class ReceiptPipelineError(Exception):
    """
    Base exception for all receipt pipeline errors.

    Attributes:
        message: Human-readable error message.
        details: Optional dictionary with additional error details.
        suggestions: Remediation hints for the end user (may be empty).
    """

    kind = "pipeline"

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.message = message
        self.details = details or {}
        self.suggestions = list(suggestions or [])
        super().__init__(self.message)

    def __str__(self) -> str:
        """Return string representation of the error."""
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to the structured error returned to callers.

        Returns:
            Dictionary with kind, message, details and (if any) suggestions.
        """
        error = {
            'kind': self.kind,
            'message': self.message,
            'details': self.details
        }
        if self.suggestions:
            error['suggestions'] = self.suggestions
        return error


# =============================================================================
# INPUT ERRORS
# =============================================================================

class InputError(ReceiptPipelineError):
    """Base exception for input boundary errors."""

    kind = "input"


class UnsupportedImageTypeError(InputError):
    """
    Raised when the declared content type is not on the allow-list.

    Example:
        >>> raise UnsupportedImageTypeError("image/gif", ["image/jpeg", "image/png"])
    """

    def __init__(self, content_type: str, supported_types: List[str]):
        message = f"Unsupported image type: '{content_type}'"
        details = {"content_type": content_type, "supported_types": list(supported_types)}
        super().__init__(
            message,
            details,
            suggestions=["Upload the receipt as a JPEG, PNG, or WebP image"]
        )


class ImageTooLargeError(InputError):
    """Raised when the image exceeds the configured size ceiling."""

    def __init__(self, size: int, max_size: int):
        message = (
            f"Image size {size / 1024 / 1024:.2f}MB exceeds "
            f"{max_size / 1024 / 1024:.0f}MB limit"
        )
        details = {"size": size, "max_size": max_size}
        super().__init__(
            message,
            details,
            suggestions=["Reduce the photo resolution or compress it before uploading"]
        )


class EmptyImageError(InputError):
    """Raised when an empty buffer is submitted."""

    def __init__(self):
        super().__init__("No image data provided")


# =============================================================================
# VALIDATION ERRORS
# =============================================================================

class ValidationError(ReceiptPipelineError):
    """Base exception for image validation failures."""

    kind = "validation"


class QualityError(ValidationError):
    """
    Raised when an image fails the quality gates.

    Carries the failed checks, non-blocking warnings and remediation
    suggestions. Always recoverable by retaking the photo.
    """

    def __init__(
        self,
        errors: List[str],
        warnings: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None
    ):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        message = "Image validation failed: " + "; ".join(self.errors)
        details = {"errors": self.errors, "warnings": self.warnings}
        super().__init__(message, details, suggestions)


# =============================================================================
# PREPROCESSING ERRORS
# =============================================================================

class PreprocessingError(ReceiptPipelineError):
    """Raised when an image operation fails on otherwise valid bytes."""

    kind = "preprocessing"

    def __init__(self, operation: str, reason: str = None):
        self.operation = operation
        message = f"Image preprocessing failed during '{operation}'"
        if reason:
            message = f"{message}: {reason}"
        details = {"operation": operation, "reason": reason}
        super().__init__(message, details)


# =============================================================================
# RECOGNITION ERRORS
# =============================================================================

class RecognitionError(ReceiptPipelineError):
    """Base exception for OCR engine failures."""

    kind = "recognition"


class OCREngineNotAvailableError(RecognitionError):
    """Raised when the configured OCR engine cannot be started."""

    def __init__(self, engine_name: str, reason: str = None):
        message = f"OCR engine not available: {engine_name}"
        details = {"engine": engine_name, "reason": reason}
        super().__init__(
            message,
            details,
            suggestions=["Retry the request; if it keeps failing, check the OCR installation"]
        )


class OCRProcessingError(RecognitionError):
    """Raised when the OCR engine fails mid-recognition."""

    def __init__(self, engine_name: str, reason: str = None):
        message = f"OCR processing failed ({engine_name})"
        if reason:
            message = f"{message}: {reason}"
        details = {"engine": engine_name, "reason": reason}
        super().__init__(
            message,
            details,
            suggestions=["Retry the request"]
        )


__all__ = [
    'ReceiptPipelineError',
    'InputError',
    'UnsupportedImageTypeError',
    'ImageTooLargeError',
    'EmptyImageError',
    'ValidationError',
    'QualityError',
    'PreprocessingError',
    'RecognitionError',
    'OCREngineNotAvailableError',
    'OCRProcessingError',
]
