"""Custom exceptions for core logic."""

from __future__ import annotations


class DocumentBuildError(Exception):
    """Base class for failures that abort a single document build."""

    error_code = "BUILD_ERROR"

    def __init__(
        self,
        message: str,
        *,
        stage: str,
        format_id: str | None = None,
        document_type: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.format_id = format_id
        self.document_type = document_type


class ConfigurationError(DocumentBuildError):
    """Raised when a template, sheet or mapping table cannot be located or loaded."""

    error_code = "CONFIGURATION_ERROR"


class InputValidationError(DocumentBuildError):
    """Raised when the input record has no usable fields."""

    error_code = "VALIDATION_ERROR"


class RenderError(DocumentBuildError):
    """Raised when the document library fails while substituting data."""

    error_code = "RENDER_ERROR"


class StorageError(Exception):
    """Raised by template/output storage collaborators."""

    def __init__(self, message: str, *, name: str | None = None) -> None:
        super().__init__(message)
        self.name = name


class DeliveryError(Exception):
    """Raised when the outbound workflow webhook rejects or misses a delivery."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code
