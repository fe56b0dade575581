"""Custom exception hierarchy."""

from typing import Optional


class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    def __init__(
        self,
        message: str,
        original_error: Exception = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(message, original_error)
        self.status_code = status_code


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class StorageError(APIClientError):
    """Raised when an object store read or write fails."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class ExtractionError(AppError):
    """Raised when the AI extraction returns an unusable payload."""
    pass


class PipelineError(AppError):
    """Base exception for parse pipeline errors."""
    pass


class FatalWorkflowError(PipelineError):
    """The parse run or its document is missing or deleted. Never retried."""
    pass


class PdfSplitError(PipelineError):
    """Splitting a PDF into single-page assets failed."""
    def __init__(
        self,
        code: str,
        message: str,
        page_no: Optional[int] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.code = code
        self.page_no = page_no


class RetryableStepError(PipelineError):
    """Signals the step runner to re-invoke the step after a backoff."""
    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        original_error: Exception = None,
    ):
        super().__init__(message, original_error)
        self.retry_after = retry_after


class DocumentNotFoundError(AppError):
    """Raised when a document is not found."""
    pass


class DocumentDeletedError(AppError):
    """Raised when an operation targets a soft-deleted document."""
    pass


class ParseAlreadyRunningError(AppError):
    """Raised when a document already has a parse run in progress."""
    pass


class ParseRunNotFoundError(AppError):
    """Raised when a parse run is not found for the given document."""
    pass
