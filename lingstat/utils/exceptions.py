"""
Custom exceptions for the lingstat toolkit.

This module defines the exception classes raised by taggers, corpus
utilities and the mixed-model layer, plus helpers to log them consistently.
"""

from __future__ import annotations


class LingStatError(Exception):
    """
    Base exception class for lingstat.

    All custom exceptions in the package inherit from this base class.
    """

    def __init__(self, message: str = "", details: str = "") -> None:
        """
        Initialize exception.

        Args:
            message: Main error message
            details: Additional error details
        """
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        """String representation of the exception."""
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class ValidationError(LingStatError):
    """
    Exception raised for input validation errors.

    Used when user input, a tokenlist or a model formula fails validation.
    """

    def __init__(self, message: str = "Validation failed", field: str = "", value: str = "") -> None:
        """
        Initialize validation error.

        Args:
            message: Validation error message
            field: Field name that failed validation
            value: Value that failed validation
        """
        details = ""
        if field:
            details += f"field: {field}"
        if value:
            if details:
                details += ", "
            details += f"value: {value}"

        super().__init__(message, details)
        self.field = field
        self.value = value


class ProcessingError(LingStatError):
    """
    Exception raised for processing errors.

    Used when tagging, tokenlist conversion or matrix construction fails.
    """

    def __init__(self, message: str = "Processing failed", operation: str = "",
                 original_error: str = "") -> None:
        """
        Initialize processing error.

        Args:
            message: Processing error message
            operation: Operation that failed
            original_error: Original error message
        """
        details = ""
        if operation:
            details += f"operation: {operation}"
        if original_error:
            if details:
                details += ", "
            details += f"error: {original_error}"

        super().__init__(message, details)
        self.operation = operation
        self.original_error = original_error


class FileFormatError(LingStatError):
    """Exception raised for unsupported or malformed input files."""

    def __init__(self, message: str = "File format error", file_path: str = "",
                 expected_format: str = "", actual_format: str = "") -> None:
        details = ""
        if file_path:
            details += f"file: {file_path}"
        if expected_format:
            if details:
                details += ", "
            details += f"expected: {expected_format}"
        if actual_format:
            if details:
                details += ", "
            details += f"actual: {actual_format}"

        super().__init__(message, details)
        self.file_path = file_path
        self.expected_format = expected_format
        self.actual_format = actual_format


class ConfigurationError(LingStatError, ValueError):
    """
    Exception raised for configuration errors.

    Used when configuration files are invalid or contain invalid settings.
    Subclasses ``ValueError`` so callers of the config setters can catch either.
    """

    def __init__(self, message: str = "Configuration error", config_key: str = "",
                 config_value: str = "") -> None:
        details = ""
        if config_key:
            details += f"key: {config_key}"
        if config_value:
            if details:
                details += ", "
            details += f"value: {config_value}"

        super().__init__(message, details)
        self.config_key = config_key
        self.config_value = config_value


class NetworkError(LingStatError):
    """
    Exception raised for network-related errors (HTTP, timeouts, DNS).

    Used when a language model download fails.
    """

    def __init__(self, message: str = "Network error", url: str = "",
                 status_code: int = 0, response_text: str = "") -> None:
        details = ""
        if url:
            details += f"url: {url}"
        if status_code:
            if details:
                details += ", "
            details += f"status: {status_code}"
        if response_text:
            if details:
                details += ", "
            details += f"response: {response_text[:100]}..."

        super().__init__(message, details)
        self.url = url
        self.status_code = status_code
        self.response_text = response_text


class DependencyError(LingStatError):
    """
    Exception raised for missing or broken NLP dependencies.

    Raised when a tagger cannot be initialized. The ``remedy`` text tells the
    operator how to repair the installation.
    """

    def __init__(self, message: str = "Dependency error", dependency_name: str = "",
                 remedy: str = "") -> None:
        """
        Initialize dependency error.

        Args:
            message: Dependency error message
            dependency_name: Name of the problematic dependency or model
            remedy: Suggested repair step
        """
        details = ""
        if dependency_name:
            details += f"dependency: {dependency_name}"
        if remedy:
            if details:
                details += ", "
            details += f"remedy: {remedy}"

        super().__init__(message, details)
        self.dependency_name = dependency_name
        self.remedy = remedy


class ModelFitError(LingStatError):
    """Exception raised when a mixed-effects model cannot be fitted."""

    def __init__(self, message: str = "Model fitting failed", formula: str = "",
                 original_error: str = "") -> None:
        details = ""
        if formula:
            details += f"formula: {formula}"
        if original_error:
            if details:
                details += ", "
            details += f"error: {original_error}"

        super().__init__(message, details)
        self.formula = formula
        self.original_error = original_error


def get_error_context(exception: Exception) -> str:
    """
    Get a formatted error context string for logging.

    Args:
        exception: Exception to format

    Returns:
        Formatted error context string
    """
    if isinstance(exception, LingStatError):
        return str(exception)
    return f"{type(exception).__name__}: {str(exception)}"


def log_exception(logger, exception: Exception, context: str = "") -> None:
    """
    Log an exception with appropriate level and context.

    Args:
        logger: Logger instance
        exception: Exception to log
        context: Additional context information
    """
    error_message = get_error_context(exception)

    if context:
        full_message = f"{context} - {error_message}"
    else:
        full_message = error_message

    if isinstance(exception, (ValidationError, ConfigurationError)):
        logger.warning(full_message)
    elif isinstance(exception, (ProcessingError, FileFormatError, NetworkError, ModelFitError)):
        logger.error(full_message)
    elif isinstance(exception, DependencyError):
        logger.critical(full_message)
    else:
        logger.error(full_message)
