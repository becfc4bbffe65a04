"""
Centralized error handling for the docsmith API.

This module provides the exception hierarchy raised by the conversion pipeline,
standardized error codes, and the FastAPI exception handlers that turn those
exceptions into consistent JSON error responses.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Union

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .logging_config import get_logger

logger = get_logger(__name__)


class ErrorCode(str, Enum):
    """Standardized error codes for consistent error handling."""

    # Client input errors
    UNSUPPORTED_MEDIA_TYPE = "UNSUPPORTED_MEDIA_TYPE"
    INVALID_DOCUMENT = "INVALID_DOCUMENT"
    INVALID_PARAMETER = "INVALID_PARAMETER"
    NOT_ACCEPTABLE = "NOT_ACCEPTABLE"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"

    # Server errors
    CONVERSION_FAILED = "CONVERSION_FAILED"
    WORKSPACE_ERROR = "WORKSPACE_ERROR"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorSeverity(str, Enum):
    """Error severity levels for logging and response handling."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    # 4xx Client Errors
    ErrorCode.UNSUPPORTED_MEDIA_TYPE: 415,
    ErrorCode.INVALID_DOCUMENT: 415,
    ErrorCode.INVALID_PARAMETER: 400,
    ErrorCode.NOT_ACCEPTABLE: 406,
    ErrorCode.FILE_TOO_LARGE: 413,

    # 5xx Server Errors
    ErrorCode.CONVERSION_FAILED: 500,
    ErrorCode.WORKSPACE_ERROR: 500,
    ErrorCode.INTERNAL_ERROR: 500,
}

ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.UNSUPPORTED_MEDIA_TYPE: ErrorSeverity.LOW,
    ErrorCode.INVALID_DOCUMENT: ErrorSeverity.LOW,
    ErrorCode.INVALID_PARAMETER: ErrorSeverity.LOW,
    ErrorCode.NOT_ACCEPTABLE: ErrorSeverity.LOW,
    ErrorCode.FILE_TOO_LARGE: ErrorSeverity.LOW,
    ErrorCode.CONVERSION_FAILED: ErrorSeverity.HIGH,
    ErrorCode.WORKSPACE_ERROR: ErrorSeverity.HIGH,
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
}

# Messages returned to clients for server-side failures. The detailed cause is
# only ever written to the log.
PUBLIC_SERVER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.CONVERSION_FAILED: "Document conversion failed",
    ErrorCode.WORKSPACE_ERROR: "Unable to prepare conversion workspace",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


# ===== EXCEPTIONS =====

class DocsmithError(Exception):
    """Base class for errors raised by the conversion pipeline.

    Args:
        message: Human readable description
        error_code: Machine readable code, also selects the HTTP status
        **context: Extra fields. Client errors echo them in the response,
            server errors only log them.
    """

    error_code = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, error_code: Optional[ErrorCode] = None, **context: Any):
        super().__init__(message)
        self.message = message
        if error_code is not None:
            self.error_code = error_code
        self.context = context

    @property
    def status_code(self) -> int:
        return ERROR_STATUS_MAP.get(self.error_code, 500)


class ClientInputError(DocsmithError):
    """The request itself is at fault (4xx)."""

    error_code = ErrorCode.INVALID_PARAMETER


class UnsupportedMediaTypeError(ClientInputError):
    """
    Payload is missing, or its sniffed or declared type is not accepted by the route.

    ``detected`` is only ever a type sniffed from the payload. A rejected
    Content-Type header is reported as ``declared`` instead.
    """

    error_code = ErrorCode.UNSUPPORTED_MEDIA_TYPE

    def __init__(self, detected: Optional[str] = None, message: Optional[str] = None,
                 declared: Optional[str] = None):
        if declared is not None:
            super().__init__(message or f"Unsupported Media Type: declared {declared}", declared=declared)
            self.detected = None
        else:
            detected = detected or "missing"
            super().__init__(message or f"Unsupported Media Type: {detected}", detected=detected)
            self.detected = detected
        self.declared = declared


class InvalidDocumentError(ClientInputError):
    """The converter rejected the payload as a malformed instance of its format."""

    error_code = ErrorCode.INVALID_DOCUMENT

    def __init__(self, detected: str, message: Optional[str] = None):
        super().__init__(message or f"Unsupported Media Type: invalid {detected} document", detected=detected)
        self.detected = detected


class InvalidOptionError(ClientInputError):
    """A conversion option carries an invalid value."""

    error_code = ErrorCode.INVALID_PARAMETER

    def __init__(self, field: str, message: str):
        super().__init__(message, field=field)
        self.field = field


class NotAcceptableError(ClientInputError):
    """None of the representations listed in the Accept header can be produced."""

    error_code = ErrorCode.NOT_ACCEPTABLE

    def __init__(self, accept: str):
        super().__init__("Not Acceptable", accept=accept)


class PayloadTooLargeError(ClientInputError):
    error_code = ErrorCode.FILE_TOO_LARGE

    def __init__(self, limit: int):
        super().__init__(f"Request body exceeds {limit} bytes", limit=limit)


class ConversionToolError(DocsmithError):
    """Server-side failure of an external tool or of the local filesystem (5xx)."""

    error_code = ErrorCode.CONVERSION_FAILED


class ConversionFailedError(ConversionToolError):
    """External converter missing, crashed, timed out or exited unexpectedly."""

    error_code = ErrorCode.CONVERSION_FAILED


class WorkspaceError(ConversionToolError):
    """Temporary workspace could not be created or written."""

    error_code = ErrorCode.WORKSPACE_ERROR


# ===== RESPONSES =====

def create_error_response(
    error_code: Union[ErrorCode, str],
    message: str,
    status_code: Optional[int] = None,
    **kwargs
) -> JSONResponse:
    """
    Create a consistent JSON error response across all endpoints.

    Args:
        error_code: Error code from ErrorCode enum or custom string
        message: Human readable message (truncated to 1000 chars)
        status_code: Override the default HTTP status code
        **kwargs: Additional fields to include in the error response

    Returns:
        JSONResponse with standardized error format
    """
    if isinstance(error_code, ErrorCode):
        error_type = error_code.value
        if status_code is None:
            status_code = ERROR_STATUS_MAP.get(error_code, 500)
        severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    else:
        error_type = str(error_code)
        if status_code is None:
            status_code = 500
        severity = ErrorSeverity.MEDIUM

    error_data = {
        "error": error_type,
        "message": str(message)[:1000],
        "status_code": status_code,
        "severity": severity.value,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
    }
    error_data.update(kwargs)

    log_message = f"Error response: {error_data}"
    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_message)
    else:
        logger.info(log_message)

    return JSONResponse(status_code=status_code, content=error_data)


def error_response_for(exc: DocsmithError) -> JSONResponse:
    """Build the client-facing response for a pipeline exception."""
    if isinstance(exc, ClientInputError):
        return create_error_response(exc.error_code, exc.message, **exc.context)

    # Server errors: log everything, return nothing that names paths or binaries
    logger.error(f"{exc.error_code.value}: {exc.message} context={exc.context}")
    public_message = PUBLIC_SERVER_MESSAGES.get(exc.error_code, "Internal server error")
    return create_error_response(exc.error_code, public_message)


async def _docsmith_error_handler(request: Request, exc: DocsmithError) -> JSONResponse:
    return error_response_for(exc)


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = [str(part) for part in first.get("loc", ())]
    field = location[-1] if location else "request"
    return create_error_response(
        ErrorCode.INVALID_PARAMETER,
        f"{'.'.join(location) or field}: {first.get('msg', 'invalid value')}",
        field=field,
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach the docsmith exception handlers to an application."""
    app.add_exception_handler(DocsmithError, _docsmith_error_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
