"""Error definitions.

API errors carry a stable code and map to an HTTP status. Pipeline failures
that never reach a client (provider scraping, AI generation) have their own
exception types below; "not ready yet" is not an exception at all but a stage
result (see teak.pipeline.results).
"""

from enum import Enum


class ApiErrorCode(str, Enum):
    """Standardized error codes for the API.

    Format: E_CATEGORY_NAME
    """

    # Authentication errors (401)
    E_UNAUTHENTICATED = "E_UNAUTHENTICATED"

    # Authorization errors (403)
    E_FORBIDDEN = "E_FORBIDDEN"
    E_INTERNAL_ONLY = "E_INTERNAL_ONLY"

    # Not found errors (404)
    E_NOT_FOUND = "E_NOT_FOUND"
    E_CARD_NOT_FOUND = "E_CARD_NOT_FOUND"

    # Validation errors (400)
    E_INVALID_REQUEST = "E_INVALID_REQUEST"
    E_INVALID_STAGE = "E_INVALID_STAGE"
    E_INVALID_LIMIT_KIND = "E_INVALID_LIMIT_KIND"

    # Throttling (429)
    E_RATE_LIMITED = "E_RATE_LIMITED"

    # Server errors
    E_INTERNAL = "E_INTERNAL"  # 500
    E_STORAGE_ERROR = "E_STORAGE_ERROR"  # 500


ERROR_CODE_TO_STATUS: dict[ApiErrorCode, int] = {
    ApiErrorCode.E_UNAUTHENTICATED: 401,
    ApiErrorCode.E_FORBIDDEN: 403,
    ApiErrorCode.E_INTERNAL_ONLY: 403,
    ApiErrorCode.E_NOT_FOUND: 404,
    ApiErrorCode.E_CARD_NOT_FOUND: 404,
    ApiErrorCode.E_INVALID_REQUEST: 400,
    ApiErrorCode.E_INVALID_STAGE: 400,
    ApiErrorCode.E_INVALID_LIMIT_KIND: 400,
    ApiErrorCode.E_RATE_LIMITED: 429,
    ApiErrorCode.E_INTERNAL: 500,
    ApiErrorCode.E_STORAGE_ERROR: 500,
}


class ApiError(Exception):
    """Base exception for API errors.

    Attributes:
        code: The error code enum value
        message: Human-readable error message
        status_code: HTTP status code (derived from code)
    """

    def __init__(self, code: ApiErrorCode, message: str):
        self.code = code
        self.message = message
        self.status_code = ERROR_CODE_TO_STATUS.get(code, 500)
        super().__init__(message)


class NotFoundError(ApiError):
    """Resource not found error."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_NOT_FOUND, message: str = "Not found"):
        super().__init__(code, message)


class ForbiddenError(ApiError):
    """Authorization failure, raised before any work is scheduled."""

    def __init__(self, code: ApiErrorCode = ApiErrorCode.E_FORBIDDEN, message: str = "Forbidden"):
        super().__init__(code, message)


class InvalidRequestError(ApiError):
    """Invalid request error."""

    def __init__(
        self, code: ApiErrorCode = ApiErrorCode.E_INVALID_REQUEST, message: str = "Invalid request"
    ):
        super().__init__(code, message)


class RateLimitedError(ApiError):
    """Admission denied; retry_at is an epoch-millisecond timestamp."""

    def __init__(self, retry_at: int, message: str = "Rate limit exceeded"):
        super().__init__(ApiErrorCode.E_RATE_LIMITED, message)
        self.retry_at = retry_at


class PipelineError(Exception):
    """Base class for failures raised inside enrichment stages."""


class ProviderFetchFailure(PipelineError):
    """A page or provider-specific scrape could not be fetched.

    Attributes:
        error_type: Short machine-readable failure type (e.g. "timeout").
        message: Human-readable description.
        retryable: Whether a later attempt may succeed.
    """

    def __init__(self, error_type: str, message: str, retryable: bool = False):
        self.error_type = error_type
        self.message = message
        self.retryable = retryable
        super().__init__(message)


class GenerationFailure(PipelineError):
    """The AI model returned no usable tags, summary or transcript."""

    def __init__(self, message: str, retryable: bool = True):
        self.message = message
        self.retryable = retryable
        super().__init__(message)
