"""Custom exception hierarchy."""

class AppError(Exception):
    """Base exception for application errors."""
    def __init__(self, message: str, original_error: Exception = None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class APIClientError(AppError):
    """Raised when an external API call fails."""
    pass


class APITimeoutError(APIClientError):
    """Raised when an external API call times out."""
    pass


class DatabaseError(AppError):
    """Raised when a database operation fails."""
    pass


class ValidationError(AppError):
    """Raised when input validation fails."""
    pass


class AuthorizationError(AppError):
    """Raised when the caller does not own the requested resource."""
    pass


class NotFoundError(AppError):
    """Raised when a requested record does not exist."""
    pass


class ConfigurationError(AppError):
    """Raised when configuration is invalid or missing."""
    pass


class PipelineError(AppError):
    """Base exception for extraction pipeline errors."""
    pass


class DispatchError(PipelineError):
    """Raised when the extraction service rejects a batch dispatch."""
    pass


class CallbackValidationError(PipelineError):
    """Raised when a callback is missing required fields or is malformed."""
    pass


class CallbackAuthenticationError(PipelineError):
    """Raised when a callback fails signature or freshness verification.

    Every failure reason maps to the same message.
    """

    def __init__(self, original_error: Exception = None):
        super().__init__("Invalid callback credentials", original_error=original_error)


class StructuralError(PipelineError):
    """Raised when a callback targets an unknown bid or another project's bid."""
    pass


class NormalizationError(PipelineError):
    """Raised when an extraction result cannot be applied to a bid."""
    pass


class NotificationError(AppError):
    """Raised when the completion email could not be delivered."""
    pass
