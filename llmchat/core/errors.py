"""Custom exceptions for the LLMChat gateway."""

from typing import Any


class LLMChatError(Exception):
    """Base exception for gateway errors."""

    def __init__(
        self,
        message: str,
        error_type: str = "internal_server_error",
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.status_code = status_code
        self.details = details or {}


class ValidationError(LLMChatError):
    """Validation error (400)."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            error_type="validation_error",
            status_code=400,
            details=details,
        )


class NotFoundError(LLMChatError):
    """Not found error (404)."""

    def __init__(self, message: str = "Resource not found") -> None:
        super().__init__(message=message, error_type="not_found_error", status_code=404)


class AgentNotFoundError(NotFoundError):
    """Requested agent id is not configured."""

    def __init__(self, agent_id: str) -> None:
        super().__init__(message=f"Agent not found: {agent_id}")
        self.error_type = "agent_not_found"
        self.agent_id = agent_id


class ConfigurationError(LLMChatError):
    """Raised when configuration loading or validation fails."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(
            message=message,
            error_type="configuration_error",
            status_code=500,
            details=details,
        )


class UpstreamError(LLMChatError):
    """Upstream provider returned an error or could not be reached (502)."""

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(
            message=message,
            error_type="upstream_error",
            status_code=502,
            details=details,
        )
        self.upstream_status = upstream_status


class UpstreamTimeoutError(UpstreamError):
    """Upstream provider timed out (504)."""

    def __init__(self, message: str = "Upstream request timed out") -> None:
        super().__init__(message=message)
        self.error_type = "upstream_timeout_error"
        self.status_code = 504


class UpstreamStreamError(UpstreamError):
    """Upstream streaming connection failed mid-stream."""

    def __init__(self, message: str) -> None:
        super().__init__(message=message)
        self.error_type = "upstream_stream_error"


class ServiceUnavailableError(LLMChatError):
    """Service unavailable error (503)."""

    def __init__(self, message: str = "Service temporarily unavailable") -> None:
        super().__init__(
            message=message, error_type="service_unavailable_error", status_code=503
        )
