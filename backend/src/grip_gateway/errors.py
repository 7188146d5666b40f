"""
Error types for the GRIP stream gateway.

Client errors surface as HTTP responses. Per-connection failures
(``SubscriberWriteError``, ``KeepAliveError``, ``ControlChannelError``) are
recovered where they happen and never abort a fan-out.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """Standard JSON error body."""

    code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)


class GatewayError(Exception):
    """Base exception for the gateway."""

    status_code = 400

    def __init__(self, code: str, message: str, details: Optional[Dict[str, Any]] = None):
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class MissingParameterError(GatewayError):
    """A required request parameter was absent or empty."""

    def __init__(self, parameter: str):
        self.parameter = parameter
        super().__init__("MISSING_PARAMETER", f"missing parameter: {parameter}", {"parameter": parameter})


class ValidationError(GatewayError):
    def __init__(self, message: str = "Validation failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("VALIDATION_ERROR", message, details)


class SubscriberWriteError(GatewayError):
    """Writing a frame to a held connection failed."""

    def __init__(self, message: str = "write to held connection failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("SUBSCRIBER_WRITE_FAILURE", message, details)


class KeepAliveError(GatewayError):
    """Keep-alive delivery to an idle connection failed."""

    def __init__(self, message: str = "keep-alive delivery failed", details: Optional[Dict[str, Any]] = None):
        super().__init__("KEEP_ALIVE_FAILURE", message, details)


class ControlChannelError(GatewayError):
    """Relaying a publish to the external GRIP proxy failed."""

    status_code = 502

    def __init__(self, message: str = "GRIP control channel error", details: Optional[Dict[str, Any]] = None):
        super().__init__("CONTROL_CHANNEL_ERROR", message, details)
