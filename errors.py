"""
Exceptions raised while capturing uploads and running an extraction attempt.

Every failure of an attempt is one of these, so the orchestrator can turn it
into a single human-readable message for the page.
"""

from typing import Any, Optional


class TradeDocError(Exception):
    """Base exception for all extraction-attempt errors."""

    kind = "error"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class UserInputError(TradeDocError):
    """The user asked for something the current selection cannot provide."""

    kind = "user_input"


class ConfigurationError(TradeDocError):
    """The service is missing configuration and needs operator action."""

    kind = "configuration"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        if not message.startswith("Configuration Error:"):
            message = f"Configuration Error: {message}"
        super().__init__(message, details)


class ServiceError(TradeDocError):
    """The model endpoint failed, was unreachable, or returned nothing usable."""

    kind = "service"


class EncodingError(ServiceError):
    """An uploaded file could not be turned into an inline part."""

    def __init__(self, filename: str, reason: str) -> None:
        super().__init__(f"Could not read file '{filename}': {reason}", {"filename": filename})


class AnalysisInProgressError(TradeDocError):
    """A second attempt was triggered while one is still outstanding."""

    kind = "busy"
