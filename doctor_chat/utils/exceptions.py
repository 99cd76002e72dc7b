"""
Exception hierarchy for the doctor chat service.

Nothing here reaches the presentation layer: the session orchestrator turns
every model-call failure into a fallback message. The codes exist so that the
logs can tell a missing credential apart from a flaky network.
"""
from typing import Any, Dict, Optional


class DoctorChatError(Exception):
    """Base exception for all doctor chat errors."""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for structured logging."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details
        }


class ConfigurationError(DoctorChatError):
    """The service is missing something it needs to call the model (e.g. the API key)."""

    def __init__(self, message: str, setting: str = "unknown"):
        super().__init__(
            message=message,
            code="CONFIGURATION_ERROR",
            details={"setting": setting}
        )
        self.setting = setting


class ModelCallError(DoctorChatError):
    """The hosted model could not be reached or returned something unusable."""

    def __init__(
        self,
        message: str,
        model: str = "unknown",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="MODEL_CALL_ERROR",
            details={"model": model, **(details or {})}
        )
        self.model = model
