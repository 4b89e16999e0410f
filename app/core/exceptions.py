"""Custom exception classes for structured error handling."""

from typing import Any


class SupportOpsError(Exception):
    """Base exception for all support-ops errors."""

    def __init__(self, code: str, message: str, status_code: int = 500) -> None:
        self.code = code
        self.message = message
        self.status_code = status_code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}


class ChatSessionNotFoundError(SupportOpsError):
    def __init__(self, message: str = "Chat session not found") -> None:
        super().__init__(code="CHAT_SESSION_NOT_FOUND", message=message, status_code=404)


class InvalidFrameError(SupportOpsError):
    def __init__(self, message: str = "Malformed websocket frame") -> None:
        super().__init__(code="INVALID_FRAME", message=message, status_code=400)


class ClassificationError(SupportOpsError):
    def __init__(self, message: str = "Intent classification failed") -> None:
        super().__init__(code="CLASSIFICATION_FAILED", message=message, status_code=502)


class GenerationError(SupportOpsError):
    def __init__(self, message: str = "Reply generation failed") -> None:
        super().__init__(code="GENERATION_FAILED", message=message, status_code=502)


class StorageError(SupportOpsError):
    def __init__(self, message: str = "Database operation failed") -> None:
        super().__init__(code="STORAGE_ERROR", message=message, status_code=503)
