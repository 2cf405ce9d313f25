"""
Dungeon Engine - Custom Error Types
Structured exceptions for encounter-editing errors with recovery hints.
"""
from typing import Dict, Any, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the dungeon engine."""
    # General errors
    UNKNOWN = "UNKNOWN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Dungeon errors
    DUNGEON_NOT_FOUND = "DUNGEON_NOT_FOUND"
    DUNGEON_DATA_UNAVAILABLE = "DUNGEON_DATA_UNAVAILABLE"
    DUNGEON_INVALID_STRUCTURE = "DUNGEON_INVALID_STRUCTURE"
    DUNGEON_INVALID_COMMAND = "DUNGEON_INVALID_COMMAND"

    # Snapshot errors
    SNAPSHOT_INVALID = "SNAPSHOT_INVALID"

    # Session errors
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"


class GameError(Exception):
    """
    Base exception for all engine errors.

    Provides structured error information with:
    - Error code for programmatic handling
    - Human-readable message
    - Additional context details
    - Recovery hints for the frontend
    """

    def __init__(
        self,
        code: ErrorCode = ErrorCode.UNKNOWN,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = True,
        recovery_hint: Optional[str] = None,
        http_status: int = 500
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.http_status = http_status

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for JSON response."""
        return {
            "error": {
                "code": self.code.value,
                "message": self.message,
                "details": self.details,
                "recoverable": self.recoverable,
                "recovery_hint": self.recovery_hint
            }
        }

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code.value}, message={self.message!r})"


# =============================================================================
# Dungeon Errors
# =============================================================================

class DungeonError(GameError):
    """Dungeon-related errors."""

    def __init__(
        self,
        code: ErrorCode = ErrorCode.DUNGEON_INVALID_STRUCTURE,
        message: str = "Dungeon error",
        **kwargs
    ):
        kwargs.setdefault("http_status", 400)
        super().__init__(code=code, message=message, **kwargs)


class UnknownDungeonError(DungeonError):
    """Raised when a sub-dungeon id is not present in the reference data."""

    def __init__(self, sub_dungeon_id: Optional[int] = None):
        details = {}
        if sub_dungeon_id is not None:
            details["sub_dungeon_id"] = sub_dungeon_id
        super().__init__(
            code=ErrorCode.DUNGEON_NOT_FOUND,
            message="Sub-dungeon not found",
            details=details,
            http_status=404,
            recovery_hint="Search the dungeon list for a valid id"
        )


class DungeonDataUnavailableError(DungeonError):
    """Raised when the reference dungeon data could not be fetched."""

    def __init__(self, reason: str = "Dungeon reference data is unavailable"):
        super().__init__(
            code=ErrorCode.DUNGEON_DATA_UNAVAILABLE,
            message=reason,
            http_status=503,
            recovery_hint="Check DUNGEON_DATA_URL or DUNGEON_DATA_PATH"
        )


class InvalidCommandError(DungeonError):
    """Raised when the dispatcher receives a command it does not know."""

    def __init__(self, kind: str):
        super().__init__(
            code=ErrorCode.DUNGEON_INVALID_COMMAND,
            message=f"Unknown command: {kind}",
            details={"kind": kind},
            recoverable=False
        )


# =============================================================================
# Snapshot Errors
# =============================================================================

class SnapshotError(GameError):
    """Raised when a persisted dungeon snapshot cannot be read."""

    def __init__(self, reason: str = "Invalid dungeon snapshot"):
        super().__init__(
            code=ErrorCode.SNAPSHOT_INVALID,
            message=reason,
            http_status=400,
            recovery_hint="Export the dungeon again and retry the import"
        )


# =============================================================================
# Session Errors
# =============================================================================

class SessionNotFoundError(GameError):
    """Raised when an editor session is not found."""

    def __init__(self, session_id: Optional[str] = None):
        details = {}
        if session_id:
            details["session_id"] = session_id
        super().__init__(
            code=ErrorCode.SESSION_NOT_FOUND,
            message="Dungeon session not found",
            details=details,
            http_status=404,
            recovery_hint="Create a new dungeon session"
        )


# =============================================================================
# Validation Error
# =============================================================================

class ValidationError(GameError):
    """Input validation errors."""

    def __init__(self, field: str, message: str, value: Any = None):
        details = {"field": field}
        if value is not None:
            details["value"] = str(value)
        super().__init__(
            code=ErrorCode.VALIDATION_ERROR,
            message=message,
            details=details,
            http_status=400,
            recovery_hint=f"Check the value for '{field}'"
        )
