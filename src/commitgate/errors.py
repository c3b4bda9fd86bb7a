"""Commitgate Error System.

Provides structured error handling with:
- Numeric error codes for programmatic handling
- User-friendly messages
- Recovery hints
- Context for debugging

Policy outcomes (queueing, rejection, rate limiting) are never errors. They
are returned as decisions. Only genuine failures raise CommitGateError.
"""


from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Numeric error codes organized by category.

    Format: XYYY where X = category, YYY = specific error

    Categories:
        1xxx - Configuration errors
        2xxx - Audit store errors
        3xxx - Commit/revert errors
        4xxx - Review errors
    """

    # 1xxx - Configuration Errors
    CONFIG_INVALID = 1001
    CONFIG_UNKNOWN_PRESET = 1002
    CONFIG_UNKNOWN_STRATEGY = 1003
    CONFIG_PARSE_FAILED = 1004

    # 2xxx - Store Errors
    STORE_UNAVAILABLE = 2001
    STORE_WRITE_FAILED = 2002
    STORE_CORRUPT_RECORD = 2003

    # 3xxx - Commit/Revert Errors
    COMMIT_FAILED = 3001
    REVERT_FAILED = 3002

    # 4xxx - Review Errors
    REVIEW_INVALID_TRANSITION = 4001
    REVIEW_ITEM_NOT_FOUND = 4002

    @property
    def category(self) -> str:
        """Get the error category name."""
        prefix = self.value // 1000
        return {
            1: "config",
            2: "store",
            3: "commit",
            4: "review",
        }.get(prefix, "unknown")

    @property
    def is_recoverable(self) -> bool:
        """Whether this error type is typically recoverable."""
        non_recoverable = {
            ErrorCode.CONFIG_INVALID,
            ErrorCode.CONFIG_UNKNOWN_PRESET,
            ErrorCode.CONFIG_UNKNOWN_STRATEGY,
            ErrorCode.STORE_CORRUPT_RECORD,
        }
        return self not in non_recoverable


# Human-readable error messages
ERROR_MESSAGES: dict[ErrorCode, str] = {
    # Config errors
    ErrorCode.CONFIG_INVALID: "Invalid configuration for '{key}': {detail}",
    ErrorCode.CONFIG_UNKNOWN_PRESET: "Unknown preset '{preset}'. Expected one of: {choices}",
    ErrorCode.CONFIG_UNKNOWN_STRATEGY: "Unknown {kind} strategy '{strategy}'.",
    ErrorCode.CONFIG_PARSE_FAILED: "Failed to parse configuration file {path}: {detail}",

    # Store errors
    ErrorCode.STORE_UNAVAILABLE: "Audit store at {path} is unavailable: {detail}",
    ErrorCode.STORE_WRITE_FAILED: "Failed to write audit record '{record_id}': {detail}",
    ErrorCode.STORE_CORRUPT_RECORD: "Audit record '{record_id}' could not be decoded: {detail}",

    # Commit errors
    ErrorCode.COMMIT_FAILED: "Commit for proposal '{correlation_id}' failed: {detail}",
    ErrorCode.REVERT_FAILED: "Revert of '{record_id}' failed: {detail}",

    # Review errors
    ErrorCode.REVIEW_INVALID_TRANSITION: (
        "Cannot move '{record_id}' from {from_status} to {to_status}."
    ),
    ErrorCode.REVIEW_ITEM_NOT_FOUND: "Review item '{record_id}' not found.",
}


# Recovery hints
RECOVERY_HINTS: dict[ErrorCode, list[str]] = {
    ErrorCode.CONFIG_UNKNOWN_PRESET: [
        "Use one of the built-in presets: strict, balanced, permissive, custom",
        "Remove the preset key to fall back to 'balanced'",
    ],
    ErrorCode.CONFIG_PARSE_FAILED: [
        "Check {path} for syntax errors",
        "Delete the file to fall back to the default configuration",
    ],
    ErrorCode.STORE_UNAVAILABLE: [
        "Check that the directory containing {path} is writable",
        "Pass a different database path with --db",
    ],
    ErrorCode.REVERT_FAILED: [
        "The commit is still in place and the record keeps its status",
        "Reject committed items from the application that owns the graph",
    ],
    ErrorCode.REVIEW_INVALID_TRANSITION: [
        "Only pending or auto-approved records can be reviewed",
        "Use 'commitgate history' to inspect the record's current status",
    ],
}


class CommitGateError(Exception):
    """Base error type for all commitgate errors.

    Example:
        >>> err = CommitGateError(
        ...     code=ErrorCode.REVIEW_ITEM_NOT_FOUND,
        ...     context={"record_id": "3f2c"},
        ... )
        >>> print(err)
        [CG-4002] Review item '3f2c' not found.
    """

    def __init__(
        self,
        code: ErrorCode,
        context: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.code = code
        self.context = context or {}
        self.cause = cause
        super().__init__(str(self))

    @property
    def message(self) -> str:
        """Get the formatted user-friendly message."""
        template = ERROR_MESSAGES.get(self.code, "An error occurred: {detail}")
        try:
            return template.format(**self.context)
        except KeyError:
            return template

    @property
    def recovery_hints(self) -> list[str]:
        """Get recovery suggestions for this error."""
        formatted = []
        for hint in RECOVERY_HINTS.get(self.code, []):
            try:
                formatted.append(hint.format(**self.context))
            except KeyError:
                formatted.append(hint)
        return formatted

    @property
    def is_recoverable(self) -> bool:
        """Whether this error is typically recoverable."""
        return self.code.is_recoverable

    @property
    def category(self) -> str:
        """Get the error category."""
        return self.code.category

    @property
    def error_id(self) -> str:
        """Get the error ID string (e.g., 'CG-3001')."""
        return f"CG-{self.code.value}"

    def __str__(self) -> str:
        return f"[{self.error_id}] {self.message}"

    def __repr__(self) -> str:
        return f"CommitGateError(code={self.code!r}, context={self.context!r})"

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict for logging and CLI output."""
        return {
            "error_id": self.error_id,
            "code": self.code.value,
            "category": self.category,
            "message": self.message,
            "recoverable": self.is_recoverable,
            "recovery_hints": self.recovery_hints,
            "context": self.context,
        }


# Convenience factory functions

def config_error(
    key: str,
    detail: str,
    cause: Exception | None = None,
) -> CommitGateError:
    """Create a CONFIG_INVALID error."""
    return CommitGateError(
        code=ErrorCode.CONFIG_INVALID,
        context={"key": key, "detail": detail},
        cause=cause,
    )


def store_error(
    code: ErrorCode,
    record_id: str = "",
    detail: str = "",
    path: str = "",
    cause: Exception | None = None,
) -> CommitGateError:
    """Create an audit store error."""
    return CommitGateError(
        code=code,
        context={"record_id": record_id, "detail": detail, "path": path},
        cause=cause,
    )


def invalid_transition(
    record_id: str,
    from_status: str,
    to_status: str,
) -> CommitGateError:
    """Create a REVIEW_INVALID_TRANSITION error."""
    return CommitGateError(
        code=ErrorCode.REVIEW_INVALID_TRANSITION,
        context={
            "record_id": record_id,
            "from_status": from_status,
            "to_status": to_status,
        },
    )
