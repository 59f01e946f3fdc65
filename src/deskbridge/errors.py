"""Error taxonomy for the capture engine.

Automation failures are classified exactly once, by `classify_failure`, at the
script runner boundary. Everything above the runner works with the closed
`FailureKind` enum and never looks at raw script error text again.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Any

__all__ = [
    "AutomationFailure",
    "DeskbridgeError",
    "FailureKind",
    "InvalidInput",
    "TargetNotRunning",
    "WindowNotFound",
    "classify_failure",
    "describe_error",
    "parse_os_error",
]


class FailureKind(str, Enum):
    TIMEOUT = "timeout"
    PERMISSION_DENIED = "permission_denied"
    EXECUTION_FAILED = "execution_failed"


_PERMISSION_MARKERS = (
    "not allowed to send keystrokes",
    "not allowed assistive access",
    "not authorized to send apple events",
)

_OS_ERROR_RE = re.compile(r"\((-?\d+)\)\s*$")


class DeskbridgeError(RuntimeError):
    code = "deskbridge_error"

    def __init__(self, message: str, *, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "code": self.code,
            "message": str(self),
            "context": self.context,
        }


class InvalidInput(DeskbridgeError):
    code = "invalid_input"

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message, context={"field": field} if field else None)
        self.field = field


class TargetNotRunning(DeskbridgeError):
    code = "target_not_running"

    def __init__(self, app_name: str) -> None:
        super().__init__(f"{app_name} is not running.", context={"app": app_name})
        self.app_name = app_name


class WindowNotFound(DeskbridgeError):
    code = "window_not_found"

    def __init__(self, app_name: str, *, checks: int | None = None) -> None:
        context: dict[str, Any] = {"app": app_name}
        if checks is not None:
            context["checks"] = checks
        super().__init__(f"No {app_name} window found.", context=context)
        self.app_name = app_name


class AutomationFailure(DeskbridgeError):
    code = "automation_failure"

    def __init__(
        self,
        message: str,
        *,
        kind: FailureKind = FailureKind.EXECUTION_FAILED,
        os_error: int | None = None,
        attempts: int | None = None,
    ) -> None:
        super().__init__(
            message,
            context={"kind": kind.value, "os_error": os_error, "attempts": attempts},
        )
        self.kind = kind
        self.os_error = os_error
        self.attempts = attempts


def parse_os_error(message: str) -> int | None:
    """Return the trailing `(<number>)` error code osascript appends, if any."""
    match = _OS_ERROR_RE.search(message.strip())
    if match is None:
        return None
    return int(match.group(1))


def classify_failure(message: str, *, timed_out: bool = False) -> FailureKind:
    if timed_out:
        return FailureKind.TIMEOUT
    lowered = message.lower()
    if any(marker in lowered for marker in _PERMISSION_MARKERS):
        return FailureKind.PERMISSION_DENIED
    return FailureKind.EXECUTION_FAILED


def describe_error(error: BaseException, context: str) -> str:
    """Plain-language message for callers, one per error class."""
    if isinstance(error, InvalidInput):
        where = f" for {error.field}" if error.field else ""
        return f"Invalid input{where}: {error}"
    if isinstance(error, TargetNotRunning):
        return (
            f"{error.app_name} is not running. "
            f"Please start {error.app_name} and try again."
        )
    if isinstance(error, WindowNotFound):
        return (
            f"No {error.app_name} window found. "
            f"Please make sure {error.app_name} is open with at least one window."
        )
    if isinstance(error, AutomationFailure):
        if error.kind is FailureKind.TIMEOUT:
            return f"Operation timed out while running {context}. Please try again."
        if error.kind is FailureKind.PERMISSION_DENIED:
            return (
                "Permission denied. Grant accessibility access to your terminal "
                "in System Settings > Privacy & Security > Accessibility."
            )
        return f"AppleScript error: {error}"
    if isinstance(error, DeskbridgeError):
        return f"Error in {context}: {error}"
    return f"Unexpected error in {context}: {error}"
