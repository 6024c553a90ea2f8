"""
Agent 错误分类

Turns raw cursor-agent error text (usually stderr) into a ClassifiedError:
a kind, whether retrying makes sense, a short user-facing message and any
details worth showing. Classification is a pure function of the text.

Order (first match wins):
1. usage limit          -> quota   (not recoverable)
2. not logged in / auth -> auth    (not recoverable)
3. model rejected       -> model   (not recoverable)
4. connection failure   -> network (recoverable)
5. anything else        -> unknown (recoverable only on timeouts)
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

__all__ = [
    "ClassifiedError",
    "strip_ansi",
    "classify_agent_error",
    "is_recoverable_error",
    "format_error_for_user",
]

ERROR_TYPES = ("quota", "auth", "network", "model", "unknown")

_ANSI_PATTERN = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")

_SAVINGS_PATTERN = re.compile(r"saved \$(\d+(?:\.\d+)?)", re.IGNORECASE)
_RESET_PATTERN = re.compile(r"reset[^0-9]*(\d{1,2}/\d{1,2}/\d{4})", re.IGNORECASE)
_CONTINUE_PATTERN = re.compile(r"continue with (\w+)", re.IGNORECASE)
_REQUESTED_MODEL_PATTERN = re.compile(r"Cannot use this model: ([^.]+)")
_AVAILABLE_MODELS_PATTERN = re.compile(r"Available models: (.+)")

_AUTH_MARKERS = ("not logged in", "auth", "unauthorized")
_MODEL_MARKERS = ("Cannot use this model", "model not found", "invalid model")
_NETWORK_MARKERS = ("ECONNREFUSED", "fetch failed", "network")
_TIMEOUT_MARKERS = ("timeout", "ETIMEDOUT")

SUGGESTIONS = {
    "quota": "Switch to a different model or set a Spend Limit in Cursor settings",
    "auth": "Run: cursor-agent login",
    "model": "Use cursor-acp/auto or check available models with: cursor-agent models",
    "network": "Check your internet connection and try again",
}

USER_MESSAGE_LIMIT = 200


@dataclass
class ClassifiedError:
    """分类后的 agent 错误"""

    type: str
    recoverable: bool
    message: str
    user_message: str
    details: Dict[str, str] = field(default_factory=dict)
    suggestion: Optional[str] = None


def strip_ansi(value: Any) -> str:
    """Remove terminal escape sequences. None becomes "", other values use str()."""
    if value is None:
        return ""
    if not isinstance(value, str):
        value = str(value)
    return _ANSI_PATTERN.sub("", value)


def _classify_quota(clean: str) -> ClassifiedError:
    details: Dict[str, str] = {}
    savings = _SAVINGS_PATTERN.search(clean)
    if savings:
        details["savings"] = f"${savings.group(1)}"
    reset = _RESET_PATTERN.search(clean)
    if reset:
        details["resetDate"] = reset.group(1)
    affected = _CONTINUE_PATTERN.search(clean)
    if affected:
        details["affectedModel"] = affected.group(1)

    return ClassifiedError(
        type="quota",
        recoverable=False,
        message=clean,
        user_message="You've hit your Cursor usage limit",
        details=details,
        suggestion=SUGGESTIONS["quota"],
    )


def _classify_model(clean: str) -> ClassifiedError:
    details: Dict[str, str] = {}
    requested = _REQUESTED_MODEL_PATTERN.search(clean)
    if requested:
        details["requested"] = requested.group(1)
    available = _AVAILABLE_MODELS_PATTERN.search(clean)
    if available:
        models = [m.strip() for m in available.group(1).split(",") if m.strip()]
        details["available"] = ", ".join(models[:5]) + "..."

    if requested:
        user_message = f"Model '{requested.group(1)}' not available"
    else:
        user_message = "Requested model not available"

    return ClassifiedError(
        type="model",
        recoverable=False,
        message=clean,
        user_message=user_message,
        details=details,
        suggestion=SUGGESTIONS["model"],
    )


def classify_agent_error(raw: Any) -> ClassifiedError:
    """
    Classify raw agent error output.

    Args:
        raw: error text; None and non-strings are accepted

    Returns:
        ClassifiedError, never raises
    """
    clean = strip_ansi(raw).strip()

    if "usage limit" in clean:
        return _classify_quota(clean)

    if any(marker in clean for marker in _AUTH_MARKERS):
        return ClassifiedError(
            type="auth",
            recoverable=False,
            message=clean,
            user_message="Not authenticated with Cursor",
            suggestion=SUGGESTIONS["auth"],
        )

    if any(marker in clean for marker in _MODEL_MARKERS):
        return _classify_model(clean)

    if any(marker in clean for marker in _NETWORK_MARKERS):
        return ClassifiedError(
            type="network",
            recoverable=True,
            message=clean,
            user_message="Connection to Cursor failed",
            suggestion=SUGGESTIONS["network"],
        )

    recoverable = any(marker in clean for marker in _TIMEOUT_MARKERS)
    return ClassifiedError(
        type="unknown",
        recoverable=recoverable,
        message=clean,
        user_message=clean[:USER_MESSAGE_LIMIT] or "An error occurred",
        suggestion="Try the request again" if recoverable else None,
    )


def is_recoverable_error(error: ClassifiedError) -> bool:
    return error.recoverable


def format_error_for_user(error: ClassifiedError) -> str:
    """
    Render an error for display inside a chat completion.

    cursor-acp error: <user message>
      key: value | key: value
      Suggestion: <suggestion>
    """
    output = f"cursor-acp error: {error.user_message or error.message or 'Unknown error'}"

    if error.details:
        detail_parts = " | ".join(f"{k}: {v}" for k, v in error.details.items())
        output += f"\n  {detail_parts}"

    if error.suggestion:
        output += f"\n  Suggestion: {error.suggestion}"

    return output
