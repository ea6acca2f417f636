"""Error types shared by the sync engine."""

from typing import Any


class InputError(ValueError):
    """Bad user input, detected before any network call."""


class NotionError(Exception):
    """A Notion request failed. The message is already human-readable."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.code = code


def readable_error(error: Any) -> str:
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    message = getattr(error, "message", None)
    if isinstance(message, str):
        return message
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return "Unknown error"


def error_code(error: Any) -> str | None:
    code = getattr(error, "code", None)
    if code is None and isinstance(error, dict):
        code = error.get("code")
    # APIErrorCode is a str enum
    if isinstance(code, str):
        return getattr(code, "value", code)
    return None


def format_notion_error(error: Any) -> str:
    """Render a Notion failure as 'Notion [code]: message' when it has a code."""
    if isinstance(error, NotionError):
        return str(error)
    message = readable_error(error)
    code = error_code(error)
    if code:
        return f"Notion [{code}]: {message}"
    return message
