"""Errors raised by request handlers and turned into JSON error responses."""

from __future__ import annotations

from typing import Any, Mapping


class ApiError(Exception):
    """A failed request: an HTTP status, a message and optional extra fields."""

    def __init__(
        self,
        status: int,
        message: str,
        extra: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.extra = dict(extra or {})

    def to_dict(self) -> dict[str, Any]:
        """The JSON body sent back to the client."""
        return {"error": self.message, **self.extra}

    def __repr__(self) -> str:
        return f"ApiError(status={self.status!r}, message={self.message!r}, extra={self.extra!r})"