"""Licensed under The MIT License (MIT) - Copyright (c) 2020-present James H-B. See LICENSE"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from .enums import ErrorKind

if TYPE_CHECKING:
    from aiohttp import ClientResponse


__all__ = (
    "SteamException",
    "APIError",
    "TransportError",
    "HTTPException",
    "Forbidden",
    "NotFound",
)


class SteamException(Exception):
    """Base exception class for steamchat.

    Errors are passed to callbacks as values, their :attr:`message` is prefixed with the name of the request that
    produced them before delivery.
    """

    def __init__(self, message: str = ""):
        self.message = message
        """The message associated with the error."""
        super().__init__(message)

    def add_prefix(self, prefix: str, /) -> None:
        self.message = f"{prefix}: {self.message}"
        self.args = (self.message,)

    def __str__(self) -> str:
        return self.message


class APIError(SteamException):
    """Exception that's used when the API returns a response that signals failure.

    Subclass of :exc:`SteamException`.
    """

    def __init__(self, kind: ErrorKind, message: str | None = None):
        self.kind = kind
        """The kind of failure."""
        super().__init__(message or "")

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} kind={self.kind!r} message={self.message!r}>"


class TransportError(SteamException):
    """Exception that's used when a request couldn't be completed, the original exception is available as
    ``__cause__``.

    Subclass of :exc:`SteamException`.
    """


class HTTPException(TransportError):
    """Exception that's used for any web API error status.

    Subclass of :exc:`TransportError`.
    """

    def __init__(self, response: ClientResponse, data: dict[str, Any] | Any | None):
        self.response = response
        """The response of the failed HTTP request."""
        self.status = response.status
        """The status code of the HTTP request."""

        if data:
            if isinstance(data, dict):
                message = data.get("message") or data.get("error_description") or data.get("error")
                if message is None and (
                    truthy_str_values := [value for value in data.values() if value and isinstance(value, str)]
                ):
                    message = str(truthy_str_values[0])
                message = message or ""
            else:
                message = str(data)
        else:
            message = ""

        if "X-Error_Message" in response.headers:
            message = response.headers["X-Error_Message"]

        detail = message.replace("  ", " ").strip()
        super().__init__(f"{response.status} {response.reason}{f': {detail}' if detail else ''}")


class Forbidden(HTTPException):
    """Exception that's used when status code 403 occurs.

    Subclass of :exc:`HTTPException`.
    """


class NotFound(HTTPException):
    """Exception that's used when status code 404 occurs.

    Subclass of :exc:`HTTPException`.
    """
