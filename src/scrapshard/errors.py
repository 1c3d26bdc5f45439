from __future__ import annotations


class ScrapbookError(Exception):
    """Base class for failures talking to a scrapbook backend server."""


class ConnectivityError(ScrapbookError):
    """Raised when the backend server cannot be reached at all."""


class ServerError(ScrapbookError):
    """Raised when the server answers with a structured error payload."""


class HttpStatusError(ScrapbookError):
    """Raised when the server answers with a status outside 200-206."""

    def __init__(self, status: int, status_text: str = "") -> None:
        self.status = status
        self.status_text = status_text
        message = f"{status} {status_text}" if status_text else str(status)
        super().__init__(message)


class ProtocolError(ScrapbookError):
    """Raised when a response does not follow the scrapbook server protocol."""


class TokenAcquisitionError(ScrapbookError):
    """Raised when an access token cannot be obtained."""


class MalformedShardError(ScrapbookError):
    """Raised when a tree shard file cannot be decoded."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"Error loading '{url}': {reason}")


class UnknownCollectionError(ScrapbookError, KeyError):
    """Raised when a book id is missing from the server configuration."""

    def __init__(self, book_id: str) -> None:
        self.book_id = book_id
        super().__init__(f"unknown scrapbook: {book_id}")

    def __str__(self) -> str:
        return self.args[0]


__all__ = [
    "ConnectivityError",
    "HttpStatusError",
    "MalformedShardError",
    "ProtocolError",
    "ScrapbookError",
    "ServerError",
    "TokenAcquisitionError",
    "UnknownCollectionError",
]
