from __future__ import annotations

import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping
from urllib.parse import urlsplit, urlunsplit

from .book import Book
from .errors import (
    ConnectivityError,
    HttpStatusError,
    ProtocolError,
    ScrapbookError,
    ServerError,
    TokenAcquisitionError,
    UnknownCollectionError,
)
from .logging_utils import debug_log
from .options import ClientOptions
from .transport import FormValue, RequestsTransport, Transport, TransportResponse

_BOOK_CONFIG_FIELDS = ("name", "top_dir", "data_dir", "tree_dir", "index", "no_tree")


def _timestamp_ms() -> int:
    return int(time.time() * 1000)


def _optional_str(payload: Mapping[str, object], key: str) -> str | None:
    value = payload.get(key)
    if value is None or value == "":
        return None
    return str(value)


@dataclass(frozen=True, slots=True)
class BookConfig:
    index: str
    name: str | None = None
    top_dir: str | None = None
    data_dir: str | None = None
    tree_dir: str | None = None
    no_tree: bool = False
    extra: Mapping[str, object] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, book_id: str, payload: object) -> "BookConfig":
        if not isinstance(payload, Mapping):
            raise ProtocolError(f"Invalid configuration for book '{book_id}'.")
        index = payload.get("index")
        if not isinstance(index, str) or not index:
            raise ProtocolError(f"Book '{book_id}' does not declare an index file.")
        extra = {k: v for k, v in payload.items() if k not in _BOOK_CONFIG_FIELDS}
        return cls(
            index=index,
            name=_optional_str(payload, "name"),
            top_dir=_optional_str(payload, "top_dir"),
            data_dir=_optional_str(payload, "data_dir"),
            tree_dir=_optional_str(payload, "tree_dir"),
            no_tree=bool(payload.get("no_tree", False)),
            extra=MappingProxyType(extra),
        )


@dataclass(frozen=True, slots=True)
class ServerConfig:
    base: str
    books: Mapping[str, BookConfig]

    @classmethod
    def from_payload(cls, payload: object) -> "ServerConfig":
        if not isinstance(payload, Mapping):
            raise ProtocolError("The server configuration is not an object.")
        server = payload.get("server")
        if not isinstance(server, Mapping):
            raise ProtocolError("The server configuration lacks a 'server' section.")
        base = server.get("base", "")
        if not isinstance(base, str):
            raise ProtocolError("The server base path must be a string.")
        books_payload = payload.get("book") or {}
        if not isinstance(books_payload, Mapping):
            raise ProtocolError("The server configuration 'book' entry is not an object.")
        books = {
            str(book_id): BookConfig.from_payload(str(book_id), entry)
            for book_id, entry in books_payload.items()
        }
        return cls(
            base=base.rstrip("/"),
            books=MappingProxyType(books),
        )


def resolve_server_root(configured_root: str, base: str) -> str:
    """Replace the path of ``configured_root`` with the server's base path."""
    parts = urlsplit(configured_root)
    path = base.rstrip("/") + "/"
    if not path.startswith("/"):
        path = "/" + path
    return urlunsplit((parts.scheme, parts.netloc, path, "", ""))


class Server:
    """
    Session with a scrapbook backend server.

    Holds the server configuration and the book set derived from it. Both are
    replaced together by ``init``.
    """

    def __init__(
        self,
        options: ClientOptions | None = None,
        *,
        transport: Transport | None = None,
    ) -> None:
        self.options = options or ClientOptions()
        self._owns_transport = transport is None
        self._transport: Transport = transport or RequestsTransport(timeout=self.options.timeout)
        self._config: ServerConfig | None = None
        self._server_root: str | None = None
        self._books: dict[str, Book] | None = None

    @property
    def server_root(self) -> str | None:
        return self._server_root

    @property
    def config(self) -> ServerConfig | None:
        return self._config

    @property
    def books(self) -> Mapping[str, Book]:
        return MappingProxyType(self._books or {})

    def request(
        self,
        url: str,
        *,
        method: str = "GET",
        response_type: str = "json",
        form: Mapping[str, FormValue] | None = None,
    ) -> TransportResponse:
        try:
            response = self._transport(
                method,
                url,
                response_type=response_type,
                form=form,
            )
        except OSError as exc:
            debug_log(f"transport failure for {url}: {exc}")
            raise ConnectivityError("Unable to connect to backend server.") from exc

        payload = response.payload
        if isinstance(payload, Mapping):
            error = payload.get("error")
            if isinstance(error, Mapping) and error.get("message"):
                raise ServerError(str(error["message"]))
        if not 200 <= response.status <= 206:
            raise HttpStatusError(response.status, response.status_text)
        return response

    def init(self, refresh: bool = False) -> ServerConfig | None:
        if not self.options.has_server():
            return None

        configured_root = self.options.server_url.strip()
        if not configured_root.endswith("/"):
            configured_root += "/"

        if (
            self._config is not None
            and not refresh
            and self._server_root is not None
            and configured_root.startswith(self._server_root)
        ):
            debug_log(f"reusing cached config for {self._server_root}")
            return self._config

        response = self.request(
            f"{configured_root}?a=config&f=json&ts={_timestamp_ms()}",
        )
        payload = response.payload
        if not isinstance(payload, Mapping) or not payload.get("data"):
            raise ProtocolError("The server does not support WebScrapBook protocol.")
        config = ServerConfig.from_payload(payload["data"])
        server_root = resolve_server_root(configured_root, config.base)

        self._config = config
        self._server_root = server_root
        self._books = {book_id: Book(book_id, self) for book_id in config.books}
        debug_log(f"loaded config from {server_root}: {len(self._books)} book(s)")
        return config

    def book(self, book_id: str) -> Book:
        if self._books is None or book_id not in self._books:
            raise UnknownCollectionError(book_id)
        return self._books[book_id]

    def acquire_token(self, url: str | None = None) -> str:
        target = url or self._server_root
        try:
            if not target:
                raise ProtocolError("The server has not been initialized.")
            response = self.request(f"{target}?a=token&f=json")
            payload = response.payload
            if not isinstance(payload, Mapping) or not isinstance(payload.get("data"), str):
                raise ProtocolError("The server returned no token.")
            return payload["data"]
        except ScrapbookError as exc:
            raise TokenAcquisitionError(f"Unable to acquire access token: {exc}") from exc

    def close(self) -> None:
        close = getattr(self._transport, "close", None)
        if self._owns_transport and callable(close):
            close()


__all__ = [
    "BookConfig",
    "Server",
    "ServerConfig",
    "resolve_server_root",
]
