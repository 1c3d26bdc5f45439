from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Mapping, Protocol, Union

import requests

from .logging_utils import debug_request


class TransportError(ConnectionError):
    """Raised when an HTTP request cannot be completed."""


@dataclass(slots=True)
class TransportResponse:
    status: int
    status_text: str
    payload: object


@dataclass(slots=True)
class FormFile:
    filename: str
    content: str | bytes
    content_type: str = "application/javascript"

    def as_bytes(self) -> bytes:
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")


FormValue = Union[str, FormFile]


class Transport(Protocol):
    """
    Performs one HTTP request. Failures to reach the server are raised as
    ``TransportError`` (any ``OSError`` is treated the same way by callers).
    """

    def __call__(
        self,
        method: str,
        url: str,
        *,
        response_type: str = "json",
        form: Mapping[str, FormValue] | None = None,
    ) -> TransportResponse:
        ...


def _multipart_fields(form: Mapping[str, FormValue]) -> dict[str, tuple]:
    # Plain fields get a None filename so requests still emits multipart/form-data.
    fields: dict[str, tuple] = {}
    for key, value in form.items():
        if isinstance(value, FormFile):
            fields[key] = (value.filename, value.as_bytes(), value.content_type)
        else:
            fields[key] = (None, str(value))
    return fields


class RequestsTransport:
    """
    Transport backed by a shared ``requests.Session``.
    """

    def __init__(self, timeout: float = 30.0) -> None:
        self.timeout = timeout
        self._session = requests.Session()

    def __call__(
        self,
        method: str,
        url: str,
        *,
        response_type: str = "json",
        form: Mapping[str, FormValue] | None = None,
    ) -> TransportResponse:
        debug_request(method, url)
        files = _multipart_fields(form) if form else None
        try:
            resp = self._session.request(
                method,
                url,
                files=files,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise TransportError(f"Failed to contact {url}: {exc}") from exc

        if response_type == "json":
            try:
                payload: object = resp.json()
            except (json.JSONDecodeError, ValueError):
                payload = None
        elif response_type == "text":
            resp.encoding = "utf-8"
            payload = resp.text
        else:
            payload = resp.content
        return TransportResponse(
            status=resp.status_code,
            status_text=resp.reason or "",
            payload=payload,
        )

    def close(self) -> None:
        self._session.close()


__all__ = [
    "FormFile",
    "FormValue",
    "RequestsTransport",
    "Transport",
    "TransportError",
    "TransportResponse",
]
