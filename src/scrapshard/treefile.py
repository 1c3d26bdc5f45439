"""
Shard files of a book tree wrap a JSON object in a call-shaped envelope::

    /**
     * Feel free to edit this file, but keep data code valid JSON format.
     */
    scrapbook.toc({...})

Grammar accepted when reading::

    file    := head "(" json ")" trailer*
    head    := (comment | whitespace)* callee
    callee  := any characters except "("
    trailer := comment | whitespace | ";"
    comment := "/*" ... "*/"

Extraction runs in two steps: a forward scan of the head locates the opening
parenthesis, and a backward scan strips trailers to locate the closing one.
Everything in between is decoded as JSON.
"""

from __future__ import annotations

import json
from dataclasses import dataclass

from .errors import MalformedShardError

TABLE_KINDS = ("meta", "toc")
TREE_FILE_HEADER = (
    "/**\n"
    " * Feel free to edit this file, but keep data code valid JSON format.\n"
    " */\n"
)
_TRAILER_CHARS = " \t\r\n\f\v;"


@dataclass(slots=True)
class TreeFile:
    callee: str
    data: dict[str, object]


class _ExtractError(ValueError):
    pass


def shard_filename(kind: str, index: int) -> str:
    """Return ``meta.js``, ``meta1.js``, ... for the given shard index."""
    if kind not in TABLE_KINDS:
        raise ValueError(f"Unknown table kind: {kind}")
    if index < 0:
        raise ValueError(f"Shard index must not be negative: {index}")
    return f"{kind}{index or ''}.js"


def parse_shard_index(kind: str, filename: str) -> int | None:
    """Inverse of ``shard_filename``; ``None`` for names of other files."""
    if not filename.startswith(kind) or not filename.endswith(".js"):
        return None
    digits = filename[len(kind):-3]
    if digits == "":
        return 0
    if not digits.isdigit() or not digits.isascii() or digits.startswith("0"):
        return None
    return int(digits)


def generate_tree_file(kind: str, data: object) -> str:
    if kind not in TABLE_KINDS:
        raise ValueError(f"Unknown table kind: {kind}")
    body = json.dumps(data, ensure_ascii=False, indent=2)
    return f"{TREE_FILE_HEADER}scrapbook.{kind}({body})"


def _scan_head(text: str) -> tuple[str, int]:
    pos = 0
    length = len(text)
    while pos < length:
        if text.startswith("/*", pos):
            end = text.find("*/", pos + 2)
            if end < 0:
                raise _ExtractError("unterminated comment before data")
            pos = end + 2
        elif text[pos].isspace():
            pos += 1
        else:
            break
    open_index = text.find("(", pos)
    if open_index < 0:
        raise _ExtractError("missing '(' before data")
    callee = text[pos:open_index].strip()
    if not callee and open_index == 0:
        raise _ExtractError("missing wrapper before '('")
    return callee, open_index


def _scan_tail(text: str, start: int) -> int:
    end = len(text)
    while end > start:
        if text[end - 1] in _TRAILER_CHARS:
            end -= 1
        elif text.endswith("*/", start, end):
            comment_start = text.rfind("/*", start, end - 2)
            if comment_start < 0:
                raise _ExtractError("unbalanced comment after data")
            end = comment_start
        else:
            break
    if end <= start or text[end - 1] != ")":
        raise _ExtractError("missing ')' after data")
    return end - 1


def extract_json_text(text: str) -> tuple[str, str]:
    """Return ``(callee, json_text)`` or raise ``ValueError``."""
    callee, open_index = _scan_head(text)
    close_index = _scan_tail(text, open_index + 1)
    return callee, text[open_index + 1:close_index]


def parse_tree_file(text: str, url: str) -> TreeFile:
    try:
        callee, body = extract_json_text(text)
    except _ExtractError as exc:
        raise MalformedShardError(url, f"Unable to retrieve JSON data: {exc}.") from exc
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        raise MalformedShardError(url, f"Invalid JSON data: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedShardError(
            url,
            f"JSON data must be an object, got {type(data).__name__}.",
        )
    return TreeFile(callee=callee, data=data)


__all__ = [
    "TABLE_KINDS",
    "TREE_FILE_HEADER",
    "TreeFile",
    "extract_json_text",
    "generate_tree_file",
    "parse_shard_index",
    "parse_tree_file",
    "shard_filename",
]
