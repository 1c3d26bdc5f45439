from __future__ import annotations

import json
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Iterable, Mapping
from urllib.parse import quote

from .errors import ProtocolError, UnknownCollectionError
from .logging_utils import debug_log
from .transport import FormFile
from .treefile import (
    TABLE_KINDS,
    generate_tree_file,
    parse_shard_index,
    parse_tree_file,
    shard_filename,
)

if TYPE_CHECKING:
    from .server import BookConfig, Server

# A string of 256 MiB or more breaks some JavaScript runtimes that read these
# files, so each shard stays around 4 Mi units of estimated size.
SHARD_SIZE_THRESHOLD = 4 * 1024 * 1024


@dataclass(slots=True)
class ShardEvent:
    action: str
    kind: str
    index: int
    filename: str


@dataclass(slots=True)
class SaveResult:
    kind: str
    written: list[str]
    deleted: list[str]


def _check_kind(kind: str) -> None:
    if kind not in TABLE_KINDS:
        raise ValueError(f"Unknown table kind: {kind}")


def _cache_buster() -> str:
    return f"?ts={int(time.time() * 1000)}"


def estimate_entry_size(value: object) -> int:
    """
    Approximate cost of one table entry: a separator plus the compact JSON
    length of its value in UTF-16 code units, the string length JavaScript
    readers see. Not an exact byte count of the pretty-printed file.
    """
    text = json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return 1 + len(text.encode("utf-16-le")) // 2


def split_shards(
    table: Mapping[str, object],
    threshold: int = SHARD_SIZE_THRESHOLD,
) -> list[dict[str, object]]:
    """
    Partition ``table`` in iteration order. A shard is closed by the first entry
    that brings its running estimate to ``threshold`` or above.
    """
    shards: list[dict[str, object]] = []
    current: dict[str, object] = {}
    size = 0
    for key, value in table.items():
        current[key] = value
        size += estimate_entry_size(value)
        if size >= threshold:
            shards.append(current)
            current = {}
            size = 0
    if current:
        shards.append(current)
    return shards


def shard_indices(
    tree_files: Mapping[str, Mapping[str, object]],
    kind: str,
    *,
    files_only: bool = True,
) -> set[int]:
    indices: set[int] = set()
    for name, entry in tree_files.items():
        index = parse_shard_index(kind, name)
        if index is None:
            continue
        if files_only and entry.get("type") != "file":
            continue
        indices.add(index)
    return indices


def _contiguous_from(indices: Iterable[int], start: int) -> list[int]:
    present = set(indices)
    run: list[int] = []
    index = start
    for _ in range(len(present)):
        if index not in present:
            break
        run.append(index)
        index += 1
    return run


class Book:
    """
    One scrapbook on the backend server and its sharded ``meta``/``toc`` tree.

    ``tree_files``, ``meta`` and ``toc`` are snapshots of the remote state:
    ``None`` until loaded and replaced wholesale by every load. Calls on one
    book must not overlap.
    """

    def __init__(self, book_id: str, server: Server) -> None:
        config = server.config.books.get(book_id) if server.config else None
        if config is None:
            raise UnknownCollectionError(book_id)
        self.id = book_id
        self.config: BookConfig = config
        self.server = server
        self.shard_size_threshold = SHARD_SIZE_THRESHOLD

        root = server.server_root or ""
        self.top_url = root + (f"{config.top_dir}/" if config.top_dir else "")
        self.data_url = self.top_url + (f"{config.data_dir}/" if config.data_dir else "")
        self.tree_url = self.top_url + (f"{config.tree_dir}/" if config.tree_dir else "")
        self.index_url = self.top_url + config.index

        self.tree_files: dict[str, dict[str, object]] | None = None
        self.meta: dict[str, object] | None = None
        self.toc: dict[str, list[str]] | None = None

    @property
    def name(self) -> str:
        return self.config.name or self.id

    def __repr__(self) -> str:
        return f"Book(id={self.id!r}, tree_url={self.tree_url!r})"

    def load_tree_files(self) -> dict[str, dict[str, object]]:
        response = self.server.request(f"{self.tree_url}?a=list&f=json")
        payload = response.payload
        data = payload.get("data") if isinstance(payload, Mapping) else None
        if not isinstance(data, list):
            raise ProtocolError(f"Unexpected directory listing for {self.tree_url}")
        tree_files: dict[str, dict[str, object]] = {}
        for item in data:
            if not isinstance(item, Mapping) or not isinstance(item.get("name"), str):
                raise ProtocolError(f"Unexpected directory entry for {self.tree_url}: {item!r}")
            tree_files[item["name"]] = dict(item)
        self.tree_files = tree_files
        return tree_files

    def load_table(self, kind: str) -> dict[str, object]:
        _check_kind(kind)
        tree_files = self.load_tree_files()
        suffix = _cache_buster()
        merged: dict[str, object] = {}
        for index in _contiguous_from(shard_indices(tree_files, kind), 0):
            url = self.tree_url + quote(shard_filename(kind, index))
            debug_log(f"loading {kind} shard {index} from {url}")
            text = self.server.request(url + suffix, response_type="text").payload
            if not isinstance(text, str):
                text = "" if text is None else str(text)
            merged.update(parse_tree_file(text, url).data)
        setattr(self, kind, merged)
        return merged

    def load_meta(self) -> dict[str, object]:
        return self.load_table("meta")

    def load_toc(self) -> dict[str, list[str]]:
        return self.load_table("toc")  # type: ignore[return-value]

    def _upload_shard(self, kind: str, index: int, shard: Mapping[str, object]) -> str:
        filename = shard_filename(kind, index)
        content = generate_tree_file(kind, shard)
        form = {
            "token": self.server.acquire_token(),
            "upload": FormFile(filename, content),
        }
        debug_log(f"uploading {filename} ({len(shard)} entries)")
        self.server.request(
            f"{self.tree_url}{filename}?a=upload&f=json",
            method="POST",
            form=form,
        )
        return filename

    def _delete_file(self, path: str) -> None:
        form = {"token": self.server.acquire_token()}
        debug_log(f"deleting stale {path}")
        self.server.request(
            f"{self.tree_url}{path}?a=delete&f=json",
            method="POST",
            form=form,
        )

    def save_table(
        self,
        kind: str,
        table: Mapping[str, object] | None = None,
        *,
        on_progress: Callable[[ShardEvent], None] | None = None,
    ) -> SaveResult:
        """
        Write ``table`` as shard files and remove shards left over from a
        previous, larger save.

        Every upload and delete uses its own freshly acquired token. A failure
        aborts immediately; shards already written or deleted stay that way,
        so reload before retrying.
        """
        _check_kind(kind)
        if table is None:
            table = getattr(self, kind)
            if table is None:
                raise ValueError(f"No {kind} table loaded for book '{self.id}'.")

        written: list[str] = []
        for index, shard in enumerate(split_shards(table, self.shard_size_threshold)):
            filename = self._upload_shard(kind, index, shard)
            written.append(filename)
            if on_progress is not None:
                on_progress(ShardEvent("upload", kind, index, filename))

        deleted: list[str] = []
        tree_files = self.load_tree_files()
        stale = _contiguous_from(shard_indices(tree_files, kind, files_only=False), len(written))
        for index in stale:
            filename = shard_filename(kind, index)
            self._delete_file(filename)
            deleted.append(filename)
            if on_progress is not None:
                on_progress(ShardEvent("delete", kind, index, filename))

        setattr(self, kind, dict(table))
        return SaveResult(kind=kind, written=written, deleted=deleted)

    def save_meta(
        self,
        meta: Mapping[str, object] | None = None,
        *,
        on_progress: Callable[[ShardEvent], None] | None = None,
    ) -> SaveResult:
        return self.save_table("meta", meta, on_progress=on_progress)

    def save_toc(
        self,
        toc: Mapping[str, list[str]] | None = None,
        *,
        on_progress: Callable[[ShardEvent], None] | None = None,
    ) -> SaveResult:
        return self.save_table("toc", toc, on_progress=on_progress)


__all__ = [
    "Book",
    "SHARD_SIZE_THRESHOLD",
    "SaveResult",
    "ShardEvent",
    "estimate_entry_size",
    "shard_indices",
    "split_shards",
]
