from __future__ import annotations

from urllib.parse import parse_qs, unquote, urlsplit

import pytest

from scrapshard.options import ClientOptions
from scrapshard.server import Server
from scrapshard.transport import FormFile, TransportError, TransportResponse
from scrapshard.treefile import generate_tree_file, shard_filename

SERVER_URL = "http://example.com/wsb/"
TREE_PATH = "/wsb/books/main/tree/"
TREE_URL = "http://example.com" + TREE_PATH


class FakeScrapbookServer:
    """In-memory backend implementing the transport call signature."""

    def __init__(self, *, base: str = "/wsb", books: dict | None = None) -> None:
        self.base = base
        self.books = books or {
            "main": {
                "name": "Main",
                "top_dir": "books/main",
                "data_dir": "data",
                "tree_dir": "tree",
                "index": "tree/map.html",
            },
        }
        self.files: dict[str, str] = {}
        self.dirs: set[str] = set()
        self.calls: list[tuple[str, str]] = []
        self.tokens_issued: list[str] = []
        self.tokens_used: list[str] = []
        self.failures: dict[str, object] = {}

    def put_shard(self, kind: str, index: int, data: dict) -> None:
        self.files[TREE_PATH + shard_filename(kind, index)] = generate_tree_file(kind, data)

    def put_file(self, name: str, text: str) -> None:
        self.files[TREE_PATH + name] = text

    def tree_names(self) -> list[str]:
        return sorted(
            path[len(TREE_PATH):]
            for path in self.files
            if path.startswith(TREE_PATH) and "/" not in path[len(TREE_PATH):]
        )

    def actions(self, action: str) -> list[str]:
        return [url for _, url in self.calls if f"a={action}" in url]

    def __call__(self, method, url, *, response_type="json", form=None):
        self.calls.append((method, url))
        for needle, failure in self.failures.items():
            if needle in url:
                if isinstance(failure, Exception):
                    raise failure
                return failure

        parts = urlsplit(url)
        query = parse_qs(parts.query)
        action = query.get("a", [None])[0]
        path = unquote(parts.path)

        if action == "config":
            data = {"server": {"base": self.base}, "book": self.books, "app": {"name": "fake"}}
            return TransportResponse(200, "OK", {"data": data})
        if action == "token":
            token = f"token-{len(self.tokens_issued)}"
            self.tokens_issued.append(token)
            return TransportResponse(200, "OK", {"data": token})
        if action == "list":
            if not path.endswith("/"):
                path += "/"
            entries = []
            for name in self.tree_names() if path == TREE_PATH else []:
                content = self.files[path + name]
                entries.append(
                    {"name": name, "type": "file", "size": len(content), "last_modified": 0}
                )
            for name in sorted(self.dirs):
                entries.append({"name": name, "type": "dir", "size": None, "last_modified": 0})
            return TransportResponse(200, "OK", {"data": entries})
        if action in {"upload", "delete"}:
            assert method == "POST"
            token = (form or {}).get("token")
            if token not in self.tokens_issued or token in self.tokens_used:
                return TransportResponse(400, "Bad Request", {"error": {"message": "Invalid access token."}})
            self.tokens_used.append(token)
            if action == "upload":
                upload = form["upload"]
                assert isinstance(upload, FormFile)
                self.files[path] = upload.as_bytes().decode("utf-8")
            else:
                if path not in self.files:
                    return TransportResponse(404, "Not Found", {"error": {"message": "File not found."}})
                del self.files[path]
            return TransportResponse(200, "OK", {"success": True})

        if path in self.files:
            return TransportResponse(200, "OK", self.files[path])
        return TransportResponse(404, "Not Found", None if response_type == "json" else "")


class OfflineTransport:
    def __call__(self, method, url, *, response_type="json", form=None):
        raise TransportError(f"connection refused: {url}")


@pytest.fixture
def fake_server() -> FakeScrapbookServer:
    return FakeScrapbookServer()


@pytest.fixture
def server(fake_server: FakeScrapbookServer) -> Server:
    session = Server(ClientOptions(server_url=SERVER_URL), transport=fake_server)
    session.init()
    return session


@pytest.fixture
def book(server: Server):
    return server.book("main")
