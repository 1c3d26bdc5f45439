from __future__ import annotations

import argparse
import json
import sys
from importlib import metadata
from pathlib import Path

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

import tomllib

from .book import Book, ShardEvent
from .errors import ScrapbookError
from .logging_utils import set_debug_logging
from .options import OptionsError, load_options
from .server import Server


def _read_local_version() -> str | None:
    try:
        pyproject_path = Path(__file__).resolve().parents[2] / "pyproject.toml"
    except IndexError:  # pragma: no cover - defensive
        return None
    try:
        with pyproject_path.open("rb") as fh:
            data = tomllib.load(fh)
    except (FileNotFoundError, tomllib.TOMLDecodeError):
        return None
    return data.get("project", {}).get("version")


try:
    __version__ = metadata.version("scrapshard")
except metadata.PackageNotFoundError:
    __version__ = _read_local_version() or "0.0.0+unknown"


def _add_version_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"scrapshard {__version__}",
    )


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        description="Inspect and rewrite the sharded meta/toc tree of a WebScrapBook backend.",
    )
    _add_version_flag(ap)
    ap.add_argument(
        "--config",
        help="Path to a TOML options file (default: $SCRAPSHARD_CONFIG or ~/.config/scrapshard/config.toml).",
    )
    ap.add_argument(
        "--server",
        help="Backend storage root URL, overriding the options file.",
    )
    ap.add_argument(
        "--timeout",
        type=float,
        help="HTTP timeout in seconds for backend requests.",
    )
    ap.add_argument(
        "--debug",
        action="store_true",
        help="Print every backend request and shard operation.",
    )
    subparsers = ap.add_subparsers(dest="command")

    subparsers.add_parser("books", help="List the books declared by the server.")

    ls = subparsers.add_parser("ls", help="List the files of a book's tree directory.")
    ls.add_argument("book", help="Book id.")

    dump = subparsers.add_parser("dump", help="Load a meta or toc table and print it as JSON.")
    dump.add_argument("book", help="Book id.")
    dump.add_argument("kind", choices=["meta", "toc"])
    dump.add_argument(
        "-o",
        "--output",
        help="Write the JSON to this file instead of stdout.",
    )

    save = subparsers.add_parser("save", help="Replace a meta or toc table from a JSON file.")
    save.add_argument("book", help="Book id.")
    save.add_argument("kind", choices=["meta", "toc"])
    save.add_argument("input_path", help="JSON file holding the whole table.")
    return ap


def _open_server(args: argparse.Namespace) -> Server:
    try:
        options = load_options(Path(args.config).expanduser() if args.config else None)
    except OptionsError as exc:
        raise SystemExit(str(exc)) from exc
    if args.server:
        options.server_url = args.server
    if args.timeout is not None:
        options.timeout = args.timeout
    options.debug = options.debug or bool(args.debug)
    set_debug_logging(options.debug)

    server = Server(options)
    try:
        config = server.init()
    except ScrapbookError as exc:
        server.close()
        raise SystemExit(str(exc)) from exc
    if config is None:
        server.close()
        raise SystemExit("No backend server configured. Use --server or set SCRAPSHARD_SERVER_URL.")
    return server


def _run_books(server: Server, console: Console) -> int:
    print(f"Server root: {server.server_root}")
    table = Table("ID", "Name", "Tree URL")
    for book_id, book in server.books.items():
        table.add_row(book_id, book.name, book.tree_url)
    console.print(table)
    return 0


def _run_ls(book: Book, console: Console) -> int:
    tree_files = book.load_tree_files()
    table = Table("Name", "Type", "Size", "Last modified")
    for name in sorted(tree_files):
        entry = tree_files[name]
        size = entry.get("size")
        modified = entry.get("last_modified", entry.get("lastModified"))
        table.add_row(
            name,
            str(entry.get("type", "")),
            "" if size is None else str(size),
            "" if modified is None else str(modified),
        )
    console.print(table)
    return 0


def _run_dump(book: Book, args: argparse.Namespace) -> int:
    data = book.load_table(args.kind)
    text = json.dumps(data, ensure_ascii=False, indent=2)
    if args.output:
        Path(args.output).write_text(text + "\n", encoding="utf-8")
    else:
        print(text)
    return 0


def _run_save(book: Book, args: argparse.Namespace, console: Console) -> int:
    input_path = Path(args.input_path)
    try:
        data = json.loads(input_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise SystemExit(f"Input file not found: {input_path}") from exc
    except json.JSONDecodeError as exc:
        raise SystemExit(f"Invalid JSON in {input_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise SystemExit(f"{input_path} must hold a JSON object.")
    if args.kind == "toc":
        for key, value in data.items():
            if not isinstance(value, list):
                raise SystemExit(f"toc entry '{key}' must be a list of ids.")

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )
    with progress:
        task = progress.add_task(f"Saving {args.kind} of {book.id}", total=None)

        def _on_progress(event: ShardEvent) -> None:
            verb = "Uploaded" if event.action == "upload" else "Deleted"
            progress.update(task, description=f"{verb} {event.filename}")

        result = book.save_table(args.kind, data, on_progress=_on_progress)

    print(
        f"Saved {len(data)} {args.kind} entries to {book.tree_url}: "
        f"{len(result.written)} shard(s) written, {len(result.deleted)} stale shard(s) deleted."
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    if not args.command:
        raise SystemExit("A command is required. Use --help for options.")

    console = Console()
    server = _open_server(args)
    try:
        if args.command == "books":
            return _run_books(server, console)
        book = server.book(args.book)
        if args.command == "ls":
            return _run_ls(book, console)
        if args.command == "dump":
            return _run_dump(book, args)
        if args.command == "save":
            return _run_save(book, args, console)
    except ScrapbookError as exc:
        raise SystemExit(str(exc)) from exc
    finally:
        server.close()
    raise SystemExit(f"Unknown command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
