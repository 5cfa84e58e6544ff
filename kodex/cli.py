"""CLI entrypoints for kodex commands."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from .config import ConfigError, load_config, write_default_config
from .logging import configure_logging
from .models import ITEM_STATUSES
from .orchestrator import Orchestrator
from .storage import KnowledgeStore, RecordNotFoundError, StorageError


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    kwargs["default"] = argparse.SUPPRESS if suppress_default else False
    parser.add_argument("-v", "--verbose", **kwargs)


def _add_path_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the project root (defaults to current directory).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kodex",
        description="Scan a web application and maintain its help-center knowledge base.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        help="Also write DEBUG-level logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    init_parser = subparsers.add_parser("init", help="Create kodex.config.yaml for a project.")
    _add_verbose_option(init_parser, suppress_default=True)
    _add_path_argument(init_parser)
    init_parser.add_argument(
        "--force", action="store_true", help="Overwrite an existing configuration file."
    )
    init_parser.add_argument("--name", help="Product name used in generated articles.")

    scan_parser = subparsers.add_parser(
        "scan", help="Scan the codebase and generate documentation."
    )
    _add_verbose_option(scan_parser, suppress_default=True)
    _add_path_argument(scan_parser)
    scan_parser.add_argument(
        "--changed",
        action="store_true",
        help="Only regenerate topics whose evidence references new files.",
    )
    scan_parser.add_argument(
        "--dry-run", action="store_true", help="Report what would change without writing."
    )
    scan_parser.add_argument(
        "--no-generate",
        dest="generate",
        action="store_false",
        help="Scan and cache the code map without generating docs.",
    )
    scan_parser.add_argument(
        "--mock", action="store_true", help="Use the offline backend instead of an LLM."
    )

    review_parser = subparsers.add_parser("review", help="List and triage generated docs.")
    _add_verbose_option(review_parser, suppress_default=True)
    _add_path_argument(review_parser)
    review_parser.add_argument("--status", choices=ITEM_STATUSES, help="Only list items with this status.")
    review_parser.add_argument("--approve", metavar="ID", help="Mark an item as approved.")
    review_parser.add_argument("--pin", metavar="ID", help="Pin an item so scans never overwrite it.")
    review_parser.add_argument("--unpin", metavar="ID", help="Allow scans to regenerate an item again.")

    gaps_parser = subparsers.add_parser("gaps", help="Track questions the docs do not answer.")
    _add_verbose_option(gaps_parser, suppress_default=True)
    _add_path_argument(gaps_parser)
    gaps_parser.add_argument("--add", metavar="QUESTION", help="Record an unanswered question.")
    gaps_parser.add_argument("--page", help="Page the question was asked on (with --add).")
    gaps_parser.add_argument("--resolve", metavar="ID", help="Mark a gap as resolved.")

    serve_parser = subparsers.add_parser("serve", help="Serve the knowledge base HTTP API.")
    _add_verbose_option(serve_parser, suppress_default=True)
    _add_path_argument(serve_parser)
    serve_parser.add_argument("--host", help="Interface to bind (defaults to dashboard.host).")
    serve_parser.add_argument("--port", type=int, help="Port to bind (defaults to dashboard.port).")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for kodex commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    if args.command == "init":
        _run_init(parser, args)
    elif args.command == "scan":
        _run_scan(parser, args)
    elif args.command == "review":
        _run_review(parser, args)
    elif args.command == "gaps":
        _run_gaps(parser, args)
    elif args.command == "serve":
        _run_serve(parser, args)
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _run_init(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    root = Path(args.path).expanduser().resolve()
    if not root.is_dir():
        parser.exit(1, f"Project path is not a directory: {root}\n")
    try:
        config_path = write_default_config(root, name=args.name, force=bool(args.force))
        (root / ".kodex").mkdir(exist_ok=True)
    except FileExistsError as exc:
        parser.exit(1, f"{exc}\n")
    except OSError as exc:
        parser.exit(1, f"kodex init failed: {exc}\n")
    print(f"Created {_relativize(config_path)}")
    print("Next: edit the configuration, then run `kodex scan`.")


def _run_scan(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    orchestrator = Orchestrator()
    try:
        outcome = orchestrator.run_scan(
            args.path,
            changed_only=bool(args.changed),
            dry_run=bool(args.dry_run),
            generate=bool(args.generate),
            mock=bool(args.mock),
        )
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    except (FileNotFoundError, NotADirectoryError) as exc:
        parser.exit(1, f"{exc}\n")
    except StorageError as exc:
        parser.exit(1, f"kodex scan failed: {exc}\nRun with --verbose for more details.\n")

    meta = outcome.code_map.meta
    code_map = outcome.code_map
    print(f"Scanned {meta.files_scanned} files in {meta.scan_duration_ms}ms")
    print(f"  Routes: {len(code_map.routes)}")
    print(f"  Components: {len(code_map.components)}")
    print(f"  Pages: {len(code_map.pages)}")
    print(f"  Features: {len(code_map.features)}")
    if meta.framework:
        print(f"  Framework: {meta.framework}")
    if meta.files_failed:
        print(f"  Unparsable files skipped: {meta.files_failed}")

    result = outcome.result
    if result is None:
        print("Scan complete (generation skipped)")
        return
    print(f"  Generated: {result.generated} items")
    print(f"  Updated: {result.updated} items")
    print(f"  Skipped: {result.skipped} items (pinned, unchanged, or failed)")
    if result.tokens_used:
        print(f"  Tokens used: ~{result.tokens_used:,}")
    if outcome.dry_run:
        print("Dry run - no files written")
    drafts = [item for item in result.items if item.status == "draft"]
    if drafts and not outcome.dry_run:
        print(f"{len(drafts)} items need review. Run: kodex review")


def _open_store(parser: argparse.ArgumentParser, path: str) -> KnowledgeStore:
    try:
        config = load_config(path)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    return KnowledgeStore.from_config(config)


def _run_review(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    store = _open_store(parser, args.path)
    try:
        if args.approve:
            item = store.set_status(args.approve, "approved")
            print(f"Approved {item.id}")
            return
        if args.pin:
            item = store.set_pinned(args.pin, True)
            print(f"Pinned {item.id}")
            return
        if args.unpin:
            item = store.set_pinned(args.unpin, False)
            print(f"Unpinned {item.id}")
            return
    except RecordNotFoundError as exc:
        parser.exit(1, f"{exc}\n")
    except StorageError as exc:
        parser.exit(1, f"kodex review failed: {exc}\n")

    items = store.load().items
    if args.status:
        items = [item for item in items if item.status == args.status]
    if not items:
        print("No documentation items found.")
        return
    for item in sorted(items, key=lambda entry: entry.topic):
        flags = " [edited]" if item.human_edited else ""
        print(f"{item.id}  {item.status:<8}  {item.topic}  {item.title}{flags}")


def _run_gaps(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    store = _open_store(parser, args.path)
    try:
        if args.add:
            gap = store.add_gap(args.add, page=args.page)
            print(f"Recorded {gap.id} (asked {gap.frequency}x)")
            return
        if args.resolve:
            gap = store.resolve_gap(args.resolve)
            print(f"Resolved {gap.id}")
            return
    except (RecordNotFoundError, ValueError) as exc:
        parser.exit(1, f"{exc}\n")
    except StorageError as exc:
        parser.exit(1, f"kodex gaps failed: {exc}\n")

    gaps = store.list_gaps()
    if not gaps:
        print("No documentation gaps recorded.")
        return
    for gap in gaps:
        page = f" ({gap.page})" if gap.page else ""
        print(f"{gap.id}  {gap.status:<11}  x{gap.frequency}  {gap.question}{page}")


def _run_serve(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    from .service.app import run_service

    root = Path(args.path).expanduser().resolve()
    try:
        config = load_config(root)
    except ConfigError as exc:
        parser.exit(1, f"{exc}\n")
    run_service(
        root,
        host=args.host or config.dashboard.host,
        port=args.port or config.dashboard.port,
    )


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
