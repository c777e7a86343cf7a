"""Command line interface for tagnote."""
import argparse
import logging
import shutil
import sys
from pathlib import Path
from typing import List, Optional, TextIO

from tagnote import __version__
from tagnote.config import LEGACY_DB_FILE, config
from tagnote.dateparse import parse_human_date
from tagnote.exceptions import (
    ConfigurationError,
    ErrorCode,
    TagnoteError,
    ValidationError,
)
from tagnote.models.schema import NoteSummary
from tagnote.observability import configure_logging
from tagnote.services.importer import LegacyImporter, find_legacy_db
from tagnote.services.note_service import NoteService
from tagnote.storage.note_repository import NoteRepository
from tagnote.storage.record_store import NOTES_DIR_NAME
from tagnote.utils import split_csv

logger = logging.getLogger(__name__)

# Exit codes: user-facing problems vs. environment/corruption problems
EXIT_OK = 0
EXIT_USER_ERROR = 1
EXIT_STORAGE_ERROR = 2

SEPARATOR = "=" * 40


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tagnote", description="File-based notes organized by tags"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--store",
        type=Path,
        help="Store directory (default: nearest .tagnote directory above the CWD)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level,
        help="Logging level",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create a new store in the current directory")
    p.add_argument("--reinitialize", action="store_true",
                   help="Delete the existing store and create an empty one")

    p = sub.add_parser("add", help="Add a new note")
    p.add_argument("--title", required=True, help="Note title")
    p.add_argument("--tags", required=True, help="Comma-separated tags")
    p.add_argument("--body", help="Note body (read from stdin if omitted)")
    p.add_argument("--references", help="Comma-separated references (paths, URLs, docs)")

    p = sub.add_parser("ls", help="List notes, most recently modified first")
    p.add_argument("tags", nargs="?", help="Only notes with any of these comma-separated tags")
    p.add_argument("--from", dest="since", help="Modified at or after (e.g. '2 days ago')")
    p.add_argument("--to", dest="until", help="Modified at or before")
    p.add_argument("-n", "--head", type=int, default=config.default_limit,
                   help="Number of notes to show (0 for all)")

    p = sub.add_parser("show", help="Show one or more notes")
    p.add_argument("ids", help="Comma-separated note IDs")
    p.add_argument("-n", "--head", type=int, help="Only show the first N lines of each body")

    p = sub.add_parser("edit", help="Edit a note")
    p.add_argument("id", type=int, help="Note ID")
    p.add_argument("--title", help="New title")
    p.add_argument("--tags", help="New comma-separated tags (replaces all tags)")
    p.add_argument("--body", help="New body (read from stdin if piped)")
    p.add_argument("--references", help="New comma-separated references")

    p = sub.add_parser("rm", help="Delete one or more notes")
    p.add_argument("ids", help="Comma-separated note IDs")

    sub.add_parser("tags", help="List all tags with note counts")

    p = sub.add_parser("grep", help="Search titles and bodies with a regular expression")
    p.add_argument("pattern", help="Regular expression")
    p.add_argument("--tags", help="Only search notes with any of these comma-separated tags")
    p.add_argument("-C", "--case-sensitive", action="store_true", help="Case-sensitive search")

    p = sub.add_parser("import-legacy", help="Import notes from a legacy SQLite database")
    p.add_argument("path", nargs="?", type=Path,
                   help=f"Database file (default: {LEGACY_DB_FILE} in the store)")
    p.add_argument("--keep", action="store_true", help="Keep the database after importing")

    p = sub.add_parser("check", help="Verify that every tag link points at a note")
    p.add_argument("--repair", action="store_true", help="Remove dangling tag links")

    return parser


def parse_ids(value: str) -> List[int]:
    ids = []
    for item in split_csv(value):
        if not item.isdigit() or int(item) <= 0:
            raise ValidationError(f"Invalid note ID: {item}", field="ids", value=item)
        ids.append(int(item))
    return ids


def find_store(start: Optional[Path] = None) -> Optional[Path]:
    """Locate the store directory by walking up from start (default: CWD)."""
    store_dir = config.store_dir
    if store_dir.is_absolute():
        return store_dir if store_dir.is_dir() else None
    current = (start or Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / store_dir
        if candidate.is_dir():
            return candidate
    return None


def _store_root(args: argparse.Namespace) -> Path:
    if args.store:
        if not args.store.is_dir():
            raise ConfigurationError(
                f"No store at {args.store}", config_key="store", code=ErrorCode.STORE_NOT_FOUND
            )
        return args.store
    root = find_store()
    if root is None:
        raise ConfigurationError(
            f"No {config.store_dir} directory found. "
            "Run 'tagnote init' to create a new store.",
            config_key="store_dir",
            code=ErrorCode.STORE_NOT_FOUND,
        )
    return root


def _open_service(args: argparse.Namespace) -> NoteService:
    root = _store_root(args)
    repository = NoteRepository(root)
    legacy_db = find_legacy_db(root)
    if legacy_db is not None and args.command != "import-legacy":
        print("Migrating from SQLite database to file-based storage...", file=sys.stderr)
        count = LegacyImporter(repository).run(legacy_db)
        print(f"Migration complete: {count} note(s) imported, "
              "SQLite database removed.", file=sys.stderr)
    return NoteService(repository)


def _read_stdin(stdin: TextIO) -> str:
    return stdin.read()


def _print_summaries(summaries: List[NoteSummary], out: TextIO) -> None:
    for s in summaries:
        print(f"{s.id}: {s.title} ({s.modified}) -- {s.body_preview}", file=out)


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def cmd_init(args: argparse.Namespace, out: TextIO) -> int:
    root = args.store or config.get_store_path()
    reinitialized = False
    if root.exists():
        if args.reinitialize:
            shutil.rmtree(root)
            reinitialized = True
        elif (root / NOTES_DIR_NAME).exists() or (root / LEGACY_DB_FILE).exists():
            print("A store is already initialized here. "
                  "Use --reinitialize to delete and recreate it.", file=sys.stderr)
            return EXIT_USER_ERROR
    NoteRepository(root)
    verb = "Reinitialized" if reinitialized else "Initialized"
    print(f"{verb} tagnote store in {root}", file=out)
    return EXIT_OK


def cmd_add(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    body = args.body if args.body is not None else _read_stdin(sys.stdin)
    note_id = service.create(
        title=args.title,
        body=body,
        tags=split_csv(args.tags),
        references=split_csv(args.references) if args.references else [],
    )
    print(f"Added note {note_id}", file=out)
    return EXIT_OK


def cmd_ls(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    if args.head < 0:
        raise ValidationError("--head must be >= 0", field="head", value=args.head)
    tags = split_csv(args.tags) if args.tags else None
    since = parse_human_date(args.since) if args.since else None
    until = parse_human_date(args.until) if args.until else None

    summaries = service.list_summaries(tags=tags, since=since, until=until, limit=args.head)
    _print_summaries(summaries, out)

    if args.head > 0 and len(summaries) >= args.head:
        total = service.count(tags=tags, since=since, until=until)
        if total > args.head:
            print(f"[Showing the latest {args.head}/{total} notes]", file=out)
    return EXIT_OK


def cmd_show(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    ids = parse_ids(args.ids)
    if not ids:
        print("No note IDs provided", file=sys.stderr)
        return EXIT_USER_ERROR

    not_found = []
    first = True
    for note_id in ids:
        note = service.get(note_id)
        if note is None:
            not_found.append(note_id)
            continue
        if not first:
            print(f"\n{SEPARATOR}\n", file=out)
        first = False

        print(f"# {note.title}\n", file=out)
        if args.head is not None:
            lines = note.body.splitlines()
            print("\n".join(lines[: args.head]), file=out)
            if len(lines) > args.head:
                print("...", file=out)
        else:
            print(note.body, file=out)
        print("\n---\n", file=out)
        print(f"Last modified: {note.modified}", file=out)
        print(f"Tags: {','.join(note.tags)}", file=out)
        if note.references:
            print("References:", file=out)
            for reference in note.references:
                print(f"  - {reference}", file=out)

    for note_id in not_found:
        print(f"Note {note_id} not found", file=sys.stderr)
    return EXIT_USER_ERROR if not_found else EXIT_OK


def cmd_edit(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    body = args.body
    if body is None and not sys.stdin.isatty():
        # Empty piped input means "no new body"
        body = _read_stdin(sys.stdin) or None

    fields = {
        "title": args.title,
        "body": body,
        "tags": split_csv(args.tags) if args.tags is not None else None,
        "references": split_csv(args.references) if args.references is not None else None,
    }
    updated_fields = [name for name, value in fields.items() if value is not None]
    if not updated_fields:
        print("Nothing to update", file=sys.stderr)
        return EXIT_USER_ERROR

    if not service.update(args.id, **fields):
        print(f"Note {args.id} not found", file=sys.stderr)
        return EXIT_USER_ERROR
    print(f"Edited note {args.id}: Updated {', '.join(updated_fields)}", file=out)
    return EXIT_OK


def cmd_rm(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    ids = parse_ids(args.ids)
    if not ids:
        print("No note IDs provided", file=sys.stderr)
        return EXIT_USER_ERROR

    deleted, not_found = [], []
    for note_id in ids:
        (deleted if service.delete(note_id) else not_found).append(note_id)
    for note_id in deleted:
        print(f"Deleted note {note_id}", file=out)
    for note_id in not_found:
        print(f"Note {note_id} not found", file=sys.stderr)
    return EXIT_USER_ERROR if not_found else EXIT_OK


def cmd_tags(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    for tag in service.list_tags():
        print(str(tag), file=out)
    return EXIT_OK


def cmd_grep(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    tags = split_csv(args.tags) if args.tags else None
    summaries = service.grep_summaries(
        args.pattern, tags=tags, case_sensitive=args.case_sensitive
    )
    _print_summaries(summaries, out)
    return EXIT_OK


def cmd_import_legacy(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    repository = service.repository
    db_path = args.path or find_legacy_db(repository.root)
    if db_path is None or not Path(db_path).is_file():
        print(f"No legacy database found at {db_path or repository.root / LEGACY_DB_FILE}",
              file=sys.stderr)
        return EXIT_USER_ERROR
    count = LegacyImporter(repository).run(db_path, remove=not args.keep)
    print(f"Imported {count} note(s) from {db_path}", file=out)
    return EXIT_OK


def cmd_check(args: argparse.Namespace, service: NoteService, out: TextIO) -> int:
    report = service.repository.check_index(repair=args.repair)
    print(f"Checked {report.links_checked} tag link(s)", file=out)
    for tag, note_id in report.dangling:
        print(f"Dangling link: {tag}/{note_id}", file=out)
    for entry in report.stray_entries:
        print(f"Stray entry: {entry}", file=out)
    if report.untagged_ids:
        print(f"Untagged notes: {', '.join(str(i) for i in report.untagged_ids)}", file=out)
    if args.repair:
        if report.repaired:
            print(f"Removed {report.repaired} dangling link(s)", file=out)
        # Stray entries are reported but never removed
        return EXIT_OK
    return EXIT_OK if report.ok else EXIT_USER_ERROR


COMMANDS = {
    "add": cmd_add,
    "ls": cmd_ls,
    "show": cmd_show,
    "edit": cmd_edit,
    "rm": cmd_rm,
    "tags": cmd_tags,
    "grep": cmd_grep,
    "import-legacy": cmd_import_legacy,
    "check": cmd_check,
}


def main(argv: Optional[List[str]] = None, out: Optional[TextIO] = None) -> int:
    """Run the CLI and return its exit code."""
    args = build_parser().parse_args(argv)
    out = out or sys.stdout

    configure_logging(
        log_dir=config.log_dir,
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
    )

    try:
        if args.command == "init":
            return cmd_init(args, out)
        service = _open_service(args)
        return COMMANDS[args.command](args, service, out)
    except (ValidationError, ConfigurationError) as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_USER_ERROR
    except TagnoteError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Storage error: {e.message}", file=sys.stderr)
        return EXIT_STORAGE_ERROR


if __name__ == "__main__":
    sys.exit(main())
