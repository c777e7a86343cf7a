"""MCP server exposing the note store as tools."""

import logging
import uuid
from typing import List, Optional

from mcp.server.fastmcp import FastMCP

from tagnote.config import config
from tagnote.dateparse import parse_human_date
from tagnote.exceptions import TagnoteError
from tagnote.observability import metrics, timed_operation
from tagnote.services.note_service import NoteService
from tagnote.utils import split_csv

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_BODY_LENGTH = 1_000_000  # 1 MB


def _validate_input_lengths(
    title: Optional[str] = None, body: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters")
    if body and len(body) > MAX_BODY_LENGTH:
        raise ValueError(f"Body exceeds maximum length of {MAX_BODY_LENGTH} characters")


def _parse_ids(ids: str) -> List[int]:
    result = []
    for item in split_csv(ids):
        if not item.isdigit():
            raise ValueError(f"Invalid note ID: {item}")
        result.append(int(item))
    return result


class TagnoteMcpServer:
    """MCP server for a tagnote store."""

    def __init__(self, service: Optional[NoteService] = None):
        """Initialize the MCP server.

        Args:
            service: Note service to expose. Opens the configured store if None.
        """
        self.mcp = FastMCP(config.server_name, version=config.server_version)
        self.note_service = service or NoteService()
        self._register_tools()
        logger.info(f"tagnote MCP server initialized for {self.note_service.repository.root}")

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Domain errors carry a user-facing message. Anything else is logged
        in full and reported only by a reference ID.
        """
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, TagnoteError):
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.to_dict()},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, OSError):
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _format_summaries(self, summaries) -> str:
        return "\n".join(
            f"{s.id}: {s.title} ({s.modified}) [{', '.join(s.tags)}] -- {s.body_preview}"
            for s in summaries
        )

    def _register_tools(self) -> None:
        """Register MCP tools."""

        @self.mcp.tool(name="note_add")
        def note_add(
            title: str,
            tags: str,
            body: str = "",
            references: Optional[str] = None,
        ) -> str:
            """Add a new note.
            Args:
                title: The title of the note
                tags: Comma-separated list of tags
                body: The note body
                references: Comma-separated references (source paths, URLs, docs)
            """
            with timed_operation("note_add", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, body=body)
                    note_id = self.note_service.create(
                        title=title,
                        body=body,
                        tags=split_csv(tags),
                        references=split_csv(references) if references else [],
                    )
                    op["note_id"] = note_id
                    return f"Added note {note_id}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_show")
        def note_show(ids: str, head: Optional[int] = None) -> str:
            """Show one or more notes in full.
            Args:
                ids: Comma-separated note IDs
                head: Only include the first N lines of each body (optional)
            """
            with timed_operation("note_show", ids=ids[:30]) as op:
                try:
                    parts = []
                    missing = []
                    for note_id in _parse_ids(ids):
                        note = self.note_service.get(note_id)
                        if note is None:
                            missing.append(note_id)
                            continue
                        body = note.body
                        if head is not None:
                            lines = body.splitlines()
                            body = "\n".join(lines[:head])
                            if len(lines) > head:
                                body += "\n..."
                        text = (
                            f"# {note.title}\n\n{body}\n\n---\n"
                            f"ID: {note.id}\n"
                            f"Last modified: {note.modified}\n"
                            f"Tags: {','.join(note.tags)}\n"
                        )
                        if note.references:
                            text += "References:\n" + "".join(
                                f"  - {ref}\n" for ref in note.references
                            )
                        parts.append(text)
                    op["found"] = len(parts)
                    output = f"\n{'=' * 40}\n\n".join(parts)
                    if missing:
                        output += "".join(f"\nNote {i} not found" for i in missing)
                    return output.strip() or "No note IDs provided"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_list")
        def note_list(
            tags: Optional[str] = None,
            since: Optional[str] = None,
            until: Optional[str] = None,
            limit: int = config.default_limit,
        ) -> str:
            """List notes, most recently modified first.
            Args:
                tags: Comma-separated tags; notes with ANY of them are listed (optional)
                since: Modified at or after, e.g. "2 days ago" or "2024-01-01" (optional)
                until: Modified at or before (optional)
                limit: Maximum number of notes (0 for all)
            """
            with timed_operation("note_list") as op:
                try:
                    tag_list = split_csv(tags) if tags else None
                    since_ts = parse_human_date(since) if since else None
                    until_ts = parse_human_date(until) if until else None
                    summaries = self.note_service.list_summaries(
                        tags=tag_list, since=since_ts, until=until_ts, limit=limit
                    )
                    op["result_count"] = len(summaries)
                    if not summaries:
                        return "No notes found."
                    output = self._format_summaries(summaries)
                    if limit and len(summaries) >= limit:
                        total = self.note_service.count(
                            tags=tag_list, since=since_ts, until=until_ts
                        )
                        if total > limit:
                            output += f"\n[Showing the latest {limit}/{total} notes]"
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_edit")
        def note_edit(
            note_id: int,
            title: Optional[str] = None,
            body: Optional[str] = None,
            tags: Optional[str] = None,
            references: Optional[str] = None,
        ) -> str:
            """Edit a note. Only the provided fields change.
            Args:
                note_id: ID of the note
                title: New title (optional)
                body: New body (optional)
                tags: New comma-separated tags, replacing all tags (optional)
                references: New comma-separated references (optional)
            """
            with timed_operation("note_edit", note_id=note_id) as op:
                try:
                    _validate_input_lengths(title=title, body=body)
                    fields = {
                        "title": title,
                        "body": body,
                        "tags": split_csv(tags) if tags is not None else None,
                        "references": (
                            split_csv(references) if references is not None else None
                        ),
                    }
                    updated = [k for k, v in fields.items() if v is not None]
                    if not updated:
                        return "Nothing to update"
                    if not self.note_service.update(note_id, **fields):
                        op["found"] = False
                        return f"Note {note_id} not found"
                    return f"Edited note {note_id}: Updated {', '.join(updated)}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_delete")
        def note_delete(ids: str) -> str:
            """Delete one or more notes.
            Args:
                ids: Comma-separated note IDs
            """
            with timed_operation("note_delete", ids=ids[:30]) as op:
                try:
                    lines = []
                    deleted = 0
                    for note_id in _parse_ids(ids):
                        if self.note_service.delete(note_id):
                            deleted += 1
                            lines.append(f"Deleted note {note_id}")
                        else:
                            lines.append(f"Note {note_id} not found")
                    op["result_count"] = deleted
                    return "\n".join(lines) or "No note IDs provided"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_tags")
        def note_tags() -> str:
            """List all tags with their note counts, most used first."""
            with timed_operation("note_tags") as op:
                try:
                    tags = self.note_service.list_tags()
                    op["result_count"] = len(tags)
                    if not tags:
                        return "No tags found."
                    return "\n".join(str(tag) for tag in tags)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_grep")
        def note_grep(
            pattern: str,
            tags: Optional[str] = None,
            case_sensitive: bool = False,
        ) -> str:
            """Search note titles and bodies with a regular expression.
            Args:
                pattern: Regular expression
                tags: Comma-separated tags to restrict the search (optional)
                case_sensitive: Match case exactly (default: false)
            """
            with timed_operation("note_grep", pattern=pattern[:30]) as op:
                try:
                    summaries = self.note_service.grep_summaries(
                        pattern,
                        tags=split_csv(tags) if tags else None,
                        case_sensitive=case_sensitive,
                    )
                    op["result_count"] = len(summaries)
                    if not summaries:
                        return f"No notes match '{pattern}'."
                    return self._format_summaries(summaries)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="note_status")
        def note_status(sections: str = "all") -> str:
            """Get store status.
            Args:
                sections: Comma-separated sections to include:
                    - "summary": Store location and note/tag counts
                    - "health": Tag index integrity
                    - "metrics": Server performance metrics
                    - "all": Include all sections (default)
            """
            with timed_operation("note_status"):
                try:
                    requested = set(s.strip().lower() for s in sections.split(","))
                    include_all = "all" in requested
                    repo = self.note_service.repository
                    output = "# tagnote Status\n\n"

                    if include_all or "summary" in requested:
                        info = repo.store_info()
                        output += "## Summary\n"
                        output += f"**Store:** {info['root']}\n"
                        output += f"**Link mode:** {info['link_mode']}\n"
                        output += f"**Notes:** {info['note_count']}\n"
                        output += f"**Tags:** {info['tag_count']}\n"
                        output += f"**Last ID:** {info['last_id']}\n\n"

                    if include_all or "health" in requested:
                        report = repo.check_index()
                        output += "## Health\n"
                        output += f"**Status:** {'OK' if report.ok else 'ISSUES FOUND'}\n"
                        output += f"**Links checked:** {report.links_checked}\n"
                        if report.dangling:
                            output += f"**Dangling links:** {len(report.dangling)}\n"
                        if report.stray_entries:
                            output += f"**Stray entries:** {len(report.stray_entries)}\n"
                        output += "\n"

                    if include_all or "metrics" in requested:
                        summary = metrics.get_summary()
                        output += "## Metrics\n"
                        output += f"**Uptime:** {summary['uptime_seconds']:.0f}s\n"
                        output += f"**Operations:** {summary['total_operations']}\n"
                        output += f"**Errors:** {summary['total_errors']}\n"
                        for name, m in sorted(metrics.get_metrics().items()):
                            output += (
                                f"  - {name}: {m['count']} calls, "
                                f"avg {m['avg_duration_ms']:.1f}ms\n"
                            )
                    return output.rstrip() + "\n"
                except Exception as e:
                    return self.format_error_response(e)

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
