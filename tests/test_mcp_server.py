"""Tests for the MCP server tools."""
import pytest
from unittest.mock import MagicMock, patch

from tagnote.server.mcp_server import TagnoteMcpServer


class TestMcpServer:
    """Tests for TagnoteMcpServer over a real temporary store."""

    @pytest.fixture(autouse=True)
    def _server(self, service):
        """Create a server with FastMCP mocked out and capture its tools."""
        self.registered_tools = {}
        self.mock_mcp = MagicMock()

        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                self.registered_tools[kwargs.get("name")] = func
                return func
            return tool_wrapper

        self.mock_mcp.tool = mock_tool_decorator
        self.service = service
        with patch("tagnote.server.mcp_server.FastMCP", return_value=self.mock_mcp):
            self.server = TagnoteMcpServer(service=service)
        yield

    def test_tools_registered(self):
        assert set(self.registered_tools) == {
            "note_add",
            "note_show",
            "note_list",
            "note_edit",
            "note_delete",
            "note_tags",
            "note_grep",
            "note_status",
        }

    def test_add_and_show(self):
        result = self.registered_tools["note_add"](
            title="Hello", tags="A, b", body="line1\nline2", references="r1"
        )
        assert result == "Added note 1"

        shown = self.registered_tools["note_show"](ids="1")
        assert shown.startswith("# Hello")
        assert "Tags: a,b" in shown
        assert "  - r1" in shown

    def test_show_missing(self):
        assert "Note 4 not found" in self.registered_tools["note_show"](ids="4")

    def test_add_empty_title_reports_error(self):
        result = self.registered_tools["note_add"](title="  ", tags="t")
        assert result == "Error: Title is required"

    def test_list_with_truncation(self):
        for i in range(3):
            self.service.create(title=f"N{i}", tags=["t"])
        result = self.registered_tools["note_list"](limit=2)
        lines = result.splitlines()
        assert lines[0].startswith("3: N2")
        assert lines[-1] == "[Showing the latest 2/3 notes]"

    def test_list_empty(self):
        assert self.registered_tools["note_list"]() == "No notes found."

    def test_list_bad_date(self):
        result = self.registered_tools["note_list"](since="someday")
        assert result.startswith("Error: Could not parse date")

    def test_edit(self):
        note_id = self.service.create(title="Old", tags=["a"])
        result = self.registered_tools["note_edit"](note_id=note_id, tags="x,y")
        assert result == f"Edited note {note_id}: Updated tags"
        assert self.service.get(note_id).tags == ["x", "y"]

    def test_edit_missing(self):
        assert self.registered_tools["note_edit"](note_id=9, title="x") == "Note 9 not found"

    def test_edit_nothing(self):
        assert self.registered_tools["note_edit"](note_id=1) == "Nothing to update"

    def test_delete(self):
        note_id = self.service.create(title="bye")
        result = self.registered_tools["note_delete"](ids=f"{note_id},99")
        assert result.splitlines() == [f"Deleted note {note_id}", "Note 99 not found"]

    def test_delete_invalid_id(self):
        result = self.registered_tools["note_delete"](ids="abc")
        assert result.startswith("Error: Invalid input (ref: ")

    def test_tags(self):
        self.service.create(title="a", tags=["x", "y"])
        self.service.create(title="b", tags=["x"])
        assert self.registered_tools["note_tags"]() == "x (2 notes)\ny (1 note)"

    def test_grep(self):
        self.service.create(title="hello world")
        assert "hello world" in self.registered_tools["note_grep"](pattern="HELLO")
        result = self.registered_tools["note_grep"](pattern="HELLO", case_sensitive=True)
        assert result == "No notes match 'HELLO'."

    def test_grep_invalid_pattern(self):
        result = self.registered_tools["note_grep"](pattern="(")
        assert result.startswith("Error: Invalid search pattern")

    def test_status(self):
        self.service.create(title="a", tags=["x"])
        result = self.registered_tools["note_status"]()
        assert "**Notes:** 1" in result
        assert "**Status:** OK" in result
        assert "## Metrics" in result

    def test_os_errors_are_not_leaked(self):
        with patch.object(self.service, "list_tags", side_effect=OSError("/secret/path")):
            result = self.registered_tools["note_tags"]()
        assert result.startswith("Error: A file system error occurred (ref: ")
        assert "/secret/path" not in result
