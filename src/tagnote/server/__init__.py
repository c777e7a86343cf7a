"""MCP server for tagnote."""
