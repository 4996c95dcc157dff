"""MCP stdio server exposing sync and backup tools."""
