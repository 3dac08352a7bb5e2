"""MCP stdio server exposing the sync engine as tools."""
