"""MCP server exposing Coda docs, pages, tables and rows as tools."""

__version__ = "0.1.0"
