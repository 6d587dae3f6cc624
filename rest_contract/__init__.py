"""Declarative HTTP service contracts with MCP tool exposure."""
