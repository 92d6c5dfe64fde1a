"""MCP server for building LaTeX documents through a configurable toolchain."""

__version__ = "0.1.0"
