"""
UniTune MCP Server Package

MCP server for music link operations:
- Resolve links across platforms
- Create and open share links
- Batch resolution
"""

from unitune.mcp.server import mcp, run_server

__all__ = [
    "mcp",
    "run_server",
]
