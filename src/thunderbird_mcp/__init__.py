"""
Thunderbird MCP
===============

MCP tools over a Thunderbird profile: mail search and reading, draft
composition, folder and message management, contacts, calendar events and
message filters. Served as JSON-RPC over localhost HTTP with a stdio bridge.
"""

__version__ = "0.1.0"

from src.thunderbird_mcp.bridge import ThunderbirdBridge
from src.thunderbird_mcp.config import ServerConfig, load_config
from src.thunderbird_mcp.profile import Profile
from src.thunderbird_mcp.server import ThunderbirdMCPServer, create_server, get_server

__all__ = [
    "ThunderbirdMCPServer",
    "get_server",
    "create_server",
    "ThunderbirdBridge",
    "ServerConfig",
    "load_config",
    "Profile",
]
