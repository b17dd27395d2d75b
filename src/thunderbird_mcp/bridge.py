"""
Thunderbird MCP Bridge
======================

MCP stdio server that relays tools/list and tools/call to the Thunderbird
MCP HTTP endpoint. MCP clients launch this process; the endpoint itself is
served by thunderbird-mcp-server.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from contracts import BridgeError

# stdout carries the MCP stream; logging stays on stderr
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("thunderbird-mcp.bridge")

DEFAULT_URL = "http://127.0.0.1:8765/"
REQUEST_TIMEOUT = 120.0


class ThunderbirdBridge:
    """Relays MCP requests to the HTTP endpoint unchanged."""

    def __init__(self, url: str | None = None, client: httpx.AsyncClient | None = None) -> None:
        self.url = url or os.environ.get("THUNDERBIRD_MCP_URL", DEFAULT_URL)
        self._client = client
        self._request_id = 0
        self._server = Server("thunderbird-mcp-bridge")
        self._setup_tools()

    def _setup_tools(self) -> None:
        """Register MCP handlers."""

        @self._server.list_tools()
        async def list_tools() -> list[Tool]:
            return await self.list_tools()

        @self._server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            try:
                return await self.call_tool(name, arguments)
            except BridgeError as e:
                return [TextContent(type="text", text=f"Error: {e.__class__.__name__}: {e}")]

    async def _rpc(self, method: str, params: dict | None = None) -> dict:
        """
        POST one JSON-RPC request and return its result.

        ERRORS:
        - BridgeError: endpoint unreachable, non-200 answer, or JSON-RPC error
        """
        self._request_id += 1
        payload: dict[str, Any] = {"jsonrpc": "2.0", "id": self._request_id, "method": method}
        if params is not None:
            payload["params"] = params

        client = self._client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT)
        try:
            response = await client.post(self.url, json=payload)
        except httpx.HTTPError as e:
            raise BridgeError(f"Thunderbird MCP endpoint unavailable at {self.url}: {e}") from e
        finally:
            if client is not self._client:
                await client.aclose()

        if response.status_code != 200:
            raise BridgeError(f"HTTP {response.status_code}: {response.text.strip()}")
        try:
            body = response.json()
        except ValueError as e:
            raise BridgeError("Endpoint returned invalid JSON") from e

        if body.get("error"):
            raise BridgeError(body["error"].get("message") or "Unknown error")
        return body.get("result") or {}

    async def list_tools(self) -> list[Tool]:
        """
        POST-BRIDGE-01: Catalog fetched from the endpoint.
        """
        result = await self._rpc("tools/list")
        tools = [Tool.model_validate(tool) for tool in result.get("tools", [])]
        logger.info("Relayed catalog of %d tools", len(tools))
        return tools

    async def call_tool(self, name: str, arguments: dict | None = None) -> list[TextContent]:
        """
        POST-BRIDGE-02: Name and arguments relayed unchanged.
        """
        logger.info("Relaying tool %s", name)
        result = await self._rpc("tools/call", {"name": name, "arguments": arguments or {}})
        return [
            TextContent(type="text", text=item.get("text", ""))
            for item in result.get("content", [])
            if item.get("type") == "text"
        ]

    async def run(self) -> None:
        """Run the MCP stdio server."""
        async with stdio_server() as (read_stream, write_stream):
            await self._server.run(
                read_stream, write_stream, self._server.create_initialization_options()
            )


def main() -> None:
    bridge = ThunderbirdBridge()
    logger.info("Bridging stdio to %s", bridge.url)
    asyncio.run(bridge.run())


if __name__ == "__main__":
    main()
