"""
Thunderbird MCP Server
======================

JSON-RPC endpoint exposing the Thunderbird profile as MCP tools over
localhost HTTP. The stdio bridge relays MCP clients to this endpoint.

CONSTITUTIONAL INVARIANTS ENFORCED:
- INV-RPC-01: Requests are handled one at a time to completion
- INV-RPC-02: start() binds at most once per process
- INV-COMPOSE-01: Compose tools store drafts; nothing is sent
- INV-READ-01: Message bodies are never logged
"""

from __future__ import annotations

import asyncio
import json
import logging
import socket
import threading
from dataclasses import asdict
from typing import Any

import jsonschema
import uvicorn
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from contracts import InvalidArgumentError, ThunderbirdMCPError, UnknownToolError
from src.thunderbird_mcp.address_book import AddressBooks
from src.thunderbird_mcp.calendars import Calendars
from src.thunderbird_mcp.compose import Composer
from src.thunderbird_mcp.config import ServerConfig, load_config
from src.thunderbird_mcp.filters import FilterService
from src.thunderbird_mcp.mail_store import MailStore
from src.thunderbird_mcp.profile import Profile
from src.thunderbird_mcp.tools import TOOLS_BY_NAME, catalog

# Configure logging to NEVER include message content (INV-READ-01)
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("thunderbird-mcp")

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
SERVER_ERROR_CODE = -32000

_ALL_METHODS = ["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


class JSONRPCResponse(JSONResponse):
    media_type = JSON_CONTENT_TYPE

    def render(self, content: Any) -> bytes:
        return json.dumps(content, ensure_ascii=False).encode("utf-8")


class ThunderbirdMCPServer:
    """
    Thunderbird MCP Server - profile-backed mail, contacts, calendar and filter tools.

    Compose tools save drafts for review; there is no path that transmits mail
    (INV-COMPOSE-01).
    """

    def __init__(self, config: ServerConfig) -> None:
        self.config = config
        self.profile = Profile(config.profile_path)
        self.store = MailStore(self.profile, config.attachment_dir)
        self.composer = Composer(self.profile, self.store)
        self.contacts = AddressBooks(self.profile)
        self.calendars = Calendars(self.profile, config.event_dir, config.open_command)
        self.filters = FilterService(self.profile, self.store)

        self._lock = asyncio.Lock()
        self._start_guard = threading.Lock()
        self._started: dict | None = None
        self._uvicorn: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None
        self.app = Starlette(routes=[Route("/", self.handle_request, methods=_ALL_METHODS)])

    # -- tool dispatch -------------------------------------------------------

    @staticmethod
    def _check_required(name: str, arguments: dict) -> None:
        schema = TOOLS_BY_NAME[name].inputSchema
        try:
            jsonschema.validate(
                arguments, {"type": "object", "required": schema.get("required", [])}
            )
        except jsonschema.ValidationError as e:
            raise InvalidArgumentError(e.message) from e

    def call_tool(self, name: str, arguments: dict | None = None) -> Any:
        """
        Run one tool and return its JSON-serialisable result.

        Tool failures become {"error": message} results; only an unknown tool
        name is raised to the caller.
        """
        if name not in TOOLS_BY_NAME:
            raise UnknownToolError(f"Unknown tool: {name}")
        a = arguments or {}

        try:
            self._check_required(name, a)
            if name == "listAccounts":
                return self.profile.list_accounts()
            elif name == "listFolders":
                return self.store.list_folders(a.get("accountId"), a.get("folderPath"))
            elif name == "searchMessages":
                return self.store.search_messages(
                    a.get("query") or "",
                    a.get("folderPath"),
                    a.get("startDate"),
                    a.get("endDate"),
                    a.get("maxResults"),
                    a.get("sortOrder"),
                )
            elif name == "getMessage":
                return self.store.get_message(
                    a.get("messageId"), a.get("folderPath"), a.get("saveAttachments")
                )
            elif name == "sendMail":
                return self.composer.send_mail(
                    a.get("to"),
                    a.get("subject"),
                    a.get("body"),
                    cc=a.get("cc"),
                    bcc=a.get("bcc"),
                    is_html=a.get("isHtml"),
                    from_=a.get("from"),
                    attachments=a.get("attachments"),
                )
            elif name == "listCalendars":
                return self.calendars.list_calendars()
            elif name == "createEvent":
                return self.calendars.create_event(
                    a.get("title"),
                    a.get("startDate"),
                    a.get("endDate"),
                    a.get("location"),
                    a.get("description"),
                    a.get("calendarId"),
                    a.get("allDay"),
                )
            elif name == "searchContacts":
                return self.contacts.search_contacts(a.get("query") or "")
            elif name == "replyToMessage":
                return self.composer.reply_to_message(
                    a.get("messageId"),
                    a.get("folderPath"),
                    a.get("body"),
                    reply_all=a.get("replyAll"),
                    is_html=a.get("isHtml"),
                    to=a.get("to"),
                    cc=a.get("cc"),
                    bcc=a.get("bcc"),
                    from_=a.get("from"),
                    attachments=a.get("attachments"),
                )
            elif name == "forwardMessage":
                return self.composer.forward_message(
                    a.get("messageId"),
                    a.get("folderPath"),
                    a.get("to"),
                    body=a.get("body"),
                    is_html=a.get("isHtml"),
                    cc=a.get("cc"),
                    bcc=a.get("bcc"),
                    from_=a.get("from"),
                    attachments=a.get("attachments"),
                )
            elif name == "getRecentMessages":
                return self.store.get_recent_messages(
                    a.get("folderPath"), a.get("daysBack"), a.get("maxResults"), a.get("unreadOnly")
                )
            elif name == "deleteMessages":
                return self.store.delete_messages(a.get("messageIds"), a.get("folderPath"))
            elif name == "updateMessage":
                return self.store.update_message(
                    a.get("messageId"),
                    a.get("folderPath"),
                    read=a.get("read"),
                    flagged=a.get("flagged"),
                    move_to=a.get("moveTo"),
                    trash=a.get("trash"),
                )
            elif name == "createFolder":
                return self.store.create_folder(a.get("parentFolderPath"), a.get("name"))
            elif name == "listFilters":
                return self.filters.list_filters(a.get("accountId"))
            elif name == "createFilter":
                return self.filters.create_filter(
                    a.get("accountId"),
                    a.get("name"),
                    a.get("conditions"),
                    a.get("actions"),
                    enabled=a.get("enabled"),
                    filter_type=a.get("type"),
                    insert_at_index=a.get("insertAtIndex"),
                )
            elif name == "updateFilter":
                return self.filters.update_filter(
                    a.get("accountId"),
                    a.get("filterIndex"),
                    name=a.get("name"),
                    enabled=a.get("enabled"),
                    filter_type=a.get("type"),
                    conditions=a.get("conditions"),
                    actions=a.get("actions"),
                )
            elif name == "deleteFilter":
                return self.filters.delete_filter(a.get("accountId"), a.get("filterIndex"))
            elif name == "reorderFilters":
                return self.filters.reorder_filters(
                    a.get("accountId"), a.get("fromIndex"), a.get("toIndex")
                )
            else:
                return self.filters.apply_filters(a.get("accountId"), a.get("folderPath"))

        except (ThunderbirdMCPError, OSError) as e:
            logger.warning("Tool %s failed: %s", name, e)
            return {"error": str(e)}

    def _serialize_result(self, result: Any) -> str:
        """Serialize result to JSON string."""

        def default_serializer(obj: Any) -> Any:
            if hasattr(obj, "__dataclass_fields__"):
                return asdict(obj)
            if hasattr(obj, "value"):  # Enum
                return obj.value
            raise TypeError(f"Cannot serialize {type(obj)}")

        return json.dumps(result, default=default_serializer, indent=2, ensure_ascii=False)

    # -- HTTP ----------------------------------------------------------------

    @staticmethod
    def _error(request_id: Any, message: str) -> Response:
        return JSONRPCResponse(
            {
                "jsonrpc": "2.0",
                "id": request_id,
                "error": {"code": SERVER_ERROR_CODE, "message": message},
            }
        )

    async def handle_request(self, request: Request) -> Response:
        """
        Answer one JSON-RPC request posted to "/".

        PRE-RPC-01: Only POST is accepted
        PRE-RPC-02: Body must parse as a JSON-RPC object
        INV-RPC-01: The lock keeps tool calls strictly sequential
        """
        if request.method != "POST":
            return PlainTextResponse("POST only", status_code=405)

        async with self._lock:
            try:
                message = json.loads(await request.body())
            except (ValueError, UnicodeDecodeError):
                return PlainTextResponse("Invalid JSON", status_code=400)
            if not isinstance(message, dict):
                return PlainTextResponse("Invalid JSON", status_code=400)

            method = message.get("method")
            request_id = message.get("id")
            params = message.get("params") or {}

            if method == "tools/list":
                return JSONRPCResponse(
                    {"jsonrpc": "2.0", "id": request_id, "result": {"tools": catalog()}}
                )
            if method != "tools/call":
                return PlainTextResponse(f"Unknown method: {method}", status_code=404)

            name = params.get("name") if isinstance(params, dict) else None
            if not name:
                return self._error(request_id, "Missing tool name")

            logger.info("Calling tool %s", name)
            try:
                result = await run_in_threadpool(self.call_tool, name, params.get("arguments"))
                text = self._serialize_result(result)
            except UnknownToolError as e:
                return self._error(request_id, str(e))
            except Exception as e:
                logger.exception("Tool %s raised", name)
                return self._error(request_id, str(e))

            return JSONRPCResponse(
                {
                    "jsonrpc": "2.0",
                    "id": request_id,
                    "result": {"content": [{"type": "text", "text": text}]},
                }
            )

    # -- lifecycle -----------------------------------------------------------

    def _bind(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.config.host, self.config.port))
            sock.listen(16)
        except OSError:
            sock.close()
            raise
        return sock

    def _uvicorn_server(self) -> uvicorn.Server:
        return uvicorn.Server(uvicorn.Config(self.app, log_config=None, access_log=False))

    def start(self) -> dict:
        """
        Bind the endpoint and serve it from a background thread.

        INV-RPC-02: A second call returns the first call's result; a failed
        bind clears the guard so start() may be retried.
        """
        with self._start_guard:
            if self._started is not None:
                return self._started
            try:
                sock = self._bind()
            except OSError as e:
                logger.error("Failed to bind %s:%s: %s", self.config.host, self.config.port, e)
                return {"success": False, "error": str(e)}

            port = sock.getsockname()[1]
            self._uvicorn = self._uvicorn_server()
            self._thread = threading.Thread(
                target=self._uvicorn.run, kwargs={"sockets": [sock]}, daemon=True
            )
            self._thread.start()
            self._started = {"success": True, "port": port}
            logger.info("Listening on %s:%d", self.config.host, port)
            return self._started

    def stop(self) -> None:
        """Shut down a server started with start()."""
        with self._start_guard:
            if self._uvicorn is not None:
                self._uvicorn.should_exit = True
            if self._thread is not None:
                self._thread.join(timeout=5)
            self._uvicorn = None
            self._thread = None
            self._started = None
            logger.info("Server stopped")

    def run(self) -> None:
        """Serve in the foreground until interrupted."""
        sock = self._bind()
        logger.info("Listening on %s:%d", self.config.host, sock.getsockname()[1])
        self._uvicorn_server().run(sockets=[sock])


# Singleton for process lifetime
_server_instance: ThunderbirdMCPServer | None = None


def get_server() -> ThunderbirdMCPServer:
    """Get or create the server singleton."""
    global _server_instance
    if _server_instance is None:
        _server_instance = ThunderbirdMCPServer(load_config())
    return _server_instance


def create_server(config: ServerConfig) -> ThunderbirdMCPServer:
    """Create a new server instance (for testing)."""
    return ThunderbirdMCPServer(config)


def main() -> None:
    server = get_server()
    logger.info("Serving profile %s", server.config.profile_path)
    server.run()


if __name__ == "__main__":
    main()
