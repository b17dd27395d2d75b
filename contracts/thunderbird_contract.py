"""
Thunderbird MCP Contract
========================

Tool surface for AI agents working against a Thunderbird profile: mail,
folders, drafts, contacts, calendars and message filters, served as
JSON-RPC over localhost HTTP and relayed to MCP clients over stdio.

This contract defines the expected behavior of every public interface.
Each tool group lists its PRE/POST/INV/ERRORS clauses; tests cite them.

AUTHORITY: This file is the SINGLE authoritative source for tool behavior.
"""

from dataclasses import dataclass, field
from enum import IntFlag
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote


# =============================================================================
# DOMAIN TYPES
# =============================================================================

class FolderFlag(IntFlag):
    """Folder role bits, as Thunderbird numbers them."""
    TRASH = 0x00000100
    SENT = 0x00000200
    DRAFTS = 0x00000400
    QUEUE = 0x00000800
    INBOX = 0x00001000
    ARCHIVE = 0x00004000
    TEMPLATES = 0x00400000
    JUNK = 0x40000000


class MessageFlag(IntFlag):
    """Bits of the X-Mozilla-Status header word."""
    READ = 0x0001
    REPLIED = 0x0002
    MARKED = 0x0004
    EXPUNGED = 0x0008
    HAS_RE = 0x0010
    FORWARDED = 0x1000


@dataclass(frozen=True)
class Identity:
    """Sender identity attached to an account."""
    key: str
    email: str
    full_name: str
    draft_folder: str | None = None


@dataclass(frozen=True)
class IncomingServer:
    """Incoming server of an account; owns the folder tree on disk."""
    key: str
    type: str  # "none" (Local Folders), "pop3", "imap", "rss", ...
    hostname: str
    username: str
    pretty_name: str
    directory: Path
    can_have_filters: bool = True

    @property
    def uri_root(self) -> str:
        scheme = "imap" if self.type == "imap" else "mailbox"
        return f"{scheme}://{quote(self.username, safe='')}@{quote(self.hostname, safe='')}"


@dataclass(frozen=True)
class Account:
    """Mail account: one incoming server plus its identities."""
    key: str
    server: IncomingServer
    identities: tuple[Identity, ...] = ()

    @property
    def default_identity(self) -> Identity | None:
        return self.identities[0] if self.identities else None


@dataclass
class FilterTerm:
    """Single filter condition."""
    attrib: int
    op: int
    value: str = ""
    boolean_and: bool = True
    header: str | None = None


@dataclass
class FilterAction:
    """Single filter action with its optional parameter."""
    type: int
    value: str = ""
    custom_id: str = ""
    # spelling from the rules file when the action type is not known here
    file_name: str | None = None


@dataclass
class FilterRule:
    """Filter rule as stored in msgFilterRules.dat."""
    name: str
    enabled: bool = True
    type: int = 17  # inbox + manual
    terms: list[FilterTerm] = field(default_factory=list)
    actions: list[FilterAction] = field(default_factory=list)
    temporary: bool = False
    # condition line kept verbatim when it could not be parsed
    raw_condition: str | None = None


@dataclass(frozen=True)
class CalendarInfo:
    """Calendar registered in the profile."""
    id: str
    name: str
    type: str
    read_only: bool
    uri: str = ""


# =============================================================================
# ERROR TYPES
# =============================================================================

class ThunderbirdMCPError(Exception):
    """Base error for all Thunderbird MCP operations."""
    code: str = "ERROR"


class ProfileNotFoundError(ThunderbirdMCPError):
    """
    ERRORS-STARTUP-01: No Thunderbird profile found or configured.

    RECOVERY: Fatal. Set THUNDERBIRD_PROFILE and restart.
    """
    code = "PROFILE_NOT_FOUND"


class AccountNotFoundError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-01: accountId does not name a configured account.

    RECOVERY: Agent should call listAccounts to get valid IDs.
    """
    code = "ACCOUNT_NOT_FOUND"


class FolderNotFoundError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-02: Folder URI does not resolve to a folder.

    RECOVERY: Agent should call listFolders to get valid URIs.
    """
    code = "FOLDER_NOT_FOUND"


class MessageNotFoundError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-03: No message with this ID in the folder.

    RECOVERY: Agent should search again; the message may have moved.
    """
    code = "MESSAGE_NOT_FOUND"


class InvalidArgumentError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-04: Argument missing, malformed or out of range.

    RECOVERY: Agent must correct the arguments.
    """
    code = "INVALID_ARGUMENT"


class FolderExistsError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-05: A subfolder with that name already exists.
    """
    code = "FOLDER_EXISTS"


class CalendarUnavailableError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-06: No calendar is configured, or the target is read-only.
    """
    code = "CALENDAR_UNAVAILABLE"


class FiltersUnsupportedError(ThunderbirdMCPError):
    """
    ERRORS-TOOL-07: The account's server cannot hold filters.
    """
    code = "FILTERS_UNSUPPORTED"


class UnknownToolError(ThunderbirdMCPError):
    """
    ERRORS-RPC-01: tools/call named a tool outside the catalog.

    RECOVERY: Agent should call tools/list.
    """
    code = "UNKNOWN_TOOL"


class BridgeError(ThunderbirdMCPError):
    """
    ERRORS-BRIDGE-01: HTTP endpoint unreachable or answered with an error.

    RECOVERY: Start Thunderbird MCP server, then retry.
    """
    code = "BRIDGE_UNAVAILABLE"


# =============================================================================
# TRANSPORT CONTRACT
# =============================================================================

@runtime_checkable
class TransportContract(Protocol):
    """
    HTTP JSON-RPC endpoint.

    PRE-RPC-01: Request is an HTTP POST to "/" on the configured localhost port
    PRE-RPC-02: Body is a JSON-RPC 2.0 object with method, params, id

    POST-RPC-01: tools/list returns {tools: [...]} with the static catalog
    POST-RPC-02: tools/call returns {content: [{type: "text", text}]} where
                 text is the JSON-stringified tool result
    POST-RPC-03: Every 200 response is {jsonrpc: "2.0", id, result | error}
    POST-RPC-04: Content-Type is application/json; charset=utf-8

    INV-RPC-01 (Sequential): Requests are handled one at a time to completion
    INV-RPC-02 (Single Start): A second start() does not bind a second port

    ERRORS:
    - Non-POST → 405 "POST only"
    - Unparseable body → 400 "Invalid JSON"
    - Unknown method → 404 "Unknown method: <method>"
    - Missing tool name / unknown tool → error {code: -32000, message}
    """

    def start(self) -> dict:
        """Bind the HTTP endpoint."""
        ...


# =============================================================================
# TOOL CONTRACTS
# =============================================================================

@runtime_checkable
class AccountsContract(Protocol):
    """
    Tools: listAccounts, listFolders, createFolder

    PRE-ACCOUNTS-01: Profile path resolved at startup

    POST-ACCOUNTS-01: listAccounts returns [{id, name, type, identities}]
    POST-ACCOUNTS-02: Each identity is {id, email, name, isDefault}
    POST-ACCOUNTS-03: listFolders entries are {name, path, accountId,
                      totalMessages, unreadMessages, depth}
    POST-ACCOUNTS-04: depth is 0 for root children (or the requested folder)
    POST-ACCOUNTS-05: createFolder returns {success, message, path}

    INV-ACCOUNTS-01 (Best Effort): Unreadable folders are skipped

    ERRORS:
    - ACCOUNT_NOT_FOUND: accountId unknown
    - FOLDER_NOT_FOUND: folderPath / parentFolderPath unknown
    - FOLDER_EXISTS: createFolder name already taken
    """

    def list_accounts(self) -> list[dict]:
        ...


@runtime_checkable
class MessageSearchContract(Protocol):
    """
    Tools: searchMessages, getRecentMessages

    PRE-SEARCH-01: query is a string ("" matches all)
    PRE-SEARCH-02: startDate / endDate, when given, are ISO 8601

    POST-SEARCH-01: Results are {id, subject, author, recipients, ccList?,
                    date, folder, folderPath, read, flagged}
    POST-SEARCH-02: Matching is case-insensitive on decoded subject,
                    author, recipients and cc
    POST-SEARCH-03: len(results) <= min(maxResults or 50, 200)
    POST-SEARCH-04: Ordered by date, newest first unless sortOrder="asc"
    POST-SEARCH-05: A date-only endDate includes that whole day

    INV-SEARCH-01 (Read-Only): Searching never changes message flags
    INV-SEARCH-02 (Bounded): At most 1000 candidates are collected

    ERRORS:
    - FOLDER_NOT_FOUND: folderPath unknown
    """

    def search_messages(self, query: str, folder_path: str | None = None) -> list[dict]:
        ...


@runtime_checkable
class MessageReadContract(Protocol):
    """
    Tool: getMessage

    POST-READ-01: Returns {id, subject, author, recipients, ccList, date,
                  body, bodyIsHtml, attachments}
    POST-READ-02: body is plain text; HTML-only messages are stripped to text
    POST-READ-03: attachments are {name, contentType, size}
    POST-READ-04: With saveAttachments, each attachment gains filePath or error

    INV-READ-01 (No Content Logging): Bodies and attachments never logged
    INV-READ-02 (Size Limit): Attachments over 50 MiB are not written

    ERRORS:
    - FOLDER_NOT_FOUND, MESSAGE_NOT_FOUND
    """

    def get_message(self, message_id: str, folder_path: str) -> dict:
        ...


@runtime_checkable
class MessageMutationContract(Protocol):
    """
    Tools: deleteMessages, updateMessage

    PRE-MUTATE-01: messageIds is a non-empty array (JSON string accepted)
    PRE-MUTATE-02: moveTo and trash are not both set

    POST-MUTATE-01: deleteMessages returns {success, deleted, notFound?,
                    movedToTrash?}
    POST-MUTATE-02: Messages deleted from a Drafts folder go to Trash
    POST-MUTATE-03: updateMessage returns {success, actions}

    INV-MUTATE-01 (Targeted): Only the named messages are touched

    ERRORS:
    - INVALID_ARGUMENT, FOLDER_NOT_FOUND, MESSAGE_NOT_FOUND
    """

    def delete_messages(self, message_ids: list[str], folder_path: str) -> dict:
        ...


@runtime_checkable
class ComposeContract(Protocol):
    """
    Tools: sendMail, replyToMessage, forwardMessage

    POST-COMPOSE-01: A draft is stored for the user to review; nothing is sent
    POST-COMPOSE-02: Body is an HTML document with a UTF-8 meta charset
    POST-COMPOSE-03: Replies carry References and In-Reply-To of the original
    POST-COMPOSE-04: Subject gains "Re: " / "Fwd: " exactly once
    POST-COMPOSE-05: Reply-all cc excludes the account's own address and
                     duplicates
    POST-COMPOSE-06: Forwards carry the original attachments

    INV-COMPOSE-01 (No Send): No message leaves the machine

    ERRORS:
    - FOLDER_NOT_FOUND, MESSAGE_NOT_FOUND
    - Unknown "from" identity is a warning, not an error
    - Missing attachment files are reported, not fatal
    """

    def send_mail(self, to: str, subject: str, body: str) -> dict:
        ...


@runtime_checkable
class ContactsContract(Protocol):
    """
    Tool: searchContacts

    POST-CONTACTS-01: Results are {id, displayName, email, firstName,
                      lastName, addressBook}
    POST-CONTACTS-02: At most 50 results; mailing lists excluded
    """

    def search_contacts(self, query: str) -> list[dict]:
        ...


@runtime_checkable
class CalendarContract(Protocol):
    """
    Tools: listCalendars, createEvent

    POST-CALENDAR-01: listCalendars returns [{id, name, type, readOnly}]
    POST-CALENDAR-02: Timed events default to one hour, all-day to one day
    POST-CALENDAR-03: All-day DTEND is exclusive and after DTSTART
    POST-CALENDAR-04: Event is handed to the user for review before saving

    ERRORS:
    - CALENDAR_UNAVAILABLE: no calendars, unknown or read-only target
    - INVALID_ARGUMENT: bad dates, end not after start
    """

    def create_event(self, title: str, start_date: str) -> dict:
        ...


@runtime_checkable
class FiltersContract(Protocol):
    """
    Tools: listFilters, createFilter, updateFilter, deleteFilter,
           reorderFilters, applyFilters

    POST-FILTERS-01: listFilters returns per account {accountId, accountName,
                     filterCount, loggingEnabled, filters}
    POST-FILTERS-02: Filters serialize as {index, name, enabled, type,
                     temporary, terms, actions}
    POST-FILTERS-03: Every mutation is persisted to msgFilterRules.dat
    POST-FILTERS-04: Unknown attribute/operator/action names are rejected
    POST-FILTERS-05: applyFilters returns {success, message, folder,
                     enabledFilters}

    INV-FILTERS-01 (Stable Order): Filters keep their order unless reordered

    ERRORS:
    - ACCOUNT_NOT_FOUND, FILTERS_UNSUPPORTED, FOLDER_NOT_FOUND
    - INVALID_ARGUMENT: index out of range, empty conditions/actions
    """

    def list_filters(self, account_id: str | None = None) -> list[dict]:
        ...


@runtime_checkable
class BridgeContract(Protocol):
    """
    stdio ↔ HTTP relay.

    POST-BRIDGE-01: MCP tools/list is answered from the HTTP catalog
    POST-BRIDGE-02: MCP tools/call relays name and arguments unchanged

    ERRORS:
    - BRIDGE_UNAVAILABLE: endpoint down or JSON-RPC error returned
    """

    async def list_tools(self) -> list:
        ...


# =============================================================================
# TEST CASE INDEX (Traceability)
# =============================================================================

TEST_CASES = {
    # Transport
    "test_tools_list_returns_catalog": {
        "contract": "TransportContract",
        "enforces": ["POST-RPC-01", "POST-RPC-03", "POST-RPC-04"],
    },
    "test_tools_call_wraps_text_payload": {
        "contract": "TransportContract",
        "enforces": ["POST-RPC-02"],
    },
    "test_get_is_rejected": {
        "contract": "TransportContract",
        "enforces": ["PRE-RPC-01"],
    },
    "test_invalid_json_is_rejected": {
        "contract": "TransportContract",
        "enforces": ["PRE-RPC-02"],
    },
    "test_start_is_idempotent": {
        "contract": "TransportContract",
        "enforces": ["INV-RPC-02"],
    },
    "test_requests_are_serialised": {
        "contract": "TransportContract",
        "enforces": ["INV-RPC-01"],
    },
    # Accounts and folders
    "test_list_accounts": {
        "contract": "AccountsContract",
        "enforces": ["PRE-ACCOUNTS-01", "POST-ACCOUNTS-01", "POST-ACCOUNTS-02"],
    },
    "test_list_folders_depth": {
        "contract": "AccountsContract",
        "enforces": ["POST-ACCOUNTS-03", "POST-ACCOUNTS-04"],
    },
    "test_create_folder": {
        "contract": "AccountsContract",
        "enforces": ["POST-ACCOUNTS-05"],
    },
    "test_unreadable_folder_skipped": {
        "contract": "AccountsContract",
        "enforces": ["INV-ACCOUNTS-01"],
    },
    # Search
    "test_search_matches_decoded_headers": {
        "contract": "MessageSearchContract",
        "enforces": ["PRE-SEARCH-01", "POST-SEARCH-01", "POST-SEARCH-02"],
    },
    "test_search_limit_and_order": {
        "contract": "MessageSearchContract",
        "enforces": ["POST-SEARCH-03", "POST-SEARCH-04", "INV-SEARCH-02"],
    },
    "test_search_date_only_end_includes_day": {
        "contract": "MessageSearchContract",
        "enforces": ["PRE-SEARCH-02", "POST-SEARCH-05"],
    },
    "test_search_does_not_mark_read": {
        "contract": "MessageSearchContract",
        "enforces": ["INV-SEARCH-01"],
    },
    # Read
    "test_get_message_plain_body": {
        "contract": "MessageReadContract",
        "enforces": ["POST-READ-01", "POST-READ-03"],
    },
    "test_get_message_html_fallback": {
        "contract": "MessageReadContract",
        "enforces": ["POST-READ-02"],
    },
    "test_get_message_saves_attachments": {
        "contract": "MessageReadContract",
        "enforces": ["POST-READ-04", "INV-READ-02"],
    },
    "test_get_message_no_body_logging": {
        "contract": "MessageReadContract",
        "enforces": ["INV-READ-01"],
    },
    # Mutation
    "test_delete_messages": {
        "contract": "MessageMutationContract",
        "enforces": ["PRE-MUTATE-01", "POST-MUTATE-01", "INV-MUTATE-01"],
    },
    "test_delete_drafts_moves_to_trash": {
        "contract": "MessageMutationContract",
        "enforces": ["POST-MUTATE-02"],
    },
    "test_update_message": {
        "contract": "MessageMutationContract",
        "enforces": ["PRE-MUTATE-02", "POST-MUTATE-03"],
    },
    # Compose
    "test_send_mail_stores_draft": {
        "contract": "ComposeContract",
        "enforces": ["POST-COMPOSE-01", "POST-COMPOSE-02", "INV-COMPOSE-01"],
    },
    "test_reply_threading": {
        "contract": "ComposeContract",
        "enforces": ["POST-COMPOSE-03", "POST-COMPOSE-04"],
    },
    "test_reply_all_recipients": {
        "contract": "ComposeContract",
        "enforces": ["POST-COMPOSE-05"],
    },
    "test_forward_keeps_attachments": {
        "contract": "ComposeContract",
        "enforces": ["POST-COMPOSE-06"],
    },
    # Contacts
    "test_search_contacts": {
        "contract": "ContactsContract",
        "enforces": ["POST-CONTACTS-01", "POST-CONTACTS-02"],
    },
    # Calendar
    "test_list_calendars": {
        "contract": "CalendarContract",
        "enforces": ["POST-CALENDAR-01"],
    },
    "test_create_event_defaults": {
        "contract": "CalendarContract",
        "enforces": ["POST-CALENDAR-02", "POST-CALENDAR-04"],
    },
    "test_create_all_day_event": {
        "contract": "CalendarContract",
        "enforces": ["POST-CALENDAR-03"],
    },
    # Filters
    "test_list_filters": {
        "contract": "FiltersContract",
        "enforces": ["POST-FILTERS-01", "POST-FILTERS-02"],
    },
    "test_create_filter_persists": {
        "contract": "FiltersContract",
        "enforces": ["POST-FILTERS-03"],
    },
    "test_create_filter_unknown_attribute": {
        "contract": "FiltersContract",
        "enforces": ["POST-FILTERS-04"],
    },
    "test_reorder_filters": {
        "contract": "FiltersContract",
        "enforces": ["INV-FILTERS-01"],
    },
    "test_apply_filters_moves_matches": {
        "contract": "FiltersContract",
        "enforces": ["POST-FILTERS-05"],
    },
    # Bridge
    "test_bridge_lists_remote_tools": {
        "contract": "BridgeContract",
        "enforces": ["POST-BRIDGE-01"],
    },
    "test_bridge_relays_call": {
        "contract": "BridgeContract",
        "enforces": ["POST-BRIDGE-02"],
    },
    "test_bridge_endpoint_down": {
        "contract": "BridgeContract",
        "enforces": ["ERRORS: BRIDGE_UNAVAILABLE"],
    },
}
