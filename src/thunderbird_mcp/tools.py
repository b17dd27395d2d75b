"""
Tool Catalog
============

The static list the HTTP endpoint answers to tools/list.
"""

from mcp.types import Tool


def _object(properties: dict | None = None, required: list[str] | None = None) -> dict:
    return {"type": "object", "properties": properties or {}, "required": required or []}


def _string(description: str) -> dict:
    return {"type": "string", "description": description}


def _number(description: str) -> dict:
    return {"type": "number", "description": description}


def _boolean(description: str) -> dict:
    return {"type": "boolean", "description": description}


def _string_array(description: str) -> dict:
    return {"type": "array", "items": {"type": "string"}, "description": description}


_FROM = _string("Sender identity (email address or identity ID from listAccounts)")
_CC = _string("CC recipients (comma-separated)")
_BCC = _string("BCC recipients (comma-separated)")
_IS_HTML = _boolean("Set to true if body contains HTML markup (default: false)")
_MESSAGE_ID = _string("The message ID (from searchMessages results)")
_FOLDER_PATH = _string("The folder URI path (from searchMessages results)")
_ACCOUNT_ID = _string("Account ID")

_CONDITIONS = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "attrib": _string(
                "Attribute: subject, from, to, cc, toOrCc, body, date, priority, status, "
                "size, ageInDays, hasAttachment, junkStatus, tag, otherHeader"
            ),
            "op": _string(
                "Operator: contains, doesntContain, is, isnt, isEmpty, beginsWith, endsWith, "
                "isGreaterThan, isLessThan, isBefore, isAfter, matches, doesntMatch"
            ),
            "value": _string("Value to match against"),
            "booleanAnd": _boolean("true=AND with previous, false=OR (default: true)"),
            "header": _string("Custom header name (only when attrib is otherHeader)"),
        },
    },
    "description": "Array of filter conditions",
}

_ACTIONS = {
    "type": "array",
    "items": {
        "type": "object",
        "properties": {
            "type": _string(
                "Action: moveToFolder, copyToFolder, markRead, markUnread, markFlagged, "
                "addTag, changePriority, delete, stopExecution, forward, reply"
            ),
            "value": _string(
                "Action parameter (folder URI for move/copy, tag name for addTag, "
                "priority for changePriority, email for forward)"
            ),
        },
    },
    "description": "Array of actions to perform",
}

TOOLS: list[Tool] = [
    Tool(
        name="listAccounts",
        title="List Accounts",
        description="List all email accounts and their identities",
        inputSchema=_object(),
    ),
    Tool(
        name="listFolders",
        title="List Folders",
        description="List all mail folders with URIs and message counts",
        inputSchema=_object(
            {
                "accountId": _string(
                    "Optional account ID (from listAccounts) to limit results to a single account"
                ),
                "folderPath": _string(
                    "Optional folder URI to list only that folder and its subfolders"
                ),
            }
        ),
    ),
    Tool(
        name="searchMessages",
        title="Search Mail",
        description=(
            "Search message headers and return IDs/folder paths you can use with "
            "getMessage to read full email content"
        ),
        inputSchema=_object(
            {
                "query": _string(
                    "Text to search in subject, author, or recipients "
                    "(use empty string to match all)"
                ),
                "folderPath": _string(
                    "Optional folder URI to limit search to that folder and its subfolders"
                ),
                "startDate": _string("Filter messages on or after this ISO 8601 date"),
                "endDate": _string("Filter messages on or before this ISO 8601 date"),
                "maxResults": _number("Maximum number of results to return (default 50, max 200)"),
                "sortOrder": _string(
                    "Date sort order: asc (oldest first) or desc (newest first, default)"
                ),
            },
            ["query"],
        ),
    ),
    Tool(
        name="getMessage",
        title="Get Message",
        description="Read the full content of an email message by its ID",
        inputSchema=_object(
            {
                "messageId": _MESSAGE_ID,
                "folderPath": _FOLDER_PATH,
                "saveAttachments": _boolean(
                    "If true, save attachments to /tmp/thunderbird-mcp/<messageId>/ and "
                    "include filePath in response (default: false)"
                ),
            },
            ["messageId", "folderPath"],
        ),
    ),
    Tool(
        name="sendMail",
        title="Compose Mail",
        description=(
            "Save a draft with pre-filled recipient, subject, and body to the Drafts "
            "folder for user review before sending"
        ),
        inputSchema=_object(
            {
                "to": _string("Recipient email address"),
                "subject": _string("Email subject line"),
                "body": _string("Email body text"),
                "cc": _CC,
                "bcc": _BCC,
                "isHtml": _IS_HTML,
                "from": _FROM,
                "attachments": _string_array("Array of file paths to attach"),
            },
            ["to", "subject", "body"],
        ),
    ),
    Tool(
        name="listCalendars",
        title="List Calendars",
        description="Return the user's calendars",
        inputSchema=_object(),
    ),
    Tool(
        name="createEvent",
        title="Create Event",
        description="Open a pre-filled event in Thunderbird for user review before saving",
        inputSchema=_object(
            {
                "title": _string("Event title"),
                "startDate": _string("Start date/time in ISO 8601 format"),
                "endDate": _string(
                    "End date/time in ISO 8601 (defaults to startDate + 1h for timed, "
                    "+1 day for all-day)"
                ),
                "location": _string("Event location"),
                "description": _string("Event description"),
                "calendarId": _string(
                    "Target calendar ID (from listCalendars, defaults to first writable calendar)"
                ),
                "allDay": _boolean("Create an all-day event (default: false)"),
            },
            ["title", "startDate"],
        ),
    ),
    Tool(
        name="searchContacts",
        title="Search Contacts",
        description="Find contacts the user interacted with",
        inputSchema=_object(
            {"query": _string("Email address or name to search for")},
            ["query"],
        ),
    ),
    Tool(
        name="replyToMessage",
        title="Reply to Message",
        description="Save a reply draft for a specific message with proper threading",
        inputSchema=_object(
            {
                "messageId": _string("The message ID to reply to (from searchMessages results)"),
                "folderPath": _FOLDER_PATH,
                "body": _string("Reply body text"),
                "replyAll": _boolean("Reply to all recipients (default: false)"),
                "isHtml": _IS_HTML,
                "to": _string("Override recipient email (default: original sender)"),
                "cc": _CC,
                "bcc": _BCC,
                "from": _FROM,
                "attachments": _string_array("Array of file paths to attach"),
            },
            ["messageId", "folderPath", "body"],
        ),
    ),
    Tool(
        name="forwardMessage",
        title="Forward Message",
        description="Save a forward draft for a message with attachments preserved",
        inputSchema=_object(
            {
                "messageId": _string("The message ID to forward (from searchMessages results)"),
                "folderPath": _FOLDER_PATH,
                "to": _string("Recipient email address"),
                "body": _string("Additional text to prepend (optional)"),
                "isHtml": _IS_HTML,
                "cc": _CC,
                "bcc": _BCC,
                "from": _FROM,
                "attachments": _string_array("Array of additional file paths to attach"),
            },
            ["messageId", "folderPath", "to"],
        ),
    ),
    Tool(
        name="getRecentMessages",
        title="Get Recent Messages",
        description=(
            "Get recent messages from a specific folder or all folders, "
            "with date and unread filtering"
        ),
        inputSchema=_object(
            {
                "folderPath": _string("Folder URI to list messages from (defaults to all folders)"),
                "daysBack": _number("Only return messages from the last N days (default: 7)"),
                "maxResults": _number("Maximum number of results (default: 50, max: 200)"),
                "unreadOnly": _boolean("Only return unread messages (default: false)"),
            }
        ),
    ),
    Tool(
        name="deleteMessages",
        title="Delete Messages",
        description=(
            "Delete messages from a folder. Drafts are moved to Trash instead of "
            "permanently deleted."
        ),
        inputSchema=_object(
            {
                "messageIds": _string_array("Array of message IDs to delete"),
                "folderPath": _string("The folder URI containing the messages"),
            },
            ["messageIds", "folderPath"],
        ),
    ),
    Tool(
        name="updateMessage",
        title="Update Message",
        description=(
            "Update a message's read/flagged state and optionally move it to another "
            "folder or to Trash."
        ),
        inputSchema=_object(
            {
                "messageId": _MESSAGE_ID,
                "folderPath": _FOLDER_PATH,
                "read": _boolean("Set to true/false to mark read/unread (optional)"),
                "flagged": _boolean("Set to true/false to flag/unflag (optional)"),
                "moveTo": _string(
                    "Destination folder URI (optional). Cannot be used with trash."
                ),
                "trash": _boolean(
                    "Set to true to move message to Trash (optional). Cannot be used with moveTo."
                ),
            },
            ["messageId", "folderPath"],
        ),
    ),
    Tool(
        name="createFolder",
        title="Create Folder",
        description="Create a new mail subfolder under an existing folder",
        inputSchema=_object(
            {
                "parentFolderPath": _string("URI of the parent folder (from listFolders)"),
                "name": _string("Name for the new subfolder"),
            },
            ["parentFolderPath", "name"],
        ),
    ),
    Tool(
        name="listFilters",
        title="List Filters",
        description="List all mail filters/rules for an account with their conditions and actions",
        inputSchema=_object(
            {"accountId": _string("Account ID from listAccounts (omit for all accounts)")}
        ),
    ),
    Tool(
        name="createFilter",
        title="Create Filter",
        description="Create a new mail filter rule on an account",
        inputSchema=_object(
            {
                "accountId": _ACCOUNT_ID,
                "name": _string("Filter name"),
                "enabled": _boolean("Whether filter is active (default: true)"),
                "type": _number(
                    "Filter type bitmask (default: 17 = inbox + manual). "
                    "1=inbox, 16=manual, 32=post-plugin, 64=post-outgoing"
                ),
                "conditions": _CONDITIONS,
                "actions": _ACTIONS,
                "insertAtIndex": _number(
                    "Position to insert (0 = top priority, default: end of list)"
                ),
            },
            ["accountId", "name", "conditions", "actions"],
        ),
    ),
    Tool(
        name="updateFilter",
        title="Update Filter",
        description="Modify an existing filter's properties, conditions, or actions",
        inputSchema=_object(
            {
                "accountId": _ACCOUNT_ID,
                "filterIndex": _number("Filter index (from listFilters)"),
                "name": _string("New filter name (optional)"),
                "enabled": _boolean("Enable/disable (optional)"),
                "type": _number("New filter type bitmask (optional)"),
                "conditions": {
                    "type": "array",
                    "description": "Replace all conditions (optional, same format as createFilter)",
                },
                "actions": {
                    "type": "array",
                    "description": "Replace all actions (optional, same format as createFilter)",
                },
            },
            ["accountId", "filterIndex"],
        ),
    ),
    Tool(
        name="deleteFilter",
        title="Delete Filter",
        description="Delete a mail filter by index",
        inputSchema=_object(
            {
                "accountId": _ACCOUNT_ID,
                "filterIndex": _number("Filter index to delete (from listFilters)"),
            },
            ["accountId", "filterIndex"],
        ),
    ),
    Tool(
        name="reorderFilters",
        title="Reorder Filters",
        description="Move a filter to a different position in the execution order",
        inputSchema=_object(
            {
                "accountId": _ACCOUNT_ID,
                "fromIndex": _number("Current filter index"),
                "toIndex": _number("Target index (0 = highest priority)"),
            },
            ["accountId", "fromIndex", "toIndex"],
        ),
    ),
    Tool(
        name="applyFilters",
        title="Apply Filters",
        description="Manually run all enabled filters on a folder to organize existing messages",
        inputSchema=_object(
            {
                "accountId": _string("Account ID (uses its filters)"),
                "folderPath": _string("Folder URI to apply filters to (from listFolders)"),
            },
            ["accountId", "folderPath"],
        ),
    ),
]

TOOLS_BY_NAME: dict[str, Tool] = {tool.name: tool for tool in TOOLS}


def catalog() -> list[dict]:
    """Catalog as plain JSON objects for the tools/list response."""
    return [tool.model_dump(exclude_none=True) for tool in TOOLS]
