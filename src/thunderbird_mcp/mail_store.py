"""
Mail Store
==========

Folders and messages of a Thunderbird profile's local mail store.

Each folder is an mbox file under its server's directory; subfolders live in
a sibling "<name>.sbd" directory. Message state is the X-Mozilla-Status flag
word and the X-Mozilla-Keys tag list written into every stored message.
IMAP folders are served from their offline copies.

CONTRACT CLAUSES:
- POST-ACCOUNTS-03/04: listFolders entry shape and depth
- INV-ACCOUNTS-01: Unreadable folders are skipped
- POST-SEARCH-01..05, INV-SEARCH-01/02: search and recent listings
- POST-READ-01..04: getMessage
- POST-MUTATE-01..03, INV-MUTATE-01: delete/update
"""

from __future__ import annotations

import email.message
import hashlib
import json
import logging
import mailbox
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from email.parser import BytesHeaderParser
from email.utils import parsedate_to_datetime
from pathlib import Path
from typing import Iterator
from urllib.parse import quote, unquote

from contracts import (
    Account,
    FolderExistsError,
    FolderFlag,
    FolderNotFoundError,
    IncomingServer,
    InvalidArgumentError,
    MessageFlag,
    MessageNotFoundError,
)
from src.thunderbird_mcp import mime
from src.thunderbird_mcp.profile import Profile

logger = logging.getLogger("thunderbird-mcp.store")

DEFAULT_MAX_RESULTS = 50
MAX_SEARCH_RESULTS_CAP = 200
SEARCH_COLLECTION_CAP = 1000
DEFAULT_DAYS_BACK = 7

STATUS_HEADER = "X-Mozilla-Status"
STATUS2_HEADER = "X-Mozilla-Status2"
KEYS_HEADER = "X-Mozilla-Keys"

# Root-level folder names Thunderbird gives special roles, in display order.
_SPECIAL_FOLDERS = {
    "inbox": FolderFlag.INBOX,
    "drafts": FolderFlag.DRAFTS,
    "templates": FolderFlag.TEMPLATES,
    "sent": FolderFlag.SENT,
    "archives": FolderFlag.ARCHIVE,
    "junk": FolderFlag.JUNK,
    "trash": FolderFlag.TRASH,
    "unsent messages": FolderFlag.QUEUE,
}
_SPECIAL_ORDER = list(_SPECIAL_FOLDERS)

# Profile files that sit next to mbox files but are not folders.
_NON_MBOX_SUFFIXES = {".msf", ".dat", ".html", ".json", ".sqlite", ".js", ".log", ".mozmsgs"}

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def iso_timestamp(value: datetime | None) -> str | None:
    """UTC timestamp with millisecond precision and a Z suffix."""
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


def effective_limit(max_results) -> int:
    try:
        requested = int(float(max_results))
    except (TypeError, ValueError):
        requested = 0
    if requested <= 0:
        requested = DEFAULT_MAX_RESULTS
    return min(requested, MAX_SEARCH_RESULTS_CAP)


def coerce_bool(value) -> bool:
    """Booleans may arrive as JSON strings from some MCP clients."""
    return value is True or value == "true"


def parse_iso_date(value: str | None, end_of_day: bool = False) -> datetime | None:
    """
    Parse an ISO 8601 date or datetime; unparseable input yields None.

    Date-only values are midnight UTC; with end_of_day they are pushed one
    day forward so the whole day is included.
    """
    if not value:
        return None
    text = str(value).strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if "T" not in text:
        parsed = parsed.replace(tzinfo=timezone.utc)
        if end_of_day:
            parsed += timedelta(days=1)
    elif parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


# =============================================================================
# FOLDERS
# =============================================================================

@dataclass(frozen=True)
class Folder:
    """
    A mail folder addressed by its Thunderbird URI.

    The account root is a Folder with no segments; its children are the
    top-level folders of the account.
    """

    account_key: str
    server: IncomingServer
    segments: tuple[str, ...] = ()
    draft_uris: frozenset[str] = field(default=frozenset(), compare=False)

    @property
    def is_root(self) -> bool:
        return not self.segments

    @property
    def name(self) -> str:
        return self.segments[-1] if self.segments else self.server.pretty_name

    @property
    def pretty_name(self) -> str:
        if len(self.segments) == 1 and self.name.upper() == "INBOX":
            return "Inbox"
        return self.name

    @property
    def uri(self) -> str:
        if self.is_root:
            return self.server.uri_root
        return self.server.uri_root + "/" + "/".join(quote(s, safe="") for s in self.segments)

    @property
    def path(self) -> Path:
        """mbox file (or the server directory for the root)."""
        directory = self.server.directory
        for segment in self.segments[:-1]:
            directory = directory / f"{segment}.sbd"
        return directory / self.segments[-1] if self.segments else directory

    @property
    def subfolder_dir(self) -> Path:
        if self.is_root:
            return self.server.directory
        return self.path.with_name(self.path.name + ".sbd")

    @property
    def flags(self) -> FolderFlag:
        flags = FolderFlag(0)
        if len(self.segments) == 1:
            flags |= _SPECIAL_FOLDERS.get(self.name.lower(), FolderFlag(0))
        if self.uri in self.draft_uris:
            flags |= FolderFlag.DRAFTS
        return flags

    def exists(self) -> bool:
        if self.is_root:
            return self.server.directory.is_dir()
        path = self.path
        return (
            path.is_file()
            or path.with_name(path.name + ".msf").is_file()
            or self.subfolder_dir.is_dir()
        )

    def child(self, name: str) -> Folder:
        return Folder(self.account_key, self.server, self.segments + (name,), self.draft_uris)

    def children(self) -> list[Folder]:
        """Subfolders, special folders first, then by name."""
        directory = self.subfolder_dir
        names: set[str] = set()
        try:
            entries = list(directory.iterdir())
        except OSError:
            return []
        for entry in entries:
            if entry.name.startswith("."):
                continue
            if entry.suffix == ".sbd" and entry.is_dir():
                names.add(entry.name[: -len(".sbd")])
            elif entry.suffix == ".msf":
                names.add(entry.name[: -len(".msf")])
            elif entry.suffix.lower() not in _NON_MBOX_SUFFIXES and entry.is_file():
                names.add(entry.name)
        return [self.child(name) for name in sorted(names, key=self._sort_key)]

    def _sort_key(self, name: str) -> tuple[int, str]:
        lowered = name.lower()
        if self.is_root and lowered in _SPECIAL_FOLDERS:
            return _SPECIAL_ORDER.index(lowered), lowered
        return len(_SPECIAL_ORDER), lowered

    def walk(self) -> Iterator[tuple[Folder, int]]:
        """Depth-first (folder, depth) pairs, starting with this folder at 0."""
        stack = [(self, 0)]
        while stack:
            folder, depth = stack.pop()
            yield folder, depth
            stack.extend((child, depth + 1) for child in reversed(folder.children()))


# =============================================================================
# MESSAGES
# =============================================================================

@dataclass
class StoredMessage:
    """Header-level view of one stored message."""

    key: int
    message_id: str
    subject: str
    author: str
    recipients: str
    cc_list: str
    date: datetime | None
    status: int
    keywords: list[str] = field(default_factory=list)

    @property
    def read(self) -> bool:
        return bool(self.status & MessageFlag.READ)

    @property
    def flagged(self) -> bool:
        return bool(self.status & MessageFlag.MARKED)

    @property
    def expunged(self) -> bool:
        return bool(self.status & MessageFlag.EXPUNGED)

    @property
    def timestamp(self) -> datetime:
        return self.date or _EPOCH

    def summary(self, folder: Folder, include_cc: bool = True) -> dict:
        result = {
            "id": self.message_id,
            "subject": mime.sanitize_for_json(self.subject),
            "author": mime.sanitize_for_json(self.author),
            "recipients": mime.sanitize_for_json(self.recipients),
            "ccList": mime.sanitize_for_json(self.cc_list),
            "date": iso_timestamp(self.date),
            "folder": mime.sanitize_for_json(folder.pretty_name),
            "folderPath": folder.uri,
            "read": self.read,
            "flagged": self.flagged,
        }
        if not include_cc:
            del result["ccList"]
        return result


def message_id_of(msg: email.message.Message) -> str:
    """Message-ID without angle brackets, or an md5 of the headers when absent."""
    raw = str(msg.get("Message-ID", "") or "").strip()
    if raw.startswith("<") and raw.endswith(">"):
        raw = raw[1:-1].strip()
    if raw:
        return raw
    digest = hashlib.md5()
    for name, value in msg.items():
        if not name.lower().startswith("x-mozilla"):
            digest.update(f"{name}: {value}\n".encode("utf-8", errors="replace"))
    return f"md5:{digest.hexdigest()}"


def message_date(msg: email.message.Message) -> datetime | None:
    value = msg.get("Date")
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(str(value))
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def message_status(msg: email.message.Message) -> int:
    try:
        return int(str(msg.get(STATUS_HEADER, "0")).strip() or "0", 16)
    except ValueError:
        return 0


def message_keywords(msg: email.message.Message) -> list[str]:
    return str(msg.get(KEYS_HEADER, "") or "").split()


def summarize(key: int, msg: email.message.Message) -> StoredMessage:
    return StoredMessage(
        key=key,
        message_id=message_id_of(msg),
        subject=mime.decode_header_value(msg.get("Subject")),
        author=mime.decode_header_value(msg.get("From")),
        recipients=mime.decode_header_value(msg.get("To")),
        cc_list=mime.decode_header_value(msg.get("Cc")),
        date=message_date(msg),
        status=message_status(msg),
        keywords=message_keywords(msg),
    )


def set_status_headers(msg: email.message.Message, status: int, keywords: list[str]) -> None:
    """Rewrite the Thunderbird status headers of a message in place."""
    del msg[STATUS_HEADER]
    msg[STATUS_HEADER] = f"{status & 0xFFFF:04x}"
    if STATUS2_HEADER not in msg:
        msg[STATUS2_HEADER] = "00000000"
    del msg[KEYS_HEADER]
    if keywords:
        msg[KEYS_HEADER] = " ".join(keywords)


@contextmanager
def open_mbox(path: Path, create: bool = False) -> Iterator[mailbox.mbox]:
    """Locked mbox; changes are flushed when the block exits."""
    if create:
        path.parent.mkdir(parents=True, exist_ok=True)
    box = mailbox.mbox(str(path), create=create)
    box.lock()
    try:
        yield box
    finally:
        box.close()


# =============================================================================
# STORE
# =============================================================================

class MailStore:
    """
    Folder and message operations over a profile's mail directories.

    Every method either returns a JSON-ready payload or raises a
    ThunderbirdMCPError subclass; the server turns those into {error}.
    """

    def __init__(self, profile: Profile, attachment_dir: Path) -> None:
        self.profile = profile
        self.attachment_dir = Path(attachment_dir)

    # -- folder lookup -------------------------------------------------------

    def _draft_uris(self, account: Account) -> frozenset[str]:
        return frozenset(i.draft_folder for i in account.identities if i.draft_folder)

    def root_folder(self, account: Account) -> Folder:
        return Folder(account.key, account.server, (), self._draft_uris(account))

    def find_folder(self, uri: str | None) -> Folder:
        """
        Resolve a folder URI.

        ERRORS:
        - FolderNotFoundError: "Folder not found: <uri>"
        """
        if uri:
            for account in self.profile.accounts():
                root = self.root_folder(account)
                if uri == root.uri:
                    return root
                prefix = root.uri + "/"
                if not uri.startswith(prefix):
                    continue
                segments = tuple(unquote(s) for s in uri[len(prefix):].split("/") if s)
                folder = Folder(account.key, account.server, segments, root.draft_uris)
                if segments and folder.exists():
                    return folder
        raise FolderNotFoundError(f"Folder not found: {uri}")

    def account_for_folder(self, folder: Folder) -> Account:
        return self.profile.get_account(folder.account_key)

    def find_special_folder(self, account: Account, flag: FolderFlag) -> Folder | None:
        for folder, _ in self.root_folder(account).walk():
            if not folder.is_root and folder.flags & flag:
                return folder
        return None

    def drafts_folder(self, account: Account, uri: str | None = None) -> Folder:
        """The identity's Drafts folder, else the account's, else Local Folders'."""
        if uri:
            try:
                return self.find_folder(uri)
            except FolderNotFoundError:
                logger.info("Configured drafts folder %s missing, falling back", uri)
        found = self.find_special_folder(account, FolderFlag.DRAFTS)
        if found is not None:
            return found
        for other in self.profile.accounts():
            if other.server.type == "none":
                found = self.find_special_folder(other, FolderFlag.DRAFTS)
                if found is not None:
                    return found
                return self.root_folder(other).child("Drafts")
        return self.root_folder(account).child("Drafts")

    # -- reading -------------------------------------------------------------

    def read_summaries(self, folder: Folder) -> list[StoredMessage]:
        """Non-expunged messages of a folder; missing mbox means empty."""
        if folder.is_root or not folder.path.is_file():
            if not folder.is_root and folder.path.exists():
                raise IsADirectoryError(str(folder.path))
            return []
        parser = BytesHeaderParser()
        box = mailbox.mbox(str(folder.path), create=False)
        try:
            summaries = []
            for key in box.iterkeys():
                headers = parser.parse(box.get_file(key))
                stored = summarize(key, headers)
                if not stored.expunged:
                    summaries.append(stored)
            return summaries
        finally:
            box.close()

    def read_messages(self, folder: Folder) -> list[tuple[StoredMessage, mailbox.mboxMessage]]:
        """Fully parsed non-expunged messages, for rule evaluation."""
        if folder.is_root or not folder.path.is_file():
            return []
        box = mailbox.mbox(str(folder.path), create=False)
        try:
            messages = []
            for key, msg in box.iteritems():
                stored = summarize(key, msg)
                if not stored.expunged:
                    messages.append((stored, msg))
            return messages
        finally:
            box.close()

    def find_message(self, message_id: str, folder_path: str) -> tuple[Folder, StoredMessage]:
        folder = self.find_folder(folder_path)
        for stored in self.read_summaries(folder):
            if stored.message_id == message_id:
                return folder, stored
        raise MessageNotFoundError(f"Message not found: {message_id}")

    def load_message(self, folder: Folder, key: int) -> mailbox.mboxMessage:
        box = mailbox.mbox(str(folder.path), create=False)
        try:
            return box.get_message(key)
        finally:
            box.close()

    # -- listFolders ---------------------------------------------------------

    def list_folders(self, account_id: str | None = None, folder_path: str | None = None) -> list[dict]:
        """
        Folder tree as a flat list.

        POST-ACCOUNTS-03: {name, path, accountId, totalMessages, unreadMessages, depth}
        POST-ACCOUNTS-04: depth 0 for root children, or for folder_path itself
        INV-ACCOUNTS-01: Unreadable folders are skipped; traversal continues
        """
        if folder_path:
            starts = [self.find_folder(folder_path)]
        elif account_id:
            starts = [self.root_folder(self.profile.get_account(account_id))]
        else:
            starts = [self.root_folder(account) for account in self.profile.accounts()]

        results = []
        for start in starts:
            offset = -1 if start.is_root else 0
            for folder, depth in start.walk():
                if folder.is_root:
                    continue
                try:
                    summaries = self.read_summaries(folder)
                except (OSError, mailbox.Error) as e:
                    logger.debug("Skipping unreadable folder %s: %s", folder.uri, e)
                    continue
                results.append(
                    {
                        "name": mime.sanitize_for_json(folder.pretty_name) or "(unnamed)",
                        "path": folder.uri,
                        "accountId": folder.account_key,
                        "totalMessages": len(summaries),
                        "unreadMessages": sum(1 for s in summaries if not s.read),
                        "depth": depth + offset,
                    }
                )
        logger.info("Listed %d folders", len(results))
        return results

    # -- searching -----------------------------------------------------------

    def _collect(self, folder_path: str | None, accept) -> list[tuple[StoredMessage, Folder]]:
        """Walk the scoped folders and gather accepted messages up to the cap."""
        if folder_path:
            starts = [self.find_folder(folder_path)]
        else:
            starts = [self.root_folder(account) for account in self.profile.accounts()]

        collected: list[tuple[StoredMessage, Folder]] = []
        for start in starts:
            for folder, _ in start.walk():
                if len(collected) >= SEARCH_COLLECTION_CAP:
                    return collected
                if folder.is_root:
                    continue
                try:
                    summaries = self.read_summaries(folder)
                except (OSError, mailbox.Error) as e:
                    logger.debug("Skipping unreadable folder %s: %s", folder.uri, e)
                    continue
                for stored in summaries:
                    if len(collected) >= SEARCH_COLLECTION_CAP:
                        break
                    if accept(stored):
                        collected.append((stored, folder))
        return collected

    def search_messages(
        self,
        query: str = "",
        folder_path: str | None = None,
        start_date: str | None = None,
        end_date: str | None = None,
        max_results=None,
        sort_order: str | None = None,
    ) -> list[dict]:
        """
        Case-insensitive substring search over decoded headers.

        INV-SEARCH-01: Reads only; flags are never touched.
        """
        needle = (query or "").lower()
        start = parse_iso_date(start_date)
        end = parse_iso_date(end_date, end_of_day=True)

        def accept(stored: StoredMessage) -> bool:
            if start is not None and stored.timestamp < start:
                return False
            if end is not None and stored.timestamp > end:
                return False
            if not needle:
                return True
            return any(
                needle in field_value.lower()
                for field_value in (stored.subject, stored.author, stored.recipients, stored.cc_list)
            )

        collected = self._collect(folder_path, accept)
        collected.sort(key=lambda item: item[0].timestamp, reverse=sort_order != "asc")
        limit = effective_limit(max_results)
        logger.info("Search matched %d messages (limit %d)", len(collected), limit)
        return [stored.summary(folder) for stored, folder in collected[:limit]]

    def get_recent_messages(
        self,
        folder_path: str | None = None,
        days_back=None,
        max_results=None,
        unread_only=False,
    ) -> list[dict]:
        """Messages newer than days_back days, newest first; all folders by default."""
        try:
            days = int(float(days_back))
        except (TypeError, ValueError):
            days = 0
        if days <= 0:
            days = DEFAULT_DAYS_BACK
        cutoff = datetime.now(timezone.utc) - timedelta(days=days)
        unread_only = coerce_bool(unread_only)

        def accept(stored: StoredMessage) -> bool:
            if stored.timestamp < cutoff:
                return False
            return not (unread_only and stored.read)

        collected = self._collect(folder_path, accept)
        collected.sort(key=lambda item: item[0].timestamp, reverse=True)
        limit = effective_limit(max_results)
        logger.info("Found %d recent messages from the last %d days", len(collected), days)
        return [stored.summary(folder, include_cc=False) for stored, folder in collected[:limit]]

    # -- getMessage ----------------------------------------------------------

    def get_message(self, message_id: str, folder_path: str, save_attachments=False) -> dict:
        """
        Full message with body text and attachment metadata.

        INV-READ-01: Body and attachment content are never logged.
        """
        folder, stored = self.find_message(message_id, folder_path)
        msg = self.load_message(folder, stored.key)

        body = mime.sanitize_for_json(mime.plaintext_body(msg)) or mime.NO_BODY_TEXT
        parts = mime.attachment_parts(msg)
        attachments = [mime.attachment_info(part) for part in parts]

        if coerce_bool(save_attachments) and attachments:
            mime.save_attachments(parts, attachments, self.attachment_dir, stored.message_id)

        logger.info("Read message from %s with %d attachments", folder.uri, len(attachments))
        return {
            "id": stored.message_id,
            "subject": mime.sanitize_for_json(stored.subject),
            "author": mime.sanitize_for_json(stored.author),
            "recipients": mime.sanitize_for_json(stored.recipients),
            "ccList": mime.sanitize_for_json(stored.cc_list),
            "date": iso_timestamp(stored.date),
            "body": body,
            "bodyIsHtml": False,
            "attachments": attachments,
        }

    # -- mutation primitives -------------------------------------------------

    def update_flags(
        self,
        folder: Folder,
        keys: list[int],
        set_bits: int = 0,
        clear_bits: int = 0,
        add_keywords: list[str] | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        """Rewrite status bits, tags or plain headers of the given messages."""
        with open_mbox(folder.path) as box:
            for key in keys:
                msg = box[key]
                status = (message_status(msg) | set_bits) & ~clear_bits
                keywords = message_keywords(msg)
                for keyword in add_keywords or []:
                    if keyword not in keywords:
                        keywords.append(keyword)
                set_status_headers(msg, status, keywords)
                for name, value in (headers or {}).items():
                    del msg[name]
                    msg[name] = value
                box[key] = msg

    def transfer(self, folder: Folder, keys: list[int], target: Folder, move: bool = True) -> None:
        """Copy messages into target; with move they leave the source."""
        if target == folder:
            return
        with open_mbox(folder.path) as source:
            messages = [source.get_message(key) for key in keys]
            with open_mbox(target.path, create=True) as destination:
                for msg in messages:
                    destination.add(msg)
            if move:
                for key in keys:
                    source.remove(key)

    def remove(self, folder: Folder, keys: list[int]) -> None:
        with open_mbox(folder.path) as box:
            for key in keys:
                box.remove(key)

    def append(self, folder: Folder, msg: email.message.Message, status: int = 0) -> None:
        """Store a new message, as Thunderbird does when saving a draft."""
        stored = mailbox.mboxMessage(msg)
        stored.set_from("-", time.gmtime())
        set_status_headers(stored, status, message_keywords(stored))
        with open_mbox(folder.path, create=True) as box:
            box.add(stored)

    # -- deleteMessages / updateMessage --------------------------------------

    def delete_messages(self, message_ids, folder_path) -> dict:
        """
        Delete messages; Drafts folders move them to Trash instead.

        PRE-MUTATE-01: message_ids is a non-empty list (JSON string accepted)
        POST-MUTATE-02: Drafts folder messages go to Trash when one exists
        """
        if isinstance(message_ids, str):
            try:
                message_ids = json.loads(message_ids)
            except ValueError:
                pass
        if not isinstance(message_ids, list) or not message_ids:
            raise InvalidArgumentError("messageIds must be a non-empty array of strings")
        if not isinstance(folder_path, str) or not folder_path:
            raise InvalidArgumentError("folderPath must be a non-empty string")

        folder = self.find_folder(folder_path)
        by_id: dict[str, StoredMessage] = {}
        for stored in self.read_summaries(folder):
            by_id.setdefault(stored.message_id, stored)

        found: list[StoredMessage] = []
        not_found = []
        for message_id in message_ids:
            stored = by_id.get(message_id) if isinstance(message_id, str) and message_id else None
            if stored is None:
                not_found.append(message_id)
            elif stored not in found:
                found.append(stored)
        if not found:
            raise MessageNotFoundError("No matching messages found")

        keys = [stored.key for stored in found]
        trash = None
        if folder.flags & FolderFlag.DRAFTS:
            trash = self.find_special_folder(self.account_for_folder(folder), FolderFlag.TRASH)

        if trash is not None:
            self.transfer(folder, keys, trash, move=True)
        else:
            self.remove(folder, keys)
        logger.info("Deleted %d messages from %s", len(found), folder.uri)

        result: dict = {"success": True, "deleted": len(found)}
        if trash is not None:
            result["movedToTrash"] = True
        if not_found:
            result["notFound"] = not_found
        return result

    def update_message(
        self,
        message_id,
        folder_path,
        read=None,
        flagged=None,
        move_to=None,
        trash=None,
    ) -> dict:
        """
        Change read/flagged state and optionally move the message.

        PRE-MUTATE-02: move_to and trash are mutually exclusive
        POST-MUTATE-03: {success, actions}
        """
        if not isinstance(message_id, str) or not message_id:
            raise InvalidArgumentError("messageId must be a non-empty string")
        if not isinstance(folder_path, str) or not folder_path:
            raise InvalidArgumentError("folderPath must be a non-empty string")
        if move_to is not None and (not isinstance(move_to, str) or not move_to):
            raise InvalidArgumentError("moveTo must be a non-empty string")
        if trash is not None:
            trash = coerce_bool(trash)
        if move_to and trash:
            raise InvalidArgumentError("Cannot specify both moveTo and trash")

        folder, stored = self.find_message(message_id, folder_path)

        target = None
        if trash:
            target = self.find_special_folder(self.account_for_folder(folder), FolderFlag.TRASH)
            if target is None:
                raise FolderNotFoundError("Trash folder not found")
        elif move_to:
            target = self.find_folder(move_to)

        actions = []
        set_bits = clear_bits = 0
        if read is not None:
            read = coerce_bool(read)
            if read:
                set_bits |= MessageFlag.READ
            else:
                clear_bits |= MessageFlag.READ
            actions.append({"type": "read", "value": read})
        if flagged is not None:
            flagged = coerce_bool(flagged)
            if flagged:
                set_bits |= MessageFlag.MARKED
            else:
                clear_bits |= MessageFlag.MARKED
            actions.append({"type": "flagged", "value": flagged})
        if set_bits or clear_bits:
            self.update_flags(folder, [stored.key], set_bits, clear_bits)

        if target is not None:
            self.transfer(folder, [stored.key], target, move=True)
            actions.append({"type": "move", "to": target.uri})

        logger.info("Updated message in %s: %d actions", folder.uri, len(actions))
        return {"success": True, "actions": actions}

    # -- createFolder --------------------------------------------------------

    def create_folder(self, parent_folder_path, name) -> dict:
        """
        Create an empty subfolder.

        POST-ACCOUNTS-05: {success, message, path}
        """
        if not isinstance(parent_folder_path, str) or not parent_folder_path:
            raise InvalidArgumentError("parentFolderPath must be a non-empty string")
        if not isinstance(name, str) or not name:
            raise InvalidArgumentError("name must be a non-empty string")
        if "/" in name or "\\" in name or name in (".", ".."):
            raise InvalidArgumentError(f"Invalid folder name: {name}")

        try:
            parent = self.find_folder(parent_folder_path)
        except FolderNotFoundError:
            raise FolderNotFoundError(f"Parent folder not found: {parent_folder_path}") from None

        lowered = name.lower()
        if any(child.name.lower() == lowered for child in parent.children()):
            raise FolderExistsError(f'Folder "{name}" already exists under this parent')

        folder = parent.child(name)
        folder.path.parent.mkdir(parents=True, exist_ok=True)
        folder.path.touch()
        logger.info("Created folder %s", folder.uri)
        return {"success": True, "message": f'Folder "{name}" created', "path": folder.uri}
