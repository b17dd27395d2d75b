"""
Profile Reader
==============

Accounts, identities and incoming servers as recorded in a Thunderbird
profile's prefs.js.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from contracts import Account, AccountNotFoundError, Identity, IncomingServer

logger = logging.getLogger("thunderbird-mcp.profile")

_PREF_RE = re.compile(r'^\s*user_pref\(\s*("(?:[^"\\]|\\.)*")\s*,\s*(.+?)\s*\);\s*$')


def parse_prefs(text: str) -> dict[str, str | int | bool]:
    """Parse user_pref(...) lines. Values are str, int or bool."""
    prefs: dict[str, str | int | bool] = {}
    for line in text.splitlines():
        match = _PREF_RE.match(line)
        if not match:
            continue
        try:
            name = json.loads(match.group(1))
            prefs[name] = json.loads(match.group(2))
        except ValueError:
            logger.debug("Skipping unparseable pref line")
    return prefs


class Profile:
    """
    Read-side view of a Thunderbird profile directory.

    prefs.js is re-read whenever its modification time changes, so accounts
    added in Thunderbird show up without restarting the server.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._prefs: dict[str, str | int | bool] = {}
        self._prefs_mtime: float | None = None

    @property
    def prefs(self) -> dict[str, str | int | bool]:
        prefs_file = self.path / "prefs.js"
        try:
            mtime = prefs_file.stat().st_mtime
        except FileNotFoundError:
            return {}
        if mtime != self._prefs_mtime:
            self._prefs = parse_prefs(prefs_file.read_text(encoding="utf-8", errors="replace"))
            self._prefs_mtime = mtime
        return self._prefs

    def pref(self, name: str, default=None):
        return self.prefs.get(name, default)

    def _split(self, name: str) -> list[str]:
        value = self.pref(name, "")
        if not isinstance(value, str):
            return []
        return [item.strip() for item in value.split(",") if item.strip()]

    def resolve_directory(self, server_key: str) -> Path:
        """Folder root of a server: directory-rel ([ProfD] prefix) or directory."""
        relative = self.pref(f"mail.server.{server_key}.directory-rel")
        if isinstance(relative, str) and relative.startswith("[ProfD]"):
            return self.path / relative[len("[ProfD]"):]
        absolute = self.pref(f"mail.server.{server_key}.directory")
        if isinstance(absolute, str) and absolute:
            return Path(absolute)
        server_type = self.pref(f"mail.server.{server_key}.type", "none")
        hostname = self.pref(f"mail.server.{server_key}.hostname", "Local Folders")
        parent = "ImapMail" if server_type == "imap" else "Mail"
        return self.path / parent / str(hostname)

    def _server(self, server_key: str) -> IncomingServer:
        prefix = f"mail.server.{server_key}"
        server_type = str(self.pref(f"{prefix}.type", "none"))
        hostname = str(self.pref(f"{prefix}.hostname", "Local Folders"))
        username = str(self.pref(f"{prefix}.userName", "nobody"))
        pretty_name = self.pref(f"{prefix}.name")
        if not pretty_name:
            pretty_name = hostname if server_type == "none" else f"{username} on {hostname}"
        return IncomingServer(
            key=server_key,
            type=server_type,
            hostname=hostname,
            username=username,
            pretty_name=str(pretty_name),
            directory=self.resolve_directory(server_key),
            can_have_filters=server_type not in ("nntp", "rss"),
        )

    def _identity(self, identity_key: str) -> Identity:
        prefix = f"mail.identity.{identity_key}"
        draft_folder = self.pref(f"{prefix}.draft_folder")
        return Identity(
            key=identity_key,
            email=str(self.pref(f"{prefix}.useremail", "")),
            full_name=str(self.pref(f"{prefix}.fullName", "")),
            draft_folder=draft_folder if isinstance(draft_folder, str) and draft_folder else None,
        )

    def accounts(self) -> list[Account]:
        """Accounts in mail.accountmanager.accounts order; broken entries skipped."""
        accounts: list[Account] = []
        for account_key in self._split("mail.accountmanager.accounts"):
            server_key = self.pref(f"mail.account.{account_key}.server")
            if not isinstance(server_key, str) or not server_key:
                logger.debug("Account %s has no server, skipping", account_key)
                continue
            identities = tuple(
                self._identity(key)
                for key in self._split(f"mail.account.{account_key}.identities")
            )
            accounts.append(
                Account(key=account_key, server=self._server(server_key), identities=identities)
            )
        return accounts

    def get_account(self, account_id: str) -> Account:
        for account in self.accounts():
            if account.key == account_id:
                return account
        raise AccountNotFoundError(f"Account not found: {account_id}")

    def default_account(self) -> Account | None:
        default_key = self.pref("mail.accountmanager.defaultaccount")
        accounts = self.accounts()
        for account in accounts:
            if account.key == default_key:
                return account
        return accounts[0] if accounts else None

    def find_identity(self, email_or_id: str | None) -> tuple[Account, Identity] | None:
        """Match an identity by key or by case-insensitive email address."""
        if not email_or_id:
            return None
        lowered = email_or_id.lower()
        for account in self.accounts():
            for identity in account.identities:
                if identity.key == email_or_id or identity.email.lower() == lowered:
                    return account, identity
        return None

    def list_accounts(self) -> list[dict]:
        """listAccounts payload."""
        results = []
        for account in self.accounts():
            default = account.default_identity
            results.append(
                {
                    "id": account.key,
                    "name": account.server.pretty_name,
                    "type": account.server.type,
                    "identities": [
                        {
                            "id": identity.key,
                            "email": identity.email,
                            "name": identity.full_name,
                            "isDefault": identity is default,
                        }
                        for identity in account.identities
                    ],
                }
            )
        return results
