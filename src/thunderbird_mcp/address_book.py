"""
Address Books
=============

Contact search over the profile's SQLite address books. Each book keeps its
cards as (card, name, value) rows in a properties table; mailing lists live
in a separate table and never show up as cards.
"""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from src.thunderbird_mcp.profile import Profile

logger = logging.getLogger("thunderbird-mcp.contacts")

MAX_CONTACT_RESULTS = 50

_BUILTIN_BOOK_NAMES = {
    "abook.sqlite": "Personal Address Book",
    "history.sqlite": "Collected Addresses",
}


class AddressBooks:
    """Read-only view of every address book file in a profile."""

    def __init__(self, profile: Profile) -> None:
        self.profile = profile

    def books(self) -> list[tuple[str, Path]]:
        """(display name, sqlite path) pairs; named books from prefs first."""
        names: dict[str, str] = {}
        for name, value in self.profile.prefs.items():
            if name.startswith("ldap_2.servers.") and name.endswith(".filename"):
                key = name[len("ldap_2.servers."):-len(".filename")]
                description = self.profile.pref(f"ldap_2.servers.{key}.description")
                if isinstance(value, str) and isinstance(description, str):
                    names[value] = description

        found = []
        candidates = [self.profile.path / "abook.sqlite", self.profile.path / "history.sqlite"]
        candidates += sorted(self.profile.path.glob("abook-*.sqlite"))
        for path in candidates:
            if path.is_file():
                label = names.get(path.name) or _BUILTIN_BOOK_NAMES.get(path.name) or path.stem
                found.append((label, path))
        return found

    @staticmethod
    def _cards(path: Path) -> dict[str, dict[str, str]]:
        conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True)
        try:
            rows = conn.execute("SELECT card, name, value FROM properties ORDER BY card").fetchall()
        finally:
            conn.close()
        cards: dict[str, dict[str, str]] = {}
        for card, name, value in rows:
            cards.setdefault(card, {})[name] = "" if value is None else str(value)
        return cards

    def search_contacts(self, query: str) -> list[dict]:
        """
        Cards whose email, display name, first or last name contain query.

        POST-CONTACTS-01: {id, displayName, email, firstName, lastName, addressBook}
        POST-CONTACTS-02: At most 50 results
        """
        needle = (query or "").lower()
        results: list[dict] = []
        for book_name, path in self.books():
            try:
                cards = self._cards(path)
            except sqlite3.Error as e:
                logger.warning("Skipping address book %s: %s", path.name, e)
                continue
            for card_id, props in cards.items():
                email = props.get("PrimaryEmail", "")
                display_name = props.get("DisplayName", "")
                first_name = props.get("FirstName", "")
                last_name = props.get("LastName", "")
                if any(needle in value.lower() for value in (email, display_name, first_name, last_name)):
                    results.append(
                        {
                            "id": card_id,
                            "displayName": display_name,
                            "email": email,
                            "firstName": first_name,
                            "lastName": last_name,
                            "addressBook": book_name,
                        }
                    )
                if len(results) >= MAX_CONTACT_RESULTS:
                    break
            if len(results) >= MAX_CONTACT_RESULTS:
                break

        logger.info("Contact search returned %d results", len(results))
        return results
