"""
Contacts and Calendar Implementation Tests
==========================================

CL12-E TRACEABILITY: Every test cites specific contract clause IDs.
"""

from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest
from icalendar import Calendar

from contracts import CalendarUnavailableError, InvalidArgumentError
from src.thunderbird_mcp.address_book import AddressBooks
from src.thunderbird_mcp.calendars import Calendars
from src.thunderbird_mcp.profile import Profile


@pytest.fixture
def calendars(profile, tmp_path):
    return Calendars(profile, tmp_path / "events")


def _event(result):
    calendar = Calendar.from_ical(Path(result["filePath"]).read_bytes())
    [event] = calendar.walk("VEVENT")
    return event


# =============================================================================
# CONTACTS CONTRACT TESTS
# =============================================================================

class TestContactsContract:
    """Tests for searchContacts."""

    def test_search_contacts(self, profile):
        """
        Contract: ContactsContract
        Enforces: POST-CONTACTS-01, POST-CONTACTS-02
        """
        books = AddressBooks(profile)

        assert books.search_contacts("BUILDER") == [
            {
                "id": "card-bob",
                "displayName": "Bob Builder",
                "email": "bob@example.com",
                "firstName": "Bob",
                "lastName": "Builder",
                "addressBook": "Personal Address Book",
            }
        ]

        everyone = books.search_contacts("")
        assert sorted(c["email"] for c in everyone) == [
            "bob@example.com",
            "carol@example.com",
            "zed@example.net",
        ]
        assert {c["addressBook"] for c in everyone} == {
            "Personal Address Book",
            "Collected Addresses",
        }
        # mailing lists are not cards
        assert books.search_contacts("team") == []

    def test_search_contacts_result_cap(self, profile):
        """
        Contract: ContactsContract
        Enforces: POST-CONTACTS-02
        """
        books = AddressBooks(profile)
        many = {f"card-{i}": {"PrimaryEmail": f"user{i}@example.com"} for i in range(80)}

        with patch.object(AddressBooks, "_cards", return_value=many):
            assert len(books.search_contacts("example")) == 50

    def test_search_contacts_unreadable_book(self, profile, profile_dir):
        """
        Contract: ContactsContract
        Enforces: POST-CONTACTS-01
        """
        (profile_dir / "abook-2.sqlite").write_bytes(b"not a database")

        emails = [c["email"] for c in AddressBooks(profile).search_contacts("@")]

        assert "bob@example.com" in emails


# =============================================================================
# CALENDAR CONTRACT TESTS
# =============================================================================

class TestCalendarContract:
    """Tests for listCalendars and createEvent."""

    def test_list_calendars(self, calendars):
        """
        Contract: CalendarContract
        Enforces: POST-CALENDAR-01
        """
        assert calendars.list_calendars() == [
            {"id": "cal1", "name": "Home", "type": "storage", "readOnly": False},
            {"id": "cal2", "name": "Holidays", "type": "ics", "readOnly": True},
        ]

    def test_list_calendars_unavailable(self, tmp_path):
        """
        Contract: CalendarContract
        Enforces: ERRORS CALENDAR_UNAVAILABLE
        """
        empty = tmp_path / "empty-profile"
        empty.mkdir()
        with pytest.raises(CalendarUnavailableError, match="Calendar not available"):
            Calendars(Profile(empty), tmp_path / "events").list_calendars()

    def test_create_event_defaults(self, profile, tmp_path):
        """
        Contract: CalendarContract
        Enforces: POST-CALENDAR-02, POST-CALENDAR-04
        """
        calendars = Calendars(profile, tmp_path / "events", open_command="/usr/bin/thunderbird")

        with patch("src.thunderbird_mcp.calendars.subprocess.Popen") as popen, patch(
            "src.thunderbird_mcp.calendars.threading.Thread"
        ) as thread:
            result = calendars.create_event(
                "Dentist",
                "2026-11-02T10:00:00Z",
                location="Main St",
                description="Check-up",
            )

        assert result["success"] is True
        assert result["message"] == 'Event dialog opened for "Dentist" on calendar "Home"'
        popen.assert_called_once_with(
            ["/usr/bin/thunderbird", result["filePath"]], start_new_session=True
        )
        thread.assert_called_once_with(target=popen.return_value.wait, daemon=True)
        thread.return_value.start.assert_called_once_with()

        event = _event(result)
        start = event.decoded("dtstart")
        assert start == datetime(2026, 11, 2, 10, 0, tzinfo=timezone.utc)
        assert event.decoded("dtend") - start == timedelta(hours=1)
        assert str(event["summary"]) == "Dentist"
        assert str(event["location"]) == "Main St"

    def test_create_event_without_opener(self, calendars):
        """
        Contract: CalendarContract
        Enforces: POST-CALENDAR-04
        """
        result = calendars.create_event("Standup", "2026-11-02T09:00:00Z")

        assert result["message"] == 'Event file created for "Standup" on calendar "Home"'
        assert Path(result["filePath"]).suffix == ".ics"

    def test_create_all_day_event(self, calendars):
        """
        Contract: CalendarContract
        Enforces: POST-CALENDAR-03
        """
        single = _event(calendars.create_event("Holiday", "2026-12-24", all_day=True))
        assert single.decoded("dtstart") == date(2026, 12, 24)
        assert single.decoded("dtend") == date(2026, 12, 25)

        same_day = _event(
            calendars.create_event("Offsite", "2026-12-01", "2026-12-01", all_day="true")
        )
        assert same_day.decoded("dtend") == date(2026, 12, 2)

        span = _event(calendars.create_event("Trip", "2026-12-01", "2026-12-04", all_day=True))
        assert span.decoded("dtend") == date(2026, 12, 4)

    def test_create_event_rejections(self, calendars):
        """
        Contract: CalendarContract
        Enforces: ERRORS INVALID_ARGUMENT, CALENDAR_UNAVAILABLE
        """
        with pytest.raises(InvalidArgumentError, match="Invalid startDate"):
            calendars.create_event("Bad", "next tuesday")
        with pytest.raises(InvalidArgumentError, match="endDate must be after startDate"):
            calendars.create_event("Bad", "2026-11-02T10:00:00Z", "2026-11-02T09:00:00Z")
        with pytest.raises(CalendarUnavailableError, match="Calendar is read-only: Holidays"):
            calendars.create_event("Bad", "2026-11-02T10:00:00Z", calendar_id="cal2")
        with pytest.raises(CalendarUnavailableError, match="Calendar not found: cal9"):
            calendars.create_event("Bad", "2026-11-02T10:00:00Z", calendar_id="cal9")
