"""
Calendars
=========

Calendars come from the calendar.registry.* prefs. New events are written as
iCalendar files and handed to Thunderbird, which shows its import dialog so
the user confirms the event before it is saved.

CONTRACT CLAUSES:
- POST-CALENDAR-01: listCalendars entry shape
- POST-CALENDAR-02: Default end is +1 hour, or +1 day for all-day events
- POST-CALENDAR-03: All-day DTEND is exclusive and after DTSTART
- POST-CALENDAR-04: Event is handed to the user for review
"""

from __future__ import annotations

import logging
import subprocess
import threading
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

from icalendar import Calendar, Event

from contracts import CalendarInfo, CalendarUnavailableError, InvalidArgumentError
from src.thunderbird_mcp.mail_store import coerce_bool
from src.thunderbird_mcp.profile import Profile

logger = logging.getLogger("thunderbird-mcp.calendar")

PRODID = "-//Thunderbird MCP//EN"


def _parse_datetime(value: str, label: str) -> tuple[datetime, bool]:
    """(aware datetime, date_only) for an ISO 8601 string."""
    text = str(value or "").strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise InvalidArgumentError(f"Invalid {label}: {value}") from None
    date_only = "T" not in text and " " not in text
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc) if date_only else parsed.astimezone()
    return parsed, date_only


def _calendar_day(value: datetime, date_only: bool) -> date:
    return value.date() if date_only else value.astimezone().date()


class Calendars:
    """Calendar registry reader and event file writer."""

    def __init__(self, profile: Profile, event_dir: Path, open_command: str | None = None) -> None:
        self.profile = profile
        self.event_dir = Path(event_dir)
        self.open_command = open_command

    def calendars(self) -> list[CalendarInfo]:
        prefix = "calendar.registry."
        ids: list[str] = []
        for name in self.profile.prefs:
            if name.startswith(prefix) and name.endswith(".type"):
                calendar_id = name[len(prefix):-len(".type")]
                if calendar_id not in ids:
                    ids.append(calendar_id)

        found = []
        for calendar_id in ids:
            base = f"{prefix}{calendar_id}"
            found.append(
                CalendarInfo(
                    id=calendar_id,
                    name=str(self.profile.pref(f"{base}.name", calendar_id)),
                    type=str(self.profile.pref(f"{base}.type", "")),
                    read_only=self.profile.pref(f"{base}.readOnly", False) is True,
                    uri=str(self.profile.pref(f"{base}.uri", "")),
                )
            )
        return found

    def list_calendars(self) -> list[dict]:
        calendars = self.calendars()
        if not calendars:
            raise CalendarUnavailableError("Calendar not available")
        return [
            {"id": c.id, "name": c.name, "type": c.type, "readOnly": c.read_only}
            for c in calendars
        ]

    def _target(self, calendar_id: str | None) -> CalendarInfo:
        calendars = self.calendars()
        if not calendars:
            raise CalendarUnavailableError("Calendar not available")
        if calendar_id:
            for calendar in calendars:
                if calendar.id == calendar_id:
                    if calendar.read_only:
                        raise CalendarUnavailableError(f"Calendar is read-only: {calendar.name}")
                    return calendar
            raise CalendarUnavailableError(f"Calendar not found: {calendar_id}")
        for calendar in calendars:
            if not calendar.read_only:
                return calendar
        raise CalendarUnavailableError("No writable calendar found")

    def create_event(
        self,
        title,
        start_date,
        end_date=None,
        location=None,
        description=None,
        calendar_id=None,
        all_day=False,
    ) -> dict:
        """
        Build a VEVENT and open it in Thunderbird for review.

        ERRORS:
        - InvalidArgumentError: unparseable dates, end not after start
        - CalendarUnavailableError: no calendar, unknown or read-only target
        """
        all_day = coerce_bool(all_day)
        start, start_date_only = _parse_datetime(start_date, "startDate")
        end = end_date_only = None
        if end_date:
            end, end_date_only = _parse_datetime(end_date, "endDate")

        event = Event()
        event.add("uid", f"{uuid.uuid4()}")
        event.add("summary", title)
        event.add("dtstamp", datetime.now(timezone.utc))

        if all_day:
            start_day = _calendar_day(start, start_date_only)
            if end is not None:
                end_day = _calendar_day(end, end_date_only)
                if end_day < start_day:
                    raise InvalidArgumentError("endDate must not be before startDate")
                # DTEND is exclusive
                if end_day <= start_day:
                    end_day += timedelta(days=1)
            else:
                end_day = start_day + timedelta(days=1)
            event.add("dtstart", start_day)
            event.add("dtend", end_day)
        else:
            if end is not None and end <= start:
                raise InvalidArgumentError("endDate must be after startDate")
            if end is None:
                end = start + timedelta(hours=1)
            event.add("dtstart", start.astimezone(timezone.utc))
            event.add("dtend", end.astimezone(timezone.utc))

        if location:
            event.add("location", location)
        if description:
            event.add("description", description)

        target = self._target(calendar_id)

        calendar = Calendar()
        calendar.add("prodid", PRODID)
        calendar.add("version", "2.0")
        calendar.add_component(event)

        self.event_dir.mkdir(parents=True, exist_ok=True)
        path = self.event_dir / f"{event['uid']}.ics"
        path.write_bytes(calendar.to_ical())

        message = f'Event file created for "{title}" on calendar "{target.name}"'
        if self.open_command:
            try:
                opener = subprocess.Popen([self.open_command, str(path)], start_new_session=True)
                # reap the opener when it exits
                threading.Thread(target=opener.wait, daemon=True).start()
                message = f'Event dialog opened for "{title}" on calendar "{target.name}"'
            except OSError as e:
                logger.warning("Could not open event file: %s", e)
        logger.info("Created event file %s for calendar %s", path, target.id)
        return {"success": True, "message": message, "filePath": str(path)}
