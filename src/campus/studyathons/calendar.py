"""iCalendar (RFC 5545) export for a single study-a-thon."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

PRODID = "-//Campus//Studyathon//EN"
DEFAULT_DURATION = timedelta(hours=1)
MAX_LINE_OCTETS = 75


def format_instant(value: datetime) -> str:
    """UTC form, e.g. ``20260301T090000Z``. Naive values are taken as UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def escape_text(value: str) -> str:
    """Escape a TEXT property value."""
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
        .replace("\r", "\\n")
    )


def fold_line(line: str) -> str:
    """Fold a content line at 75 octets without splitting a UTF-8 sequence."""
    if len(line.encode()) <= MAX_LINE_OCTETS:
        return line

    parts: list[str] = []
    current = ""
    current_octets = 0
    for char in line:
        size = len(char.encode())
        if current_octets + size > MAX_LINE_OCTETS:
            parts.append(current)
            # Continuation lines start with a space, which counts toward the limit.
            current = " "
            current_octets = 1
        current += char
        current_octets += size
    parts.append(current)
    return "\r\n".join(parts)


def render_ics(
    studyathon_id: int,
    title: str,
    starts_at: datetime,
    ends_at: datetime | None = None,
    description: str | None = None,
    location: str | None = None,
    now: datetime | None = None,
) -> str:
    """Render a VCALENDAR holding one VEVENT. DTEND defaults to one hour after start."""
    now = now or datetime.now(timezone.utc)
    end = ends_at or starts_at + DEFAULT_DURATION

    lines = [
        "BEGIN:VCALENDAR",
        "VERSION:2.0",
        f"PRODID:{PRODID}",
        "CALSCALE:GREGORIAN",
        "METHOD:PUBLISH",
        "BEGIN:VEVENT",
        f"UID:{studyathon_id}@campus",
        f"DTSTAMP:{format_instant(now)}",
        f"DTSTART:{format_instant(starts_at)}",
        f"DTEND:{format_instant(end)}",
        f"SUMMARY:{escape_text(title)}",
    ]
    if description:
        lines.append(f"DESCRIPTION:{escape_text(description)}")
    if location:
        lines.append(f"LOCATION:{escape_text(location)}")
    lines += ["END:VEVENT", "END:VCALENDAR"]

    return "\r\n".join(fold_line(line) for line in lines) + "\r\n"
