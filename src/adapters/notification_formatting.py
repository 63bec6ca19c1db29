"""Shared notification formatting helpers.

Keeping formatting here prevents drift between callback adapters and keeps
reminders consistent regardless of delivery channel.
"""

from __future__ import annotations

import html

from core.models import CalendarEvent, WatchConfig

DIVIDER = "──────────────"


def format_when(event: CalendarEvent) -> str:
    """Return a human-friendly start time; all-day events show only the date."""

    if event.all_day:
        return event.start.strftime("%a %d-%m-%Y") + " (all day)"
    return event.start.strftime("%a %d-%m-%Y %H:%M").strip()


def format_lead(days_before: int) -> str:
    if days_before == 1:
        return "tomorrow"
    return f"in {days_before} days"


def _format_markdown(event: CalendarEvent, watch: WatchConfig, calendar_labels: dict[str, str]) -> str:
    """Create the Markdown body used by Saved Messages."""

    # Telegram Markdown is supported by passing parse_mode="Markdown".
    def escape_md(value: str) -> str:
        for ch in r"*[`_":
            value = value.replace(ch, f"\\{ch}")
        return value

    calendar = calendar_labels.get(watch.calendar_id, watch.calendar_id)
    lines = [
        f"**{escape_md(event.title)}** {format_lead(watch.days_before)}",
        f"**When:**     {escape_md(format_when(event))}",
        f"**Calendar:** {escape_md(calendar)}",
    ]
    if event.location:
        lines.append(f"**Where:**    {escape_md(event.location)}")
    lines.extend([DIVIDER, f"Watch: {escape_md(watch.unique_id)}"])
    return "\n".join(lines)


def _format_html(event: CalendarEvent, watch: WatchConfig, calendar_labels: dict[str, str]) -> str:
    """Create the HTML body used by the Bot API adapter."""

    calendar = calendar_labels.get(watch.calendar_id, watch.calendar_id)
    parts = [
        f"<b>{html.escape(event.title)}</b> {format_lead(watch.days_before)}",
        f"<b>When:</b> {html.escape(format_when(event))}",
        f"<b>Calendar:</b> {html.escape(calendar)}",
    ]
    if event.location:
        parts.append(f"<b>Where:</b> {html.escape(event.location)}")
    parts.extend([DIVIDER, f"Watch: {html.escape(watch.unique_id)}"])
    return "\n".join(parts)


def format_notification(
    event: CalendarEvent,
    watch: WatchConfig,
    calendar_labels: dict[str, str],
    mode: str,
) -> str:
    """Return the reminder formatted for the requested mode."""

    if mode == "markdown":
        return _format_markdown(event, watch, calendar_labels)
    if mode == "html":
        return _format_html(event, watch, calendar_labels)
    raise ValueError(f"Unsupported notification format: {mode}")
