"""Adapters binding the core ports to SQLite, iCalendar feeds, and Telegram."""
