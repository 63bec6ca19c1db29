"""Deduplication helpers (core domain)."""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone, tzinfo
from typing import Optional

from core.config import DedupConfig
from core.matching import localize
from core.models import CalendarEvent
from core.ports import CachePort

LOGGER = logging.getLogger(__name__)

STATUS_PROCESSED = "processed"
STATUS_ERROR = "error"

KEY_PREFIX = "eventwatch:seen:"


def compute_dedupe_key(
    event: CalendarEvent,
    unique_id: Optional[str] = None,
    scope: str = "global",
    tz: Optional[tzinfo] = None,
) -> str:
    """Return a deterministic key for one event instance.

    In the "global" scope the key depends only on (event id, start time), so a
    watch matching an event another watch already handled is suppressed too.
    A naive start is read as wall time in `tz` (UTC when omitted), the same
    way the matcher reads it.
    """

    start = localize(event.start, tz or timezone.utc)
    instance = f"{event.event_id}\n{start.astimezone(timezone.utc).isoformat()}"
    if scope == "global":
        payload = instance
    elif scope == "per_watch":
        if not unique_id:
            raise ValueError("per_watch dedup scope requires a unique_id")
        payload = f"{unique_id}\n{instance}"
    else:
        raise ValueError(f"Unsupported dedup scope: {scope}")

    return KEY_PREFIX + hashlib.sha256(payload.encode("utf-8")).hexdigest()


class DedupeCache:
    """Time-bounded "already processed" markers over a cache backend.

    Backend failures never abort a run. A failed lookup is treated as "not
    seen", which can produce a duplicate dispatch; a failed write is logged.
    """

    def __init__(self, cache: CachePort, config: DedupConfig, tz: Optional[tzinfo] = None) -> None:
        self._cache = cache
        self._config = config
        self._tz = tz

    @property
    def config(self) -> DedupConfig:
        return self._config

    def key_for(self, event: CalendarEvent, unique_id: str) -> str:
        return compute_dedupe_key(event, unique_id, self._config.scope, self._tz)

    def seen(self, key: str) -> bool:
        try:
            return self._cache.get(key) is not None
        except Exception:
            LOGGER.warning("Dedup cache lookup failed for %s, treating as unseen", key, exc_info=True)
            return False

    def mark(self, key: str, status: str, ttl_seconds: Optional[int] = None) -> None:
        """Record `status` for `key`; the TTL defaults by status."""

        if ttl_seconds is None:
            if status == STATUS_PROCESSED:
                ttl_seconds = self._config.success_ttl_seconds
            elif status == STATUS_ERROR:
                ttl_seconds = self._config.error_ttl_seconds
            else:
                raise ValueError(f"Unsupported dedup status: {status}")

        value = json.dumps({"status": status, "marked_at": datetime.now(timezone.utc).isoformat()})
        try:
            self._cache.put(key, value, ttl_seconds)
        except Exception:
            LOGGER.warning("Dedup cache write failed for %s (%s)", key, status, exc_info=True)
