"""Watch configuration store over an opaque property namespace.

Each watch uses two keys derived from its unique id: one for the JSON record
and one mapping the watch to its shared timer id.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Tuple

from core.errors import IncompleteConfiguration
from core.models import WatchConfig
from core.ports import PropertyStorePort

LOGGER = logging.getLogger(__name__)

CONFIG_PREFIX = "WATCH_CONFIG_"
TRIGGER_PREFIX = "WATCH_TRIGGER_"


def config_key(unique_id: str) -> str:
    return f"{CONFIG_PREFIX}{unique_id}"


def trigger_key(unique_id: str) -> str:
    return f"{TRIGGER_PREFIX}{unique_id}"


class ConfigStore:
    """Keyed persistence for WatchConfig records."""

    def __init__(self, properties: PropertyStorePort) -> None:
        self._properties = properties

    def get(self, unique_id: str) -> Optional[WatchConfig]:
        raw = self._properties.get_property(config_key(unique_id))
        if raw is None:
            return None
        try:
            record = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise IncompleteConfiguration(f"Watch {unique_id} is not valid JSON") from exc
        return WatchConfig.from_record(record)

    def exists(self, unique_id: str) -> bool:
        return self._properties.get_property(config_key(unique_id)) is not None

    def put(self, watch: WatchConfig) -> None:
        # The config record goes last: a watch is live only once it exists.
        self._properties.set_property(trigger_key(watch.unique_id), watch.associated_trigger_id)
        self._properties.set_property(config_key(watch.unique_id), json.dumps(watch.to_record()))

    def delete(self, unique_id: str) -> None:
        self._properties.delete_property(config_key(unique_id))
        self._properties.delete_property(trigger_key(unique_id))

    def list_records(self) -> List[Tuple[str, Any]]:
        """Return (unique_id, decoded record) pairs without validating them.

        Records that are not valid JSON are returned as their raw string so the
        caller can report them as incomplete.
        """

        records: List[Tuple[str, Any]] = []
        for key, raw in sorted(self._properties.list_properties(CONFIG_PREFIX).items()):
            unique_id = key[len(CONFIG_PREFIX):]
            try:
                records.append((unique_id, json.loads(raw)))
            except (TypeError, ValueError):
                records.append((unique_id, raw))
        return records

    def list_all(self) -> List[WatchConfig]:
        """Return every well-formed watch; incomplete records are logged and skipped."""

        watches: List[WatchConfig] = []
        for unique_id, record in self.list_records():
            try:
                watches.append(WatchConfig.from_record(record))
            except IncompleteConfiguration as exc:
                LOGGER.warning("Ignoring incomplete watch %s: %s", unique_id, exc)
        return watches
