"""Callback registry.

Watches name their callback by string; the registry maps those names to
objects implementing `invoke(event, watch)`.
"""

from __future__ import annotations

import inspect
import logging
from typing import Any, Callable, Dict, List

from core.errors import CallbackFailure, MissingCallback
from core.models import CalendarEvent, WatchConfig
from core.ports import CallbackPort

LOGGER = logging.getLogger(__name__)


class FunctionCallback:
    """Adapt a plain sync or async callable to the callback port."""

    def __init__(self, func: Callable[[CalendarEvent, WatchConfig], Any]) -> None:
        self._func = func

    async def invoke(self, event: CalendarEvent, watch: WatchConfig) -> None:
        result = self._func(event, watch)
        if inspect.isawaitable(result):
            await result


class LoggingCallback:
    """Built-in callback that only logs the matched event."""

    async def invoke(self, event: CalendarEvent, watch: WatchConfig) -> None:
        LOGGER.info(
            "Upcoming in %s day(s): %s at %s (watch %s)",
            watch.days_before,
            event.title,
            event.start.isoformat(),
            watch.unique_id,
        )


class CallbackRegistry:
    """Mapping from callback name to a registered callback."""

    def __init__(self) -> None:
        self._callbacks: Dict[str, CallbackPort] = {}

    def register(self, name: str, callback: Any) -> None:
        """Register an object with `invoke` or a plain callable under `name`."""

        if not name:
            raise ValueError("Callback name is required")
        if not hasattr(callback, "invoke"):
            if not callable(callback):
                raise TypeError(f"Callback {name!r} is neither callable nor has invoke()")
            callback = FunctionCallback(callback)
        self._callbacks[name] = callback

    def unregister(self, name: str) -> None:
        self._callbacks.pop(name, None)

    def __contains__(self, name: object) -> bool:
        return name in self._callbacks

    def names(self) -> List[str]:
        return sorted(self._callbacks)

    def resolve(self, name: str) -> CallbackPort:
        try:
            return self._callbacks[name]
        except KeyError:
            raise MissingCallback(name) from None

    async def invoke(self, name: str, event: CalendarEvent, watch: WatchConfig) -> None:
        """Resolve and run a callback.

        Raises MissingCallback when `name` is unknown and CallbackFailure when
        the callback itself raises.
        """

        callback = self.resolve(name)
        try:
            await callback.invoke(event, watch)
        except Exception as exc:
            raise CallbackFailure(name, exc) from exc
