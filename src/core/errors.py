"""Exception hierarchy shared by the core and adapters."""

from __future__ import annotations


class WatchError(Exception):
    """Base exception for eventwatch errors."""


class ValidationError(WatchError):
    """Setup parameters violate the watch contract."""


class IncompleteConfiguration(ValidationError):
    """A stored watch record is missing required fields."""


class ConfigConflict(WatchError):
    """A watch with the same unique id already exists."""


class ResourceUnavailable(WatchError):
    """A calendar, store, scheduler, or cache backend failed."""


class MissingCallback(WatchError):
    """The named callback is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"No callback registered under {name!r}")
        self.name = name


class CallbackFailure(WatchError):
    """A registered callback raised while handling an event."""

    def __init__(self, name: str, cause: BaseException) -> None:
        super().__init__(f"Callback {name!r} failed: {cause}")
        self.name = name
        self.cause = cause
