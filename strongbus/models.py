import logging
import os
from enum import StrEnum
from typing import Any, Final

from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger('strongbus')

STRONGBUS_LOGGING_LEVEL = os.getenv('STRONGBUS_LOGGING_LEVEL', 'WARNING').upper()  # WARNING normally, otherwise DEBUG when testing

logger.setLevel(STRONGBUS_LOGGING_LEVEL)

# Reserved keys shared by every Bus instance. Producers may never emit on these directly.
WILDCARD: Final = '*'
PROXY: Final = '@@PROXY@@'
EVERY: Final = '@@EVERY@@'
RESERVED_EVENTS: Final = frozenset({WILDCARD, PROXY, EVERY})


class ReservedEventError(ValueError):
    """A producer tried to emit directly on one of the bus's internal broadcast keys."""


class HookKind(StrEnum):
    """Meta events describing a bus's own subscription lifecycle.

    Add/remove hooks carry the affected event key, activity hooks carry nothing.
    ``WILL_ACTIVATE``/``ACTIVE`` fire once per 0 -> 1 transition of direct listeners,
    ``WILL_IDLE``/``IDLE`` once per 1 -> 0 transition.
    """

    WILL_ADD_LISTENER = 'willAddListener'
    DID_ADD_LISTENER = 'didAddListener'
    WILL_REMOVE_LISTENER = 'willRemoveListener'
    DID_REMOVE_LISTENER = 'didRemoveListener'
    WILL_ACTIVATE = 'willActivate'
    ACTIVE = 'active'
    WILL_IDLE = 'willIdle'
    IDLE = 'idle'


LISTENER_HOOKS: Final = frozenset(
    {
        HookKind.WILL_ADD_LISTENER,
        HookKind.DID_ADD_LISTENER,
        HookKind.WILL_REMOVE_LISTENER,
        HookKind.DID_REMOVE_LISTENER,
    }
)


def validate_event_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeError(f'Invalid event key: {key!r}, must be a non-empty string')
    if not key:
        raise ValueError('Invalid event key: empty string')
    return key


class BusOptions(BaseModel):
    """Construction-time configuration of a Bus. Immutable once the bus exists.

    Subclasses of Bus that need extra options subclass this model and point
    ``Bus.options_model`` at it.
    """

    model_config = ConfigDict(extra='forbid', frozen=True, validate_default=True)

    allow_unhandled_events: bool = True
    name: str | None = None
    max_listeners: int | None = None

    @field_validator('name')
    @classmethod
    def _validate_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        assert value.isidentifier(), f'Bus name must be an identifier string, got: {value!r}'
        return value

    @field_validator('max_listeners')
    @classmethod
    def _validate_max_listeners(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError(f'max_listeners must be > 0 or None, got: {value!r}')
        return value
