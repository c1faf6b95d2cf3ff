"""Typed, composable synchronous event bus."""

from .bus import Bus
from .emitter import Emitter, EmitterProtocol
from .models import (
    EVERY,
    PROXY,
    RESERVED_EVENTS,
    WILDCARD,
    BusOptions,
    HookKind,
    ReservedEventError,
)
from .subscription import Subscription

__all__ = [
    'Bus',
    'BusOptions',
    'Emitter',
    'EmitterProtocol',
    'HookKind',
    'ReservedEventError',
    'Subscription',
    'EVERY',
    'PROXY',
    'RESERVED_EVENTS',
    'WILDCARD',
]
