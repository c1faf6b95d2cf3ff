import logging
import warnings
from collections.abc import Callable, Iterable, Mapping
from functools import partial
from typing import Any, ClassVar, Generic, Literal, overload

from pydantic import BaseModel
from typing_extensions import TypeVar  # needed to get TypeVar(default=...) above python 3.11
from uuid_extensions import uuid7str  # pyright: ignore[reportMissingImports, reportUnknownVariableType]

uuid7str: Callable[[], str] = uuid7str  # pyright: ignore

from strongbus.emitter import Emitter, EmitterProtocol, Listener
from strongbus.models import (
    EVERY,
    LISTENER_HOOKS,
    PROXY,
    RESERVED_EVENTS,
    STRONGBUS_LOGGING_LEVEL,
    WILDCARD,
    BusOptions,
    HookKind,
    ReservedEventError,
    validate_event_key,
)
from strongbus.subscription import Subscription, SubscriptionKind

logger = logging.getLogger('strongbus')
logger.setLevel(STRONGBUS_LOGGING_LEVEL)

# Maps event keys to payload types, e.g. a TypedDict({'foo': str, 'bar': bool}).
T_EventMap = TypeVar('T_EventMap', default=Mapping[str, Any])

HookForwarders = list[tuple[HookKind, Listener]]
T_Bus = TypeVar('T_Bus', bound='Bus[Any]')


class Bus(Generic[T_EventMap]):
    """
    Synchronous typed publish/subscribe bus.

    Features:
    - Subscribe per key, to a list of keys, to every event, or proxy (key, payload) pairs
    - Pipe buses into each other: events emitted on a parent are forwarded to its delegates
    - Lifecycle hooks (listener added/removed, active/idle) so owners can lazily acquire upstream resources
    """

    options_model: ClassVar[type[BusOptions]] = BusOptions
    emitter_class: ClassVar[Callable[[], EmitterProtocol]] = Emitter

    # Runtime State
    id: str
    name: str
    options: BusOptions
    _inner: EmitterProtocol
    _hooks: EmitterProtocol
    _is_active: bool
    _delegates: dict['Bus[Any]', HookForwarders]
    _bubbled_activations: set['Bus[Any]']
    _subscriptions: dict[str, Subscription]
    _hook_subscriptions: dict[str, Subscription]
    _warned_about_max_listeners: set[str]

    def __init__(self, options: BusOptions | Mapping[str, Any] | None = None, **overrides: Any):
        if isinstance(options, BaseModel):
            option_values: dict[str, Any] = options.model_dump(exclude_unset=True)
        else:
            option_values = dict(options or {})
        self.options = self.options_model.model_validate({**option_values, **overrides})

        self.id = uuid7str()
        self.name = self.options.name or f'{self.__class__.__name__}_{self.id[-8:]}'
        self._inner = self.emitter_class()
        self._hooks = self.emitter_class()
        self._is_active = False
        self._delegates = {}
        self._bubbled_activations = set()
        self._subscriptions = {}
        self._hook_subscriptions = {}
        self._warned_about_max_listeners = set()

    def __str__(self) -> str:
        icon = '🟢' if self._is_active else '🔴'
        return (
            f'{self.label}{icon}(listeners={self._inner.total_listener_count()} '
            f'delegates={len(self._delegates)} hooks={self._hooks.total_listener_count()})'
        )

    def __repr__(self) -> str:
        return str(self)

    @property
    def label(self) -> str:
        return f'{self.name}#{self.id[-4:]}'

    @property
    def allow_unhandled_events(self) -> bool:
        return self.options.allow_unhandled_events

    @property
    def is_active(self) -> bool:
        """True while this bus has at least one direct listener. Delegates do not count."""
        return self._is_active

    @property
    def delegates(self) -> tuple['Bus[Any]', ...]:
        return tuple(self._delegates)

    # Subscriptions

    @overload
    def on(self, event: Literal['*'], handler: Callable[[], Any]) -> Subscription: ...

    @overload
    def on(self, event: str, handler: Callable[[Any], Any]) -> Subscription: ...

    @overload
    def on(self, event: Iterable[str], handler: Callable[[str, Any], Any]) -> Subscription: ...

    def on(self, event: str | Iterable[str], handler: Callable[..., Any]) -> Subscription:
        """
        Subscribe to a single event key, to '*', or to a list of keys. Returns an unsubscribe callable.

        Examples:
                bus.on('foo', handler)  # handler(payload)
                bus.on('*', handler)  # handler() on every event
                bus.on(['foo', 'bar'], handler)  # handler(key, payload)
        """
        if isinstance(event, str):
            key = validate_event_key(event)
            self._validate_handler(handler)
            return self._subscribe('on', [(key, handler)], handler)
        return self._subscribe('any', self._keyed_registrations(event, handler), handler)

    def any(self, events: Iterable[str], handler: Callable[[str, Any], Any]) -> Subscription:
        """Subscribe one handler to several keys; it receives (key, payload)."""
        return self._subscribe('any', self._keyed_registrations(events, handler), handler)

    def every(self, handler: Callable[[], Any]) -> Subscription:
        """Subscribe to all current and future keys; the handler receives no arguments."""
        self._validate_handler(handler)
        return self._subscribe('every', [(EVERY, handler)], handler)

    def proxy(self, handler: Callable[[str, Any], Any]) -> Subscription:
        """Receive (key, payload) for every emitted event, e.g. to re-broadcast it elsewhere."""
        self._validate_handler(handler)
        return self._subscribe('proxy', [(PROXY, handler)], handler)

    def off(self, event: str, handler: Listener) -> bool:
        """Remove one direct registration of handler for event. Returns False if there was none.

        The subscription that owned the registration forgets it, so calling that
        subscription later cannot remove a newer registration of the same handler.
        """
        key = validate_event_key(event)
        if not self._remove_listener(key, handler):
            return False
        for subscription in list(self._subscriptions.values()):
            if subscription.discard(key, handler):
                break
        return True

    def hook(self, hook: HookKind | str, handler: Callable[..., Any]) -> Subscription:
        """Subscribe to one of the bus's lifecycle meta events, see HookKind."""
        try:
            kind = HookKind(hook)
        except ValueError as exc:
            raise ValueError(f'Invalid hook: {hook!r}, must be one of {[k.value for k in HookKind]}') from exc
        self._validate_handler(handler)
        return self._subscribe_hooks('hook', [(kind, handler)], handler)

    def monitor(self, handler: Callable[[bool], Any]) -> Subscription:
        """Invoke handler(True) when the bus becomes active and handler(False) when it goes idle."""
        self._validate_handler(handler)
        registrations: list[tuple[str, Listener]] = [
            (HookKind.ACTIVE, partial(handler, True)),
            (HookKind.IDLE, partial(handler, False)),
        ]
        return self._subscribe_hooks('monitor', registrations, handler)

    # Emitting

    def emit(self, event: str, payload: Any = None) -> bool:
        """
        Synchronously deliver payload to every listener of event, then forward it to each delegate.

        Delivery order: direct listeners(payload), every listeners(), '*' listeners(), proxies(key, payload),
        then delegates in pipe order. Returns whether anything in this bus or its delegate subtree handled it.
        """
        key = validate_event_key(event)
        if key in RESERVED_EVENTS:
            raise ReservedEventError(f'{self}.emit({key!r}) is not allowed, {key!r} is a reserved event key')

        handled = self._inner.emit(key, payload)
        handled = self._inner.emit(EVERY) or handled
        handled = self._inner.emit(WILDCARD) or handled
        self._inner.emit(PROXY, key, payload)

        for delegate in tuple(self._delegates):
            if delegate not in self._delegates:
                continue  # unpiped by an earlier listener during this emit
            if delegate.has_handler(key):
                handled = True
            delegate.emit(key, payload)

        if logger.isEnabledFor(logging.DEBUG):
            logger.debug('🗣️ %s.emit(%s) handled=%s', self, key, handled)

        if not handled and not self.allow_unhandled_events:
            self.handle_unexpected_event(key, payload)
        return handled

    def has_handler(self, event: str) -> bool:
        """Whether a listener on this bus or anywhere in its delegate subtree would respond to event.

        Subclasses may override this to change what they report to parent buses.
        """
        if self._inner.listener_count(event) or self._inner.listener_count(EVERY) or self._inner.listener_count(WILDCARD):
            return True
        return any(delegate.has_handler(event) for delegate in self._delegates)

    def handle_unexpected_event(self, event: str, payload: Any) -> None:
        """Called for unhandled events when allow_unhandled_events=False. Override to escalate."""
        logger.warning('⚠️ %s.emit(%s) was not handled by any listener: %r', self, event, payload)

    # Delegation

    def pipe(self, bus: T_Bus) -> T_Bus:
        """
        Forward every event emitted on this bus to bus as well, and bubble bus's hooks up to this one.

        Returns the delegate, so a.pipe(b).pipe(c) builds the chain a -> b -> c.
        """
        if not isinstance(bus, Bus):
            raise TypeError(f'Invalid delegate: {bus!r}, must be a Bus instance')
        if bus in self._delegates:
            return bus
        if bus is self or bus._reaches(self):
            raise ValueError(f'{self}.pipe({bus}) would create a delegation cycle')

        forwarders: HookForwarders = [(kind, partial(self._bubble_hook, bus, kind)) for kind in HookKind]
        for kind, forwarder in forwarders:
            bus._hooks.on(kind, forwarder)
        self._delegates[bus] = forwarders
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug('➡️ %s.pipe(%s)', self, bus)
        return bus

    def unpipe(self, bus: 'Bus[Any]') -> 'Bus[T_EventMap]':
        """Stop forwarding to bus. The delegate's own delegates are left untouched."""
        forwarders = self._delegates.pop(bus, None)
        if forwarders is None:
            return self
        self._detach_forwarders(bus, forwarders)
        self._bubbled_activations.discard(bus)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug('✂️ %s.unpipe(%s)', self, bus)
        return self

    def _reaches(self, target: 'Bus[Any]') -> bool:
        pending: list[Bus[Any]] = list(self._delegates)
        visited: set[int] = set()
        while pending:
            bus = pending.pop()
            if bus is target:
                return True
            if id(bus) in visited:
                continue
            visited.add(id(bus))
            pending.extend(bus._delegates)
        return False

    @staticmethod
    def _detach_forwarders(bus: 'Bus[Any]', forwarders: HookForwarders) -> None:
        for kind, forwarder in forwarders:
            bus._hooks.off(kind, forwarder)

    # Introspection

    @property
    def has_listeners(self) -> bool:
        """True if this bus or any of its delegates has at least one listener."""
        if self._inner.total_listener_count():
            return True
        return any(delegate.has_listeners for delegate in self._delegates)

    @property
    def direct_listeners(self) -> dict[str, list[Listener]]:
        return {key: self._inner.listeners(key) for key in self._inner.event_names()}

    @property
    def listeners(self) -> dict[str, list[Listener]]:
        """Registered callbacks per key: this bus's own first, then each delegate's in pipe order."""
        merged = self.direct_listeners
        for delegate in self._delegates:
            for key, callbacks in delegate.listeners.items():
                merged.setdefault(key, []).extend(callbacks)
        return {key: callbacks for key, callbacks in merged.items() if callbacks}

    def listener_count(self, event: str) -> int:
        """Number of registrations for event on this bus and its delegates."""
        return self._inner.listener_count(event) + sum(delegate.listener_count(event) for delegate in self._delegates)

    def log_tree(self) -> str:
        """Render the delegation graph below this bus with per-key listener counts."""
        from strongbus.logging import log_bus_tree

        return log_bus_tree(self)

    # Teardown

    def destroy(self) -> None:
        """Remove every listener, hook and delegate. The bus can still be used afterwards."""
        for subscription in list(self._subscriptions.values()):
            subscription.unsubscribe()
        for subscription in list(self._hook_subscriptions.values()):
            subscription.unsubscribe()
        for bus, forwarders in list(self._delegates.items()):
            self._detach_forwarders(bus, forwarders)
        self._delegates.clear()
        self._bubbled_activations.clear()
        self._warned_about_max_listeners.clear()
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug('🧹 %s.destroy() removed all listeners, hooks and delegates', self)

    # Internals

    @staticmethod
    def _validate_handler(handler: Any) -> None:
        if not callable(handler):
            raise TypeError(f'Invalid handler: {handler!r}, must be callable')

    @staticmethod
    def _normalize_event_keys(events: Any) -> list[str]:
        if isinstance(events, str) or not isinstance(events, Iterable):
            raise TypeError(f'Invalid event list: {events!r}, must be a list of event keys')
        keys = [validate_event_key(event) for event in events]  # pyright: ignore[reportUnknownVariableType]
        if not keys:
            raise ValueError('Invalid event list: at least one event key is required')
        reserved = [key for key in keys if key in RESERVED_EVENTS]
        if reserved:
            raise ValueError(f'Invalid event list: reserved keys {reserved} cannot be subscribed to as part of a list')
        return list(dict.fromkeys(keys))

    def _keyed_registrations(self, events: Any, handler: Callable[..., Any]) -> list[tuple[str, Listener]]:
        keys = self._normalize_event_keys(events)
        self._validate_handler(handler)
        return [(key, partial(handler, key)) for key in keys]

    def _subscribe(
        self, kind: SubscriptionKind, registrations: list[tuple[str, Listener]], handler: Callable[..., Any]
    ) -> Subscription:
        subscription = Subscription(
            kind=kind,
            keys=tuple(str(key) for key, _ in registrations),
            handler=handler,
            bus_label=self.label,
        )
        registered: list[tuple[str, Listener]] = []
        try:
            for key, callback in registrations:
                self._add_listener(key, callback, registered)
        except Exception:
            # a failing hook or a warning turned into an error must not leave listeners without a handle
            for key, callback in reversed(registered):
                self._remove_listener(key, callback)
            raise
        subscription.bind(registered, self._remove_listener, on_unsubscribe=self._forget_subscription)
        self._subscriptions[subscription.id] = subscription
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                '👂 %s.%s(%s, %s) Registered listener #%s',
                self,
                kind,
                ', '.join(subscription.keys),
                subscription.handler_name,
                subscription.id[-4:],
            )
        return subscription

    def _subscribe_hooks(
        self, kind: SubscriptionKind, registrations: list[tuple[str, Listener]], handler: Callable[..., Any]
    ) -> Subscription:
        subscription = Subscription(
            kind=kind,
            keys=tuple(str(key) for key, _ in registrations),
            handler=handler,
            bus_label=self.label,
        )
        for key, callback in registrations:
            self._hooks.on(key, callback)
        subscription.bind(registrations, self._hooks.off, on_unsubscribe=self._forget_subscription)
        self._hook_subscriptions[subscription.id] = subscription
        return subscription

    def _forget_subscription(self, subscription: Subscription) -> None:
        self._subscriptions.pop(subscription.id, None)
        self._hook_subscriptions.pop(subscription.id, None)

    def _add_listener(self, key: str, callback: Listener, registered: list[tuple[str, Listener]]) -> None:
        self._raise_hook(HookKind.WILL_ADD_LISTENER, key)
        self._inner.on(key, callback)
        registered.append((key, callback))
        self._raise_hook(HookKind.DID_ADD_LISTENER, key)
        self._check_max_listeners(key)
        self._update_activity()

    def _remove_listener(self, key: str, callback: Listener) -> bool:
        if not any(existing is callback for existing in self._inner.listeners(key)):
            return False
        self._raise_hook(HookKind.WILL_REMOVE_LISTENER, key)
        self._inner.off(key, callback)
        self._raise_hook(HookKind.DID_REMOVE_LISTENER, key)
        self._update_activity()
        return True

    def _update_activity(self) -> None:
        has_direct_listeners = self._inner.total_listener_count() > 0
        if has_direct_listeners and not self._is_active:
            # flip first so hooks that add or remove listeners cannot re-enter the transition
            self._is_active = True
            self._raise_hook(HookKind.WILL_ACTIVATE)
            self._raise_hook(HookKind.ACTIVE)
        elif not has_direct_listeners and self._is_active:
            self._is_active = False
            self._raise_hook(HookKind.WILL_IDLE)
            self._raise_hook(HookKind.IDLE)

    def _raise_hook(self, kind: HookKind, *args: Any) -> None:
        self._hooks.emit(kind, *args)

    def _bubble_hook(self, delegate: 'Bus[Any]', kind: HookKind, *args: Any) -> None:
        if kind in LISTENER_HOOKS:
            self._raise_hook(kind, *args)
            return
        # a parent with its own listeners keeps its own activity signal, and a delegate's
        # idle is only re-raised if its activation was re-raised here first
        if kind is HookKind.WILL_ACTIVATE:
            if self._is_active:
                return
            self._bubbled_activations.add(delegate)
        elif delegate not in self._bubbled_activations:
            return
        elif kind is HookKind.IDLE:
            self._bubbled_activations.discard(delegate)
        self._raise_hook(kind, *args)

    def _check_max_listeners(self, key: str) -> None:
        limit = self.options.max_listeners
        if limit is None or key in self._warned_about_max_listeners:
            return
        count = self._inner.listener_count(key)
        if count > limit:
            self._warned_about_max_listeners.add(key)
            warnings.warn(
                f'⚠️ {self} has {count} listeners registered for {key!r} (max_listeners={limit}). '
                f'This may indicate a subscription leak, unsubscribe listeners you no longer need '
                f'or raise max_listeners.',
                UserWarning,
                stacklevel=5,
            )
