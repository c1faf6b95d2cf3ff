import inspect
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from uuid_extensions import uuid7str  # pyright: ignore[reportMissingImports, reportUnknownVariableType]

from strongbus.emitter import Listener

uuid7str: Callable[[], str] = uuid7str  # pyright: ignore

SubscriptionKind = Literal['on', 'any', 'every', 'proxy', 'hook', 'monitor']
Remover = Callable[[str, Listener], Any]


class Subscription(BaseModel):
    """One logical subscription, possibly backed by several (key, callback) registrations.

    Calling the subscription removes all of its registrations at once. Repeated
    calls, or calls after the owning bus was destroyed, do nothing.

    >>> unsubscribe = bus.on(['foo', 'bar'], handler)
    >>> unsubscribe()
    """

    model_config = ConfigDict(extra='forbid', arbitrary_types_allowed=True)

    id: str = Field(default_factory=uuid7str)
    kind: SubscriptionKind = 'on'
    keys: tuple[str, ...] = ()
    handler: Callable[..., Any] | None = Field(default=None, exclude=True, repr=False)
    handler_name: str = 'anonymous'
    bus_label: str = 'Bus'
    subscribed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    _registrations: list[tuple[str, Listener]] = PrivateAttr(default_factory=list)
    _remover: Remover | None = PrivateAttr(default=None)
    _on_unsubscribe: Callable[['Subscription'], Any] | None = PrivateAttr(default=None)
    _closed: bool = PrivateAttr(default=False)

    @staticmethod
    def get_callable_handler_name(handler: Callable[..., Any]) -> str:
        if inspect.ismethod(handler):
            return f'{type(handler.__self__).__name__}.{handler.__name__}'
        handler_name = getattr(handler, '__name__', None)
        if isinstance(handler_name, str):
            handler_module = getattr(handler, '__module__', None) or '<unknown>'
            return f'{handler_module}.{handler_name}'
        return type(handler).__name__

    @model_validator(mode='before')
    @classmethod
    def _populate_handler_name(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        handler = data.get('handler')
        if handler is not None and not data.get('handler_name'):
            data = {**data, 'handler_name': cls.get_callable_handler_name(handler)}
        return data

    def bind(
        self,
        registrations: list[tuple[str, Listener]],
        remover: Remover,
        on_unsubscribe: Callable[['Subscription'], Any] | None = None,
    ) -> 'Subscription':
        """Attach the underlying registrations and the callable that removes one of them."""
        self._registrations = list(registrations)
        self._remover = remover
        self._on_unsubscribe = on_unsubscribe
        return self

    @property
    def registrations(self) -> tuple[tuple[str, Listener], ...]:
        return tuple(self._registrations)

    @property
    def closed(self) -> bool:
        return self._closed

    def discard(self, key: str, callback: Listener) -> bool:
        """Forget one registration that was already removed from the bus, e.g. by ``Bus.off()``.

        The subscription closes once it has no registrations left.
        """
        for index, (registered_key, registered_callback) in enumerate(self._registrations):
            if registered_key == key and registered_callback is callback:
                del self._registrations[index]
                break
        else:
            return False
        if not self._registrations:
            self.unsubscribe()
        return True

    def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True
        registrations, self._registrations = self._registrations, []
        remover, self._remover = self._remover, None
        on_unsubscribe, self._on_unsubscribe = self._on_unsubscribe, None
        if remover is not None:
            for key, callback in registrations:
                remover(key, callback)
        if on_unsubscribe is not None:
            on_unsubscribe(self)

    def __call__(self) -> None:
        self.unsubscribe()
