from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

Listener = Callable[..., Any]


@runtime_checkable
class EmitterProtocol(Protocol):
    """Minimal single-channel notification primitive a Bus is built on."""

    def on(self, key: str, callback: Listener) -> None: ...

    def off(self, key: str, callback: Listener) -> bool: ...

    def emit(self, key: str, *args: Any) -> bool: ...

    def listener_count(self, key: str) -> int: ...

    def listeners(self, key: str) -> list[Listener]: ...

    def event_names(self) -> list[str]: ...

    def total_listener_count(self) -> int: ...

    def remove_all_listeners(self) -> None: ...


class Emitter:
    """Ordered per-key callback lists.

    The same callable may be registered several times under one key; every
    registration is invoked and each ``off()`` removes exactly one of them.
    ``emit()`` iterates over a snapshot, so callbacks may subscribe or
    unsubscribe while an emit is in progress.
    """

    __slots__ = ('_listeners_by_key', '_total')

    def __init__(self) -> None:
        self._listeners_by_key: dict[str, list[Listener]] = {}
        self._total = 0

    def __repr__(self) -> str:
        counts = ', '.join(f'{key}={len(callbacks)}' for key, callbacks in self._listeners_by_key.items())
        return f'{type(self).__name__}({counts})'

    def __len__(self) -> int:
        return self._total

    def on(self, key: str, callback: Listener) -> None:
        self._listeners_by_key.setdefault(key, []).append(callback)
        self._total += 1

    def off(self, key: str, callback: Listener) -> bool:
        callbacks = self._listeners_by_key.get(key)
        if not callbacks:
            return False
        for index, existing in enumerate(callbacks):
            if existing is callback:
                del callbacks[index]
                break
        else:
            return False
        self._total -= 1
        if not callbacks:
            del self._listeners_by_key[key]
        return True

    def emit(self, key: str, *args: Any) -> bool:
        callbacks = self._listeners_by_key.get(key)
        if not callbacks:
            return False
        for callback in tuple(callbacks):
            callback(*args)
        return True

    def listener_count(self, key: str) -> int:
        return len(self._listeners_by_key.get(key, ()))

    def listeners(self, key: str) -> list[Listener]:
        return list(self._listeners_by_key.get(key, ()))

    def event_names(self) -> list[str]:
        return list(self._listeners_by_key)

    def total_listener_count(self) -> int:
        return self._total

    def remove_all_listeners(self) -> None:
        self._listeners_by_key.clear()
        self._total = 0
