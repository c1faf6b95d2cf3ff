#!/usr/bin/env -S uv run python
"""Run: uv run python examples/simple.py"""

from typing import TypedDict

from strongbus import Bus


class ChatEvents(TypedDict):
    message: str
    typing: bool
    joined: int


def main() -> None:
    bus = Bus[ChatEvents](name='ChatBus', allow_unhandled_events=False)

    unsub_message = bus.on('message', lambda text: print(f'[message] {text}'))
    bus.on(['typing', 'joined'], lambda key, payload: print(f'[{key}] {payload!r}'))
    bus.every(lambda: print('[every] something happened'))
    bus.proxy(lambda key, payload: print(f'[proxy] {key} -> {payload!r}'))

    bus.emit('message', 'hello')
    bus.emit('typing', True)
    bus.emit('joined', 42)

    unsub_message()
    print(f'\nlisteners after unsubscribing message: {sorted(bus.listeners)}')
    print(bus.log_tree())

    bus.destroy()
    # logs a warning: no listener is left
    bus.emit('message', 'anyone there?')


if __name__ == '__main__':
    main()
