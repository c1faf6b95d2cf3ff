#!/usr/bin/env -S uv run python
"""Run: uv run python examples/lazy_upstream.py

Open an (imaginary) upstream connection only while someone is listening.
"""

from typing import Any, TypedDict

from strongbus import Bus


class PriceEvents(TypedDict):
    tick: float


class PriceFeed:
    def __init__(self) -> None:
        self.bus = Bus[PriceEvents](name='PriceFeed')
        self.connected = False
        self.bus.monitor(self._on_activity_change)
        self.bus.hook('didAddListener', lambda key: print(f'  + listener for {key!r}'))
        self.bus.hook('didRemoveListener', lambda key: print(f'  - listener for {key!r}'))

    def _on_activity_change(self, active: bool) -> None:
        self.connected = active
        print('  upstream connected' if active else '  upstream disconnected')

    def publish(self, price: float) -> None:
        if self.connected:
            self.bus.emit('tick', price)


def main() -> None:
    feed = PriceFeed()
    dashboard = Bus[Any](name='Dashboard')
    feed.bus.pipe(dashboard)

    print('subscribing first listener')
    first = feed.bus.on('tick', lambda price: print(f'  first saw {price}'))
    print('subscribing second listener (already connected)')
    second = feed.bus.on('tick', lambda price: print(f'  second saw {price}'))
    dashboard.on('tick', lambda price: print(f'  dashboard saw {price}'))

    feed.publish(101.5)

    print('unsubscribing both feed listeners')
    first()
    second()
    feed.publish(102.0)  # dropped, nobody on the feed itself


if __name__ == '__main__':
    main()
