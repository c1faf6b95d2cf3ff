#!/usr/bin/env -S uv run python
"""Run: uv run python examples/forwarding_between_buses.py"""

from typing import Any

from strongbus import Bus


def main() -> None:
    bus_a = Bus[Any](name='BusA', allow_unhandled_events=False)
    bus_b = Bus[Any](name='BusB')
    bus_c = Bus[Any](name='BusC')

    handle_counts = {'BusA': 0, 'BusB': 0, 'BusC': 0}

    def counter(name: str):
        def on_forwarded(message: str) -> None:
            handle_counts[name] += 1
            print(f'[{name}] handled {message!r} (count={handle_counts[name]})')

        return on_forwarded

    bus_a.on('forwarded', counter('BusA'))
    bus_b.on('forwarded', counter('BusB'))
    bus_c.on('forwarded', counter('BusC'))

    # Chain forwarding: A -> B -> C
    bus_a.pipe(bus_b).pipe(bus_c)

    print('Emitting on BusA with chain A -> B -> C')
    bus_a.emit('forwarded', 'hello across 3 buses')

    print('\nEmitting on BusB only reaches BusC downstream')
    bus_b.emit('forwarded', 'hello from the middle')

    print('\nUnpiping BusB from BusA breaks the chain for BusA only')
    bus_a.unpipe(bus_b)
    bus_a.emit('forwarded', 'only BusA sees this')
    bus_b.emit('forwarded', 'BusB still forwards to BusC')

    print('\nFinal propagation summary:')
    print(f'- handle counts: {handle_counts}')
    print(bus_a.log_tree())
    print(bus_b.log_tree())


if __name__ == '__main__':
    main()
