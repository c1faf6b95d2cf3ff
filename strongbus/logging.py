"""Text rendering of a bus and the delegation graph piped below it."""

from typing import TYPE_CHECKING, Any

from strongbus.models import EVERY, PROXY, WILDCARD

if TYPE_CHECKING:
    from strongbus.bus import Bus

_KEY_LABELS = {EVERY: 'every', WILDCARD: "'*'", PROXY: 'proxy'}


def _bus_line(bus: 'Bus[Any]') -> str:
    icon = '🟢' if bus.is_active else '🔴'
    return f'🚌 {bus.label} {icon} {"active" if bus.is_active else "idle"}'


def _build_tree_lines(bus: 'Bus[Any]', indent: str, lines: list[str], visited: set[int]) -> None:
    # the bus's own line is written by the caller
    own_listeners = {key: len(callbacks) for key, callbacks in bus.direct_listeners.items()}
    children: list[tuple[str, 'Bus[Any] | None']] = [
        (f'{_KEY_LABELS.get(key, key)}: {count} listener{"s" if count != 1 else ""}', None)
        for key, count in own_listeners.items()
    ]
    children.extend((f'➡️ {_bus_line(delegate)}', delegate) for delegate in bus.delegates)

    for index, (text, delegate) in enumerate(children):
        is_last = index == len(children) - 1
        lines.append(f'{indent}{"└── " if is_last else "├── "}{text}')
        if delegate is None:
            continue
        child_indent = indent + ('    ' if is_last else '│   ')
        if id(delegate) in visited:
            lines.append(f'{child_indent}└── (already shown)')
            continue
        visited.add(id(delegate))
        _build_tree_lines(delegate, child_indent, lines, visited)


def log_bus_tree(bus: 'Bus[Any]') -> str:
    """Return a tree view of bus, its listener counts per key, and its delegates recursively.

    🚌 Parent#1a2b 🟢 active
    ├── foo: 1 listener
    └── ➡️ 🚌 Child#3c4d 🔴 idle
    """
    lines = [_bus_line(bus)]
    _build_tree_lines(bus, '', lines, {id(bus)})
    return '\n'.join(lines)
