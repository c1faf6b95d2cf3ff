import importlib
import os
from collections.abc import Callable
from typing import Any
from unittest.mock import Mock

import pytest

from strongbus import Bus, BusOptions


@pytest.fixture(autouse=True)
def set_log_level():
    os.environ['STRONGBUS_LOGGING_LEVEL'] = 'WARNING'
    importlib.import_module('strongbus')


class DelegateTestOptions(BusOptions):
    emulate_listener_count: bool = False


class DelegateTestBus(Bus[Any]):
    """Delegate whose reported listener presence is fixed by the emulate_listener_count option."""

    options_model = DelegateTestOptions

    def has_handler(self, event: str) -> bool:
        return bool(getattr(self.options, 'emulate_listener_count', False))


@pytest.fixture
def make_delegate_bus() -> Callable[..., DelegateTestBus]:
    def factory(**options: Any) -> DelegateTestBus:
        return DelegateTestBus(**options)

    return factory


def spy_unexpected(bus: Bus[Any]) -> Mock:
    """Replace bus.handle_unexpected_event with a Mock and return it."""
    spy = Mock(name=f'{bus.name}.handle_unexpected_event')
    bus.handle_unexpected_event = spy  # type: ignore[method-assign]
    return spy


def spy_emit(bus: Bus[Any], call_through: bool = True) -> Mock:
    """Replace bus.emit with a Mock, optionally still delivering to the real emit."""
    if call_through:
        spy = Mock(name=f'{bus.name}.emit', wraps=bus.emit)
    else:
        spy = Mock(name=f'{bus.name}.emit', return_value=False)
    bus.emit = spy  # type: ignore[method-assign]
    return spy


@pytest.fixture
def unexpected_spy() -> Callable[[Bus[Any]], Mock]:
    return spy_unexpected


@pytest.fixture
def emit_spy() -> Callable[..., Mock]:
    return spy_emit
