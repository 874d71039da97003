"""
Listener lists and engine event binding.

Classes:
    ListenerList: Minimal publish/subscribe list with removal tokens
    VisibleChangeSource: Base for objects that announce becoming visible

Functions:
    normalize_event_name: Map snake_case or camelCase names to engine names
    wrap_events: Bind a handler dict to a physical layer
"""

import re
from typing import Callable, Dict

from core.exceptions import UsageError
from utils.logger import get_logger

logger = get_logger(__name__)

ENGINE_EVENTS = ('load', 'error', 'update-start', 'update-end', 'mouse-over', 'mouse-out')


class ListenerList:
    """
    Ordered list of callbacks.

    add() returns a token that must be handed back to remove(). Firing
    iterates over a copy, so listeners may add or remove listeners while
    being called.
    """

    def __init__(self):
        self._listeners = []

    def add(self, callback: Callable) -> Callable:
        self._listeners.append(callback)
        return callback

    def remove(self, token: Callable) -> None:
        try:
            self._listeners.remove(token)
        except ValueError:
            raise UsageError('Attempting to remove a listener which is not registered.') from None

    def fire(self, *args) -> None:
        for listener in list(self._listeners):
            listener(*args)

    def __len__(self) -> int:
        return len(self._listeners)

    def __bool__(self) -> bool:
        return bool(self._listeners)


def normalize_event_name(name: str) -> str:
    """
    Convert an event name to its dashed engine form.

    Example:
        >>> normalize_event_name('updateEnd')
        'update-end'
        >>> normalize_event_name('mouse_over')
        'mouse-over'
    """
    dashed = re.sub(r'(?<=[a-z])([A-Z])', r'-\1', name).replace('_', '-')
    return dashed.lower()


def wrap_events(layer, handlers: Dict[str, Callable]) -> None:
    """
    Bind event handlers to a physical layer.

    Parameters:
    -----------
    layer : object
        Physical layer exposing on(event_name, handler)
    handlers : Dict[str, Callable]
        Handlers keyed by event name in any of the accepted spellings

    Raises:
    -------
    ValueError
        If a handler key does not name one of the six engine events
    """
    for name, handler in handlers.items():
        engine_name = normalize_event_name(name)
        if engine_name not in ENGINE_EVENTS:
            raise ValueError(f"Unknown layer event: {name}")
        layer.on(engine_name, handler)
    logger.debug(f"Bound {len(handlers)} events on layer {getattr(layer, 'id', '?')}")


class VisibleChangeSource:
    """
    Holder of visible-change listeners.

    Listeners are only told when something becomes visible; nothing fires
    when it is hidden.
    """

    def __init__(self):
        self._visible_listeners = ListenerList()

    def add_visible_listener(self, callback: Callable) -> Callable:
        return self._visible_listeners.add(callback)

    def remove_visible_listener(self, token: Callable) -> None:
        self._visible_listeners.remove(token)

    def visible_changed(self, new_value: bool) -> None:
        if new_value:
            self._visible_listeners.fire()
