import logging
from itertools import count
from typing import Any, Callable, Dict, Iterable, Optional

from metaform.exceptions import global_error_handler

logger = logging.getLogger(__name__)

Listener = Callable[[Any, Any], None]
Unsubscribe = Callable[[], None]

_global_error_handler = global_error_handler


def set_global_error_handler(handler: Optional[Callable[[Exception, str], None]]):
    """Sets the handler that receives exceptions raised by state listeners.

    Passing None restores the default handler, which logs and re-raises.
    """
    global _global_error_handler
    _global_error_handler = handler or global_error_handler


class State:
    """
    Observable cell holding a single immutable value.

    Listeners are called with (new_state, old_state) whenever an update
    produces a state that is not the same object as the previous one.
    """
    __slots__ = ('_state', '_listeners', '_tokens')

    def __init__(self, initial_state: Any):
        self._state = initial_state
        self._listeners: Dict[int, Listener] = {}
        self._tokens = count()

    def __call__(self) -> Any:
        return self._state

    get = __call__

    def update(self, fn: Callable[[Any], Any]) -> Any:
        if not callable(fn):
            raise TypeError(f"update requires a function to update the state, got {type(fn).__name__}")
        old_state = self._state
        self._state = fn(old_state)
        if self._state is not old_state:
            self._notify(self._state, old_state)
        return self._state

    def subscribe(self, listener: Listener) -> Unsubscribe:
        if not callable(listener):
            raise TypeError(f"subscribe: expected callable, got {type(listener).__name__}")
        token = next(self._tokens)
        self._listeners[token] = listener

        def unsubscribe() -> None:
            self._listeners.pop(token, None)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def _notify(self, new_state, old_state):
        # Listeners added during this round wait for the next update; listeners
        # removed during this round are skipped. A nested update has already
        # delivered the newer state, so the rest of this round is dropped.
        for token, listener in list(self._listeners.items()):
            if self._state is not new_state:
                return
            if token not in self._listeners:
                continue
            try:
                listener(new_state, old_state)
            except Exception as e:
                _global_error_handler(e, f"Error notifying state listener: {listener!r}")


class StateView:
    """Read-only face of a State, handed out to everything but its owner."""
    __slots__ = ('_state',)

    def __init__(self, state: State):
        self._state = state

    def __call__(self) -> Any:
        return self._state.get()

    get = __call__

    def subscribe(self, listener: Listener) -> Unsubscribe:
        return self._state.subscribe(listener)


def create_state(initial_state: Any) -> State:
    return State(initial_state)


def subscribe_to_children(children: Iterable[Any], notify: Callable[..., None],
                          subscribe_to_child: Callable[[Any, Callable[..., None]], Unsubscribe]) -> Unsubscribe:
    """Subscribes to every child and returns one function that undoes all of them.

    A mapping of children is subscribed through its values.
    """
    if isinstance(children, dict):
        children = children.values()
    unsubscribers = [subscribe_to_child(child, notify) for child in children]

    def unsubscribe() -> None:
        while unsubscribers:
            unsubscribers.pop()()

    return unsubscribe


def subscribe_to_all(state, children_from_state: Callable[[Any], Any], notify: Callable[..., None],
                     subscribe_to_child: Callable[[Any, Callable[..., None]], Unsubscribe],
                     only_notify_on_child_change: bool = False) -> Unsubscribe:
    """
    Subscribes to a container state and to each of its current children.

    Whenever the children collection of the state is replaced (compared by
    identity), the child subscriptions are torn down and rebuilt against the
    new collection before ``notify`` is called, so removed children never
    report and added children are covered from the moment they exist.

    Args:
        state: The container's State (or StateView).
        children_from_state: Extracts the children collection from a state value.
        notify: Called with no arguments after every relevant change.
        subscribe_to_child: ``(child, notify) -> unsubscribe``.
        only_notify_on_child_change: Ignore own-state changes that leave the
            children collection untouched.

    Returns:
        An idempotent unsubscribe function.
    """
    subscribed = {"children": children_from_state(state.get()), "active": True}
    unsubscribe_children = [subscribe_to_children(subscribed["children"], notify, subscribe_to_child)]

    def on_state_change(new_state, old_state) -> None:
        if not subscribed["active"]:
            return
        # Read the live state: a nested update may already have moved past new_state.
        current = children_from_state(state.get())
        children_changed = current is not subscribed["children"]
        if children_changed:
            unsubscribe_children[0]()
            subscribed["children"] = current
            unsubscribe_children[0] = subscribe_to_children(current, notify, subscribe_to_child)
        if only_notify_on_child_change and not children_changed:
            return
        notify()

    unsubscribe_state = state.subscribe(on_state_change)

    def unsubscribe() -> None:
        if not subscribed["active"]:
            return
        subscribed["active"] = False
        unsubscribe_children[0]()
        unsubscribe_state()

    return unsubscribe
