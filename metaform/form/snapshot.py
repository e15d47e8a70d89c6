"""
Aggregated view of a field node: ``{"value", "error", "invalid"}``.

``get`` is a pure function of the current tree, safe to call at any time,
including from inside listeners. ``subscribe`` follows the tree as it
changes shape: array elements that are removed stop reporting and new ones
report from the moment they are added.
"""
from typing import Any, Callable, Dict

from metaform.core import Unsubscribe, subscribe_to_all
from metaform.form.schema import FieldKind

Snapshot = Dict[str, Any]


def get(field) -> Snapshot:
    if field is None:
        raise TypeError("snapshot.get requires a field, got None")
    return _getters[field.kind](field)


def subscribe(field, listener: Callable[[Snapshot], None]) -> Unsubscribe:
    """
    Calls ``listener(snapshot)`` whenever the field or any descendant changes.

    Returns:
        An idempotent unsubscribe function.
    """
    if field is None:
        raise TypeError("snapshot.subscribe requires a field, got None")
    if not callable(listener):
        raise TypeError(f"snapshot.subscribe: expected callable, got {type(listener).__name__}")
    return _subscribers[field.kind](field, listener)


def _get_for_basic(field) -> Snapshot:
    state = field.state.get()
    return {"value": state["value"], "error": state["error"], "invalid": state["invalid"]}


def _get_for_object(field) -> Snapshot:
    state = field.state.get()
    values, errors, children_invalid = {}, {}, False
    for name, child in state["children"].items():
        child_snapshot = get(child)
        values[name] = child_snapshot["value"]
        errors[name] = child_snapshot["error"]
        children_invalid = children_invalid or child_snapshot["invalid"]
    return {
        "value": values,
        "error": {"self": state["error"], "children": errors},
        "invalid": state["invalid"] or children_invalid,
    }


def _get_for_array(field) -> Snapshot:
    state = field.state.get()
    values, errors, children_invalid = [], [], False
    for child in state["children"]:
        child_snapshot = get(child)
        values.append(child_snapshot["value"])
        errors.append(child_snapshot["error"])
        children_invalid = children_invalid or child_snapshot["invalid"]
    return {
        "value": values,
        "error": {"self": state["error"], "children": errors},
        "invalid": state["invalid"] or children_invalid,
    }


def _subscribe_for_basic(field, listener) -> Unsubscribe:
    return field.state.subscribe(lambda new_state, old_state: listener(_get_for_basic(field)))


def _subscribe_for_container(field, listener) -> Unsubscribe:
    def notify(*_):
        listener(get(field))

    return subscribe_to_all(
        field.state,
        children_from_state=lambda state: state["children"],
        notify=notify,
        subscribe_to_child=lambda child, notify_parent: subscribe(child, notify_parent),
    )


_getters = {
    FieldKind.BASIC: _get_for_basic,
    FieldKind.OBJECT: _get_for_object,
    FieldKind.ARRAY: _get_for_array,
}

_subscribers = {
    FieldKind.BASIC: _subscribe_for_basic,
    FieldKind.OBJECT: _subscribe_for_container,
    FieldKind.ARRAY: _subscribe_for_container,
}
