import logging
from itertools import count
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, Mapping, NamedTuple, Optional, Tuple

from metaform.core import StateView, Unsubscribe, create_state
from metaform.form import snapshot
from metaform.form.schema import CanonicalField, FieldKind, normalize
from metaform.form.validator import ValidationContext, always_valid

logger = logging.getLogger(__name__)


def derive_field_state(state: Dict[str, Any]) -> Dict[str, Any]:
    """Fills in state defaults and recomputes ``invalid`` and ``show_error``."""
    error = state.get("error") or None
    is_submitted = bool(state.get("is_submitted", False))
    is_visited = bool(state.get("is_visited", False))
    has_focus = bool(state.get("has_focus", False))
    invalid = error is not None
    return {
        **state,
        "error": error,
        "is_submitted": is_submitted,
        "is_visited": is_visited,
        "has_focus": has_focus,
        "invalid": invalid,
        "show_error": invalid and not has_focus and (is_visited or is_submitted),
    }


def _same(a: Any, b: Any) -> bool:
    # 1 == True in Python, but switching between them is still a change
    return a is b or (type(a) is type(b) and a == b)


def _same_value(a: Any, b: Any) -> bool:
    """``_same`` applied through the dicts and lists of aggregated values."""
    if isinstance(a, dict) and isinstance(b, dict):
        return a.keys() == b.keys() and all(_same_value(a[key], b[key]) for key in a)
    if isinstance(a, list) and isinstance(b, list):
        return len(a) == len(b) and all(_same_value(x, y) for x, y in zip(a, b))
    return _same(a, b)


def update_state(state: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
    """
    Returns ``state`` itself when ``update`` changes nothing, otherwise a new
    derived state. Returning the same object keeps the State silent.
    """
    if all(key in state and _same(state[key], value) for key, value in update.items()):
        return state
    return derive_field_state({**state, **update})


def _value_from_event(value_or_event: Any) -> Any:
    target = getattr(value_or_event, "target", None)
    if target is None:
        return value_or_event
    if getattr(target, "type", None) == "checkbox":
        return target.checked
    return target.value


class ValueView:
    """
    The aggregated value of a field as a readable, subscribable stream.

    Subscribers are only called when the value actually changes, not on
    focus, visit, submit or error changes.
    """
    __slots__ = ('_field',)

    def __init__(self, field: 'FormField'):
        self._field = field

    def __call__(self) -> Any:
        return snapshot.get(self._field)["value"]

    get = __call__

    def subscribe(self, listener: Callable[[Any], None]) -> Unsubscribe:
        last = [self.get()]

        def on_snapshot(field_snapshot):
            value = field_snapshot["value"]
            if _same_value(value, last[0]):
                return
            last[0] = value
            listener(value)

        return snapshot.subscribe(self._field, on_snapshot)


class FormField:
    """
    Base class of the three field node variants.

    Each node owns a State with its local state; only the node itself
    updates it. Everyone else gets the read-only ``state`` view.
    """
    kind: FieldKind

    def __init__(self, name: str, field: CanonicalField):
        self.name = name
        self._field = field
        self._state = None

    @property
    def state(self) -> StateView:
        return StateView(self._state)

    @property
    def value(self) -> ValueView:
        return ValueView(self)

    def snapshot(self) -> Dict[str, Any]:
        return snapshot.get(self)

    def validate(self, context: Optional[ValidationContext] = None) -> None:
        raise NotImplementedError

    def set_submitted(self, is_submitted: bool = True) -> None:
        raise NotImplementedError

    def reset(self) -> None:
        raise NotImplementedError

    def _set_error(self, error) -> None:
        self._state.update(lambda state: update_state(state, {"error": error}))

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class BasicField(FormField):
    """A leaf field holding a single user value."""
    kind = FieldKind.BASIC

    def __init__(self, name: str, initial_value: Any, field: CanonicalField,
                 context: Optional[ValidationContext] = None):
        super().__init__(name, field)
        context = context or ValidationContext()
        self._initial_state = derive_field_state({
            "value": initial_value,
            "error": field.validate(initial_value, context),
        })
        self._state = create_state(self._initial_state)

    @property
    def event_handlers(self) -> Dict[str, Callable]:
        return {
            "on_focus": self.on_focus,
            "on_blur": self.on_blur,
            "on_change": self.on_change,
        }

    def on_focus(self, event: Any = None) -> None:
        self._state.update(lambda state: update_state(state, {"has_focus": True, "is_visited": True}))

    def on_blur(self, event: Any = None) -> None:
        self._state.update(lambda state: update_state(state, {"has_focus": False}))

    def on_change(self, value_or_event: Any) -> None:
        """
        Stores a new value. Accepts the raw value or an event-like object
        exposing ``target.value`` (or ``target.checked`` for checkboxes).

        The error is not recomputed here; the form revalidates the whole
        tree whenever a value changes.
        """
        value = _value_from_event(value_or_event)
        self._state.update(lambda state: update_state(state, {"value": value}))

    def validate(self, context: Optional[ValidationContext] = None) -> None:
        context = context or ValidationContext()
        self._set_error(self._field.validate(self._state.get()["value"], context))

    def set_submitted(self, is_submitted: bool = True) -> None:
        self._state.update(lambda state: update_state(state, {"is_submitted": is_submitted}))

    def reset(self) -> None:
        self._state.update(lambda state: self._initial_state)


class ObjectField(FormField):
    """A field with a fixed set of named children."""
    kind = FieldKind.OBJECT

    def __init__(self, name: str, initial_value: Optional[Mapping[str, Any]], field: CanonicalField,
                 context: Optional[ValidationContext] = None):
        super().__init__(name, field)
        initial_value = {} if initial_value is None else initial_value
        context = context or ValidationContext(form=initial_value)
        children = self._create_children(initial_value, field.fields or {}, context.extend(initial_value))
        value = {child_name: snapshot.get(child)["value"] for child_name, child in children.items()}
        self._initial_state = derive_field_state({
            "children": children,
            "error": field.validate(value, context),
        })
        self._state = create_state(self._initial_state)

    def _create_children(self, initial_value, declarations, context) -> Dict[str, FormField]:
        prefix = f"{self.name}." if self.name else ""
        return {
            child_name: create_field(f"{prefix}{child_name}", initial_value.get(child_name), declaration, context)
            for child_name, declaration in declarations.items()
        }

    @property
    def fields(self) -> Mapping[str, FormField]:
        return MappingProxyType(self._state.get()["children"])

    def __getitem__(self, name: str) -> FormField:
        return self._state.get()["children"][name]

    def validate(self, context: Optional[ValidationContext] = None) -> None:
        """Validates this node against its current value, then every child."""
        value = self.value.get()
        context = context or ValidationContext(form=value)
        self._set_error(self._field.validate(value, context))
        child_context = context.extend(value)
        for child in self._state.get()["children"].values():
            child.validate(child_context)

    def set_submitted(self, is_submitted: bool = True) -> None:
        state = self._state.update(lambda state: update_state(state, {"is_submitted": is_submitted}))
        for child in state["children"].values():
            child.set_submitted(is_submitted)

    def reset(self) -> None:
        state = self._state.update(lambda state: self._initial_state)
        for child in state["children"].values():
            child.reset()


class ArrayHelpers(NamedTuple):
    add: Callable[..., 'ObjectField']
    remove: Callable[['ObjectField'], None]


class ArrayField(FormField):
    """
    An ordered, resizable list of object fields built from one template.

    Elements are named ``<name>[<n>]`` with ``n`` taken from a counter that
    only moves forward, so a removed element's name is never handed out
    again until ``reset`` rebuilds the list.
    """
    kind = FieldKind.ARRAY

    def __init__(self, name: str, initial_value: Optional[list], field: CanonicalField,
                 context: Optional[ValidationContext] = None):
        super().__init__(name, field)
        self._initial_value = list(initial_value or [])
        self._context = context or ValidationContext(form=self._initial_value)
        self._element = CanonicalField(FieldKind.OBJECT, always_valid, field.fields or {})
        self._indices = count()
        self._state = create_state(self._build_state())
        self.helpers = ArrayHelpers(add=self.add, remove=self.remove)

    def _create_element(self, initial_value: Any, context: ValidationContext) -> ObjectField:
        return ObjectField(f"{self.name}[{next(self._indices)}]", initial_value, self._element, context)

    def _build_state(self) -> Dict[str, Any]:
        self._indices = count()
        element_context = self._context.extend(self._initial_value)
        children = tuple(self._create_element(value, element_context) for value in self._initial_value)
        value = [snapshot.get(child)["value"] for child in children]
        return derive_field_state({
            "children": children,
            "error": self._field.validate(value, self._context),
        })

    @property
    def fields(self) -> Tuple[ObjectField, ...]:
        return self._state.get()["children"]

    def __getitem__(self, index: int) -> ObjectField:
        return self._state.get()["children"][index]

    def __len__(self) -> int:
        return len(self._state.get()["children"])

    def add(self, initial_value: Optional[Mapping[str, Any]] = None) -> ObjectField:
        """Appends a new element built from the template and returns it."""
        element = self._create_element(initial_value, self._context.extend(self.value.get()))
        self._state.update(lambda state: update_state(state, {"children": state["children"] + (element,)}))
        logger.debug("Added %s", element.name)
        return element

    def remove(self, element: ObjectField) -> None:
        """Removes ``element`` (by identity); other elements keep their nodes."""
        def without(state):
            children = tuple(child for child in state["children"] if child is not element)
            if len(children) == len(state["children"]):
                return state
            return update_state(state, {"children": children})

        self._state.update(without)
        logger.debug("Removed %s from %s", getattr(element, "name", element), self.name)

    def validate(self, context: Optional[ValidationContext] = None) -> None:
        value = self.value.get()
        context = context or ValidationContext(form=value)
        self._set_error(self._field.validate(value, context))
        child_context = context.extend(value)
        for child in self._state.get()["children"]:
            child.validate(child_context)

    def set_submitted(self, is_submitted: bool = True) -> None:
        state = self._state.update(lambda state: update_state(state, {"is_submitted": is_submitted}))
        for child in state["children"]:
            child.set_submitted(is_submitted)

    def reset(self) -> None:
        """Rebuilds the elements from the original initial value."""
        self._state.update(lambda state: self._build_state())
        logger.debug("Reset %s to %d element(s)", self.name, len(self._initial_value))


_constructors = {
    FieldKind.BASIC: BasicField,
    FieldKind.OBJECT: ObjectField,
    FieldKind.ARRAY: ArrayField,
}


def create_field(name: str, initial_value: Any, declaration: Any,
                 context: Optional[ValidationContext] = None) -> FormField:
    """
    Normalizes ``declaration`` and builds the matching field node, children
    first.
    """
    field = normalize(declaration)
    return _constructors[field.kind](name, initial_value, field, context)


def walk(field: FormField) -> Iterator[FormField]:
    """Yields ``field`` and all of its current descendants, depth first."""
    yield field
    if field.kind is FieldKind.OBJECT:
        children = field.state.get()["children"].values()
    elif field.kind is FieldKind.ARRAY:
        children = field.state.get()["children"]
    else:
        children = ()
    for child in children:
        yield from walk(child)
