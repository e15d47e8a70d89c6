import logging
import uuid
from copy import deepcopy
from typing import Any, Callable, Dict, Mapping, Optional

from metaform.core import Unsubscribe
from metaform.exceptions import FieldNotFoundError
from metaform.form import snapshot
from metaform.form.fields import FormField, ObjectField, create_field, walk
from metaform.form.schema import FieldKind
from metaform.form.validator import ValidationContext

logger = logging.getLogger(__name__)

SubmitHandler = Callable[[Dict[str, Any]], None]


class Form:
    """
    Manages one form session: the field tree, validation, submission and reset.

    Every change of a value anywhere in the tree triggers a full top-down
    validation pass, so validators that read other fields (through
    ``context.form`` or ``context.parents``) always see current values.
    """

    def __init__(self, fields: Mapping[str, Any], initial_values: Optional[Mapping[str, Any]] = None,
                 on_submit: Optional[SubmitHandler] = None, validate: Any = None,
                 form_id: Optional[str] = None):
        self.id = form_id or uuid.uuid4().hex
        self.schema = fields
        self.initial_values = deepcopy(initial_values) if initial_values is not None else {}
        self.on_submit = on_submit

        declaration = {"type": FieldKind.OBJECT, "fields": fields, "validate": validate}
        self.form: ObjectField = create_field("", self.initial_values, declaration,
                                              ValidationContext(form=self.initial_values))
        self.validate()
        self._unsubscribe: Unsubscribe = self.form.value.subscribe(self._on_value_change)
        logger.debug("Created form %s with fields: %s", self.id, ", ".join(fields))

    @property
    def root(self) -> ObjectField:
        return self.form

    @property
    def fields(self) -> Mapping[str, FormField]:
        return self.form.fields

    def _on_value_change(self, value: Any) -> None:
        self.validate()

    def validate(self) -> None:
        """Runs the validators of every node, root first."""
        value = self.form.value.get()
        self.form.validate(ValidationContext(form=value))
        logger.debug("Validated form %s", self.id)

    def snapshot(self) -> Dict[str, Any]:
        return snapshot.get(self.form)

    def subscribe(self, listener: Callable[[Dict[str, Any]], None]) -> Unsubscribe:
        return snapshot.subscribe(self.form, listener)

    def submit(self, event: Any = None) -> Dict[str, Any]:
        """
        Marks the whole tree submitted and hands the snapshot to ``on_submit``.

        Invalid forms are submitted too; check ``snapshot["invalid"]`` in the
        handler.

        Args:
            event: Optional event-like object; its ``prevent_default`` (or
                   ``preventDefault``) is called first.

        Returns:
            The snapshot passed to ``on_submit``.
        """
        if event is not None:
            prevent_default = getattr(event, "prevent_default", None) or getattr(event, "preventDefault", None)
            if callable(prevent_default):
                prevent_default()

        self.form.set_submitted(True)
        form_snapshot = self.snapshot()
        logger.debug("Submitting form %s (invalid=%s)", self.id, form_snapshot["invalid"])
        if self.on_submit is not None:
            self.on_submit(form_snapshot)
        return form_snapshot

    def reset(self) -> None:
        """Resets the tree to its initial values and validates again."""
        self.form.reset()
        self.validate()
        logger.debug("Reset form %s", self.id)

    def field(self, name: str) -> FormField:
        """
        Finds a field by its name, e.g. ``"user.email"`` or ``"items[2].name"``.

        Raises:
            FieldNotFoundError: If no field in the current tree has that name.
        """
        for node in walk(self.form):
            if node.name == name:
                return node
        raise FieldNotFoundError(name)

    def dispose(self) -> None:
        """Stops revalidating on value changes. Safe to call more than once."""
        self._unsubscribe()


def create_form(fields: Mapping[str, Any], initial_values: Optional[Mapping[str, Any]] = None,
                on_submit: Optional[SubmitHandler] = None, validate: Any = None,
                form_id: Optional[str] = None) -> Form:
    """
    Factory function to create and initialize a Form instance.

    Args:
        fields: The schema, a mapping of field name to declaration.
        initial_values: Optional (possibly partial) values matching the schema.
        on_submit: Called with the form snapshot on submit.
        validate: Optional validator(s) for the form value as a whole.
        form_id: Identifier for this form session; a random one is generated
                 when omitted.

    Returns:
        A validated Form instance.
    """
    return Form(fields, initial_values, on_submit=on_submit, validate=validate, form_id=form_id)


class FormSession:
    """
    Keeps a single form alive across repeated calls from a render loop.

    The form is rebuilt only when the schema or the initial values stop
    comparing equal to those of the previous call (or a different root
    validator is passed). Otherwise the existing form is returned and only
    its submit handler is replaced.
    """

    def __init__(self, form_id: Optional[str] = None):
        self.form_id = form_id
        self._form: Optional[Form] = None
        self._fields = None
        self._initial_values = None
        self._validate = None

    @property
    def form(self) -> Optional[Form]:
        return self._form

    def form_for(self, fields: Mapping[str, Any], initial_values: Optional[Mapping[str, Any]] = None,
                 on_submit: Optional[SubmitHandler] = None, validate: Any = None) -> Form:
        unchanged = (
            self._form is not None
            and fields == self._fields
            and initial_values == self._initial_values
            and validate is self._validate
        )
        if unchanged:
            self._form.on_submit = on_submit
            return self._form

        if self._form is not None:
            logger.debug("Rebuilding form %s: schema or initial values changed", self._form.id)
            self._form.dispose()

        self._form = create_form(fields, initial_values, on_submit=on_submit, validate=validate,
                                 form_id=self.form_id)
        self._fields = fields
        self._initial_values = deepcopy(initial_values)
        self._validate = validate
        return self._form

    def dispose(self) -> None:
        if self._form is not None:
            self._form.dispose()
            self._form = None
