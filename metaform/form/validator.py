import inspect
import logging
import math
import re
from numbers import Real
from typing import Any, Callable, Iterable, List, NamedTuple, Optional, Tuple, Union
from uuid import UUID as PyUUID

from metaform.exceptions import SchemaError

logger = logging.getLogger(__name__)


class ValidationMessage(NamedTuple):
    """
    Structured validation error: an identifier for localized rendering plus
    the parameters the message needs (e.g. the minimum for ``min``).
    """
    id: str
    params: Tuple[Any, ...] = ()


def message(id: str, *params: Any) -> ValidationMessage:
    return ValidationMessage(id, tuple(params))


error = message


class ValidationContext:
    """
    What a validator may read besides the value itself.

    Attributes:
        form: The aggregated value of the whole form.
        parents: Aggregated values of the ancestors, closest ancestor last.
    """
    __slots__ = ('form', 'parents')

    def __init__(self, form: Any = None, parents: Iterable[Any] = ()):
        self.form = form
        self.parents = tuple(parents)

    @property
    def parent(self) -> Any:
        return self.parents[-1] if self.parents else None

    def extend(self, value: Any) -> 'ValidationContext':
        return ValidationContext(self.form, self.parents + (value,))

    def __eq__(self, other):
        if not isinstance(other, ValidationContext):
            return NotImplemented
        return self.form == other.form and self.parents == other.parents

    def __repr__(self):
        return f"ValidationContext(form={self.form!r}, parents={self.parents!r})"


ValidationResult = Optional[ValidationMessage]
ValidationFunction = Callable[[Any, ValidationContext], ValidationResult]


def always_valid(value: Any, context: ValidationContext = None) -> ValidationResult:
    return None


def _accepts_context(fn: Callable) -> bool:
    try:
        sig = inspect.signature(fn)
    except (ValueError, TypeError):
        # Builtins without a signature are called with the value only
        return False
    positional = 0
    for param in sig.parameters.values():
        if param.kind == param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


def to_validation_function(entry: Any) -> ValidationFunction:
    """
    Turns one declared validator into a ``(value, context)`` function.

    Accepts a callable, an object with a callable ``validate`` attribute or a
    dict with a ``"validate"`` key. One-argument callables are adapted.
    """
    if isinstance(entry, dict) and "validate" in entry:
        entry = entry["validate"]
    elif not callable(entry) and callable(getattr(entry, "validate", None)):
        entry = entry.validate

    if not callable(entry):
        raise SchemaError(f"Validator must be callable or expose 'validate', got {type(entry).__name__}")

    if _accepts_context(entry):
        return entry

    def validate_value(value, context=None):
        return entry(value)

    validate_value.__wrapped__ = entry
    return validate_value


def compose_validators(validators: Union[None, Any, List[Any], Tuple[Any, ...]]) -> ValidationFunction:
    """
    Composes declared validators into a single validation function.

    Validators run in declaration order and the first truthy result wins;
    later validators are not called. When every validator passes, the
    result is ``None``. ``None`` entries (``optional``) are skipped.
    """
    if validators is None:
        entries = []
    elif isinstance(validators, (list, tuple)):
        entries = [v for v in validators if v is not None]
    else:
        entries = [validators]

    functions = [to_validation_function(entry) for entry in entries]
    if not functions:
        return always_valid

    def validate(value: Any, context: ValidationContext = None) -> ValidationResult:
        if context is None:
            context = ValidationContext()
        for fn in functions:
            result = fn(value, context)
            if result:
                return result
        return None

    return validate


def _length(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        # Unsized values such as numbers are measured as text
        return len(str(value))


def _is_number(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, Real):
        return False
    return not (isinstance(value, float) and math.isnan(value))


class Validator:
    """
    Provides a set of built-in validation functions.

    Every validator returns ``None`` when the value passes and a
    ``ValidationMessage`` when it does not.
    """

    EMAIL_PATTERN = re.compile(r".+@.+\..+")
    URL_PATTERN = re.compile(
        r"^https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)$"
    )

    @staticmethod
    def required(value: Any) -> ValidationResult:
        """Fails on any falsy value: None, '', 0, False and empty collections."""
        if not value:
            return message("required")
        return None

    @staticmethod
    def number(value: Any) -> ValidationResult:
        """Checks that the value is a real number (bools and NaN are not)."""
        if not _is_number(value):
            return message("number")
        return None

    @staticmethod
    def min(minimum: Any) -> Callable[[Any], ValidationResult]:
        """Creates a validation function that checks for a minimum value."""
        def validate(value: Any) -> ValidationResult:
            try:
                too_small = value is not None and value < minimum
            except TypeError:
                # Incomparable values are for `number` to reject
                return None
            return message("min", minimum) if too_small else None
        return validate

    @staticmethod
    def max(maximum: Any) -> Callable[[Any], ValidationResult]:
        """Creates a validation function that checks for a maximum value."""
        def validate(value: Any) -> ValidationResult:
            try:
                too_large = value is not None and value > maximum
            except TypeError:
                return None
            return message("max", maximum) if too_large else None
        return validate

    @staticmethod
    def min_length(length: int) -> Callable[[Any], ValidationResult]:
        """Creates a validation function that checks for minimum length."""
        def validate(value: Any) -> ValidationResult:
            # Allow None values to pass, required validator should handle them
            if value is not None and _length(value) < length:
                return message("minLength", length)
            return None
        return validate

    @staticmethod
    def max_length(length: int) -> Callable[[Any], ValidationResult]:
        """Creates a validation function that checks for maximum length."""
        def validate(value: Any) -> ValidationResult:
            if value is not None and _length(value) > length:
                return message("maxLength", length)
            return None
        return validate

    @staticmethod
    def email(value: Any) -> ValidationResult:
        """Checks the value looks like an email address; empty values pass."""
        if value and not Validator.EMAIL_PATTERN.search(str(value)):
            return message("email")
        return None

    @staticmethod
    def url(value: Any) -> ValidationResult:
        """Checks if a value is a valid http(s) URL; empty values pass."""
        if value and not Validator.URL_PATTERN.match(str(value)):
            return message("url")
        return None

    @staticmethod
    def uuid(value: Any) -> ValidationResult:
        if value is None or value == "":
            return None
        try:
            PyUUID(str(value))
            return None
        except ValueError:
            return message("uuid")

    @staticmethod
    def regex(pattern: str, id: str = "pattern") -> Callable[[Any], ValidationResult]:
        """Creates a validation function that checks against a regex pattern."""
        compiled_pattern = re.compile(pattern)

        def validate(value: Any) -> ValidationResult:
            if value is not None and value != "" and not compiled_pattern.fullmatch(str(value)):
                return message(id, pattern)
            return None
        return validate

    @staticmethod
    def if_form_has_value(predicate: Callable[[Any], bool], validator: Any) -> ValidationFunction:
        """Runs ``validator`` only when ``predicate(form_value)`` holds."""
        validate_value = to_validation_function(validator)

        def validate(value: Any, context: ValidationContext) -> ValidationResult:
            if predicate(context.form):
                return validate_value(value, context)
            return None
        return validate

    @staticmethod
    def if_parent_has_value(predicate: Callable[[Any], bool], validator: Any) -> ValidationFunction:
        """Runs ``validator`` only when ``predicate(closest_parent_value)`` holds."""
        validate_value = to_validation_function(validator)

        def validate(value: Any, context: ValidationContext) -> ValidationResult:
            if predicate(context.parent):
                return validate_value(value, context)
            return None
        return validate


optional = None
required = Validator.required
number = Validator.number
min = Validator.min
max = Validator.max
min_length = Validator.min_length
max_length = Validator.max_length
email = Validator.email
url = Validator.url
uuid = Validator.uuid
regex = Validator.regex
if_form_has_value = Validator.if_form_has_value
if_parent_has_value = Validator.if_parent_has_value
