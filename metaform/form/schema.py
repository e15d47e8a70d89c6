from enum import Enum
from typing import Any, Dict, Optional

from metaform.exceptions import SchemaError
from metaform.form.validator import ValidationFunction, compose_validators


class FieldKind(Enum):
    BASIC = 'basic'
    OBJECT = 'object'
    ARRAY = 'array'


class CanonicalField:
    """
    Normalized field declaration.

    ``fields`` maps child names to (raw) declarations for object fields and
    holds the element template for array fields; it is None for basic fields.
    """
    __slots__ = ('kind', 'validate', 'fields')

    def __init__(self, kind: FieldKind, validate: ValidationFunction, fields: Optional[Dict[str, Any]] = None):
        self.kind = kind
        self.validate = validate
        self.fields = fields

    def __repr__(self):
        return f"CanonicalField(kind={self.kind.value!r}, fields={list(self.fields or ())!r})"


def object_field(fields_or_validate: Any, fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Declares an object field.

    Usage:
        object_field({"street": required, "city": required})
        object_field(validate_address, {"street": required, "city": required})
    """
    return _container(FieldKind.OBJECT, fields_or_validate, fields)


def array_field(fields_or_validate: Any, fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Declares an array of objects sharing one element template.

    Usage:
        array_field({"name": required})
        array_field(Validator.min_length(1), {"name": required})
    """
    return _container(FieldKind.ARRAY, fields_or_validate, fields)


def _container(kind: FieldKind, fields_or_validate: Any, fields: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    if fields is None:
        return {"type": kind.value, "fields": fields_or_validate, "validate": None}
    return {"type": kind.value, "fields": fields, "validate": fields_or_validate}


def _kind_of(declaration: Dict[str, Any]) -> FieldKind:
    kind = declaration["type"]
    if isinstance(kind, FieldKind):
        return kind
    try:
        return FieldKind(kind)
    except ValueError:
        raise SchemaError(f"Unknown field type: {kind!r}. Expected one of: "
                          f"{', '.join(k.value for k in FieldKind)}") from None


def _child_fields(declaration: Dict[str, Any], kind: FieldKind) -> Dict[str, Any]:
    fields = declaration.get("fields")
    if fields is None:
        return {}
    if not isinstance(fields, dict):
        raise SchemaError(f"The fields of an {kind.value} field must be a dict, got {type(fields).__name__}")
    return fields


def normalize(declaration: Any) -> CanonicalField:
    """
    Converts a field declaration into its canonical form.

    Resolution order (first match wins):
    1. an already normalized CanonicalField is returned as is
    2. a callable -> basic field with that validator
    3. a list or tuple -> basic field with the composed validators
    4. a dict tagged ``array`` -> array field
    5. a dict tagged ``object`` -> object field
    6. anything else, including ``None`` and ``{}`` -> always valid basic field

    Raises:
        SchemaError: If a dict carries an unknown ``type`` tag or a validator
            entry is not callable.
    """
    if isinstance(declaration, CanonicalField):
        return declaration

    if callable(declaration):
        return CanonicalField(FieldKind.BASIC, compose_validators(declaration))

    if isinstance(declaration, (list, tuple)):
        return CanonicalField(FieldKind.BASIC, compose_validators(declaration))

    if isinstance(declaration, dict):
        validate = compose_validators(declaration.get("validate"))
        if "type" not in declaration:
            return CanonicalField(FieldKind.BASIC, validate)
        kind = _kind_of(declaration)
        if kind is FieldKind.BASIC:
            return CanonicalField(kind, validate)
        return CanonicalField(kind, validate, _child_fields(declaration, kind))

    if callable(getattr(declaration, "validate", None)):
        return CanonicalField(FieldKind.BASIC, compose_validators(declaration))

    return CanonicalField(FieldKind.BASIC, compose_validators(None))
