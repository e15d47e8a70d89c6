from metaform.core import State, create_state, set_global_error_handler
from metaform.exceptions import FieldNotFoundError, FormError, SchemaError
from metaform.form import (
    ArrayField,
    BasicField,
    CanonicalField,
    FieldKind,
    Form,
    FormField,
    FormSession,
    ObjectField,
    ValidationContext,
    ValidationMessage,
    Validator,
    array_field,
    compose_validators,
    create_field,
    create_form,
    error,
    message,
    normalize,
    object_field,
    snapshot,
)


__version__ = "0.1.0"

get_version = lambda: __version__
