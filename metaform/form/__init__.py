from metaform.form import snapshot
from metaform.form.fields import ArrayField, BasicField, FormField, ObjectField, create_field
from metaform.form.form import Form, FormSession, create_form
from metaform.form.schema import CanonicalField, FieldKind, array_field, normalize, object_field
from metaform.form.validator import (
    ValidationContext,
    ValidationMessage,
    Validator,
    compose_validators,
    error,
    message,
)
