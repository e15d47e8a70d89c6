from types import SimpleNamespace

import pytest

from metaform import set_global_error_handler
from metaform.form.schema import array_field, object_field
from metaform.form.validator import email, min, min_length, number, optional, required


@pytest.fixture(autouse=True)
def default_error_handler():
    yield
    set_global_error_handler(None)


@pytest.fixture
def person_fields():
    return {"name": required, "age": [number, min(18)]}


@pytest.fixture
def order_fields():
    return {
        "email": [required, email],
        "note": optional,
        "address": object_field({"street": required, "city": required}),
        "items": array_field(min_length(1), {"name": required, "amount": [number, min(1)]}),
    }


def _change_event(value):
    return SimpleNamespace(target=SimpleNamespace(value=value, type="text"))


def _checkbox_event(checked):
    return SimpleNamespace(target=SimpleNamespace(value="on", type="checkbox", checked=checked))


@pytest.fixture
def events():
    return SimpleNamespace(change=_change_event, checkbox=_checkbox_event)


class Recorder:
    """Callable that remembers every call it receives."""

    def __init__(self):
        self.calls = []

    def __call__(self, *args):
        self.calls.append(args[0] if len(args) == 1 else args)

    @property
    def count(self):
        return len(self.calls)

    @property
    def last(self):
        return self.calls[-1]


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def make_recorder():
    return Recorder
