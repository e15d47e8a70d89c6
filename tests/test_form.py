import logging
from unittest.mock import MagicMock

import pytest

from metaform import FieldNotFoundError, Form, FormSession, create_form
from metaform.form.schema import array_field
from metaform.form.validator import message, number, required


def test_create_form_validates_initial_values(person_fields):
    form = create_form(person_fields, {"name": "", "age": None})

    result = form.snapshot()
    assert isinstance(form, Form)
    assert result["value"] == {"name": "", "age": None}
    assert result["error"]["children"] == {"name": message("required"), "age": message("number")}
    assert result["invalid"] is True


def test_changing_values_revalidates(person_fields):
    form = create_form(person_fields, {"name": "", "age": None})

    form.fields["name"].on_change("Ann")
    form.fields["age"].on_change(12)
    assert form.snapshot()["error"]["children"] == {"name": None, "age": message("min", 18)}

    form.fields["age"].on_change(20)
    assert form.snapshot()["invalid"] is False


def test_show_error_follows_focus_and_blur(person_fields):
    form = create_form(person_fields, {"name": "", "age": 20})
    name = form.fields["name"]

    assert name.state.get()["show_error"] is False
    name.on_focus()
    assert name.state.get()["show_error"] is False
    name.on_blur()
    assert name.state.get()["show_error"] is True

    name.on_focus()
    name.on_change("Ann")
    name.on_blur()
    assert name.state.get()["show_error"] is False


def test_cross_field_validator_sees_sibling_changes():
    form = create_form({
        "a": None,
        "b": lambda value, context: context.form["a"] != value and message("mismatch"),
    }, {"a": "x", "b": "x"})
    assert form.snapshot()["invalid"] is False

    form.fields["a"].on_change("y")

    assert form.fields["b"].state.get()["error"] == message("mismatch")

    form.fields["b"].on_change("y")
    assert form.snapshot()["invalid"] is False


def test_missing_initial_values_start_empty(order_fields):
    form = create_form(order_fields)

    assert form.snapshot()["value"] == {
        "email": None,
        "note": None,
        "address": {"street": None, "city": None},
        "items": [],
    }


def test_nested_order_form(order_fields):
    form = create_form(order_fields, {"email": "ann@example.com", "address": {"street": "Main", "city": "X"}})
    items = form.fields["items"]
    assert items.state.get()["error"] == message("minLength", 1)

    item = items.helpers.add({"name": "pen", "amount": 2})

    assert items.state.get()["error"] is None
    assert item.name == "items[0]"
    assert form.snapshot()["invalid"] is False

    form.field("items[0].amount").on_change(0)
    assert form.snapshot()["invalid"] is True
    assert form.snapshot()["error"]["children"]["items"]["children"][0]["children"]["amount"] == message("min", 1)


def test_root_validator():
    def passwords_match(value):
        return value["password"] != value["confirm"] and message("confirm")

    form = create_form({"password": required, "confirm": required},
                       {"password": "secret", "confirm": "other"}, validate=passwords_match)

    assert form.root.state.get()["error"] == message("confirm")
    assert form.snapshot()["error"]["self"] == message("confirm")

    form.fields["confirm"].on_change("secret")
    assert form.snapshot()["invalid"] is False


def test_submit_marks_tree_and_calls_handler(person_fields, recorder):
    form = create_form(person_fields, {"name": "", "age": 20}, on_submit=recorder)
    event = MagicMock()

    result = form.submit(event)

    event.prevent_default.assert_called_once_with()
    assert recorder.calls == [result]
    assert result["invalid"] is True
    assert form.root.state.get()["is_submitted"] is True
    assert form.fields["name"].state.get()["is_submitted"] is True
    assert form.fields["name"].state.get()["show_error"] is True


def test_submit_without_event_or_handler(person_fields):
    form = create_form(person_fields, {"name": "Ann", "age": 20})

    result = form.submit()

    assert result["invalid"] is False
    assert result["value"] == {"name": "Ann", "age": 20}


def test_submit_accepts_camel_case_prevent_default(person_fields):
    form = create_form(person_fields)
    event = MagicMock(spec=["preventDefault"])

    form.submit(event)

    event.preventDefault.assert_called_once_with()


def test_reset_restores_the_initial_snapshot():
    form = create_form({"items": array_field({"name": required})}, {"items": [{"name": "Fred"}]})
    initial = form.snapshot()
    items = form.fields["items"]

    items.helpers.add({"name": "Wilma"})
    items.helpers.remove(items[0])
    items[0]["name"].on_change("")
    form.submit()

    form.reset()

    assert form.snapshot() == initial
    assert form.field("items[0].name").value.get() == "Fred"
    assert form.root.state.get()["is_submitted"] is False


def test_revalidation_continues_after_reset(person_fields):
    form = create_form(person_fields, {"name": "Ann", "age": 20})

    form.reset()
    form.fields["name"].on_change("")

    assert form.fields["name"].state.get()["error"] == message("required")


def test_field_lookup(order_fields):
    form = create_form(order_fields, {"items": [{"name": "pen", "amount": 1}]})

    assert form.field("address.city") is form.fields["address"]["city"]
    assert form.field("items[0].name") is form.fields["items"][0]["name"]

    with pytest.raises(FieldNotFoundError) as excinfo:
        form.field("items[1].name")
    assert excinfo.value.name == "items[1].name"
    assert "not found" in str(excinfo.value)


def test_initial_values_are_copied(person_fields):
    initial = {"name": "Ann", "age": 20}
    form = create_form(person_fields, initial)

    initial["name"] = ""

    assert form.initial_values == {"name": "Ann", "age": 20}
    assert form.snapshot()["value"]["name"] == "Ann"


def test_form_id(person_fields):
    assert create_form(person_fields, form_id="signup").id == "signup"

    first, second = create_form(person_fields), create_form(person_fields)
    assert len(first.id) == 32
    assert first.id != second.id


def test_form_subscribe(person_fields, recorder):
    form = create_form(person_fields, {"name": "", "age": 20})
    unsubscribe = form.subscribe(recorder)

    form.fields["name"].on_change("Ann")

    assert recorder.last["value"]["name"] == "Ann"
    assert recorder.last["invalid"] is False

    unsubscribe()
    count = recorder.count
    form.fields["name"].on_change("Bo")
    assert recorder.count == count


def test_dispose_stops_revalidation(person_fields):
    form = create_form(person_fields, {"name": "Ann", "age": 20})

    form.dispose()
    form.dispose()
    form.fields["name"].on_change("")

    assert form.fields["name"].state.get()["error"] is None


def test_submit_is_logged(person_fields, caplog):
    caplog.set_level(logging.DEBUG, logger="metaform")
    form = create_form(person_fields, form_id="signup")

    form.submit()

    assert "Submitting form signup" in caplog.text


def test_session_reuses_form_for_equal_arguments(person_fields, make_recorder):
    session = FormSession()
    first_handler, second_handler = make_recorder(), make_recorder()

    form = session.form_for(person_fields, {"name": "Ann", "age": 20}, on_submit=first_handler)
    form.fields["name"].on_change("Bo")
    again = session.form_for(person_fields, {"name": "Ann", "age": 20}, on_submit=second_handler)

    assert again is form
    assert again.snapshot()["value"]["name"] == "Bo"

    again.submit()
    assert first_handler.count == 0
    assert second_handler.count == 1


def test_session_rebuilds_when_initial_values_change(person_fields):
    session = FormSession(form_id="profile")

    form = session.form_for(person_fields, {"name": "Ann", "age": 20})
    rebuilt = session.form_for(person_fields, {"name": "Bo", "age": 20})

    assert rebuilt is not form
    assert rebuilt.id == "profile"
    assert rebuilt.snapshot()["value"]["name"] == "Bo"
    assert session.form is rebuilt

    form.fields["name"].on_change("")
    assert form.fields["name"].state.get()["error"] is None


def test_session_rebuilds_when_schema_changes(person_fields):
    session = FormSession()

    form = session.form_for(person_fields)
    rebuilt = session.form_for({**person_fields, "nickname": None})

    assert rebuilt is not form
    assert set(rebuilt.fields) == {"name", "age", "nickname"}


def test_session_dispose(person_fields):
    session = FormSession()
    session.form_for(person_fields)

    session.dispose()

    assert session.form is None


def test_state_listeners_end_with_the_revalidated_state():
    form = create_form({"name": required}, {"name": ""})
    name = form.fields["name"]
    seen = []
    name.state.subscribe(lambda new_state, old_state: seen.append(new_state))

    name.on_change("Ann")

    assert seen[-1] is name.state.get()
    assert seen[-1]["error"] is None
    assert seen[-1]["invalid"] is False


def test_switching_between_one_and_true_revalidates():
    form = create_form({"n": number}, {"n": 1})
    n = form.fields["n"]
    assert n.state.get()["error"] is None

    n.on_change(True)

    assert n.state.get()["error"] == message("number")
    assert form.snapshot()["invalid"] is True
