from datetime import date

import pytest

from finacco.core.errors import FormValidationError
from finacco.domains.templates.entities import TemplateField
from finacco.domains.templates.form import FormController, check_value, validate_fields


@pytest.fixture
def wizard_template(make_template):
    return make_template(
        template_html=(
            "[party1] and [party2] ([email]) on [start_date]."
            "<!-- START witness -->[witness];<!-- END witness -->"
        ),
        fields=[
            TemplateField("party1", "First Party", required=True),
            TemplateField("party2", "Second Party", required=True),
            TemplateField("email", "Email", "email", repeatable_group="step2"),
            TemplateField("start_date", "Start Date", "date", True, repeatable_group="step2"),
            TemplateField("witness", "Witness", required=True, is_repeatable=True, repeatable_group="step3"),
        ],
    )


def test_steps_follow_the_step_groups(wizard_template):
    controller = FormController(wizard_template)

    assert controller.step_count == 3
    assert [f.id for f in controller.step_fields(0)] == ["party1", "party2"]
    assert [f.id for f in controller.step_fields(1)] == ["email", "start_date"]
    assert [f.id for f in controller.step_fields(2)] == ["witness"]


def test_initial_data(wizard_template):
    controller = FormController(wizard_template)

    assert controller.data["party1"] == ""
    assert controller.data["witness"] == [{}]


def test_required_fields_block_next(wizard_template):
    controller = FormController(wizard_template)
    controller.set_value("party1", "Alice")

    assert controller.next() is False
    assert controller.current_step == 0
    assert controller.errors == {"party2": "Second Party is required"}

    controller.set_value("party2", "Bob")
    assert controller.errors == {}
    assert controller.next() is True
    assert controller.current_step == 1


def test_type_checks(wizard_template):
    controller = FormController(wizard_template, {"email": "not-an-email", "start_date": "31/02/2024"})

    result = controller.validate_step(1)

    assert result.valid is False
    assert result.errors == {
        "email": "Please enter a valid email address",
        "start_date": "Please enter a valid date",
    }


@pytest.mark.parametrize("field,value,message", [
    (TemplateField("phone", "Phone", "tel"), "+91 98765-43210", None),
    (TemplateField("phone", "Phone", "tel"), "call me", "Please enter a valid phone number"),
    (TemplateField("amount", "Amount", "number"), "1500.50", None),
    (TemplateField("amount", "Amount", "number"), "lots", "Please enter a valid number"),
    (TemplateField("when", "When", "date"), "2024-03-05", None),
    (TemplateField("kind", "Kind", "select", options=["Rent", "Lease"]), "Sale", "Please choose one of the options for Kind"),
])
def test_check_value(field, value, message):
    assert check_value(field, value) == message


def test_optional_empty_fields_pass():
    fields = [TemplateField("email", "Email", "email")]

    assert validate_fields(fields, {"email": "  "}).valid is True


def test_required_repeatable_needs_an_instance():
    fields = [TemplateField("witness", "Witness", required=True, is_repeatable=True)]

    result = validate_fields(fields, {"witness": []})

    assert result.errors == {"witness": "At least one Witness is required"}


def test_repeatable_instance_errors_are_indexed():
    fields = [TemplateField("witness", "Witness", required=True, is_repeatable=True)]

    result = validate_fields(fields, {"witness": [{"witness": "X"}, {}, {"witness": "Z"}]})

    assert result.errors == {"witness_1": "Witness is required"}


def test_remove_instance_renumbers_errors(wizard_template):
    controller = FormController(wizard_template, {"witness": [{}, {"witness": "B"}, {}, {}]})
    controller.validate_step(2)
    assert set(controller.errors) == {"witness_0", "witness_2", "witness_3"}

    controller.remove_group_instance("witness", 0)

    assert controller.data["witness"] == [{"witness": "B"}, {}, {}]
    assert set(controller.errors) == {"witness_1", "witness_2"}


def test_add_instance_and_set_value(wizard_template):
    controller = FormController(wizard_template)

    index = controller.add_group_instance("witness")
    controller.set_value("witness", "Carol", index=index)

    assert index == 1
    assert controller.data["witness"] == [{}, {"witness": "Carol"}]


def test_unknown_and_scalar_fields_are_not_groups(wizard_template):
    controller = FormController(wizard_template)

    with pytest.raises(KeyError):
        controller.add_group_instance("party1")
    with pytest.raises(KeyError):
        controller.set_value("nope", "x")
    with pytest.raises(IndexError):
        controller.remove_group_instance("witness", 5)


def test_previous_stops_at_first_step(wizard_template):
    controller = FormController(wizard_template)

    assert controller.previous() == 0


def test_submit_renders_when_valid(wizard_template):
    controller = FormController(wizard_template, {
        "party1": "Alice",
        "party2": "Bob",
        "email": "alice@example.com",
        "start_date": "2024-03-05",
        "witness": [{"witness": "X"}, {"witness": "Y"}],
    })

    html = controller.submit(now=date(2024, 3, 5))

    assert html == "Alice and Bob (alice@example.com) on 2024-03-05.X;Y;"


def test_submit_reports_every_step(wizard_template):
    controller = FormController(wizard_template, {"party1": "Alice", "witness": []})

    with pytest.raises(FormValidationError) as exc_info:
        controller.submit()

    assert exc_info.value.errors == {
        "party2": "Second Party is required",
        "start_date": "Start Date is required",
        "witness": "At least one Witness is required",
    }


@pytest.fixture
def witness_template(make_template):
    return make_template(
        template_html="[party1]:<!-- START witness_name --> [witness_name] ([witness_email])<!-- END witness_name -->",
        fields=[
            TemplateField("party1", "First Party", required=True),
            TemplateField("witness_name", "Witness Name", required=True, is_repeatable=True, repeatable_group="step2"),
            TemplateField("witness_email", "Witness Email", "email", True, repeatable_group="step2"),
        ],
    )


def test_group_siblings_are_instance_sub_fields(witness_template):
    controller = FormController(witness_template)

    assert [f.id for f in controller.step_fields(1)] == ["witness_name"]
    assert controller.data == {"party1": "", "witness_name": [{}]}


def test_each_sub_field_is_checked_with_its_own_rules(witness_template):
    controller = FormController(witness_template, {
        "witness_name": [
            {"witness_name": "X", "witness_email": "not-an-email"},
            {"witness_email": "y@example.com"},
        ],
    })

    result = controller.validate_step(1)

    assert result.valid is False
    assert result.errors == {
        "witness_email_0": "Please enter a valid email address",
        "witness_name_1": "Witness Name is required",
    }


def test_sub_field_errors_are_renumbered_on_remove(witness_template):
    controller = FormController(witness_template, {
        "witness_name": [{"witness_name": "A", "witness_email": "a@example.com"}, {}, {"witness_name": "C"}],
    })
    controller.validate_step(1)
    assert set(controller.errors) == {"witness_name_1", "witness_email_1", "witness_email_2"}

    controller.remove_group_instance("witness_name", 0)

    assert set(controller.errors) == {"witness_name_0", "witness_email_0", "witness_email_1"}


def test_set_value_on_a_sub_field(witness_template):
    controller = FormController(witness_template, {"witness_name": [{"witness_name": "X"}]})
    controller.validate_step(1)
    assert "witness_email_0" in controller.errors

    controller.set_value("witness_name", "x@example.com", index=0, key="witness_email")

    assert controller.data["witness_name"] == [{"witness_name": "X", "witness_email": "x@example.com"}]
    assert "witness_email_0" not in controller.errors
    with pytest.raises(KeyError):
        controller.set_value("witness_name", "x", index=0, key="party1")
    with pytest.raises(KeyError):
        controller.set_value("witness_email", "x@example.com")


def test_submit_renders_sub_fields_per_instance(witness_template):
    controller = FormController(witness_template, {
        "party1": "Alice",
        "witness_name": [
            {"witness_name": "X", "witness_email": "x@example.com"},
            {"witness_name": "Y", "witness_email": "y@example.com"},
        ],
    })

    assert controller.submit() == "Alice: X (x@example.com) Y (y@example.com)"
