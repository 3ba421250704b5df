import uuid

import pytest

from finacco.core.errors import NotFoundError, RenderError
from finacco.domains.templates.entities import DocumentTemplate, TemplateField, pdf_filename
from finacco.domains.templates.schemas import TemplateCreate, TemplateUpdate
from finacco.domains.templates.services import TemplateService, parse_fields, parse_keywords

FIELDS_JSON = '[{"id": "party1", "label": "First Party", "required": true}, {"id": "party2", "label": "Second Party"}]'


def test_field_from_stored_json():
    field = TemplateField.from_dict({
        "id": "witness",
        "label": "Witness",
        "isRepeatable": True,
        "repeatableGroup": "step2",
        "subFields": ["witness_name"],
    })

    assert field.is_repeatable is True
    assert field.step_index == 1
    template = DocumentTemplate.create("T", "", [field])
    assert [f.id for f in template.instance_fields(field)] == ["witness_name"]
    assert field.to_dict()["repeatableGroup"] == "step2"


def test_non_step_group_is_first_step():
    assert TemplateField("w", "W", repeatable_group="witnesses").step_index == 0
    assert TemplateField("w", "W", repeatable_group="step0").step_index == 0


def test_field_rejects_unknown_type():
    with pytest.raises(ValueError):
        TemplateField("x", "X", type="colour")


def test_template_rejects_duplicate_ids():
    with pytest.raises(ValueError, match="Duplicate field ids: a"):
        DocumentTemplate.create("T", "[a]", [TemplateField("a", "A"), TemplateField("a", "Again")])


@pytest.mark.parametrize("name,expected", [
    ("Rental Agreement", "Rental_Agreement.pdf"),
    ("  Non  Disclosure Agreement ", "Non_Disclosure_Agreement.pdf"),
    ("", "document.pdf"),
])
def test_pdf_filename(name, expected):
    assert pdf_filename(name) == expected


def test_parse_fields_from_json_text():
    fields = parse_fields(fields_json=FIELDS_JSON)

    assert [f.id for f in fields] == ["party1", "party2"]
    assert fields[0].required is True


@pytest.mark.parametrize("fields_json", [
    '[{"id": "a"',
    '{"id": "a"}',
    '[{"label": "no id"}]',
    '[{"id": "a", "label": "A", "type": "select", "options": 5}]',
    '[{"id": "a", "isRepeatable": true, "subFields": "b"}]',
    '[{"id": {"name": "a"}}]',
    '[{"id": ["a"]}, {"id": ["a"]}]',
    '[{"id": "a", "repeatableGroup": 2}]',
    '[{"id": "a", "type": ["text"]}]',
])
def test_parse_fields_rejects_malformed_definitions(fields_json):
    with pytest.raises(RenderError) as exc_info:
        parse_fields(fields_json=fields_json)

    assert exc_info.value.code == "invalid_fields"


def test_parse_keywords():
    assert parse_keywords(" rent, lease ,, tenancy") == ["rent", "lease", "tenancy"]
    assert parse_keywords(["rent", " "]) == ["rent"]
    assert parse_keywords(None) == []


async def test_template_crud(db):
    service = TemplateService(db)
    category = await service.create_category("Agreements", "Contracts between parties")

    template, warnings = await service.create_template(TemplateCreate(
        name="Rental Agreement",
        template_html="Between [party1] and [party2] [stamp]",
        fields_json=FIELDS_JSON,
        keywords="rent, lease",
    ))

    assert template.category_id == category.id
    assert template.keywords == ["rent", "lease"]
    assert warnings == ["Placeholder [stamp] has no matching field"]

    updated, warnings = await service.update_template(template.id, TemplateUpdate(template_html="Between [party1] and [party2]"))
    assert updated.template_html == "Between [party1] and [party2]"
    assert [f.id for f in updated.fields] == ["party1", "party2"]
    assert warnings == []

    assert [t.id for t in await service.list_templates(category.id)] == [template.id]

    await service.delete_template(template.id)
    with pytest.raises(NotFoundError):
        await service.get_template(template.id)


async def test_repeatable_without_block_is_warned(db):
    _, warnings = await TemplateService(db).create_template(TemplateCreate(
        name="Affidavit",
        template_html="I, [deponent], state",
        fields=[{"id": "deponent", "label": "Deponent"}, {"id": "witness", "label": "Witness", "isRepeatable": True}],
    ))

    assert warnings == ["Repeatable field 'witness' has no <!-- START witness --> block"]


async def test_unknown_category_is_rejected(db):
    with pytest.raises(NotFoundError):
        await TemplateService(db).create_template(TemplateCreate(
            name="X", template_html="[a]", fields=[{"id": "a", "label": "A"}], category_id=uuid.uuid4(),
        ))


async def test_match_template_by_keyword_or_name(db):
    service = TemplateService(db)
    await service.create_template(TemplateCreate(
        name="Rental Agreement", template_html="[a]", fields=[{"id": "a", "label": "A"}], keywords=["rent"],
    ))

    assert (await service.match_template("Please draft a RENT deed")).name == "Rental Agreement"
    assert (await service.match_template("I need a rental agreement")).name == "Rental Agreement"
    assert await service.match_template("Write a partnership deed") is None


def test_group_siblings_join_the_repeatable_block():
    template = DocumentTemplate.create("T", "", [
        TemplateField("party1", "First Party"),
        TemplateField("witness_name", "Name", is_repeatable=True, repeatable_group="step2"),
        TemplateField("witness_email", "Email", "email", repeatable_group="step2"),
    ])

    witness = template.get_field("witness_name")
    assert [f.id for f in template.instance_fields(witness)] == ["witness_name", "witness_email"]
    assert [f.id for f in template.top_level_fields] == ["party1", "witness_name"]
