import logging
import math
import re
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, NamedTuple, Optional, Union

from finacco.core.errors import FormValidationError
from finacco.domains.templates.entities import DocumentTemplate, TemplateField, instance_fields
from finacco.domains.templates.renderer import FormData, render_template

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\+?[\d\s\-()]+$")
DATE_FORMATS = ("%Y-%m-%d", "%d/%m/%Y")


class StepValidation(NamedTuple):
    valid: bool
    errors: Dict[str, str]


def _is_date(value: str) -> bool:
    for fmt in DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
            return True
        except ValueError:
            continue
    return False


def _is_number(value: str) -> bool:
    try:
        return math.isfinite(float(value))
    except ValueError:
        return False


def check_value(field: TemplateField, value: str) -> Optional[str]:
    """Type-specific check of a non-empty value; returns an error message or None."""
    if field.type == "email" and not EMAIL_PATTERN.match(value):
        return "Please enter a valid email address"
    if field.type == "tel" and not PHONE_PATTERN.match(value):
        return "Please enter a valid phone number"
    if field.type == "date" and not _is_date(value):
        return "Please enter a valid date"
    if field.type == "number" and not _is_number(value):
        return "Please enter a valid number"
    if field.type == "select" and field.options and value not in field.options:
        return f"Please choose one of the options for {field.label}"
    return None


def _clean(value: Any) -> str:
    return "" if value is None else str(value).strip()


def initial_form_data(template: DocumentTemplate) -> FormData:
    """Scalars start empty, repeatables start with one empty instance."""
    data: FormData = {}
    for field in template.top_level_fields:
        data[field.id] = [{}] if field.is_repeatable else ""
    return data


def validate_fields(
    fields: List[TemplateField],
    data: Mapping[str, Any],
    all_fields: Optional[List[TemplateField]] = None,
) -> StepValidation:
    """Check ``fields`` against ``data``.

    Each instance of a repeatable field is checked sub-field by sub-field, each
    with its own ``required`` flag and type, keyed ``"<sub_field_id>_<index>"``.
    ``all_fields`` is the full schema the sub-fields are looked up in; it
    defaults to ``fields``.
    """
    schema = fields if all_fields is None else all_fields
    errors: Dict[str, str] = {}

    for field in fields:
        if field.is_repeatable:
            entries = data.get(field.id)
            entries = entries if isinstance(entries, list) else []

            if field.required and not entries:
                errors[field.id] = f"At least one {field.label} is required"
                continue

            members = instance_fields(field, schema)
            for index, entry in enumerate(entries):
                entry = entry if isinstance(entry, Mapping) else {}
                for member in members:
                    value = _clean(entry.get(member.id))
                    if not value:
                        if member.required:
                            errors[f"{member.id}_{index}"] = f"{member.label} is required"
                        continue
                    message = check_value(member, value)
                    if message:
                        errors[f"{member.id}_{index}"] = message
        else:
            value = _clean(data.get(field.id))
            if not value:
                if field.required:
                    errors[field.id] = f"{field.label} is required"
                continue
            message = check_value(field, value)
            if message:
                errors[field.id] = message

    return StepValidation(valid=not errors, errors=errors)


class FormController:
    """Wizard over a template's field schema.

    Fields without a ``repeatable_group`` are on the first step; a group of
    ``"step<N>"`` puts the field on step N. Errors are keyed by field id, or by
    ``"<sub_field_id>_<index>"`` for a sub-field of a repeatable instance.
    """

    def __init__(self, template: DocumentTemplate, data: Optional[Mapping[str, Any]] = None):
        self.template = template
        self.data: FormData = initial_form_data(template)
        self.errors: Dict[str, str] = {}
        self.current_step = 0
        if data:
            self.load(data)

    @property
    def step_count(self) -> int:
        if not self.template.fields:
            return 1
        return max(f.step_index for f in self.template.fields) + 1

    @property
    def is_last_step(self) -> bool:
        return self.current_step >= self.step_count - 1

    def step_fields(self, step_index: int) -> List[TemplateField]:
        """Fields shown on a step; sub-fields of a repeatable block appear inside its instances."""
        return [f for f in self.template.top_level_fields if f.step_index == step_index]

    def load(self, data: Mapping[str, Any]) -> None:
        """Overlay submitted values onto the initial structure."""
        for field in self.template.top_level_fields:
            if field.id not in data:
                continue
            value = data[field.id]
            if field.is_repeatable:
                self.data[field.id] = [dict(e) for e in value if isinstance(e, Mapping)] if isinstance(value, list) else []
            else:
                self.data[field.id] = "" if value is None else str(value)

    def _repeatable(self, field_id: str) -> TemplateField:
        field = self.template.get_field(field_id)
        if field is None or not field.is_repeatable:
            raise KeyError(f"'{field_id}' is not a repeatable field of this template")
        return field

    def set_value(self, field_id: str, value: str, index: Optional[int] = None, key: Optional[str] = None) -> None:
        field = self.template.get_field(field_id)
        if field is None or field not in self.template.top_level_fields:
            raise KeyError(f"Unknown field '{field_id}'")

        if field.is_repeatable:
            if index is None:
                raise ValueError("An instance index is required for repeatable fields")
            member_ids = [f.id for f in self.template.instance_fields(field)]
            key = key or member_ids[0]
            if key not in member_ids:
                raise KeyError(f"'{key}' is not a sub-field of '{field_id}'")
            entries = self.data[field_id]
            entries[index] = {**entries[index], key: value}
            self.errors.pop(f"{key}_{index}", None)
        else:
            self.data[field_id] = value
        self.errors.pop(field_id, None)

    def add_group_instance(self, field_id: str) -> int:
        """Append an empty instance; returns its index."""
        self._repeatable(field_id)
        self.data[field_id].append({})
        self.errors.pop(field_id, None)
        return len(self.data[field_id]) - 1

    def remove_group_instance(self, field_id: str, index: int) -> None:
        """Remove one instance and shift the error keys of later instances down."""
        field = self._repeatable(field_id)
        entries = self.data[field_id]
        if not 0 <= index < len(entries):
            raise IndexError(f"No instance {index} for '{field_id}'")
        del entries[index]

        member_ids = [f.id for f in self.template.instance_fields(field)]
        field_ids = {f.id for f in self.template.fields}
        renumbered: Dict[str, str] = {}
        for key, message in self.errors.items():
            member, _, suffix = key.rpartition("_")
            if member in member_ids and suffix.isdigit() and key not in field_ids:
                position = int(suffix)
                if position == index:
                    continue
                if position > index:
                    key = f"{member}_{position - 1}"
            renumbered[key] = message
        self.errors = renumbered

    def validate_step(self, step_index: Optional[int] = None) -> StepValidation:
        step_index = self.current_step if step_index is None else step_index
        result = validate_fields(self.step_fields(step_index), self.data, all_fields=self.template.fields)
        self.errors = dict(result.errors)
        return result

    def validate_all(self) -> StepValidation:
        result = validate_fields(self.template.top_level_fields, self.data, all_fields=self.template.fields)
        self.errors = dict(result.errors)
        return result

    def next(self) -> bool:
        """Advance only when the current step validates."""
        if not self.validate_step().valid:
            return False
        if not self.is_last_step:
            self.current_step += 1
        return True

    def previous(self) -> int:
        self.current_step = max(0, self.current_step - 1)
        return self.current_step

    def submit(self, now: Optional[Union[date, datetime]] = None) -> str:
        """Validate every step and render the final HTML."""
        result = self.validate_all()
        if not result.valid:
            raise FormValidationError(result.errors)
        logger.info("Rendering template %s", self.template.id)
        return render_template(self.template, self.data, now=now)
