import re
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Set

from finacco.core.clock import utcnow

FIELD_TYPES = ("text", "email", "tel", "date", "number", "textarea", "select")

_STEP_KEY = re.compile(r"^step(\d+)$")


class DocumentCategory:
    def __init__(self, id: uuid.UUID, name: str, description: str = "", icon: str = ""):
        self.id = id
        self.name = name
        self.description = description
        self.icon = icon

    @classmethod
    def create(cls, name: str, description: str = "", icon: str = "file-text") -> "DocumentCategory":
        return cls(id=uuid.uuid4(), name=name, description=description, icon=icon)

    def __repr__(self) -> str:
        return f"DocumentCategory(id={self.id}, name={self.name})"


def _string_list(value: Any, name: str, field_id: str) -> Optional[List[str]]:
    if value is None:
        return None
    if not isinstance(value, list) or not all(isinstance(v, (str, int, float)) for v in value):
        raise ValueError(f"'{name}' of field '{field_id}' must be a list of strings")
    return [str(v) for v in value] or None


def _optional_str(value: Any, name: str, field_id: str) -> Optional[str]:
    if value is not None and not isinstance(value, str):
        raise ValueError(f"'{name}' of field '{field_id}' must be a string")
    return value or None


class TemplateField:
    """One input of a template; its id doubles as the [id] placeholder token."""

    def __init__(
        self,
        id: str,
        label: str,
        type: str = "text",
        required: bool = False,
        placeholder: Optional[str] = None,
        description: Optional[str] = None,
        options: Optional[List[str]] = None,
        is_repeatable: bool = False,
        repeatable_group: Optional[str] = None,
        sub_fields: Optional[List[str]] = None,
    ):
        if not isinstance(id, str) or not id.strip():
            raise ValueError("Field id is required and must be a string")
        if not isinstance(type, str) or type not in FIELD_TYPES:
            raise ValueError(f"Unsupported field type '{type}' for field '{id}'")

        self.id = id
        self.label = _optional_str(label, "label", id) or id
        self.type = type
        self.required = bool(required)
        self.placeholder = _optional_str(placeholder, "placeholder", id)
        self.description = _optional_str(description, "description", id)
        self.options = _string_list(options, "options", id)
        self.is_repeatable = bool(is_repeatable)
        self.repeatable_group = _optional_str(repeatable_group, "repeatableGroup", id)
        self.sub_fields = _string_list(sub_fields, "subFields", id)

    @property
    def step_index(self) -> int:
        """Zero-based wizard step; fields outside a "step<N>" group belong to the first step."""
        if self.repeatable_group:
            match = _STEP_KEY.match(self.repeatable_group)
            if match and int(match.group(1)) > 0:
                return int(match.group(1)) - 1
        return 0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "label": self.label,
            "type": self.type,
            "required": self.required,
        }
        if self.placeholder is not None:
            data["placeholder"] = self.placeholder
        if self.description is not None:
            data["description"] = self.description
        if self.options is not None:
            data["options"] = self.options
        if self.is_repeatable:
            data["isRepeatable"] = True
        if self.repeatable_group:
            data["repeatableGroup"] = self.repeatable_group
        if self.sub_fields:
            data["subFields"] = self.sub_fields
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateField":
        """Build from the stored JSON shape (camelCase keys, snake_case accepted)."""
        if not isinstance(data, dict):
            raise ValueError("Each field definition must be an object")
        return cls(
            id=data.get("id"),
            label=data.get("label", ""),
            type=data.get("type", "text"),
            required=data.get("required", False),
            placeholder=data.get("placeholder"),
            description=data.get("description"),
            options=data.get("options"),
            is_repeatable=data.get("isRepeatable", data.get("is_repeatable", False)),
            repeatable_group=data.get("repeatableGroup", data.get("repeatable_group")),
            sub_fields=data.get("subFields", data.get("sub_fields")),
        )

    def __repr__(self) -> str:
        return f"TemplateField(id={self.id}, type={self.type}, required={self.required})"


def instance_fields(field: TemplateField, fields: List[TemplateField]) -> List[TemplateField]:
    """Fields every instance of the repeatable ``field`` carries.

    Explicit ``sub_fields`` win, each resolved to the template field of that id
    or to a stand-in sharing the parent's type and ``required`` flag. Otherwise
    the non-repeatable fields sharing the parent's ``repeatable_group`` join it
    as one block.
    """
    by_id = {f.id: f for f in fields}
    if field.sub_fields:
        return [
            by_id.get(key) or TemplateField(key, key, field.type, field.required)
            for key in field.sub_fields
        ]
    siblings = [
        f for f in fields
        if field.repeatable_group and f.repeatable_group == field.repeatable_group and not f.is_repeatable
    ]
    return [field] + siblings


def instance_member_ids(fields: List[TemplateField]) -> Set[str]:
    """Ids of non-repeatable fields that live inside a repeatable instance only."""
    ids: Set[str] = set()
    for field in fields:
        if field.is_repeatable:
            ids.update(f.id for f in instance_fields(field, fields) if not f.is_repeatable)
    return ids


class DocumentTemplate:
    """HTML skeleton with [field_id] tokens plus the ordered field schema"""

    def __init__(
        self,
        id: uuid.UUID,
        name: str,
        template_html: str,
        fields: List[TemplateField],
        description: str = "",
        category_id: Optional[uuid.UUID] = None,
        keywords: Optional[List[str]] = None,
        created_at: Optional[datetime] = None,
    ):
        ids = [f.id for f in fields]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate field ids: {', '.join(duplicates)}")

        self.id = id
        self.name = name
        self.description = description
        self.category_id = category_id
        self.template_html = template_html
        self.fields = list(fields)
        self.keywords = list(keywords or [])
        self.created_at = created_at or utcnow()

    @property
    def repeatable_fields(self) -> List[TemplateField]:
        return [f for f in self.fields if f.is_repeatable]

    @property
    def top_level_fields(self) -> List[TemplateField]:
        """Fields filled once per document: scalars outside any repeatable block, plus the repeatables."""
        members = instance_member_ids(self.fields)
        return [f for f in self.fields if f.id not in members]

    def instance_fields(self, field: TemplateField) -> List[TemplateField]:
        return instance_fields(field, self.fields)

    def get_field(self, field_id: str) -> Optional[TemplateField]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def matches(self, text: str) -> bool:
        """Keyword or name match against free text (case-insensitive)."""
        lowered = text.lower()
        if any(k and k.lower() in lowered for k in self.keywords):
            return True
        return bool(self.name) and self.name.lower() in lowered

    @property
    def pdf_filename(self) -> str:
        return pdf_filename(self.name)

    @classmethod
    def create(
        cls,
        name: str,
        template_html: str,
        fields: List[TemplateField],
        description: str = "",
        category_id: Optional[uuid.UUID] = None,
        keywords: Optional[List[str]] = None,
    ) -> "DocumentTemplate":
        return cls(
            id=uuid.uuid4(),
            name=name,
            template_html=template_html,
            fields=fields,
            description=description,
            category_id=category_id,
            keywords=keywords,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, DocumentTemplate):
            return False
        return self.id == other.id

    def __repr__(self) -> str:
        return f"DocumentTemplate(id={self.id}, name={self.name}, fields={len(self.fields)})"


def pdf_filename(name: str) -> str:
    """Whitespace runs become underscores, plus a .pdf extension."""
    base = re.sub(r"\s+", "_", (name or "").strip()) or "document"
    return f"{base}.pdf"
