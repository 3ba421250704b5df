import json
import logging
import uuid
from typing import Any, Dict, List, Optional, Tuple, Union

from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.errors import NotFoundError, RenderError
from finacco.db.repositories.template_repository import CategoryRepository, TemplateRepository
from finacco.domains.templates.entities import DocumentCategory, DocumentTemplate, TemplateField
from finacco.domains.templates.renderer import unknown_placeholders
from finacco.domains.templates.schemas import TemplateCreate, TemplateUpdate

logger = logging.getLogger(__name__)


def parse_fields(fields: Optional[List[Dict[str, Any]]] = None, fields_json: Optional[str] = None) -> List[TemplateField]:
    """Field schema from a parsed list or the editor's JSON text; RenderError when malformed."""
    if fields_json is not None:
        try:
            fields = json.loads(fields_json)
        except json.JSONDecodeError as e:
            raise RenderError(f"Invalid field definitions JSON: {e.msg} (line {e.lineno}, column {e.colno})", code="invalid_fields") from e

    if fields is None:
        raise RenderError("Field definitions are required", code="invalid_fields")
    if not isinstance(fields, list):
        raise RenderError("Field definitions must be a JSON array", code="invalid_fields")

    try:
        return [TemplateField.from_dict(f) for f in fields]
    except ValueError as e:
        raise RenderError(f"Invalid field definition: {e}", code="invalid_fields") from e


def parse_keywords(value: Union[List[str], str, None]) -> List[str]:
    """Keywords as a list or a comma-separated string; blanks dropped."""
    if value is None:
        return []
    items = value.split(",") if isinstance(value, str) else value
    return [k.strip() for k in items if k and k.strip()]


def template_warnings(template: DocumentTemplate) -> List[str]:
    warnings = [f"Placeholder [{p}] has no matching field" for p in unknown_placeholders(template)]
    for field in template.repeatable_fields:
        if f"<!-- START {field.id} -->" not in template.template_html:
            warnings.append(f"Repeatable field '{field.id}' has no <!-- START {field.id} --> block")
    return warnings


def _build(template_id: uuid.UUID, **kwargs) -> DocumentTemplate:
    try:
        return DocumentTemplate(id=template_id, **kwargs)
    except ValueError as e:
        raise RenderError(str(e), code="invalid_fields") from e


class TemplateService:
    """Template registry and the admin template editor"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.category_repository = CategoryRepository(session)
        self.template_repository = TemplateRepository(session)

    async def list_categories(self) -> List[DocumentCategory]:
        return await self.category_repository.get_all()

    async def create_category(self, name: str, description: str = "", icon: str = "file-text") -> DocumentCategory:
        return await self.category_repository.create(DocumentCategory.create(name, description, icon))

    async def list_templates(self, category_id: Optional[uuid.UUID] = None) -> List[DocumentTemplate]:
        return await self.template_repository.get_all(category_id)

    async def get_template(self, template_id: uuid.UUID) -> DocumentTemplate:
        template = await self.template_repository.get_by_uuid(template_id)
        if not template:
            raise NotFoundError("Template not found")
        return template

    async def match_template(self, text: str) -> Optional[DocumentTemplate]:
        """First template (by name) whose keywords or name occur in the text."""
        for template in await self.template_repository.get_all():
            if template.matches(text):
                return template
        return None

    async def _resolve_category(self, category_id: Optional[uuid.UUID]) -> Optional[uuid.UUID]:
        if category_id is not None:
            if not await self.category_repository.get(category_id):
                raise NotFoundError("Unknown document category")
            return category_id
        # The editor preselects the first category
        categories = await self.category_repository.get_all()
        return categories[0].id if categories else None

    async def create_template(self, data: TemplateCreate) -> Tuple[DocumentTemplate, List[str]]:
        template = _build(
            uuid.uuid4(),
            name=data.name.strip(),
            description=data.description,
            category_id=await self._resolve_category(data.category_id),
            template_html=data.template_html,
            fields=parse_fields(data.fields, data.fields_json),
            keywords=parse_keywords(data.keywords),
        )
        template = await self.template_repository.create(template)
        logger.info("Template %s created (%s)", template.id, template.name)
        return template, template_warnings(template)

    async def update_template(self, template_id: uuid.UUID, data: TemplateUpdate) -> Tuple[DocumentTemplate, List[str]]:
        current = await self.get_template(template_id)

        fields = current.fields
        if data.fields is not None or data.fields_json is not None:
            fields = parse_fields(data.fields, data.fields_json)

        template = _build(
            current.id,
            name=data.name.strip() if data.name is not None else current.name,
            description=data.description if data.description is not None else current.description,
            category_id=await self._resolve_category(data.category_id) if data.category_id else current.category_id,
            template_html=data.template_html if data.template_html is not None else current.template_html,
            fields=fields,
            keywords=parse_keywords(data.keywords) if data.keywords is not None else current.keywords,
            created_at=current.created_at,
        )
        template = await self.template_repository.update(template)
        logger.info("Template %s updated", template.id)
        return template, template_warnings(template)

    async def delete_template(self, template_id: uuid.UUID) -> None:
        if not await self.template_repository.delete(template_id):
            raise NotFoundError("Template not found")
        logger.info("Template %s deleted", template_id)
