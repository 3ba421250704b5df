from typing import List, Optional
import uuid

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.errors import NotFoundError
from finacco.db.models.template import (
    DocumentCategory as CategoryModel,
    DocumentTemplate as TemplateModel,
)
from finacco.domains.templates.entities import DocumentCategory, DocumentTemplate, TemplateField


class CategoryRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, category: DocumentCategory) -> DocumentCategory:
        db_category = CategoryModel(
            uuid=category.id,
            name=category.name,
            description=category.description,
            icon=category.icon,
        )
        self.session.add(db_category)
        await self.session.commit()
        await self.session.refresh(db_category)
        return self._to_domain(db_category)

    async def get(self, category_id: uuid.UUID) -> Optional[DocumentCategory]:
        result = await self.session.execute(select(CategoryModel).where(CategoryModel.uuid == category_id))
        db_category = result.scalar_one_or_none()
        return self._to_domain(db_category) if db_category else None

    async def get_all(self) -> List[DocumentCategory]:
        result = await self.session.execute(select(CategoryModel).order_by(CategoryModel.name))
        return [self._to_domain(c) for c in result.scalars().all()]

    def _to_domain(self, db_category: CategoryModel) -> DocumentCategory:
        return DocumentCategory(
            id=db_category.uuid,
            name=db_category.name,
            description=db_category.description or "",
            icon=db_category.icon or "",
        )


class TemplateRepository:
    """Document templates; the fields column holds the serialized field schema."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, template: DocumentTemplate) -> DocumentTemplate:
        db_template = TemplateModel(
            uuid=template.id,
            name=template.name,
            description=template.description,
            category_id=template.category_id,
            template_html=template.template_html,
            fields=[f.to_dict() for f in template.fields],
            keywords=list(template.keywords),
        )
        self.session.add(db_template)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            raise NotFoundError("Unknown document category")
        await self.session.refresh(db_template)
        return self._to_domain(db_template)

    async def get_by_uuid(self, template_uuid: uuid.UUID) -> Optional[DocumentTemplate]:
        result = await self.session.execute(
            select(TemplateModel).where(TemplateModel.uuid == template_uuid)
        )
        db_template = result.scalar_one_or_none()
        return self._to_domain(db_template) if db_template else None

    async def get_all(self, category_id: Optional[uuid.UUID] = None) -> List[DocumentTemplate]:
        query = select(TemplateModel)
        if category_id:
            query = query.where(TemplateModel.category_id == category_id)
        result = await self.session.execute(query.order_by(TemplateModel.name))
        return [self._to_domain(t) for t in result.scalars().all()]

    async def update(self, template: DocumentTemplate) -> Optional[DocumentTemplate]:
        await self.session.execute(
            update(TemplateModel)
            .where(TemplateModel.uuid == template.id)
            .values(
                name=template.name,
                description=template.description,
                category_id=template.category_id,
                template_html=template.template_html,
                fields=[f.to_dict() for f in template.fields],
                keywords=list(template.keywords),
            )
        )
        await self.session.commit()
        return await self.get_by_uuid(template.id)

    async def delete(self, template_uuid: uuid.UUID) -> bool:
        result = await self.session.execute(
            delete(TemplateModel).where(TemplateModel.uuid == template_uuid)
        )
        await self.session.commit()
        return result.rowcount > 0

    def _to_domain(self, db_template: TemplateModel) -> DocumentTemplate:
        return DocumentTemplate(
            id=db_template.uuid,
            name=db_template.name,
            description=db_template.description or "",
            category_id=db_template.category_id,
            template_html=db_template.template_html,
            fields=[TemplateField.from_dict(f) for f in (db_template.fields or [])],
            keywords=list(db_template.keywords or []),
            created_at=db_template.created_at,
        )
