from typing import Optional
import uuid

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.core.auth import get_current_user
from finacco.core.db import get_db
from finacco.core.errors import NotFoundError
from finacco.domains.identity.entities import User
from finacco.domains.templates.entities import DocumentCategory, DocumentTemplate
from finacco.domains.templates.export import DocumentExporter
from finacco.domains.templates.form import FormController
from finacco.domains.templates.schemas import (
    CategoryResponse, CreateDocumentResponse, DocumentsResponse, FormDataRequest,
    RenderResponse, StepValidationRequest, StepValidationResponse, TemplateDetail, TemplateSummary,
)
from finacco.domains.templates.services import TemplateService

router = APIRouter(tags=["documents"])


def get_exporter() -> DocumentExporter:
    return DocumentExporter()


def category_response(category: DocumentCategory) -> CategoryResponse:
    return CategoryResponse(
        id=category.id,
        name=category.name,
        description=category.description,
        icon=category.icon,
    )


def template_summary(template: DocumentTemplate) -> TemplateSummary:
    return TemplateSummary(
        id=template.id,
        name=template.name,
        description=template.description,
        category_id=template.category_id,
        keywords=template.keywords,
    )


def template_detail(template: DocumentTemplate) -> TemplateDetail:
    return TemplateDetail(
        id=template.id,
        name=template.name,
        description=template.description,
        category_id=template.category_id,
        keywords=template.keywords,
        template_html=template.template_html,
        fields=[f.to_dict() for f in template.fields],
        created_at=template.created_at,
    )


def pdf_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/documents", response_model=DocumentsResponse)
async def list_documents(
    category_id: Optional[uuid.UUID] = Query(None),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Document library: categories and the templates in them."""
    service = TemplateService(db)
    categories = await service.list_categories()
    templates = await service.list_templates(category_id)
    return DocumentsResponse(
        categories=[category_response(c) for c in categories],
        templates=[template_summary(t) for t in templates],
    )


@router.get("/create-document/{template_id}", response_model=CreateDocumentResponse)
async def start_document(
    template_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await TemplateService(db).get_template(template_id)
    controller = FormController(template)
    return CreateDocumentResponse(
        template=template_detail(template),
        steps=[[f.id for f in controller.step_fields(i)] for i in range(controller.step_count)],
        form_data=controller.data,
    )


@router.post("/create-document/{template_id}/validate-step", response_model=StepValidationResponse)
async def validate_step(
    template_id: uuid.UUID,
    body: StepValidationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await TemplateService(db).get_template(template_id)
    controller = FormController(template, body.data)
    if body.step >= controller.step_count:
        raise NotFoundError(f"Template has no step {body.step + 1}")

    result = controller.validate_step(body.step)
    next_step = body.step + 1 if result.valid and body.step + 1 < controller.step_count else None
    return StepValidationResponse(valid=result.valid, errors=result.errors, next_step=next_step)


@router.post("/create-document/{template_id}/render", response_model=RenderResponse)
async def render_document(
    template_id: uuid.UUID,
    body: FormDataRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    template = await TemplateService(db).get_template(template_id)
    html = FormController(template, body.data).submit()
    return RenderResponse(html=html, filename=template.pdf_filename)


@router.post("/create-document/{template_id}/pdf")
async def export_document(
    template_id: uuid.UUID,
    body: FormDataRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    exporter: DocumentExporter = Depends(get_exporter),
):
    template = await TemplateService(db).get_template(template_id)
    html = FormController(template, body.data).submit()
    document = await exporter.export(html, template.name)
    return pdf_response(document.content, document.filename)
