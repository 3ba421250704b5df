from typing import List
import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from finacco.api.http.auth import session_response
from finacco.api.http.documents import category_response, template_detail
from finacco.core.auth import require_admin
from finacco.core.db import get_db
from finacco.core.errors import PermissionDeniedError
from finacco.domains.identity.entities import User
from finacco.domains.identity.schemas import SessionResponse, SignInRequest
from finacco.domains.identity.services import IdentityService
from finacco.domains.profiles.services import ProfileService
from finacco.domains.templates.schemas import (
    CategoryCreate, CategoryResponse, TemplateCreate, TemplateDetail, TemplateSaveResponse, TemplateUpdate,
)
from finacco.domains.templates.services import TemplateService

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post("/login", response_model=SessionResponse)
async def admin_login(data: SignInRequest, db: AsyncSession = Depends(get_db)):
    """Password sign-in that only succeeds for admin profiles."""
    identity = IdentityService(db)
    session = await identity.sign_in_with_password(data.email, data.password)
    if not await ProfileService(db).is_admin(session.user_id):
        await identity.sign_out(session.refresh_token)
        raise PermissionDeniedError("Admin access required")
    return session_response(session)


@router.get("/templates", response_model=List[TemplateDetail])
async def list_templates(admin: User = Depends(require_admin), db: AsyncSession = Depends(get_db)):
    templates = await TemplateService(db).list_templates()
    return [template_detail(t) for t in templates]


@router.post("/templates", response_model=TemplateSaveResponse, status_code=status.HTTP_201_CREATED)
async def create_template(
    data: TemplateCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    template, warnings = await TemplateService(db).create_template(data)
    return TemplateSaveResponse(template=template_detail(template), warnings=warnings)


@router.put("/templates/{template_id}", response_model=TemplateSaveResponse)
async def update_template(
    template_id: uuid.UUID,
    data: TemplateUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    template, warnings = await TemplateService(db).update_template(template_id, data)
    return TemplateSaveResponse(template=template_detail(template), warnings=warnings)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(
    template_id: uuid.UUID,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    await TemplateService(db).delete_template(template_id)


@router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(
    data: CategoryCreate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    category = await TemplateService(db).create_category(data.name, data.description, data.icon)
    return category_response(category)
