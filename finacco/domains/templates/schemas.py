from datetime import datetime
from typing import Any, Dict, List, Optional, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field


class CategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: str = ""
    icon: str = ""

    model_config = ConfigDict(from_attributes=True)


class CategoryCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    icon: str = "file-text"


class TemplateSummary(BaseModel):
    id: uuid.UUID
    name: str
    description: str = ""
    category_id: Optional[uuid.UUID] = None
    keywords: List[str] = []


class TemplateDetail(TemplateSummary):
    template_html: str
    fields: List[Dict[str, Any]]
    created_at: Optional[datetime] = None


class DocumentsResponse(BaseModel):
    """Document library: categories plus every template"""
    categories: List[CategoryResponse]
    templates: List[TemplateSummary]


class CreateDocumentResponse(BaseModel):
    template: TemplateDetail
    steps: List[List[str]]
    form_data: Dict[str, Any]


class FormDataRequest(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)


class StepValidationRequest(FormDataRequest):
    step: int = Field(0, ge=0)


class StepValidationResponse(BaseModel):
    valid: bool
    errors: Dict[str, str]
    next_step: Optional[int] = None


class RenderResponse(BaseModel):
    html: str
    filename: str


class TemplateCreate(BaseModel):
    """Admin payload. Fields may arrive parsed or as the raw JSON editor text."""
    name: str = Field(..., min_length=1, max_length=200)
    description: str = ""
    category_id: Optional[uuid.UUID] = None
    template_html: str = Field(..., min_length=1)
    fields: Optional[List[Dict[str, Any]]] = None
    fields_json: Optional[str] = None
    keywords: Union[List[str], str] = Field(default_factory=list)


class TemplateUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    category_id: Optional[uuid.UUID] = None
    template_html: Optional[str] = Field(None, min_length=1)
    fields: Optional[List[Dict[str, Any]]] = None
    fields_json: Optional[str] = None
    keywords: Optional[Union[List[str], str]] = None


class TemplateSaveResponse(BaseModel):
    template: TemplateDetail
    warnings: List[str] = []
