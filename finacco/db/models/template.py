from sqlalchemy import JSON, Uuid, Column, ForeignKey, String, Text
from sqlalchemy.orm import relationship

from finacco.db.base import BaseModel


class DocumentCategory(BaseModel):
    __tablename__ = "document_categories"

    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    icon = Column(String(64), default="file-text")

    templates = relationship("DocumentTemplate", back_populates="category")


class DocumentTemplate(BaseModel):
    __tablename__ = "document_templates"

    name = Column(String(255), nullable=False)
    description = Column(Text, default="")
    category_id = Column(Uuid(as_uuid=True), ForeignKey("document_categories.uuid"), nullable=True)
    template_html = Column(Text, nullable=False)
    fields = Column(JSON, nullable=False, default=list)
    keywords = Column(JSON, nullable=False, default=list)

    category = relationship("DocumentCategory", back_populates="templates")
