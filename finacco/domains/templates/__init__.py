from finacco.domains.templates.entities import DocumentCategory, DocumentTemplate, TemplateField, pdf_filename

__all__ = ["DocumentCategory", "DocumentTemplate", "TemplateField", "pdf_filename"]
