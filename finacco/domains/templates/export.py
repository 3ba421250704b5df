"""Render filled document HTML to a paginated PDF."""
import asyncio
import logging
import re
from html import escape
from typing import NamedTuple

from finacco.core.config import settings
from finacco.core.errors import RenderError
from finacco.domains.templates.entities import pdf_filename

logger = logging.getLogger(__name__)

try:
    from weasyprint import CSS, HTML

    WEASYPRINT_AVAILABLE = True
except (ImportError, OSError):
    # WeasyPrint needs Pango at import time
    WEASYPRINT_AVAILABLE = False

_FULL_DOCUMENT = re.compile(r"<html[\s>]", re.I)

PAGE_WRAPPER = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{title}</title></head>
<body><div class="document-page">{body}</div></body>
</html>"""


class ExportedDocument(NamedTuple):
    filename: str
    content: bytes
    media_type: str = "application/pdf"


class DocumentExporter:
    """HTML to PDF with a fixed page size and margin; content flows across pages."""

    def __init__(self, page_size: str = None, margin_mm: float = None):
        self.page_size = page_size or settings.pdf_page_size
        self.margin_mm = settings.pdf_margin_mm if margin_mm is None else margin_mm

    def stylesheet(self) -> str:
        return (
            f"@page {{ size: {self.page_size}; margin: {self.margin_mm}mm; }}\n"
            "body { font-family: 'Times New Roman', serif; font-size: 12pt; line-height: 1.5; color: #000; }\n"
            ".document-page { width: 100%; }\n"
            "table { width: 100%; border-collapse: collapse; }\n"
            "tr, img { page-break-inside: avoid; }\n"
        )

    def wrap(self, html: str, title: str = "Document") -> str:
        # Generated documents may already be complete pages
        if _FULL_DOCUMENT.search(html):
            return html
        return PAGE_WRAPPER.format(title=escape(title), body=html)

    def to_pdf(self, html: str, title: str = "Document") -> bytes:
        if not WEASYPRINT_AVAILABLE:
            raise RenderError("PDF generation is not available on this server", code="pdf_unavailable")
        try:
            document = HTML(string=self.wrap(html, title))
            return document.write_pdf(stylesheets=[CSS(string=self.stylesheet())])
        except Exception as e:
            logger.error("PDF export failed: %s", e)
            raise RenderError("Failed to generate PDF") from e

    async def export(self, html: str, name: str) -> ExportedDocument:
        """Produce ``<name with underscores>.pdf`` off the event loop."""
        content = await asyncio.to_thread(self.to_pdf, html, name)
        filename = pdf_filename(name)
        logger.info("Exported %s (%d bytes)", filename, len(content))
        return ExportedDocument(filename=filename, content=content)
