# printzone/services/documents.py
"""
Загрузка исходного PDF шаблона и превью его страниц.

Размер страниц берётся из документа как есть (pdfplumber отдаёт его в pt),
по нему потом считаются все размещения зон.
"""
from __future__ import annotations

import asyncio
import io
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pdfplumber
from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from printzone.config import settings
from printzone.core.coordinates import CoordinateSystem
from printzone.core.errors import DocumentIngestionError, RecordNotFound
from printzone.core.units import LengthUnit
from printzone.db.models import Template, TemplatePage, ZonePageAssignment
from printzone.services.templates import template_physical_size

logger = logging.getLogger(__name__)


class IngestionResult(BaseModel):
    success: bool
    message: str
    pages_created: int = 0
    pages_failed: int = 0
    warning: dict | None = None


def read_page_sizes(content: bytes) -> list[tuple[float, float] | None]:
    """Размеры страниц в pt. None для страницы, размер которой прочитать не удалось."""
    sizes: list[tuple[float, float] | None] = []
    with pdfplumber.open(io.BytesIO(content)) as pdf:
        for page in pdf.pages:
            try:
                width, height = float(page.width), float(page.height)
            except Exception as e:
                logger.warning(f"[Documents] Не удалось прочитать размер страницы {page.page_number}: {e}")
                sizes.append(None)
                continue
            sizes.append((round(width, 3), round(height, 3)) if width > 0 and height > 0 else None)
    return sizes


def render_page_png(document_path: Path, page_number: int, dest: Path, resolution: int) -> None:
    with pdfplumber.open(str(document_path)) as pdf:
        if page_number < 1 or page_number > len(pdf.pages):
            raise DocumentIngestionError(f"Document has no page {page_number}")
        pdf.pages[page_number - 1].to_image(resolution=resolution).save(str(dest), format="PNG")


class DocumentService:
    def __init__(self, storage_dir: str | Path | None = None):
        self.storage_dir = Path(storage_dir or settings.STORAGE_DIR)

    def _template_dir(self, template_id: int) -> Path:
        path = self.storage_dir / "templates" / str(template_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    async def ingest(self, db: AsyncSession, template_id: int, filename: str | None, content: bytes) -> IngestionResult:
        """
        Принимает PDF для шаблона: сохраняет файл, заменяет страницы шаблона
        (вместе с их размещениями) страницами документа и обновляет метаданные.
        После успеха вызывающий код должен перечитать страницы шаблона.
        """
        template = await db.get(Template, template_id)
        if template is None:
            raise RecordNotFound(f"Template {template_id} not found", stage="template")

        if not filename or not filename.lower().endswith(".pdf"):
            raise DocumentIngestionError("Only .pdf documents are supported")
        if not content.startswith(b"%PDF"):
            raise DocumentIngestionError("File is not a PDF document")

        logger.info(f"[Documents] Обработка документа '{filename}' для шаблона {template_id} ({len(content)} байт)")
        try:
            sizes = await asyncio.to_thread(read_page_sizes, content)
        except Exception as e:
            logger.error(f"[Documents] Ошибка чтения PDF '{filename}': {e}")
            raise DocumentIngestionError(f"Cannot read PDF: {e}") from e

        if not any(sizes):
            raise DocumentIngestionError("Document has no readable pages")

        # 1) файл на диск
        dst_path = self._template_dir(template_id) / f"{uuid.uuid4().hex}.pdf"
        dst_path.write_bytes(content)

        # 2) старые страницы уходят вместе с размещениями на них
        try:
            old_pages = select(TemplatePage.id).where(TemplatePage.template_id == template_id)
            await db.execute(delete(ZonePageAssignment).where(ZonePageAssignment.page_id.in_(old_pages)))
            await db.execute(delete(TemplatePage).where(TemplatePage.template_id == template_id))

            # 3) новые страницы
            created = failed = 0
            first_size = None
            for number, size in enumerate(sizes, start=1):
                if size is None:
                    failed += 1
                    continue
                first_size = first_size or size
                db.add(TemplatePage(
                    template_id=template_id,
                    page_number=number,
                    native_page_width=size[0],
                    native_page_height=size[1],
                    native_units=LengthUnit.pt.value,
                ))
                created += 1

            # 4) метаданные шаблона
            template.original_document_url = str(dst_path)
            template.document_metadata = {
                "filename": filename,
                "page_count": len(sizes),
                "file_size": len(content),
                "processed_at": datetime.now(timezone.utc).isoformat(),
            }
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            dst_path.unlink(missing_ok=True)
            logger.error(f"[Documents] Ошибка сохранения страниц шаблона {template_id}: {e}")
            raise DocumentIngestionError(f"Failed to save pages: {e}") from e

        warning = None
        physical = template_physical_size(template)
        if first_size is not None and physical is not None:
            system = CoordinateSystem(first_size[0], first_size[1], first_size[0], first_size[1], physical_size=physical)
            mismatch = system.check_dimensions(settings.DIMENSION_TOLERANCE)
            warning = mismatch.to_dict() if mismatch else None

        logger.info(f"[Documents] Шаблон {template_id}: создано страниц {created}, ошибок {failed}")
        return IngestionResult(
            success=True,
            message=f"Processed {created} of {len(sizes)} pages",
            pages_created=created,
            pages_failed=failed,
            warning=warning,
        )

    async def page_preview(self, db: AsyncSession, page_id: int) -> Path:
        """PNG-превью страницы. Рендерится при первом запросе и дальше отдаётся из кэша."""
        page = await db.get(TemplatePage, page_id)
        if page is None:
            raise RecordNotFound(f"Page {page_id} not found", stage="page", page_id=page_id)

        if page.preview_image_url and Path(page.preview_image_url).exists():
            return Path(page.preview_image_url)

        template = await db.get(Template, page.template_id)
        if template is None or not template.original_document_url:
            raise DocumentIngestionError(f"Template of page {page_id} has no document")
        source = Path(template.original_document_url)
        if not source.exists():
            raise DocumentIngestionError(f"Document file is missing: {source.name}")

        dest = self._template_dir(template.id) / f"page_{page.page_number}_{settings.PREVIEW_RESOLUTION}.png"
        logger.info(f"[Documents] Рендер превью страницы {page_id} -> {dest.name}")
        try:
            await asyncio.to_thread(render_page_png, source, page.page_number, dest, settings.PREVIEW_RESOLUTION)
        except DocumentIngestionError:
            raise
        except Exception as e:
            logger.error(f"[Documents] Ошибка рендера страницы {page_id}: {e}")
            raise DocumentIngestionError(f"Cannot render page preview: {e}") from e

        page.preview_image_url = str(dest)
        await db.commit()
        return dest


document_service = DocumentService()
