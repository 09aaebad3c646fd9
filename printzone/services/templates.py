# printzone/services/templates.py
from __future__ import annotations

import logging
from datetime import datetime, timezone

from pydantic import BaseModel
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from printzone.config import settings
from printzone.core.coordinates import CanvasSize, CoordinateSystem, fit_canvas_size
from printzone.core.dimensions import BleedSettings, PhysicalSize, format_dimensions_display, try_parse_dimensions
from printzone.core.errors import RecordNotFound, TemplateInUse
from printzone.core.guides import PrintGuides, compute_print_guides
from printzone.core.pdf_builder import ProofPage, ProofZone, template_proof_pdf_bytes
from printzone.db.models import (
    CustomizationZone,
    Template,
    TemplatePage,
    TemplateProduct,
    User,
    ZonePageAssignment,
)
from printzone.services.zone_persistence import ZonePersistenceService, resolve_native_size

logger = logging.getLogger(__name__)

TEMPLATE_FIELDS = ("name", "description", "category", "is_active", "dimensions", "bleed_settings")


class PageLayout(BaseModel):
    """Всё, что редактору нужно знать о странице, чтобы рисовать зоны на холсте."""
    page_id: int
    page_number: int
    canvas: CanvasSize
    native_width: float
    native_height: float
    native_unit: str
    native_display: str
    scale_x: float
    scale_y: float
    scale_factor: tuple[float, float]
    dimensions_match: bool
    warning: dict | None = None
    guides: PrintGuides


def template_physical_size(template: Template) -> PhysicalSize | None:
    return try_parse_dimensions(template.dimensions)


def template_bleed(template: Template) -> BleedSettings:
    return BleedSettings.from_stored(template.bleed_settings, default=settings.DEFAULT_BLEED_MM)


def template_canvas(template: Template) -> CanvasSize:
    return fit_canvas_size(
        template_physical_size(template),
        settings.CANVAS_MAX_WIDTH,
        settings.CANVAS_MAX_HEIGHT,
        default=(settings.DEFAULT_CANVAS_WIDTH, settings.DEFAULT_CANVAS_HEIGHT),
        dpi=settings.SCREEN_DPI,
    )


def coordinate_system_for(page: TemplatePage, template: Template, canvas: CanvasSize) -> CoordinateSystem:
    native = resolve_native_size(page, template)
    return CoordinateSystem(
        canvas.width,
        canvas.height,
        native.width,
        native.height,
        physical_size=template_physical_size(template),
        native_unit=native.unit,
        dpi=settings.SCREEN_DPI,
    )


class TemplateService:
    async def create(self, db: AsyncSession, user: User | None, **fields) -> Template:
        fields.setdefault("dimensions", settings.DEFAULT_DIMENSIONS)
        if fields.get("bleed_settings") is None:
            fields["bleed_settings"] = BleedSettings(
                top=settings.DEFAULT_BLEED_MM,
                right=settings.DEFAULT_BLEED_MM,
                bottom=settings.DEFAULT_BLEED_MM,
                left=settings.DEFAULT_BLEED_MM,
            ).to_stored()

        template = Template(created_by=user.id if user else None, **fields)
        db.add(template)
        await db.commit()
        await db.refresh(template)
        logger.info(f"[Templates] Создан шаблон {template.id} '{template.name}' ({template.dimensions})")
        return template

    async def list_templates(self, db: AsyncSession, active_only: bool = False) -> list[Template]:
        query = select(Template).order_by(Template.updated_at.desc(), Template.id.desc())
        if active_only:
            query = query.where(Template.is_active.is_(True))
        res = await db.execute(query)
        return list(res.scalars().all())

    async def get(self, db: AsyncSession, template_id: int) -> Template:
        template = await db.get(Template, template_id)
        if template is None:
            raise RecordNotFound(f"Template {template_id} not found", stage="template")
        return template

    async def update(self, db: AsyncSession, template_id: int, fields: dict) -> Template:
        template = await self.get(db, template_id)
        for name, value in fields.items():
            if name not in TEMPLATE_FIELDS:
                raise ValueError(f"Unknown template field: {name}")
            setattr(template, name, value)
        await db.commit()
        await db.refresh(template)
        logger.info(f"[Templates] Шаблон {template_id} обновлён: {sorted(fields)}")
        return template

    async def delete(self, db: AsyncSession, template_id: int) -> None:
        """Удаляет шаблон со страницами, зонами и размещениями. Нельзя, пока есть ссылки товаров."""
        template = await self.get(db, template_id)

        products = await db.scalar(
            select(func.count()).select_from(TemplateProduct).where(TemplateProduct.template_id == template_id)
        )
        if products:
            raise TemplateInUse(f"Template {template_id} is used by {products} product(s)")

        zone_ids = select(CustomizationZone.id).where(CustomizationZone.template_id == template_id)
        page_ids = select(TemplatePage.id).where(TemplatePage.template_id == template_id)
        await db.execute(
            delete(ZonePageAssignment).where(
                ZonePageAssignment.zone_id.in_(zone_ids) | ZonePageAssignment.page_id.in_(page_ids)
            )
        )
        await db.execute(delete(CustomizationZone).where(CustomizationZone.template_id == template_id))
        await db.execute(delete(TemplatePage).where(TemplatePage.template_id == template_id))
        await db.execute(delete(Template).where(Template.id == template.id))
        await db.commit()
        logger.info(f"[Templates] Шаблон {template_id} удалён")

    async def list_pages(self, db: AsyncSession, template_id: int) -> list[TemplatePage]:
        await self.get(db, template_id)
        res = await db.execute(
            select(TemplatePage)
            .where(TemplatePage.template_id == template_id)
            .order_by(TemplatePage.page_number.asc())
        )
        return list(res.scalars().all())

    async def get_page(self, db: AsyncSession, page_id: int) -> tuple[TemplatePage, Template]:
        page = await db.get(TemplatePage, page_id)
        if page is None:
            raise RecordNotFound(f"Page {page_id} not found", stage="page", page_id=page_id)
        template = await self.get(db, page.template_id)
        return page, template

    async def page_layout(self, db: AsyncSession, page_id: int, canvas: CanvasSize | None = None) -> PageLayout:
        page, template = await self.get_page(db, page_id)
        canvas = canvas or template_canvas(template)
        system = coordinate_system_for(page, template, canvas)

        warning = system.check_dimensions(settings.DIMENSION_TOLERANCE)
        guides = compute_print_guides(canvas, template_physical_size(template), template_bleed(template), settings.SCREEN_DPI)

        return PageLayout(
            page_id=page.id,
            page_number=page.page_number,
            canvas=canvas,
            native_width=system.native_width,
            native_height=system.native_height,
            native_unit=system.native_unit.value,
            native_display=format_dimensions_display(system.native_width, system.native_height, system.native_unit.value),
            scale_x=system.scale_x,
            scale_y=system.scale_y,
            scale_factor=system.scale_factor(),
            dimensions_match=warning is None,
            warning=warning.to_dict() if warning else None,
            guides=guides,
        )

    async def proof(self, db: AsyncSession, zone_service: ZonePersistenceService, template_id: int) -> bytes:
        """Корректурный PDF: страницы в нативном размере, направляющие и контуры зон."""
        template = await self.get(db, template_id)
        proof_pages = []
        for page in await self.list_pages(db, template_id):
            native = resolve_native_size(page, template)
            zones = await zone_service.load_zones_for_page(page.id)
            proof_pages.append(ProofPage(
                page_number=page.page_number,
                width=native.width,
                height=native.height,
                unit=native.unit,
                zones=[ProofZone(z.name, z.type.value, z.rect, z.is_repeating) for z in zones],
            ))
        if not proof_pages:
            raise RecordNotFound(f"Template {template_id} has no pages yet", stage="page")
        return template_proof_pdf_bytes(
            proof_pages, template_bleed(template), template_physical_size(template), title=template.name
        )

    async def export(self, db: AsyncSession, template_id: int) -> dict:
        """Шаблон целиком одним JSON-документом: страницы, зоны и их размещения."""
        template = await self.get(db, template_id)
        pages = await self.list_pages(db, template_id)

        res = await db.execute(
            select(CustomizationZone)
            .where(CustomizationZone.template_id == template_id)
            .order_by(CustomizationZone.z_index.asc(), CustomizationZone.id.asc())
        )
        zones = list(res.scalars().all())

        res = await db.execute(
            select(ZonePageAssignment)
            .join(CustomizationZone, CustomizationZone.id == ZonePageAssignment.zone_id)
            .where(CustomizationZone.template_id == template_id)
            .order_by(ZonePageAssignment.id.asc())
        )
        by_zone: dict[int, list[dict]] = {}
        for a in res.scalars().all():
            by_zone.setdefault(a.zone_id, []).append({
                "id": a.id,
                "page_id": a.page_id,
                "x": a.x,
                "y": a.y,
                "width": a.width,
                "height": a.height,
                "z_index": a.z_index,
                "is_repeating": a.is_repeating,
            })

        return {
            "template": template_to_dict(template),
            "pages": [page_to_dict(p) for p in pages],
            "zones": [
                {
                    "id": z.id,
                    "name": z.name,
                    "type": z.type.value,
                    "x": z.x,
                    "y": z.y,
                    "width": z.width,
                    "height": z.height,
                    "z_index": z.z_index,
                    "assignments": by_zone.get(z.id, []),
                }
                for z in zones
            ],
            "exported_at": datetime.now(timezone.utc).isoformat(),
        }


def template_to_dict(template: Template) -> dict:
    return {
        "id": template.id,
        "name": template.name,
        "description": template.description,
        "category": template.category,
        "is_active": template.is_active,
        "dimensions": template.dimensions,
        "bleed_settings": template_bleed(template).to_stored(),
        "original_document_url": template.original_document_url,
        "document_metadata": template.document_metadata,
        "canvas": template_canvas(template).model_dump(),
        "created_at": template.created_at.isoformat() if template.created_at else None,
        "updated_at": template.updated_at.isoformat() if template.updated_at else None,
    }


def page_to_dict(page: TemplatePage) -> dict:
    return {
        "id": page.id,
        "template_id": page.template_id,
        "page_number": page.page_number,
        "preview_image_url": page.preview_image_url,
        "native_page_width": page.native_page_width,
        "native_page_height": page.native_page_height,
        "native_units": page.native_units,
    }


template_service = TemplateService()
