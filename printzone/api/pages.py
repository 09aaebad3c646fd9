# printzone/api/pages.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from pydantic import BaseModel, Field, field_serializer
from sqlalchemy.ext.asyncio import AsyncSession

from printzone.core.coordinates import CanvasSize, Rect, vector_rect_to_canvas
from printzone.core.zone_geometry import ZoneGeometry
from printzone.db.models.enums import ZoneType
from printzone.db.models.user import User
from printzone.db.session import get_db
from printzone.services.auth_service import get_current_user, require_operator
from printzone.services.documents import document_service
from printzone.services.templates import PageLayout, template_canvas, template_service
from printzone.services.zone_persistence import ZonePersistenceService, get_zone_service

router = APIRouter(prefix="/pages", tags=["pages"])


class ZoneOut(BaseModel):
    zone_id: int
    assignment_id: int
    name: str
    type: ZoneType
    z_index: int
    is_repeating: bool
    inherited: bool
    page_id: int
    # страница, на которой лежит строка размещения (для повторяющейся - якорь)
    anchor_page_id: int
    # геометрия в единицах страницы
    native: Rect
    native_unit: str
    # та же геометрия на холсте редактора
    canvas: Rect | None

    @field_serializer("native", "canvas")
    def serialize_rect(self, rect: Rect | None) -> dict | None:
        return rect._asdict() if rect is not None else None


class ZoneCreate(BaseModel):
    type: ZoneType
    name: str | None = None
    # без геометрии зона встаёт на сетку с размером по умолчанию
    x: float | None = None
    y: float | None = None
    width: float | None = None
    height: float | None = None
    z_index: int | None = None
    is_repeating: bool = False
    canvas_width: float = Field(gt=0)
    canvas_height: float = Field(gt=0)


async def _canvas(db: AsyncSession, page_id: int, width: float | None, height: float | None) -> CanvasSize:
    if width and height:
        return CanvasSize(width=width, height=height)
    if width or height:
        raise HTTPException(status_code=422, detail="Pass both canvas_width and canvas_height or neither")
    _, template = await template_service.get_page(db, page_id)
    return template_canvas(template)


@router.get("/{page_id}/preview")
async def page_preview(
    page_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    path = await document_service.page_preview(db, page_id)
    return FileResponse(path=str(path), media_type="image/png")


@router.get("/{page_id}/layout", response_model=PageLayout)
async def page_layout(
    page_id: int,
    canvas_width: float | None = None,
    canvas_height: float | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    canvas = await _canvas(db, page_id, canvas_width, canvas_height)
    return await template_service.page_layout(db, page_id, canvas)


@router.get("/{page_id}/zones", response_model=list[ZoneOut])
async def page_zones(
    page_id: int,
    canvas_width: float | None = None,
    canvas_height: float | None = None,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    canvas = await _canvas(db, page_id, canvas_width, canvas_height)
    native = await zone_service.page_native_size(page_id)
    zones = await zone_service.load_zones_for_page(page_id)

    out = []
    for z in zones:
        shown = None
        if native is not None:
            shown = vector_rect_to_canvas(z.rect, canvas.width, canvas.height, native.width, native.height)
        out.append(ZoneOut(
            zone_id=z.zone_id,
            assignment_id=z.assignment_id,
            name=z.name,
            type=z.type,
            z_index=z.z_index,
            is_repeating=z.is_repeating,
            inherited=z.inherited,
            page_id=z.page_id,
            anchor_page_id=z.anchor_page_id,
            native=z.rect,
            native_unit=z.native_unit.value,
            canvas=shown,
        ))
    return out


@router.post("/{page_id}/zones", status_code=201)
async def create_zone(
    page_id: int,
    payload: ZoneCreate,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    page, template = await template_service.get_page(db, page_id)
    existing = await zone_service.load_zones_for_page(page.id)

    zone = ZoneGeometry.new(payload.type, len(existing), name=payload.name)
    geometry = {k: v for k, v in payload.model_dump(include={"x", "y", "width", "height", "z_index"}).items() if v is not None}
    geometry["is_repeating"] = payload.is_repeating
    zone.update(**geometry)

    canvas = CanvasSize(width=payload.canvas_width, height=payload.canvas_height)
    await zone_service.create_zone(template.id, zone, page.id, canvas)
    return zone.to_dict()
