# printzone/api/templates.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import JSONResponse, Response
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.ext.asyncio import AsyncSession

from printzone.core.coordinates import CanvasSize
from printzone.core.dimensions import BleedSettings, parse_dimensions
from printzone.core.zone_geometry import ZoneGeometry, default_zone_name
from printzone.db.models.enums import ZoneType
from printzone.db.models.user import User
from printzone.db.session import get_db
from printzone.services.auth_service import get_current_user, require_operator
from printzone.services.customization_session import CustomizationSession
from printzone.services.documents import IngestionResult, document_service
from printzone.services.editing_session import ZoneEditingSession
from printzone.services.templates import page_to_dict, template_service, template_to_dict
from printzone.services.zone_persistence import ZonePersistenceService, get_zone_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/templates", tags=["templates"])

PARTIAL_SAVE_MESSAGE = "Template saved, but some zones may be missing"


class TemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    category: str = Field(default="calendar", max_length=64)
    is_active: bool = False
    dimensions: str | None = None
    bleed_settings: BleedSettings | None = None

    @field_validator("dimensions")
    @classmethod
    def check_dimensions(cls, v):
        # "210x297mm" и ничего другого: угадывать формат не пытаемся
        if v is not None:
            parse_dimensions(v)
        return v


class TemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(default=None, max_length=64)
    is_active: bool | None = None
    dimensions: str | None = None
    bleed_settings: BleedSettings | None = None

    @field_validator("dimensions")
    @classmethod
    def check_dimensions(cls, v):
        if v is not None:
            parse_dimensions(v)
        return v


class TemplateOut(BaseModel):
    id: int
    name: str
    description: str | None
    category: str
    is_active: bool
    dimensions: str | None
    bleed_settings: dict
    original_document_url: str | None
    document_metadata: dict | None
    canvas: dict
    created_at: str | None
    updated_at: str | None


class PageOut(BaseModel):
    id: int
    template_id: int
    page_number: int
    preview_image_url: str | None
    native_page_width: float | None
    native_page_height: float | None
    native_units: str | None


class ZoneIn(BaseModel):
    id: int | None = None
    assignment_id: int | None = None
    name: str | None = None
    type: ZoneType
    x: float
    y: float
    width: float
    height: float
    z_index: int = 0
    is_repeating: bool = False


class ZoneSetIn(BaseModel):
    """Полный желаемый набор зон страницы, геометрия в пикселях холста."""
    page_id: int
    canvas_width: float = Field(gt=0)
    canvas_height: float = Field(gt=0)
    is_new_template: bool = False
    zones: list[ZoneIn]


def _out(template) -> TemplateOut:
    return TemplateOut(**template_to_dict(template))


@router.get("", response_model=list[TemplateOut])
async def list_templates(
    active_only: bool = False,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [_out(t) for t in await template_service.list_templates(db, active_only=active_only)]


@router.post("", response_model=TemplateOut, status_code=201)
async def create_template(
    payload: TemplateCreate,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    fields = payload.model_dump(exclude_none=True)
    if payload.bleed_settings is not None:
        fields["bleed_settings"] = payload.bleed_settings.to_stored()
    template = await template_service.create(db, user, **fields)
    return _out(template)


@router.get("/{template_id}", response_model=TemplateOut)
async def get_template(
    template_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return _out(await template_service.get(db, template_id))


@router.patch("/{template_id}", response_model=TemplateOut)
async def update_template(
    template_id: int,
    payload: TemplateUpdate,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    fields = payload.model_dump(exclude_unset=True)
    if payload.bleed_settings is not None:
        fields["bleed_settings"] = payload.bleed_settings.to_stored()
    return _out(await template_service.update(db, template_id, fields))


@router.delete("/{template_id}", status_code=204)
async def delete_template(
    template_id: int,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    await template_service.delete(db, template_id)
    return Response(status_code=204)


@router.post("/{template_id}/document", response_model=IngestionResult)
async def upload_document(
    template_id: int,
    file: UploadFile = File(...),
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is empty")
    content = await file.read()
    return await document_service.ingest(db, template_id, file.filename, content)


@router.get("/{template_id}/pages", response_model=list[PageOut])
async def list_pages(
    template_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return [PageOut(**page_to_dict(p)) for p in await template_service.list_pages(db, template_id)]


@router.get("/{template_id}/proof.pdf")
async def template_proof(
    template_id: int,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    pdf_bytes = await template_service.proof(db, zone_service, template_id)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="template_{template_id}_proof.pdf"'},
    )


@router.put("/{template_id}/zones")
async def save_template_zones(
    template_id: int,
    payload: ZoneSetIn,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    """
    Массовое сохранение ("Save Template"): сверка желаемого набора зон страницы
    с сохранённым. При частичном сбое 207 и отчёт по каждой зоне.
    """
    page, _ = await template_service.get_page(db, payload.page_id)
    if page.template_id != template_id:
        raise HTTPException(status_code=404, detail="Page not found in this template")

    canvas = CanvasSize(width=payload.canvas_width, height=payload.canvas_height)
    session = ZoneEditingSession(
        zone_service, template_id, page.id, canvas, is_new_template=payload.is_new_template
    )
    try:
        for index, item in enumerate(payload.zones, start=1):
            session.adopt(ZoneGeometry(
                type=item.type,
                name=item.name or default_zone_name(item.type, index),
                x=item.x,
                y=item.y,
                width=item.width,
                height=item.height,
                z_index=item.z_index,
                is_repeating=item.is_repeating,
                zone_id=item.id,
                assignment_id=item.assignment_id,
            ))
        report = await session.save()
        zones = [zone.to_dict() for zone in session.zones]
    finally:
        session.close()

    if not report.ok:
        logger.warning(f"[Templates] Шаблон {template_id} сохранён частично: {len(report.failures)} ошибок")
        return JSONResponse(
            status_code=207,
            content={"message": PARTIAL_SAVE_MESSAGE, "report": report.to_dict(), "zones": zones},
        )
    return {"message": "Template saved", "report": report.to_dict(), "zones": zones}


@router.get("/{template_id}/customization")
async def template_customization(
    template_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    zone_service: ZonePersistenceService = Depends(get_zone_service),
):
    session = await CustomizationSession.open(db, zone_service, template_id)
    return session.overview()


@router.get("/{template_id}/export")
async def export_template(
    template_id: int,
    user: User = Depends(require_operator),
    db: AsyncSession = Depends(get_db),
):
    return await template_service.export(db, template_id)
