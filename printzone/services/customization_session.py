# printzone/services/customization_session.py
from __future__ import annotations

import logging

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from printzone.core.errors import ContentTypeMismatch, RecordNotFound
from printzone.db.models.enums import ZoneType
from printzone.services.templates import template_service
from printzone.services.zone_persistence import ZonePersistenceService, ZoneWithAssignment

logger = logging.getLogger(__name__)


class ContentBinding(BaseModel):
    page_id: int
    zone_id: int
    type: ZoneType
    text: str | None = None
    image_ref: str | None = None

    @property
    def value(self) -> str | None:
        return self.text if self.type is ZoneType.text else self.image_ref


class CustomizationPage(BaseModel):
    page_id: int
    page_number: int
    preview_image_url: str | None = None
    zones: list[ZoneWithAssignment] = []


class CustomizationSession:
    """
    Заполнение шаблона покупателем: по страницам, контент привязывается к паре
    (страница, зона). Повторяющаяся зона заполняется на каждой странице отдельно.
    """

    def __init__(self, template_id: int, pages: list[CustomizationPage]):
        self.template_id = template_id
        self.pages = sorted(pages, key=lambda p: p.page_number)
        self.current_index = 0
        self.dirty = False
        self._bindings: dict[tuple[int, int], ContentBinding] = {}

    @classmethod
    async def open(cls, db: AsyncSession, service: ZonePersistenceService, template_id: int) -> "CustomizationSession":
        rows = await template_service.list_pages(db, template_id)
        pages = []
        for row in rows:
            zones = await service.load_zones_for_page(row.id)
            pages.append(CustomizationPage(
                page_id=row.id,
                page_number=row.page_number,
                preview_image_url=row.preview_image_url,
                zones=zones,
            ))
        logger.info(f"[Customization] Шаблон {template_id}: {len(pages)} стр., зон {sum(len(p.zones) for p in pages)}")
        return cls(template_id, pages)

    # --- навигация ---

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def current_page(self) -> CustomizationPage | None:
        return self.pages[self.current_index] if self.pages else None

    def next_page(self) -> CustomizationPage | None:
        if self.current_index < len(self.pages) - 1:
            self.current_index += 1
        return self.current_page

    def previous_page(self) -> CustomizationPage | None:
        if self.current_index > 0:
            self.current_index -= 1
        return self.current_page

    def go_to(self, page_number: int) -> CustomizationPage:
        for index, page in enumerate(self.pages):
            if page.page_number == page_number:
                self.current_index = index
                return page
        raise RecordNotFound(f"Template {self.template_id} has no page {page_number}", stage="page")

    # --- контент ---

    def _zone(self, page_id: int, zone_id: int) -> ZoneWithAssignment:
        for page in self.pages:
            if page.page_id != page_id:
                continue
            for zone in page.zones:
                if zone.zone_id == zone_id:
                    return zone
        raise RecordNotFound(f"Zone {zone_id} is not placed on page {page_id}", stage="zone", zone_id=zone_id, page_id=page_id)

    def bind_text(self, page_id: int, zone_id: int, text: str) -> ContentBinding:
        zone = self._zone(page_id, zone_id)
        if zone.type is not ZoneType.text:
            raise ContentTypeMismatch(f"Zone '{zone.name}' accepts images, not text")
        return self._bind(ContentBinding(page_id=page_id, zone_id=zone_id, type=zone.type, text=text))

    def bind_image(self, page_id: int, zone_id: int, image_ref: str) -> ContentBinding:
        zone = self._zone(page_id, zone_id)
        if zone.type is not ZoneType.image:
            raise ContentTypeMismatch(f"Zone '{zone.name}' accepts text, not images")
        return self._bind(ContentBinding(page_id=page_id, zone_id=zone_id, type=zone.type, image_ref=image_ref))

    def _bind(self, binding: ContentBinding) -> ContentBinding:
        self._bindings[(binding.page_id, binding.zone_id)] = binding
        self.dirty = True
        return binding

    def clear(self, page_id: int, zone_id: int) -> None:
        if self._bindings.pop((page_id, zone_id), None) is not None:
            self.dirty = True

    def content_for(self, page_id: int, zone_id: int) -> ContentBinding | None:
        return self._bindings.get((page_id, zone_id))

    def _value(self, page_id: int, zone_id: int) -> str | None:
        binding = self._bindings.get((page_id, zone_id))
        return binding.value if binding else None

    def completion(self) -> tuple[int, int]:
        """(заполнено, всего) по всем парам страница-зона."""
        total = sum(len(p.zones) for p in self.pages)
        return len(self._bindings), total

    def mark_saved(self) -> None:
        self.dirty = False

    def to_design(self) -> dict:
        return {
            "template_id": self.template_id,
            "pages": [
                {
                    "page_id": page.page_id,
                    "page_number": page.page_number,
                    "zones": [
                        {
                            "zone_id": zone.zone_id,
                            "assignment_id": zone.assignment_id,
                            "name": zone.name,
                            "type": zone.type.value,
                            "content": self._value(page.page_id, zone.zone_id),
                        }
                        for zone in page.zones
                    ],
                }
                for page in self.pages
            ],
        }

    def overview(self) -> dict:
        """Страницы и зоны для покупателя, без привязанного контента."""
        return {
            "template_id": self.template_id,
            "page_count": self.page_count,
            "pages": [page.model_dump(mode="json") for page in self.pages],
        }
