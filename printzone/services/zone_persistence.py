# printzone/services/zone_persistence.py
"""
Сохранение зон: определения зон (customization_zones) отдельно от их размещения
на страницах (zone_page_assignments).

Зона хранит эталонную геометрию в пикселях холста, размещение - геометрию в
нативных единицах своей страницы. Перевод холст -> документ делается здесь,
перед записью, обратный - в вызывающем коде через CoordinateSystem.

Каждая публичная операция открывает свою короткую сессию: при массовом
сохранении шаблона падение одной зоны не мешает остальным.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from pydantic import BaseModel
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from printzone.core.coordinates import (
    CanvasSize,
    Rect,
    canvas_rect_to_vector,
    rescale_vector_rect,
    vector_rect_to_canvas,
)
from printzone.core.dimensions import try_parse_dimensions
from printzone.core.errors import (
    ImmutableZoneType,
    InvalidDimensions,
    PartialReconciliationFailure,
    PersistenceFailure,
    RecordNotFound,
    ZoneEngineError,
)
from printzone.core.units import LengthUnit, convert
from printzone.core.zone_geometry import ZoneGeometry, check_size
from printzone.db.models import CustomizationZone, Template, TemplatePage, ZonePageAssignment, ZoneType
from printzone.db.session import AsyncSessionLocal

logger = logging.getLogger(__name__)

ASSIGNMENT_FIELDS = ("x", "y", "width", "height", "z_index", "is_repeating")
# точность сравнения в пикселях холста (координаты холста округляются до 0.01)
_CANVAS_EPSILON = 0.006


class ZoneWithAssignment(BaseModel):
    """Зона вместе с её размещением на конкретной странице. Геометрия в нативных единицах страницы."""
    zone_id: int
    template_id: int
    name: str
    type: ZoneType
    x: float
    y: float
    width: float
    height: float
    z_index: int
    assignment_id: int
    page_id: int
    anchor_page_id: int
    is_repeating: bool = False
    # True, если геометрия пересчитана с якорной страницы повторяющейся зоны
    inherited: bool = False
    native_unit: LengthUnit = LengthUnit.pt

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)


@dataclass
class NativeSize:
    width: float
    height: float
    unit: LengthUnit = LengthUnit.pt


@dataclass
class ReconcileFailure:
    operation: str
    zone_id: int | None
    name: str
    error: str


@dataclass
class ReconciliationReport:
    inserted: list[int] = field(default_factory=list)
    updated: list[int] = field(default_factory=list)
    deleted: list[int] = field(default_factory=list)
    unchanged: list[int] = field(default_factory=list)
    failures: list[ReconcileFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        if self.failures:
            raise PartialReconciliationFailure(self)

    def to_dict(self) -> dict:
        return {
            "inserted": self.inserted,
            "updated": self.updated,
            "deleted": self.deleted,
            "unchanged": self.unchanged,
            "failures": [f.__dict__ for f in self.failures],
        }


def resolve_native_size(page: TemplatePage, template: Template | None = None) -> NativeSize:
    """
    Размер страницы в нативных единицах. Если документ не сообщил размер,
    берётся заявленный физический размер шаблона в пунктах.
    """
    if page.native_page_width and page.native_page_height:
        unit = LengthUnit(page.native_units or "pt")
        return NativeSize(page.native_page_width, page.native_page_height, unit)

    size = try_parse_dimensions(template.dimensions) if template is not None else None
    if size is not None:
        width, height = size.to_unit(LengthUnit.pt)
        return NativeSize(round(width, 3), round(height, 3), LengthUnit.pt)

    raise InvalidDimensions(f"Page {page.id} has no native size and its template declares none")


def rescale_between(rect: Rect, source: NativeSize, target: NativeSize) -> Rect:
    """Геометрия в единицах страницы source -> пропорционально в единицах страницы target."""
    in_target_units = Rect(*(convert(v, source.unit, target.unit) for v in rect))
    return rescale_vector_rect(
        in_target_units,
        convert(source.width, source.unit, target.unit),
        convert(source.height, source.unit, target.unit),
        target.width,
        target.height,
    )


def _assignment_rect(assignment: ZonePageAssignment) -> Rect:
    return Rect(assignment.x, assignment.y, assignment.width, assignment.height)


def _same_geometry(a: Rect, b: Rect) -> bool:
    return all(abs(p - q) <= _CANVAS_EPSILON for p, q in zip(a, b))


class ZonePersistenceService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # ----------------------------
    # Helpers
    # ----------------------------
    async def _get_page(self, db: AsyncSession, page_id: int) -> TemplatePage:
        page = await db.get(TemplatePage, page_id)
        if page is None:
            raise RecordNotFound(f"Page {page_id} not found", stage="page", page_id=page_id)
        return page

    async def _native_size(self, db: AsyncSession, page: TemplatePage) -> NativeSize:
        template = None
        if not (page.native_page_width and page.native_page_height):
            template = await db.get(Template, page.template_id)
        return resolve_native_size(page, template)

    async def _insert_assignment(
        self,
        db: AsyncSession,
        zone_id: int,
        page_id: int,
        rect: Rect,
        z_index: int,
        is_repeating: bool,
    ) -> ZonePageAssignment:
        assignment = ZonePageAssignment(
            zone_id=zone_id,
            page_id=page_id,
            x=rect.x,
            y=rect.y,
            width=rect.width,
            height=rect.height,
            z_index=z_index,
            is_repeating=is_repeating,
        )
        db.add(assignment)
        await db.flush()
        return assignment

    async def _page_native_rect(
        self, db: AsyncSession, page: TemplatePage, draft: ZoneGeometry, canvas: CanvasSize
    ) -> tuple[Rect, NativeSize]:
        native = await self._native_size(db, page)
        rect = canvas_rect_to_vector(draft.rect, canvas.width, canvas.height, native.width, native.height)
        return rect, native

    async def _stored_zone_types(self, template_id: int, zone_ids: set[int]) -> dict[int, ZoneType]:
        """{zone_id: type} для тех zone_ids, что есть в базе у этого шаблона."""
        if not zone_ids:
            return {}
        async with self._session_factory() as db:
            try:
                res = await db.execute(
                    select(CustomizationZone.id, CustomizationZone.type).where(
                        CustomizationZone.template_id == template_id,
                        CustomizationZone.id.in_(zone_ids),
                    )
                )
                return {zone_id: zone_type for zone_id, zone_type in res.all()}
            except SQLAlchemyError as e:
                logger.error(f"[ZonePersistence] Ошибка поиска зон шаблона {template_id}: {e}")
                raise PersistenceFailure(f"Failed to load zones: {e}", stage="load") from e

    # ----------------------------
    # Create
    # ----------------------------
    async def create_zone(self, template_id: int, draft: ZoneGeometry, page_id: int, canvas: CanvasSize) -> int:
        """
        Создаёт зону и её размещение на странице в одной транзакции.
        Если вставка размещения упала, вставка зоны откатывается: зона без
        размещения в базе не остаётся. Заполняет draft.zone_id и draft.assignment_id.
        """
        check_size(draft.width, draft.height)
        logger.info(f"[ZonePersistence] Сохранение зоны '{draft.name}' на страницу {page_id}")

        async with self._session_factory() as db:
            stage = "zone"
            try:
                page = await self._get_page(db, page_id)
                if page.template_id != template_id:
                    raise PersistenceFailure(
                        f"Page {page_id} does not belong to template {template_id}",
                        stage="page",
                        page_id=page_id,
                    )
                vector, _ = await self._page_native_rect(db, page, draft, canvas)

                zone = CustomizationZone(
                    template_id=template_id,
                    name=draft.name,
                    type=draft.type,
                    x=draft.x,
                    y=draft.y,
                    width=draft.width,
                    height=draft.height,
                    z_index=draft.z_index,
                )
                db.add(zone)
                await db.flush()

                stage = "assignment"
                assignment = await self._insert_assignment(
                    db, zone.id, page.id, vector, draft.z_index, draft.is_repeating
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[ZonePersistence] Ошибка сохранения зоны '{draft.name}' ({stage}): {e}")
                raise PersistenceFailure(
                    f"Failed to save zone '{draft.name}': {e}", stage=stage, page_id=page_id
                ) from e

        draft.zone_id = zone.id
        draft.assignment_id = assignment.id
        logger.info(f"[ZonePersistence] Зона сохранена: {zone.id} (размещение {assignment.id})")
        return zone.id

    # ----------------------------
    # Read
    # ----------------------------
    async def load_zones_for_page(self, page_id: int) -> list[ZoneWithAssignment]:
        """
        Зоны страницы по возрастанию z_index (снизу вверх), геометрия в нативных
        единицах этой страницы. Повторяющиеся зоны с других страниц шаблона
        пересчитываются под размер этой страницы.
        """
        logger.info(f"[ZonePersistence] Загрузка зон страницы {page_id}")
        async with self._session_factory() as db:
            try:
                page = await self._get_page(db, page_id)
                try:
                    native = await self._native_size(db, page)
                except InvalidDimensions:
                    native = None

                res = await db.execute(
                    select(ZonePageAssignment, CustomizationZone)
                    .join(CustomizationZone, CustomizationZone.id == ZonePageAssignment.zone_id)
                    .where(ZonePageAssignment.page_id == page.id)
                )
                own = res.all()

                res = await db.execute(
                    select(ZonePageAssignment, CustomizationZone, TemplatePage)
                    .join(CustomizationZone, CustomizationZone.id == ZonePageAssignment.zone_id)
                    .join(TemplatePage, TemplatePage.id == ZonePageAssignment.page_id)
                    .where(
                        CustomizationZone.template_id == page.template_id,
                        ZonePageAssignment.is_repeating.is_(True),
                        ZonePageAssignment.page_id != page.id,
                    )
                )
                repeating = res.all()
                template = await db.get(Template, page.template_id) if repeating else None
            except SQLAlchemyError as e:
                logger.error(f"[ZonePersistence] Ошибка загрузки зон страницы {page_id}: {e}")
                raise PersistenceFailure(f"Failed to load zones: {e}", stage="load", page_id=page_id) from e

        unit = native.unit if native else LengthUnit.pt
        zones = [
            _to_zone_with_assignment(assignment, zone, page.id, _assignment_rect(assignment), unit)
            for assignment, zone in own
        ]

        for assignment, zone, anchor_page in repeating:
            rect = _assignment_rect(assignment)
            if native is not None:
                try:
                    rect = rescale_between(rect, resolve_native_size(anchor_page, template), native)
                except InvalidDimensions:
                    # у якорной страницы нет размера: отдаём геометрию как есть
                    pass
            zones.append(_to_zone_with_assignment(assignment, zone, page.id, rect, unit, inherited=True))

        zones.sort(key=lambda z: (z.z_index, z.zone_id))
        logger.info(f"[ZonePersistence] Загружено {len(zones)} зон для страницы {page_id}")
        return zones

    async def list_template_zones(self, template_id: int) -> list[CustomizationZone]:
        async with self._session_factory() as db:
            try:
                res = await db.execute(
                    select(CustomizationZone)
                    .where(CustomizationZone.template_id == template_id)
                    .order_by(CustomizationZone.z_index.asc(), CustomizationZone.id.asc())
                )
                return list(res.scalars().all())
            except SQLAlchemyError as e:
                logger.error(f"[ZonePersistence] Ошибка загрузки зон шаблона {template_id}: {e}")
                raise PersistenceFailure(f"Failed to load zones: {e}", stage="load") from e

    # ----------------------------
    # Update
    # ----------------------------
    async def update_assignment(self, assignment_id: int, fields: dict, page_id: int | None = None) -> bool:
        """
        Частичное обновление размещения. False, если размещения нет.

        page_id - страница, в единицах которой пришла геометрия. Для повторяющейся
        зоны, показанной на другой странице, геометрия переводится в единицы якоря.
        Обычное размещение правится только со своей страницы.
        """
        unknown = set(fields) - set(ASSIGNMENT_FIELDS)
        if unknown:
            raise ValueError(f"Unknown assignment fields: {sorted(unknown)}")

        logger.info(f"[ZonePersistence] Обновление размещения {assignment_id}: {fields}")
        async with self._session_factory() as db:
            try:
                assignment = await db.get(ZonePageAssignment, assignment_id)
                if assignment is None:
                    logger.warning(f"[ZonePersistence] Размещение {assignment_id} не найдено")
                    return False

                fields = dict(fields)
                geometry = {k: fields.pop(k) for k in ("x", "y", "width", "height") if k in fields}
                rect = _assignment_rect(assignment)._replace(**geometry)

                if geometry and page_id is not None and page_id != assignment.page_id:
                    if not assignment.is_repeating:
                        logger.warning(f"[ZonePersistence] Размещение {assignment_id} не лежит на странице {page_id}")
                        return False
                    anchor_page = await self._get_page(db, assignment.page_id)
                    view_page = await self._get_page(db, page_id)
                    if view_page.template_id != anchor_page.template_id:
                        return False
                    anchor_size = await self._native_size(db, anchor_page)
                    view_size = await self._native_size(db, view_page)
                    shown = rescale_between(_assignment_rect(assignment), anchor_size, view_size)
                    shown = shown._replace(**geometry)
                    check_size(shown.width, shown.height)
                    rect = rescale_between(shown, view_size, anchor_size)

                # проверка вырожденности до записи
                check_size(rect.width, rect.height)

                if geometry:
                    assignment.x, assignment.y, assignment.width, assignment.height = rect
                for name, value in fields.items():
                    setattr(assignment, name, value)

                if fields.get("is_repeating"):
                    await db.execute(
                        delete(ZonePageAssignment).where(
                            ZonePageAssignment.zone_id == assignment.zone_id,
                            ZonePageAssignment.id != assignment.id,
                        )
                    )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[ZonePersistence] Ошибка обновления размещения {assignment_id}: {e}")
                raise PersistenceFailure(
                    f"Failed to update zone: {e}", stage="assignment", assignment_id=assignment_id
                ) from e

        logger.info(f"[ZonePersistence] Размещение {assignment_id} обновлено")
        return True

    async def update_zone(self, zone_id: int, draft: ZoneGeometry, page_id: int, canvas: CanvasSize) -> bool:
        """
        Записывает правку зоны, сделанную на странице page_id: саму зону
        (имя, эталонная геометрия, z_index) и её размещение.

        Повторяющаяся зона хранит одно размещение на якорной странице; правка с
        любой страницы переводится в единицы якоря. Включение повтора удаляет
        остальные размещения зоны, выключение оставляет зону только на этой странице.
        """
        check_size(draft.width, draft.height)
        logger.info(f"[ZonePersistence] Обновление зоны {zone_id} со страницы {page_id}")

        async with self._session_factory() as db:
            try:
                zone = await db.get(CustomizationZone, zone_id)
                if zone is None:
                    return False
                if zone.type != draft.type:
                    raise ImmutableZoneType(
                        f"Zone {zone_id} is {zone.type.value}; delete and recreate it to change the type"
                    )

                page = await self._get_page(db, page_id)
                vector, native = await self._page_native_rect(db, page, draft, canvas)

                zone.name = draft.name
                zone.x, zone.y, zone.width, zone.height = draft.x, draft.y, draft.width, draft.height
                zone.z_index = draft.z_index

                res = await db.execute(select(ZonePageAssignment).where(ZonePageAssignment.zone_id == zone_id))
                rows = list(res.scalars().all())
                anchor = next((a for a in rows if a.is_repeating), None)
                on_page = next((a for a in rows if a.page_id == page.id), None)

                if draft.is_repeating:
                    target = anchor or on_page
                    if target is not None and target.page_id != page.id:
                        anchor_page = await db.get(TemplatePage, target.page_id)
                        anchor_size = await self._native_size(db, anchor_page)
                        vector = rescale_between(vector, native, anchor_size)
                    if target is None:
                        target = await self._insert_assignment(db, zone.id, page.id, vector, draft.z_index, True)
                    else:
                        _apply_rect(target, vector, draft.z_index)
                        target.is_repeating = True
                    stale = [other.id for other in rows if other.id != target.id]
                    if stale:
                        await db.execute(delete(ZonePageAssignment).where(ZonePageAssignment.id.in_(stale)))
                else:
                    if anchor is not None and anchor.page_id != page.id:
                        await db.execute(delete(ZonePageAssignment).where(ZonePageAssignment.id == anchor.id))
                    target = on_page
                    if target is None:
                        target = await self._insert_assignment(db, zone.id, page.id, vector, draft.z_index, False)
                    else:
                        _apply_rect(target, vector, draft.z_index)
                        target.is_repeating = False

                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[ZonePersistence] Ошибка обновления зоны {zone_id}: {e}")
                raise PersistenceFailure(
                    f"Failed to update zone '{draft.name}': {e}", stage="zone", zone_id=zone_id, page_id=page_id
                ) from e

        draft.zone_id = zone_id
        draft.assignment_id = target.id
        return True

    # ----------------------------
    # Delete
    # ----------------------------
    async def delete_zone(self, zone_id: int, assignment_id: int | None = None) -> bool:
        """
        Удаляет размещение (если передано), остальные размещения зоны и саму зону
        в одной транзакции. False, если зоны нет. При ошибке PersistenceFailure.stage
        говорит, какой шаг не прошёл.
        """
        logger.info(f"[ZonePersistence] Удаление зоны {zone_id}")
        async with self._session_factory() as db:
            stage = "assignment"
            try:
                if assignment_id is not None:
                    await db.execute(
                        delete(ZonePageAssignment).where(
                            ZonePageAssignment.id == assignment_id,
                            ZonePageAssignment.zone_id == zone_id,
                        )
                    )
                await db.execute(delete(ZonePageAssignment).where(ZonePageAssignment.zone_id == zone_id))

                stage = "zone"
                res = await db.execute(delete(CustomizationZone).where(CustomizationZone.id == zone_id))
                if res.rowcount == 0:
                    await db.rollback()
                    logger.warning(f"[ZonePersistence] Зона {zone_id} не найдена")
                    return False
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error(f"[ZonePersistence] Ошибка удаления зоны {zone_id} ({stage}): {e}")
                raise PersistenceFailure(
                    f"Failed to delete zone {zone_id}: {e}",
                    stage=stage,
                    zone_id=zone_id,
                    assignment_id=assignment_id,
                ) from e

        logger.info(f"[ZonePersistence] Зона {zone_id} удалена")
        return True

    # ----------------------------
    # Reconcile
    # ----------------------------
    async def reconcile_zone_set(
        self,
        desired: Iterable[ZoneGeometry],
        template_id: int,
        is_new_template: bool,
        *,
        page_id: int,
        canvas: CanvasSize,
    ) -> ReconciliationReport:
        """
        Приводит сохранённые зоны страницы к желаемому набору:
        - зоны без id или с id, которого нет в базе, вставляются;
        - зоны с id из базы обновляются, если что-то поменялось;
        - зоны из базы, которых нет в желаемом наборе, удаляются.

        Операции идут отдельными вызовами: ошибка одной зоны записывается в отчёт
        и не останавливает остальные.
        """
        desired = list(desired)
        report = ReconciliationReport()

        persisted: dict[int, ZoneWithAssignment] = {}
        native: NativeSize | None = None
        if not is_new_template:
            persisted = {z.zone_id: z for z in await self.load_zones_for_page(page_id)}
            native = await self.page_native_size(page_id)

        desired_ids = {z.zone_id for z in desired if z.zone_id is not None}
        # зоны шаблона из базы, которые на этой странице ещё не размещены
        elsewhere = await self._stored_zone_types(template_id, desired_ids - set(persisted))

        for zone in desired:
            current = persisted.get(zone.zone_id) if zone.zone_id is not None else None
            stored_type = current.type if current is not None else elsewhere.get(zone.zone_id)
            try:
                if stored_type is None:
                    new_id = await self.create_zone(template_id, zone, page_id, canvas)
                    report.inserted.append(new_id)
                elif stored_type != zone.type:
                    # смена типа = удаление + создание
                    old_id = zone.zone_id
                    await self.delete_zone(old_id)
                    report.deleted.append(old_id)
                    zone.zone_id = None
                    new_id = await self.create_zone(template_id, zone, page_id, canvas)
                    report.inserted.append(new_id)
                elif current is None or _zone_changed(zone, current, canvas, native):
                    # зона с другой страницы получает размещение здесь через update_zone
                    zone_id = zone.zone_id
                    if await self.update_zone(zone_id, zone, page_id, canvas):
                        report.updated.append(zone_id)
                    else:
                        raise PersistenceFailure(f"Zone {zone_id} disappeared", stage="zone", zone_id=zone_id)
                else:
                    zone.assignment_id = current.assignment_id
                    report.unchanged.append(current.zone_id)
            except ZoneEngineError as e:
                operation = "insert" if stored_type is None else "update"
                logger.error(f"[ZonePersistence] Зона '{zone.name}' не сохранена ({operation}): {e}")
                report.failures.append(ReconcileFailure(operation, zone.zone_id, zone.name, str(e)))

        for zone_id, current in persisted.items():
            if zone_id in desired_ids:
                continue
            try:
                assignment_id = None if current.inherited else current.assignment_id
                if await self.delete_zone(zone_id, assignment_id):
                    report.deleted.append(zone_id)
            except ZoneEngineError as e:
                logger.error(f"[ZonePersistence] Зона {zone_id} не удалена: {e}")
                report.failures.append(ReconcileFailure("delete", zone_id, current.name, str(e)))

        logger.info(
            f"[ZonePersistence] Сохранение шаблона {template_id}, страница {page_id}: "
            f"+{len(report.inserted)} ~{len(report.updated)} -{len(report.deleted)} "
            f"={len(report.unchanged)}, ошибок {len(report.failures)}"
        )
        return report

    async def page_native_size(self, page_id: int) -> NativeSize | None:
        async with self._session_factory() as db:
            try:
                page = await self._get_page(db, page_id)
                return await self._native_size(db, page)
            except InvalidDimensions:
                return None
            except SQLAlchemyError as e:
                raise PersistenceFailure(f"Failed to load page: {e}", stage="page", page_id=page_id) from e


def _apply_rect(assignment: ZonePageAssignment, rect: Rect, z_index: int) -> None:
    assignment.x, assignment.y, assignment.width, assignment.height = rect
    assignment.z_index = z_index


def _zone_changed(
    zone: ZoneGeometry, current: ZoneWithAssignment, canvas: CanvasSize, native: NativeSize | None
) -> bool:
    if zone.name != current.name or zone.z_index != current.z_index or zone.is_repeating != current.is_repeating:
        return True
    if native is None:
        return True
    # сравнение в пикселях холста: округление при переводе туда-обратно не считается правкой
    shown = vector_rect_to_canvas(current.rect, canvas.width, canvas.height, native.width, native.height)
    return not _same_geometry(zone.rect, shown)


def _to_zone_with_assignment(
    assignment: ZonePageAssignment,
    zone: CustomizationZone,
    page_id: int,
    rect: Rect,
    unit: LengthUnit,
    inherited: bool = False,
) -> ZoneWithAssignment:
    return ZoneWithAssignment(
        zone_id=zone.id,
        template_id=zone.template_id,
        name=zone.name,
        type=zone.type,
        x=rect.x,
        y=rect.y,
        width=rect.width,
        height=rect.height,
        z_index=assignment.z_index,
        assignment_id=assignment.id,
        page_id=page_id,
        anchor_page_id=assignment.page_id,
        is_repeating=assignment.is_repeating,
        inherited=inherited,
        native_unit=unit,
    )


def get_zone_service() -> ZonePersistenceService:
    """FastAPI-зависимость: сервис на общей фабрике сессий приложения."""
    return ZonePersistenceService(AsyncSessionLocal)
