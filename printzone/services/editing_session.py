# printzone/services/editing_session.py
"""
Сессия редактирования зон одной страницы шаблона.

Сессия - единственный владелец списка зон и выделения. Представления (холст,
список слоёв, панель свойств) держат только целочисленный handle зоны, читают
состояние через сессию и меняют его через методы-намерения. Об изменениях
сессия сообщает подписчикам.

Загрузка и сохранение идут фоновыми задачами asyncio. close() отменяет их,
а результат, пришедший в закрытую или уже перезагруженную сессию, выбрасывается.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Iterator, TypeVar

from printzone.core.coordinates import CanvasSize, vector_rect_to_canvas
from printzone.core.errors import SessionClosed
from printzone.core.zone_geometry import ZoneGeometry
from printzone.db.models.enums import ZoneType
from printzone.services.zone_persistence import ReconciliationReport, ZonePersistenceService

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class SessionEvent:
    # added / changed / removed / selected / loaded / saved / closed
    kind: str
    handle: int | None = None


Listener = Callable[[SessionEvent], None]


class ZoneEditingSession:
    def __init__(
        self,
        service: ZonePersistenceService,
        template_id: int,
        page_id: int,
        canvas: CanvasSize,
        *,
        is_new_template: bool = False,
    ):
        self.service = service
        self.template_id = template_id
        self.page_id = page_id
        self.canvas = canvas
        self.is_new_template = is_new_template

        self._zones: dict[int, ZoneGeometry] = {}
        self._next_handle = 1
        self._selected: int | None = None
        self._listeners: list[Listener] = []
        self._tasks: set[asyncio.Task] = set()
        self._generation = 0
        # растёт на каждой правке; по нему save() понимает, были ли правки во время записи
        self._revision = 0
        # номер для сетки и имени новой зоны, только растёт
        self._created = 0

        self.dirty = False
        self.closed = False
        self.last_report: ReconciliationReport | None = None

    # ----------------------------
    # Чтение состояния
    # ----------------------------
    def __len__(self) -> int:
        return len(self._zones)

    def __iter__(self) -> Iterator[tuple[int, ZoneGeometry]]:
        """(handle, zone) снизу вверх по z_index."""
        return iter(sorted(self._zones.items(), key=lambda item: (item[1].z_index, item[0])))

    def get(self, handle: int) -> ZoneGeometry:
        try:
            return self._zones[handle]
        except KeyError:
            raise KeyError(f"Unknown zone handle {handle}") from None

    def handle_of(self, zone_id: int) -> int | None:
        return next((h for h, z in self._zones.items() if z.zone_id == zone_id), None)

    @property
    def zones(self) -> list[ZoneGeometry]:
        return [zone for _, zone in self]

    @property
    def selected(self) -> int | None:
        return self._selected

    @property
    def selected_zone(self) -> ZoneGeometry | None:
        return self._zones.get(self._selected) if self._selected is not None else None

    # ----------------------------
    # Подписки
    # ----------------------------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _emit(self, kind: str, handle: int | None = None) -> None:
        event = SessionEvent(kind, handle)
        for listener in list(self._listeners):
            listener(event)

    def _touch(self, kind: str, handle: int | None) -> None:
        self.dirty = True
        self._revision += 1
        self._emit(kind, handle)

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionClosed("Editing session is closed")

    # ----------------------------
    # Намерения
    # ----------------------------
    def adopt(self, zone: ZoneGeometry) -> int:
        """Кладёт готовую зону в таблицу сессии и возвращает её handle."""
        self._ensure_open()
        handle = self._next_handle
        self._next_handle += 1
        self._zones[handle] = zone
        self._created += 1
        self._touch("added", handle)
        return handle

    def add_zone(self, zone_type: ZoneType | str, name: str | None = None) -> int:
        zone = ZoneGeometry.new(zone_type, self._created, name=name)
        handle = self.adopt(zone)
        self.select(handle)
        return handle

    def select(self, handle: int | None) -> None:
        self._ensure_open()
        if handle is not None:
            self.get(handle)
        if handle != self._selected:
            self._selected = handle
            self._emit("selected", handle)

    def move(self, handle: int, x: float, y: float) -> None:
        self._ensure_open()
        self.get(handle).move(x, y)
        self._touch("changed", handle)

    def resize(self, handle: int, width: float, height: float) -> None:
        """Вырожденный размер отклоняется (DegenerateGeometry), зона не меняется."""
        self._ensure_open()
        self.get(handle).resize(width, height)
        self._touch("changed", handle)

    def update(self, handle: int, **fields) -> None:
        self._ensure_open()
        self.get(handle).update(**fields)
        self._touch("changed", handle)

    def rename(self, handle: int, name: str) -> None:
        self.update(handle, name=name)

    def set_repeating(self, handle: int, repeating: bool) -> None:
        self.update(handle, is_repeating=bool(repeating))

    def change_type(self, handle: int, zone_type: ZoneType | str) -> int:
        """
        Смена типа = удаление зоны и создание новой с той же геометрией.
        Возвращает handle новой зоны; старая при сохранении удаляется из хранилища.
        """
        old = self.get(handle)
        if ZoneType(zone_type) == old.type:
            return handle
        self.remove(handle)
        new_handle = self.adopt(old.with_type(zone_type))
        self.select(new_handle)
        return new_handle

    def remove(self, handle: int) -> None:
        self._ensure_open()
        self.get(handle)
        del self._zones[handle]
        if self._selected == handle:
            self._selected = None
            self._emit("selected", None)
        self._touch("removed", handle)

    # ----------------------------
    # Загрузка / сохранение
    # ----------------------------
    async def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Выполняет обращение к хранилищу как задачу сессии, чтобы close() мог её отменить."""
        if self.closed:
            coro.close()
            raise SessionClosed("Editing session is closed")
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        try:
            return await task
        except asyncio.CancelledError:
            if self.closed:
                raise SessionClosed("Editing session was closed while waiting for storage") from None
            raise
        finally:
            self._tasks.discard(task)

    async def load(self) -> list[int]:
        """Заменяет таблицу зон сохранёнными зонами страницы (геометрия в пикселях холста)."""
        self._generation += 1
        generation = self._generation

        native = await self._run(self.service.page_native_size(self.page_id))
        loaded = await self._run(self.service.load_zones_for_page(self.page_id))

        if self.closed:
            raise SessionClosed("Editing session was closed during load")
        if generation != self._generation:
            logger.info(f"[EditingSession] Результат устаревшей загрузки страницы {self.page_id} отброшен")
            return list(self._zones)

        self._zones.clear()
        self._selected = None
        for item in loaded:
            rect = item.rect
            if native is not None:
                rect = vector_rect_to_canvas(rect, self.canvas.width, self.canvas.height, native.width, native.height)
            zone = ZoneGeometry.from_rect(
                item.type,
                item.name,
                rect,
                z_index=item.z_index,
                is_repeating=item.is_repeating,
                zone_id=item.zone_id,
                assignment_id=item.assignment_id,
            )
            self._zones[self._next_handle] = zone
            self._next_handle += 1

        self._created = max(self._created, len(self._zones))
        self.is_new_template = False
        self.dirty = False
        self._emit("loaded")
        return list(self._zones)

    async def save(self) -> ReconciliationReport:
        """
        Сохраняет текущий набор зон. Частичный сбой не исключение: отчёт
        с failures остаётся в last_report, а сессия остаётся изменённой.
        """
        self._generation += 1
        revision = self._revision
        report = await self._run(
            self.service.reconcile_zone_set(
                self.zones,
                self.template_id,
                self.is_new_template,
                page_id=self.page_id,
                canvas=self.canvas,
            )
        )
        if self.closed:
            raise SessionClosed("Editing session was closed during save")

        self.last_report = report
        if report.ok:
            self.is_new_template = False
            # правки, сделанные пока шла запись, ещё не сохранены
            self.dirty = self._revision != revision
        self._emit("saved")
        return report

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        for task in list(self._tasks):
            task.cancel()
        self._emit("closed")
        self._listeners.clear()
        logger.info(f"[EditingSession] Сессия страницы {self.page_id} закрыта")
