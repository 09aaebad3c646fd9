# printzone/core/errors.py
"""
Ошибки движка зон.

Конвертации и проверка геометрии падают сразу и обрабатываются на месте вызова,
ошибки хранилища оборачиваются в PersistenceFailure на границе сервиса.
"""
from __future__ import annotations

from typing import Any


class ZoneEngineError(Exception):
    """Базовый класс всех ошибок движка зон."""


class InvalidDimensions(ZoneEngineError, ValueError):
    """Нулевая или отрицательная ось холста или документа."""


class UnsupportedUnitKind(ZoneEngineError, ValueError):
    def __init__(self, unit: Any):
        self.unit = unit
        super().__init__(f"Unsupported unit: {unit!r} (expected one of px, mm, in, pt)")


class UnparsableDimensions(ZoneEngineError, ValueError):
    def __init__(self, raw: Any):
        self.raw = raw
        super().__init__(f"Cannot parse dimensions string {raw!r}, expected e.g. '210x297mm'")


class DegenerateGeometry(ZoneEngineError, ValueError):
    def __init__(self, width: float, height: float):
        self.width = width
        self.height = height
        super().__init__(f"Zone size must be positive, got {width}x{height}")


class ImmutableZoneType(ZoneEngineError):
    """Тип зоны меняется только через удаление и повторное создание."""


class PersistenceFailure(ZoneEngineError):
    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        zone_id: int | None = None,
        page_id: int | None = None,
        assignment_id: int | None = None,
    ):
        self.stage = stage
        self.zone_id = zone_id
        self.page_id = page_id
        self.assignment_id = assignment_id
        super().__init__(message)


class PartialReconciliationFailure(ZoneEngineError):
    def __init__(self, report: Any):
        self.report = report
        super().__init__("Template saved, but some zones may be missing")


class DocumentIngestionError(ZoneEngineError):
    pass


class SessionClosed(ZoneEngineError):
    """Сессия редактирования уже закрыта, результат выброшен."""


class RecordNotFound(PersistenceFailure):
    pass


class TemplateInUse(ZoneEngineError):
    """Шаблон нельзя удалить, пока на него ссылается хотя бы один товар."""


class ContentTypeMismatch(ZoneEngineError, ValueError):
    """В текстовую зону кладут картинку или наоборот."""
