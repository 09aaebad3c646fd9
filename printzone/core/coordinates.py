# printzone/core/coordinates.py
"""
Три системы координат шаблона:
- пиксели холста редактора (начало в левом верхнем углу);
- нативные (векторные) единицы исходного документа, обычно pt;
- физические единицы печати (mm / in / pt).

Холст <-> физика масштабируется через отношение размера документа к размеру холста,
а не через фиксированную константу px/unit, поэтому результат совпадает с тем,
что реально уйдёт в печать.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NamedTuple

from pydantic import BaseModel, Field

from printzone.core.dimensions import PhysicalSize
from printzone.core.errors import InvalidDimensions
from printzone.core.units import DEFAULT_DPI, LengthUnit, convert, parse_unit

logger = logging.getLogger(__name__)

VECTOR_PRECISION = 3  # знаков после запятой для координат документа
CANVAS_PRECISION = 2  # субпиксельная точность на экране не нужна


class Rect(NamedTuple):
    x: float
    y: float
    width: float
    height: float


class CanvasSize(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)


@dataclass(frozen=True)
class DimensionMismatchWarning:
    """Не ошибка: загруженный документ по пропорциям не совпадает с заявленным размером."""
    declared_aspect: float
    document_aspect: float
    relative_difference: float
    tolerance: float

    @property
    def message(self) -> str:
        return (
            "The uploaded document dimensions don't match the template settings "
            f"(aspect {self.document_aspect:.3f} vs {self.declared_aspect:.3f}, "
            f"{self.relative_difference:.1%} off). Zones may not align correctly in the final print."
        )

    def to_dict(self) -> dict:
        return {
            "declared_aspect": round(self.declared_aspect, 4),
            "document_aspect": round(self.document_aspect, 4),
            "relative_difference": round(self.relative_difference, 4),
            "tolerance": self.tolerance,
            "message": self.message,
        }


def _require_positive(**axes: float) -> None:
    bad = {name: value for name, value in axes.items() if value is None or value <= 0}
    if bad:
        raise InvalidDimensions(f"All axes must be positive, got {bad}")


def canvas_to_vector_coordinates(
    cx: float, cy: float, canvas_w: float, canvas_h: float, doc_w: float, doc_h: float
) -> tuple[float, float]:
    _require_positive(canvas_w=canvas_w, canvas_h=canvas_h, doc_w=doc_w, doc_h=doc_h)
    return (
        round(cx * (doc_w / canvas_w), VECTOR_PRECISION),
        round(cy * (doc_h / canvas_h), VECTOR_PRECISION),
    )


def vector_to_canvas_coordinates(
    vx: float, vy: float, canvas_w: float, canvas_h: float, doc_w: float, doc_h: float
) -> tuple[float, float]:
    _require_positive(canvas_w=canvas_w, canvas_h=canvas_h, doc_w=doc_w, doc_h=doc_h)
    return (
        round(vx * (canvas_w / doc_w), CANVAS_PRECISION),
        round(vy * (canvas_h / doc_h), CANVAS_PRECISION),
    )


def canvas_rect_to_vector(rect: Rect, canvas_w: float, canvas_h: float, doc_w: float, doc_h: float) -> Rect:
    x, y = canvas_to_vector_coordinates(rect.x, rect.y, canvas_w, canvas_h, doc_w, doc_h)
    w, h = canvas_to_vector_coordinates(rect.width, rect.height, canvas_w, canvas_h, doc_w, doc_h)
    return Rect(x, y, w, h)


def vector_rect_to_canvas(rect: Rect, canvas_w: float, canvas_h: float, doc_w: float, doc_h: float) -> Rect:
    x, y = vector_to_canvas_coordinates(rect.x, rect.y, canvas_w, canvas_h, doc_w, doc_h)
    w, h = vector_to_canvas_coordinates(rect.width, rect.height, canvas_w, canvas_h, doc_w, doc_h)
    return Rect(x, y, w, h)


def rescale_vector_rect(rect: Rect, from_w: float, from_h: float, to_w: float, to_h: float) -> Rect:
    """Перенос геометрии повторяющейся зоны со страницы-якоря на страницу другого размера."""
    _require_positive(from_w=from_w, from_h=from_h, to_w=to_w, to_h=to_h)
    sx, sy = to_w / from_w, to_h / from_h
    return Rect(
        round(rect.x * sx, VECTOR_PRECISION),
        round(rect.y * sy, VECTOR_PRECISION),
        round(rect.width * sx, VECTOR_PRECISION),
        round(rect.height * sy, VECTOR_PRECISION),
    )


def fit_canvas_size(
    size: PhysicalSize | None,
    max_width: int,
    max_height: int,
    default: tuple[int, int] = (800, 600),
    dpi: float = DEFAULT_DPI,
) -> CanvasSize:
    """
    Размер холста редактора: физический размер в экранных пикселях,
    равномерно уменьшенный (но не увеличенный) под max_width x max_height.
    """
    if size is None:
        return CanvasSize(width=default[0], height=default[1])

    width_px = convert(size.width, size.unit, LengthUnit.px, dpi)
    height_px = convert(size.height, size.unit, LengthUnit.px, dpi)
    scale = min(max_width / width_px, max_height / height_px, 1.0)
    return CanvasSize(width=max(1, round(width_px * scale)), height=max(1, round(height_px * scale)))


class CoordinateSystem:
    def __init__(
        self,
        canvas_width: float,
        canvas_height: float,
        native_width: float,
        native_height: float,
        physical_size: PhysicalSize | None = None,
        native_unit: LengthUnit | str = LengthUnit.pt,
        dpi: float = DEFAULT_DPI,
    ):
        _require_positive(
            canvas_width=canvas_width,
            canvas_height=canvas_height,
            native_width=native_width,
            native_height=native_height,
        )
        self.canvas_width = float(canvas_width)
        self.canvas_height = float(canvas_height)
        self.native_width = float(native_width)
        self.native_height = float(native_height)
        self.native_unit = parse_unit(native_unit)
        self.physical_size = physical_size
        self.dpi = dpi

    def __repr__(self) -> str:
        return (
            f"CoordinateSystem(canvas={self.canvas_width}x{self.canvas_height}px, "
            f"native={self.native_width}x{self.native_height}{self.native_unit.value})"
        )

    @property
    def scale_x(self) -> float:
        """Нативных единиц на пиксель холста по X."""
        return self.native_width / self.canvas_width

    @property
    def scale_y(self) -> float:
        return self.native_height / self.canvas_height

    # --- холст <-> документ ---

    def canvas_to_native(self, x: float, y: float) -> tuple[float, float]:
        return x * self.scale_x, y * self.scale_y

    def native_to_canvas(self, x: float, y: float) -> tuple[float, float]:
        return x / self.scale_x, y / self.scale_y

    def canvas_rect_to_native(self, rect: Rect) -> Rect:
        return canvas_rect_to_vector(rect, self.canvas_width, self.canvas_height, self.native_width, self.native_height)

    def native_rect_to_canvas(self, rect: Rect) -> Rect:
        return vector_rect_to_canvas(rect, self.canvas_width, self.canvas_height, self.native_width, self.native_height)

    # --- холст <-> физика ---

    def canvas_to_physical(self, x: float, y: float, unit: LengthUnit | str = LengthUnit.mm) -> tuple[float, float]:
        nx, ny = self.canvas_to_native(x, y)
        return (
            convert(nx, self.native_unit, unit, self.dpi),
            convert(ny, self.native_unit, unit, self.dpi),
        )

    def physical_to_canvas(self, x: float, y: float, unit: LengthUnit | str = LengthUnit.mm) -> tuple[float, float]:
        nx = convert(x, unit, self.native_unit, self.dpi)
        ny = convert(y, unit, self.native_unit, self.dpi)
        return self.native_to_canvas(nx, ny)

    # --- сверка с заявленным размером ---

    def scale_factor(self) -> tuple[float, float]:
        """Во сколько раз заявленный размер больше фактического размера документа (по осям)."""
        if self.physical_size is None:
            return 1.0, 1.0
        declared_w = convert(self.physical_size.width, self.physical_size.unit, LengthUnit.pt, self.dpi)
        declared_h = convert(self.physical_size.height, self.physical_size.unit, LengthUnit.pt, self.dpi)
        native_w = convert(self.native_width, self.native_unit, LengthUnit.pt, self.dpi)
        native_h = convert(self.native_height, self.native_unit, LengthUnit.pt, self.dpi)
        return declared_w / native_w, declared_h / native_h

    def aspect_difference(self) -> float:
        if self.physical_size is None:
            return 0.0
        declared = self.physical_size.aspect_ratio
        document = self.native_width / self.native_height
        return abs(document - declared) / declared

    def dimensions_match(self, tolerance: float = 0.05) -> bool:
        """
        Сравнивает пропорции загруженного документа с пропорциями заявленного
        физического размера. Точное равенство не требуется: PDF-генераторы
        часто округляют размеры страниц.
        """
        return self.aspect_difference() <= tolerance

    def check_dimensions(self, tolerance: float = 0.05) -> DimensionMismatchWarning | None:
        if self.physical_size is None or self.dimensions_match(tolerance):
            return None
        warning = DimensionMismatchWarning(
            declared_aspect=self.physical_size.aspect_ratio,
            document_aspect=self.native_width / self.native_height,
            relative_difference=self.aspect_difference(),
            tolerance=tolerance,
        )
        logger.warning(f"Несовпадение размеров документа и шаблона: {warning.message}")
        return warning
