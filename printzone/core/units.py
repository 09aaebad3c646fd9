# printzone/core/units.py
"""
Перевод длин между px, mm, in и pt.

Пиксель не физическая единица: для него нужен опорный DPI (по умолчанию 96 px/in,
как у браузерного холста). Пункты считаются по 72 на дюйм, как в PDF.
"""
import enum

from printzone.core.errors import UnsupportedUnitKind

POINTS_PER_INCH = 72.0
MM_PER_INCH = 25.4
DEFAULT_DPI = 96.0

# производные константы, которыми пользуется UI
PT_PER_MM = POINTS_PER_INCH / MM_PER_INCH   # ≈ 2.83, он же px/mm для 72-DPI источника
PX_PER_PT = DEFAULT_DPI / POINTS_PER_INCH   # ≈ 1.33
PX_PER_MM = DEFAULT_DPI / MM_PER_INCH       # ≈ 3.78


class LengthUnit(str, enum.Enum):
    px = "px"
    mm = "mm"
    inch = "in"
    pt = "pt"


def parse_unit(unit) -> LengthUnit:
    if isinstance(unit, LengthUnit):
        return unit
    try:
        return LengthUnit(str(unit).strip().lower())
    except ValueError:
        raise UnsupportedUnitKind(unit) from None


def _inches_per_unit(unit: LengthUnit, dpi: float) -> float:
    if unit is LengthUnit.inch:
        return 1.0
    if unit is LengthUnit.mm:
        return 1.0 / MM_PER_INCH
    if unit is LengthUnit.pt:
        return 1.0 / POINTS_PER_INCH
    return 1.0 / dpi


def convert(value: float, from_unit, to_unit, dpi: float = DEFAULT_DPI) -> float:
    """Перевести длину из одной единицы в другую (через дюймы)."""
    src = parse_unit(from_unit)
    dst = parse_unit(to_unit)
    if src is dst:
        return float(value)
    return value * _inches_per_unit(src, dpi) / _inches_per_unit(dst, dpi)


def convert_point(x: float, y: float, from_unit, to_unit, dpi: float = DEFAULT_DPI) -> tuple[float, float]:
    return convert(x, from_unit, to_unit, dpi), convert(y, from_unit, to_unit, dpi)


def points_to_mm(points: float) -> float:
    return round(convert(points, LengthUnit.pt, LengthUnit.mm), 2)


def mm_to_points(mm: float) -> float:
    return round(convert(mm, LengthUnit.mm, LengthUnit.pt), 2)
