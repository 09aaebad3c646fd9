# printzone/core/dimensions.py
import re

from pydantic import BaseModel, Field

from printzone.core.errors import UnparsableDimensions
from printzone.core.units import LengthUnit, convert, parse_unit, points_to_mm

# "{width}x{height}{unit}", например "210x297mm" или "8.5x11in"
_DIMENSIONS_RE = re.compile(r"^([0-9]+(?:\.[0-9]+)?)x([0-9]+(?:\.[0-9]+)?)(px|mm|in|pt)$")


class PhysicalSize(BaseModel):
    width: float = Field(gt=0)
    height: float = Field(gt=0)
    unit: LengthUnit = LengthUnit.mm

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    def to_unit(self, unit) -> tuple[float, float]:
        return convert(self.width, self.unit, unit), convert(self.height, self.unit, unit)


class BleedSettings(BaseModel):
    top: float = Field(default=3.0, ge=0)
    right: float = Field(default=3.0, ge=0)
    bottom: float = Field(default=3.0, ge=0)
    left: float = Field(default=3.0, ge=0)
    units: LengthUnit = LengthUnit.mm

    @classmethod
    def from_stored(cls, raw: dict | None, default: float = 3.0) -> "BleedSettings":
        """
        Разбор bleed_settings из JSON-колонки. Нечисловые края заменяются значением
        по умолчанию, неизвестная единица -> mm.
        """
        raw = raw if isinstance(raw, dict) else {}

        def edge(name: str) -> float:
            value = raw.get(name)
            if isinstance(value, (int, float)) and not isinstance(value, bool) and value >= 0:
                return float(value)
            return default

        units = raw.get("units", raw.get("unit"))
        try:
            unit = parse_unit(units) if units is not None else LengthUnit.mm
        except ValueError:
            unit = LengthUnit.mm

        return cls(top=edge("top"), right=edge("right"), bottom=edge("bottom"), left=edge("left"), units=unit)

    def to_stored(self) -> dict:
        return {
            "top": self.top,
            "right": self.right,
            "bottom": self.bottom,
            "left": self.left,
            "units": self.units.value,
        }


def _number(value: float) -> str:
    # 210.0 -> "210", 8.5 -> "8.5"
    return f"{value:g}"


def parse_dimensions(raw: str) -> PhysicalSize:
    """Строгий разбор "210x297mm". Всё, что не совпало с шаблоном, отвергается."""
    if not isinstance(raw, str):
        raise UnparsableDimensions(raw)
    match = _DIMENSIONS_RE.match(raw)
    if not match:
        raise UnparsableDimensions(raw)
    width, height = float(match.group(1)), float(match.group(2))
    if width <= 0 or height <= 0:
        raise UnparsableDimensions(raw)
    return PhysicalSize(width=width, height=height, unit=LengthUnit(match.group(3)))


def try_parse_dimensions(raw: str | None) -> PhysicalSize | None:
    if not raw:
        return None
    try:
        return parse_dimensions(raw)
    except UnparsableDimensions:
        return None


def format_dimensions(size: PhysicalSize) -> str:
    return f"{_number(size.width)}x{_number(size.height)}{size.unit.value}"


def format_dimensions_display(width: float, height: float, unit: str = "pt") -> str:
    """Человекочитаемый размер: пункты показываются в миллиметрах."""
    if unit == "pt":
        return f"{_number(points_to_mm(width))} × {_number(points_to_mm(height))} mm"
    return f"{_number(width)} × {_number(height)} {unit}"
