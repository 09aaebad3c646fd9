# printzone/core/zone_geometry.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Optional

from printzone.core.coordinates import Rect
from printzone.core.errors import DegenerateGeometry, ImmutableZoneType
from printzone.db.models.enums import ZoneType

# размер новой зоны по типу, px холста
DEFAULT_SIZES: dict[ZoneType, tuple[float, float]] = {
    ZoneType.image: (120.0, 90.0),
    ZoneType.text: (180.0, 40.0),
}

GRID_COLUMNS = 3
GRID_STEP_X = 150.0

# (origin_x, origin_y, row_step)
_GRID: dict[ZoneType, tuple[float, float, float]] = {
    ZoneType.image: (50.0, 100.0, 120.0),
    ZoneType.text: (200.0, 150.0, 60.0),
}

_EDITABLE_FIELDS = ("name", "x", "y", "width", "height", "z_index", "is_repeating")


def grid_position(zone_type: ZoneType, zone_number: int) -> tuple[float, float]:
    """Позиция N-й зоны на неявной сетке, чтобы быстро созданные зоны не ложились друг на друга."""
    origin_x, origin_y, row_step = _GRID[zone_type]
    column = zone_number % GRID_COLUMNS
    row = zone_number // GRID_COLUMNS
    return origin_x + column * GRID_STEP_X, origin_y + row * row_step


def default_zone_name(zone_type: ZoneType, zone_number: int) -> str:
    return f"{zone_type.value.capitalize()} Zone {zone_number}"


@dataclass
class ZoneGeometry:
    """
    Зона в координатах холста, которую правит редактор.

    Тип задаётся при создании и больше не меняется: смена типа - это удаление
    и создание новой зоны (см. with_type). Ширина и высота всегда > 0,
    любая попытка сделать зону вырожденной отклоняется без изменения полей.
    """
    type: ZoneType
    name: str
    x: float
    y: float
    width: float
    height: float
    z_index: int = 0
    is_repeating: bool = False

    # идентификаторы в хранилище, None для ещё не сохранённой зоны
    zone_id: Optional[int] = field(default=None, compare=False)
    assignment_id: Optional[int] = field(default=None, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "type", ZoneType(self.type))
        check_size(self.width, self.height)

    def __setattr__(self, name, value):
        if name == "type" and "type" in self.__dict__:
            if ZoneType(value) != self.type:
                raise ImmutableZoneType(
                    f"Zone type is fixed after creation ({self.type.value}); delete and recreate the zone instead"
                )
            return
        if name in ("width", "height") and "height" in self.__dict__:
            width = value if name == "width" else self.width
            height = value if name == "height" else self.height
            check_size(width, height)
        object.__setattr__(self, name, value)

    @classmethod
    def new(cls, zone_type: ZoneType | str, zone_count: int, name: str | None = None) -> "ZoneGeometry":
        """Новая зона с размером по умолчанию и местом на сетке."""
        zone_type = ZoneType(zone_type)
        number = zone_count + 1
        width, height = DEFAULT_SIZES[zone_type]
        x, y = grid_position(zone_type, number)
        return cls(
            type=zone_type,
            name=name or default_zone_name(zone_type, number),
            x=x,
            y=y,
            width=width,
            height=height,
            z_index=number,
        )

    @classmethod
    def from_rect(cls, zone_type: ZoneType | str, name: str, rect: Rect, **extra) -> "ZoneGeometry":
        return cls(type=ZoneType(zone_type), name=name, x=rect.x, y=rect.y, width=rect.width, height=rect.height, **extra)

    @property
    def rect(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    @property
    def is_persisted(self) -> bool:
        return self.zone_id is not None

    def move(self, x: float, y: float) -> None:
        self.x = float(x)
        self.y = float(y)

    def move_by(self, dx: float, dy: float) -> None:
        self.move(self.x + dx, self.y + dy)

    def resize(self, width: float, height: float) -> None:
        check_size(width, height)
        object.__setattr__(self, "width", float(width))
        object.__setattr__(self, "height", float(height))

    def update(self, **fields) -> None:
        """Программная правка полей. Всё или ничего."""
        unknown = set(fields) - set(_EDITABLE_FIELDS)
        if "type" in unknown and ZoneType(fields["type"]) == self.type:
            unknown.discard("type")
            fields.pop("type")
        if "type" in unknown:
            raise ImmutableZoneType("Zone type cannot be edited in place")
        if unknown:
            raise AttributeError(f"Unknown zone fields: {sorted(unknown)}")

        check_size(fields.get("width", self.width), fields.get("height", self.height))
        for name, value in fields.items():
            object.__setattr__(self, name, value)

    def with_type(self, zone_type: ZoneType | str) -> "ZoneGeometry":
        """Копия с другим типом и без идентификаторов хранилища."""
        clone = replace(self, type=ZoneType(zone_type), zone_id=None, assignment_id=None)
        return clone

    def to_dict(self) -> dict:
        return {
            "zone_id": self.zone_id,
            "assignment_id": self.assignment_id,
            "type": self.type.value,
            "name": self.name,
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "z_index": self.z_index,
            "is_repeating": self.is_repeating,
        }


def check_size(width: float, height: float) -> None:
    if width is None or height is None or width <= 0 or height <= 0:
        raise DegenerateGeometry(width, height)
