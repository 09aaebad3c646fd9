# printzone/core/guides.py
from pydantic import BaseModel, field_serializer

from printzone.core.coordinates import CanvasSize, Rect
from printzone.core.dimensions import BleedSettings, PhysicalSize
from printzone.core.units import DEFAULT_DPI, LengthUnit, convert


class PrintGuides(BaseModel):
    """Направляющие в пикселях холста. Только для отрисовки, зоны ими не обрезаются."""
    trim: Rect
    bleed: Rect
    safe: Rect

    @field_serializer("trim", "bleed", "safe")
    def serialize_rect(self, rect: Rect) -> dict:
        return rect._asdict()


def compute_print_guides(
    canvas: CanvasSize,
    physical_size: PhysicalSize | None,
    bleed: BleedSettings,
    dpi: float = DEFAULT_DPI,
) -> PrintGuides:
    """
    trim  - граница готового изделия (весь холст);
    bleed - trim, расширенный наружу на вылеты;
    safe  - trim, сжатый внутрь на те же отступы.
    """
    if physical_size is not None:
        width_in_bleed_units, height_in_bleed_units = physical_size.to_unit(bleed.units)
        px_per_unit_x = canvas.width / width_in_bleed_units
        px_per_unit_y = canvas.height / height_in_bleed_units
    else:
        px_per_unit_x = px_per_unit_y = convert(1.0, bleed.units, LengthUnit.px, dpi)

    top = bleed.top * px_per_unit_y
    bottom = bleed.bottom * px_per_unit_y
    left = bleed.left * px_per_unit_x
    right = bleed.right * px_per_unit_x

    trim = Rect(0.0, 0.0, float(canvas.width), float(canvas.height))
    outer = Rect(-left, -top, canvas.width + left + right, canvas.height + top + bottom)
    safe = Rect(left, top, max(canvas.width - left - right, 0.0), max(canvas.height - top - bottom, 0.0))

    return PrintGuides(
        trim=trim,
        bleed=Rect(*(round(v, 2) for v in outer)),
        safe=Rect(*(round(v, 2) for v in safe)),
    )
