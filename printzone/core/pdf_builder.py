# printzone/core/pdf_builder.py
import io
import logging
from dataclasses import dataclass, field
from typing import List

from reportlab.lib import colors
from reportlab.pdfgen import canvas

from printzone.core.coordinates import CanvasSize, Rect
from printzone.core.dimensions import BleedSettings, PhysicalSize
from printzone.core.guides import compute_print_guides
from printzone.core.units import POINTS_PER_INCH, LengthUnit, convert

logger = logging.getLogger(__name__)

ZONE_COLORS = {
    "image": colors.HexColor("#2563eb"),
    "text": colors.HexColor("#ea580c"),
}


@dataclass
class ProofZone:
    name: str
    type: str
    rect: Rect  # в единицах страницы, начало в левом верхнем углу
    repeating: bool = False


@dataclass
class ProofPage:
    page_number: int
    width: float
    height: float
    unit: LengthUnit = LengthUnit.pt
    zones: List[ProofZone] = field(default_factory=list)


def template_proof_pdf_bytes(
    pages: List[ProofPage],
    bleed: BleedSettings,
    physical_size: PhysicalSize | None = None,
    title: str = "",
) -> bytes:
    """
    Корректурный PDF шаблона. Каждая страница = нативный размер страницы документа
    плюс вылеты; поверх рисуются линии реза, вылетов, безопасной области и контуры зон.
    """
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    if title:
        c.setTitle(title)

    for page in pages:
        # всё рисуем в пунктах
        width = convert(page.width, page.unit, LengthUnit.pt)
        height = convert(page.height, page.unit, LengthUnit.pt)
        guides = compute_print_guides(
            CanvasSize(width=width, height=height), physical_size, bleed, dpi=POINTS_PER_INCH
        )
        left, top = -guides.bleed.x, -guides.bleed.y
        sheet_w, sheet_h = guides.bleed.width, guides.bleed.height
        c.setPageSize((sheet_w, sheet_h))

        def box(rect: Rect):
            # y в PDF растёт вверх, в шаблоне - вниз
            return left + rect.x, sheet_h - top - rect.y - rect.height, rect.width, rect.height

        # --- вылеты ---
        c.setStrokeColor(colors.red)
        c.setDash(4, 3)
        c.rect(0, 0, sheet_w, sheet_h, stroke=1, fill=0)

        # --- безопасная область ---
        c.setStrokeColor(colors.green)
        c.rect(*box(guides.safe), stroke=1, fill=0)

        # --- линия реза ---
        c.setDash()
        c.setStrokeColor(colors.black)
        c.rect(*box(guides.trim), stroke=1, fill=0)

        # --- зоны ---
        for zone in page.zones:
            rect = Rect(*(convert(v, page.unit, LengthUnit.pt) for v in zone.rect))
            color = ZONE_COLORS.get(zone.type, colors.grey)
            c.setStrokeColor(color)
            if zone.repeating:
                c.setDash(2, 2)
            else:
                c.setDash()
            x, y, w, h = box(rect)
            c.rect(x, y, w, h, stroke=1, fill=0)

            c.setFillColor(color)
            c.setFont("Helvetica", 7)
            c.drawString(x + 2, y + h - 9, zone.name)

        c.setDash()
        c.setFillColor(colors.black)
        c.setFont("Helvetica", 6)
        c.drawString(left + 2, 2, f"{title} • page {page.page_number}".strip(" •"))

        c.showPage()

    c.save()
    pdf_bytes = buffer.getvalue()
    buffer.close()
    logger.info(f"Корректура собрана: {len(pages)} стр., {len(pdf_bytes)} байт")
    return pdf_bytes
