from pathlib import Path

import pytest
from reportlab.lib.pagesizes import A4, letter
from sqlalchemy import func, select

from printzone.core.coordinates import CanvasSize, Rect
from printzone.core.errors import DocumentIngestionError, RecordNotFound
from printzone.core.zone_geometry import ZoneGeometry
from printzone.db.models import CustomizationZone, Template, TemplatePage, ZonePageAssignment, ZoneType
from printzone.services.documents import DocumentService, read_page_sizes


@pytest.fixture
def documents(tmp_path):
    return DocumentService(tmp_path / "storage")


def test_read_page_sizes_in_points(pdf_factory):
    sizes = read_page_sizes(pdf_factory(A4, letter))
    assert sizes[0] == pytest.approx((595.276, 841.89), abs=0.01)
    assert sizes[1] == pytest.approx((612, 792))


@pytest.mark.asyncio
async def test_ingest_creates_pages_and_metadata(documents, make_template, session_factory, pdf_bytes):
    template_id, _ = await make_template(pages=[])

    async with session_factory() as db:
        result = await documents.ingest(db, template_id, "calendar.pdf", pdf_bytes)

    assert result.success
    assert (result.pages_created, result.pages_failed) == (2, 0)
    assert result.warning is None

    async with session_factory() as db:
        pages = (await db.execute(
            select(TemplatePage).where(TemplatePage.template_id == template_id).order_by(TemplatePage.page_number)
        )).scalars().all()
        template = await db.get(Template, template_id)

    assert [p.page_number for p in pages] == [1, 2]
    assert (pages[1].native_page_width, pages[1].native_page_height, pages[1].native_units) == (612, 792, "pt")
    assert template.document_metadata["page_count"] == 2
    assert template.document_metadata["file_size"] == len(pdf_bytes)
    assert "processed_at" in template.document_metadata
    assert Path(template.original_document_url).read_bytes() == pdf_bytes


@pytest.mark.asyncio
async def test_ingest_warns_on_dimension_mismatch(documents, make_template, session_factory, pdf_factory):
    template_id, _ = await make_template(pages=[], dimensions="210x297mm")

    async with session_factory() as db:
        result = await documents.ingest(db, template_id, "letter.pdf", pdf_factory(letter))

    assert result.success
    assert result.warning is not None
    assert result.warning["relative_difference"] == pytest.approx(0.093, abs=0.001)


@pytest.mark.asyncio
async def test_reupload_replaces_pages_and_their_assignments(
    documents, make_template, session_factory, service, pdf_factory
):
    template_id, (page_id,) = await make_template()
    await service.create_zone(
        template_id,
        ZoneGeometry.from_rect(ZoneType.image, "Photo", Rect(10, 10, 100, 100)),
        page_id,
        CanvasSize(width=800, height=600),
    )

    async with session_factory() as db:
        result = await documents.ingest(db, template_id, "new.pdf", pdf_factory(A4, A4, A4))
    assert result.pages_created == 3

    async with session_factory() as db:
        pages = await db.scalar(select(func.count()).select_from(TemplatePage))
        assignments = await db.scalar(select(func.count()).select_from(ZonePageAssignment))
        zones = await db.scalar(select(func.count()).select_from(CustomizationZone))
        assert await db.get(TemplatePage, page_id) is None

    assert (pages, assignments, zones) == (3, 0, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("filename,content", [
    ("notes.txt", b"%PDF-1.4"),
    ("broken.pdf", b"hello"),
    (None, b"%PDF-1.4"),
])
async def test_ingest_rejects_non_pdf(documents, make_template, session_factory, filename, content):
    template_id, _ = await make_template(pages=[])
    async with session_factory() as db:
        with pytest.raises(DocumentIngestionError):
            await documents.ingest(db, template_id, filename, content)


@pytest.mark.asyncio
async def test_ingest_unknown_template(documents, session_factory, pdf_bytes):
    async with session_factory() as db:
        with pytest.raises(RecordNotFound):
            await documents.ingest(db, 999, "calendar.pdf", pdf_bytes)


@pytest.mark.asyncio
async def test_preview_is_rendered_once_and_cached(documents, make_template, session_factory, pdf_bytes, monkeypatch):
    template_id, _ = await make_template(pages=[])
    async with session_factory() as db:
        await documents.ingest(db, template_id, "calendar.pdf", pdf_bytes)
        page_id = (await db.execute(
            select(TemplatePage.id).where(TemplatePage.template_id == template_id, TemplatePage.page_number == 2)
        )).scalar_one()

    async with session_factory() as db:
        path = await documents.page_preview(db, page_id)
    assert path.read_bytes().startswith(b"\x89PNG")

    def no_render(*args, **kwargs):
        raise AssertionError("preview must come from cache")

    monkeypatch.setattr("printzone.services.documents.render_page_png", no_render)
    async with session_factory() as db:
        assert await documents.page_preview(db, page_id) == path


@pytest.mark.asyncio
async def test_preview_without_document(documents, make_template, session_factory):
    _, (page_id,) = await make_template()
    async with session_factory() as db:
        with pytest.raises(DocumentIngestionError):
            await documents.page_preview(db, page_id)
