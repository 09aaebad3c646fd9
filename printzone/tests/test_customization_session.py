import pytest

from printzone.core.coordinates import CanvasSize, Rect
from printzone.core.errors import ContentTypeMismatch, RecordNotFound
from printzone.core.zone_geometry import ZoneGeometry
from printzone.db.models import ZoneType
from printzone.services.customization_session import CustomizationPage, CustomizationSession
from printzone.services.zone_persistence import ZoneWithAssignment


def placed(zone_id, zone_type, page_id, name=None):
    return ZoneWithAssignment(
        zone_id=zone_id, template_id=1, name=name or f"zone {zone_id}", type=zone_type,
        x=0, y=0, width=10, height=10, z_index=0,
        assignment_id=zone_id * 10, page_id=page_id, anchor_page_id=page_id,
    )


@pytest.fixture
def session():
    pages = [
        CustomizationPage(page_id=12, page_number=2, zones=[placed(3, ZoneType.image, 12)]),
        CustomizationPage(page_id=11, page_number=1, zones=[placed(1, ZoneType.image, 11), placed(2, ZoneType.text, 11)]),
    ]
    return CustomizationSession(template_id=1, pages=pages)


def test_pages_ordered_and_navigable(session):
    assert session.page_count == 2
    assert session.current_page.page_number == 1
    assert session.next_page().page_number == 2
    assert session.next_page().page_number == 2
    assert session.previous_page().page_number == 1
    assert session.previous_page().page_number == 1
    assert session.go_to(2).page_id == 12
    with pytest.raises(RecordNotFound):
        session.go_to(5)


def test_binding_respects_zone_type(session):
    session.bind_text(11, 2, "Happy birthday")
    session.bind_image(11, 1, "uploads/photo.jpg")
    assert session.dirty

    with pytest.raises(ContentTypeMismatch):
        session.bind_text(11, 1, "nope")
    with pytest.raises(ContentTypeMismatch):
        session.bind_image(11, 2, "nope.png")
    with pytest.raises(RecordNotFound):
        session.bind_image(12, 1, "zone 1 is not on page 2")

    assert session.content_for(11, 2).text == "Happy birthday"
    assert session.completion() == (2, 3)


def test_mark_saved_and_clear(session):
    session.bind_text(11, 2, "x")
    session.mark_saved()
    assert not session.dirty

    session.clear(11, 2)
    assert session.dirty
    assert session.content_for(11, 2) is None

    session.mark_saved()
    session.clear(11, 2)
    assert not session.dirty


def test_to_design(session):
    session.bind_image(12, 3, "uploads/cover.jpg")
    design = session.to_design()
    assert design["template_id"] == 1
    assert [p["page_number"] for p in design["pages"]] == [1, 2]
    assert design["pages"][1]["zones"] == [
        {"zone_id": 3, "assignment_id": 30, "name": "zone 3", "type": "image", "content": "uploads/cover.jpg"}
    ]
    assert design["pages"][0]["zones"][1]["content"] is None


@pytest.mark.asyncio
async def test_open_from_storage(service, make_template, session_factory):
    template_id, (first, second) = await make_template(pages=[(595, 842), (595, 842)])
    canvas = CanvasSize(width=800, height=600)
    await service.create_zone(
        template_id, ZoneGeometry.from_rect(ZoneType.text, "Month", Rect(10, 10, 100, 20), is_repeating=True), first, canvas
    )
    await service.create_zone(
        template_id, ZoneGeometry.from_rect(ZoneType.image, "Photo", Rect(10, 100, 300, 200)), second, canvas
    )

    async with session_factory() as db:
        session = await CustomizationSession.open(db, service, template_id)

    assert session.page_count == 2
    assert [z.name for z in session.pages[0].zones] == ["Month"]
    assert sorted(z.name for z in session.pages[1].zones) == ["Month", "Photo"]

    month = next(z for z in session.pages[1].zones if z.name == "Month")
    session.bind_text(second, month.zone_id, "January")
    assert session.completion() == (1, 3)
    assert session.overview()["page_count"] == 2
