import pytest
from sqlalchemy import delete

from printzone.core.errors import PersistenceFailure
from printzone.db.models import TemplateProduct, User, UserRole
from printzone.main import app
from printzone.services.auth_service import create_access_token, get_current_user

CANVAS = {"canvas_width": 800, "canvas_height": 600}


async def create_template(client, **extra) -> dict:
    payload = {"name": "Wall calendar 2027", "dimensions": "210x297mm"}
    payload.update(extra)
    resp = await client.post("/templates", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


async def upload(client, template_id, content, filename="calendar.pdf"):
    return await client.post(
        f"/templates/{template_id}/document",
        files={"file": (filename, content, "application/pdf")},
    )


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "healthy"}


@pytest.mark.asyncio
async def test_create_list_get_update_template(client):
    created = await create_template(client)
    assert created["dimensions"] == "210x297mm"
    assert created["bleed_settings"] == {"top": 3, "right": 3, "bottom": 3, "left": 3, "units": "mm"}
    assert created["is_active"] is False

    resp = await client.get("/templates")
    assert [t["id"] for t in resp.json()] == [created["id"]]

    resp = await client.patch(f"/templates/{created['id']}", json={"is_active": True, "dimensions": "8.5x11in"})
    assert resp.status_code == 200
    assert resp.json()["dimensions"] == "8.5x11in"

    resp = await client.get("/templates", params={"active_only": True})
    assert len(resp.json()) == 1

    resp = await client.get(f"/templates/{created['id']}")
    assert resp.json()["is_active"] is True


@pytest.mark.asyncio
@pytest.mark.parametrize("dimensions", ["A4", "210x297", "0x297mm", "210x297cm"])
async def test_create_rejects_bad_dimensions(client, dimensions):
    resp = await client.post("/templates", json={"name": "Broken", "dimensions": dimensions})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_unknown_template_is_404(client):
    assert (await client.get("/templates/999")).status_code == 404
    assert (await client.get("/templates/999/pages")).status_code == 404


@pytest.mark.asyncio
async def test_upload_document_creates_pages(client, pdf_bytes):
    template = await create_template(client)

    resp = await upload(client, template["id"], pdf_bytes)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["success"] is True
    assert body["pages_created"] == 2
    assert body["message"] == "Processed 2 of 2 pages"

    resp = await client.get(f"/templates/{template['id']}/pages")
    pages = resp.json()
    assert [p["page_number"] for p in pages] == [1, 2]
    assert pages[1]["native_page_width"] == 612
    assert pages[1]["native_units"] == "pt"

    resp = await client.get(f"/pages/{pages[0]['id']}/preview")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "image/png"
    assert resp.content.startswith(b"\x89PNG")


@pytest.mark.asyncio
async def test_upload_rejects_non_pdf(client):
    template = await create_template(client)
    resp = await upload(client, template["id"], b"just text", filename="notes.txt")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_page_layout(client, make_template):
    _, (page_id,) = await make_template(pages=[(595, 842)], dimensions="210x297mm")

    resp = await client.get(f"/pages/{page_id}/layout", params=CANVAS)
    assert resp.status_code == 200
    layout = resp.json()
    assert layout["dimensions_match"] is True
    assert layout["warning"] is None
    assert layout["canvas"] == {"width": 800, "height": 600}
    assert layout["scale_x"] == pytest.approx(595 / 800)
    assert layout["guides"]["trim"] == {"x": 0, "y": 0, "width": 800, "height": 600}

    resp = await client.get(f"/pages/{page_id}/layout", params={"canvas_width": 800})
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_page_layout_reports_mismatch(client, make_template):
    _, (page_id,) = await make_template(pages=[(612, 792)], dimensions="210x297mm")

    layout = (await client.get(f"/pages/{page_id}/layout", params=CANVAS)).json()
    assert layout["dimensions_match"] is False
    assert "don't match" in layout["warning"]["message"]


@pytest.mark.asyncio
async def test_zone_crud(client, make_template):
    _, (page_id,) = await make_template()

    resp = await client.post(
        f"/pages/{page_id}/zones",
        json={"type": "image", "x": 100, "y": 100, "width": 200, "height": 150, **CANVAS},
    )
    assert resp.status_code == 201, resp.text
    created = resp.json()
    assert created["name"] == "Image Zone 1"
    assert created["zone_id"] is not None

    resp = await client.get(f"/pages/{page_id}/zones", params=CANVAS)
    (zone,) = resp.json()
    assert zone["zone_id"] == created["zone_id"]
    assert zone["native_unit"] == "pt"
    assert zone["native"]["x"] == pytest.approx(100 * 595 / 800, abs=0.001)
    assert zone["canvas"]["x"] == pytest.approx(100, abs=0.01)
    assert zone["canvas"]["width"] == pytest.approx(200, abs=0.01)

    resp = await client.patch(f"/assignments/{zone['assignment_id']}", json={"x": 12.5, "z_index": 3})
    assert resp.status_code == 200
    assert resp.json() == {"id": zone["assignment_id"], "updated": ["x", "z_index"]}

    assert (await client.patch(f"/assignments/{zone['assignment_id']}", json={})).status_code == 400
    assert (await client.patch("/assignments/999999", json={"x": 1})).status_code == 404
    assert (await client.patch(f"/assignments/{zone['assignment_id']}", json={"width": 0})).status_code == 422

    resp = await client.delete(f"/zones/{zone['zone_id']}", params={"assignment_id": zone["assignment_id"]})
    assert resp.status_code == 204
    assert (await client.delete(f"/zones/{zone['zone_id']}")).status_code == 404
    assert (await client.get(f"/pages/{page_id}/zones", params=CANVAS)).json() == []


@pytest.mark.asyncio
async def test_patch_repeating_zone_from_inherited_page(client, make_template):
    _, (first, second) = await make_template(pages=[(595, 842), (842, 1191)])
    await client.post(
        f"/pages/{first}/zones",
        json={"type": "image", "x": 100, "y": 100, "width": 200, "height": 150, "is_repeating": True, **CANVAS},
    )
    (anchor,) = (await client.get(f"/pages/{first}/zones", params=CANVAS)).json()
    (view,) = (await client.get(f"/pages/{second}/zones", params=CANVAS)).json()
    assert (view["page_id"], view["anchor_page_id"]) == (second, first)

    resp = await client.patch(
        f"/assignments/{view['assignment_id']}",
        params={"page_id": view["page_id"]},
        json={key: view["native"][key] for key in ("x", "y", "width", "height")},
    )
    assert resp.status_code == 200, resp.text

    (after,) = (await client.get(f"/pages/{first}/zones", params=CANVAS)).json()
    for key in ("x", "y", "width", "height"):
        assert after["native"][key] == pytest.approx(anchor["native"][key], abs=0.01)


@pytest.mark.asyncio
async def test_save_zone_set(client, make_template):
    template_id, (page_id,) = await make_template()
    payload = {
        "page_id": page_id,
        "is_new_template": True,
        **CANVAS,
        "zones": [
            {"type": "image", "x": 10, "y": 10, "width": 300, "height": 200},
            {"type": "text", "name": "Title", "x": 10, "y": 250, "width": 300, "height": 40},
        ],
    }
    resp = await client.put(f"/templates/{template_id}/zones", json=payload)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Template saved"
    assert len(body["report"]["inserted"]) == 2
    zones = body["zones"]
    assert [z["name"] for z in zones] == ["Image Zone 1", "Title"]

    # второй заход: Title убрали, картинку сдвинули
    image = dict(zones[0], id=zones[0]["zone_id"], x=50)
    payload.update(is_new_template=False, zones=[image])
    body = (await client.put(f"/templates/{template_id}/zones", json=payload)).json()
    assert body["report"]["updated"] == [image["id"]]
    assert body["report"]["deleted"] == [zones[1]["zone_id"]]


@pytest.mark.asyncio
async def test_save_zone_set_partial_failure(client, make_template, service, monkeypatch):
    template_id, (page_id,) = await make_template()
    first = {"page_id": page_id, **CANVAS, "zones": [{"type": "image", "x": 0, "y": 0, "width": 50, "height": 50}]}
    saved = (await client.put(f"/templates/{template_id}/zones", json=first)).json()["zones"][0]

    async def broken_update(*args, **kwargs):
        raise PersistenceFailure("connection reset", stage="zone")

    monkeypatch.setattr(service, "update_zone", broken_update)

    payload = {
        "page_id": page_id,
        **CANVAS,
        "zones": [
            dict(saved, id=saved["zone_id"], x=100),
            {"type": "text", "x": 0, "y": 300, "width": 200, "height": 30},
        ],
    }
    resp = await client.put(f"/templates/{template_id}/zones", json=payload)
    assert resp.status_code == 207
    body = resp.json()
    assert body["message"] == "Template saved, but some zones may be missing"
    assert body["report"]["failures"][0]["operation"] == "update"
    assert len(body["report"]["inserted"]) == 1


@pytest.mark.asyncio
async def test_save_zone_set_checks_page_owner(client, make_template):
    template_id, _ = await make_template(name="A")
    _, (foreign_page,) = await make_template(name="B")

    resp = await client.put(
        f"/templates/{template_id}/zones",
        json={"page_id": foreign_page, **CANVAS, "zones": []},
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_proof_and_export(client, make_template):
    template_id, (page_id, _) = await make_template(pages=[(595, 842), (595, 842)])
    await client.post(
        f"/pages/{page_id}/zones",
        json={"type": "text", "x": 20, "y": 20, "width": 200, "height": 40, "is_repeating": True, **CANVAS},
    )

    resp = await client.get(f"/templates/{template_id}/proof.pdf")
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert "attachment" in resp.headers["content-disposition"]
    assert resp.content.startswith(b"%PDF")

    export = (await client.get(f"/templates/{template_id}/export")).json()
    assert len(export["pages"]) == 2
    (zone,) = export["zones"]
    assert zone["type"] == "text"
    assert zone["assignments"][0]["is_repeating"] is True

    overview = (await client.get(f"/templates/{template_id}/customization")).json()
    assert overview["page_count"] == 2


@pytest.mark.asyncio
async def test_proof_without_pages_is_404(client):
    template = await create_template(client)
    assert (await client.get(f"/templates/{template['id']}/proof.pdf")).status_code == 404


@pytest.mark.asyncio
async def test_delete_template(client, make_template, session_factory):
    template_id, (page_id,) = await make_template()
    await client.post(f"/pages/{page_id}/zones", json={"type": "image", **CANVAS})

    async with session_factory() as db:
        product = TemplateProduct(template_id=template_id, product_ref="SKU-1")
        db.add(product)
        await db.commit()

    assert (await client.delete(f"/templates/{template_id}")).status_code == 409

    async with session_factory() as db:
        await db.execute(delete(TemplateProduct).where(TemplateProduct.id == product.id))
        await db.commit()

    assert (await client.delete(f"/templates/{template_id}")).status_code == 204
    assert (await client.get(f"/templates/{template_id}")).status_code == 404


@pytest.mark.asyncio
async def test_customer_cannot_edit(client, session_factory):
    async with session_factory() as db:
        customer = User(login="customer", role=UserRole.customer)
        db.add(customer)
        await db.commit()

    app.dependency_overrides[get_current_user] = lambda: customer

    assert (await client.get("/templates")).status_code == 200
    resp = await client.post("/templates", json={"name": "Nope"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Operator role required"


@pytest.mark.asyncio
async def test_bearer_token(client, operator):
    app.dependency_overrides.pop(get_current_user)

    assert (await client.get("/auth/me")).status_code == 401
    assert (await client.get("/auth/me", headers={"Authorization": "Bearer garbage"})).status_code == 401

    token = create_access_token(operator.login, role=operator.role)
    resp = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json() == {"id": operator.id, "login": "operator", "role": "operator"}
