import io

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from reportlab.lib.pagesizes import A4, letter
from reportlab.pdfgen import canvas
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import printzone.db.models  # noqa: F401  регистрирует таблицы
from printzone.db.base import Base
from printzone.db.models import Template, TemplatePage, User, UserRole
from printzone.services.zone_persistence import ZonePersistenceService


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def _enable_foreign_keys(dbapi_connection, _):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
def service(session_factory):
    return ZonePersistenceService(session_factory)


@pytest_asyncio.fixture
async def operator(session_factory):
    async with session_factory() as db:
        user = User(login="operator", role=UserRole.operator)
        db.add(user)
        await db.commit()
        return user


@pytest.fixture
def make_template(session_factory):
    """Шаблон со страницами заданного нативного размера (pt). Возвращает (template_id, [page_id, ...])."""

    async def _make(pages=((595.0, 842.0),), dimensions="210x297mm", name="Calendar"):
        async with session_factory() as db:
            template = Template(name=name, dimensions=dimensions)
            db.add(template)
            await db.flush()
            rows = [
                TemplatePage(
                    template_id=template.id,
                    page_number=number,
                    native_page_width=width,
                    native_page_height=height,
                    native_units="pt",
                )
                for number, (width, height) in enumerate(pages, start=1)
            ]
            db.add_all(rows)
            await db.commit()
            return template.id, [row.id for row in rows]

    return _make


def _make_pdf(*page_sizes) -> bytes:
    buffer = io.BytesIO()
    c = canvas.Canvas(buffer)
    for number, size in enumerate(page_sizes or (A4,), start=1):
        c.setPageSize(size)
        c.drawString(72, 72, f"Page {number}")
        c.showPage()
    c.save()
    return buffer.getvalue()


@pytest.fixture
def pdf_factory():
    return _make_pdf


@pytest.fixture
def pdf_bytes():
    return _make_pdf(A4, letter)


@pytest_asyncio.fixture
async def client(session_factory, service, operator, tmp_path, monkeypatch):
    from printzone.db.session import get_db
    from printzone.main import app
    from printzone.services.auth_service import get_current_user
    from printzone.services.documents import document_service
    from printzone.services.zone_persistence import get_zone_service

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = lambda: operator
    app.dependency_overrides[get_zone_service] = lambda: service
    monkeypatch.setattr(document_service, "storage_dir", tmp_path / "storage")

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
