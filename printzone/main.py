from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from printzone.api.auth import router as auth_router
from printzone.api.pages import router as pages_router
from printzone.api.templates import router as templates_router
from printzone.api.zones import router as zones_router
from printzone.config import settings
from printzone.core.errors import (
    ContentTypeMismatch,
    DegenerateGeometry,
    DocumentIngestionError,
    ImmutableZoneType,
    InvalidDimensions,
    PartialReconciliationFailure,
    PersistenceFailure,
    RecordNotFound,
    SessionClosed,
    TemplateInUse,
    UnparsableDimensions,
    UnsupportedUnitKind,
    ZoneEngineError,
)
from printzone.db.session import init_models

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# порядок важен: RecordNotFound - подкласс PersistenceFailure
ERROR_STATUS = [
    (RecordNotFound, 404),
    (TemplateInUse, 409),
    (SessionClosed, 409),
    (DegenerateGeometry, 422),
    (InvalidDimensions, 422),
    (UnsupportedUnitKind, 422),
    (UnparsableDimensions, 422),
    (ImmutableZoneType, 422),
    (ContentTypeMismatch, 422),
    (DocumentIngestionError, 400),
    (PersistenceFailure, 502),
]


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("🚀 Printzone starting up...")
    if settings.AUTO_CREATE_TABLES:
        await init_models()
    yield
    # Shutdown
    logger.info("🛑 Printzone shutting down...")


app = FastAPI(
    title="Printzone",
    description="Зоны кастомизации для шаблонов печатной продукции",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    # Нужно, чтобы фронтенд мог прочитать Content-Disposition у корректуры
    expose_headers=["Content-Disposition"],
)


@app.exception_handler(ZoneEngineError)
async def zone_engine_error_handler(request: Request, exc: ZoneEngineError):
    if isinstance(exc, PartialReconciliationFailure):
        return JSONResponse(status_code=207, content={"message": str(exc), "report": exc.report.to_dict()})

    status_code = next((code for cls, code in ERROR_STATUS if isinstance(exc, cls)), 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


# Auth
app.include_router(auth_router)

# Templates
app.include_router(templates_router)

# Pages / zones
app.include_router(pages_router)
app.include_router(zones_router)


@app.get("/")
def root():
    return {
        "message": "Printzone is running 🚀",
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}
