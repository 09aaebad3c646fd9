from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # База данных: локально sqlite, в проде postgresql+asyncpg://...
    DATABASE_URL_ASYNC: str = "sqlite+aiosqlite:///./printzone.db"
    AUTO_CREATE_TABLES: bool = True

    # Auth
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # Хранилище PDF и превью страниц
    STORAGE_DIR: str = "storage"
    PREVIEW_RESOLUTION: int = 96

    # Координаты
    SCREEN_DPI: float = 96.0
    DIMENSION_TOLERANCE: float = 0.05
    CANVAS_MAX_WIDTH: int = 1000
    CANVAS_MAX_HEIGHT: int = 700
    DEFAULT_CANVAS_WIDTH: int = 800
    DEFAULT_CANVAS_HEIGHT: int = 600

    # Шаблоны
    DEFAULT_DIMENSIONS: str = "210x297mm"
    DEFAULT_BLEED_MM: float = 3.0

    CORS_ORIGINS: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
