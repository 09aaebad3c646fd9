from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import ForeignKey, String, Integer, Float, DateTime, func, Index
from printzone.db.base import Base, BigIntPK, SQLITE_AUTOINCREMENT

class TemplatePage(Base):
    __tablename__ = "template_pages"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates.id", ondelete="CASCADE"), index=True, nullable=False)

    page_number: Mapped[int] = mapped_column(Integer, nullable=False)
    preview_image_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # размер страницы так, как его сообщает исходный документ (обычно pt)
    native_page_width: Mapped[float | None] = mapped_column(Float, nullable=True)
    native_page_height: Mapped[float | None] = mapped_column(Float, nullable=True)
    native_units: Mapped[str | None] = mapped_column(String(8), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    template: Mapped["Template"] = relationship(back_populates="pages")
    assignments: Mapped[list["ZonePageAssignment"]] = relationship(back_populates="page")

    __table_args__ = (
        Index("ix_template_pages_template_number", "template_id", "page_number", unique=True),
        SQLITE_AUTOINCREMENT,
    )
