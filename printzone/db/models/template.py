from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Boolean, ForeignKey, String, DateTime, func, JSON, Text
from printzone.db.base import Base, BigIntPK, SQLITE_AUTOINCREMENT

class Template(Base):
    __tablename__ = "templates"
    __table_args__ = SQLITE_AUTOINCREMENT

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="calendar")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # компактная строка вида "210x297mm"
    dimensions: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # {"top": 3, "right": 3, "bottom": 3, "left": 3, "units": "mm"}
    bleed_settings: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    original_document_url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    document_metadata: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    creator: Mapped["User | None"] = relationship(back_populates="templates")
    pages: Mapped[list["TemplatePage"]] = relationship(back_populates="template", order_by="TemplatePage.page_number")
    zones: Mapped[list["CustomizationZone"]] = relationship(back_populates="template")
    products: Mapped[list["TemplateProduct"]] = relationship(back_populates="template")
