from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Boolean, ForeignKey, Integer, Float, DateTime, func, Index
from printzone.db.base import Base, BigIntPK, SQLITE_AUTOINCREMENT

class ZonePageAssignment(Base):
    __tablename__ = "zone_page_assignments"

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    zone_id: Mapped[int] = mapped_column(ForeignKey("customization_zones.id", ondelete="CASCADE"), index=True, nullable=False)
    page_id: Mapped[int] = mapped_column(ForeignKey("template_pages.id", ondelete="CASCADE"), index=True, nullable=False)

    # геометрия в нативных единицах своей страницы
    x: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    y: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)
    z_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_repeating: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    zone: Mapped["CustomizationZone"] = relationship(back_populates="assignments")
    page: Mapped["TemplatePage"] = relationship(back_populates="assignments")

    __table_args__ = (
        Index("ix_zone_page_assignments_zone_page", "zone_id", "page_id", unique=True),
        SQLITE_AUTOINCREMENT,
    )
