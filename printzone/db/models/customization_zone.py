from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import ForeignKey, String, Integer, Float, DateTime, func, Enum as SAEnum
from printzone.db.base import Base, BigIntPK, SQLITE_AUTOINCREMENT
from printzone.db.models.enums import ZoneType

class CustomizationZone(Base):
    __tablename__ = "customization_zones"
    __table_args__ = SQLITE_AUTOINCREMENT

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates.id", ondelete="CASCADE"), index=True, nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[ZoneType] = mapped_column(SAEnum(ZoneType, name="zone_type"), nullable=False)

    # эталонная геометрия в пикселях холста на момент рисования
    x: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    y: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    width: Mapped[float] = mapped_column(Float, nullable=False)
    height: Mapped[float] = mapped_column(Float, nullable=False)
    z_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    template: Mapped["Template"] = relationship(back_populates="zones")
    assignments: Mapped[list["ZonePageAssignment"]] = relationship(back_populates="zone")
