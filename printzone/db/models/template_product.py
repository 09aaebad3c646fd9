from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Boolean, ForeignKey, String, DateTime, func
from printzone.db.base import Base, BigIntPK, SQLITE_AUTOINCREMENT

class TemplateProduct(Base):
    """Ссылка товара на шаблон. Сам каталог живёт в другом сервисе."""
    __tablename__ = "template_products"
    __table_args__ = SQLITE_AUTOINCREMENT

    id: Mapped[int] = mapped_column(BigIntPK, primary_key=True, autoincrement=True)
    template_id: Mapped[int] = mapped_column(ForeignKey("templates.id", ondelete="RESTRICT"), index=True, nullable=False)
    product_ref: Mapped[str] = mapped_column(String(255), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    template: Mapped["Template"] = relationship(back_populates="products")
