"""
Promotion Models
"""

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from plutus.models.base import Base, TimestampMixin


class PromotionRecord(Base, TimestampMixin):
    __tablename__ = "promotions"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    priority: Mapped[int] = mapped_column(nullable=False, default=0)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<PromotionRecord(id={self.id}, status={self.status})>"
