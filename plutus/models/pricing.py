"""
Pricing Models

Document tables for dynamic pricing state and seasonal events.
"""

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from plutus.models.base import Base, TimestampMixin


class DynamicPricingRecord(Base, TimestampMixin):
    """Pricing state of one package, rules and history included."""

    __tablename__ = "dynamic_pricing"

    package_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    current_price: Mapped[float] = mapped_column(nullable=False)
    is_active: Mapped[bool] = mapped_column(nullable=False, default=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<DynamicPricingRecord(package_id={self.package_id}, price={self.current_price})>"


class SeasonalEventRecord(Base, TimestampMixin):
    __tablename__ = "seasonal_events"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<SeasonalEventRecord(id={self.id}, category={self.category})>"
