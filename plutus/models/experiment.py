"""
Experiment Models

Document tables for experiments and user assignments.
"""

from typing import Optional

from sqlalchemy import JSON, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from plutus.models.base import Base, TimestampMixin


class ExperimentRecord(Base, TimestampMixin):
    """
    Stored experiment.

    Attributes:
        id: Experiment id (test_<hex>)
        status: Lifecycle status, denormalized for filtering
        document: Full experiment as produced by Experiment.to_dict()
    """

    __tablename__ = "experiments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    def __repr__(self) -> str:
        return f"<ExperimentRecord(id={self.id}, status={self.status})>"


class AssignmentRecord(Base, TimestampMixin):
    """Sticky (user, experiment) assignment with its event log."""

    __tablename__ = "user_assignments"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    test_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    variant_id: Mapped[str] = mapped_column(String(100), nullable=False)
    conversion_value: Mapped[Optional[float]] = mapped_column(nullable=True)
    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    __table_args__ = (
        Index("ix_user_assignments_test_variant", "test_id", "variant_id"),
    )

    def __repr__(self) -> str:
        return f"<AssignmentRecord(user_id={self.user_id}, test_id={self.test_id})>"
