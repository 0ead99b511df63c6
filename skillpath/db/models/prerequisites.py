"""
Prerequisite override model.

Curriculum files declare default prerequisites per skill. Override rows add
edges (or re-weight declared ones) without reloading the curriculum; the
resolver merges both, ordering overrides by weight.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Float, Index, Integer, Text, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class PrerequisiteOverride(Base):
    """
    Explicit prerequisite edge: skill_code requires prerequisite_code.

    Attributes:
        weight: Relative importance of the edge (1.0 highest)
        description: Free-text provenance of the edge
    """

    __tablename__ = "prerequisite_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    skill_code: Mapped[str] = mapped_column(Text, nullable=False)
    prerequisite_code: Mapped[str] = mapped_column(Text, nullable=False)
    weight: Mapped[float] = mapped_column(Float, default=1.0)
    description: Mapped[str | None] = mapped_column(Text)

    created_at: Mapped[datetime] = mapped_column(default=func.now())

    __table_args__ = (
        UniqueConstraint("skill_code", "prerequisite_code", name="uq_override_edge"),
        Index("idx_override_skill", "skill_code"),
    )

    def __repr__(self) -> str:
        return f"<PrerequisiteOverride({self.skill_code} <- {self.prerequisite_code}, w={self.weight})>"
