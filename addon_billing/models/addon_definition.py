"""
Add-on Definition Model (versioned bonus master record).
"""

from datetime import date
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class AddOnDefinition(Base, UUIDModel, TimeStampedModel):
    """
    One temporally-versioned add-on rule.

    Several rows may share a ``code``; each carries its own validity
    window and is evaluated independently.
    """

    __tablename__ = "addon_definitions"

    # Scope (NULL facility = shared by all facilities)
    facility_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("facilities.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
        comment="Owning facility, NULL for global definitions",
    )
    insurance_category: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="medical or care",
    )

    # Identification
    code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Stable business key (not unique across versions)",
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    version: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        default="1",
        comment="Version label, e.g. fee revision year",
    )
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Validity window (inclusive)
    valid_from: Mapped[date] = mapped_column(Date, nullable=False)
    valid_to: Mapped[Optional[date]] = mapped_column(Date, nullable=True)

    # Value computation
    value_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="fixed or conditional",
    )
    fixed_points: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    pattern_kind: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    pattern_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    # Gating and combination
    conditions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)
    can_combine_with_only: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    cannot_combine_with: Mapped[Optional[list[str]]] = mapped_column(JSON, nullable=True)
    depends_on: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Codes that must be evaluated before this definition",
    )

    # Priority
    evaluation_order: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        Index("ix_addon_definitions_scope", "insurance_category", "facility_id", "is_active"),
        Index("ix_addon_definitions_validity", "valid_from", "valid_to"),
    )

    def __repr__(self) -> str:
        return f"<AddOnDefinition(id={self.id}, code='{self.code}', version='{self.version}')>"
