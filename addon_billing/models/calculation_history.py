"""
Calculation History Model.

Persisted trail of the add-ons accepted for a visit, one row per
definition, with the billing-code link chosen automatically or by an
operator.
"""

from typing import Any, Optional
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from addon_billing.core.enums import LinkState
from addon_billing.models.base import Base, TimeStampedModel, UUIDModel


class CalculationHistory(Base, UUIDModel, TimeStampedModel):
    """Accepted add-on for a visit, superseded on every recalculation."""

    __tablename__ = "calculation_history"

    visit_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("visit_records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    definition_id: Mapped[UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("addon_definitions.id"),
        nullable=False,
        index=True,
    )
    code: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Add-on code at calculation time",
    )
    points: Mapped[int] = mapped_column(Integer, nullable=False)
    definition_version: Mapped[str] = mapped_column(String(50), nullable=False)
    trail: Mapped[dict[str, Any]] = mapped_column(
        JSON,
        nullable=False,
        default=dict,
        comment="Matched conditions, pattern bucket and metadata",
    )

    # Billing-code link
    billing_code_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("billing_codes.id"),
        nullable=True,
    )
    link_state: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=LinkState.AUTOMATIC.value,
        comment="automatic, manual or cleared",
    )

    __table_args__ = (
        Index("ix_calculation_history_visit_definition", "visit_id", "definition_id"),
    )

    def __repr__(self) -> str:
        return f"<CalculationHistory(visit_id={self.visit_id}, code='{self.code}', points={self.points})>"
