"""
SQL Record and History Stores.

Live-mode implementations of the store interfaces over the SQLAlchemy
models. Rows are returned as pydantic snapshots so the engine never holds
ORM objects.
Source: https://docs.sqlalchemy.org/en/20/orm/extensions/asyncio.html
"""

import logging
from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from addon_billing.core.enums import InsuranceCategory, LinkState, VisitStatus
from addon_billing.models import (
    AddOnDefinition,
    BillingCode,
    CalculationHistory,
    Facility,
    Patient,
    SpecialManagementDefinition,
    StaffMember,
    VisitRecord,
)
from addon_billing.schemas.addon import AddOnDefinitionSchema
from addon_billing.schemas.records import (
    BillingCodeSnapshot,
    CalculationHistoryEntry,
    FacilitySnapshot,
    PatientSnapshot,
    SpecialManagementSnapshot,
    StaffSnapshot,
    VisitSnapshot,
)
from addon_billing.services.addon.stores import (
    HistoryStore,
    HistoryTransaction,
    RecordStore,
    StoreMode,
)

logger = logging.getLogger(__name__)


def _status_values(statuses: Iterable[VisitStatus]) -> list[str]:
    return [VisitStatus(s).value for s in statuses]


class SqlRecordStore(RecordStore):
    """Record store reading through one AsyncSession."""

    mode = StoreMode.LIVE

    def __init__(self, session: AsyncSession):
        self.session = session

    # =========================================================================
    # Definitions
    # =========================================================================

    def _to_definition(self, row: AddOnDefinition) -> Optional[AddOnDefinitionSchema]:
        try:
            return AddOnDefinitionSchema.model_validate(row)
        except ValidationError as e:
            logger.error(f"Ignoring invalid add-on definition {row.code} ({row.id}): {e}")
            return None

    async def list_definitions(
        self,
        visit_date: date,
        facility_id: UUID,
        insurance_category: InsuranceCategory,
    ) -> list[AddOnDefinitionSchema]:
        result = await self.session.execute(
            select(AddOnDefinition).where(
                AddOnDefinition.is_active.is_(True),
                AddOnDefinition.insurance_category == insurance_category.value,
                or_(AddOnDefinition.facility_id == facility_id, AddOnDefinition.facility_id.is_(None)),
                AddOnDefinition.valid_from <= visit_date,
                or_(AddOnDefinition.valid_to.is_(None), AddOnDefinition.valid_to >= visit_date),
            )
        )
        definitions = [self._to_definition(row) for row in result.scalars().all()]
        return [d for d in definitions if d is not None]

    # =========================================================================
    # Visits and participants
    # =========================================================================

    async def get_visit(self, visit_id: UUID) -> Optional[VisitSnapshot]:
        row = await self.session.get(VisitRecord, visit_id)
        return VisitSnapshot.model_validate(row) if row is not None else None

    async def get_patient(self, patient_id: UUID) -> Optional[PatientSnapshot]:
        row = await self.session.get(Patient, patient_id)
        return PatientSnapshot.model_validate(row) if row is not None else None

    async def get_facility(self, facility_id: UUID) -> Optional[FacilitySnapshot]:
        row = await self.session.get(Facility, facility_id)
        return FacilitySnapshot.model_validate(row) if row is not None else None

    async def get_staff(self, staff_id: UUID) -> Optional[StaffSnapshot]:
        row = await self.session.get(StaffMember, staff_id)
        return StaffSnapshot.model_validate(row) if row is not None else None

    async def list_patient_visits(
        self,
        patient_id: UUID,
        start: date,
        end: date,
        statuses: Optional[Iterable[VisitStatus]] = None,
        facility_id: Optional[UUID] = None,
        include_deleted: bool = False,
    ) -> list[VisitSnapshot]:
        query = select(VisitRecord).where(
            VisitRecord.patient_id == patient_id,
            VisitRecord.visit_date >= start,
            VisitRecord.visit_date <= end,
        )
        if statuses is not None:
            query = query.where(VisitRecord.status.in_(_status_values(statuses)))
        if facility_id is not None:
            query = query.where(VisitRecord.facility_id == facility_id)
        if not include_deleted:
            query = query.where(VisitRecord.deleted_at.is_(None))

        result = await self.session.execute(query.order_by(VisitRecord.visit_date, VisitRecord.id))
        return [VisitSnapshot.model_validate(row) for row in result.scalars().all()]

    # =========================================================================
    # Aggregate lookups
    # =========================================================================

    async def count_addon_occurrences(
        self,
        patient_id: UUID,
        code: str,
        start: date,
        end: date,
        statuses: Iterable[VisitStatus],
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        query = (
            select(func.count(CalculationHistory.id))
            .join(VisitRecord, CalculationHistory.visit_id == VisitRecord.id)
            .where(
                VisitRecord.patient_id == patient_id,
                CalculationHistory.code == code,
                VisitRecord.visit_date >= start,
                VisitRecord.visit_date <= end,
                VisitRecord.status.in_(_status_values(statuses)),
                VisitRecord.deleted_at.is_(None),
            )
        )
        if exclude_visit_id is not None:
            query = query.where(VisitRecord.id != exclude_visit_id)
        return (await self.session.execute(query)).scalar_one()

    async def count_site_patients(
        self,
        facility_id: UUID,
        site_id: UUID,
        visit_date: date,
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        query = (
            select(func.count(func.distinct(VisitRecord.patient_id)))
            .join(Patient, VisitRecord.patient_id == Patient.id)
            .where(
                Patient.site_id == site_id,
                VisitRecord.facility_id == facility_id,
                VisitRecord.visit_date == visit_date,
                VisitRecord.deleted_at.is_(None),
            )
        )
        if exclude_visit_id is not None:
            query = query.where(VisitRecord.id != exclude_visit_id)
        return (await self.session.execute(query)).scalar_one()

    async def list_special_management_definitions(
        self,
        categories: Iterable[str],
        facility_id: UUID,
    ) -> list[SpecialManagementSnapshot]:
        result = await self.session.execute(
            select(SpecialManagementDefinition).where(
                SpecialManagementDefinition.category.in_(list(categories)),
                SpecialManagementDefinition.is_active.is_(True),
                or_(
                    SpecialManagementDefinition.facility_id == facility_id,
                    SpecialManagementDefinition.facility_id.is_(None),
                ),
            )
        )
        return [SpecialManagementSnapshot.model_validate(row) for row in result.scalars().all()]

    async def find_billing_code(
        self,
        service_code: str,
        insurance_category: InsuranceCategory,
        on_date: date,
    ) -> Optional[BillingCodeSnapshot]:
        result = await self.session.execute(
            select(BillingCode)
            .where(
                BillingCode.service_code == service_code,
                BillingCode.insurance_category == insurance_category.value,
                BillingCode.is_active.is_(True),
                BillingCode.valid_from <= on_date,
                or_(BillingCode.valid_to.is_(None), BillingCode.valid_to >= on_date),
            )
            .order_by(BillingCode.valid_from.desc())
            .limit(1)
        )
        row = result.scalars().first()
        return BillingCodeSnapshot.model_validate(row) if row is not None else None


class _SqlTransaction(HistoryTransaction):
    """History operations on a session inside ``session.begin()``."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_for_visit(self, visit_id: UUID) -> list[CalculationHistoryEntry]:
        result = await self.session.execute(
            select(CalculationHistory)
            .where(CalculationHistory.visit_id == visit_id)
            .order_by(CalculationHistory.created_at, CalculationHistory.id)
        )
        return [CalculationHistoryEntry.model_validate(row) for row in result.scalars().all()]

    async def delete_for_visit(self, visit_id: UUID) -> int:
        result = await self.session.execute(
            delete(CalculationHistory).where(CalculationHistory.visit_id == visit_id)
        )
        return result.rowcount or 0

    async def insert(self, entries: list[CalculationHistoryEntry]) -> None:
        self.session.add_all(
            CalculationHistory(
                visit_id=entry.visit_id,
                definition_id=entry.definition_id,
                code=entry.code,
                points=entry.points,
                definition_version=entry.definition_version,
                trail=entry.trail,
                billing_code_id=entry.billing_code_id,
                link_state=entry.link_state.value,
            )
            for entry in entries
        )
        await self.session.flush()

    async def update_link(
        self,
        visit_id: UUID,
        definition_id: UUID,
        billing_code_id: Optional[UUID],
        link_state: LinkState,
    ) -> bool:
        result = await self.session.execute(
            update(CalculationHistory)
            .where(
                CalculationHistory.visit_id == visit_id,
                CalculationHistory.definition_id == definition_id,
            )
            .values(billing_code_id=billing_code_id, link_state=link_state.value)
        )
        return (result.rowcount or 0) > 0


class SqlHistoryStore(HistoryStore):
    """
    History store opening a fresh session per transaction.

    ``session.begin()`` commits when the block exits and rolls back if it
    raises, so a visit's delete and insert are applied together or not at all.
    """

    mode = StoreMode.LIVE

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[HistoryTransaction]:
        async with self._session_maker() as session:
            async with session.begin():
                yield _SqlTransaction(session)
