"""
In-Memory Record and History Stores.

Demo-mode implementations of the store interfaces. They hold pydantic
snapshots in dictionaries and are also the fakes used by the unit tests.
"""

from contextlib import asynccontextmanager
from datetime import date
from typing import AsyncIterator, Iterable, Optional
from uuid import UUID, uuid4

from addon_billing.core.enums import InsuranceCategory, LinkState, VisitStatus
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
from addon_billing.utils.errors import PersistenceError


class _DemoTransaction(HistoryTransaction):
    """Works directly on the owning store's rows."""

    def __init__(self, store: "DemoHistoryStore"):
        self._store = store

    async def list_for_visit(self, visit_id: UUID) -> list[CalculationHistoryEntry]:
        return list(self._store._rows.get(visit_id, []))

    async def delete_for_visit(self, visit_id: UUID) -> int:
        return len(self._store._rows.pop(visit_id, []))

    async def insert(self, entries: list[CalculationHistoryEntry]) -> None:
        for entry in entries:
            if entry.visit_id in self._store.fail_on_insert_for:
                raise PersistenceError("Simulated insert failure", visit_id=str(entry.visit_id))
            row = entry.model_copy(update={"id": entry.id or uuid4()})
            self._store._rows.setdefault(entry.visit_id, []).append(row)

    async def update_link(
        self,
        visit_id: UUID,
        definition_id: UUID,
        billing_code_id: Optional[UUID],
        link_state: LinkState,
    ) -> bool:
        rows = self._store._rows.get(visit_id, [])
        updated = False
        for i, row in enumerate(rows):
            if row.definition_id == definition_id:
                rows[i] = row.model_copy(
                    update={"billing_code_id": billing_code_id, "link_state": link_state}
                )
                updated = True
        return updated


class DemoHistoryStore(HistoryStore):
    """
    History store backed by a dictionary.

    A transaction snapshots every visit's row list on entry and restores
    the snapshot if the block raises.
    """

    mode = StoreMode.DEMO

    def __init__(self) -> None:
        self._rows: dict[UUID, list[CalculationHistoryEntry]] = {}
        # Visits whose inserts raise, for exercising rollback
        self.fail_on_insert_for: set[UUID] = set()

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[HistoryTransaction]:
        snapshot = {visit_id: list(rows) for visit_id, rows in self._rows.items()}
        try:
            yield _DemoTransaction(self)
        except BaseException:
            self._rows = snapshot
            raise

    def all_rows(self) -> list[CalculationHistoryEntry]:
        """Every stored row, for assertions and counting."""
        return [row for rows in self._rows.values() for row in rows]

    def seed(self, entries: Iterable[CalculationHistoryEntry]) -> None:
        """Insert rows outside a transaction."""
        for entry in entries:
            row = entry.model_copy(update={"id": entry.id or uuid4()})
            self._rows.setdefault(entry.visit_id, []).append(row)

    def clear(self) -> None:
        self._rows.clear()


class DemoRecordStore(RecordStore):
    """
    Record store backed by dictionaries of snapshots.

    Occurrence counting for monthly caps reads the rows of the paired
    ``DemoHistoryStore``.
    """

    mode = StoreMode.DEMO

    def __init__(self, history: Optional[DemoHistoryStore] = None):
        self.history = history or DemoHistoryStore()
        self._definitions: dict[UUID, AddOnDefinitionSchema] = {}
        self._visits: dict[UUID, VisitSnapshot] = {}
        self._patients: dict[UUID, PatientSnapshot] = {}
        self._facilities: dict[UUID, FacilitySnapshot] = {}
        self._staff: dict[UUID, StaffSnapshot] = {}
        self._billing_codes: dict[UUID, BillingCodeSnapshot] = {}
        self._special_management: dict[UUID, SpecialManagementSnapshot] = {}

    # =========================================================================
    # Seeding
    # =========================================================================

    def add_definition(self, definition: AddOnDefinitionSchema) -> AddOnDefinitionSchema:
        self._definitions[definition.id] = definition
        return definition

    def add_visit(self, visit: VisitSnapshot) -> VisitSnapshot:
        self._visits[visit.id] = visit
        return visit

    def add_patient(self, patient: PatientSnapshot) -> PatientSnapshot:
        self._patients[patient.id] = patient
        return patient

    def add_facility(self, facility: FacilitySnapshot) -> FacilitySnapshot:
        self._facilities[facility.id] = facility
        return facility

    def add_staff(self, staff: StaffSnapshot) -> StaffSnapshot:
        self._staff[staff.id] = staff
        return staff

    def add_billing_code(self, billing_code: BillingCodeSnapshot) -> BillingCodeSnapshot:
        self._billing_codes[billing_code.id] = billing_code
        return billing_code

    def add_special_management(self, definition: SpecialManagementSnapshot) -> SpecialManagementSnapshot:
        self._special_management[definition.id] = definition
        return definition

    # =========================================================================
    # Finders
    # =========================================================================

    async def list_definitions(
        self,
        visit_date: date,
        facility_id: UUID,
        insurance_category: InsuranceCategory,
    ) -> list[AddOnDefinitionSchema]:
        return [
            d
            for d in self._definitions.values()
            if d.is_active and d.applies_to(facility_id, insurance_category)
        ]

    async def get_visit(self, visit_id: UUID) -> Optional[VisitSnapshot]:
        return self._visits.get(visit_id)

    async def get_patient(self, patient_id: UUID) -> Optional[PatientSnapshot]:
        return self._patients.get(patient_id)

    async def get_facility(self, facility_id: UUID) -> Optional[FacilitySnapshot]:
        return self._facilities.get(facility_id)

    async def get_staff(self, staff_id: UUID) -> Optional[StaffSnapshot]:
        return self._staff.get(staff_id)

    async def list_patient_visits(
        self,
        patient_id: UUID,
        start: date,
        end: date,
        statuses: Optional[Iterable[VisitStatus]] = None,
        facility_id: Optional[UUID] = None,
        include_deleted: bool = False,
    ) -> list[VisitSnapshot]:
        allowed = set(statuses) if statuses is not None else None
        visits = [
            v
            for v in self._visits.values()
            if v.patient_id == patient_id
            and start <= v.visit_date <= end
            and (allowed is None or v.status in allowed)
            and (facility_id is None or v.facility_id == facility_id)
            and (include_deleted or not v.is_deleted)
        ]
        return sorted(visits, key=lambda v: (v.visit_date, str(v.id)))

    async def count_addon_occurrences(
        self,
        patient_id: UUID,
        code: str,
        start: date,
        end: date,
        statuses: Iterable[VisitStatus],
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        visits = await self.list_patient_visits(patient_id, start, end, statuses=statuses)
        visit_ids = {v.id for v in visits if v.id != exclude_visit_id}
        return sum(
            1
            for row in self.history.all_rows()
            if row.visit_id in visit_ids and row.code == code
        )

    async def count_site_patients(
        self,
        facility_id: UUID,
        site_id: UUID,
        visit_date: date,
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        patients = set()
        for visit in self._visits.values():
            if (
                visit.facility_id != facility_id
                or visit.visit_date != visit_date
                or visit.is_deleted
                or visit.id == exclude_visit_id
            ):
                continue
            patient = self._patients.get(visit.patient_id)
            if patient is not None and patient.site_id == site_id:
                patients.add(patient.id)
        return len(patients)

    async def list_special_management_definitions(
        self,
        categories: Iterable[str],
        facility_id: UUID,
    ) -> list[SpecialManagementSnapshot]:
        wanted = set(categories)
        return [
            d
            for d in self._special_management.values()
            if d.is_active
            and d.category in wanted
            and (d.facility_id is None or d.facility_id == facility_id)
        ]

    async def find_billing_code(
        self,
        service_code: str,
        insurance_category: InsuranceCategory,
        on_date: date,
    ) -> Optional[BillingCodeSnapshot]:
        matches = [
            c
            for c in self._billing_codes.values()
            if c.service_code == service_code
            and c.insurance_category == insurance_category
            and c.is_valid_on(on_date)
        ]
        if not matches:
            return None
        # Latest revision wins
        return max(matches, key=lambda c: c.valid_from)
