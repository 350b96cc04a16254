"""
Record and History Store Interfaces.

Abstract base classes for the collaborators the engine reads from and
writes to, supporting demo (in-memory) and live (database) modes.
"""

from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager
from datetime import date
from enum import Enum
from typing import Iterable, Optional
from uuid import UUID

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


class StoreMode(str, Enum):
    """Store operating mode."""

    DEMO = "demo"
    LIVE = "live"


class RecordStore(ABC):
    """Finder operations over definitions, visits and their participants."""

    # =========================================================================
    # Definitions
    # =========================================================================

    @abstractmethod
    async def list_definitions(
        self,
        visit_date: date,
        facility_id: UUID,
        insurance_category: InsuranceCategory,
    ) -> list[AddOnDefinitionSchema]:
        """Candidate definitions for a visit. May over-select; never under-select."""
        pass

    # =========================================================================
    # Visits and participants
    # =========================================================================

    @abstractmethod
    async def get_visit(self, visit_id: UUID) -> Optional[VisitSnapshot]:
        pass

    @abstractmethod
    async def get_patient(self, patient_id: UUID) -> Optional[PatientSnapshot]:
        pass

    @abstractmethod
    async def get_facility(self, facility_id: UUID) -> Optional[FacilitySnapshot]:
        pass

    @abstractmethod
    async def get_staff(self, staff_id: UUID) -> Optional[StaffSnapshot]:
        pass

    @abstractmethod
    async def list_patient_visits(
        self,
        patient_id: UUID,
        start: date,
        end: date,
        statuses: Optional[Iterable[VisitStatus]] = None,
        facility_id: Optional[UUID] = None,
        include_deleted: bool = False,
    ) -> list[VisitSnapshot]:
        """
        List a patient's visits with start <= visit_date <= end.

        Args:
            patient_id: Patient to list
            start: First visit date (inclusive)
            end: Last visit date (inclusive)
            statuses: Only these statuses (None = any)
            facility_id: Only this facility (None = any)
            include_deleted: Include soft-deleted visits
        """
        pass

    # =========================================================================
    # Aggregate lookups
    # =========================================================================

    @abstractmethod
    async def count_addon_occurrences(
        self,
        patient_id: UUID,
        code: str,
        start: date,
        end: date,
        statuses: Iterable[VisitStatus],
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        """Count persisted history rows for ``code`` on the patient's visits in range."""
        pass

    @abstractmethod
    async def count_site_patients(
        self,
        facility_id: UUID,
        site_id: UUID,
        visit_date: date,
        exclude_visit_id: Optional[UUID] = None,
    ) -> int:
        """Count distinct patients of a site with a non-deleted visit on a date."""
        pass

    @abstractmethod
    async def list_special_management_definitions(
        self,
        categories: Iterable[str],
        facility_id: UUID,
    ) -> list[SpecialManagementSnapshot]:
        """Active special-management definitions (facility-specific or global)."""
        pass

    @abstractmethod
    async def find_billing_code(
        self,
        service_code: str,
        insurance_category: InsuranceCategory,
        on_date: date,
    ) -> Optional[BillingCodeSnapshot]:
        """Active billing code valid on a date."""
        pass


class HistoryTransaction(ABC):
    """Operations available inside one atomic history transaction."""

    @abstractmethod
    async def list_for_visit(self, visit_id: UUID) -> list[CalculationHistoryEntry]:
        pass

    @abstractmethod
    async def delete_for_visit(self, visit_id: UUID) -> int:
        pass

    @abstractmethod
    async def insert(self, entries: list[CalculationHistoryEntry]) -> None:
        pass

    @abstractmethod
    async def update_link(
        self,
        visit_id: UUID,
        definition_id: UUID,
        billing_code_id: Optional[UUID],
        link_state: LinkState,
    ) -> bool:
        """Set the billing-code link of one row. Returns False if no row matched."""
        pass


class HistoryStore(ABC):
    """Transactional store for calculation history rows."""

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[HistoryTransaction]:
        """
        Open an atomic unit of work.

        Everything done through the yielded transaction is committed when the
        block exits normally and rolled back when it raises.
        """
        pass

    async def list_for_visit(self, visit_id: UUID) -> list[CalculationHistoryEntry]:
        """Read a visit's current history outside any caller transaction."""
        async with self.transaction() as tx:
            return await tx.list_for_visit(visit_id)
