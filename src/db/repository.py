"""
Persistence adapter for portal services.

Services talk to a PortalRepository instead of issuing queries directly,
so the same service code runs against PostgreSQL (SqlPortalRepository)
or an in-memory store.
"""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.enums import (
    AuditSeverity,
    BatchStatus,
    ClaimDecision,
    ClaimStatus,
    ErrorLogStatus,
    ReimbursementStatus,
)
from src.models import (
    Batch,
    BatchClosureReport,
    Claim,
    ClaimItem,
    ErrorLog,
    Facility,
    Reimbursement,
    Tpa,
)


class PortalRepository(ABC):
    """Lookups and unit-of-work operations used by the portal services."""

    # Unit of work ----------------------------------------------------------

    @abstractmethod
    def add(self, entity: Any) -> None:
        """Stage a new entity."""

    @abstractmethod
    async def flush(self) -> None:
        """Push staged changes without committing."""

    @abstractmethod
    async def commit(self) -> None:
        """Commit the current transaction."""

    @abstractmethod
    async def rollback(self) -> None:
        """Discard uncommitted changes."""

    # Organizations ---------------------------------------------------------

    @abstractmethod
    async def get_facility(self, facility_id: UUID) -> Optional[Facility]:
        pass

    @abstractmethod
    async def get_tpa(self, tpa_id: UUID) -> Optional[Tpa]:
        pass

    # Batches ---------------------------------------------------------------

    @abstractmethod
    async def get_batch(self, batch_id: UUID) -> Optional[Batch]:
        pass

    @abstractmethod
    async def batch_number_exists(self, batch_number: str) -> bool:
        pass

    @abstractmethod
    async def list_batches(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        status: Optional[BatchStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Batch]:
        pass

    @abstractmethod
    async def get_closure_report(self, batch_id: UUID) -> Optional[BatchClosureReport]:
        pass

    # Claims ----------------------------------------------------------------

    @abstractmethod
    async def get_claim(self, claim_id: UUID) -> Optional[Claim]:
        pass

    @abstractmethod
    async def claim_id_exists(self, unique_claim_id: str) -> bool:
        pass

    @abstractmethod
    async def list_batch_claims(self, batch_id: UUID) -> list[Claim]:
        pass

    @abstractmethod
    async def list_claims(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        batch_id: Optional[UUID] = None,
        status: Optional[ClaimStatus] = None,
        decision: Optional[ClaimDecision] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Claim]:
        """Claims matching every given filter, newest first."""

    @abstractmethod
    async def get_claim_item(self, item_id: UUID) -> Optional[ClaimItem]:
        pass

    # Reimbursements --------------------------------------------------------

    @abstractmethod
    async def get_reimbursement(self, reimbursement_id: UUID) -> Optional[Reimbursement]:
        pass

    @abstractmethod
    async def last_reimbursement_reference(self, year: int) -> Optional[str]:
        """Highest RMB-{year}-* reference issued so far."""

    @abstractmethod
    async def get_batches(self, batch_ids: Sequence[UUID]) -> list[Batch]:
        pass

    # Error logs ------------------------------------------------------------

    @abstractmethod
    async def get_error_log(self, error_log_id: UUID) -> Optional[ErrorLog]:
        pass

    @abstractmethod
    async def list_error_logs(
        self,
        batch_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        status: Optional[ErrorLogStatus] = None,
        severity: Optional[AuditSeverity] = None,
        offset: int = 0,
        limit: Optional[int] = 50,
    ) -> list[ErrorLog]:
        pass

    # Dashboard rollups -----------------------------------------------------

    @abstractmethod
    async def claim_rollup(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
    ) -> list[tuple[ClaimStatus, ClaimDecision, int, Decimal, Decimal]]:
        """(status, decision, count, total cost, approved cost) groups."""

    @abstractmethod
    async def batch_status_counts(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
    ) -> dict[BatchStatus, int]:
        pass

    @abstractmethod
    async def open_error_counts(self, tpa_id: Optional[UUID] = None) -> dict[AuditSeverity, int]:
        pass

    @abstractmethod
    async def reimbursement_totals(
        self,
        tpa_id: Optional[UUID] = None,
    ) -> dict[ReimbursementStatus, tuple[int, Decimal]]:
        pass


class SqlPortalRepository(PortalRepository):
    """PortalRepository backed by an async SQLAlchemy session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    def add(self, entity: Any) -> None:
        self.session.add(entity)

    async def flush(self) -> None:
        await self.session.flush()

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()

    async def get_facility(self, facility_id: UUID) -> Optional[Facility]:
        return await self.session.get(Facility, facility_id)

    async def get_tpa(self, tpa_id: UUID) -> Optional[Tpa]:
        return await self.session.get(Tpa, tpa_id)

    async def get_batch(self, batch_id: UUID) -> Optional[Batch]:
        return await self.session.get(Batch, batch_id)

    async def batch_number_exists(self, batch_number: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Batch).where(Batch.batch_number == batch_number)
        )
        return result.scalar_one() > 0

    async def list_batches(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        status: Optional[BatchStatus] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Batch]:
        query = select(Batch)
        if facility_id:
            query = query.where(Batch.facility_id == facility_id)
        if tpa_id:
            query = query.where(Batch.tpa_id == tpa_id)
        if status:
            query = query.where(Batch.status == status)
        query = query.order_by(Batch.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_closure_report(self, batch_id: UUID) -> Optional[BatchClosureReport]:
        result = await self.session.execute(
            select(BatchClosureReport).where(BatchClosureReport.batch_id == batch_id)
        )
        return result.scalar_one_or_none()

    async def get_claim(self, claim_id: UUID) -> Optional[Claim]:
        return await self.session.get(Claim, claim_id)

    async def claim_id_exists(self, unique_claim_id: str) -> bool:
        result = await self.session.execute(
            select(func.count()).select_from(Claim).where(Claim.unique_claim_id == unique_claim_id)
        )
        return result.scalar_one() > 0

    async def list_batch_claims(self, batch_id: UUID) -> list[Claim]:
        result = await self.session.execute(
            select(Claim)
            .where(Claim.batch_id == batch_id)
            .order_by(Claim.date_of_admission, Claim.unique_claim_id)
        )
        return list(result.scalars().all())

    async def list_claims(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        batch_id: Optional[UUID] = None,
        status: Optional[ClaimStatus] = None,
        decision: Optional[ClaimDecision] = None,
        offset: int = 0,
        limit: int = 50,
    ) -> list[Claim]:
        query = select(Claim)
        if facility_id:
            query = query.where(Claim.facility_id == facility_id)
        if tpa_id:
            query = query.where(Claim.tpa_id == tpa_id)
        if batch_id:
            query = query.where(Claim.batch_id == batch_id)
        if status:
            query = query.where(Claim.status == status)
        if decision:
            query = query.where(Claim.decision == decision)
        query = query.order_by(Claim.created_at.desc(), Claim.unique_claim_id).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_claim_item(self, item_id: UUID) -> Optional[ClaimItem]:
        return await self.session.get(ClaimItem, item_id)

    async def get_reimbursement(self, reimbursement_id: UUID) -> Optional[Reimbursement]:
        return await self.session.get(Reimbursement, reimbursement_id)

    async def last_reimbursement_reference(self, year: int) -> Optional[str]:
        result = await self.session.execute(
            select(func.max(Reimbursement.reference)).where(
                Reimbursement.reference.like(f"RMB-{year}-%")
            )
        )
        return result.scalar_one_or_none()

    async def get_batches(self, batch_ids: Sequence[UUID]) -> list[Batch]:
        if not batch_ids:
            return []
        result = await self.session.execute(select(Batch).where(Batch.id.in_(list(batch_ids))))
        return list(result.scalars().all())

    async def get_error_log(self, error_log_id: UUID) -> Optional[ErrorLog]:
        return await self.session.get(ErrorLog, error_log_id)

    async def list_error_logs(
        self,
        batch_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
        status: Optional[ErrorLogStatus] = None,
        severity: Optional[AuditSeverity] = None,
        offset: int = 0,
        limit: Optional[int] = 50,
    ) -> list[ErrorLog]:
        query = select(ErrorLog)
        if batch_id:
            query = query.where(ErrorLog.batch_id == batch_id)
        if tpa_id:
            query = query.where(ErrorLog.tpa_id == tpa_id)
        if status:
            query = query.where(ErrorLog.status == status)
        if severity:
            query = query.where(ErrorLog.severity == severity)
        query = query.order_by(ErrorLog.created_at.desc()).offset(offset).limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def claim_rollup(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
    ) -> list[tuple[ClaimStatus, ClaimDecision, int, Decimal, Decimal]]:
        query = select(
            Claim.status,
            Claim.decision,
            func.count(Claim.id),
            func.coalesce(func.sum(Claim.total_cost_of_care), 0),
            func.coalesce(func.sum(Claim.approved_cost_of_care), 0),
        ).group_by(Claim.status, Claim.decision)
        if facility_id:
            query = query.where(Claim.facility_id == facility_id)
        if tpa_id:
            query = query.where(Claim.tpa_id == tpa_id)
        result = await self.session.execute(query)
        return [
            (status, decision, count, Decimal(total), Decimal(approved))
            for status, decision, count, total, approved in result.all()
        ]

    async def batch_status_counts(
        self,
        facility_id: Optional[UUID] = None,
        tpa_id: Optional[UUID] = None,
    ) -> dict[BatchStatus, int]:
        query = select(Batch.status, func.count(Batch.id)).group_by(Batch.status)
        if facility_id:
            query = query.where(Batch.facility_id == facility_id)
        if tpa_id:
            query = query.where(Batch.tpa_id == tpa_id)
        result = await self.session.execute(query)
        return {status: count for status, count in result.all()}

    async def open_error_counts(self, tpa_id: Optional[UUID] = None) -> dict[AuditSeverity, int]:
        query = (
            select(ErrorLog.severity, func.count(ErrorLog.id))
            .where(ErrorLog.status.in_([ErrorLogStatus.OPEN, ErrorLogStatus.UNDER_REVIEW]))
            .group_by(ErrorLog.severity)
        )
        if tpa_id:
            query = query.where(ErrorLog.tpa_id == tpa_id)
        result = await self.session.execute(query)
        return {severity: count for severity, count in result.all()}

    async def reimbursement_totals(
        self,
        tpa_id: Optional[UUID] = None,
    ) -> dict[ReimbursementStatus, tuple[int, Decimal]]:
        query = select(
            Reimbursement.status,
            func.count(Reimbursement.id),
            func.coalesce(func.sum(Reimbursement.amount), 0),
        ).group_by(Reimbursement.status)
        if tpa_id:
            query = query.where(Reimbursement.tpa_id == tpa_id)
        result = await self.session.execute(query)
        return {status: (count, Decimal(total)) for status, count, total in result.all()}
