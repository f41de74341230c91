"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.

Required secrets get test defaults before any src module reads settings.
"""

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key-for-claims-portal-01")
os.environ.setdefault("POSTGRES_PASSWORD", "test-password")
os.environ.setdefault("MINIO_SECRET_KEY", "test-minio-secret")

from collections import Counter, defaultdict
from collections.abc import Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Optional
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest

from src.core.config import PortalSettings
from src.core.enums import (
    AuditSeverity,
    BatchStatus,
    ClaimDecision,
    ClaimStatus,
    ErrorLogStatus,
    ReimbursementStatus,
    UserRole,
)
from src.db.repository import PortalRepository
from src.models import (
    Batch,
    BatchClosureReport,
    Claim,
    ClaimItem,
    ErrorLog,
    Facility,
    PaymentSummary,
    Reimbursement,
    ReimbursementDocument,
    StatusHistory,
    Tpa,
)
from src.schemas.actor import Actor
from src.services.cost_aggregation import apply_batch_totals, apply_itemized_costs
from src.services.storage import StorageService

FACILITY_ID = UUID("11111111-1111-1111-1111-111111111111")
OTHER_FACILITY_ID = UUID("11111111-1111-1111-1111-222222222222")
TPA_ID = UUID("22222222-2222-2222-2222-222222222222")
OTHER_TPA_ID = UUID("22222222-2222-2222-2222-333333333333")


# =============================================================================
# In-memory repository
# =============================================================================


class InMemoryRepository(PortalRepository):
    """PortalRepository over plain dicts; commits are counted, not applied."""

    def __init__(self):
        self.facilities: dict[UUID, Facility] = {}
        self.tpas: dict[UUID, Tpa] = {}
        self.batches: dict[UUID, Batch] = {}
        self.claims: dict[UUID, Claim] = {}
        self.items: dict[UUID, ClaimItem] = {}
        self.closure_reports: dict[UUID, BatchClosureReport] = {}
        self.payment_summaries: list[PaymentSummary] = []
        self.reimbursements: dict[UUID, Reimbursement] = {}
        self.documents: list[ReimbursementDocument] = []
        self.error_logs: dict[UUID, ErrorLog] = {}
        self.history: list[StatusHistory] = []
        self.commits = 0
        self.rollbacks = 0

    def add(self, entity: Any) -> None:
        if isinstance(entity, Facility):
            self.facilities[entity.id] = entity
        elif isinstance(entity, Tpa):
            self.tpas[entity.id] = entity
        elif isinstance(entity, Batch):
            self.batches[entity.id] = entity
        elif isinstance(entity, Claim):
            self.claims[entity.id] = entity
            for item in entity.items:
                self.items[item.id] = item
        elif isinstance(entity, ClaimItem):
            self.items[entity.id] = entity
        elif isinstance(entity, BatchClosureReport):
            self.closure_reports[entity.batch_id] = entity
        elif isinstance(entity, PaymentSummary):
            self.payment_summaries.append(entity)
        elif isinstance(entity, Reimbursement):
            self.reimbursements[entity.id] = entity
        elif isinstance(entity, ReimbursementDocument):
            self.documents.append(entity)
        elif isinstance(entity, ErrorLog):
            self.error_logs[entity.id] = entity
        elif isinstance(entity, StatusHistory):
            self.history.append(entity)
        else:
            raise TypeError(f"Unexpected entity {type(entity).__name__}")

    async def flush(self) -> None:
        pass

    async def commit(self) -> None:
        self.commits += 1

    async def rollback(self) -> None:
        self.rollbacks += 1

    async def get_facility(self, facility_id: UUID) -> Optional[Facility]:
        return self.facilities.get(facility_id)

    async def get_tpa(self, tpa_id: UUID) -> Optional[Tpa]:
        return self.tpas.get(tpa_id)

    async def get_batch(self, batch_id: UUID) -> Optional[Batch]:
        return self.batches.get(batch_id)

    async def batch_number_exists(self, batch_number: str) -> bool:
        return any(b.batch_number == batch_number for b in self.batches.values())

    async def list_batches(self, facility_id=None, tpa_id=None, status=None, offset=0, limit=50) -> list[Batch]:
        batches = [
            b for b in self.batches.values()
            if (facility_id is None or b.facility_id == facility_id)
            and (tpa_id is None or b.tpa_id == tpa_id)
            and (status is None or b.status == status)
        ]
        return batches[offset:offset + limit]

    async def get_closure_report(self, batch_id: UUID) -> Optional[BatchClosureReport]:
        return self.closure_reports.get(batch_id)

    async def get_claim(self, claim_id: UUID) -> Optional[Claim]:
        return self.claims.get(claim_id)

    async def claim_id_exists(self, unique_claim_id: str) -> bool:
        return any(c.unique_claim_id == unique_claim_id for c in self.claims.values())

    async def list_batch_claims(self, batch_id: UUID) -> list[Claim]:
        claims = [c for c in self.claims.values() if c.batch_id == batch_id]
        return sorted(claims, key=lambda c: (c.date_of_admission or date.max, c.unique_claim_id))

    async def list_claims(
        self, facility_id=None, tpa_id=None, batch_id=None, status=None, decision=None, offset=0, limit=50
    ) -> list[Claim]:
        claims = [
            c for c in reversed(list(self.claims.values()))
            if (facility_id is None or c.facility_id == facility_id)
            and (tpa_id is None or c.tpa_id == tpa_id)
            and (batch_id is None or c.batch_id == batch_id)
            and (status is None or c.status == status)
            and (decision is None or c.decision == decision)
        ]
        return claims[offset:offset + limit]

    async def get_claim_item(self, item_id: UUID) -> Optional[ClaimItem]:
        return self.items.get(item_id)

    async def get_reimbursement(self, reimbursement_id: UUID) -> Optional[Reimbursement]:
        return self.reimbursements.get(reimbursement_id)

    async def last_reimbursement_reference(self, year: int) -> Optional[str]:
        references = [r.reference for r in self.reimbursements.values() if r.reference.startswith(f"RMB-{year}-")]
        return max(references, default=None)

    async def get_batches(self, batch_ids: Sequence[UUID]) -> list[Batch]:
        return [self.batches[i] for i in batch_ids if i in self.batches]

    async def get_error_log(self, error_log_id: UUID) -> Optional[ErrorLog]:
        return self.error_logs.get(error_log_id)

    async def list_error_logs(
        self, batch_id=None, tpa_id=None, status=None, severity=None, offset=0, limit=50
    ) -> list[ErrorLog]:
        entries = [
            e for e in self.error_logs.values()
            if (batch_id is None or e.batch_id == batch_id)
            and (tpa_id is None or e.tpa_id == tpa_id)
            and (status is None or e.status == status)
            and (severity is None or e.severity == severity)
        ]
        return entries[offset:] if limit is None else entries[offset:offset + limit]

    async def claim_rollup(self, facility_id=None, tpa_id=None):
        groups: dict[tuple[ClaimStatus, ClaimDecision], list] = defaultdict(lambda: [0, Decimal("0"), Decimal("0")])
        for c in self.claims.values():
            if facility_id is not None and c.facility_id != facility_id:
                continue
            if tpa_id is not None and c.tpa_id != tpa_id:
                continue
            group = groups[(c.status, c.decision)]
            group[0] += 1
            group[1] += c.total_cost_of_care or Decimal("0")
            group[2] += c.approved_cost_of_care or Decimal("0")
        return [(status, decision, *values) for (status, decision), values in groups.items()]

    async def batch_status_counts(self, facility_id=None, tpa_id=None) -> dict[BatchStatus, int]:
        return dict(Counter(b.status for b in await self.list_batches(facility_id, tpa_id, limit=10_000)))

    async def open_error_counts(self, tpa_id=None) -> dict[AuditSeverity, int]:
        return dict(
            Counter(
                e.severity for e in self.error_logs.values()
                if e.status in (ErrorLogStatus.OPEN, ErrorLogStatus.UNDER_REVIEW)
                and (tpa_id is None or e.tpa_id == tpa_id)
            )
        )

    async def reimbursement_totals(self, tpa_id=None) -> dict[ReimbursementStatus, tuple[int, Decimal]]:
        totals: dict[ReimbursementStatus, tuple[int, Decimal]] = {}
        for r in self.reimbursements.values():
            if tpa_id is not None and r.tpa_id != tpa_id:
                continue
            count, amount = totals.get(r.status, (0, Decimal("0")))
            totals[r.status] = (count + 1, amount + r.amount)
        return totals


# =============================================================================
# Factories
# =============================================================================


def make_claim(batch: Batch, unique_claim_id: Optional[str] = None, **overrides) -> Claim:
    """Complete discharge-form claim in a batch (not added to any repository)."""
    costs = {
        "cost_of_investigation": overrides.pop("cost_of_investigation", Decimal("5000")),
        "cost_of_procedure": overrides.pop("cost_of_procedure", Decimal("20000")),
        "cost_of_medication": overrides.pop("cost_of_medication", Decimal("3000")),
        "cost_of_other_services": overrides.pop("cost_of_other_services", Decimal("2000")),
    }
    admitted = overrides.pop("date_of_admission", date(2024, 2, 5))
    fields = {
        "id": uuid4(),
        "unique_claim_id": unique_claim_id or f"LUTH-202402-{uuid4().int % 10**6:06d}",
        "batch_id": batch.id,
        "facility_id": batch.facility_id,
        "tpa_id": batch.tpa_id,
        "unique_beneficiary_id": "BEN-0001",
        "beneficiary_name": "Adaeze Okafor",
        "nin": "12345678901",
        "phone_number": "08030000001",
        "hospital_number": "HN-001",
        "primary_diagnosis": "Malaria",
        "treatment_procedure": "Antimalarial therapy",
        "date_of_admission": admitted,
        "date_of_treatment": admitted,
        "date_of_discharge": admitted + timedelta(days=2),
        "date_of_claim_submission": admitted + timedelta(days=3),
        "status": ClaimStatus.SUBMITTED,
        "decision": ClaimDecision.PENDING,
        "items": [],
    }
    fields.update(overrides)
    claim = Claim(**fields)
    apply_itemized_costs(claim, **costs)
    return claim


@pytest.fixture
def portal_settings():
    return PortalSettings()


@pytest.fixture
def repository():
    repo = InMemoryRepository()
    repo.add(Tpa(id=TPA_ID, name="Prime TPA", code="PTPA", contact_email="claims@primetpa.ng", is_active=True))
    repo.add(Tpa(id=OTHER_TPA_ID, name="Other TPA", code="OTPA", contact_email=None, is_active=True))
    repo.add(
        Facility(
            id=FACILITY_ID,
            name="Lagos University Teaching Hospital",
            code="LUTH",
            state="Lagos",
            contact_email="claims@luth.ng",
            tpa_id=TPA_ID,
            is_active=True,
        )
    )
    return repo


@pytest.fixture
def make_batch(repository):
    """Factory adding a batch with claims to the repository."""

    def _make(status: BatchStatus = BatchStatus.OPEN, claims: int = 0, tpa_id: UUID = TPA_ID, **claim_overrides):
        batch = Batch(
            id=uuid4(),
            batch_number=f"BATCH-LUTH-2024-W{len(repository.batches) + 1:02d}",
            facility_id=FACILITY_ID,
            tpa_id=tpa_id,
            period_start=date(2024, 2, 5),
            period_end=date(2024, 2, 11),
            status=status,
        )
        repository.add(batch)
        batch_claims = []
        for n in range(claims):
            claim = make_claim(
                batch,
                unique_claim_id=f"LUTH-202402-{len(repository.claims) + 1:06d}",
                unique_beneficiary_id=f"BEN-{n:04d}",
                **claim_overrides,
            )
            repository.add(claim)
            batch_claims.append(claim)
        apply_batch_totals(batch, batch_claims)
        return batch

    return _make


@pytest.fixture
def facility_actor():
    return Actor(user_id=uuid4(), name="Facility Officer", role=UserRole.FACILITY, facility_id=FACILITY_ID)


@pytest.fixture
def other_facility_actor():
    return Actor(user_id=uuid4(), name="Other Facility", role=UserRole.FACILITY, facility_id=OTHER_FACILITY_ID)


@pytest.fixture
def tpa_actor():
    return Actor(
        user_id=uuid4(),
        name="TPA Reviewer",
        role=UserRole.TPA,
        tpa_id=TPA_ID,
        email="reviewer@primetpa.ng",
    )


@pytest.fixture
def other_tpa_actor():
    return Actor(user_id=uuid4(), name="Other Reviewer", role=UserRole.TPA, tpa_id=OTHER_TPA_ID)


@pytest.fixture
def admin_actor():
    return Actor(user_id=uuid4(), name="NHIS Admin", role=UserRole.ADMIN, email="admin@nhis.gov.ng")


@pytest.fixture
def minio_client():
    """MagicMock standing in for the minio.Minio client."""
    client = MagicMock()
    client.bucket_exists.return_value = True
    return client


@pytest.fixture
def storage(minio_client):
    return StorageService(client=minio_client)


@pytest.fixture
def notifier():
    """AsyncMock notifier recording messages; send_many reports the count attempted."""
    gateway = AsyncMock()
    gateway.send.return_value = True
    gateway.send_many.side_effect = lambda messages: len(messages)
    return gateway


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "api: mark test as an API test"
    )
