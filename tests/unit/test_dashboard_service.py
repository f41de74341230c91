"""
Dashboard Service Tests.

Tests for:
- Claim rollups by status and decision
- Role scoping of every rollup
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from src.core.enums import (
    AuditSeverity,
    BatchStatus,
    ClaimDecision,
    ClaimStatus,
    ErrorLogStatus,
    ReimbursementStatus,
)
from src.models import ErrorLog, Reimbursement
from src.services.dashboard_service import DashboardService
from tests.conftest import OTHER_TPA_ID, TPA_ID


@pytest.fixture
def service(repository, portal_settings):
    return DashboardService(repository, settings=portal_settings)


@pytest.fixture
def seeded(repository, make_batch):
    """Two batches for the facility's TPA, one for another TPA, plus findings and reimbursements."""
    submitted = make_batch(status=BatchStatus.SUBMITTED, claims=2)
    make_batch(status=BatchStatus.CLOSED, claims=1)
    make_batch(status=BatchStatus.SUBMITTED, claims=1, tpa_id=OTHER_TPA_ID)

    approved = next(c for c in repository.claims.values() if c.batch_id == submitted.id)
    approved.status = ClaimStatus.VERIFIED
    approved.decision = ClaimDecision.APPROVED
    approved.approved_cost_of_care = Decimal("25000")

    for tpa_id, severity, status in [
        (TPA_ID, AuditSeverity.HIGH, ErrorLogStatus.OPEN),
        (TPA_ID, AuditSeverity.HIGH, ErrorLogStatus.UNDER_REVIEW),
        (TPA_ID, AuditSeverity.LOW, ErrorLogStatus.RESOLVED),
        (OTHER_TPA_ID, AuditSeverity.CRITICAL, ErrorLogStatus.OPEN),
    ]:
        repository.add(ErrorLog(id=uuid4(), tpa_id=tpa_id, severity=severity, status=status, error_code="X"))

    repository.add(
        Reimbursement(id=uuid4(), reference="RMB-2024-000001", tpa_id=TPA_ID, amount=Decimal("100000"),
                      status=ReimbursementStatus.COMPLETED, batch_ids=[], purpose="Settlement")
    )
    repository.add(
        Reimbursement(id=uuid4(), reference="RMB-2024-000002", tpa_id=OTHER_TPA_ID, amount=Decimal("5000"),
                      status=ReimbursementStatus.PENDING, batch_ids=[], purpose="Settlement")
    )
    return repository


@pytest.mark.unit
class TestDashboardSummary:
    """Scoped rollups."""

    @pytest.mark.asyncio
    async def test_admin_sees_everything(self, service, seeded, admin_actor):
        summary = await service.get_summary(admin_actor)

        assert summary.total_claims == 4
        assert summary.total_claimed == Decimal("120000.00")
        assert summary.total_approved == Decimal("25000.00")
        assert summary.claims_by_status[ClaimStatus.VERIFIED].count == 1
        assert summary.claims_by_status[ClaimStatus.SUBMITTED].count == 3
        assert summary.claims_by_decision[ClaimDecision.APPROVED].approved_amount == Decimal("25000.00")
        assert summary.batches_by_status == {BatchStatus.SUBMITTED: 2, BatchStatus.CLOSED: 1}
        assert summary.open_errors_by_severity == {AuditSeverity.HIGH: 2, AuditSeverity.CRITICAL: 1}
        assert summary.reimbursements_by_status[ReimbursementStatus.COMPLETED].total_amount == Decimal("100000.00")
        assert summary.currency == "NGN"

    @pytest.mark.asyncio
    async def test_tpa_scope(self, service, seeded, tpa_actor):
        summary = await service.get_summary(tpa_actor)

        assert summary.total_claims == 3
        assert summary.open_errors_by_severity == {AuditSeverity.HIGH: 2}
        assert set(summary.reimbursements_by_status) == {ReimbursementStatus.COMPLETED}

    @pytest.mark.asyncio
    async def test_facility_sees_no_findings_or_reimbursements(self, service, seeded, facility_actor):
        summary = await service.get_summary(facility_actor)

        assert summary.total_claims == 4
        assert summary.open_errors_by_severity == {}
        assert summary.reimbursements_by_status == {}

    @pytest.mark.asyncio
    async def test_empty_portal(self, service, other_facility_actor):
        summary = await service.get_summary(other_facility_actor)
        assert summary.total_claims == 0
        assert summary.total_claimed == Decimal("0.00")
        assert summary.batches_by_status == {}
