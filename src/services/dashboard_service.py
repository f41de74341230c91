"""
Dashboard rollups: claim counts and amounts by status and decision, batch
status counts, open findings by severity and reimbursement totals.

Admins see everything; TPAs and facilities see their own records.
Facilities do not see error logs or reimbursements.
"""

from decimal import Decimal

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import UserRole
from src.db.repository import PortalRepository
from src.schemas.actor import Actor
from src.schemas.dashboard import AmountBucket, DashboardSummary
from src.services.access import scope_ids
from src.services.cost_aggregation import to_amount


class DashboardService:
    def __init__(self, repository: PortalRepository, settings: PortalSettings | None = None):
        self.repository = repository
        self.settings = settings or get_portal_settings()

    async def get_summary(self, actor: Actor) -> DashboardSummary:
        scope = scope_ids(actor)
        facility_id = scope.get("facility_id")
        tpa_id = scope.get("tpa_id")

        summary = DashboardSummary(currency=self.settings.CURRENCY)
        for status, decision, count, total, approved in await self.repository.claim_rollup(
            facility_id=facility_id, tpa_id=tpa_id
        ):
            for bucket in (
                summary.claims_by_status.setdefault(status, AmountBucket()),
                summary.claims_by_decision.setdefault(decision, AmountBucket()),
            ):
                bucket.count += count
                bucket.total_amount = to_amount(bucket.total_amount + total)
                bucket.approved_amount = to_amount(bucket.approved_amount + approved)
            summary.total_claims += count
            summary.total_claimed += Decimal(total)
            summary.total_approved += Decimal(approved)

        summary.total_claimed = to_amount(summary.total_claimed)
        summary.total_approved = to_amount(summary.total_approved)
        summary.batches_by_status = await self.repository.batch_status_counts(
            facility_id=facility_id, tpa_id=tpa_id
        )

        if actor.role != UserRole.FACILITY:
            summary.open_errors_by_severity = await self.repository.open_error_counts(tpa_id=tpa_id)
            summary.reimbursements_by_status = {
                status: AmountBucket(count=count, total_amount=to_amount(total))
                for status, (count, total) in (await self.repository.reimbursement_totals(tpa_id=tpa_id)).items()
            }
        return summary
