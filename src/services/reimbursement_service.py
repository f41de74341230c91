"""
Reimbursement Service.

Provides:
- Reimbursement records against closed batches of one TPA
- Admin actions (process, complete, dispute, cancel)
- Append-only supporting documents

Reimbursements are a ledger of their own; they never touch claim payment
fields.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from src.core.config import PortalSettings, get_portal_settings
from src.core.enums import (
    BatchStatus,
    HistoryEntityType,
    ReimbursementAction,
    ReimbursementDocumentType,
    ReimbursementStatus,
    UserRole,
)
from src.db.repository import PortalRepository
from src.models import Reimbursement, ReimbursementDocument
from src.schemas.actor import Actor
from src.schemas.reimbursement import ReimbursementActionRequest, ReimbursementCreate
from src.services.access import require_role
from src.services.errors import EntityNotFoundError, StateConflictError, ValidationFailedError
from src.services.history import record_status_change
from src.services.lifecycle import StateMachine, Transition, TransitionContext
from src.services.storage import StorageService, UploadedDocument, safe_object_name, validate_upload

logger = logging.getLogger(__name__)

ADMIN_ONLY = frozenset({UserRole.ADMIN})


def _admin(from_status: ReimbursementStatus, to_status: ReimbursementStatus, event: ReimbursementAction):
    return Transition(from_status=from_status, to_status=to_status, event=event, allowed_roles=ADMIN_ONLY)


REIMBURSEMENT_TRANSITIONS: list[Transition[ReimbursementStatus, ReimbursementAction]] = [
    _admin(ReimbursementStatus.PENDING, ReimbursementStatus.PROCESSED, ReimbursementAction.PROCESS),
    _admin(ReimbursementStatus.PROCESSED, ReimbursementStatus.COMPLETED, ReimbursementAction.COMPLETE),
    _admin(ReimbursementStatus.PENDING, ReimbursementStatus.DISPUTED, ReimbursementAction.DISPUTE),
    _admin(ReimbursementStatus.PROCESSED, ReimbursementStatus.DISPUTED, ReimbursementAction.DISPUTE),
    _admin(ReimbursementStatus.PENDING, ReimbursementStatus.CANCELLED, ReimbursementAction.CANCEL),
    _admin(ReimbursementStatus.PROCESSED, ReimbursementStatus.CANCELLED, ReimbursementAction.CANCEL),
]

_state_machine: Optional[StateMachine[ReimbursementStatus, ReimbursementAction]] = None


def get_reimbursement_state_machine() -> StateMachine[ReimbursementStatus, ReimbursementAction]:
    """Get singleton reimbursement state machine instance."""
    global _state_machine
    if _state_machine is None:
        _state_machine = StateMachine("reimbursement", REIMBURSEMENT_TRANSITIONS)
    return _state_machine


def next_reference(year: int, last_reference: Optional[str]) -> str:
    """
    Next reimbursement reference for a year.

    Format: RMB-{YEAR}-{SEQ:06d}
    Example: RMB-2024-000042
    """
    sequence = 0
    if last_reference:
        try:
            sequence = int(last_reference.rsplit("-", 1)[-1])
        except ValueError:
            logger.warning(f"Unparseable reimbursement reference {last_reference}; restarting sequence")
    return f"RMB-{year}-{sequence + 1:06d}"


class ReimbursementService:
    """Admin-side reimbursement tracking."""

    def __init__(
        self,
        repository: PortalRepository,
        storage: Optional[StorageService] = None,
        settings: Optional[PortalSettings] = None,
    ):
        self.repository = repository
        self.storage = storage
        self.settings = settings or get_portal_settings()
        self.machine = get_reimbursement_state_machine()

    async def get_reimbursement(self, reimbursement_id: UUID, actor: Actor) -> Reimbursement:
        require_role(actor, UserRole.ADMIN)
        return await self._load(reimbursement_id)

    async def create_reimbursement(self, actor: Actor, data: ReimbursementCreate) -> Reimbursement:
        """
        Record a reimbursement to a TPA.

        Raises:
            EntityNotFoundError: TPA or a batch does not exist
            ValidationFailedError: A batch is not closed or belongs to another TPA
        """
        require_role(actor, UserRole.ADMIN)
        if await self.repository.get_tpa(data.tpa_id) is None:
            raise EntityNotFoundError("TPA", data.tpa_id)

        batch_ids = list(dict.fromkeys(data.batch_ids))
        batches = {batch.id: batch for batch in await self.repository.get_batches(batch_ids)}
        errors = []
        for batch_id in batch_ids:
            batch = batches.get(batch_id)
            if batch is None:
                raise EntityNotFoundError("Batch", batch_id)
            if batch.tpa_id != data.tpa_id:
                errors.append({"field": "batch_ids", "message": f"{batch.batch_number} belongs to another TPA"})
            elif batch.status != BatchStatus.CLOSED:
                errors.append(
                    {
                        "field": "batch_ids",
                        "message": f"{batch.batch_number} is '{batch.status.value}'; only closed batches can be reimbursed",
                    }
                )
        if errors:
            raise ValidationFailedError("Reimbursement batches are not eligible", errors)

        year = datetime.now(timezone.utc).year
        reference = next_reference(year, await self.repository.last_reimbursement_reference(year))

        reimbursement = Reimbursement(
            id=uuid4(),
            reference=reference,
            tpa_id=data.tpa_id,
            batch_ids=batch_ids,
            amount=data.amount,
            purpose=data.purpose.strip(),
            notes=data.notes,
            status=ReimbursementStatus.PENDING,
            created_by=actor.user_id,
            documents=[],
        )
        self.repository.add(reimbursement)
        record_status_change(
            self.repository,
            HistoryEntityType.REIMBURSEMENT,
            reimbursement.id,
            None,
            ReimbursementStatus.PENDING,
            actor,
            data.purpose,
        )
        await self.repository.commit()

        logger.info(f"Recorded reimbursement {reference}: {data.amount} for {len(batch_ids)} batch(es)")
        return reimbursement

    async def apply_action(
        self,
        reimbursement_id: UUID,
        actor: Actor,
        data: ReimbursementActionRequest,
    ) -> Reimbursement:
        """
        Move a reimbursement through its lifecycle.

        Raises:
            StateConflictError: Action not allowed from the current status
        """
        reimbursement = await self._load(reimbursement_id)
        result = self.machine.execute_transition(
            TransitionContext(
                entity_id=reimbursement.reference,
                current_status=reimbursement.status,
                event=data.action,
                role=actor.role,
                triggered_by=str(actor.user_id),
                reason=data.notes,
            )
        )
        record_status_change(
            self.repository,
            HistoryEntityType.REIMBURSEMENT,
            reimbursement.id,
            reimbursement.status,
            result.to_status,
            actor,
            data.notes,
        )

        now = datetime.now(timezone.utc)
        reimbursement.status = result.to_status
        if result.to_status == ReimbursementStatus.PROCESSED:
            reimbursement.processed_by = actor.user_id
            reimbursement.processed_at = now
        elif result.to_status == ReimbursementStatus.COMPLETED:
            reimbursement.completed_at = now
        if data.notes:
            reimbursement.notes = _append_note(reimbursement.notes, data.action, data.notes)

        await self.repository.commit()
        return reimbursement

    async def add_document(
        self,
        reimbursement_id: UUID,
        actor: Actor,
        document_type: ReimbursementDocumentType,
        document: UploadedDocument,
    ) -> ReimbursementDocument:
        """
        Attach a receipt or supporting document. Status is unchanged.

        Raises:
            ValidationFailedError: Disallowed type or too large
            StorageUploadError: Upload failed; nothing is recorded
        """
        require_role(actor, UserRole.ADMIN)
        reimbursement = await self._load(reimbursement_id)
        validate_upload(document.file_name, document.content_type, document.size, self.settings)
        if self.storage is None:
            raise StateConflictError("Document storage is not configured")

        content_type = document.content_type or "application/octet-stream"
        url = await self.storage.upload_document(
            self.settings.REIMBURSEMENT_BUCKET,
            safe_object_name(reimbursement.reference, document.file_name),
            document.data,
            content_type,
            metadata={"reimbursement-reference": reimbursement.reference},
        )

        record = ReimbursementDocument(
            id=uuid4(),
            reimbursement_id=reimbursement.id,
            document_type=document_type,
            file_name=document.file_name,
            file_url=url,
            content_type=content_type,
            file_size=document.size,
            uploaded_by=actor.user_id,
        )
        reimbursement.documents.append(record)
        self.repository.add(record)
        await self.repository.commit()

        logger.info(f"Attached {document_type.value} {document.file_name} to reimbursement {reimbursement.reference}")
        return record

    async def _load(self, reimbursement_id: UUID) -> Reimbursement:
        reimbursement = await self.repository.get_reimbursement(reimbursement_id)
        if reimbursement is None:
            raise EntityNotFoundError("Reimbursement", reimbursement_id)
        return reimbursement


def _append_note(existing: Optional[str], action: Enum, note: str) -> str:
    line = f"[{action.value}] {note.strip()}"
    return f"{existing}\n{line}" if existing else line
