"""
Status history recording.
"""

from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from src.core.enums import HistoryEntityType
from src.db.repository import PortalRepository
from src.models import StatusHistory
from src.schemas.actor import Actor


def record_status_change(
    repository: PortalRepository,
    entity_type: HistoryEntityType,
    entity_id: UUID,
    from_status: Optional[Enum],
    to_status: Enum,
    actor: Optional[Actor],
    reason: Optional[str] = None,
) -> StatusHistory:
    """Stage a history row for one status change."""
    entry = StatusHistory(
        id=uuid4(),
        entity_type=entity_type,
        entity_id=entity_id,
        from_status=from_status.value if from_status is not None else None,
        to_status=to_status.value,
        actor_id=actor.user_id if actor else None,
        actor_role=actor.role.value if actor else None,
        reason=reason,
    )
    repository.add(entry)
    return entry
