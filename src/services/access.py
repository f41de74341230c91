"""
Role and ownership checks.

Facilities see their own batches and claims, TPAs see those assigned to
them, admins see everything.
"""

from typing import Any
from uuid import UUID

from src.core.enums import UserRole
from src.schemas.actor import Actor
from src.services.errors import AccessDeniedError


def require_role(actor: Actor, *roles: UserRole) -> None:
    """Raise AccessDeniedError unless the actor holds one of the roles."""
    if actor.role not in roles:
        allowed = ", ".join(r.value for r in roles)
        raise AccessDeniedError(f"This action requires role: {allowed}")


def can_view(actor: Actor, entity: Any) -> bool:
    """Whether the actor may read a facility/TPA-owned entity."""
    if actor.role == UserRole.ADMIN:
        return True
    if actor.role == UserRole.TPA:
        return actor.tpa_id is not None and getattr(entity, "tpa_id", None) == actor.tpa_id
    return actor.facility_id is not None and getattr(entity, "facility_id", None) == actor.facility_id


def require_view(actor: Actor, entity: Any, label: str = "record") -> None:
    if not can_view(actor, entity):
        raise AccessDeniedError(f"You do not have access to this {label}")


def require_facility_owner(actor: Actor, entity: Any, label: str = "record") -> None:
    """Facility actor owning the entity."""
    require_role(actor, UserRole.FACILITY)
    if actor.facility_id is None or entity.facility_id != actor.facility_id:
        raise AccessDeniedError(f"This {label} belongs to another facility")


def require_assigned_tpa(actor: Actor, entity: Any, label: str = "record", allow_admin: bool = False) -> None:
    """TPA actor assigned to the entity (optionally also admins)."""
    if allow_admin and actor.role == UserRole.ADMIN:
        return
    require_role(actor, UserRole.TPA, *((UserRole.ADMIN,) if allow_admin else ()))
    if actor.tpa_id is None or entity.tpa_id != actor.tpa_id:
        raise AccessDeniedError(f"This {label} is not assigned to your TPA")


def scope_ids(actor: Actor) -> dict[str, UUID]:
    """Owner filters (facility_id or tpa_id) limiting a listing to the actor's records."""
    if actor.role == UserRole.ADMIN:
        return {}
    if actor.role == UserRole.TPA:
        if actor.tpa_id is None:
            raise AccessDeniedError("Your account is not linked to a TPA")
        return {"tpa_id": actor.tpa_id}
    if actor.facility_id is None:
        raise AccessDeniedError("Your account is not linked to a facility")
    return {"facility_id": actor.facility_id}
