"""Capability checks: who may edit, ban, moderate, list, review or cancel what.

Pure functions over their arguments, no I/O. Route handlers, services and
any presentation layer all consult this one table so each rule lives in a
single place. Arguments only need ``id``/``role`` (users), ``owner_id`` and
``approval_status`` (facilities) and ``user_id`` (bookings).
"""

from dataclasses import dataclass

from app.models.facility import ApprovalStatus
from app.models.user import UserRole


@dataclass(frozen=True)
class Actor:
    """Request-scoped identity snapshot, independent of any ORM session state."""

    id: int
    role: UserRole

    @classmethod
    def of(cls, user) -> "Actor":
        return cls(id=user.id, role=user.role)


def _is_admin(user) -> bool:
    return user.role == UserRole.ADMIN


def can_edit_user(actor, target) -> bool:
    """Admins may edit any account except another admin's. Caller ensures the actor is an admin."""
    return not (_is_admin(target) and target.id != actor.id)


def can_ban_user(actor, target) -> bool:
    """Nobody bans an admin, and nobody bans themselves."""
    return not _is_admin(target) and target.id != actor.id


def can_moderate_facility(actor) -> bool:
    return _is_admin(actor)


def can_toggle_visibility(actor, facility) -> bool:
    if _is_admin(actor):
        return True
    return facility.owner_id == actor.id and facility.approval_status == ApprovalStatus.APPROVED


def can_submit_facility(actor) -> bool:
    return actor.role in (UserRole.FACILITY_OWNER, UserRole.ADMIN)


def can_cancel_booking(actor, booking) -> bool:
    return _is_admin(actor) or booking.user_id == actor.id


def can_edit_facility(actor, facility) -> bool:
    return _is_admin(actor) or facility.owner_id == actor.id


def can_view_facility_bookings(actor, facility) -> bool:
    return _is_admin(actor) or facility.owner_id == actor.id


def can_review_facility(actor, facility) -> bool:
    """Any player may review a listed facility, but not its own owner."""
    return facility.owner_id != actor.id
