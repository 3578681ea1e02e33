"""Facility moderation: submission, edits, approve/reject decisions, and listing visibility.

Approval status (pending, approved, rejected) and visibility (``is_active``)
are independent, with one rule tying them: only an approved facility may be
active. Any admin decision is allowed from any state.

Every write is guarded by the facility's version. A caller-supplied
``expected_version`` that no longer matches fails fast with StaleStateError;
a concurrent write racing ours is retried a few times (re-read, re-apply)
before giving up.
"""

import logging
from collections.abc import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import settings
from app.core.errors import NotFoundError, PermissionDenied, PreconditionError, StaleStateError, ValidationError
from app.models.base import utcnow
from app.models.facility import ApprovalStatus, Facility
from app.services.permissions import (
    Actor,
    can_edit_facility,
    can_moderate_facility,
    can_submit_facility,
    can_toggle_visibility,
)

logger = logging.getLogger(__name__)


async def submit_facility(db: AsyncSession, actor: Actor, **fields) -> Facility:
    """Create a facility owned by ``actor``. It starts pending and unlisted."""
    if not can_submit_facility(actor):
        raise PermissionDenied("Only facility owners can list facilities.")

    facility = Facility(
        owner_id=actor.id,
        approval_status=ApprovalStatus.PENDING,
        is_active=False,
        **fields,
    )
    db.add(facility)
    await db.flush()
    logger.info("Facility %s submitted by user %s", facility.id, actor.id)
    return facility


async def _load_fresh(db: AsyncSession, facility_id: int) -> Facility:
    result = await db.execute(
        select(Facility).where(Facility.id == facility_id).execution_options(populate_existing=True)
    )
    facility = result.scalar_one_or_none()
    if facility is None:
        raise NotFoundError(f"Facility {facility_id} not found.")
    return facility


async def _write(
    db: AsyncSession,
    facility_id: int,
    expected_version: int | None,
    apply: Callable[[Facility], None],
) -> Facility:
    for attempt in range(1, settings.stale_retry_limit + 1):
        facility = await _load_fresh(db, facility_id)
        if expected_version is not None and facility.version != expected_version:
            raise StaleStateError(
                "Facility was changed by someone else; reload and try again.",
                details={"expected_version": expected_version, "current_version": facility.version},
            )

        apply(facility)
        try:
            await db.flush()
        except StaleDataError:
            await db.rollback()
            logger.warning("Concurrent write on facility %s (attempt %d)", facility_id, attempt)
            continue
        return facility

    raise StaleStateError("Facility is being modified concurrently; try again.", details={"facility_id": facility_id})


async def approve(db: AsyncSession, actor: Actor, facility_id: int, expected_version: int | None = None) -> Facility:
    """Approve a facility. Visibility is left alone; listing it is a separate act."""
    if not can_moderate_facility(actor):
        raise PermissionDenied("Only admins can moderate facilities.")

    def _apply(facility: Facility) -> None:
        facility.approval_status = ApprovalStatus.APPROVED
        facility.rejection_reason = None
        facility.approved_at = utcnow()
        facility.approved_by = actor.id

    facility = await _write(db, facility_id, expected_version, _apply)
    logger.info("Facility %s approved by admin %s", facility_id, actor.id)
    return facility


async def reject(
    db: AsyncSession,
    actor: Actor,
    facility_id: int,
    reason: str | None,
    expected_version: int | None = None,
) -> Facility:
    """Reject a facility with a reason. A rejected facility is always unlisted."""
    if not can_moderate_facility(actor):
        raise PermissionDenied("Only admins can moderate facilities.")

    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A rejection reason is required.")

    def _apply(facility: Facility) -> None:
        facility.approval_status = ApprovalStatus.REJECTED
        facility.rejection_reason = reason
        facility.approved_at = None
        facility.approved_by = None
        facility.is_active = False

    facility = await _write(db, facility_id, expected_version, _apply)
    logger.info("Facility %s rejected by admin %s: %s", facility_id, actor.id, reason)
    return facility


async def toggle_visibility(
    db: AsyncSession,
    actor: Actor,
    facility_id: int,
    desired_active: bool,
    expected_version: int | None = None,
) -> Facility:
    """List or unlist a facility. Setting the current value again is a successful no-op."""

    def _apply(facility: Facility) -> None:
        if not can_toggle_visibility(actor, facility):
            raise PermissionDenied("You cannot change this facility's visibility.")
        if desired_active and facility.approval_status != ApprovalStatus.APPROVED:
            raise PreconditionError(
                "Only approved facilities can be listed.",
                details={"approval_status": facility.approval_status.value},
            )
        if facility.is_active != desired_active:
            facility.is_active = desired_active

    facility = await _write(db, facility_id, expected_version, _apply)
    logger.info("Facility %s visibility set to %s by user %s", facility_id, desired_active, actor.id)
    return facility


async def edit_facility(
    db: AsyncSession,
    actor: Actor,
    facility_id: int,
    changes: dict,
    expected_version: int | None = None,
) -> Facility:
    """Change a facility's listing content.

    An owner's edit goes back through moderation: the facility returns to
    pending and is unlisted until an admin approves it again. An admin's
    edit leaves approval and visibility as they were.
    """
    if not changes:
        raise ValidationError("Nothing to update.")

    def _apply(facility: Facility) -> None:
        if not can_edit_facility(actor, facility):
            raise PermissionDenied("You cannot edit this facility.")
        for field, value in changes.items():
            setattr(facility, field, value)
        if not can_moderate_facility(actor):
            facility.approval_status = ApprovalStatus.PENDING
            facility.rejection_reason = None
            facility.approved_at = None
            facility.approved_by = None
            facility.is_active = False

    facility = await _write(db, facility_id, expected_version, _apply)
    logger.info("Facility %s edited by user %s: %s", facility_id, actor.id, sorted(changes))
    return facility
