"""Admin routes: facility moderation queue and user account management.

Every handler here is behind ``require_admin``; finer rules (one admin may
not edit or ban another) come from app.services.permissions.
"""

import logging

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.dependencies import require_admin
from app.core.errors import NotFoundError, PermissionDenied
from app.models.facility import ApprovalStatus, Facility
from app.models.user import User, UserRole
from app.schemas import FacilityDecision, FacilityOut, UserOut, UserUpdate, VisibilityUpdate
from app.services import moderation
from app.services.email import send_facility_decision_email
from app.services.permissions import Actor, can_ban_user, can_edit_user

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Facilities
# ---------------------------------------------------------------------------


@router.get("/facilities/pending", response_model=list[FacilityOut])
async def list_pending_facilities(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(Facility).where(Facility.approval_status == ApprovalStatus.PENDING).order_by(Facility.created_at)
    )
    return result.scalars().all()


@router.patch("/facilities/{facility_id}/approve", response_model=FacilityOut)
async def decide_facility(
    facility_id: int,
    body: FacilityDecision,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Approve (``is_approved: true``) or reject with a reason."""
    actor = Actor.of(admin)
    if body.is_approved:
        facility = await moderation.approve(db, actor, facility_id, body.expected_version)
    else:
        facility = await moderation.reject(db, actor, facility_id, body.rejection_reason, body.expected_version)
    await db.commit()

    owner = await db.get(User, facility.owner_id)
    if owner is not None:
        await send_facility_decision_email(owner, facility)
    return facility


@router.patch("/facilities/{facility_id}/visibility", response_model=FacilityOut)
async def set_facility_visibility(
    facility_id: int,
    body: VisibilityUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await moderation.toggle_visibility(db, Actor.of(admin), facility_id, body.is_active, body.expected_version)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


async def _get_user(db: AsyncSession, user_id: int) -> User:
    user = await db.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found.")
    return user


@router.get("/users", response_model=list[UserOut])
async def list_users(
    role: UserRole | None = None,
    banned: bool | None = None,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    query = select(User)
    if role is not None:
        query = query.where(User.role == role)
    if banned is not None:
        query = query.where(User.is_banned.is_(banned))
    result = await db.execute(query.order_by(User.id).limit(limit).offset(offset))
    return result.scalars().all()


@router.patch("/users/{user_id}", response_model=UserOut)
async def update_user(
    user_id: int,
    body: UserUpdate,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    target = await _get_user(db, user_id)
    if not can_edit_user(admin, target):
        raise PermissionDenied("Admins cannot edit other admin accounts.")

    changes = body.model_dump(exclude_unset=True)
    for field, value in changes.items():
        setattr(target, field, value)
    await db.flush()
    logger.info("User %s updated by admin %s: %s", target.id, admin.id, sorted(changes))
    return target


async def _set_banned(db: AsyncSession, admin: User, user_id: int, banned: bool) -> User:
    target = await _get_user(db, user_id)
    if not can_ban_user(admin, target):
        raise PermissionDenied("Admins cannot be banned, and you cannot ban yourself.")

    target.is_banned = banned
    await db.flush()
    logger.info("User %s %s by admin %s", target.id, "banned" if banned else "unbanned", admin.id)
    return target


@router.patch("/users/{user_id}/ban", response_model=UserOut)
async def ban_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _set_banned(db, admin, user_id, True)


@router.patch("/users/{user_id}/unban", response_model=UserOut)
async def unban_user(
    user_id: int,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    return await _set_banned(db, admin, user_id, False)
