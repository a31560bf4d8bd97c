"""
Group membership, roles and invite codes.

All functions take the request's AsyncSession and only flush; the caller's
transaction (get_db) commits, so multi-step cascades are all-or-nothing.
"""

import logging
import secrets
import string
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from antimat.db.models import (
    DEFAULT_GROUP_SETTINGS,
    ChatMessage,
    Group,
    GroupMember,
    MemberRole,
    MessageType,
    Penalty,
    User,
)
from antimat.errors import (
    AlreadyMemberError,
    ForbiddenError,
    LimitExceededError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits
INVITE_CODE_LENGTH = 5


# =============================================================================
# LOOKUPS
# =============================================================================


async def get_group_or_404(db: AsyncSession, group_id: UUID) -> Group:
    group = await db.get(Group, group_id)
    if group is None:
        raise NotFoundError("Group not found")
    return group


async def require_member(db: AsyncSession, group_id: UUID, user_id: UUID) -> Group:
    """Load a group and check that user_id belongs to it."""
    group = await get_group_or_404(db, group_id)
    if not group.is_member(user_id):
        raise ForbiddenError("You are not a member of this group")
    return group


async def count_user_groups(db: AsyncSession, user_id: UUID) -> int:
    result = await db.execute(
        select(func.count()).select_from(GroupMember).where(GroupMember.user_id == user_id)
    )
    return result.scalar() or 0


async def user_group_ids(db: AsyncSession, user_id: UUID) -> list[UUID]:
    result = await db.execute(select(GroupMember.group_id).where(GroupMember.user_id == user_id))
    return list(result.scalars())


async def member_tokens(db: AsyncSession, group_id: UUID, exclude_user_id: UUID | None = None) -> list[str]:
    """Delivery tokens of a group's members, optionally excluding one user."""
    query = (
        select(User.fcm_token)
        .join(GroupMember, GroupMember.user_id == User.id)
        .where(GroupMember.group_id == group_id, User.fcm_token.is_not(None))
    )
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    result = await db.execute(query)
    return [token for token in result.scalars() if token]


async def list_user_groups(db: AsyncSession, user_id: UUID) -> list[Group]:
    result = await db.execute(
        select(Group)
        .join(GroupMember, GroupMember.group_id == Group.id)
        .where(GroupMember.user_id == user_id)
        .order_by(GroupMember.joined_at)
    )
    return list(result.scalars().unique())


# =============================================================================
# INVITE CODES
# =============================================================================


def _random_code() -> str:
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


async def generate_invite_code(db: AsyncSession) -> str:
    """
    Produce a 5-character code not used by any existing group.

    This is a pre-check only; the unique constraint on groups.invite_code
    is what guarantees uniqueness under concurrent creation.
    """
    while True:
        code = _random_code()
        result = await db.execute(select(Group.id).where(Group.invite_code == code))
        if result.scalar_one_or_none() is None:
            return code


# =============================================================================
# LIFECYCLE
# =============================================================================


async def _check_group_limit(db: AsyncSession, user: User) -> None:
    limit = user.group_limit
    if await count_user_groups(db, user.id) >= limit:
        hint = "" if user.is_premium else " Upgrade to Premium to raise the limit to 30 groups."
        raise LimitExceededError(f"Group limit reached ({limit}).{hint}")


async def create_group(db: AsyncSession, user: User, name: str, description: str | None = None) -> Group:
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Group name is required (at least 2 characters)")

    await _check_group_limit(db, user)

    group = Group(
        name=name,
        description=(description or "").strip(),
        invite_code=await generate_invite_code(db),
        owner_id=user.id,
        settings=dict(DEFAULT_GROUP_SETTINGS),
        members=[GroupMember(user=user, role=MemberRole.OWNER.value)],
    )
    db.add(group)
    await db.flush()

    db.add(ChatMessage(group_id=group.id, type=MessageType.SYSTEM.value, text="Group created"))
    await db.flush()
    logger.info("Group %s created by %s", group.id, user.id)
    return group


async def join_group(db: AsyncSession, user: User, code: str) -> Group:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("Invite code is required")

    await _check_group_limit(db, user)

    result = await db.execute(select(Group).where(Group.invite_code == code))
    group = result.scalar_one_or_none()
    if group is None:
        raise NotFoundError("Group not found")

    if group.is_member(user.id):
        raise AlreadyMemberError()

    group.members.append(GroupMember(user=user, role=MemberRole.MEMBER.value))
    db.add(
        ChatMessage(
            group_id=group.id,
            sender_id=user.id,
            type=MessageType.JOIN.value,
            text=f"{user.name} joined the group",
        )
    )
    await db.flush()
    return group


async def leave_group(db: AsyncSession, user: User, group_id: UUID) -> None:
    """Remove a non-owner member (which also drops any admin role)."""
    group = await get_group_or_404(db, group_id)
    if group.owner_id == user.id:
        raise ForbiddenError("The owner cannot leave the group. Transfer ownership or delete the group.")

    membership = group.member(user.id)
    if membership is None:
        raise ForbiddenError("You are not a member of this group")

    group.members.remove(membership)
    db.add(
        ChatMessage(
            group_id=group.id,
            type=MessageType.LEAVE.value,
            text=f"{user.name} left the group",
            meta={"targetUserId": str(user.id)},
        )
    )
    await db.flush()


async def _release_group_penalties(db: AsyncSession, group_id: UUID) -> None:
    """
    Delete a group's penalties and take their unforgiven amounts back out
    of each user's total_debt.
    """
    result = await db.execute(
        select(Penalty.user_id, func.sum(Penalty.amount))
        .where(Penalty.group_id == group_id, Penalty.is_forgiven.is_(False))
        .group_by(Penalty.user_id)
    )
    for user_id, amount in result.all():
        await db.execute(
            update(User).where(User.id == user_id).values(total_debt=User.total_debt - amount)
        )
    await db.execute(delete(Penalty).where(Penalty.group_id == group_id))


async def destroy_group(db: AsyncSession, group: Group) -> None:
    """
    Remove a group with its messages, penalties and memberships.

    No permission checks; used by delete_group and account deletion.
    """
    group_id = group.id
    await db.execute(delete(ChatMessage).where(ChatMessage.group_id == group_id))
    await _release_group_penalties(db, group_id)
    await db.execute(delete(GroupMember).where(GroupMember.group_id == group_id))
    await db.execute(delete(Group).where(Group.id == group_id))
    await db.flush()
    logger.info("Group %s destroyed", group_id)


async def delete_group(db: AsyncSession, user: User, group_id: UUID) -> None:
    group = await get_group_or_404(db, group_id)
    if group.owner_id != user.id:
        raise ForbiddenError("Only the owner can delete the group")
    await destroy_group(db, group)


# =============================================================================
# ROLES & SETTINGS
# =============================================================================


async def update_settings(db: AsyncSession, user: User, group_id: UUID, changes: dict[str, bool]) -> Group:
    group = await require_member(db, group_id, user.id)
    if not group.is_admin(user.id):
        raise ForbiddenError("Only group admins can change settings")

    merged = {**DEFAULT_GROUP_SETTINGS, **(group.settings or {})}
    for key, value in changes.items():
        if key not in DEFAULT_GROUP_SETTINGS:
            raise ValidationError(f"Unknown setting: {key}")
        merged[key] = bool(value)
    group.settings = merged
    await db.flush()
    return group


async def set_member_role(db: AsyncSession, user: User, group_id: UUID, target_id: UUID, role: str) -> Group:
    """Owner promotes a member to admin or demotes an admin."""
    if role not in (MemberRole.ADMIN.value, MemberRole.MEMBER.value):
        raise ValidationError("Role must be 'admin' or 'member'")

    group = await get_group_or_404(db, group_id)
    if group.owner_id != user.id:
        raise ForbiddenError("Only the owner can change roles")
    if target_id == group.owner_id:
        raise ValidationError("The owner's role cannot be changed")

    membership = group.member(target_id)
    if membership is None:
        raise NotFoundError("Member not found")
    membership.role = role
    await db.flush()
    return group


async def transfer_ownership(db: AsyncSession, user: User, group_id: UUID, new_owner_id: UUID) -> Group:
    """Hand the group to another member; the previous owner stays as admin."""
    group = await get_group_or_404(db, group_id)
    if group.owner_id != user.id:
        raise ForbiddenError("Only the owner can transfer ownership")
    if new_owner_id == user.id:
        raise ValidationError("You already own this group")

    target = group.member(new_owner_id)
    if target is None:
        raise NotFoundError("Member not found")

    group.member(user.id).role = MemberRole.ADMIN.value
    target.role = MemberRole.OWNER.value
    group.owner_id = new_owner_id
    db.add(
        ChatMessage(
            group_id=group.id,
            type=MessageType.SYSTEM.value,
            text=f"{target.user.name} is now the group owner",
            meta={"targetUserId": str(new_owner_id)},
        )
    )
    await db.flush()
    return group
