"""Group lifecycle: create, rename, delete, join-code lookup.

Creation writes the group and its owner membership in one transaction, so a
failed membership insert rolls the group back with it. Join-code uniqueness is
checked up front and enforced by the unique index; a collision on insert
counts as one attempt.
"""
import logging
from typing import Callable, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import DuplicateCodeError, NotFound, PermissionDenied, ValidationError
from app.models.group import Group, GroupMember, GroupRole
from app.models.invitation import GroupInvitation
from app.models.meeting import Meeting
from app.models.user import User
from app.services.join_codes import generate_join_code
from app.store import store_call, utcnow

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 150


def _clean_name(name: Optional[str]) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Group name is required", code="GROUP_NAME_REQUIRED")
    if len(cleaned) > MAX_NAME_LENGTH:
        raise ValidationError(f"Group name must be at most {MAX_NAME_LENGTH} characters")
    return cleaned


def get_group(db: Session, group_id: str) -> Group:
    with store_call(db, "load group"):
        group = db.query(Group).filter(Group.group_id == group_id).first()
    if not group:
        logger.warning("Group %s not found", group_id)
        raise NotFound("Group not found", code="GROUP_NOT_FOUND")
    return group


def get_role(db: Session, group_id: str, user_id: str) -> Optional[GroupRole]:
    with store_call(db, "load role"):
        membership = (
            db.query(GroupMember)
            .filter(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            .first()
        )
    return membership.role if membership else None


def require_owner(db: Session, group_id: str, actor_id: str, action: str) -> None:
    """Raise PermissionDenied unless ``actor_id`` owns ``group_id``."""
    if get_role(db, group_id, actor_id) != GroupRole.owner:
        logger.warning("User %s denied %s on group %s (not owner)", actor_id, action, group_id)
        raise PermissionDenied(f"Only a group owner may {action}")


def require_member(db: Session, group_id: str, actor_id: str, action: str) -> GroupRole:
    """Raise PermissionDenied unless ``actor_id`` belongs to ``group_id``."""
    role = get_role(db, group_id, actor_id)
    if role is None:
        logger.warning("User %s denied %s on group %s (not a member)", actor_id, action, group_id)
        raise PermissionDenied(f"Only group members may {action}")
    return role


def _code_taken(db: Session, code: str) -> bool:
    with store_call(db, "check join code"):
        return db.query(Group.group_id).filter(Group.join_code == code).first() is not None


def create_group(
    db: Session,
    name: str,
    creator_id: str,
    code_factory: Callable[[], str] = generate_join_code,
    max_attempts: Optional[int] = None,
) -> Group:
    """Create a group with a collision-checked join code and an owner membership."""
    cleaned = _clean_name(name)
    attempts = max_attempts or settings.JOIN_CODE_MAX_ATTEMPTS

    with store_call(db, "load creator"):
        creator = db.query(User.user_id).filter(User.user_id == creator_id).first()
    if not creator:
        raise NotFound("Creator user not found", code="USER_NOT_FOUND")

    for attempt in range(1, attempts + 1):
        code = code_factory()
        if _code_taken(db, code):
            logger.info("Join code collision on attempt %d/%d", attempt, attempts)
            continue

        group = Group(name=cleaned, join_code=code, created_by=creator_id)
        try:
            with store_call(db, "create group"):
                db.add(group)
                db.flush()
        except IntegrityError:
            # lost a race for the same code
            logger.info("Join code insert conflict on attempt %d/%d", attempt, attempts)
            continue

        owner = GroupMember(
            group_id=group.group_id,
            user_id=creator_id,
            role=GroupRole.owner,
            joined_at=utcnow(),
        )
        with store_call(db, "create group owner membership"):
            db.add(owner)
            db.commit()
            db.refresh(group)
        logger.info("Created group '%s' (%s) code %s by user %s", group.name, group.group_id, code, creator_id)
        return group

    logger.warning("Join code generation exhausted after %d attempts", attempts)
    raise DuplicateCodeError(f"Could not allocate a unique join code after {attempts} attempts")


def rename_group(db: Session, group_id: str, new_name: str, actor_id: str) -> Group:
    """Rename a group (owner only, last write wins)."""
    cleaned = _clean_name(new_name)
    group = get_group(db, group_id)
    require_owner(db, group_id, actor_id, "rename the group")

    group.name = cleaned
    with store_call(db, "rename group"):
        db.commit()
        db.refresh(group)
    logger.info("Renamed group %s to '%s' by user %s", group_id, cleaned, actor_id)
    return group


def delete_group(db: Session, group_id: str, actor_id: str) -> int:
    """Delete a group with its memberships and invitations.

    Meetings referencing the group are kept; their group reference is cleared.
    Returns the number of meetings that were ungrouped.
    """
    group = get_group(db, group_id)
    require_owner(db, group_id, actor_id, "delete the group")

    with store_call(db, "delete group"):
        ungrouped = (
            db.query(Meeting)
            .filter(Meeting.group_id == group_id)
            .update({Meeting.group_id: None}, synchronize_session="fetch")
        )
        for invitation in db.query(GroupInvitation).filter(GroupInvitation.group_id == group_id).all():
            db.delete(invitation)
        for membership in list(group.members):
            db.delete(membership)
        db.delete(group)
        db.commit()

    logger.info("Deleted group %s by user %s (%d meetings ungrouped)", group_id, actor_id, ungrouped)
    return ungrouped


def get_join_code(db: Session, group_id: str) -> str:
    return get_group(db, group_id).join_code


def list_groups_for_user(db: Session, user_id: str) -> list[dict]:
    """The user's groups with role and meeting count, in join order."""
    with store_call(db, "list groups"):
        meeting_counts = dict(
            db.query(Meeting.group_id, func.count(Meeting.meeting_id))
            .filter(Meeting.group_id.isnot(None))
            .group_by(Meeting.group_id)
            .all()
        )
        rows = (
            db.query(GroupMember, Group)
            .join(Group, Group.group_id == GroupMember.group_id)
            .filter(GroupMember.user_id == user_id)
            .order_by(GroupMember.joined_at)
            .all()
        )
    return [
        {
            "group_id": group.group_id,
            "name": group.name,
            "join_code": group.join_code,
            "role": membership.role.value,
            "meeting_count": meeting_counts.get(group.group_id, 0),
        }
        for membership, group in rows
    ]
