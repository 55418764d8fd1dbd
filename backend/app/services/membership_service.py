"""Membership: add, remove, list, join by code.

Roles are fixed at assignment. Removal is allowed for the member themself or
for an owner of the same group. Nothing prevents the last owner from leaving;
the group is then ownerless.
"""
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import AlreadyMember, NotFound, ValidationError
from app.models.group import Group, GroupMember, GroupRole
from app.models.user import User
from app.services import group_service
from app.services.join_codes import is_valid_join_code, normalize_join_code
from app.store import store_call, utcnow

logger = logging.getLogger(__name__)


def _explain_rejected_insert(db: Session, group_id: str, user_id: str) -> Exception:
    """Map a rejected membership insert to the constraint that rejected it."""
    with store_call(db, "check membership"):
        exists = (
            db.query(GroupMember.membership_id)
            .filter(GroupMember.group_id == group_id, GroupMember.user_id == user_id)
            .first()
        )
        group_exists = db.query(Group.group_id).filter(Group.group_id == group_id).first()
    if exists:
        return AlreadyMember("User is already a member of this group")
    if not group_exists:
        logger.warning("Group %s vanished before user %s could join", group_id, user_id)
        return NotFound("Group not found", code="GROUP_NOT_FOUND")
    logger.warning("User %s not found while joining group %s", user_id, group_id)
    return NotFound("User not found", code="USER_NOT_FOUND")


def _insert_membership(db: Session, group_id: str, user_id: str, role: GroupRole) -> GroupMember:
    membership = GroupMember(group_id=group_id, user_id=user_id, role=role, joined_at=utcnow())
    try:
        with store_call(db, "add member"):
            db.add(membership)
            db.commit()
            db.refresh(membership)
    except IntegrityError as exc:
        raise _explain_rejected_insert(db, group_id, user_id) from exc
    return membership


def add_member(db: Session, group_id: str, user_id: str, role: GroupRole | str = GroupRole.member) -> GroupMember:
    """Add ``user_id`` to ``group_id``; the unique index rejects duplicates."""
    try:
        role = GroupRole(role)
    except ValueError:
        raise ValidationError(f"Invalid role: {role}")

    group_service.get_group(db, group_id)
    with store_call(db, "load user"):
        user = db.query(User.user_id).filter(User.user_id == user_id).first()
    if not user:
        logger.warning("User %s not found", user_id)
        raise NotFound("User not found", code="USER_NOT_FOUND")

    membership = _insert_membership(db, group_id, user_id, role)
    logger.info("Added user %s to group %s as %s", user_id, group_id, role.value)
    return membership


def join_group_by_code(db: Session, raw_code: str, actor_id: str) -> GroupMember:
    """Join the group carrying ``raw_code`` as a member."""
    code = normalize_join_code(raw_code)
    if not is_valid_join_code(code):
        raise ValidationError("Join code must be 6 characters", code="INVALID_JOIN_CODE")

    with store_call(db, "look up join code"):
        group = db.query(Group).filter(Group.join_code == code).first()
    if not group:
        logger.warning("User %s tried unknown join code %s", actor_id, code)
        raise NotFound("Invalid join code", code="JOIN_CODE_NOT_FOUND")

    membership = _insert_membership(db, group.group_id, actor_id, GroupRole.member)
    logger.info("User %s joined group %s by code", actor_id, group.group_id)
    return membership


def remove_member(db: Session, membership_id: str, actor_id: str) -> None:
    """Self-leave or owner-forced removal."""
    with store_call(db, "load membership"):
        membership = db.query(GroupMember).filter(GroupMember.membership_id == membership_id).first()
    if not membership:
        logger.warning("Membership %s not found", membership_id)
        raise NotFound("Membership not found", code="MEMBERSHIP_NOT_FOUND")

    if membership.user_id != actor_id:
        group_service.require_owner(db, membership.group_id, actor_id, "remove other members")

    group_id, user_id = membership.group_id, membership.user_id
    with store_call(db, "remove member"):
        db.delete(membership)
        db.commit()

    if user_id == actor_id:
        logger.info("User %s left group %s", user_id, group_id)
    else:
        logger.info("User %s removed user %s from group %s", actor_id, user_id, group_id)


def list_members(db: Session, group_id: str) -> list[dict]:
    """Members in join order with their display names."""
    group_service.get_group(db, group_id)
    with store_call(db, "list members"):
        rows = (
            db.query(GroupMember, User.display_name)
            .join(User, User.user_id == GroupMember.user_id)
            .filter(GroupMember.group_id == group_id)
            .order_by(GroupMember.joined_at)
            .all()
        )
    return [
        {
            "membership_id": m.membership_id,
            "group_id": m.group_id,
            "user_id": m.user_id,
            "role": m.role.value,
            "display_name": display_name or "Unknown User",
            "joined_at": m.joined_at,
        }
        for m, display_name in rows
    ]
