"""Invitation workflow.

States: pending -> accepted | declined | cancelled, all terminal.

Transitions are conditional updates (``WHERE status = 'pending'``), so of two
concurrent responders exactly one sees a row count of 1; the other gets
``InvitationNotPending``. Acceptance inserts the membership with
``ON CONFLICT DO NOTHING`` in the same transaction as the status change.

Email delivery happens after the commit and is best effort.
"""
import logging
import re
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import DuplicateInvitation, InvitationNotPending, NotFound, PermissionDenied, ValidationError
from app.identity import Identity, normalize_email
from app.models.group import Group, GroupMember, GroupRole
from app.models.invitation import GroupInvitation, InvitationStatus
from app.models.user import User
from app.services import group_service
from app.services.change_notifier import ChangeSignal, note_change
from app.services.email_sender import EmailSender, get_email_sender
from app.store import insert_membership_if_absent, store_call, utcnow

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _validated_email(raw: str) -> str:
    email = normalize_email(raw)
    if not _EMAIL_RE.match(email):
        raise ValidationError("Please enter a valid email address", code="INVALID_EMAIL")
    return email


def get_invitation(db: Session, invitation_id: str) -> GroupInvitation:
    with store_call(db, "load invitation"):
        invitation = db.query(GroupInvitation).filter(GroupInvitation.invitation_id == invitation_id).first()
    if not invitation:
        logger.warning("Invitation %s not found", invitation_id)
        raise NotFound("Invitation not found", code="INVITATION_NOT_FOUND")
    return invitation


def _inviter_name(db: Session, user_id: str) -> str:
    with store_call(db, "load inviter"):
        inviter = db.query(User).filter(User.user_id == user_id).first()
    return (inviter.display_name or inviter.email) if inviter else "A colleague"


def _send_invitation_email(sender: EmailSender, to_address: str, template_data: dict) -> None:
    try:
        sent = sender.send(to_address, template_data)
    except Exception as exc:
        logger.warning("Invitation email to %s raised: %s", to_address, exc)
        return
    if not sent:
        logger.warning("Invitation email to %s was not delivered", to_address)


def create_invitation(
    db: Session,
    group_id: str,
    email: str,
    invited_by: str,
    email_sender: Optional[EmailSender] = None,
) -> GroupInvitation:
    """Invite ``email`` to ``group_id`` (owner only)."""
    address = _validated_email(email)
    group = group_service.get_group(db, group_id)
    group_service.require_owner(db, group_id, invited_by, "invite members")

    with store_call(db, "check pending invitation"):
        existing = (
            db.query(GroupInvitation.invitation_id)
            .filter(
                GroupInvitation.group_id == group_id,
                GroupInvitation.email == address,
                GroupInvitation.status == InvitationStatus.pending,
            )
            .first()
        )
    if existing:
        raise DuplicateInvitation("This email has already been invited")

    template_data = {
        "group_name": group.name,
        "inviter_name": _inviter_name(db, invited_by),
        "join_code": group.join_code,
    }
    invitation = GroupInvitation(
        group_id=group_id,
        email=address,
        invited_by=invited_by,
        status=InvitationStatus.pending,
        created_at=utcnow(),
    )
    try:
        with store_call(db, "create invitation"):
            db.add(invitation)
            db.commit()
            db.refresh(invitation)
    except IntegrityError as exc:
        raise DuplicateInvitation("This email has already been invited") from exc
    logger.info("User %s invited %s to group %s (%s)", invited_by, address, group_id, invitation.invitation_id)

    _send_invitation_email(email_sender or get_email_sender(), address, template_data)
    return invitation


def _check_addressee(invitation: GroupInvitation, identity: Identity) -> None:
    if invitation.email != identity.email:
        logger.warning(
            "User %s (%s) may not respond to invitation %s for %s",
            identity.user_id, identity.email, invitation.invitation_id, invitation.email,
        )
        raise PermissionDenied("This invitation was sent to a different email address")


def _transition(db: Session, invitation: GroupInvitation, new_status: InvitationStatus) -> None:
    """Move a pending invitation to ``new_status`` inside the current transaction."""
    if invitation.status != InvitationStatus.pending:
        raise InvitationNotPending(f"Invitation is already {invitation.status.value}")

    result = db.execute(
        update(GroupInvitation)
        .where(
            GroupInvitation.invitation_id == invitation.invitation_id,
            GroupInvitation.status == InvitationStatus.pending,
        )
        .values(status=new_status, responded_at=utcnow())
    )
    if result.rowcount != 1:
        db.rollback()
        logger.info("Invitation %s was answered concurrently", invitation.invitation_id)
        raise InvitationNotPending("Invitation has already been answered")

    note_change(db, ChangeSignal(
        record_set="invitations",
        action="update",
        record_id=invitation.invitation_id,
        keys={"group_id": invitation.group_id, "email": invitation.email},
    ))


def accept_invitation(db: Session, invitation_id: str, identity: Identity) -> GroupMember:
    """Accept: status -> accepted and membership(role=member), in one commit."""
    invitation = get_invitation(db, invitation_id)
    _check_addressee(invitation, identity)
    group_id = invitation.group_id

    with store_call(db, "accept invitation"):
        _transition(db, invitation, InvitationStatus.accepted)
        inserted = insert_membership_if_absent(db, group_id, identity.user_id, GroupRole.member)
        db.commit()

    with store_call(db, "load membership"):
        membership = (
            db.query(GroupMember)
            .filter(GroupMember.group_id == group_id, GroupMember.user_id == identity.user_id)
            .one()
        )
    if inserted:
        logger.info("User %s accepted invitation %s into group %s", identity.user_id, invitation_id, group_id)
    else:
        logger.info("User %s accepted invitation %s; already a member of %s",
                    identity.user_id, invitation_id, group_id)
    return membership


def decline_invitation(db: Session, invitation_id: str, identity: Identity) -> GroupInvitation:
    invitation = get_invitation(db, invitation_id)
    _check_addressee(invitation, identity)

    with store_call(db, "decline invitation"):
        _transition(db, invitation, InvitationStatus.declined)
        db.commit()
        db.refresh(invitation)
    logger.info("User %s declined invitation %s", identity.user_id, invitation_id)
    return invitation


def cancel_invitation(db: Session, invitation_id: str, actor_id: str) -> GroupInvitation:
    """Withdraw a pending invitation (owner only)."""
    invitation = get_invitation(db, invitation_id)
    group_service.require_owner(db, invitation.group_id, actor_id, "cancel invitations")

    with store_call(db, "cancel invitation"):
        _transition(db, invitation, InvitationStatus.cancelled)
        db.commit()
        db.refresh(invitation)
    logger.info("User %s cancelled invitation %s", actor_id, invitation_id)
    return invitation


def list_pending_for_group(db: Session, group_id: str) -> list[GroupInvitation]:
    group_service.get_group(db, group_id)
    with store_call(db, "list group invitations"):
        return (
            db.query(GroupInvitation)
            .filter(GroupInvitation.group_id == group_id, GroupInvitation.status == InvitationStatus.pending)
            .order_by(GroupInvitation.created_at.desc())
            .all()
        )


def list_pending_for_email(db: Session, email: str) -> list[dict]:
    """Pending invitations addressed to ``email`` with their group names, newest first."""
    address = normalize_email(email)
    with store_call(db, "list invitations for email"):
        rows = (
            db.query(GroupInvitation, Group.name)
            .join(Group, Group.group_id == GroupInvitation.group_id)
            .filter(GroupInvitation.email == address, GroupInvitation.status == InvitationStatus.pending)
            .order_by(GroupInvitation.created_at.desc())
            .all()
        )
    return [
        {
            "invitation_id": inv.invitation_id,
            "group_id": inv.group_id,
            "group_name": group_name,
            "email": inv.email,
            "invited_by": inv.invited_by,
            "status": inv.status.value,
            "created_at": inv.created_at,
        }
        for inv, group_name in rows
    ]
