"""Invitation API routes."""
import logging
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.dependencies import get_identity
from app.identity import Identity
from app.schemas.group import GroupMemberOut
from app.schemas.invitation import InvitationCreate, InvitationOut, MyInvitationOut
from app.services import group_service, invitation_service
from app.services.email_sender import EmailSender, get_email_sender

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/", response_model=InvitationOut, status_code=status.HTTP_201_CREATED)
def create_invitation(
    payload: InvitationCreate,
    identity: Identity = Depends(get_identity),
    sender: EmailSender = Depends(get_email_sender),
    db: Session = Depends(get_db),
):
    """Invite an email address to a group (owner only). Email delivery is best effort."""
    return invitation_service.create_invitation(db, payload.group_id, payload.email, identity.user_id, sender)


@router.get("/", response_model=list[InvitationOut])
def list_group_invitations(
    group_id: str = Query(...),
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Pending invitations of a group, newest first (owner only)."""
    group_service.get_group(db, group_id)
    group_service.require_owner(db, group_id, identity.user_id, "view invitations")
    return invitation_service.list_pending_for_group(db, group_id)


@router.get("/mine", response_model=list[MyInvitationOut])
def list_my_invitations(
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db),
):
    """Pending invitations addressed to the caller's verified email."""
    return invitation_service.list_pending_for_email(db, identity.email)


@router.post("/{invitation_id}/accept", response_model=GroupMemberOut)
def accept_invitation(invitation_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return invitation_service.accept_invitation(db, invitation_id, identity)


@router.post("/{invitation_id}/decline", response_model=InvitationOut)
def decline_invitation(invitation_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    return invitation_service.decline_invitation(db, invitation_id, identity)


@router.post("/{invitation_id}/cancel", response_model=InvitationOut)
def cancel_invitation(invitation_id: str, identity: Identity = Depends(get_identity), db: Session = Depends(get_db)):
    """Withdraw a pending invitation (owner only)."""
    return invitation_service.cancel_invitation(db, invitation_id, identity.user_id)
