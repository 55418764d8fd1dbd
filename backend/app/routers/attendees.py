"""Attendee suggestion / commit API routes."""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.attendee import AttendeeOut, CandidateOut, CommitRequest, SaveAttendeesRequest, SuggestRequest
from app.services import attendee_resolver
from app.services.attendee_resolver import Attendee

logger = logging.getLogger(__name__)
router = APIRouter()


def _to_attendees(items) -> list[Attendee]:
    return [Attendee(name=a.name, user_id=a.user_id) for a in items]


def _out(attendees: list[Attendee]) -> list[AttendeeOut]:
    return [AttendeeOut(name=a.name, user_id=a.user_id) for a in attendees]


@router.post("/suggest", response_model=list[CandidateOut])
def suggest_attendees(payload: SuggestRequest, db: Session = Depends(get_db)):
    """Registered people matching the typed text, excluding those already listed."""
    candidates = attendee_resolver.load_candidates(db, payload.group_id)
    matches = attendee_resolver.suggest(candidates, payload.text, _to_attendees(payload.attendees))
    return [CandidateOut(user_id=c.user_id, display_name=c.display_name, role=c.role) for c in matches]


@router.post("/commit", response_model=list[AttendeeOut])
def commit_attendee(payload: CommitRequest, db: Session = Depends(get_db)):
    """Resolve the typed text to a registered attendee or a guest and return the new list."""
    candidates = attendee_resolver.load_candidates(db, payload.group_id)
    return _out(attendee_resolver.commit(candidates, payload.text, _to_attendees(payload.attendees)))


@router.get("/meetings/{meeting_id}", response_model=list[AttendeeOut])
def get_meeting_attendees(meeting_id: str, db: Session = Depends(get_db)):
    return _out(attendee_resolver.load_attendees(db, meeting_id))


@router.put("/meetings/{meeting_id}", response_model=list[AttendeeOut])
def save_meeting_attendees(meeting_id: str, payload: SaveAttendeesRequest, db: Session = Depends(get_db)):
    """Replace a meeting's attendee list."""
    return _out(attendee_resolver.save_attendees(db, meeting_id, _to_attendees(payload.attendees)))
