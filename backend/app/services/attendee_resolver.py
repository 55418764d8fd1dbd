"""Attendee suggestions and commits for a meeting's attendee list.

The list is ordered and may hold the same guest name more than once.
Registered attendees are unique by user_id and keep the display name they had
when added.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from app.exceptions import NotFound
from app.models.group import GroupMember, GroupRole
from app.models.meeting import Meeting, MeetingAttendee
from app.models.user import User
from app.services import group_service
from app.store import store_call

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Candidate:
    user_id: str
    display_name: str
    role: Optional[str] = None


@dataclass(frozen=True)
class Attendee:
    name: str
    user_id: Optional[str] = None

    @property
    def is_user(self) -> bool:
        return self.user_id is not None


def load_candidates(db: Session, group_id: Optional[str] = None) -> list[Candidate]:
    """Registered people an attendee can be resolved to.

    Scoped to the group's members when ``group_id`` is given, otherwise every
    user with a display name.
    """
    if group_id:
        group_service.get_group(db, group_id)
        with store_call(db, "load group candidates"):
            rows = (
                db.query(GroupMember.user_id, User.display_name, GroupMember.role)
                .join(User, User.user_id == GroupMember.user_id)
                .filter(GroupMember.group_id == group_id)
                .order_by(GroupMember.joined_at)
                .all()
            )
        return [
            Candidate(user_id, display_name or "Unknown", role.value if isinstance(role, GroupRole) else role)
            for user_id, display_name, role in rows
        ]

    with store_call(db, "load candidates"):
        rows = (
            db.query(User.user_id, User.display_name)
            .filter(User.display_name.isnot(None), User.display_name != "")
            .order_by(User.display_name)
            .all()
        )
    return [Candidate(user_id, display_name) for user_id, display_name in rows]


def _present_user_ids(attendees: Sequence[Attendee]) -> set[str]:
    return {a.user_id for a in attendees if a.user_id}


def suggest(candidates: Sequence[Candidate], text: str, attendees: Sequence[Attendee]) -> list[Candidate]:
    """Candidates whose name contains ``text`` (case-insensitive), minus those already added."""
    query = (text or "").strip().lower()
    if not query:
        return []
    present = _present_user_ids(attendees)
    return [
        c for c in candidates
        if query in c.display_name.lower() and c.user_id not in present
    ]


def add_registered(attendees: Sequence[Attendee], candidate: Candidate) -> list[Attendee]:
    """Append ``candidate`` unless their user_id is already on the list."""
    if candidate.user_id in _present_user_ids(attendees):
        return list(attendees)
    return [*attendees, Attendee(name=candidate.display_name, user_id=candidate.user_id)]


def add_guest(attendees: Sequence[Attendee], name: str) -> list[Attendee]:
    name = (name or "").strip()
    if not name:
        return list(attendees)
    return [*attendees, Attendee(name=name, user_id=None)]


def commit(candidates: Sequence[Candidate], text: str, attendees: Sequence[Attendee]) -> list[Attendee]:
    """Resolve typed text into a new attendee entry.

    An exact (case-insensitive) name match against a candidate adds that
    registered person; anything else becomes a guest.
    """
    typed = (text or "").strip()
    if not typed:
        return list(attendees)
    for candidate in candidates:
        if candidate.display_name.lower() == typed.lower():
            return add_registered(attendees, candidate)
    return add_guest(attendees, typed)


def remove(attendees: Sequence[Attendee], index: int) -> list[Attendee]:
    """Drop the entry at ``index``; registered entries also drop any stray duplicates."""
    if index < 0 or index >= len(attendees):
        raise IndexError(f"No attendee at position {index}")
    target = attendees[index]
    if target.user_id:
        return [a for a in attendees if a.user_id != target.user_id]
    return [a for i, a in enumerate(attendees) if i != index]


def _get_meeting(db: Session, meeting_id: str) -> Meeting:
    with store_call(db, "load meeting"):
        meeting = db.query(Meeting).filter(Meeting.meeting_id == meeting_id).first()
    if not meeting:
        logger.warning("Meeting %s not found", meeting_id)
        raise NotFound("Meeting not found", code="MEETING_NOT_FOUND")
    return meeting


def load_attendees(db: Session, meeting_id: str) -> list[Attendee]:
    meeting = _get_meeting(db, meeting_id)
    with store_call(db, "load attendees"):
        return [Attendee(name=a.name, user_id=a.user_id) for a in meeting.attendees]


def save_attendees(db: Session, meeting_id: str, attendees: Sequence[Attendee]) -> list[Attendee]:
    """Replace the meeting's attendee rows with ``attendees``, keeping order."""
    meeting = _get_meeting(db, meeting_id)
    with store_call(db, "save attendees"):
        meeting.attendees = [
            MeetingAttendee(position=i, name=a.name, user_id=a.user_id)
            for i, a in enumerate(attendees)
        ]
        db.commit()
    logger.info("Saved %d attendees on meeting %s", len(attendees), meeting_id)
    return load_attendees(db, meeting_id)
