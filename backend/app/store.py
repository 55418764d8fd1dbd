"""Store helpers shared by the services.

Uniqueness is enforced by the database; services translate ``IntegrityError``
into ``Conflict`` subclasses and everything else coming out of the DBAPI into
``DependencyFailure``.
"""
import logging
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session

from app.exceptions import DependencyFailure
from app.models.group import GroupMember, GroupRole
from app.services.change_notifier import ChangeSignal, note_change

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@contextmanager
def store_call(db: Session, action: str):
    """Roll back on any store error; re-raise constraint violations as-is."""
    try:
        yield
    except IntegrityError:
        db.rollback()
        raise
    except DBAPIError as exc:
        db.rollback()
        logger.error("Store failure during %s: %s", action, exc)
        raise DependencyFailure(f"Store unavailable during {action}") from exc


def _dialect_insert(db: Session):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        raise DependencyFailure(f"Unsupported store dialect: {dialect}")
    return insert


def insert_membership_if_absent(
    db: Session,
    group_id: str,
    user_id: str,
    role: GroupRole = GroupRole.member,
) -> bool:
    """INSERT ... ON CONFLICT (group_id, user_id) DO NOTHING.

    Returns True when a row was inserted. Runs inside the caller's transaction.
    """
    insert = _dialect_insert(db)
    membership_id = str(uuid.uuid4())
    stmt = (
        insert(GroupMember)
        .values(
            membership_id=membership_id,
            group_id=group_id,
            user_id=user_id,
            role=role,
            joined_at=utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["group_id", "user_id"])
    )
    inserted = db.execute(stmt).rowcount == 1
    if inserted:
        note_change(db, ChangeSignal(
            record_set="memberships",
            action="insert",
            record_id=membership_id,
            keys={"group_id": group_id, "user_id": user_id},
        ))
    return inserted
