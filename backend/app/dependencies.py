"""FastAPI dependencies for the caller's identity.

Authentication happens upstream; requests carry the authenticated user id in
``X-User-Id``. The verified email comes from the users table.
"""
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.identity import Identity
from app.models.user import User
from app.store import store_call


def get_identity(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    db: Session = Depends(get_db),
) -> Identity:
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Missing X-User-Id header", "code": "UNAUTHORIZED"},
        )
    with store_call(db, "load caller"):
        user = db.query(User).filter(User.user_id == x_user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Unknown user", "code": "UNAUTHORIZED"},
        )
    return Identity(user_id=user.user_id, email=user.email)
