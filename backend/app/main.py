"""FastAPI application entry point."""
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from app.config import settings
from app.database import Base, engine
from app.exceptions import DependencyFailure
from app.services.change_notifier import install_session_hooks

# Import routers
from app.routers import users, groups, invitations, attendees, changes

# Import all models so Base.metadata knows about them
from app.models.user import User                      # noqa: F401
from app.models.group import Group, GroupMember       # noqa: F401
from app.models.invitation import GroupInvitation     # noqa: F401
from app.models.meeting import Meeting, MeetingAttendee  # noqa: F401

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Committed changes on groups / memberships / invitations feed the change notifier
install_session_hooks(Session)

app = FastAPI(
    title="Meeting Groups",
    description="Shared groups, join codes and invitations for collaborative meeting notes",
    version="0.1.0",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(DBAPIError)
async def store_failure_handler(request: Request, exc: DBAPIError):
    """Store errors that escaped a service surface as DependencyFailure (503)."""
    logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
    failure = DependencyFailure("Store unavailable")
    return JSONResponse(status_code=failure.status_code, content={"detail": failure.detail})


# Register routers
app.include_router(users.router, prefix="/api/users", tags=["Users"])
app.include_router(groups.router, prefix="/api/groups", tags=["Groups"])
app.include_router(invitations.router, prefix="/api/invitations", tags=["Invitations"])
app.include_router(attendees.router, prefix="/api/attendees", tags=["Attendees"])
app.include_router(changes.router, prefix="/api/changes", tags=["Changes"])


@app.on_event("startup")
def on_startup():
    """Create database tables on startup (for SQLite dev mode)."""
    if settings.DATABASE_URL.startswith("sqlite"):
        Base.metadata.create_all(bind=engine)


@app.get("/api/health")
def health_check():
    return {"status": "ok"}
