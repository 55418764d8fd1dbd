"""Store failures surface as DependencyFailure, on reads as well as writes."""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from app.database import get_db, make_engine
from app.exceptions import DependencyFailure
from app.identity import Identity
from app.main import app
from app.services import attendee_resolver, group_service, invitation_service, membership_service


@pytest.fixture
def unreachable_session(tmp_path):
    """A session whose database file cannot be opened."""
    engine = make_engine(f"sqlite:///{tmp_path / 'missing_dir' / 'groups.db'}")
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()
    engine.dispose()


@pytest.fixture
def unreachable_client(unreachable_session):
    app.dependency_overrides[get_db] = lambda: unreachable_session
    yield TestClient(app)
    app.dependency_overrides.clear()


READS = {
    "get_invitation": lambda db: invitation_service.get_invitation(db, "inv-1"),
    "get_group": lambda db: group_service.get_group(db, "g-1"),
    "require_owner": lambda db: group_service.require_owner(db, "g-1", "u-1", "rename the group"),
    "list_groups_for_user": lambda db: group_service.list_groups_for_user(db, "u-1"),
    "list_members": lambda db: membership_service.list_members(db, "g-1"),
    "remove_member": lambda db: membership_service.remove_member(db, "m-1", "u-1"),
    "join_group_by_code": lambda db: membership_service.join_group_by_code(db, "K7H4M9", "u-1"),
    "list_pending_for_group": lambda db: invitation_service.list_pending_for_group(db, "g-1"),
    "list_pending_for_email": lambda db: invitation_service.list_pending_for_email(db, "bob@x.com"),
    "accept_invitation": lambda db: invitation_service.accept_invitation(
        db, "inv-1", Identity(user_id="u-1", email="bob@x.com"),
    ),
    "load_candidates": lambda db: attendee_resolver.load_candidates(db),
    "load_attendees": lambda db: attendee_resolver.load_attendees(db, "meeting-1"),
}


class TestUnreachableStore:

    @pytest.mark.parametrize("operation", sorted(READS))
    def test_service_reads_raise_dependency_failure(self, unreachable_session, operation):
        with pytest.raises(DependencyFailure) as exc_info:
            READS[operation](unreachable_session)
        assert exc_info.value.status_code == 503

    def test_create_group_raises_dependency_failure(self, unreachable_session):
        with pytest.raises(DependencyFailure):
            group_service.create_group(unreachable_session, "Team", "u-1")

    def test_identity_lookup_returns_503(self, unreachable_client):
        resp = unreachable_client.get("/api/groups/", headers={"X-User-Id": "u-1"})
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "DEPENDENCY_FAILURE"

    def test_unwrapped_route_read_returns_503(self, unreachable_client):
        resp = unreachable_client.get("/api/users/")
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "DEPENDENCY_FAILURE"
