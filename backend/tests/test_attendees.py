"""Tests for attendee resolution against group membership."""
from app.models.meeting import Meeting
from app.services import attendee_resolver
from app.services.attendee_resolver import Attendee, Candidate
from tests.conftest import auth, create_test_group, create_test_user

ALICE = Candidate("u-alice", "Alice")
BOB = Candidate("u-bob", "Bob")
ALBERT = Candidate("u-albert", "Albert")


class TestSuggest:

    def test_already_added_member_is_not_suggested(self):
        attendees = [Attendee("Alice", "u-alice")]
        assert attendee_resolver.suggest([ALICE, BOB], "al", attendees) == []
        assert attendee_resolver.suggest([ALICE, BOB], "b", attendees) == [BOB]

    def test_case_insensitive_substring(self):
        assert attendee_resolver.suggest([ALICE, BOB, ALBERT], "LI", []) == [ALICE]
        assert attendee_resolver.suggest([ALICE, BOB, ALBERT], "al", []) == [ALICE, ALBERT]

    def test_blank_text_suggests_nothing(self):
        assert attendee_resolver.suggest([ALICE, BOB], "  ", []) == []

    def test_guest_with_same_name_does_not_hide_member(self):
        attendees = [Attendee("Alice")]
        assert attendee_resolver.suggest([ALICE], "ali", attendees) == [ALICE]


class TestCommit:

    def test_exact_match_adds_registered_snapshot(self):
        result = attendee_resolver.commit([ALICE, BOB], "alice", [])
        assert result == [Attendee("Alice", "u-alice")]
        assert result[0].is_user

    def test_no_exact_match_adds_guest(self):
        result = attendee_resolver.commit([ALICE, BOB], "Ali", [])
        assert result == [Attendee("Ali", None)]
        assert not result[0].is_user

    def test_guests_are_not_deduplicated(self):
        attendees = attendee_resolver.commit([], "Dana", [])
        attendees = attendee_resolver.commit([], "Dana", attendees)
        assert attendees == [Attendee("Dana"), Attendee("Dana")]

    def test_registered_entries_deduplicated_by_user_id(self):
        attendees = attendee_resolver.commit([ALICE], "Alice", [])
        attendees = attendee_resolver.commit([ALICE], "ALICE", attendees)
        assert attendees == [Attendee("Alice", "u-alice")]

    def test_order_is_preserved(self):
        attendees = []
        for text in ("Bob", "Zoe", "Alice"):
            attendees = attendee_resolver.commit([ALICE, BOB], text, attendees)
        assert [a.name for a in attendees] == ["Bob", "Zoe", "Alice"]
        assert [a.is_user for a in attendees] == [True, False, True]

    def test_blank_commit_is_noop(self):
        assert attendee_resolver.commit([ALICE], "   ", [Attendee("Bob", "u-bob")]) == [Attendee("Bob", "u-bob")]

    def test_remove(self):
        attendees = [Attendee("Dana"), Attendee("Alice", "u-alice"), Attendee("Dana")]
        assert attendee_resolver.remove(attendees, 2) == [Attendee("Dana"), Attendee("Alice", "u-alice")]
        assert attendee_resolver.remove(attendees, 1) == [Attendee("Dana"), Attendee("Dana")]


class TestCandidatesFromStore:

    def _group_with(self, client, *names):
        owner = create_test_user(client, name=names[0])
        group = create_test_group(client, owner)
        for name in names[1:]:
            user = create_test_user(client, name=name)
            client.post("/api/groups/join", json={"join_code": group["join_code"]}, headers=auth(user))
        return owner, group

    def test_scoped_to_group_members(self, client, db):
        _, group = self._group_with(client, "Alice", "Bob")
        create_test_user(client, name="Outsider")
        candidates = attendee_resolver.load_candidates(db, group["group_id"])
        assert [c.display_name for c in candidates] == ["Alice", "Bob"]
        assert candidates[0].role == "owner"

    def test_unscoped_lists_everyone(self, client, db):
        self._group_with(client, "Alice", "Bob")
        create_test_user(client, name="Outsider")
        candidates = attendee_resolver.load_candidates(db, None)
        assert [c.display_name for c in candidates] == ["Alice", "Bob", "Outsider"]

    def test_suggest_endpoint_scenario(self, client):
        owner, group = self._group_with(client, "Alice", "Bob")
        listed = [{"name": "Alice", "user_id": owner["user_id"]}]

        resp = client.post("/api/attendees/suggest", json={
            "group_id": group["group_id"], "text": "al", "attendees": listed,
        })
        assert resp.status_code == 200
        assert resp.json() == []

        resp = client.post("/api/attendees/suggest", json={
            "group_id": group["group_id"], "text": "b", "attendees": listed,
        })
        assert [c["display_name"] for c in resp.json()] == ["Bob"]

    def test_commit_endpoint(self, client):
        _, group = self._group_with(client, "Alice", "Bob")
        resp = client.post("/api/attendees/commit", json={
            "group_id": group["group_id"], "text": "bob", "attendees": [],
        })
        assert resp.status_code == 200
        entries = resp.json()
        assert entries[0]["name"] == "Bob"
        assert entries[0]["is_user"] is True

        resp = client.post("/api/attendees/commit", json={
            "group_id": group["group_id"], "text": "Visitor", "attendees": entries,
        })
        assert [(a["name"], a["is_user"]) for a in resp.json()] == [("Bob", True), ("Visitor", False)]

    def test_unknown_group_scope(self, client):
        resp = client.post("/api/attendees/suggest", json={"group_id": "nope", "text": "a"})
        assert resp.status_code == 404


class TestMeetingAttendees:

    def test_saved_names_are_snapshots(self, client, db):
        alice = create_test_user(client, name="Alice")
        meeting = Meeting(title="Kickoff", created_by=alice["user_id"])
        db.add(meeting)
        db.commit()
        meeting_id = meeting.meeting_id

        resp = client.put(f"/api/attendees/meetings/{meeting_id}", json={"attendees": [
            {"name": "Alice", "user_id": alice["user_id"]},
            {"name": "Guest"},
            {"name": "Guest"},
        ]})
        assert resp.status_code == 200
        assert [a["name"] for a in resp.json()] == ["Alice", "Guest", "Guest"]

        client.patch(f"/api/users/{alice['user_id']}", json={"display_name": "Alice Renamed"})
        saved = client.get(f"/api/attendees/meetings/{meeting_id}").json()
        assert saved[0]["name"] == "Alice"
        assert saved[0]["user_id"] == alice["user_id"]

    def test_unknown_meeting(self, client):
        assert client.get("/api/attendees/meetings/missing").status_code == 404
