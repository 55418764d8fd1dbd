"""Tests for change signals, subscriptions and re-fetch coalescing."""
import asyncio
import threading

import pytest
from starlette.websockets import WebSocketDisconnect

from app.exceptions import AlreadyMember
from app.models.group import GroupRole
from app.services import group_service, invitation_service, membership_service
from app.services.change_notifier import ChangeNotifier, ChangeSignal, RefetchCoalescer, notifier
from tests.conftest import create_test_user, identity_of


async def _next(subscription, timeout=1.0):
    return await asyncio.wait_for(subscription.__anext__(), timeout)


async def _drain(subscription):
    """Signals already queued, without waiting for more."""
    items = []
    while True:
        try:
            items.append(await asyncio.wait_for(subscription.__anext__(), 0.05))
        except asyncio.TimeoutError:
            return items


class TestChangeSignal:

    def test_matches_record_set_and_filters(self):
        signal = ChangeSignal("memberships", "insert", "m1", {"group_id": "g1", "user_id": "u1"})
        assert signal.matches("memberships", {})
        assert signal.matches("memberships", {"group_id": "g1"})
        assert not signal.matches("memberships", {"group_id": "g2"})
        assert not signal.matches("groups", {})


class TestChangeNotifier:

    def test_publish_reaches_matching_subscribers(self):
        hub = ChangeNotifier()

        async def scenario():
            g1 = hub.subscribe("invitations", {"email": " Bob@X.com "})
            g2 = hub.subscribe("invitations", {"email": "carol@x.com"})
            delivered = hub.publish(ChangeSignal("invitations", "insert", "i1", {"email": "bob@x.com"}))
            assert delivered == 1
            assert (await _next(g1)).record_id == "i1"
            assert await _drain(g2) == []
            g1.unsubscribe()
            g2.unsubscribe()

        asyncio.run(scenario())
        assert hub.subscriber_count == 0

    def test_unknown_record_set_or_filter(self):
        hub = ChangeNotifier()

        async def scenario():
            with pytest.raises(ValueError):
                hub.subscribe("meetings")
            with pytest.raises(ValueError):
                hub.subscribe("groups", {"name": "x"})

        asyncio.run(scenario())

    def test_unsubscribe_ends_iteration(self):
        hub = ChangeNotifier()

        async def scenario():
            received = []
            async with hub.subscribe("groups") as sub:
                hub.publish(ChangeSignal("groups", "update", "g1", {"group_id": "g1"}))
                received.append(await _next(sub))
            # iterating a closed subscription terminates
            assert [s async for s in sub] == []
            assert hub.publish(ChangeSignal("groups", "update", "g1", {"group_id": "g1"})) == 0
            return received

        assert len(asyncio.run(scenario())) == 1

    def test_full_queue_drops_oldest(self):
        hub = ChangeNotifier(queue_size=2)

        async def scenario():
            sub = hub.subscribe("groups")
            for i in range(5):
                hub.publish(ChangeSignal("groups", "update", f"g{i}", {"group_id": f"g{i}"}))
            items = await _drain(sub)
            sub.unsubscribe()
            return [s.record_id for s in items]

        assert asyncio.run(scenario()) == ["g3", "g4"]

    def test_publish_from_worker_thread(self):
        hub = ChangeNotifier()

        async def scenario():
            sub = hub.subscribe("memberships", {"group_id": "g1"})
            worker = threading.Thread(
                target=hub.publish,
                args=(ChangeSignal("memberships", "delete", "m1", {"group_id": "g1", "user_id": "u1"}),),
            )
            worker.start()
            signal = await _next(sub)
            worker.join()
            sub.unsubscribe()
            return signal

        assert asyncio.run(scenario()).action == "delete"


class TestStoreHooks:
    """Committed service mutations publish through the process-wide notifier."""

    def test_commit_publishes_and_rollback_does_not(self, client, db):
        owner = create_test_user(client, name="Owner")
        bob = create_test_user(client, name="Bob", email="bob@x.com")

        async def scenario():
            groups_sub = notifier.subscribe("groups")
            members_sub = notifier.subscribe("memberships", {"user_id": bob["user_id"]})
            group = group_service.create_group(db, "Team", owner["user_id"])
            assert (await _next(groups_sub)).action == "insert"
            assert await _drain(members_sub) == []  # only the owner joined

            membership_service.add_member(db, group.group_id, bob["user_id"], GroupRole.member)
            signal = await _next(members_sub)
            assert signal.keys["group_id"] == group.group_id

            # a failed operation publishes nothing
            with pytest.raises(AlreadyMember):
                membership_service.add_member(db, group.group_id, bob["user_id"])
            assert await _drain(members_sub) == []

            groups_sub.unsubscribe()
            members_sub.unsubscribe()

        asyncio.run(scenario())

    def test_invitation_lifecycle_signals(self, client, db, email_sender):
        owner = create_test_user(client, name="Owner")
        bob = create_test_user(client, name="Bob", email="bob@x.com")

        async def scenario():
            group = group_service.create_group(db, "Team", owner["user_id"])
            inbox = notifier.subscribe("invitations", {"email": "bob@x.com"})
            roster = notifier.subscribe("memberships", {"group_id": group.group_id})

            inv = invitation_service.create_invitation(db, group.group_id, "bob@x.com", owner["user_id"], email_sender)
            assert (await _next(inbox)).action == "insert"

            invitation_service.accept_invitation(db, inv.invitation_id, identity_of(bob))
            assert (await _next(inbox)).action == "update"
            assert (await _next(roster)).action == "insert"

            inbox.unsubscribe()
            roster.unsubscribe()

        asyncio.run(scenario())


class TestRefetchCoalescer:

    def test_burst_collapses_into_single_refetch(self):
        hub = ChangeNotifier()

        async def scenario():
            calls = []

            async def refetch():
                calls.append(1)

            coalescer = RefetchCoalescer(refetch, debounce=0.02)
            sub = hub.subscribe("memberships")
            runner = asyncio.create_task(coalescer.run(sub))
            await asyncio.sleep(0)

            for i in range(10):
                hub.publish(ChangeSignal("memberships", "insert", f"m{i}", {}))
            await asyncio.sleep(0.2)
            assert len(calls) == 1

            hub.publish(ChangeSignal("memberships", "delete", "m0", {}))
            await asyncio.sleep(0.2)
            assert len(calls) == 2

            sub.unsubscribe()
            await asyncio.wait_for(runner, 1)
            return coalescer.refetch_count

        assert asyncio.run(scenario()) == 2

    def test_signals_during_refetch_trigger_one_follow_up(self):
        async def scenario():
            started = asyncio.Event()
            release = asyncio.Event()
            calls = []

            async def refetch():
                calls.append(1)
                if len(calls) == 1:
                    started.set()
                    await release.wait()

            coalescer = RefetchCoalescer(refetch, debounce=0)
            worker = asyncio.create_task(coalescer._worker())
            coalescer.notify()
            await started.wait()
            for _ in range(5):
                coalescer.notify()
            release.set()
            await asyncio.sleep(0.05)
            worker.cancel()
            with pytest.raises(asyncio.CancelledError):
                await worker
            return len(calls)

        assert asyncio.run(scenario()) == 2

    def test_failed_refetch_does_not_stop_worker(self):
        async def scenario():
            calls = []

            async def refetch():
                calls.append(1)
                if len(calls) == 1:
                    raise RuntimeError("network blip")

            coalescer = RefetchCoalescer(refetch, debounce=0)
            worker = asyncio.create_task(coalescer._worker())
            coalescer.notify()
            await asyncio.sleep(0.02)
            coalescer.notify()
            await asyncio.sleep(0.02)
            worker.cancel()
            with pytest.raises(asyncio.CancelledError):
                await worker
            return len(calls)

        assert asyncio.run(scenario()) == 2


class TestChangeFeedWebSocket:

    def test_signal_pushed_over_websocket(self, client):
        owner = create_test_user(client, name="Owner")
        with client.websocket_connect("/api/changes/ws?record_set=groups") as ws:
            resp = client.post("/api/groups/", json={"name": "Live"}, headers={"X-User-Id": owner["user_id"]})
            assert resp.status_code == 201
            message = ws.receive_json()
        assert message == {"record_set": "groups", "action": "insert"}

    def test_unknown_record_set_closes(self, client):
        with pytest.raises(WebSocketDisconnect):
            with client.websocket_connect("/api/changes/ws?record_set=meetings") as ws:
                ws.receive_json()
