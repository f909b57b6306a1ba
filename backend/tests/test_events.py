from __future__ import annotations

import asyncio
import json
import os
import queue
import sys
import tempfile
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

TMP_DIR = tempfile.mkdtemp(prefix="podpeople-events-tests-")
os.environ["PODPEOPLE_DB_URL"] = f"sqlite:///{os.path.join(TMP_DIR, 'podpeople-test.db')}"
os.environ["PODPEOPLE_TOKEN"] = "test-token"

try:
    from fastapi.testclient import TestClient

    from podpeople.db import get_session, init_db  # noqa: E402
    from podpeople.events import EventHub, event_hub  # noqa: E402
    from podpeople.main import app, next_event  # noqa: E402
    from podpeople.seed_demo import reset_db, seed_demo  # noqa: E402

    _API_TESTS_AVAILABLE = True
except Exception:
    TestClient = None  # type: ignore[assignment]
    EventHub = None  # type: ignore[assignment]
    _API_TESTS_AVAILABLE = False


def _drain(subscriber) -> list:
    items = []
    try:
        while True:
            items.append(subscriber.get_nowait())
    except queue.Empty:
        pass
    return items


@unittest.skipUnless(_API_TESTS_AVAILABLE, "FastAPI/SQLModel test dependencies are not installed.")
class EventHubTests(unittest.TestCase):
    def test_targeted_events_reach_only_their_user(self):
        hub = EventHub(max_buffer=10)
        alice = hub.subscribe("user-alice")
        bob = hub.subscribe("user-bob")

        hub.publish({"type": "person.lookup", "userId": "user-alice", "data": {}})
        hub.publish({"type": "pod.notice", "data": {}})

        self.assertEqual([p["type"] for _, p in _drain(alice)], ["person.lookup", "pod.notice"])
        self.assertEqual([p["type"] for _, p in _drain(bob)], ["pod.notice"])

    def test_replay_respects_cursor_and_target(self):
        hub = EventHub(max_buffer=10)
        first = hub.publish({"type": "post.created", "userId": "user-alice"})
        hub.publish({"type": "post.created", "userId": "user-bob"})
        third = hub.publish({"type": "post.created", "userId": "user-alice"})

        replayed = hub.replay(int(first["eventId"]), "user-alice")
        self.assertEqual([payload["eventId"] for _, payload in replayed], [third["eventId"]])
        self.assertEqual(len(hub.replay(0, "user-bob")), 1)

    def test_buffer_is_bounded(self):
        hub = EventHub(max_buffer=2)
        for index in range(4):
            hub.publish({"type": "pod.notice", "seq": index})
        self.assertEqual(hub.oldest_id(), 3)
        self.assertEqual([payload["seq"] for _, payload in hub.replay(0)], [2, 3])

    def test_slow_subscriber_keeps_the_newest_event(self):
        hub = EventHub(max_buffer=5, subscriber_queue_size=1)
        subscriber = hub.subscribe()
        for index in range(3):
            hub.publish({"type": "pod.notice", "seq": index})

        payloads = _drain(subscriber)
        self.assertEqual(len(payloads), 1)
        self.assertEqual(payloads[-1][0], 3)

    def test_unsubscribed_queue_stops_receiving(self):
        hub = EventHub(max_buffer=5)
        subscriber = hub.subscribe("user-alice")
        hub.unsubscribe(subscriber)
        hub.publish({"type": "pod.notice"})
        self.assertEqual(_drain(subscriber), [])

    def test_encode_frames(self):
        self.assertEqual(EventHub.encode(None, {"type": "stream.reset"}), 'data: {"type": "stream.reset"}\n\n')
        frame = EventHub.encode(7, {"type": "pod.notice"})
        self.assertTrue(frame.startswith("id: 7\ndata: "))
        self.assertEqual(json.loads(frame.split("data: ", 1)[1]), {"type": "pod.notice"})

    def test_stream_wait_times_out_without_losing_later_events(self):
        hub = EventHub(max_buffer=5)
        subscriber = hub.subscribe("user-alice")

        self.assertIsNone(asyncio.run(next_event(subscriber, 0.05)))
        published = hub.publish({"type": "pod.notice"})
        event = asyncio.run(next_event(subscriber, 1.0))
        self.assertIsNotNone(event)
        self.assertEqual(event[1]["eventId"], published["eventId"])
        self.assertEqual(_drain(subscriber), [])


@unittest.skipUnless(_API_TESTS_AVAILABLE, "FastAPI/SQLModel test dependencies are not installed.")
class PublishedEventTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        init_db()
        cls.client = TestClient(app)

    def setUp(self):
        with get_session() as session:
            reset_db(session)
            self.users = seed_demo(session)
        event_hub._buffer.clear()  # type: ignore[attr-defined]

    def _headers(self, name: str) -> dict[str, str]:
        return {"X-Podpeople-Session": self.users[name].session_token}

    def test_post_creation_notifies_recipients_only(self):
        res = self.client.post("/api/posts", json={"text": "hello friends", "aspectIds": "all"}, headers=self._headers("bob"))
        self.assertEqual(res.status_code, 200, res.text)

        alice_events = [p for _, p in event_hub.replay(0, self.users["alice"].viewer.user_id)]
        self.assertEqual([p["type"] for p in alice_events], ["post.created"])
        self.assertEqual(alice_events[0]["data"]["postId"], res.json()["id"])
        self.assertEqual(event_hub.replay(0, self.users["eve"].viewer.user_id), [])

    def test_sharing_notifies_the_other_local_user(self):
        eve = self.users["eve"]
        res = self.client.post(
            "/api/contacts",
            json={"personId": eve.viewer.person_id, "aspectId": self.users["alice"].aspect_ids[1]},
            headers=self._headers("alice"),
        )
        self.assertEqual(res.status_code, 200, res.text)
        events = [p for _, p in event_hub.replay(0, eve.viewer.user_id)]
        self.assertEqual([p["type"] for p in events], ["contact.started_sharing"])
        self.assertEqual(events[0]["data"]["personId"], self.users["alice"].viewer.person_id)

    def test_stream_requires_sign_in(self):
        res = self.client.get("/api/stream")
        self.assertEqual(res.status_code, 401, res.text)


if __name__ == "__main__":
    unittest.main()
