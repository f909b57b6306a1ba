from __future__ import annotations

import os
import sys
import tempfile
import unittest
from unittest.mock import ANY, patch

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

TMP_DIR = tempfile.mkdtemp(prefix="podpeople-retrieve-tests-")
os.environ["PODPEOPLE_DB_URL"] = f"sqlite:///{os.path.join(TMP_DIR, 'podpeople-test.db')}"
os.environ["PODPEOPLE_TOKEN"] = "test-token"

try:
    from fastapi.testclient import TestClient

    from podpeople.db import get_session, init_db  # noqa: E402
    from podpeople.main import app  # noqa: E402
    from podpeople.models import RemoteLookup  # noqa: E402
    from podpeople.seed_demo import reset_db, seed_demo  # noqa: E402

    _API_TESTS_AVAILABLE = True
except Exception:
    TestClient = None  # type: ignore[assignment]
    _API_TESTS_AVAILABLE = False


@unittest.skipUnless(_API_TESTS_AVAILABLE, "FastAPI/SQLModel test dependencies are not installed.")
class RetrieveRemoteTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        init_db()
        cls.client = TestClient(app)

    def setUp(self):
        with get_session() as session:
            reset_db(session)
            self.users = seed_demo(session)
        self.alice = self.users["alice"]
        self.headers = {"X-Podpeople-Session": self.alice.session_token}

    def test_enqueues_a_webfinger_job(self):
        handle = "alice@pod.localhost"
        with patch("podpeople.webfinger.run_lookup") as job:
            res = self.client.get(
                "/api/people/retrieve-remote",
                params={"diasporaHandle": handle},
                headers=self.headers,
            )
        self.assertEqual(res.status_code, 202, res.text)
        payload = res.json()
        self.assertTrue(payload["queued"])
        job.assert_called_once_with(self.alice.viewer.user_id, handle, ANY)
        self.assertEqual(job.call_args.args[2], {"requestId": payload["requestId"]})

    def test_records_a_pending_lookup(self):
        with patch("podpeople.webfinger.run_lookup"):
            res = self.client.post(
                "/api/people/retrieve-remote",
                params={"diasporaHandle": "Someone@Remote.Example"},
                headers=self.headers,
            )
        self.assertEqual(res.status_code, 202, res.text)
        request_id = res.json()["requestId"]
        with get_session() as session:
            lookup = session.get(RemoteLookup, request_id)
            self.assertIsNotNone(lookup)
            self.assertEqual(lookup.handle, "someone@remote.example")
            self.assertEqual(lookup.status, "pending")
            self.assertEqual(lookup.requestedBy, self.alice.viewer.user_id)

        status = self.client.get(f"/api/lookups/{request_id}", headers=self.headers)
        self.assertEqual(status.status_code, 200, status.text)
        self.assertEqual(status.json()["status"], "pending")

    def test_lookup_status_is_private_to_the_requester(self):
        with patch("podpeople.webfinger.run_lookup"):
            res = self.client.get(
                "/api/people/retrieve-remote",
                params={"diasporaHandle": "someone@remote.example"},
                headers=self.headers,
            )
        request_id = res.json()["requestId"]
        other = {"X-Podpeople-Session": self.users["eve"].session_token}
        self.assertEqual(self.client.get(f"/api/lookups/{request_id}", headers=other).status_code, 404)

    def test_known_local_handle_resolves_without_network(self):
        with patch("podpeople.webfinger.requests.get") as http_get:
            res = self.client.get(
                "/api/people/retrieve-remote",
                params={"diasporaHandle": "bob@pod.localhost"},
                headers=self.headers,
            )
        http_get.assert_not_called()
        status = self.client.get(f"/api/lookups/{res.json()['requestId']}", headers=self.headers).json()
        self.assertEqual(status["status"], "found")
        self.assertEqual(status["personId"], self.users["bob"].viewer.person_id)

    def test_requires_sign_in(self):
        with patch("podpeople.webfinger.run_lookup") as job:
            res = self.client.get("/api/people/retrieve-remote", params={"diasporaHandle": "x@remote.example"})
        self.assertEqual(res.status_code, 401, res.text)
        job.assert_not_called()

    def test_rejects_values_that_are_not_handles(self):
        with patch("podpeople.webfinger.run_lookup") as job:
            res = self.client.get(
                "/api/people/retrieve-remote",
                params={"diasporaHandle": "not a handle"},
                headers=self.headers,
            )
        self.assertEqual(res.status_code, 400, res.text)
        job.assert_not_called()


if __name__ == "__main__":
    unittest.main()
