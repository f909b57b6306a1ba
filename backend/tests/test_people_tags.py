from __future__ import annotations

import os
import sys
import tempfile
import unittest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

TMP_DIR = tempfile.mkdtemp(prefix="podpeople-tags-tests-")
os.environ["PODPEOPLE_DB_URL"] = f"sqlite:///{os.path.join(TMP_DIR, 'podpeople-test.db')}"
os.environ["PODPEOPLE_TOKEN"] = "test-token"

try:
    from fastapi.testclient import TestClient

    from podpeople.db import get_session, init_db  # noqa: E402
    from podpeople.main import app  # noqa: E402
    from podpeople.seed_demo import reset_db, seed_demo  # noqa: E402

    _API_TESTS_AVAILABLE = True
except Exception:
    TestClient = None  # type: ignore[assignment]
    _API_TESTS_AVAILABLE = False


@unittest.skipUnless(_API_TESTS_AVAILABLE, "FastAPI/SQLModel test dependencies are not installed.")
class PeopleTagTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        init_db()
        cls.client = TestClient(app)

    def setUp(self):
        with get_session() as session:
            reset_db(session)
            self.users = seed_demo(session)

    def _headers(self, name: str) -> dict[str, str]:
        return {"X-Podpeople-Session": self.users[name].session_token}

    def _tag_profile(self, name: str, tag_string: str):
        res = self.client.patch("/api/profile", json={"tagString": tag_string}, headers=self._headers(name))
        self.assertEqual(res.status_code, 200, res.text)
        return res.json()

    def test_unknown_tag_succeeds_for_js(self):
        res = self.client.get("/api/people/tags/jellybeans", params={"format": "js"})
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["count"], 0)

    def test_returns_people_who_have_the_tag(self):
        profile = self._tag_profile("bob", "#seeded")
        self.assertEqual(profile["tags"], ["seeded"])

        res = self.client.get("/api/people/tags/seeded", params={"format": "js"})
        self.assertEqual(res.status_code, 200, res.text)
        payload = res.json()
        self.assertEqual(payload["count"], 1)
        self.assertEqual(payload["people"][0]["id"], self.users["bob"].viewer.person_id)

    def test_tag_lookup_ignores_case_and_leading_hash(self):
        self._tag_profile("bob", "#Seeded #cats")
        res = self.client.get("/api/people/tags/%23SEEDED")
        self.assertEqual(res.json()["count"], 1)

    def test_tag_must_match_exactly(self):
        self._tag_profile("bob", "#seededness")
        res = self.client.get("/api/people/tags/seeded")
        self.assertEqual(res.json()["count"], 0)

    def test_unsearchable_people_are_not_listed(self):
        self._tag_profile("bob", "#seeded")
        res = self.client.patch("/api/profile", json={"searchable": False}, headers=self._headers("bob"))
        self.assertEqual(res.status_code, 200, res.text)
        res = self.client.get("/api/people/tags/seeded")
        self.assertEqual(res.json()["count"], 0)

    def test_remote_people_can_carry_tags(self):
        res = self.client.post(
            "/api/people/remote",
            json={"diasporaHandle": "tagged@remote.example", "firstName": "Tag", "tagString": "#seeded #remote"},
            headers={"X-Podpeople-Token": "test-token"},
        )
        self.assertEqual(res.status_code, 200, res.text)
        self.assertEqual(res.json()["tags"], ["seeded", "remote"])
        res = self.client.get("/api/people/tags/remote")
        self.assertEqual([p["diasporaHandle"] for p in res.json()["people"]], ["tagged@remote.example"])

    def test_tag_stream_shows_visible_tagged_posts(self):
        bob = self._headers("bob")
        public = self.client.post(
            "/api/posts", json={"text": "new #babies photos", "public": True}, headers=bob
        ).json()
        limited = self.client.post(
            "/api/posts", json={"text": "private #babies news", "aspectIds": "all"}, headers=bob
        ).json()
        self.client.post("/api/posts", json={"text": "#babiesfood", "public": True}, headers=bob)

        anonymous = self.client.get("/tags/babies")
        self.assertEqual(anonymous.status_code, 200, anonymous.text)
        self.assertEqual([p["id"] for p in anonymous.json()["posts"]], [public["id"]])

        alice = self.client.get("/tags/babies", headers=self._headers("alice"))
        self.assertEqual([p["id"] for p in alice.json()["posts"]], [limited["id"], public["id"]])

        eve = self.client.get("/tags/babies", headers=self._headers("eve"))
        self.assertEqual([p["id"] for p in eve.json()["posts"]], [public["id"]])


if __name__ == "__main__":
    unittest.main()
