"""Tests for local persistence and the backend gateway.

Covers: wt.core.config, wt.core.store, wt.gateway.client, wt.gateway.save
"""

import json
import os
import shutil
import tempfile
import unittest
from pathlib import Path

import httpx

from wt.core.session import Session, WeightedPull


# ──────────────────────────────────────────────────────────────────────────
# config.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestConfig(unittest.TestCase):
    """Tests for the state file handling in config.py."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self._tmppath = Path(self.tmpdir)

        # Monkey-patch config paths to use temp dir
        from wt.core import config
        self._orig_state_path = config.STATE_PATH
        self._orig_completed_dir = config.COMPLETED_DIR
        config.STATE_PATH = self._tmppath / "state.json"
        config.COMPLETED_DIR = self._tmppath / "completed_sessions"

    def tearDown(self):
        from wt.core import config
        config.STATE_PATH = self._orig_state_path
        config.COMPLETED_DIR = self._orig_completed_dir
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_fresh_start_returns_default_state(self):
        """No existing file → fresh default state, nothing written yet."""
        from wt.core import config
        state = config.load_state()
        self.assertEqual(state["meta"]["schema_version"], 1)
        self.assertEqual(state["durable"], {})
        self.assertIsNone(state["session"])
        self.assertEqual(state["settings"]["athletes"], {})
        self.assertEqual(state["settings"]["request_timeout"], 30)
        self.assertFalse(os.path.exists(config.STATE_PATH))

    def test_save_and_load_roundtrip(self):
        from wt.core import config
        state = config.load_state()
        state["durable"]["workoutStartTime"] = "1700000000000"
        state["settings"]["athletes"] = {"Sam": {"email": "sam@example.com", "password": "pw"}}
        config.save_state(state)

        loaded = config.load_state()
        self.assertEqual(loaded["durable"]["workoutStartTime"], "1700000000000")
        self.assertEqual(loaded["settings"]["athletes"]["Sam"]["email"], "sam@example.com")

    def test_load_fills_missing_settings_defaults(self):
        from wt.core import config
        with open(config.STATE_PATH, "w") as f:
            json.dump({"meta": {"schema_version": 1}, "settings": {"email_recipient": "me@example.com"}}, f)

        loaded = config.load_state()
        self.assertEqual(loaded["settings"]["email_recipient"], "me@example.com")
        self.assertEqual(loaded["settings"]["email_subject"], "Workout Summary")
        self.assertEqual(loaded["durable"], {})
        self.assertIsNone(loaded["session"])

    def test_non_string_durable_values_dropped(self):
        from wt.core import config
        with open(config.STATE_PATH, "w") as f:
            json.dump({"durable": {"appPhase": 3, "workoutStartTime": "123"}}, f)
        loaded = config.load_state()
        self.assertEqual(loaded["durable"], {"workoutStartTime": "123"})

    def test_corrupted_state_falls_back_to_fresh(self):
        from wt.core import config
        with open(config.STATE_PATH, "w") as f:
            f.write("{invalid json!!")
        state = config.load_state()
        self.assertEqual(state["durable"], {})

    def test_non_object_state_falls_back_to_fresh(self):
        from wt.core import config
        with open(config.STATE_PATH, "w") as f:
            json.dump([1, 2, 3], f)
        self.assertEqual(config.load_state()["durable"], {})

    def test_save_completed_session(self):
        from wt.core import config
        path = config.save_completed_session(Session().to_dict(), "Sam", 42)
        self.assertTrue(path.name.startswith("session_"))
        self.assertEqual(path.parent, config.COMPLETED_DIR)
        with open(path) as f:
            saved = json.load(f)
        self.assertEqual(saved["meta"]["athlete"], "Sam")
        self.assertEqual(saved["meta"]["remote_session_id"], 42)
        self.assertIn("durations", saved["summary"])


# ──────────────────────────────────────────────────────────────────────────
# store.py tests
# ──────────────────────────────────────────────────────────────────────────

class TestDurableStore(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = Path(self.tmpdir) / "state.json"

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_writes_are_immediately_on_disk(self):
        from wt.core.store import DurableStore
        store = DurableStore(self.path)
        store.set("appPhase", 2)
        with open(self.path) as f:
            self.assertEqual(json.load(f)["durable"]["appPhase"], "2")
        store.remove("appPhase")
        with open(self.path) as f:
            self.assertNotIn("appPhase", json.load(f)["durable"])

    def test_unreadable_keys_read_as_none(self):
        from wt.core.store import DurableStore
        store = DurableStore(self.path)
        store.set("workoutStartTime", "yesterday")
        store.set("appPhase", "two")
        self.assertIsNone(store.read_start_instant())
        self.assertIsNone(store.read_phase_index())

    def test_session_aggregate_roundtrip(self):
        from wt.core.store import DurableStore
        store = DurableStore(self.path)
        session = Session()
        session.weighted_pulls[0] = WeightedPull(weight=20, reps=4)
        store.save_session(session.to_dict())

        reopened = DurableStore(self.path)
        self.assertEqual(Session.from_dict(reopened.load_session()), session)
        reopened.clear_session()
        self.assertIsNone(DurableStore(self.path).load_session())


# ──────────────────────────────────────────────────────────────────────────
# gateway tests
# ──────────────────────────────────────────────────────────────────────────

ATHLETES = {
    "Sam": {"email": "sam@example.com", "password": "pw-sam"},
    "Alex": {"email": "alex@example.com", "password": "pw-alex"},
}
USER_IDS = {"sam@example.com": "u-sam", "alex@example.com": "u-alex"}


class FakeBackend:
    """Just enough of the Supabase auth + REST API for the gateway, served through httpx.MockTransport."""

    def __init__(self, users=None, reject_sign_in=False, fail_attributes=False, offline=False, garbled=()):
        self.users = users if users is not None else {"Sam": [{"id": "u-sam"}], "Alex": [{"id": "u-alex"}]}
        self.reject_sign_in = reject_sign_in
        self.fail_attributes = fail_attributes
        self.offline = offline
        self.garbled = set(garbled)          # paths that answer 2xx with a non-JSON body
        self.requests = []
        self.transport = httpx.MockTransport(self.handle)

    def paths(self):
        return [(r.method, r.url.path) for r in self.requests]

    def handle(self, request):
        self.requests.append(request)
        if self.offline:
            raise httpx.ConnectError("connection refused", request=request)
        path = request.url.path
        if path in self.garbled:
            return httpx.Response(201 if request.method == "POST" else 200, text="<html>ok</html>")
        if path == "/auth/v1/token":
            if self.reject_sign_in:
                return httpx.Response(400, json={"error": "invalid_grant"})
            body = json.loads(request.content)
            return httpx.Response(200, json={
                "access_token": f"token-{body['email']}",
                "user": {"id": USER_IDS[body["email"]]},
            })
        if path == "/auth/v1/logout":
            return httpx.Response(204)
        if path == "/rest/v1/users":
            name = request.url.params["name"].removeprefix("eq.")
            return httpx.Response(200, json=self.users.get(name, []))
        if path == "/rest/v1/workout_sessions":
            return httpx.Response(201, json=[{"id": 42, **json.loads(request.content)[0]}])
        if path == "/rest/v1/session_attributes":
            if self.fail_attributes:
                return httpx.Response(500, text="insert failed")
            return httpx.Response(201)
        return httpx.Response(404)


def _finished_session():
    session = Session()
    session.durations["climbing"] = 300
    session.recount_elapsed()
    session.climbing_stats = {"V5-V6_sends": 2}
    session.recount_moves()
    session.started_at = "2026-10-18T09:00:00+00:00"
    session.ended_at = "2026-10-18T10:00:00+00:00"
    return session


class TestGateway(unittest.TestCase):

    def _gateway(self, backend, **kwargs):
        from wt.gateway.client import SupabaseGateway
        return SupabaseGateway(base_url="https://example.supabase.co/", anon_key="anon",
                               athletes=ATHLETES, transport=backend.transport, **kwargs)

    def test_from_settings_requires_backend(self):
        from wt.gateway.client import GatewayError, SupabaseGateway
        with self.assertRaises(GatewayError):
            SupabaseGateway.from_settings({"backend_url": "", "backend_anon_key": "x"})

    def test_from_settings_shares_identity(self):
        from wt.gateway.client import IdentityTracker, SupabaseGateway
        identity = IdentityTracker()
        gateway = SupabaseGateway.from_settings(
            {"backend_url": "https://x.supabase.co", "backend_anon_key": "k", "athletes": ATHLETES}, identity)
        self.assertIs(gateway.identity, identity)
        self.assertEqual(gateway.timeout, 30)

    def test_sign_in_sets_identity(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        identity = gateway.authenticate("Sam")
        self.assertEqual(identity.user_id, "u-sam")
        self.assertEqual(gateway.identity.current, identity)
        token_request = backend.requests[0]
        self.assertEqual(token_request.url.params["grant_type"], "password")
        self.assertEqual(token_request.headers["apikey"], "anon")

    def test_same_athlete_reuses_identity(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        gateway.authenticate("Sam")
        gateway.authenticate("Sam")
        self.assertEqual(backend.paths(), [("POST", "/auth/v1/token")])

    def test_switching_athlete_signs_out_first(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        gateway.authenticate("Sam")
        gateway.authenticate("Alex")
        self.assertEqual(backend.paths(), [
            ("POST", "/auth/v1/token"),
            ("POST", "/auth/v1/logout"),
            ("POST", "/auth/v1/token"),
        ])
        self.assertEqual(backend.requests[1].headers["Authorization"], "Bearer token-sam@example.com")
        self.assertEqual(gateway.identity.current.athlete, "Alex")

    def test_unknown_athlete(self):
        from wt.gateway.client import AuthenticationError
        backend = FakeBackend()
        with self.assertRaises(AuthenticationError):
            self._gateway(backend).authenticate("Nobody")
        self.assertEqual(backend.requests, [])

    def test_rejected_sign_in(self):
        from wt.gateway.client import AuthenticationError
        gateway = self._gateway(FakeBackend(reject_sign_in=True))
        with self.assertRaises(AuthenticationError):
            gateway.authenticate("Sam")
        self.assertIsNone(gateway.identity.current)

    def test_network_failure_is_gateway_error(self):
        from wt.gateway.client import GatewayError
        gateway = self._gateway(FakeBackend(offline=True))
        with self.assertRaises(GatewayError):
            gateway.find_user_by_name("Sam")

    def test_user_lookup_needs_exactly_one_row(self):
        from wt.gateway.client import UserLookupError
        gateway = self._gateway(FakeBackend(users={"Sam": [], "Alex": [{"id": "a"}, {"id": "b"}]}))
        with self.assertRaises(UserLookupError):
            gateway.find_user_by_name("Sam")
        with self.assertRaises(UserLookupError):
            gateway.find_user_by_name("Alex")

    def test_insert_attribute_rows_stringifies_values(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        count = gateway.insert_attribute_rows([
            {"session_id": 1, "category": "summary", "variable_name": "total_moves", "value": 3, "unit": "moves"},
        ])
        self.assertEqual(count, 1)
        body = json.loads(backend.requests[0].content)
        self.assertEqual(body[0]["value"], "3")
        self.assertEqual(backend.requests[0].headers["Prefer"], "return=minimal")

    def test_empty_attribute_rows_skip_request(self):
        backend = FakeBackend()
        self.assertEqual(self._gateway(backend).insert_attribute_rows([]), 0)
        self.assertEqual(backend.requests, [])

    def test_non_json_sign_in_is_authentication_error(self):
        from wt.gateway.client import AuthenticationError
        gateway = self._gateway(FakeBackend(garbled={"/auth/v1/token"}))
        with self.assertRaises(AuthenticationError):
            gateway.authenticate("Sam")
        self.assertIsNone(gateway.identity.current)

    def test_non_json_user_lookup_is_gateway_error(self):
        from wt.gateway.client import GatewayError
        gateway = self._gateway(FakeBackend(garbled={"/rest/v1/users"}))
        with self.assertRaises(GatewayError) as ctx:
            gateway.find_user_by_name("Sam")
        self.assertIsInstance(ctx.exception.__cause__, ValueError)

    def test_user_row_without_id_is_gateway_error(self):
        from wt.gateway.client import GatewayError
        gateway = self._gateway(FakeBackend(users={"Sam": [{"name": "Sam"}]}))
        with self.assertRaises(GatewayError):
            gateway.find_user_by_name("Sam")

    def test_identity_argument_pins_token(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        sam = gateway.authenticate("Sam")
        gateway.authenticate("Alex")
        gateway.insert_session("u-sam", None, None, identity=sam)
        self.assertEqual(backend.requests[-1].headers["Authorization"], "Bearer token-sam@example.com")
        gateway.insert_session("u-alex", None, None)
        self.assertEqual(backend.requests[-1].headers["Authorization"], "Bearer token-alex@example.com")

    def test_signing_out_stale_identity_keeps_current(self):
        backend = FakeBackend()
        gateway = self._gateway(backend)
        sam = gateway.authenticate("Sam")
        gateway.authenticate("Alex")
        gateway.sign_out(sam)
        self.assertEqual(gateway.identity.current.athlete, "Alex")
        self.assertEqual(backend.requests[-1].headers["Authorization"], "Bearer token-sam@example.com")


class TestSaveWorkout(unittest.TestCase):

    def _gateway(self, backend):
        from wt.gateway.client import SupabaseGateway
        return SupabaseGateway(base_url="https://example.supabase.co", anon_key="anon",
                               athletes=ATHLETES, transport=backend.transport)

    def test_successful_save(self):
        from wt.gateway.save import save_workout
        backend = FakeBackend()
        session_id = save_workout(self._gateway(backend), "Sam", _finished_session())
        self.assertEqual(session_id, 42)
        self.assertEqual(backend.paths(), [
            ("POST", "/auth/v1/token"),
            ("GET", "/rest/v1/users"),
            ("POST", "/rest/v1/workout_sessions"),
            ("POST", "/rest/v1/session_attributes"),
        ])

        session_body = json.loads(backend.requests[2].content)
        self.assertEqual(session_body, [{
            "user_id": "u-sam",
            "start_time": "2026-10-18T09:00:00+00:00",
            "end_time": "2026-10-18T10:00:00+00:00",
        }])
        self.assertEqual(backend.requests[2].headers["Authorization"], "Bearer token-sam@example.com")

        rows = json.loads(backend.requests[3].content)
        self.assertTrue(all(row["session_id"] == 42 for row in rows))
        climbing = [row for row in rows if row["category"] == "climbing"]
        self.assertEqual(climbing, [{"session_id": 42, "category": "climbing", "variable_name": "V5-V6_sends",
                                     "value": "2", "unit": "count"}])

    def test_identity_mismatch_aborts_and_signs_out(self):
        from wt.gateway.client import IdentityMismatchError
        from wt.gateway.save import save_workout
        backend = FakeBackend(users={"Sam": [{"id": "u-somebody-else"}]})
        gateway = self._gateway(backend)
        with self.assertRaises(IdentityMismatchError):
            save_workout(gateway, "Sam", _finished_session())
        self.assertIsNone(gateway.identity.current)
        self.assertIn(("POST", "/auth/v1/logout"), backend.paths())
        self.assertNotIn(("POST", "/rest/v1/workout_sessions"), backend.paths())

    def test_attribute_failure_leaves_session_row(self):
        """No rollback: the session insert already happened when the attribute insert fails."""
        from wt.gateway.client import GatewayError
        from wt.gateway.save import save_workout
        backend = FakeBackend(fail_attributes=True)
        summary = _finished_session()
        before = summary.to_dict()
        with self.assertRaises(GatewayError):
            save_workout(self._gateway(backend), "Sam", summary)
        self.assertIn(("POST", "/rest/v1/workout_sessions"), backend.paths())
        self.assertEqual(summary.to_dict(), before)

    def test_non_json_session_insert_is_gateway_error(self):
        from wt.gateway.client import GatewayError
        from wt.gateway.save import save_workout
        backend = FakeBackend(garbled={"/rest/v1/workout_sessions"})
        with self.assertRaises(GatewayError):
            save_workout(self._gateway(backend), "Sam", _finished_session())
        self.assertNotIn(("POST", "/rest/v1/session_attributes"), backend.paths())

    def test_other_athlete_signing_in_mid_save(self):
        """A second save switching the shared identity doesn't change who the first save writes as."""
        from wt.gateway.client import SupabaseGateway
        from wt.gateway.save import save_workout

        class SwitchingGateway(SupabaseGateway):
            def find_user_by_name(self, name, identity=None):
                user_id = super().find_user_by_name(name, identity=identity)
                self.authenticate("Alex")
                return user_id

        backend = FakeBackend()
        gateway = SwitchingGateway(base_url="https://example.supabase.co", anon_key="anon",
                                   athletes=ATHLETES, transport=backend.transport)
        self.assertEqual(save_workout(gateway, "Sam", _finished_session()), 42)

        writes = [r for r in backend.requests if r.url.path.startswith("/rest/v1/") and r.method == "POST"]
        self.assertEqual([r.url.path for r in writes], ["/rest/v1/workout_sessions", "/rest/v1/session_attributes"])
        for request in writes:
            self.assertEqual(request.headers["Authorization"], "Bearer token-sam@example.com")
        self.assertEqual(json.loads(writes[0].content)[0]["user_id"], "u-sam")
        self.assertEqual(gateway.identity.current.athlete, "Alex")


if __name__ == "__main__":
    unittest.main()
