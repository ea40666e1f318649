"""Supabase client for writing finished workouts to the hosted database."""

from dataclasses import dataclass, field

import httpx

from wt.common.logger import log

AUTH_TOKEN_PATH = "/auth/v1/token"
AUTH_LOGOUT_PATH = "/auth/v1/logout"
USERS_PATH = "/rest/v1/users"
SESSIONS_PATH = "/rest/v1/workout_sessions"
ATTRIBUTES_PATH = "/rest/v1/session_attributes"


class GatewayError(Exception):
    """A request to the backend failed or came back with an error status."""


class AuthenticationError(GatewayError):
    """Signing in as an athlete was rejected, or the athlete has no credentials configured."""


class UserLookupError(GatewayError):
    """The users table didn't hold exactly one row for the athlete."""


class IdentityMismatchError(GatewayError):
    """The user row about to be written for isn't the identity we're signed in as."""


@dataclass
class Identity:
    athlete: str
    user_id: str
    access_token: str


class IdentityTracker:
    """Which athlete the gateway is currently signed in as, if any.

    Built once at startup and handed to the gateway, so a new gateway built from fresh settings still knows
    who is signed in.
    """

    def __init__(self):
        self.current = None


@dataclass
class SupabaseGateway:
    """User lookup, session insert and bulk attribute insert against a Supabase project.

    ``athletes`` maps an athlete name to its fixed ``{"email": ..., "password": ...}`` credentials.
    ``transport`` is only there so tests can hand in an ``httpx.MockTransport``.
    """

    base_url: str
    anon_key: str
    athletes: dict = field(default_factory=dict)
    identity: IdentityTracker = field(default_factory=IdentityTracker)
    timeout: float = 30
    transport: httpx.BaseTransport | None = None

    @classmethod
    def from_settings(cls, settings, identity=None, transport=None):
        if not settings.get("backend_url") or not settings.get("backend_anon_key"):
            raise GatewayError("No backend configured, set backend_url and backend_anon_key in settings")
        return cls(
            base_url=settings["backend_url"],
            anon_key=settings["backend_anon_key"],
            athletes=dict(settings.get("athletes") or {}),
            identity=identity or IdentityTracker(),
            timeout=settings.get("request_timeout", 30),
            transport=transport,
        )

    def _headers(self, prefer=None, identity=None):
        identity = identity or self.identity.current
        token = identity.access_token if identity is not None else self.anon_key
        headers = {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }
        if prefer:
            headers["Prefer"] = prefer
        return headers

    # ``identity`` pins the token a request is sent with. Without it, whoever is signed in at send time is used.
    def _request(self, method, path, prefer=None, identity=None, **kwargs) -> httpx.Response:
        url = f"{self.base_url.rstrip('/')}{path}"
        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
                response = client.request(method, url, headers=self._headers(prefer, identity), **kwargs)
        except httpx.HTTPError as e:
            raise GatewayError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            log.error(f"Backend returned {response.status_code} for {method} {path}: {response.text}")
            raise GatewayError(f"{method} {path} returned {response.status_code}: {response.text}")
        return response

    # Pulls fields out of a successful response body. A body that isn't JSON or lacks what ``extract`` reads is a
    # GatewayError like any other backend failure.
    def _parse(self, response, what, extract):
        try:
            return extract(response.json())
        except (ValueError, KeyError, IndexError, TypeError) as e:
            log.error(f"Unexpected {what} response ({response.status_code}): {response.text[:200]}")
            raise GatewayError(f"Unexpected {what} response from the backend") from e

    #region === Auth ===

    def sign_in(self, athlete) -> Identity:
        creds = self.athletes.get(athlete)
        if not creds or not creds.get("email") or not creds.get("password"):
            raise AuthenticationError(f"No credentials configured for athlete '{athlete}'")
        try:
            response = self._request(
                "POST", AUTH_TOKEN_PATH,
                params={"grant_type": "password"},
                json={"email": creds["email"], "password": creds["password"]},
            )
            identity = self._parse(response, "sign-in", lambda body: Identity(
                athlete=athlete, user_id=str(body["user"]["id"]), access_token=body["access_token"]))
        except GatewayError as e:
            raise AuthenticationError(f"Sign-in as '{athlete}' failed: {e}") from e

        self.identity.current = identity
        log.info(f"Signed in to backend as '{athlete}' ({identity.user_id})")
        return identity

    # Revokes ``identity`` (default: whoever is signed in). The tracker is only cleared if it still holds that
    # identity, and it's cleared even if the backend call fails.
    def sign_out(self, identity=None):
        target = identity or self.identity.current
        if target is None:
            return
        try:
            self._request("POST", AUTH_LOGOUT_PATH, identity=target)
        except GatewayError:
            log.warning(f"Backend sign-out for '{target.athlete}' failed, dropping the session locally anyway",
                        exc_info=True)
        finally:
            if self.identity.current is target:
                self.identity.current = None
        log.info(f"Signed out of backend as '{target.athlete}'")

    # Reuses the current identity if it's already this athlete, otherwise switches to it.
    def authenticate(self, athlete) -> Identity:
        current = self.identity.current
        if current is not None and current.athlete == athlete:
            return current
        if current is not None:
            log.info(f"Switching backend identity from '{current.athlete}' to '{athlete}'")
            self.sign_out(current)
        return self.sign_in(athlete)

    #endregion === Auth ===

    #region === Tables ===

    def find_user_by_name(self, name, identity=None) -> str:
        response = self._request("GET", USERS_PATH, identity=identity,
                                 params={"select": "id", "name": f"eq.{name}"})
        rows = self._parse(response, "user lookup", lambda body: body if isinstance(body, list) else None)
        if rows is None or len(rows) != 1:
            found = len(rows) if rows is not None else "no"
            raise UserLookupError(f"Expected exactly one user named '{name}', found {found}")
        return self._parse(response, "user lookup", lambda body: str(body[0]["id"]))

    def insert_session(self, user_id, start_time, end_time, identity=None):
        response = self._request(
            "POST", SESSIONS_PATH,
            prefer="return=representation",
            identity=identity,
            json=[{"user_id": user_id, "start_time": start_time, "end_time": end_time}],
        )
        session_id = self._parse(response, "session insert", lambda rows: rows[0]["id"])
        log.info(f"Inserted workout session {session_id} for user {user_id}")
        return session_id

    def insert_attribute_rows(self, rows, identity=None):
        if not rows:
            return 0
        payload = [{**row, "value": str(row["value"])} for row in rows]
        self._request("POST", ATTRIBUTES_PATH, prefer="return=minimal", identity=identity, json=payload)
        log.info(f"Inserted {len(payload)} session attribute rows")
        return len(payload)

    #endregion === Tables ===
