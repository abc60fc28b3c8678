import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from auri_core.domain.conversation import StaticIdentityProvider
from auri_core.domain.exceptions import ApiError, AuthorizationError, UnauthenticatedError
from auri_core.providers.sessions_client import SessionStoreClient


class SettingsStub:
    api_base_url = "https://auri.test/functions/v1"
    sessions_path = "/sessions"
    http_timeout = 5.0
    default_language = "sv"
    sessions_list_limit = 50


class FakeSessionsBackend:
    """模拟 /sessions 接口，按令牌区分用户并做行级所有权校验。"""

    def __init__(self):
        self.tokens = {"tok-anna": "anna", "tok-erik": "erik"}
        self.rows = {}
        self._seq = 0
        self._base = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def add(self, user_id, lang="sv", messages=0):
        self._seq += 1
        sid = f"s{self._seq}"
        self.rows[sid] = {
            "id": sid,
            "user_id": user_id,
            "lang": lang,
            "created_at": (self._base + timedelta(minutes=self._seq)).isoformat(),
            "messages": [{"count": messages}],
        }
        return sid

    def __call__(self, request: httpx.Request) -> httpx.Response:
        token = request.headers.get("authorization", "").removeprefix("Bearer ")
        user = self.tokens.get(token)
        if user is None:
            return httpx.Response(401, json={"error": "Unauthorized"})
        if request.method == "GET":
            own = [r for r in self.rows.values() if r["user_id"] == user]
            own.sort(key=lambda r: r["created_at"], reverse=True)
            return httpx.Response(200, json={"sessions": own[:50]})
        if request.method == "POST":
            lang = json.loads(request.content).get("lang", "sv")
            sid = self.add(user, lang=lang)
            return httpx.Response(200, json={"session": self.rows[sid]})
        if request.method == "DELETE":
            sid = request.url.params.get("session_id")
            row = self.rows.get(sid)
            if row is None or row["user_id"] != user:
                return httpx.Response(403, json={"error": "Session not owned by caller"})
            del self.rows[sid]
            return httpx.Response(200, json={"success": True})
        return httpx.Response(405, json={"error": "Method not allowed"})


def make_client(backend, token="tok-anna"):
    return SessionStoreClient(StaticIdentityProvider(token), SettingsStub(), transport=httpx.MockTransport(backend))


def test_list_sessions_newest_first():
    backend = FakeSessionsBackend()
    first = backend.add("anna", messages=2)
    second = backend.add("anna", lang="en", messages=5)
    backend.add("erik")

    sessions = make_client(backend).list()
    assert [s.id for s in sessions] == [second, first]
    assert sessions[0].language_code == "en"
    assert sessions[0].message_count == 5
    assert sessions[0].created_at.tzinfo is not None


def test_list_sessions_is_capped():
    backend = FakeSessionsBackend()
    for _ in range(60):
        backend.add("anna")
    assert len(make_client(backend).list()) == 50


def test_create_session():
    backend = FakeSessionsBackend()
    session = make_client(backend).create("en")
    assert session.language_code == "en"
    assert session.message_count == 0
    assert backend.rows[session.id]["user_id"] == "anna"


def test_create_session_uses_default_language():
    backend = FakeSessionsBackend()
    session = make_client(backend).create()
    assert session.language_code == "sv"


def test_delete_own_session():
    backend = FakeSessionsBackend()
    sid = backend.add("anna")
    make_client(backend).delete(sid)
    assert sid not in backend.rows


def test_delete_foreign_session_is_forbidden():
    backend = FakeSessionsBackend()
    foreign = backend.add("erik")
    before = dict(backend.rows)

    with pytest.raises(AuthorizationError) as exc_info:
        make_client(backend).delete(foreign)

    assert exc_info.value.message == "Session not owned by caller"
    assert backend.rows == before


def test_missing_token_is_unauthenticated():
    backend = FakeSessionsBackend()
    client = make_client(backend, token=None)
    with pytest.raises(UnauthenticatedError):
        client.list()
    with pytest.raises(UnauthenticatedError):
        client.create("sv")
    with pytest.raises(UnauthenticatedError):
        client.delete("s1")


def test_backend_error_message_is_verbatim():
    def handler(request):
        return httpx.Response(500, json={"error": "Failed to fetch sessions"})

    client = SessionStoreClient(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError) as exc_info:
        client.list()
    assert exc_info.value.message == "Failed to fetch sessions"


@pytest.mark.parametrize("row", [
    {"id": "s1", "lang": "sv", "created_at": "not-a-date"},
    {"id": "s1", "lang": "sv"},
    {"lang": "sv", "created_at": "2025-01-01T00:00:00Z"},
])
def test_malformed_session_row_is_api_error(row):
    def handler(request):
        return httpx.Response(200, json={"sessions": [row]})

    client = SessionStoreClient(StaticIdentityProvider("tok"), SettingsStub(), transport=httpx.MockTransport(handler))
    with pytest.raises(ApiError) as exc_info:
        client.list()
    assert exc_info.value.message == "Malformed session response"
