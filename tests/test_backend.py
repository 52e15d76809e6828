import time
from unittest.mock import MagicMock

import pytest
import requests

from blockportal.backend import SupabaseClient, _eq_value
from blockportal.directory import AdminDirectory
from blockportal.errors import BackendError, BackendUnavailable
from blockportal.policy.login_policy import LoginPolicy
from blockportal.ratelimit import STATUS_SYSTEM_ERROR, LoginGovernor
from blockportal.sessions import SessionIssuer
from blockportal.slotstore import MemorySlotStore


def _response(status=200, body=None, text=""):
    r = MagicMock()
    r.status_code = status
    r.text = text
    if isinstance(body, Exception):
        r.json.side_effect = body
    else:
        r.json.return_value = body
    return r


@pytest.fixture
def http():
    return MagicMock()


@pytest.fixture
def client(http):
    return SupabaseClient("https://proj.supabase.test/", "service-key", timeout=7, session=http)


@pytest.mark.parametrize("value, encoded", [
    (None, "is.null"),
    (True, "eq.true"),
    (False, "eq.false"),
    (5, "eq.5"),
    ("abc", "eq.abc"),
    (["a", "b"], "in.(a,b)"),
])
def test_filter_encoding(value, encoded):
    assert _eq_value(value) == encoded


def test_select_builds_query(client, http):
    http.request.return_value = _response(body=[{"id": 1}])
    rows = client.select("notifications", filters={"is_active": True}, order="created_at.desc", limit=5)

    assert rows == [{"id": 1}]
    method, url = http.request.call_args.args
    kwargs = http.request.call_args.kwargs
    assert (method, url) == ("GET", "https://proj.supabase.test/rest/v1/notifications")
    assert kwargs["timeout"] == 7
    assert kwargs["params"] == {"select": "*", "is_active": "eq.true", "order": "created_at.desc", "limit": "5"}
    assert kwargs["headers"]["apikey"] == "service-key"
    assert kwargs["headers"]["Authorization"] == "Bearer service-key"


def test_insert_returns_first_row(client, http):
    http.request.return_value = _response(201, [{"id": "n1", "title": "t"}])
    assert client.insert("notifications", {"title": "t"}) == {"id": "n1", "title": "t"}
    kwargs = http.request.call_args.kwargs
    assert kwargs["json"] == [{"title": "t"}]
    assert kwargs["headers"]["Prefer"] == "return=representation"


def test_upsert_sends_conflict_column(client, http):
    http.request.return_value = _response(201, [])
    client.upsert("login_attempts", {"key": "k", "value": {}}, on_conflict="key")
    kwargs = http.request.call_args.kwargs
    assert kwargs["params"] == {"on_conflict": "key"}
    assert "merge-duplicates" in kwargs["headers"]["Prefer"]


@pytest.mark.parametrize("method", ["update", "delete"])
def test_unfiltered_writes_are_refused(client, http, method):
    args = ("admins", {"is_active": False}, {}) if method == "update" else ("admins", {})
    with pytest.raises(ValueError):
        getattr(client, method)(*args)
    http.request.assert_not_called()


def test_upload_returns_public_url(client, http):
    http.request.return_value = _response(200, {"Key": "x"})
    url = client.upload("gallery-images", "1-ab.jpg", b"data", "image/jpeg")
    assert url == "https://proj.supabase.test/storage/v1/object/public/gallery-images/1-ab.jpg"
    method, target = http.request.call_args.args
    assert (method, target) == ("POST", "https://proj.supabase.test/storage/v1/object/gallery-images/1-ab.jpg")
    assert http.request.call_args.kwargs["headers"]["x-upsert"] == "false"


def test_remove_skips_empty_names(client, http):
    client.remove("gallery-images", [None, ""])
    http.request.assert_not_called()
    http.request.return_value = _response(200, [])
    client.remove("gallery-images", ["a.jpg"])
    assert http.request.call_args.kwargs["json"] == {"prefixes": ["a.jpg"]}


def test_transport_error_is_unavailable(client, http):
    http.request.side_effect = requests.ConnectionError("refused")
    with pytest.raises(BackendUnavailable):
        client.select("admins")


def test_server_error_is_unavailable(client, http):
    http.request.return_value = _response(503, {"message": "down"})
    with pytest.raises(BackendUnavailable):
        client.select("admins")


def test_client_error_carries_detail(client, http):
    http.request.return_value = _response(409, {"message": "duplicate key value"})
    with pytest.raises(BackendError) as info:
        client.insert("admins", {"userid": "x"})
    assert info.value.status == 409
    assert info.value.message == "duplicate key value"


def test_client_error_with_text_body(client, http):
    http.request.return_value = _response(400, ValueError("no json"), text="bad request")
    with pytest.raises(BackendError, match="bad request"):
        client.select("admins")


@pytest.mark.parametrize("method, args", [
    ("select", ("admins",)),
    ("insert", ("admins", {"userid": "x"})),
    ("upsert", ("login_attempts", {"key": "k"}, "key")),
    ("update", ("admins", {"is_active": False}, {"id": "1"})),
    ("delete", ("admins", {"id": "1"})),
])
def test_non_json_success_body_is_unavailable(client, http, method, args):
    http.request.return_value = _response(200, ValueError("Expecting value"), text="<html>proxy page</html>")
    with pytest.raises(BackendUnavailable):
        getattr(client, method)(*args)


def test_non_json_body_during_login_is_system_error(client, http):
    http.request.return_value = _response(200, ValueError("Expecting value"), text="<html>proxy page</html>")
    governor = LoginGovernor(LoginPolicy(), MemorySlotStore(), AdminDirectory(client, bcrypt_rounds=4),
                             SessionIssuer("secret"))
    result = governor.submit("alice", "pw")
    assert result.status == STATUS_SYSTEM_ERROR
    assert governor.ledger("alice").load(time.time()).failure_count == 0
