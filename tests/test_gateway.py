"""
Unit tests for the Backend Gateway – envelope decoding, auth header, errors.
"""

import json

import pytest
import requests

from medcv.errors import GatewayError, MalformedResponseError
from medcv.gateway import BackendGateway, unwrap, unwrap_page
from medcv.models import DOCTORS, INSTITUTIONS, PATIENTS, Doctor, Patient


# ── Helpers / Fakes ──────────────────────────────────────────────────

class FakeResponse:
    """Mimic the parts of requests.Response the gateway reads."""
    def __init__(self, status_code=200, body=None, raw=None):
        self.status_code = status_code
        self.reason = "OK" if status_code < 400 else "Error"
        if raw is not None:
            self.content = raw.encode()
        else:
            self.content = b"" if body is None else json.dumps(body).encode()

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return json.loads(self.content)


class FakeSession:
    """Record every request and answer from a queue."""
    def __init__(self, *responses):
        self.headers = {}
        self.calls = []
        self._responses = list(responses)

    def request(self, method, url, params=None, json=None, headers=None, timeout=None):
        self.calls.append({"method": method, "url": url, "params": params,
                           "json": json, "headers": headers, "timeout": timeout})
        resp = self._responses.pop(0)
        if isinstance(resp, Exception):
            raise resp
        return resp


def gateway_with(*responses, token=None):
    session = FakeSession(*responses)
    gw = BackendGateway(base_url="http://api.test/v1/", token_provider=lambda: token,
                        timeout=3, session=session)
    return gw, session


# ── Tests: envelope ──────────────────────────────────────────────────

def test_unwrap_requires_data_key():
    assert unwrap({"data": [1]}) == [1]
    with pytest.raises(MalformedResponseError):
        unwrap({"patients": []})
    with pytest.raises(MalformedResponseError):
        unwrap([{"_id": "x"}])


def test_unwrap_page_uses_total_items_or_length():
    page = unwrap_page({"data": [{"_id": "d1", "name": "A"}],
                        "pagination": {"totalItems": 42, "page": 1, "limit": 1}},
                       Doctor.from_dict)
    assert page.total == 42
    assert page.items[0].id == "d1"

    page = unwrap_page({"data": [{"_id": "a", "name": "A"}, {"_id": "b", "name": "B"}]},
                       Doctor.from_dict)
    assert page.total == 2


def test_unwrap_page_rejects_non_list_data():
    with pytest.raises(MalformedResponseError):
        unwrap_page({"data": {"items": []}}, Doctor.from_dict)


# ── Tests: requests ──────────────────────────────────────────────────

def test_list_sends_params_and_bearer_token():
    gw, session = gateway_with(
        FakeResponse(body={"data": [{"patientId": "P1", "name": "Jane"}]}),
        token="tok-123",
    )
    page = gw.list(PATIENTS, {"institutionId": "INST1"})

    call = session.calls[0]
    assert call["method"] == "GET"
    assert call["url"] == "http://api.test/v1/patients"
    assert call["params"] == {"institutionId": "INST1"}
    assert call["headers"]["Authorization"] == "Bearer tok-123"
    assert call["timeout"] == 3
    assert isinstance(page.items[0], Patient)


def test_missing_token_sends_no_authorization_header():
    gw, session = gateway_with(FakeResponse(body={"data": []}))
    gw.list(INSTITUTIONS)
    assert "Authorization" not in session.calls[0]["headers"]
    assert session.calls[0]["url"].endswith("/admin/institutions")


def test_create_update_delete_paths():
    gw, session = gateway_with(
        FakeResponse(201, {"data": {"_id": "d9", "name": "New"}}),
        FakeResponse(200, {"data": {"_id": "d9", "name": "Renamed"}}),
        FakeResponse(204),
    )
    created = gw.create(DOCTORS, {"name": "New"})
    updated = gw.update(DOCTORS, "d9", {"name": "Renamed"})
    assert gw.delete(DOCTORS, "d9") is None

    assert created.id == "d9"
    assert updated.name == "Renamed"
    assert [(c["method"], c["url"]) for c in session.calls] == [
        ("POST", "http://api.test/v1/doctors"),
        ("PUT", "http://api.test/v1/doctors/d9"),
        ("DELETE", "http://api.test/v1/doctors/d9"),
    ]
    assert session.calls[0]["json"] == {"name": "New"}


def test_patient_records_endpoint():
    gw, session = gateway_with(FakeResponse(body={"data": [
        {"_id": "r1", "patientId": "P1", "institutionId": "I"},
    ]}))
    page = gw.list_patient_records("P1")
    assert session.calls[0]["url"] == "http://api.test/v1/medical-records/patient/P1"
    assert page.items[0].id == "r1"


def test_http_error_carries_status_code():
    gw, _ = gateway_with(FakeResponse(403, {"message": "forbidden"}))
    with pytest.raises(GatewayError) as e:
        gw.list(PATIENTS)
    assert e.value.status_code == 403


def test_transport_failure_is_wrapped():
    gw, _ = gateway_with(requests.ConnectionError("refused"))
    with pytest.raises(GatewayError) as e:
        gw.get(DOCTORS, "d1")
    assert e.value.status_code is None
    assert "refused" in str(e.value)


def test_non_json_body_is_malformed():
    gw, _ = gateway_with(FakeResponse(200, raw="<html>oops</html>"))
    with pytest.raises(MalformedResponseError):
        gw.get(DOCTORS, "d1")


def test_unknown_resource_rejected():
    gw, _ = gateway_with()
    with pytest.raises(ValueError, match="Unknown resource"):
        gw.list("appointments")


# ── Tests: login ─────────────────────────────────────────────────────

def test_login_returns_token_and_identity():
    gw, session = gateway_with(FakeResponse(body={"data": {
        "token": "jwt", "user": {"_id": "u1", "name": "Root", "email": "r@x", "role": "admin"},
    }}))
    token, identity = gw.login("r@x", "pw")
    assert token == "jwt"
    assert identity.role == "system_admin"
    assert session.calls[0]["url"].endswith("/auth/sign-in")
    assert session.calls[0]["json"] == {"email": "r@x", "password": "pw"}


def test_login_without_token_is_malformed():
    gw, _ = gateway_with(FakeResponse(body={"data": {"user": {"_id": "u1"}}}))
    with pytest.raises(MalformedResponseError):
        gw.login("r@x", "pw")
