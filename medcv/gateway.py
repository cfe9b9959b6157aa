"""
Backend Gateway – a thin requests wrapper around the medical-records REST API.

Every response body follows one envelope: a JSON object with a ``data`` key,
plus ``pagination`` on list endpoints. Anything else is rejected here so
controllers only ever see decoded entities.
"""

from typing import Any, Callable, Dict, Optional, Tuple

import requests

from medcv.config import API_BASE_URL, REQUEST_TIMEOUT
from medcv.errors import GatewayError, MalformedResponseError
from medcv.models import (
    DOCTORS, ENTITY_TYPES, INSTITUTIONS, MEDICAL_RECORDS, PATIENTS, USERS,
    Identity, MedicalRecord, Page,
)

RESOURCE_PATHS = {
    INSTITUTIONS: "/admin/institutions",
    USERS: "/admin/users",
    DOCTORS: "/doctors",
    PATIENTS: "/patients",
    MEDICAL_RECORDS: "/medical-records",
}


def unwrap(body: Any) -> Any:
    """Return the ``data`` member of a response envelope."""
    if not isinstance(body, dict) or "data" not in body:
        raise MalformedResponseError("Response is missing the 'data' envelope.")
    return body["data"]


def unwrap_page(body: Any, decode: Callable[[Dict[str, Any]], Any]) -> Page:
    """Decode a list envelope into a Page; ``totalItems`` falls back to len(data)."""
    items = unwrap(body)
    if not isinstance(items, list):
        raise MalformedResponseError("List response 'data' is not an array.")
    pagination = body.get("pagination") or {}
    if not isinstance(pagination, dict):
        raise MalformedResponseError("Response 'pagination' is not an object.")
    total = pagination.get("totalItems")
    if not all(isinstance(item, dict) for item in items):
        raise MalformedResponseError("List response holds a non-object entry.")
    return Page(
        items=[decode(item) for item in items],
        total=int(total) if total is not None else len(items),
        page=pagination.get("page"),
        limit=pagination.get("limit"),
    )


class BackendGateway:
    """Authenticated JSON client; ``token_provider`` supplies the bearer token."""

    def __init__(
        self,
        base_url: str = API_BASE_URL,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        timeout: float = REQUEST_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token_provider = token_provider or (lambda: None)
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({"Accept": "application/json"})

    # ── HTTP plumbing ────────────────────────────────────────────────

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self.token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, params=None, body=None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        try:
            resp = self._session.request(
                method, url, params=params, json=body,
                headers=self._headers(), timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise GatewayError(f"Request failed: {e}") from e

        if not resp.ok:
            raise GatewayError(
                f"Request failed: {resp.status_code} {resp.reason}",
                status_code=resp.status_code,
            )
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise MalformedResponseError("Response body is not JSON.") from e

    @staticmethod
    def _path(resource: str) -> str:
        if resource not in RESOURCE_PATHS:
            raise ValueError(f"Unknown resource: {resource}")
        return RESOURCE_PATHS[resource]

    # ── Authentication ───────────────────────────────────────────────

    def login(self, email: str, password: str) -> Tuple[str, Identity]:
        body = self._request("POST", "/auth/sign-in", body={"email": email, "password": password})
        data = unwrap(body)
        if not isinstance(data, dict):
            raise MalformedResponseError("Login response 'data' is not an object.")
        token, user = data.get("token"), data.get("user")
        if not token or not isinstance(user, dict):
            raise MalformedResponseError("Login response lacks a token or user.")
        return str(token), Identity.from_dict(user)

    def logout(self) -> None:
        self._request("POST", "/auth/sign-out")

    # ── Resources ────────────────────────────────────────────────────

    def list(self, resource: str, params: Optional[Dict[str, Any]] = None) -> Page:
        body = self._request("GET", self._path(resource), params=params or None)
        return unwrap_page(body, ENTITY_TYPES[resource].from_dict)

    @staticmethod
    def _decode(resource: str, body: Any):
        data = unwrap(body)
        if not isinstance(data, dict):
            raise MalformedResponseError("Response 'data' is not an object.")
        return ENTITY_TYPES[resource].from_dict(data)

    def get(self, resource: str, key: str):
        return self._decode(resource, self._request("GET", f"{self._path(resource)}/{key}"))

    def create(self, resource: str, payload: Dict[str, Any]):
        return self._decode(resource, self._request("POST", self._path(resource), body=payload))

    def update(self, resource: str, key: str, payload: Dict[str, Any]):
        body = self._request("PUT", f"{self._path(resource)}/{key}", body=payload)
        return self._decode(resource, body)

    def delete(self, resource: str, key: str) -> None:
        self._request("DELETE", f"{self._path(resource)}/{key}")

    def list_patient_records(self, patient_id: str) -> Page:
        body = self._request("GET", f"{RESOURCE_PATHS[MEDICAL_RECORDS]}/patient/{patient_id}")
        return unwrap_page(body, MedicalRecord.from_dict)
