"""
Resource List Controllers – one per resource type.

A controller owns the base collection fetched for its resource, derives the
displayed collection from the scope predicate and the live filter criteria,
and mediates create / update / delete. Backend failures never escape: they
come back as an OperationResult and are posted once to ``notice``.
"""

from dataclasses import dataclass, is_dataclass
from typing import Any, Dict, List, Optional

from medcv.config import ALL_CATEGORIES
from medcv.confirm import ConfirmationGate
from medcv.errors import FetchError, GatewayError, MedcvError, MutationError
from medcv.models import (
    DOCTORS, INSTITUTIONS, MEDICAL_RECORDS, PATIENTS, RESOURCES, USERS,
    ROLE_SYSTEM_ADMIN,
    Identity, display_name, record_key, to_payload, wire_role,
)
from medcv.rbac import OWN_INSTITUTION, in_scope, resolve_scope, scope_query_params

# Fields matched by the free-text search box (dotted paths into the dataclass).
SEARCH_FIELDS = {
    INSTITUTIONS: ("name", "contact.address", "contact.email"),
    DOCTORS: ("name", "email", "license_number", "specialization"),
    PATIENTS: ("name", "patient_id", "contact.email"),
    MEDICAL_RECORDS: ("patient_id", "patient_name", "doctor_name", "clinical_data.diagnosis"),
    USERS: ("name", "email"),
}

# Field behind each screen's category select, if it has one.
CATEGORY_FIELDS = {
    INSTITUTIONS: "type",
    DOCTORS: "specialization",
    MEDICAL_RECORDS: "visit_info.type",
    USERS: "role",
}


@dataclass
class FilterCriteria:
    search: str = ""
    category: Optional[str] = None   # None or "all" matches everything


@dataclass
class OperationResult:
    ok: bool
    record: Any = None
    error: Optional[MedcvError] = None
    stale: bool = False              # a newer load had already been applied


def field_value(record: Any, dotted: str) -> str:
    value = record
    for part in dotted.split("."):
        value = getattr(value, part, None)
        if value is None:
            return ""
    return str(value)


def matches_search(resource: str, record: Any, term: str) -> bool:
    """Case-insensitive substring match over the resource's search fields."""
    needle = (term or "").lower()
    if not needle:
        return True
    return any(needle in field_value(record, f).lower() for f in SEARCH_FIELDS[resource])


def matches_category(resource: str, record: Any, category: Optional[str]) -> bool:
    if category in (None, "", ALL_CATEGORIES):
        return True
    column = CATEGORY_FIELDS.get(resource)
    if column is None:
        return True
    return field_value(record, column) == category


class ResourceListController:
    """Base and displayed collections plus CRUD mediation for one resource type."""

    def __init__(self, resource: str, gateway, identity: Optional[Identity] = None):
        if resource not in RESOURCES:
            raise ValueError(f"Unknown resource: {resource}")
        self.resource = resource
        self.gateway = gateway
        self.criteria = FilterCriteria()
        self._load_tickets = 0
        self._applied_ticket = 0
        self.set_identity(identity)

    # ── Session ──────────────────────────────────────────────────────

    def set_identity(self, identity: Optional[Identity]) -> None:
        """Swap the injected identity; drops data fetched under the previous one."""
        self.identity = identity
        self.policy = resolve_scope(identity, self.resource)
        self.base: List[Any] = []
        self.displayed: List[Any] = []
        self.notice: Optional[str] = None
        # Loads still in flight for the old identity must not land.
        self._applied_ticket = self._load_tickets

    # ── Helpers ──────────────────────────────────────────────────────

    @property
    def noun(self) -> str:
        return self.resource.replace("_", " ").rstrip("s")

    def _fail(self, error: MedcvError) -> OperationResult:
        self.notice = str(error)
        return OperationResult(ok=False, error=error)

    def dismiss_notice(self) -> None:
        self.notice = None

    def _set_base(self, records: List[Any]) -> None:
        self.base = records
        self.apply_filter()

    def find(self, key: str) -> Optional[Any]:
        for record in self.base:
            if record_key(self.resource, record) == key:
                return record
        return None

    def _shape_payload(self, payload: Any, creating: bool) -> Dict[str, Any]:
        body = to_payload(payload) if is_dataclass(payload) else dict(payload)
        body.pop("_id", None)
        body.pop("id", None)
        if self.resource == PATIENTS:
            body.pop("patientId", None)
        if self.identity is None or self.identity.role != ROLE_SYSTEM_ADMIN:
            body.pop("role", None)
        elif body.get("role"):
            body["role"] = wire_role(body["role"])
        if not body.get("password"):
            # Blank on edit means "keep the current password".
            body.pop("password", None)

        if self.policy.scope == OWN_INSTITUTION:
            field_name = "institutionId" if self.resource == MEDICAL_RECORDS else "institutionIds"
            if creating:
                inst = self.policy.institution_id
                body[field_name] = inst if self.resource == MEDICAL_RECORDS else [inst]
            else:
                body.pop(field_name, None)
        return body

    def _protected_account(self, record: Any) -> bool:
        return self.resource == USERS and getattr(record, "role", None) == ROLE_SYSTEM_ADMIN

    # ── Read ─────────────────────────────────────────────────────────

    def load(self) -> OperationResult:
        """Fetch the collection, scoped server-side and re-checked here."""
        if not self.policy.readable:
            self._set_base([])
            return self._fail(FetchError("Access denied"))

        self._load_tickets += 1
        ticket = self._load_tickets
        try:
            page = self.gateway.list(self.resource, scope_query_params(self.policy))
        except GatewayError as e:
            if ticket <= self._applied_ticket:
                return OperationResult(ok=False, stale=True)
            self._applied_ticket = ticket
            self._set_base([])
            return self._fail(FetchError(f"Could not load {self.resource.replace('_', ' ')}: {e}"))

        if ticket <= self._applied_ticket:
            return OperationResult(ok=True, stale=True)
        self._applied_ticket = ticket
        self._set_base([r for r in page.items if in_scope(self.policy, r)])
        return OperationResult(ok=True)

    def fetch_one(self, key: str) -> OperationResult:
        """Refresh a single record from the backend (the view screen)."""
        if not self.policy.readable:
            return self._fail(FetchError("Access denied"))
        try:
            record = self.gateway.get(self.resource, key)
        except GatewayError as e:
            return self._fail(FetchError(f"Could not load {self.noun} {key}: {e}"))
        if not in_scope(self.policy, record):
            return self._fail(FetchError("Access denied"))
        if self.find(key) is not None:
            self._set_base([record if record_key(self.resource, r) == key else r for r in self.base])
        return OperationResult(ok=True, record=record)

    def apply_filter(self, criteria: Optional[FilterCriteria] = None) -> List[Any]:
        """Recompute the displayed collection; pure with respect to ``base``."""
        if criteria is not None:
            self.criteria = criteria
        c = self.criteria
        self.displayed = [
            r for r in self.base
            if in_scope(self.policy, r)
            and matches_search(self.resource, r, c.search)
            and matches_category(self.resource, r, c.category)
        ]
        return list(self.displayed)

    # ── Write ────────────────────────────────────────────────────────

    def create(self, payload: Any) -> OperationResult:
        if not self.policy.can_write:
            return self._fail(MutationError("Access denied"))
        body = self._shape_payload(payload, creating=True)
        try:
            record = self.gateway.create(self.resource, body)
        except GatewayError as e:
            return self._fail(MutationError(f"Could not create {self.noun}: {e}"))
        if in_scope(self.policy, record):
            self._set_base(self.base + [record])
        return OperationResult(ok=True, record=record)

    def update(self, key: str, payload: Any) -> OperationResult:
        if not self.policy.can_write:
            return self._fail(MutationError("Access denied"))
        current = self.find(key)
        if current is None:
            return self._fail(MutationError(f"No {self.noun} {key} in the current list."))
        if self._protected_account(current):
            return self._fail(MutationError("System admin accounts cannot be edited here."))

        body = self._shape_payload(payload, creating=False)
        try:
            record = self.gateway.update(self.resource, key, body)
        except GatewayError as e:
            return self._fail(MutationError(f"Could not update {self.noun} {key}: {e}"))

        replaced = [record if record_key(self.resource, r) == key else r for r in self.base]
        self._set_base([r for r in replaced if in_scope(self.policy, r)])
        return OperationResult(ok=True, record=record)

    def request_delete(self, key: str, gate: Optional[ConfirmationGate] = None) -> Optional[ConfirmationGate]:
        """Open a confirmation gate for deleting ``key``; the delete runs on gate.submit().

        Returns None (and posts a notice) when the record cannot be deleted.
        """
        if not self.policy.can_write:
            self._fail(MutationError("Access denied"))
            return None
        record = self.find(key)
        if record is None:
            self._fail(MutationError(f"No {self.noun} {key} in the current list."))
            return None
        if self._protected_account(record):
            self._fail(MutationError("System admin accounts cannot be deleted here."))
            return None

        gate = gate or ConfirmationGate()
        return gate.open(display_name(record), lambda: self._delete(key))

    def _delete(self, key: str) -> OperationResult:
        try:
            self.gateway.delete(self.resource, key)
        except GatewayError as e:
            return self._fail(MutationError(f"Could not delete {self.noun} {key}: {e}"))
        self._set_base([r for r in self.base if record_key(self.resource, r) != key])
        return OperationResult(ok=True)


class ControllerSet:
    """One controller per resource, re-scoped on every session change."""

    def __init__(self, session, gateway):
        self.controllers = {
            resource: ResourceListController(resource, gateway, session.identity)
            for resource in RESOURCES
        }
        session.subscribe(self._on_session_change)

    def __getitem__(self, resource: str) -> ResourceListController:
        return self.controllers[resource]

    def _on_session_change(self, identity: Optional[Identity]) -> None:
        for controller in self.controllers.values():
            controller.set_identity(identity)
