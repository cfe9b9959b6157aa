"""
Role-Based Access Control – resolving per-resource data scopes for an identity.

``resolve_scope`` is a pure function of (identity, resource); it never talks
to the backend. Controllers and the console both read the resulting
ScopePolicy, so role checks live only here.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from medcv.models import (
    DOCTORS, MEDICAL_RECORDS, PATIENTS, RESOURCES,
    ROLE_DOCTOR, ROLE_INSTITUTION_ADMIN, ROLE_SYSTEM_ADMIN,
    Identity,
)

UNRESTRICTED = "unrestricted"
OWN_INSTITUTION = "own_institution"
FORBIDDEN = "forbidden"

DASHBOARD = "dashboard"

INSTITUTION_SCOPED = (PATIENTS, DOCTORS, MEDICAL_RECORDS)


@dataclass(frozen=True)
class ScopePolicy:
    """What one identity may do with one resource type."""
    resource: str
    scope: str                       # UNRESTRICTED, OWN_INSTITUTION or FORBIDDEN
    institution_id: Optional[str]    # set only for OWN_INSTITUTION
    can_write: bool
    notes: str

    @property
    def readable(self) -> bool:
        return self.scope != FORBIDDEN


def _forbidden(resource: str, notes: str) -> ScopePolicy:
    return ScopePolicy(resource, FORBIDDEN, None, False, notes)


def resolve_scope(identity: Optional[Identity], resource: str) -> ScopePolicy:
    """Derive the ScopePolicy for ``resource`` from an Identity."""
    if identity is None:
        return _forbidden(resource, "Not signed in.")

    if identity.role == ROLE_SYSTEM_ADMIN:
        return ScopePolicy(
            resource, UNRESTRICTED, None, True,
            "System admin can access every institution.",
        )

    if identity.role == ROLE_INSTITUTION_ADMIN:
        if resource not in INSTITUTION_SCOPED:
            return _forbidden(resource, "Institutions and users are managed by system admins.")
        if not identity.institution_id:
            return _forbidden(resource, "Institution admin has no institution assigned.")
        return ScopePolicy(
            resource, OWN_INSTITUTION, identity.institution_id, True,
            f"Only records of institution {identity.institution_id}.",
        )

    if identity.role == ROLE_DOCTOR:
        # Narrowest reading: patients of the doctor's own institution, read-only.
        if resource != PATIENTS:
            return _forbidden(resource, "Doctors can only browse patients.")
        if not identity.institution_id:
            return _forbidden(resource, "Doctor has no institution assigned.")
        return ScopePolicy(
            resource, OWN_INSTITUTION, identity.institution_id, False,
            f"Read-only patients of institution {identity.institution_id}.",
        )

    return _forbidden(resource, f"Unknown role: {identity.role}")


def record_institutions(record: Any) -> List[str]:
    """Institution ids a record belongs to (``institution_ids`` or ``institution_id``)."""
    ids = getattr(record, "institution_ids", None)
    if ids is not None:
        return list(ids)
    single = getattr(record, "institution_id", None)
    return [single] if single else []


def in_scope(policy: ScopePolicy, record: Any) -> bool:
    """Scope predicate: may the policy's identity see ``record``?"""
    if policy.scope == UNRESTRICTED:
        return True
    if policy.scope == OWN_INSTITUTION:
        return policy.institution_id in record_institutions(record)
    return False


def scope_query_params(policy: ScopePolicy) -> Dict[str, str]:
    """Server-side scoping hint sent with list requests to avoid over-fetching."""
    if policy.scope != OWN_INSTITUTION:
        return {}
    if policy.resource == PATIENTS:
        return {"institutionId": policy.institution_id}
    if policy.resource == DOCTORS:
        return {"institutionIds": policy.institution_id}
    if policy.resource == MEDICAL_RECORDS:
        return {"institutionFilter": "own"}
    return {}


# ── Screen gating ────────────────────────────────────────────────────

def navigation_for(identity: Optional[Identity]) -> List[str]:
    """Screens the identity may open, in menu order."""
    if identity is None:
        return []
    screens = [r for r in RESOURCES if resolve_scope(identity, r).readable]
    if identity.role in (ROLE_SYSTEM_ADMIN, ROLE_INSTITUTION_ADMIN):
        screens.insert(0, DASHBOARD)
    return screens


def landing_screen(identity: Optional[Identity]) -> Optional[str]:
    screens = navigation_for(identity)
    return screens[0] if screens else None
