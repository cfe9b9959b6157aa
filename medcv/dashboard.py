"""
Dashboard counters and category breakdowns.

Counters are read from the list endpoints' pagination totals (one row per
request); breakdowns summarise whatever a controller is currently displaying.
"""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd

from medcv.controllers import CATEGORY_FIELDS
from medcv.errors import FetchError, GatewayError
from medcv.models import (
    DOCTORS, INSTITUTIONS, MEDICAL_RECORDS, PATIENTS, USERS,
    ROLE_INSTITUTION_ADMIN, ROLE_SYSTEM_ADMIN,
)
from medcv.rbac import resolve_scope, scope_query_params

DASHBOARD_COUNTERS = {
    ROLE_SYSTEM_ADMIN: (INSTITUTIONS, USERS),
    ROLE_INSTITUTION_ADMIN: (PATIENTS, DOCTORS, MEDICAL_RECORDS),
}


@dataclass
class DashboardStats:
    counts: Dict[str, int] = field(default_factory=dict)
    error: Optional[FetchError] = None


def load_dashboard_stats(gateway, identity) -> DashboardStats:
    """Fetch the role's counters; any failure zeroes all of them."""
    if identity is None:
        return DashboardStats()
    resources = [
        r for r in DASHBOARD_COUNTERS.get(identity.role, ())
        if resolve_scope(identity, r).readable
    ]

    counts = {}
    try:
        for resource in resources:
            params = {"page": 1, "limit": 1, **scope_query_params(resolve_scope(identity, resource))}
            counts[resource] = gateway.list(resource, params).total
    except GatewayError as e:
        return DashboardStats(
            counts={r: 0 for r in resources},
            error=FetchError(f"Could not load dashboard statistics: {e}"),
        )

    if USERS in counts:
        # The signed-in admin's own account is not counted.
        counts[USERS] = max(counts[USERS] - 1, 0)
    return DashboardStats(counts=counts)


def format_counts(stats: DashboardStats) -> str:
    if not stats.counts:
        return "(no statistics for this role)"
    series = pd.Series(stats.counts, name="total")
    series.index = [r.replace("_", " ").title() for r in series.index]
    return series.to_frame().to_markdown()


# ── Breakdowns ───────────────────────────────────────────────────────

def records_frame(records: List[Any]) -> pd.DataFrame:
    """Flatten dataclass records; nested fields become dotted columns."""
    if not records:
        return pd.DataFrame()
    return pd.json_normalize([asdict(r) for r in records])


def compute_breakdown(resource: str, records: List[Any]) -> str:
    """Count records per category value (e.g. visit type) as a markdown table."""
    column = CATEGORY_FIELDS.get(resource)
    if column is None:
        return "(no category breakdown for this screen)"
    df = records_frame(records)
    if df.empty or column not in df.columns:
        return "(no breakdown – no rows)"
    vc = df[column].replace("", "(blank)").value_counts().reset_index()
    vc.columns = [column, "count"]
    return vc.to_markdown(index=False)
