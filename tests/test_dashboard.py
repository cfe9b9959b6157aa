"""
Unit tests for dashboard counters, breakdowns and the patient history view.
"""

import pytest

from medcv.dashboard import compute_breakdown, format_counts, load_dashboard_stats, records_frame
from medcv.errors import FetchError, GatewayError
from medcv.models import (
    DOCTORS, INSTITUTIONS, MEDICAL_RECORDS, PATIENTS, USERS,
    ROLE_DOCTOR, ROLE_INSTITUTION_ADMIN, ROLE_SYSTEM_ADMIN,
    Doctor, Identity, Institution, MedicalRecord, Page, Patient, VisitInfo,
)
from medcv.records import load_patient_history


# ── Helpers / Fakes ──────────────────────────────────────────────────

SYSADMIN = Identity(id="u0", name="Root", email="root@x", role=ROLE_SYSTEM_ADMIN)
INST_ADMIN = Identity(id="u1", name="Ana", email="ana@x", role=ROLE_INSTITUTION_ADMIN,
                      institution_id="INST1")


class FakeGateway:
    def __init__(self, totals=None, error=None, patients=None, records=None):
        self.totals = totals or {}
        self.error = error
        self.patients = patients or {}
        self.records = records or []
        self.calls = []

    def list(self, resource, params=None):
        self.calls.append((resource, params))
        if self.error:
            raise self.error
        return Page(items=[], total=self.totals.get(resource, 0), page=1, limit=1)

    def get(self, resource, key):
        if key not in self.patients:
            raise GatewayError("404 Not Found", status_code=404)
        return self.patients[key]

    def list_patient_records(self, patient_id):
        return Page(items=list(self.records), total=len(self.records))


def visit(rid, date, institution="INST1", patient="PAT-1", kind="consultation"):
    return MedicalRecord(id=rid, patient_id=patient, doctor_id="d1", institution_id=institution,
                         visit_info=VisitInfo(type=kind, date=date))


# ── Tests: counters ──────────────────────────────────────────────────

def test_system_admin_counts_exclude_own_account():
    gw = FakeGateway(totals={INSTITUTIONS: 20, USERS: 5})
    stats = load_dashboard_stats(gw, SYSADMIN)
    assert stats.counts == {INSTITUTIONS: 20, USERS: 4}
    assert stats.error is None
    assert gw.calls[0] == (INSTITUTIONS, {"page": 1, "limit": 1})


def test_institution_admin_counts_are_scoped():
    gw = FakeGateway(totals={PATIENTS: 3, DOCTORS: 2, MEDICAL_RECORDS: 7})
    stats = load_dashboard_stats(gw, INST_ADMIN)
    assert stats.counts == {PATIENTS: 3, DOCTORS: 2, MEDICAL_RECORDS: 7}
    assert (PATIENTS, {"page": 1, "limit": 1, "institutionId": "INST1"}) in gw.calls
    assert (MEDICAL_RECORDS, {"page": 1, "limit": 1, "institutionFilter": "own"}) in gw.calls


def test_counter_failure_zeroes_everything():
    gw = FakeGateway(error=GatewayError("down"))
    stats = load_dashboard_stats(gw, SYSADMIN)
    assert stats.counts == {INSTITUTIONS: 0, USERS: 0}
    assert isinstance(stats.error, FetchError)


def test_doctor_and_anonymous_have_no_counters():
    doctor = Identity(id="u2", name="D", email="d@x", role=ROLE_DOCTOR, institution_id="INST1")
    assert load_dashboard_stats(FakeGateway(), doctor).counts == {}
    assert load_dashboard_stats(FakeGateway(), None).counts == {}
    assert "no statistics" in format_counts(load_dashboard_stats(FakeGateway(), None))


def test_format_counts_renders_table():
    stats = load_dashboard_stats(FakeGateway(totals={INSTITUTIONS: 20, USERS: 5}), SYSADMIN)
    out = format_counts(stats)
    assert "Institutions" in out
    assert "20" in out and "4" in out


# ── Tests: breakdowns ────────────────────────────────────────────────

def test_records_frame_flattens_nested_fields():
    df = records_frame([visit("r1", "2024-01-01")])
    assert "visit_info.type" in df.columns
    assert records_frame([]).empty


def test_compute_breakdown_counts_categories():
    insts = [Institution(id="1", name="A", type="hospital"),
             Institution(id="2", name="B", type="clinic"),
             Institution(id="3", name="C", type="clinic")]
    out = compute_breakdown(INSTITUTIONS, insts)
    assert "clinic" in out and "hospital" in out
    assert "| clinic" in out


def test_compute_breakdown_edge_cases():
    assert "no rows" in compute_breakdown(DOCTORS, [])
    assert "no category" in compute_breakdown(PATIENTS, [Patient(patient_id="P", name="X")])
    out = compute_breakdown(DOCTORS, [Doctor(id="d", name="X")])
    assert "(blank)" in out


# ── Tests: patient history ───────────────────────────────────────────

def test_history_sorted_newest_first_and_scoped():
    patient = Patient(patient_id="PAT-1", name="Jane", institution_ids=["INST1"])
    gw = FakeGateway(
        patients={"PAT-1": patient},
        records=[
            visit("r1", "2023-05-01T00:00:00Z"),
            visit("r2", "2024-02-10T00:00:00Z"),
            visit("r3", "2024-03-01T00:00:00Z", institution="INST2"),
            visit("r4", "2022-01-01T00:00:00Z", patient="PAT-9"),
        ],
    )
    history = load_patient_history(gw, INST_ADMIN, "PAT-1")
    assert history.patient is patient
    assert [r.id for r in history.records] == ["r2", "r1"]


def test_history_refuses_out_of_scope_patient():
    gw = FakeGateway(patients={"PAT-2": Patient(patient_id="PAT-2", name="X",
                                                institution_ids=["INST2"])})
    with pytest.raises(FetchError, match="Access denied"):
        load_patient_history(gw, INST_ADMIN, "PAT-2")


def test_history_wraps_backend_failures():
    with pytest.raises(FetchError, match="Could not load patient PAT-404"):
        load_patient_history(FakeGateway(), INST_ADMIN, "PAT-404")


def test_history_forbidden_for_doctor_role():
    doctor = Identity(id="u2", name="D", email="d@x", role=ROLE_DOCTOR, institution_id="INST1")
    with pytest.raises(FetchError, match="Access denied"):
        load_patient_history(FakeGateway(), doctor, "PAT-1")
