"""
Per-patient medical history: one patient plus their in-scope visits, newest first.
"""

from dataclasses import dataclass, field
from typing import List

from medcv.errors import FetchError, GatewayError
from medcv.models import MEDICAL_RECORDS, PATIENTS, MedicalRecord, Patient
from medcv.rbac import in_scope, resolve_scope


@dataclass
class PatientHistory:
    patient: Patient
    records: List[MedicalRecord] = field(default_factory=list)


def load_patient_history(gateway, identity, patient_id: str) -> PatientHistory:
    """Fetch a patient and their visits; raises FetchError if unreachable or out of scope."""
    patient_policy = resolve_scope(identity, PATIENTS)
    record_policy = resolve_scope(identity, MEDICAL_RECORDS)
    if not (patient_policy.readable and record_policy.readable):
        raise FetchError("Access denied")

    try:
        patient = gateway.get(PATIENTS, patient_id)
    except GatewayError as e:
        raise FetchError(f"Could not load patient {patient_id}: {e}") from e
    if not in_scope(patient_policy, patient):
        raise FetchError("Access denied")

    try:
        page = gateway.list_patient_records(patient_id)
    except GatewayError as e:
        raise FetchError(f"Could not load records of patient {patient_id}: {e}") from e

    records = [
        r for r in page.items
        if r.patient_id == patient_id and in_scope(record_policy, r)
    ]
    records.sort(key=lambda r: r.visit_info.date, reverse=True)
    return PatientHistory(patient=patient, records=records)
