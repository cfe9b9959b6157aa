"""
Domain dataclasses used across the application, plus the wire codec.

The backend speaks camelCase JSON with Mongo-style ``_id`` keys and sometimes
returns references "populated" (an embedded object instead of an id string).
``from_dict`` accepts both; ``to_payload`` produces the camelCase body sent on
create and update.
"""

from dataclasses import asdict, dataclass, field
from datetime import date
from typing import Any, Dict, List, Optional

# ── Roles ────────────────────────────────────────────────────────────
ROLE_SYSTEM_ADMIN = "system_admin"
ROLE_INSTITUTION_ADMIN = "institution_admin"
ROLE_DOCTOR = "doctor"
ROLES = {ROLE_SYSTEM_ADMIN, ROLE_INSTITUTION_ADMIN, ROLE_DOCTOR}

# Role names as the backend stores them.
ROLE_ALIASES = {
    "admin": ROLE_SYSTEM_ADMIN,
    "admin_institutions": ROLE_INSTITUTION_ADMIN,
}
WIRE_ROLES = {role: wire for wire, role in ROLE_ALIASES.items()}

# ── Resources (navigation order) ─────────────────────────────────────
INSTITUTIONS = "institutions"
USERS = "users"
PATIENTS = "patients"
DOCTORS = "doctors"
MEDICAL_RECORDS = "medical_records"
RESOURCES = (INSTITUTIONS, USERS, PATIENTS, DOCTORS, MEDICAL_RECORDS)

INSTITUTION_TYPES = ("hospital", "clinic")
VISIT_TYPES = (
    "consultation", "emergency", "follow-up", "surgery", "lab-test", "immunization",
)


def normalize_role(raw: Any) -> str:
    """Map a backend role string onto one of ROLES (unknown roles pass through)."""
    role = str(raw or "").strip().lower()
    return ROLE_ALIASES.get(role, role)


def wire_role(raw: Any) -> str:
    """Inverse of normalize_role: the name the backend expects on create/update."""
    role = normalize_role(raw)
    return WIRE_ROLES.get(role, role)


# ── Codec helpers ────────────────────────────────────────────────────

def _ref_id(value: Any) -> Optional[str]:
    """Return the id of a reference that may be an id string or a populated object."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        ref = value.get("_id", value.get("id"))
        return str(ref) if ref is not None else None
    return str(value)


def _ref_ids(values: Any) -> List[str]:
    if not values:
        return []
    if not isinstance(values, list):
        values = [values]
    return [ref for ref in (_ref_id(v) for v in values) if ref is not None]


def _entity_id(data: Dict[str, Any]) -> Optional[str]:
    return _ref_id(data.get("_id", data.get("id")))


def _text(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    return "" if value is None else str(value)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _camelize(value: Any) -> Any:
    if isinstance(value, dict):
        return {_camel(k): _camelize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_camelize(v) for v in value]
    return value


# ── Identity ─────────────────────────────────────────────────────────

@dataclass
class Identity:
    """The authenticated operator, held for the lifetime of a session."""
    id: str
    name: str
    email: str
    role: str                              # one of ROLES
    institution_id: Optional[str] = None   # affiliation for institution_admin / doctor

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Identity":
        return cls(
            id=_entity_id(data) or "",
            name=_text(data, "name"),
            email=_text(data, "email"),
            role=normalize_role(data.get("role")),
            institution_id=_ref_id(data.get("institutionId")),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "institutionId": self.institution_id,
        }


# ── Institutions ─────────────────────────────────────────────────────

@dataclass
class Contact:
    phone: str = ""
    email: str = ""
    address: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Contact":
        data = data or {}
        return cls(phone=_text(data, "phone"), email=_text(data, "email"),
                   address=_text(data, "address"))


@dataclass
class Institution:
    id: Optional[str]
    name: str
    type: str                              # "hospital" or "clinic"
    contact: Contact = field(default_factory=Contact)
    services: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Institution":
        return cls(
            id=_entity_id(data),
            name=_text(data, "name"),
            type=_text(data, "type"),
            contact=Contact.from_dict(data.get("contact")),
            services=[str(s) for s in data.get("services") or []],
        )


def parse_services(text: str) -> List[str]:
    """Split a comma-separated services field, dropping blanks."""
    return [s.strip() for s in (text or "").split(",") if s.strip()]


# ── Doctors ──────────────────────────────────────────────────────────

@dataclass
class Doctor:
    id: Optional[str]
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    specialization: str = ""
    license_number: str = ""
    date_of_birth: str = ""
    institution_ids: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Doctor":
        return cls(
            id=_entity_id(data),
            name=_text(data, "name"),
            email=_text(data, "email"),
            phone=_text(data, "phone"),
            address=_text(data, "address"),
            specialization=_text(data, "specialization"),
            license_number=_text(data, "licenseNumber"),
            date_of_birth=_text(data, "dateOfBirth"),
            institution_ids=_ref_ids(data.get("institutionIds")),
        )


# ── Patients ─────────────────────────────────────────────────────────

@dataclass
class EmergencyContact:
    name: str = ""
    phone: str = ""
    relationship: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "EmergencyContact":
        data = data or {}
        return cls(name=_text(data, "name"), phone=_text(data, "phone"),
                   relationship=_text(data, "relationship"))


@dataclass
class InsuranceInfo:
    provider: str = ""
    type: str = ""
    policy_number: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "InsuranceInfo":
        data = data or {}
        return cls(provider=_text(data, "provider"), type=_text(data, "type"),
                   policy_number=_text(data, "policyNumber"))


@dataclass
class Patient:
    """A patient, keyed by the human-readable ``patient_id`` rather than ``id``."""
    patient_id: str
    name: str
    date_of_birth: str = ""
    gender: str = ""
    blood_type: str = ""
    contact: Contact = field(default_factory=Contact)
    emergency_contact: EmergencyContact = field(default_factory=EmergencyContact)
    allergies: Optional[str] = None
    insurance_info: InsuranceInfo = field(default_factory=InsuranceInfo)
    is_pregnant: bool = False
    institution_ids: List[str] = field(default_factory=list)
    id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Patient":
        return cls(
            patient_id=_text(data, "patientId"),
            name=_text(data, "name"),
            date_of_birth=_text(data, "dateOfBirth"),
            gender=_text(data, "gender"),
            blood_type=_text(data, "bloodType"),
            contact=Contact.from_dict(data.get("contact")),
            emergency_contact=EmergencyContact.from_dict(data.get("emergencyContact")),
            allergies=data.get("allergies"),
            insurance_info=InsuranceInfo.from_dict(data.get("insuranceInfo")),
            is_pregnant=bool(data.get("isPregnant", False)),
            institution_ids=_ref_ids(data.get("institutionIds")),
            id=_entity_id(data),
        )


def patient_age(date_of_birth: str, today: Optional[date] = None) -> Optional[int]:
    """Whole years between ``date_of_birth`` (ISO date or timestamp) and today.

    None when the date is missing or not ISO formatted.
    """
    if not date_of_birth:
        return None
    try:
        born = date.fromisoformat(date_of_birth[:10])
    except ValueError:
        return None
    today = today or date.today()
    age = today.year - born.year
    if (today.month, today.day) < (born.month, born.day):
        age -= 1
    return age


# ── Medical records ──────────────────────────────────────────────────

@dataclass
class VisitInfo:
    type: str = ""                         # one of VISIT_TYPES
    date: str = ""
    is_emergency: bool = False


@dataclass
class ClinicalData:
    symptoms: str = ""
    diagnosis: str = ""
    treatment: str = ""
    notes: str = ""


@dataclass
class Prescription:
    medication_name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: str = ""
    instructions: str = ""


@dataclass
class LabResult:
    test_name: str = ""
    result: str = ""
    reference_range: str = ""
    status: str = ""


@dataclass
class Attachment:
    file_name: str = ""
    description: str = ""
    url: str = ""


@dataclass
class MedicalRecord:
    id: Optional[str]
    patient_id: str
    doctor_id: Optional[str]
    institution_id: Optional[str]
    visit_info: VisitInfo = field(default_factory=VisitInfo)
    clinical_data: ClinicalData = field(default_factory=ClinicalData)
    prescriptions: List[Prescription] = field(default_factory=list)
    lab_results: List[LabResult] = field(default_factory=list)
    attachments: List[Attachment] = field(default_factory=list)
    # Filled from populated references; never sent back.
    patient_name: str = ""
    doctor_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MedicalRecord":
        patient = data.get("patientId")
        patient_name = _text(data.get("patient") or {}, "name")
        if isinstance(patient, dict):
            patient_name = patient_name or _text(patient, "name")
            patient = patient.get("patientId", _ref_id(patient))
        doctor = data.get("doctorId")
        doctor_name = _text(data.get("doctor") or {}, "name")
        if isinstance(doctor, dict):
            doctor_name = doctor_name or _text(doctor, "name")

        visit = data.get("visitInfo") or {}
        clinical = data.get("clinicalData") or {}
        return cls(
            id=_entity_id(data),
            patient_id="" if patient is None else str(patient),
            doctor_id=_ref_id(doctor),
            institution_id=_ref_id(data.get("institutionId")),
            visit_info=VisitInfo(
                type=_text(visit, "type"),
                date=_text(visit, "date"),
                is_emergency=bool(visit.get("isEmergency", False)),
            ),
            clinical_data=ClinicalData(
                symptoms=_text(clinical, "symptoms"),
                diagnosis=_text(clinical, "diagnosis"),
                treatment=_text(clinical, "treatment"),
                notes=_text(clinical, "notes"),
            ),
            prescriptions=[
                Prescription(
                    medication_name=_text(p, "medicationName"),
                    dosage=_text(p, "dosage"),
                    frequency=_text(p, "frequency"),
                    duration=_text(p, "duration"),
                    instructions=_text(p, "instructions"),
                )
                for p in data.get("prescriptions") or []
            ],
            lab_results=[
                LabResult(
                    test_name=_text(r, "testName"),
                    result=_text(r, "result"),
                    reference_range=_text(r, "referenceRange"),
                    status=_text(r, "status"),
                )
                for r in data.get("labResults") or []
            ],
            attachments=[
                Attachment(
                    file_name=_text(a, "fileName"),
                    description=_text(a, "description"),
                    url=_text(a, "url"),
                )
                for a in data.get("attachments") or []
            ],
            patient_name=patient_name,
            doctor_name=doctor_name,
        )


# ── Administrative users ─────────────────────────────────────────────

@dataclass
class User:
    id: Optional[str]
    name: str
    email: str
    role: str
    institution_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=_entity_id(data),
            name=_text(data, "name"),
            email=_text(data, "email"),
            role=normalize_role(data.get("role")),
            institution_id=_ref_id(data.get("institutionId")),
        )


# ── Listing envelope ─────────────────────────────────────────────────

@dataclass
class Page:
    """One list response: the decoded records plus the server's total."""
    items: List[Any]
    total: int
    page: Optional[int] = None
    limit: Optional[int] = None


ENTITY_TYPES = {
    INSTITUTIONS: Institution,
    USERS: User,
    PATIENTS: Patient,
    DOCTORS: Doctor,
    MEDICAL_RECORDS: MedicalRecord,
}

_DERIVED_FIELDS = {"id", "patient_name", "doctor_name"}


def record_key(resource: str, record: Any) -> Optional[str]:
    """Key a record is addressed by on the backend."""
    if resource == PATIENTS:
        return record.patient_id
    return record.id


def to_payload(record: Any) -> Dict[str, Any]:
    """Serialize an entity into a camelCase request body (ids left out)."""
    data = {k: v for k, v in asdict(record).items() if k not in _DERIVED_FIELDS}
    return _camelize(data)


def display_name(record: Any) -> str:
    """Human-facing label, e.g. the target shown by the delete confirmation."""
    if isinstance(record, MedicalRecord):
        who = record.patient_name or record.patient_id
        return f"{who} - {record.visit_info.type} {record.visit_info.date[:10]}".strip()
    return getattr(record, "name", "") or str(record.id)
