"""
Interactive console for the Medical CV admin backend.
Browse and manage institutions, doctors, patients, medical records and users
within the signed-in role's scope.
"""

import shlex
import sys
from dataclasses import dataclass
from getpass import getpass
from typing import Any, Dict, List

import pandas as pd

from medcv.config import API_BASE_URL, MAX_PREVIEW_ROWS
from medcv.confirm import ConfirmationGate
from medcv.controllers import CATEGORY_FIELDS, ControllerSet, FilterCriteria
from medcv.dashboard import compute_breakdown, format_counts, load_dashboard_stats, records_frame
from medcv.errors import AuthError, FetchError
from medcv.gateway import BackendGateway
from medcv.models import (
    DOCTORS, INSTITUTIONS, MEDICAL_RECORDS, PATIENTS, RESOURCES, USERS,
    display_name, parse_services, patient_age, to_payload,
)
from medcv.rbac import DASHBOARD, OWN_INSTITUTION, landing_screen, navigation_for
from medcv.records import load_patient_history
from medcv.session import SessionProvider, SessionStore

# Columns shown by `list`, as produced by records_frame().
LIST_COLUMNS = {
    INSTITUTIONS: ["id", "name", "type", "contact.phone", "contact.email"],
    DOCTORS: ["id", "name", "specialization", "license_number", "email"],
    PATIENTS: ["patient_id", "name", "gender", "blood_type", "contact.phone"],
    MEDICAL_RECORDS: ["id", "patient_id", "visit_info.type", "visit_info.date", "clinical_data.diagnosis"],
    USERS: ["id", "name", "email", "role", "institution_id"],
}

# Create / edit forms: dotted camelCase wire keys.
FORM_FIELDS = {
    INSTITUTIONS: ["name", "type", "contact.phone", "contact.email", "contact.address", "services"],
    DOCTORS: ["name", "email", "phone", "address", "specialization", "licenseNumber", "dateOfBirth"],
    PATIENTS: [
        "name", "dateOfBirth", "gender", "bloodType",
        "contact.phone", "contact.email", "contact.address",
        "emergencyContact.name", "emergencyContact.phone", "emergencyContact.relationship",
        "allergies", "isPregnant",
        "insuranceInfo.provider", "insuranceInfo.type", "insuranceInfo.policyNumber",
    ],
    MEDICAL_RECORDS: [
        "patientId", "doctorId", "visitInfo.type", "visitInfo.date", "visitInfo.isEmergency",
        "clinicalData.symptoms", "clinicalData.diagnosis",
        "clinicalData.treatment", "clinicalData.notes",
    ],
    USERS: ["name", "email", "password", "role"],
}

BOOLEAN_FIELDS = {"isPregnant", "visitInfo.isEmergency"}

# Institution pickers, offered only when the scope is not pinned to one institution.
INSTITUTION_FIELDS = {
    DOCTORS: "institutionIds",
    PATIENTS: "institutionIds",
    MEDICAL_RECORDS: "institutionId",
    USERS: "institutionId",
}

HELP = """\
Commands:
  menu                          screens available to your role
  dashboard                     counters for your role
  list <screen> [search...]     list records, optionally filtered by text
  filter <screen> <value|all>   category filter (type, specialization, visit type, role)
  stats <screen>                breakdown of the displayed list by category
  show <screen> <key>           one record in full
  history <patientId>           a patient's visits, newest first
  create <screen>               add a record
  edit <screen> <key>           change a record
  delete <screen> <key>         delete a record (asks you to type 'confirm')
  whoami | logout | help | quit
Screens: institutions, users, patients, doctors, medical_records"""


@dataclass
class Console:
    session: SessionProvider
    gateway: BackendGateway
    controllers: ControllerSet


# ── Form helpers ─────────────────────────────────────────────────────

def _get_dotted(data: Dict[str, Any], key: str) -> Any:
    for part in key.split("."):
        if not isinstance(data, dict):
            return None
        data = data.get(part)
    return data


def _set_dotted(data: Dict[str, Any], key: str, value: Any) -> None:
    *parents, leaf = key.split(".")
    for part in parents:
        data = data.setdefault(part, {})
    data[leaf] = value


def _coerce(key: str, raw: str) -> Any:
    if key == "services":
        return parse_services(raw)
    if key == "institutionIds":
        return [s.strip() for s in raw.split(",") if s.strip()]
    if key == "visitInfo.date" and raw and "T" not in raw:
        return raw + "T00:00:00Z"
    if key in BOOLEAN_FIELDS:
        return raw.strip().lower() in {"y", "yes", "true", "1"}
    return raw


def _shown(old: Any) -> str:
    if isinstance(old, bool):
        return "y" if old else "n"
    if isinstance(old, list):
        return ", ".join(old)
    return old or ""


def prompt_form(keys: List[str], current: Dict[str, Any]) -> Dict[str, Any]:
    """Ask for each field; an empty answer keeps the current value.

    The password is read without echo and only sent when something was typed.
    """
    payload: Dict[str, Any] = {}
    for key in keys:
        if key == "password":
            secret = getpass("  password (blank keeps current): ")
            if secret:
                payload[key] = secret
            continue
        old = _get_dotted(current, key)
        suffix = " (y/n)" if key in BOOLEAN_FIELDS else ""
        answer = input(f"  {key}{suffix} [{_shown(old)}]: ").strip()
        if answer:
            _set_dotted(payload, key, _coerce(key, answer))
        elif old not in (None, ""):
            _set_dotted(payload, key, old)
    return payload


def _form_keys(app: Console, resource: str) -> List[str]:
    keys = list(FORM_FIELDS[resource])
    policy = app.controllers[resource].policy
    if resource in INSTITUTION_FIELDS and policy.scope != OWN_INSTITUTION:
        keys.append(INSTITUTION_FIELDS[resource])
    return keys


# ── Output helpers ───────────────────────────────────────────────────

def print_records(resource: str, records: List[Any]) -> None:
    df = records_frame(records)
    if df.empty:
        print("(no records)")
        return
    cols = [c for c in LIST_COLUMNS[resource] if c in df.columns]
    print(df[cols].head(MAX_PREVIEW_ROWS).to_string(index=False))
    if len(df) > MAX_PREVIEW_ROWS:
        print(f"... {len(df) - MAX_PREVIEW_ROWS} more (narrow the search)")


def print_record(resource: str, record: Any) -> None:
    print(f"\n[{resource}] {display_name(record)}")
    flat = pd.json_normalize(to_payload(record)).T
    flat.columns = ["value"]
    print(flat.to_string())
    if resource == PATIENTS:
        age = patient_age(record.date_of_birth)
        print(f"age: {age if age is not None else '-'}")


def _report(controller, result) -> bool:
    if result.ok:
        return True
    print(f"\n[ERROR] {controller.notice}")
    controller.dismiss_notice()
    return False


def _screen(app: Console, name: str):
    if name not in RESOURCES:
        print(f"Unknown screen '{name}'. Try: {', '.join(RESOURCES)}")
        return None
    if name not in navigation_for(app.session.identity):
        print("Access denied for your role.")
        return None
    return app.controllers[name]


# ── Commands ─────────────────────────────────────────────────────────

def cmd_menu(app: Console, args: List[str]) -> None:
    for screen in navigation_for(app.session.identity):
        print(f"  - {screen}")


def cmd_dashboard(app: Console, args: List[str]) -> None:
    if DASHBOARD not in navigation_for(app.session.identity):
        print("Access denied for your role.")
        return
    stats = load_dashboard_stats(app.gateway, app.session.identity)
    if stats.error:
        print(f"[ERROR] {stats.error}")
    print(format_counts(stats))


def cmd_list(app: Console, args: List[str]) -> None:
    if not args:
        print("Usage: list <screen> [search...]")
        return
    controller = _screen(app, args[0])
    if controller is None:
        return
    if not _report(controller, controller.load()):
        return
    criteria = FilterCriteria(search=" ".join(args[1:]), category=controller.criteria.category)
    print_records(controller.resource, controller.apply_filter(criteria))


def cmd_filter(app: Console, args: List[str]) -> None:
    if len(args) < 2:
        print("Usage: filter <screen> <value|all>")
        return
    controller = _screen(app, args[0])
    if controller is None:
        return
    if controller.resource not in CATEGORY_FIELDS:
        print("This screen has no category filter.")
        return
    criteria = FilterCriteria(search=controller.criteria.search, category=" ".join(args[1:]))
    print_records(controller.resource, controller.apply_filter(criteria))


def cmd_stats(app: Console, args: List[str]) -> None:
    controller = _screen(app, args[0]) if args else None
    if controller is not None:
        print(compute_breakdown(controller.resource, controller.displayed))


def cmd_show(app: Console, args: List[str]) -> None:
    if len(args) != 2:
        print("Usage: show <screen> <key>")
        return
    controller = _screen(app, args[0])
    if controller is None:
        return
    result = controller.fetch_one(args[1])
    if _report(controller, result):
        print_record(controller.resource, result.record)


def cmd_history(app: Console, args: List[str]) -> None:
    if len(args) != 1:
        print("Usage: history <patientId>")
        return
    try:
        history = load_patient_history(app.gateway, app.session.identity, args[0])
    except FetchError as e:
        print(f"\n[ERROR] {e}")
        return
    print(f"\n[patient] {history.patient.name} ({history.patient.patient_id})")
    print_records(MEDICAL_RECORDS, history.records)


def cmd_create(app: Console, args: List[str]) -> None:
    controller = _screen(app, args[0]) if args else None
    if controller is None:
        return
    if not controller.policy.can_write:
        print("Access denied for your role.")
        return
    print(f"New {controller.noun}:")
    payload = prompt_form(_form_keys(app, controller.resource), {})
    result = controller.create(payload)
    if _report(controller, result):
        print(f"[ok] Created {display_name(result.record)}")


def cmd_edit(app: Console, args: List[str]) -> None:
    if len(args) != 2:
        print("Usage: edit <screen> <key>")
        return
    controller = _screen(app, args[0])
    if controller is None:
        return
    record = controller.find(args[1])
    if record is None:
        print(f"No {controller.noun} {args[1]} in the current list (run `list {args[0]}` first).")
        return
    payload = prompt_form(_form_keys(app, controller.resource), to_payload(record))
    result = controller.update(args[1], payload)
    if _report(controller, result):
        print(f"[ok] Saved {display_name(result.record)}")


def cmd_delete(app: Console, args: List[str]) -> None:
    if len(args) != 2:
        print("Usage: delete <screen> <key>")
        return
    controller = _screen(app, args[0])
    if controller is None:
        return
    gate = controller.request_delete(args[1], ConfirmationGate())
    if gate is None:
        print(f"\n[ERROR] {controller.notice}")
        controller.dismiss_notice()
        return

    print(f"\nDelete \"{gate.target_name}\"? This action cannot be undone.")
    while not gate.can_submit:
        answer = input("Type 'confirm' to delete (blank cancels): ")
        if not answer.strip():
            gate.cancel()
            print("Cancelled.")
            return
        gate.type_text(answer)
        if not gate.can_submit:
            print("That is not 'confirm'.")
    if _report(controller, gate.submit()):
        print("[ok] Deleted.")


def cmd_whoami(app: Console, args: List[str]) -> None:
    ident = app.session.identity
    print(f"{ident.name} <{ident.email}> role={ident.role} institution={ident.institution_id or '-'}")


COMMANDS = {
    "menu": cmd_menu,
    "dashboard": cmd_dashboard,
    "list": cmd_list,
    "filter": cmd_filter,
    "stats": cmd_stats,
    "show": cmd_show,
    "history": cmd_history,
    "create": cmd_create,
    "edit": cmd_edit,
    "delete": cmd_delete,
    "whoami": cmd_whoami,
}


# ── Entry point ──────────────────────────────────────────────────────

def sign_in(session: SessionProvider) -> bool:
    try:
        email = input("Email (or 'quit'): ").strip()
    except (EOFError, KeyboardInterrupt):
        print("\nExiting.")
        return False
    if not email or email.lower() in {"quit", "exit"}:
        print("Goodbye.")
        return False

    try:
        session.login(email, getpass("Password: "))
    except AuthError as e:
        print("\n[ERROR] Login failed.")
        print("Details:", e)
        return False
    return True


def main():
    print("=== Medical CV System: admin console ===\n")
    print(f"[init] Backend: {API_BASE_URL}")

    store = SessionStore()
    gateway = BackendGateway(token_provider=store.token)
    session = SessionProvider(gateway, store)
    app = Console(session, gateway, ControllerSet(session, gateway))

    if session.restore() is None and not sign_in(session):
        return

    ident = session.identity
    print(f"\n[auth] Logged in as: {ident.name} (role={ident.role})")
    print(f"[auth] Start screen: {landing_screen(ident) or '(none)'}")
    print("Type 'help' for commands.")

    while True:
        try:
            line = input("\nmedcv> ").strip()
        except (EOFError, KeyboardInterrupt):
            print("\nExiting.")
            break
        if not line:
            continue
        try:
            name, *args = shlex.split(line)
        except ValueError as e:
            print("Could not parse command:", e)
            continue

        if name in {"quit", "exit"}:
            print("Goodbye.")
            break
        if name == "help":
            print(HELP)
            continue
        if name == "logout":
            session.logout()
            print("[auth] Signed out.")
            break

        command = COMMANDS.get(name)
        if command is None:
            print(f"Unknown command '{name}'. Type 'help'.")
            continue
        try:
            command(app, args)
        except (EOFError, KeyboardInterrupt):
            print("\nCancelled.")
        except Exception as e:
            print(f"\n[ERROR] {name} failed.", file=sys.stderr)
            print("Details:", e, file=sys.stderr)


if __name__ == "__main__":
    main()
