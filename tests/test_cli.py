"""
Unit tests for the console: form helpers and the interactive delete flow.
"""

import pytest

from medcv import cli
from medcv.controllers import ControllerSet
from medcv.models import (
    DOCTORS, PATIENTS, USERS, ROLE_DOCTOR, ROLE_INSTITUTION_ADMIN,
    Identity, Page, Patient,
)


# ── Helpers / Fakes ──────────────────────────────────────────────────

INST_ADMIN = Identity(id="u1", name="Ana", email="ana@x", role=ROLE_INSTITUTION_ADMIN,
                      institution_id="INST1")


class FakeSession:
    def __init__(self, identity):
        self.identity = identity

    def subscribe(self, listener):
        pass


class FakeGateway:
    def __init__(self):
        self.deleted = []
        self.patients = [
            Patient(patient_id="PAT-1", name="Jane Doe", institution_ids=["INST1"]),
            Patient(patient_id="PAT-2", name="John Roe", institution_ids=["INST1"]),
        ]

    def list(self, resource, params=None):
        return Page(items=list(self.patients), total=len(self.patients))

    def delete(self, resource, key):
        self.deleted.append((resource, key))


def make_app(identity=INST_ADMIN):
    session = FakeSession(identity)
    gateway = FakeGateway()
    return cli.Console(session, gateway, ControllerSet(session, gateway)), gateway


def answers(monkeypatch, *replies):
    it = iter(replies)
    monkeypatch.setattr("builtins.input", lambda prompt="": next(it))


# ── Tests: form helpers ──────────────────────────────────────────────

def test_set_and_get_dotted():
    data = {}
    cli._set_dotted(data, "contact.phone", "555")
    cli._set_dotted(data, "name", "Clinic")
    assert data == {"contact": {"phone": "555"}, "name": "Clinic"}
    assert cli._get_dotted(data, "contact.phone") == "555"
    assert cli._get_dotted(data, "name.first") is None


@pytest.mark.parametrize("key, raw, expected", [
    ("services", "lab, x-ray ,", ["lab", "x-ray"]),
    ("institutionIds", "I1,I2", ["I1", "I2"]),
    ("visitInfo.date", "2024-01-02", "2024-01-02T00:00:00Z"),
    ("visitInfo.date", "2024-01-02T10:00:00Z", "2024-01-02T10:00:00Z"),
    ("name", "Jane", "Jane"),
    ("isPregnant", "y", True),
    ("visitInfo.isEmergency", "YES", True),
    ("visitInfo.isEmergency", "n", False),
])
def test_coerce(key, raw, expected):
    assert cli._coerce(key, raw) == expected


def test_prompt_form_keeps_current_values(monkeypatch):
    answers(monkeypatch, "", "555-0100")
    payload = cli.prompt_form(["name", "contact.phone"], {"name": "Jane", "contact": {"phone": "1"}})
    assert payload == {"name": "Jane", "contact": {"phone": "555-0100"}}


def test_prompt_form_reads_password_without_echo(monkeypatch):
    answers(monkeypatch, "Ana", "")
    secrets = iter(["", "s3cret"])
    monkeypatch.setattr(cli, "getpass", lambda prompt="": next(secrets))

    keys = ["name", "password", "role"]
    edited = cli.prompt_form(keys, {"name": "Old", "role": "institution_admin"})
    assert edited == {"name": "Ana", "role": "institution_admin"}

    answers(monkeypatch, "", "")
    created = cli.prompt_form(keys, {})
    assert created == {"password": "s3cret"}


def test_prompt_form_shows_booleans_as_yes_no(monkeypatch):
    prompts = []
    monkeypatch.setattr("builtins.input", lambda prompt="": prompts.append(prompt) or "")
    payload = cli.prompt_form(["isPregnant"], {"isPregnant": False})
    assert payload == {"isPregnant": False}
    assert prompts == ["  isPregnant (y/n) [n]: "]


def test_print_record_tolerates_bad_birth_date(capsys):
    cli.print_record(PATIENTS, Patient(patient_id="PAT-9", name="Jane", date_of_birth="15/06/2000"))
    out = capsys.readouterr().out
    assert "[patients] Jane" in out
    assert "age: -" in out


def test_institution_field_hidden_when_pinned():
    app, _ = make_app()
    assert "institutionIds" not in cli._form_keys(app, DOCTORS)

    sysadmin = Identity(id="u0", name="Root", email="r@x", role="system_admin")
    app, _ = make_app(sysadmin)
    assert cli._form_keys(app, USERS)[-1] == "institutionId"


# ── Tests: commands ──────────────────────────────────────────────────

def test_delete_requires_typed_confirm(monkeypatch, capsys):
    app, gateway = make_app()
    app.controllers[PATIENTS].load()

    answers(monkeypatch, "yes", "")
    cli.cmd_delete(app, [PATIENTS, "PAT-1"])
    assert gateway.deleted == []
    out = capsys.readouterr().out
    assert "That is not 'confirm'." in out
    assert "Cancelled." in out

    answers(monkeypatch, "delet", "CONFIRM")
    cli.cmd_delete(app, [PATIENTS, "PAT-1"])
    out = capsys.readouterr().out
    assert 'Delete "Jane Doe"?' in out
    assert "[ok] Deleted." in out
    assert gateway.deleted == [(PATIENTS, "PAT-1")]
    assert [p.patient_id for p in app.controllers[PATIENTS].displayed] == ["PAT-2"]


def test_delete_refused_for_read_only_role(capsys):
    doctor = Identity(id="u2", name="D", email="d@x", role=ROLE_DOCTOR, institution_id="INST1")
    app, gateway = make_app(doctor)
    app.controllers[PATIENTS].load()

    cli.cmd_delete(app, [PATIENTS, "PAT-1"])
    assert "[ERROR] Access denied" in capsys.readouterr().out
    assert gateway.deleted == []


def test_screens_outside_navigation_are_denied(capsys):
    app, _ = make_app()
    cli.cmd_list(app, [USERS])
    assert "Access denied for your role." in capsys.readouterr().out
    cli.cmd_list(app, ["appointments"])
    assert "Unknown screen" in capsys.readouterr().out
