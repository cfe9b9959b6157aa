#!/usr/bin/env python3
"""
Smoke checks for a running Medical CV backend.
Point MEDCV_API_URL at the server, then run: python scripts/smoke_api.py
Uses a throwaway session file in a temp directory, so the console's saved
session is left alone.
"""

import tempfile
import traceback
from getpass import getpass
from pathlib import Path

from medcv.config import API_BASE_URL
from medcv.controllers import ControllerSet
from medcv.dashboard import format_counts, load_dashboard_stats
from medcv.errors import AuthError, GatewayError
from medcv.gateway import BackendGateway
from medcv.models import PATIENTS, RESOURCES
from medcv.rbac import navigation_for
from medcv.session import SessionProvider, SessionStore


def banner(title):
    print("\n" + "=" * 50)
    print(f"CHECK: {title}")
    print("=" * 50)


def check_unauthenticated(gateway):
    """A list call without a token should be rejected."""
    banner("List Without Token")
    try:
        gateway.list(PATIENTS)
    except GatewayError as e:
        print(f"Rejected as expected: {e}")
        return e.status_code in (401, 403)
    print("Backend answered without credentials!")
    return False


def check_login_invalid(session):
    banner("Login with Invalid Credentials")
    try:
        session.login("nobody@example.invalid", "wrong-password")
    except AuthError as e:
        print(f"AuthError: {e}")
        return session.identity is None
    return False


def check_login(session, email, password):
    banner("Login")
    try:
        ident = session.login(email, password)
    except AuthError as e:
        print(f"AuthError: {e}")
        return False
    print(f"Signed in as {ident.name} role={ident.role} institution={ident.institution_id}")
    return True


def check_screens(session, controllers):
    ok = True
    for screen in navigation_for(session.identity):
        if screen not in RESOURCES:
            continue
        banner(f"Load {screen}")
        result = controllers[screen].load()
        print(f"Loaded: {result.ok}  rows: {len(controllers[screen].displayed)}")
        if not result.ok:
            print(f"Notice: {controllers[screen].notice}")
        ok = ok and result.ok
    return ok


def check_dashboard(gateway, session):
    banner("Dashboard")
    stats = load_dashboard_stats(gateway, session.identity)
    print(format_counts(stats))
    return stats.error is None


def main():
    print("=" * 50)
    print("Medical CV Backend Smoke Checks")
    print("=" * 50)
    print(f"Base URL: {API_BASE_URL}")
    print("Make sure the backend is running!")
    print()

    email = input("Email for testing: ").strip()
    if not email:
        print("ERROR: email is required")
        return
    password = getpass("Password: ")

    results = {}
    with tempfile.TemporaryDirectory() as tmp:
        store = SessionStore(Path(tmp) / "session.json")
        gateway = BackendGateway(token_provider=store.token)
        session = SessionProvider(gateway, store)
        controllers = ControllerSet(session, gateway)

        try:
            results["List Without Token"] = check_unauthenticated(gateway)
            results["Login Invalid"] = check_login_invalid(session)

            if check_login(session, email, password):
                results["Login Valid"] = True
                results["Screens"] = check_screens(session, controllers)
                results["Dashboard"] = check_dashboard(gateway, session)
                session.logout()
                results["Logout"] = session.identity is None and store.token() is None
            else:
                results["Login Valid"] = False
                print("\nERROR: Could not login. Remaining checks skipped.")
        except Exception as e:
            print(f"\n\nERROR: {e}")
            traceback.print_exc()

    print("\n" + "=" * 50)
    print("SUMMARY")
    print("=" * 50)
    passed = sum(1 for v in results.values() if v)
    for name, result in results.items():
        status = "✓ PASS" if result else "✗ FAIL"
        print(f"{status}: {name}")
    print(f"\nTotal: {passed}/{len(results)} checks passed")
    print("=" * 50)


if __name__ == "__main__":
    main()
