"""
Maintenance utilities for the School Fee Ledger.

Usage examples (PowerShell/CMD):

  python scripts/maintenance.py init-db
  python scripts/maintenance.py create-user bursar1 "Mrs. Adaeze" --role bursary
  python scripts/maintenance.py promote --actor 1
  python scripts/maintenance.py debtors

This script connects using SQLALCHEMY_DATABASE_URI (or --database-uri).
"""

from __future__ import annotations

import argparse
import os
import sys

# Ensure project root is importable when running from scripts/
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
from utils.classes import class_label  # noqa: E402
from utils.errors import LedgerError  # noqa: E402
from utils.permissions import Role, create_user  # noqa: E402
from utils.promotion import promote_all  # noqa: E402
from utils.reports import debtors_report  # noqa: E402


def init_db() -> None:
    db.create_all()
    print("OK: ensured all fee ledger tables")


def add_user(username: str, display_name: str, role: str, email: str | None) -> None:
    user = create_user(username, display_name, role=role, email=email)
    print(f"OK: created user {user.username} (id={user.id}, role={user.role})")


def promote(actor_id: int, term_id: int | None) -> int:
    result = promote_all(actor_id=actor_id, term_id=term_id)
    print(
        f"OK: {result.promoted} promoted, {result.graduated} graduated, "
        f"{result.manual} left for manual promotion"
    )
    for err in result.errors:
        print(f"  student {err['student_id']}: {err['message']}")
    return 1 if result.errors else 0


def print_debtors(term_id: int | None) -> None:
    report = debtors_report(term_id=term_id)
    if not report:
        print("No debtors.")
        return
    for class_name, rows in report.items():
        print(f"{class_label(class_name)} ({len(rows)})")
        for row in rows:
            print(f"  {row['reg_number']:<14} {row['name']:<40} {row['balance']:>12,.2f}")


def main(argv: list[str]) -> int:
    ap = argparse.ArgumentParser(description="Fee ledger maintenance tools")
    ap.add_argument("--database-uri", dest="database_uri", help="Override SQLALCHEMY_DATABASE_URI")
    sub = ap.add_subparsers(dest="cmd", required=True)

    sub.add_parser("init-db", help="Create all tables if missing")
    up = sub.add_parser("create-user", help="Create a user (bootstrap the first super_admin with this)")
    up.add_argument("username")
    up.add_argument("display_name")
    up.add_argument("--role", choices=[r.value for r in Role], default=Role.STAFF.value)
    up.add_argument("--email", default=None)
    pp = sub.add_parser("promote", help="End-of-session promotion (3rd term only)")
    pp.add_argument("--actor", dest="actor_id", type=int, required=True)
    pp.add_argument("--term", dest="term_id", type=int, default=None)
    dp = sub.add_parser("debtors", help="List students owing fees for the term, grouped by class")
    dp.add_argument("--term", dest="term_id", type=int, default=None)

    args = ap.parse_args(argv)
    overrides = {}
    if args.database_uri:
        overrides["SQLALCHEMY_DATABASE_URI"] = args.database_uri
    app = create_app(overrides)
    with app.app_context():
        try:
            if args.cmd == "init-db":
                init_db()
                return 0
            if args.cmd == "create-user":
                add_user(args.username, args.display_name, args.role, args.email)
                return 0
            if args.cmd == "promote":
                return promote(args.actor_id, args.term_id)
            if args.cmd == "debtors":
                print_debtors(args.term_id)
                return 0
        except LedgerError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return 1
    ap.error("Unknown command")
    return 2


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
