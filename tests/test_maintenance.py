import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'scripts')))

import maintenance


@pytest.fixture
def uri(tmp_path):
    return f"sqlite:///{tmp_path / 'ledger.db'}"


def test_init_db_and_create_user(uri, capsys):
    assert maintenance.main(["--database-uri", uri, "init-db"]) == 0
    assert maintenance.main(["--database-uri", uri, "create-user", "head", "Head Admin", "--role", "super_admin"]) == 0
    out = capsys.readouterr().out
    assert "ensured all fee ledger tables" in out
    assert "created user head (id=1, role=super_admin)" in out


def test_duplicate_user_reports_error(uri, capsys):
    maintenance.main(["--database-uri", uri, "init-db"])
    maintenance.main(["--database-uri", uri, "create-user", "desk", "Front Desk"])
    assert maintenance.main(["--database-uri", uri, "create-user", "desk", "Front Desk"]) == 1
    assert "is taken" in capsys.readouterr().err


def test_debtors_without_term(uri, capsys):
    maintenance.main(["--database-uri", uri, "init-db"])
    assert maintenance.main(["--database-uri", uri, "debtors"]) == 0
    assert "No debtors." in capsys.readouterr().out


def test_promote_outside_final_term_fails(uri, capsys):
    maintenance.main(["--database-uri", uri, "init-db"])
    maintenance.main(["--database-uri", uri, "create-user", "head", "Head Admin", "--role", "super_admin"])
    assert maintenance.main(["--database-uri", uri, "promote", "--actor", "1"]) == 1
    assert "No active term" in capsys.readouterr().err
