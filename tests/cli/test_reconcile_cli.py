"""The stock-reconcile and stock-init-schema command line entry points."""

import json

import pytest
from sqlalchemy import inspect

from stock_cli import init_schema, reconcile_stock
from stock_kernel.db.engine import Database

from tests.conftest import OTHER_OWNER_ID, OWNER_ID


@pytest.fixture
def cli_env(monkeypatch, database_url, database):
    """Point the CLI at the test database through the environment."""
    monkeypatch.setenv("STOCK_LEDGER_DATABASE_URL", database_url)
    monkeypatch.delenv("STOCK_LEDGER_LOG_LEVEL", raising=False)
    return database_url


@pytest.fixture
def drifted(ledger, make_material, receive, tamper_stock):
    material = make_material("Disco de Corte")
    receive(material.id, 10)
    tamper_stock(material.id, 4)
    return material


def test_clean_owner_exits_zero(cli_env, ledger, material, receive, capsys):
    receive(material.id, 5)

    assert reconcile_stock.main(["--owner", OWNER_ID]) == 0

    out = capsys.readouterr().out
    assert f"Owner {OWNER_ID}" in out
    assert "corrected: 0" in out


def test_drift_is_corrected_and_printed(cli_env, ledger, drifted, capsys):
    assert reconcile_stock.main(["--owner", OWNER_ID]) == 0

    out = capsys.readouterr().out
    assert "Disco de Corte: 4 -> 10" in out
    assert ledger.get_current_stock(OWNER_ID, drifted.id) == 10


def test_fail_on_drift(cli_env, ledger, drifted, capsys):
    assert reconcile_stock.main(["--owner", OWNER_ID, "--fail-on-drift"]) == 2
    assert "DRIFT" in capsys.readouterr().err
    # drift was still corrected
    assert ledger.get_current_stock(OWNER_ID, drifted.id) == 10


def test_dry_run_json(cli_env, ledger, drifted, capsys):
    assert reconcile_stock.main(["--owner", OWNER_ID, "--dry-run", "--json"]) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["dry_run"] is True
    assert payload["corrections"][0]["previous_stock"] == 4
    assert payload["corrections"][0]["corrected_stock"] == 10
    assert ledger.get_current_stock(OWNER_ID, drifted.id) == 4


def test_single_material(cli_env, ledger, drifted, make_material, capsys):
    make_material("Luva")

    assert reconcile_stock.main(
        ["--owner", OWNER_ID, "--material", str(drifted.id), "--json"]
    ) == 0

    payload = json.loads(capsys.readouterr().out)
    assert payload["materials_checked"] == 1


def test_unknown_material_is_an_error(cli_env, ledger, material, capsys):
    assert reconcile_stock.main(
        ["--owner", OWNER_ID, "--material", "00000000-0000-0000-0000-000000000000"]
    ) == 1
    assert "Material not found" in capsys.readouterr().err


def test_all_owners(cli_env, ledger, make_material, receive, capsys):
    receive(make_material("Luva").id, 1)
    receive(make_material("Luva", owner=OTHER_OWNER_ID).id, 1, owner=OTHER_OWNER_ID)

    assert reconcile_stock.main(["--all-owners"]) == 0

    out = capsys.readouterr().out
    assert f"Owner {OWNER_ID}" in out
    assert f"Owner {OTHER_OWNER_ID}" in out


def test_material_requires_owner(cli_env):
    with pytest.raises(SystemExit):
        reconcile_stock.main(["--all-owners", "--material", "00000000-0000-0000-0000-000000000000"])


def test_scope_is_required():
    with pytest.raises(SystemExit):
        reconcile_stock.main([])


def test_missing_database_url(monkeypatch, capsys):
    monkeypatch.delenv("STOCK_LEDGER_DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)

    assert reconcile_stock.main(["--owner", OWNER_ID]) == 1
    assert "database.url" in capsys.readouterr().err


def test_init_schema(monkeypatch, tmp_path, capsys):
    url = f"sqlite:///{tmp_path / 'fresh.db'}"
    monkeypatch.setenv("STOCK_LEDGER_DATABASE_URL", url)

    assert init_schema.main([]) == 0
    assert "Schema ready" in capsys.readouterr().out

    with Database(url) as db:
        tables = set(inspect(db.engine).get_table_names())
    assert {"materials", "categories", "stock_movements", "stock_corrections"} <= tables
