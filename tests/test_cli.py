import json

import pytest
from typer.testing import CliRunner

from statement_import import cli

from tests.helpers.db import fetch_transactions

OWNER = "owner-1"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _cli_env(monkeypatch, tmp_path):
    monkeypatch.setattr(cli, "configure_logging", lambda *a, **k: None)
    # Keep the callback from loading a developer .env.
    monkeypatch.chdir(tmp_path)


def _invoke(*args):
    return runner.invoke(cli.app, [str(a) for a in args])


def test_import_file_prints_summary_and_is_idempotent(db_url, data_dir):
    path = data_dir / "extrato_basico.csv"

    first = _invoke("import-file", path, "--owner", OWNER, "--database-url", db_url)
    second = _invoke("import-file", path, "-o", OWNER, "--database-url", db_url)

    assert first.exit_code == 0, first.output
    assert "4 inserted, 0 duplicates, 0 failed (4 rows)" in first.output
    assert "3 categorized, 1 to review" in first.output
    assert second.exit_code == 0
    assert "0 inserted, 4 duplicates" in second.output
    assert len(fetch_transactions(db_url, OWNER)) == 4


def test_import_file_json_output(db_url, data_dir):
    path = data_dir / "extrato.ofx"
    result = _invoke("import-file", path, "--owner", OWNER, "--database-url", db_url, "--json")

    assert result.exit_code == 0, result.output
    summary = json.loads(result.output)
    assert summary["inserted"] == 3
    assert summary["errors"] == []


def test_import_file_lists_row_errors(db_url, data_dir):
    result = _invoke(
        "import-file", data_dir / "extrato_com_erros.csv", "-o", OWNER, "--database-url", db_url
    )

    assert result.exit_code == 0
    assert "  - Row 3: invalid date 'not-a-date'" in result.output


def test_import_file_rejects_bad_input(db_url, tmp_path):
    bad = tmp_path / "bad.csv"
    bad.write_text("descricao,valor\nIFOOD,1\n", encoding="utf-8")

    missing = _invoke("import-file", tmp_path / "nope.csv", "-o", OWNER, "--database-url", db_url)
    rejected = _invoke("import-file", bad, "-o", OWNER, "--database-url", db_url)

    assert missing.exit_code == cli.EXIT_BAD_INPUT
    assert "File not found" in missing.output
    assert rejected.exit_code == cli.EXIT_BAD_INPUT
    assert "Missing required headers" in rejected.output


def test_import_without_database_url_fails(data_dir):
    result = _invoke("import-file", data_dir / "extrato_basico.csv", "-o", OWNER)

    assert result.exit_code == cli.EXIT_FAILURE
    assert "DATABASE_URL is not set" in result.output


def test_invalid_settings_are_reported(db_url, data_dir, monkeypatch):
    monkeypatch.setenv("SI_MAX_ROWS", "many")

    result = _invoke(
        "import-file", data_dir / "extrato_basico.csv", "-o", OWNER, "--database-url", db_url
    )

    assert result.exit_code == cli.EXIT_BAD_INPUT
    assert "SI_MAX_ROWS must be an integer" in result.output


def test_merchant_mapping_commands(db_url):
    mapped = _invoke(
        "map-merchant",
        "ACME COMERCIO",
        "Casa",
        "-o",
        OWNER,
        "--subcategory",
        "Manutenção",
        "--database-url",
        db_url,
    )
    listed = _invoke("list-mappings", "-o", OWNER, "--database-url", db_url)
    removed = _invoke("unmap-merchant", "acme comercio", "-o", OWNER, "--database-url", db_url)
    again = _invoke("unmap-merchant", "acme comercio", "-o", OWNER, "--database-url", db_url)
    empty = _invoke("list-mappings", "-o", OWNER, "--database-url", db_url)

    assert mapped.exit_code == 0
    assert "ACME COMERCIO -> Casa/Manutenção" in mapped.output
    assert listed.output.strip() == "acme comercio\tCasa\tManutenção"
    assert removed.exit_code == 0
    assert again.exit_code == cli.EXIT_FAILURE
    assert "No merchant mappings." in empty.output


def test_map_merchant_rejects_blank_values(db_url):
    result = _invoke("map-merchant", "   ", "Casa", "-o", OWNER, "--database-url", db_url)
    assert result.exit_code == cli.EXIT_BAD_INPUT


def test_recategorize_uses_new_mappings(db_url, data_dir):
    _invoke("import-file", data_dir / "extrato_basico.csv", "-o", OWNER, "--database-url", db_url)
    _invoke("map-merchant", "ACME COMERCIO LTDA", "Casa", "-o", OWNER, "--database-url", db_url)

    result = _invoke("recategorize", "-o", OWNER, "--database-url", db_url)

    assert result.exit_code == 0, result.output
    assert "1 categorized, 0 unclassified, 0 skipped" in result.output
    acme = [t for t in fetch_transactions(db_url, OWNER) if t["merchant"] == "ACME COMERCIO LTDA"]
    assert acme[0]["category"] == "Casa"
    assert acme[0]["category_source"] == "learned_merchant_mapping"
    assert acme[0]["needs_review"] is False
