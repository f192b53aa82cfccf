import textwrap
from decimal import Decimal

import pytest

from statement_import.config import ImportSettings
from statement_import.duplicates import compute_dedup_hash
from statement_import.errors import CapacityError, FormatError, InfrastructureError
from statement_import.importer import IMPORT_EVENT, SYNC_EVENT, run_import, sync_account
from statement_import.models import UNCATEGORIZED, AssignmentSource, Direction, MerchantMapping

from tests.helpers.fake_gateway import FakeGateway

OWNER = "owner-1"


def _csv(s: str) -> str:
    return textwrap.dedent(s).lstrip("\n")


def _import(gateway: FakeGateway, content, filename="extrato.csv", **kwargs):
    return run_import(gateway, OWNER, content, filename=filename, **kwargs)


# ---- Concrete scenarios ------------------------------------------------------


def test_csv_row_is_normalized_categorized_and_hashed():
    gw = FakeGateway()
    summary = _import(
        gw,
        _csv(
            """
            date,amount,description,type
            2024-03-15,45.90,IFOOD SAO PAULO,expense
            """
        ),
    )

    assert summary.to_dict() == {
        "total_rows": 1,
        "inserted": 1,
        "duplicates": 0,
        "failed_rows": 0,
        "categorized": 1,
        "unclassified": 0,
        "errors": [],
    }
    (row,) = gw.inserted_rows
    tx = row.transaction
    assert tx.date.isoformat() == "2024-03-15"
    assert tx.amount == Decimal("45.90")
    assert tx.direction is Direction.DEBIT
    assert tx.currency == "BRL"
    assert (row.assignment.category, row.assignment.subcategory) == (
        "Alimentação",
        "Restaurantes",
    )
    assert row.dedup_hash == compute_dedup_hash(
        OWNER, "2024-03-15", Decimal("45.90"), "IFOOD SAO PAULO"
    )
    assert row.imported_from == "csv_import:extrato.csv"
    assert row.raw_record["line_no"] == 2
    assert not row.needs_review


def test_ofx_block_becomes_streaming_debit(data_dir):
    gw = FakeGateway()
    summary = _import(gw, (data_dir / "extrato.ofx").read_bytes(), filename="janeiro.ofx")

    assert summary.inserted == 3
    netflix = gw.inserted_rows[0]
    assert netflix.transaction.date.isoformat() == "2024-01-10"
    assert netflix.transaction.amount == Decimal("120.00")
    assert netflix.transaction.direction is Direction.DEBIT
    assert (netflix.assignment.category, netflix.assignment.subcategory) == (
        "Assinaturas",
        "Streaming",
    )
    assert netflix.transaction.natural_id == "202401100001"

    salary = gw.inserted_rows[1]
    assert salary.transaction.direction is Direction.CREDIT
    assert salary.assignment.subcategory == "Salário"
    assert salary.transaction.merchant == "EMPRESA X"


def test_missing_headers_fail_before_any_side_effect():
    gw = FakeGateway()
    with pytest.raises(FormatError, match="Found: descricao, estabelecimento"):
        _import(gw, "descricao,estabelecimento\nIFOOD,iFood\n")

    assert gw.accounts == {}
    assert gw.events == []
    assert gw.balance_updates == []


def test_unparseable_amount_is_counted_and_the_rest_continue():
    gw = FakeGateway()
    summary = _import(
        gw,
        _csv(
            """
            date,amount,description
            2024-03-15,abc,NETFLIX.COM
            2024-03-16,10.00,SPOTIFY
            """
        ),
    )

    assert summary.failed_rows == 1
    assert summary.inserted == 1
    assert summary.errors == ["Row 2: invalid amount 'abc'"]
    assert [r.transaction.description for r in gw.inserted_rows] == ["SPOTIFY"]


def test_oversized_amount_fails_only_its_row():
    gw = FakeGateway()
    summary = _import(
        gw,
        "date,amount,description\n"
        f"2024-03-15,{'9' * 30},NETFLIX.COM\n"
        "2024-03-16,10.00,SPOTIFY\n",
    )

    assert summary.failed_rows == 1
    assert summary.inserted == 1
    assert summary.errors == [f"Row 2: invalid amount '{'9' * 30}'"]
    assert [r.transaction.description for r in gw.inserted_rows] == ["SPOTIFY"]


def test_category_column_is_kept_raw_but_rules_decide():
    gw = FakeGateway()
    _import(
        gw,
        _csv(
            """
            date,amount,description,categoria
            2024-03-15,45.90,IFOOD SAO PAULO,Lazer
            """
        ),
    )

    (row,) = gw.inserted_rows
    assert (row.assignment.category, row.assignment.source) == (
        "Alimentação",
        AssignmentSource.RULE_MATCH,
    )
    assert row.raw_record["fields"]["categoria"] == "Lazer"


# ---- Properties --------------------------------------------------------------


def test_row_isolation_with_fixture(data_dir):
    gw = FakeGateway()
    summary = _import(gw, (data_dir / "extrato_com_erros.csv").read_bytes())

    assert summary.total_rows == 4
    assert summary.failed_rows == 2
    assert summary.inserted == 2
    assert summary.errors == [
        "Row 3: invalid date 'not-a-date'",
        "Row 4: invalid amount 'abc'",
    ]


def test_reimport_is_idempotent(data_dir):
    gw = FakeGateway()
    content = (data_dir / "extrato_basico.csv").read_bytes()

    first = _import(gw, content)
    balance_after_first = next(iter(gw.accounts.values())).balance
    second = _import(gw, content)

    assert first.inserted == 4
    assert second.inserted == 0
    assert second.duplicates == 4
    assert second.categorized == second.unclassified == 0
    assert next(iter(gw.accounts.values())).balance == balance_after_first
    assert len(gw.accounts) == 1


def test_balance_delta_and_event(data_dir):
    gw = FakeGateway()
    summary = _import(gw, (data_dir / "extrato_basico.csv").read_bytes())

    (account,) = gw.accounts.values()
    assert account.provider == "csv_import"
    # +3500.00 - 45.90 - 1234.56 - 12.34
    assert account.balance == Decimal("2207.20")
    assert len(gw.balance_updates) == 1

    assert summary.categorized == 3
    assert summary.unclassified == 1
    (owner, event_type, payload) = gw.events[0]
    assert (owner, event_type) == (OWNER, IMPORT_EVENT)
    assert payload["filename"] == "extrato.csv"
    assert payload["format"] == "csv"
    assert payload["total_rows"] == 4
    assert payload["inserted"] == 4
    assert payload["errors"] == []


def test_unclassified_rows_are_marked_for_review(data_dir):
    gw = FakeGateway()
    _import(gw, (data_dir / "extrato_basico.csv").read_bytes())

    acme = [r for r in gw.inserted_rows if r.transaction.description == "ACME COMERCIO LTDA"]
    (row,) = acme
    assert row.assignment.category == UNCATEGORIZED
    assert row.assignment.source is AssignmentSource.FALLBACK
    assert row.needs_review
    assert row.tags == ["needs_review"]


def test_categorization_counters_cover_rows_that_reached_persistence(data_dir):
    gw = FakeGateway(reject_insert=lambda row: row.transaction.description == "POSTO SHELL")
    summary = _import(gw, (data_dir / "extrato_basico.csv").read_bytes())

    assert summary.inserted == 3
    assert summary.failed_rows == 1
    assert summary.errors[0].startswith("Row 4: could not be saved")
    assert summary.categorized + summary.unclassified == summary.inserted + 1
    # The rejected debit does not move the balance.
    assert next(iter(gw.accounts.values())).balance == Decimal("3441.76")


def test_merchant_mapping_overrides_rules_during_import():
    gw = FakeGateway()
    gw.mappings[(OWNER, "uber")] = MerchantMapping("uber", "Trabalho", "Reembolsável")

    _import(
        gw,
        _csv(
            """
            date,amount,description,merchant
            2024-03-01,25.00,UBER TRIP,Uber
            2024-03-02,18.00,UBER TRIP 2,UBER
            """
        ),
    )

    assert {(r.assignment.category, r.assignment.source) for r in gw.inserted_rows} == {
        ("Trabalho", AssignmentSource.LEARNED_MERCHANT_MAPPING)
    }
    # One store lookup for the repeated merchant.
    assert gw.mapping_lookups == [(OWNER, "uber")]


def test_row_count_ceiling_rejects_the_whole_file():
    gw = FakeGateway()
    rows = "".join(f"2024-01-01,{i}.00,ROW {i}\n" for i in range(10_001))

    with pytest.raises(CapacityError) as exc_info:
        _import(gw, "date,amount,description\n" + rows)

    assert exc_info.value.actual == 10_001
    assert exc_info.value.limit == 10_000
    assert gw.inserted_rows == []
    assert gw.accounts == {}


def test_file_size_ceiling():
    gw = FakeGateway()
    with pytest.raises(CapacityError, match="File size exceeds 64 bytes limit"):
        _import(
            gw,
            "date,amount,description\n" + "2024-01-01,1.00,X\n" * 10,
            settings=ImportSettings(max_file_bytes=64),
        )
    assert gw.accounts == {}


def test_error_list_is_capped_but_counters_are_exact():
    gw = FakeGateway()
    bad = "".join(f"bad-{i},1.00,X\n" for i in range(15))

    summary = _import(gw, "date,amount,description\n" + bad, settings=ImportSettings(error_cap=10))

    assert summary.failed_rows == 15
    assert len(summary.errors) == 10
    assert len(gw.events[0][2]["errors"]) == 10


def test_infrastructure_failure_aborts_the_run():
    gw = FakeGateway(fail_exists=True)
    with pytest.raises(InfrastructureError):
        _import(gw, "date,amount,description\n2024-01-01,1.00,X\n")
    assert gw.events == []


def test_csv_without_type_column_is_debit_even_when_negative():
    gw = FakeGateway()
    _import(gw, "date,amount,description\n2024-01-01,-50.00,X\n2024-01-02,50.00,Y\n")

    assert [r.transaction.direction for r in gw.inserted_rows] == [Direction.DEBIT] * 2
    assert [r.transaction.amount for r in gw.inserted_rows] == [Decimal("50.00")] * 2


def test_merchant_defaults_to_description_without_merchant_column():
    gw = FakeGateway()
    _import(gw, "date,amount,description\n2024-01-01,5.00,PADARIA REAL\n")
    assert gw.inserted_rows[0].transaction.merchant == "PADARIA REAL"


def test_existing_account_is_reused_and_currency_column_is_honored():
    gw = FakeGateway()
    account = gw.create_account(OWNER, "csv_import", Decimal("100.00"))

    _import(gw, "date,amount,description,currency,type\n2024-01-01,10.00,X,usd,credit\n")

    assert len(gw.accounts) == 1
    assert gw.inserted_rows[0].account_id == account.id
    assert gw.inserted_rows[0].transaction.currency == "USD"
    assert gw.accounts[account.id].balance == Decimal("110.00")


# ---- sync_account ------------------------------------------------------------


def test_sync_account_uses_amount_sign_and_shared_pipeline():
    gw = FakeGateway()
    account = gw.create_account(OWNER, "pluggy", Decimal("100.00"))
    records = [
        {"date": "2024-02-01", "amount": -59.9, "description": "SPOTIFY", "merchant": "Spotify"},
        {"transaction_date": "2024-02-02", "amount": "1200.00", "description": "PIX RECEBIDO"},
        {"amount": "1.00", "description": "no date"},
        {"date": "2024-02-01", "amount": -59.9, "description": "SPOTIFY", "merchant": "Spotify"},
    ]

    summary = sync_account(gw, OWNER, account.id, records)

    assert summary.total_rows == 4
    assert summary.inserted == 2
    assert summary.duplicates == 1
    assert summary.failed_rows == 1
    assert summary.errors == ["Row 3: invalid record (date)"]
    spotify, pix = gw.inserted_rows
    assert spotify.transaction.direction is Direction.DEBIT
    assert spotify.assignment.subcategory == "Streaming"
    assert pix.transaction.direction is Direction.CREDIT
    assert pix.assignment.subcategory == "Transferências"
    assert spotify.imported_from == "sync:pluggy"
    assert gw.accounts[account.id].balance == Decimal("1240.10")
    assert gw.events[0][1] == SYNC_EVENT


def test_sync_account_rejects_foreign_accounts():
    gw = FakeGateway()
    account = gw.create_account("someone-else", "pluggy")

    with pytest.raises(LookupError):
        sync_account(gw, OWNER, account.id, [])
    with pytest.raises(LookupError):
        sync_account(gw, OWNER, 999, [])
