from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from statement_import.api import (
    correct_transaction_category,
    import_statement,
    recategorize,
    sync_account_records,
)

from tests.helpers.db import (
    bootstrap_sqlite_db,
    fetch_account,
    fetch_events,
    fetch_transactions,
)

OWNER = "owner-e2e"
DATA = Path(__file__).resolve().parents[1] / "data"


def test_e2e_import_correct_reimport_and_sync(tmp_path: Path):
    # -------------------------
    # DB bootstrap
    # -------------------------
    db_url = bootstrap_sqlite_db(tmp_path / "import-e2e.db")

    # -------------------------
    # First import: CSV then OFX into the same account
    # -------------------------
    csv_summary = import_statement(
        OWNER,
        (DATA / "extrato_basico.csv").read_bytes(),
        filename="extrato_basico.csv",
        database_url=db_url,
    )
    ofx_summary = import_statement(
        OWNER,
        (DATA / "extrato.ofx").read_bytes(),
        filename="janeiro.ofx",
        database_url=db_url,
    )

    assert (csv_summary.inserted, csv_summary.unclassified) == (4, 1)
    assert ofx_summary.inserted == 3

    rows = fetch_transactions(db_url, OWNER)
    assert len(rows) == 7
    assert len({r["dedup_hash"] for r in rows}) == 7
    by_desc = {r["description"]: r for r in rows}
    assert by_desc["IFOOD SAO PAULO"]["category"] == "Alimentação"
    assert by_desc["NETFLIX.COM"]["subcategory"] == "Streaming"
    assert by_desc["NETFLIX.COM"]["external_id"] == "202401100001"
    assert by_desc["ACME COMERCIO LTDA"]["tags"] == ["needs_review"]

    account = fetch_account(db_url, OWNER, "csv_import")
    # 2207.20 from the CSV; -120.00 + 2500.00 - 35.50 from the OFX.
    assert account["balance"] == Decimal("4551.70")

    # -------------------------
    # Manual correction learns the merchant
    # -------------------------
    acme = by_desc["ACME COMERCIO LTDA"]
    correct_transaction_category(
        OWNER, acme["id"], "Casa", "Manutenção", merchant=acme["merchant"], database_url=db_url
    )

    # -------------------------
    # Re-import is a no-op; a new month reuses the mapping
    # -------------------------
    again = import_statement(
        OWNER,
        (DATA / "extrato_basico.csv").read_bytes(),
        filename="extrato_basico.csv",
        database_url=db_url,
    )
    assert (again.inserted, again.duplicates) == (0, 4)

    april = import_statement(
        OWNER,
        "date,amount,description,type\n2024-04-18,12.34,ACME COMERCIO LTDA,expense\n",
        filename="abril.csv",
        database_url=db_url,
    )
    assert (april.categorized, april.unclassified) == (1, 0)
    latest = fetch_transactions(db_url, OWNER)[-1]
    assert (latest["category"], latest["category_source"]) == ("Casa", "learned_merchant_mapping")

    # -------------------------
    # Aggregator sync and a recategorization pass
    # -------------------------
    sync = sync_account_records(
        OWNER,
        account["id"],
        [
            {"date": "2024-04-05", "amount": "-39.90", "description": "ACADEMIA FIT"},
            {"date": "2024-05-06", "amount": "-39.90", "description": "ACADEMIA FIT"},
        ],
        database_url=db_url,
    )
    assert (sync.inserted, sync.unclassified) == (2, 2)

    recat = recategorize(OWNER, database_url=db_url)
    assert recat.categorized == 1
    assert recat.unclassified == 1
    gym = [r for r in fetch_transactions(db_url, OWNER) if r["description"] == "ACADEMIA FIT"]
    assert [r["category"] for r in gym] == ["Uncategorized", "Assinaturas"]
    assert gym[1]["category_source"] == "recurring_pattern"

    assert [e[0] for e in fetch_events(db_url, OWNER)] == [
        "csv_import_completed",
        "csv_import_completed",
        "csv_import_completed",
        "csv_import_completed",
        "account_synced",
        "transactions_categorized",
    ]
