"""Pytest configuration for test isolation.

Every test runs with a scrubbed environment (no ``DATABASE_URL`` and no
``SI_*`` settings leaking in from the developer's shell or a ``.env``), and
cached SQLAlchemy engines are disposed afterwards so per-test SQLite files can
be removed cleanly.
"""

from __future__ import annotations

import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from db.client import dispose_engines

from tests.helpers.db import bootstrap_sqlite_db

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for key in list(os.environ):
        if key.startswith("SI_") or key in {"DATABASE_URL", "STATEMENT_IMPORT_LOG_LEVEL"}:
            monkeypatch.delenv(key, raising=False)
    yield
    dispose_engines()


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    """URL of a fresh, schema-initialized SQLite database for this test."""

    return bootstrap_sqlite_db(tmp_path / "import.sqlite3")


@pytest.fixture()
def data_dir() -> Path:
    return DATA_DIR
