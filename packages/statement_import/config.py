"""Runtime settings for the import pipeline.

Values come from environment variables (a local ``.env`` is loaded by the CLI
with ``python-dotenv`` before :meth:`ImportSettings.from_env` runs). Library
code receives an :class:`ImportSettings` instance explicitly and never reads
the environment itself.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

DEFAULT_HOME_CURRENCY = "BRL"
DEFAULT_MAX_ROWS = 10_000
DEFAULT_MAX_FILE_BYTES = 5 * 1024 * 1024
DEFAULT_ERROR_CAP = 10
DEFAULT_PROVIDER_TAG = "csv_import"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def _env_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True, slots=True)
class ImportSettings:
    """Knobs shared by the orchestrator, parsers and entrypoints.

    Attributes
    ----------
    home_currency:
        Currency assigned when a row's currency hint is empty or unrecognized.
    max_rows:
        Row-count ceiling; larger files fail with ``CapacityError``.
    max_file_bytes:
        Decoded upload size ceiling enforced by the webhook handler and CLI.
    error_cap:
        Maximum number of row-level messages kept in the summary.
    provider_tag:
        Provider tag of the import-source account (one per owner per tag).
    day_first:
        Fallback reading for ambiguous ``NN/NN/YYYY`` dates when a file does
        not disambiguate itself.
    webhook_token:
        Shared secret expected in the ``x-webhook-token`` header, if set.
    rules_path:
        Optional JSON rule table replacing the packaged one.
    """

    home_currency: str = DEFAULT_HOME_CURRENCY
    max_rows: int = DEFAULT_MAX_ROWS
    max_file_bytes: int = DEFAULT_MAX_FILE_BYTES
    error_cap: int = DEFAULT_ERROR_CAP
    provider_tag: str = DEFAULT_PROVIDER_TAG
    day_first: bool = True
    webhook_token: str | None = None
    rules_path: Path | None = None

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ImportSettings:
        e = os.environ if env is None else env
        rules = (e.get("SI_CATEGORY_RULES_FILE") or "").strip()
        home = (e.get("SI_HOME_CURRENCY") or "").strip().upper()
        return cls(
            home_currency=home or DEFAULT_HOME_CURRENCY,
            max_rows=_env_int(e, "SI_MAX_ROWS", DEFAULT_MAX_ROWS),
            max_file_bytes=_env_int(e, "SI_MAX_FILE_BYTES", DEFAULT_MAX_FILE_BYTES),
            error_cap=_env_int(e, "SI_ERROR_CAP", DEFAULT_ERROR_CAP),
            provider_tag=(e.get("SI_PROVIDER_TAG") or "").strip() or DEFAULT_PROVIDER_TAG,
            day_first=_env_bool(e, "SI_DAY_FIRST", True),
            webhook_token=(e.get("SI_WEBHOOK_TOKEN") or "").strip() or None,
            rules_path=Path(rules) if rules else None,
        )


__all__ = ["ImportSettings"]
