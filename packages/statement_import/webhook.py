"""HTTP/webhook invocation handler for statement imports.

``handle_import_webhook(event)`` takes a Lambda/edge style event
(``httpMethod``, ``headers``, ``body``) and returns
``{"statusCode", "headers", "body"}`` with a JSON body. The upload arrives
base64-encoded in ``fileContent``; the import itself runs through
:func:`statement_import.api.import_statement`.

Status mapping: 200 success, 400 invalid request / ``FormatError`` /
``CapacityError``, 401 bad webhook token, 405 wrong method, 500
``InfrastructureError``.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import json
from collections.abc import Callable, Mapping
from decimal import Decimal
from typing import Any, TypeAlias

from pydantic import ValidationError

from .config import ImportSettings
from .errors import CapacityError, FormatError, InfrastructureError
from .logging_setup import configure_logging, get_logger
from .models import ImportRequest, ImportSummary

logger = get_logger("statement_import.webhook")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": (
        "authorization, x-client-info, apikey, content-type, x-webhook-token"
    ),
    "Access-Control-Allow-Methods": "POST,OPTIONS",
}

ImportRunner: TypeAlias = Callable[..., ImportSummary]


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return str(obj)
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def create_response(status_code: int, body: Mapping[str, Any] | None) -> dict[str, Any]:
    """Create a response dict with JSON content type and CORS headers."""

    return {
        "statusCode": status_code,
        "headers": {"Content-Type": "application/json", **CORS_HEADERS},
        "body": "" if body is None else json.dumps(body, default=_json_default, ensure_ascii=False),
    }


def handle_error(status_code: int, message: str, **extra: Any) -> dict[str, Any]:
    return create_response(status_code, {"error": message, **extra})


def summary_message(summary: ImportSummary) -> str:
    """Short pt-BR status line shown to the user after an import."""

    return (
        f"✅ {summary.inserted} transações importadas\n"
        f"📊 {summary.categorized} categorizadas, {summary.unclassified} para revisar\n"
        f"🔄 {summary.duplicates} duplicadas, {summary.failed_rows} com erro"
    )


def _header(event: Mapping[str, Any], name: str) -> str | None:
    headers = event.get("headers") or {}
    for key, value in headers.items():
        if str(key).lower() == name:
            return value
    return None


def _parse_body(event: Mapping[str, Any]) -> Any:
    body = event.get("body")
    if body is None or body == "":
        raise ValueError("Request body is required")
    if isinstance(body, Mapping):
        return body
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    try:
        return json.loads(body)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Request body is not valid JSON: {exc.msg}") from exc


def _decode_file(content: str) -> bytes:
    # Data URLs ("data:text/csv;base64,....") are accepted as well.
    if content.startswith("data:") and "," in content:
        content = content.split(",", 1)[1]
    content = "".join(content.split())
    try:
        return base64.b64decode(content, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("fileContent is not valid base64") from exc


def _missing_fields(exc: ValidationError) -> str:
    names = {str(err["loc"][0]) for err in exc.errors() if err.get("loc")}
    return ", ".join(sorted(names))


def handle_import_webhook(
    event: Mapping[str, Any],
    *,
    settings: ImportSettings | None = None,
    database_url: str | None = None,
    runner: ImportRunner | None = None,
) -> dict[str, Any]:
    """Validate the request, run the import and map the outcome to a response.

    ``runner`` defaults to :func:`statement_import.api.import_statement` and is
    called with ``(owner_id, content, filename=..., declared_type=...,
    settings=..., database_url=...)``.
    """

    configure_logging()
    method = str(event.get("httpMethod") or "POST").upper()
    if method == "OPTIONS":
        return create_response(200, None)
    if method != "POST":
        return handle_error(405, f"Method {method} not allowed")

    try:
        settings = settings or ImportSettings.from_env()
    except ValueError as e:
        logger.error("Invalid import settings: %s", e)
        return handle_error(500, "Failed to import file", details=str(e))

    if settings.webhook_token:
        supplied = _header(event, "x-webhook-token") or ""
        if not hmac.compare_digest(supplied.encode(), settings.webhook_token.encode()):
            logger.warning("Rejected webhook call with a missing or invalid token")
            return handle_error(401, "Unauthorized")

    try:
        request = ImportRequest.model_validate(_parse_body(event))
    except ValidationError as e:
        return handle_error(
            400,
            "Missing required fields: ownerId, fileContent, filename, declaredType",
            details=_missing_fields(e),
        )
    except ValueError as e:
        return handle_error(400, str(e))

    try:
        content = _decode_file(request.file_content)
    except ValueError as e:
        return handle_error(400, str(e))

    logger.info(
        "Import request for owner %s: %r (%s, %d bytes)",
        request.owner_id,
        request.filename,
        request.declared_type,
        len(content),
    )

    if runner is None:
        from .api import import_statement

        runner = import_statement

    try:
        summary = runner(
            request.owner_id,
            content,
            filename=request.filename,
            declared_type=request.declared_type,
            settings=settings,
            database_url=database_url,
        )
    except (FormatError, CapacityError) as e:
        logger.warning("Rejected %r: %s", request.filename, e)
        return handle_error(400, str(e))
    except (InfrastructureError, RuntimeError) as e:
        logger.error("Import of %r failed: %s", request.filename, e)
        return handle_error(500, "Failed to import file", details=str(e))

    return create_response(
        200,
        {"success": True, "summary": summary.to_dict(), "message": summary_message(summary)},
    )


__all__ = [
    "CORS_HEADERS",
    "create_response",
    "handle_error",
    "handle_import_webhook",
    "summary_message",
]
