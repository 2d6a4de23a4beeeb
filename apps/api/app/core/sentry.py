"""Sentry error reporting for the scan API.

init_sentry() is a no-op without a DSN (local development, CI). When
enabled, every event passes through _scrub_secrets before it leaves the
process:

  - values under keys naming a credential (api_key, token, secret,
    password, dsn, signature) become "[REDACTED]"
  - userinfo is stripped from any URL-looking string, since repository
    URLs may carry access tokens
  - breadcrumb messages get the same URL treatment

PII is never sent and 10% of transactions are traced.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

from runner.scm.git import scrub_credentials

logger = logging.getLogger(__name__)

REDACTED = "[REDACTED]"
TRACES_SAMPLE_RATE = 0.1

_SENSITIVE_KEYS = frozenset(
    {"api_key", "apikey", "x-api-key", "secret", "password", "token", "dsn", "signature"}
)


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(word in lowered for word in _SENSITIVE_KEYS)


def _scrub_value(value: Any) -> Any:
    if isinstance(value, dict):
        _scrub_dict(value)
    elif isinstance(value, list):
        return [_scrub_value(item) for item in value]
    elif isinstance(value, str) and "://" in value:
        return scrub_credentials(value)
    return value


def _scrub_dict(d: dict[str, Any]) -> None:
    """Redact sensitive values in place, recursing into dicts and lists."""
    for key, value in d.items():
        d[key] = REDACTED if _is_sensitive(str(key)) else _scrub_value(value)


def _scrub_secrets(event: dict[str, Any], hint: Any) -> dict[str, Any]:
    """before_send hook."""
    _scrub_dict(event.get("extra", {}))
    request = event.get("request", {})
    for section in ("headers", "data", "cookies"):
        if isinstance(request.get(section), dict):
            _scrub_dict(request[section])

    breadcrumbs = event.get("breadcrumbs")
    values = breadcrumbs.get("values", []) if isinstance(breadcrumbs, dict) else []
    for crumb in values:
        if isinstance(crumb.get("message"), str):
            crumb["message"] = scrub_credentials(crumb["message"])
        if isinstance(crumb.get("data"), dict):
            _scrub_dict(crumb["data"])
    return event


def init_sentry(dsn: str, environment: str = "development") -> None:
    if not dsn or not dsn.strip():
        logger.debug("Sentry DSN not configured, error reporting disabled")
        return

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        integrations=[FastApiIntegration(), SqlalchemyIntegration()],
        traces_sample_rate=TRACES_SAMPLE_RATE,
        send_default_pii=False,
        before_send=_scrub_secrets,
    )
    logger.info("Sentry initialised (environment=%s)", environment)
