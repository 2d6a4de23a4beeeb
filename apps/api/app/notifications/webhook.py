"""Webhook delivery for scan notifications.

Each payload built by runner.engine.notify.build_notification is POSTed
as JSON to every configured URL in parallel. When a secret is set the
exact request body is signed with HMAC-SHA256 and sent as
``X-Webhook-Signature: sha256=<hex>``, so receivers can verify it the
same way GitHub webhooks are verified. verify_signature is the
receiver-side counterpart and is not used by the service itself.

Delivery is best-effort: failures are logged and reported in the
returned DeliveryResult list, never raised.
"""

import asyncio
import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx

from runner.store.records import utcnow

logger = logging.getLogger(__name__)

USER_AGENT = "repo-scan-service/0.1"


def sign_payload(body: bytes, secret: str) -> str:
    """Return the ``sha256=<hex>`` signature header value for body."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_signature(body: bytes, secret: str, signature_header: str) -> bool:
    """Receiver-side check of an X-Webhook-Signature header.

    For webhook consumers written in Python: pass the raw request body,
    the shared WEBHOOK_SECRET and the header value. Comparison is
    constant-time.
    """
    if not signature_header or not signature_header.startswith("sha256="):
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature_header)


@dataclass(frozen=True)
class DeliveryResult:
    url: str
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


class WebhookNotifier:
    def __init__(
        self,
        urls: Sequence[str],
        secret: str = "",
        timeout: float = 10.0,
    ):
        self.urls = [u for u in urls if u]
        self.secret = secret
        self.timeout = timeout

    @property
    def enabled(self) -> bool:
        return bool(self.urls)

    def _headers(self, event: str, body: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
            "X-Webhook-Event": event,
            "X-Webhook-Timestamp": utcnow().isoformat(),
        }
        if self.secret:
            headers["X-Webhook-Signature"] = sign_payload(body, self.secret)
        return headers

    async def _deliver(
        self,
        client: httpx.AsyncClient,
        url: str,
        body: bytes,
        headers: dict[str, str],
    ) -> DeliveryResult:
        try:
            response = await client.post(url, content=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery to %s failed: %s", url, exc)
            return DeliveryResult(url=url, success=False, error=str(exc) or type(exc).__name__)

        if response.is_success:
            return DeliveryResult(url=url, success=True, status_code=response.status_code)

        logger.warning("Webhook %s answered HTTP %d", url, response.status_code)
        return DeliveryResult(
            url=url,
            success=False,
            status_code=response.status_code,
            error=f"HTTP {response.status_code}: {response.text[:200]}",
        )

    async def notify(self, payload: dict) -> list[DeliveryResult]:
        """POST payload to every configured URL; never raises for delivery errors."""
        if not self.urls:
            return []

        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        headers = self._headers(str(payload.get("event", "")), body)

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            results = await asyncio.gather(
                *(self._deliver(client, url, body, headers) for url in self.urls)
            )

        delivered = sum(1 for r in results if r.success)
        logger.info(
            "Webhook %s for %s delivered to %d/%d endpoint(s)",
            payload.get("event"), payload.get("scanId"), delivered, len(results),
        )
        return list(results)
