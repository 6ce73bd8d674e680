"""
Exchanges - Request Logging.

============================================================
PURPOSE
============================================================
Masked DEBUG logging of every venue round trip plus INFO
logging of order lifecycle events.

API keys, signatures, passphrases and secrets never reach a
log line.

============================================================
"""

import hashlib
import json
import logging
import uuid
from typing import Any, Dict, Optional


logger = logging.getLogger(__name__)


# ============================================================
# SENSITIVE FIELDS
# ============================================================

SENSITIVE_HEADERS = frozenset({
    "x-mbx-apikey",
    "ok-access-key",
    "ok-access-sign",
    "ok-access-passphrase",
    "x-bapi-api-key",
    "x-bapi-sign",
    "key",
    "sign",
    "access-key",
    "access-sign",
    "access-passphrase",
})

SENSITIVE_PARAMS = frozenset({
    "signature",
    "sign",
    "apikey",
    "api_key",
    "secret",
    "passphrase",
})


# ============================================================
# MASKING
# ============================================================

def mask_value(value: str, show_chars: int = 4) -> str:
    """Keep the first few characters of a secret, hide the rest."""
    if not value or len(value) <= show_chars:
        return "***"
    return f"{value[:show_chars]}...***"


def mask_headers(headers: Optional[Dict[str, str]]) -> Dict[str, str]:
    return {
        key: mask_value(str(value)) if key.lower() in SENSITIVE_HEADERS else value
        for key, value in (headers or {}).items()
    }


def mask_params(params: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    masked: Dict[str, Any] = {}
    for key, value in (params or {}).items():
        if key.lower() in SENSITIVE_PARAMS:
            masked[key] = mask_value(str(value))
        elif isinstance(value, dict):
            masked[key] = mask_params(value)
        else:
            masked[key] = value
    return masked


def body_digest(body: Optional[str]) -> Optional[str]:
    """Short digest of a request body. Bodies are never logged verbatim."""
    if not body:
        return None
    return hashlib.sha256(body.encode()).hexdigest()[:16]


# ============================================================
# ADAPTER LOGGER
# ============================================================

class AdapterLogger:
    """Per-venue logger used by RestExchangeAdapter."""

    def __init__(self, venue: str):
        self.venue = venue
        self._logger = logging.getLogger(f"exchanges.{venue}")

    def log_request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        body: Optional[str] = None,
        attempt: int = 1,
    ) -> str:
        request_id = uuid.uuid4().hex[:12]
        if self._logger.isEnabledFor(logging.DEBUG):
            self._logger.debug(
                "request %s",
                json.dumps({
                    "venue": self.venue,
                    "request_id": request_id,
                    "method": method,
                    "path": path,
                    "attempt": attempt,
                    "params": mask_params(params),
                    "headers": mask_headers(headers),
                    "body_digest": body_digest(body),
                }, default=str),
            )
        return request_id

    def log_response(self, request_id: str, status: int, latency_ms: float) -> None:
        self._logger.debug(
            "response venue=%s request_id=%s status=%s latency_ms=%.1f",
            self.venue, request_id, status, latency_ms,
        )

    def log_retry(self, path: str, attempt: int, delay: float, error: Exception) -> None:
        self._logger.warning(
            "%s %s failed (attempt %d), retrying in %.1fs: %s",
            self.venue, path, attempt, delay, error,
        )

    def log_order(self, event: str, symbol: str, side: str, quantity: Any, order_id: str = "") -> None:
        self._logger.info(
            "order %s venue=%s symbol=%s side=%s qty=%s order_id=%s",
            event, self.venue, symbol, side, quantity, order_id,
        )
