"""Notification helpers for operational alerts."""

from __future__ import annotations

import json
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Mapping, Optional

import requests

log = logging.getLogger("sigexec.alerts")


def _audit_path() -> Path:
    directory = Path(os.getenv("AUDIT_LOG_DIR", "logs"))
    directory.mkdir(parents=True, exist_ok=True)
    return directory / os.getenv("AUDIT_LOG_FILE", "audit.log")


def _webhook_url() -> Optional[str]:
    return os.getenv("ALERT_WEBHOOK_URL")


def send_webhook(text: str) -> bool:
    """Send ``text`` to the configured chat webhook.

    Returns ``True`` when the POST succeeds and ``False`` when skipped or failed.
    Missing webhook configuration is treated as a no-op.
    """

    url = _webhook_url()
    if not url:
        log.debug("ALERT_WEBHOOK_URL not configured; skipping alert")
        return False

    try:
        response = requests.post(url, json={"text": text}, timeout=5)
    except requests.RequestException:
        log.exception("failed to send webhook alert")
        return False

    if 200 <= response.status_code < 300:
        return True

    log.warning("alert webhook responded with status %s", response.status_code)
    return False


def notify_order_opened(
    *,
    symbol: str,
    side: str,
    size: Decimal,
    price: Decimal,
    stop_loss: Decimal,
    order_id: str,
    source: str = "",
) -> bool:
    text = (
        f"[{source or 'signal'}] opened {side} {size} {symbol} @ ~{price} "
        f"(stop {stop_loss}, order {order_id})"
    )
    return send_webhook(text)


def audit_log(payload: Mapping[str, object]) -> None:
    """Append ``payload`` as a JSON line to the audit log."""

    try:
        path = _audit_path()
        with path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(dict(payload), sort_keys=True, default=str) + "\n")
    except OSError:
        log.exception("failed to write audit log entry")
