"""General utilities: decimal rounding, percentage maths and order identifiers."""

from __future__ import annotations

import itertools
import secrets
import threading
import time
from decimal import ROUND_HALF_UP, Decimal

_HUNDRED = Decimal("100")

_ID_LOCK = threading.Lock()
_ID_COUNTER = itertools.count()
_LAST_ID_MS = 0
# random per process so two engines sharing an account never collide
_NODE = secrets.token_hex(3)


def quantize(value: Decimal, places: int) -> Decimal:
    """Round ``value`` to ``places`` decimals using HALF_UP."""

    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def change_percent(initial: Decimal, current: Decimal) -> Decimal:
    """Return ``(current - initial) / initial * 100`` rounded to two places."""

    if initial == 0:
        return Decimal("0.00")
    ratio = quantize((current - initial) / initial, 6)
    return quantize(ratio * _HUNDRED, 2)


def increase(price: Decimal, percent: Decimal, places: int) -> Decimal:
    return quantize(price * (1 + percent / _HUNDRED), places)


def decrease(price: Decimal, percent: Decimal, places: int) -> Decimal:
    return quantize(price * (1 - percent / _HUNDRED), places)


def new_client_order_id(prefix: str = "sx") -> str:
    """Return a unique, time-ordered client order id.

    Layout is ``prefix + epoch millis + random node + sequence``.
    """

    global _LAST_ID_MS
    with _ID_LOCK:
        now_ms = int(time.time() * 1000)
        if now_ms <= _LAST_ID_MS:
            now_ms = _LAST_ID_MS
        _LAST_ID_MS = now_ms
        seq = next(_ID_COUNTER) & 0xFFFF
    return f"{prefix}{now_ms:013d}{_NODE}{seq:04x}"
