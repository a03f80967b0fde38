"""Per-symbol position gate and submission lock."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from core.clock import MonotonicFn, monotonic

log = logging.getLogger("sigexec.gate")

CooldownFn = Callable[[str], float]

REASON_OK = "ok"
REASON_POSITION_OPEN = "position_open"
REASON_COOLDOWN = "cooldown"


@dataclass(slots=True)
class GateState:
    can_open: bool = False
    locked: bool = False
    unlock_at: float = 0.0


@dataclass(slots=True)
class GateDecision:
    allow: bool
    reason: str


class _SymbolSlot:
    __slots__ = ("lock", "state")

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.state = GateState()


class SymbolGate:
    """Combines the position gate with a cooldown-released submission lock.

    The position gate starts blocked and only opens once a position sweep
    reports the symbol flat. The submission lock is acquired per signal and
    frees itself once its deadline passes; the deadline is evaluated lazily on
    the next acquisition attempt, so no timer threads are involved.
    """

    def __init__(self, cooldown: CooldownFn, *, clock: MonotonicFn = monotonic) -> None:
        self._cooldown = cooldown
        self._clock = clock
        self._slots: Dict[str, _SymbolSlot] = {}
        self._registry_lock = threading.Lock()

    def _slot(self, symbol: str) -> _SymbolSlot:
        slot = self._slots.get(symbol)
        if slot is None:
            with self._registry_lock:
                slot = self._slots.setdefault(symbol, _SymbolSlot())
        return slot

    # ------------------------------------------------------------------
    # position gate
    def can_open(self, symbol: str) -> bool:
        slot = self._slot(symbol)
        with slot.lock:
            return slot.state.can_open

    def block(self, symbol: str) -> None:
        slot = self._slot(symbol)
        with slot.lock:
            slot.state.can_open = False

    def reconcile(self, symbol: str, has_position: bool) -> None:
        """Apply the result of a position sweep to the position gate."""

        slot = self._slot(symbol)
        with slot.lock:
            previous = slot.state.can_open
            slot.state.can_open = not has_position
        if previous != (not has_position):
            log.info("gate.position_reconciled", extra={"symbol": symbol, "can_open": not has_position})

    # ------------------------------------------------------------------
    # submission lock
    def try_acquire(self, symbol: str) -> bool:
        slot = self._slot(symbol)
        now = self._clock()
        with slot.lock:
            state = slot.state
            if state.locked and now < state.unlock_at:
                return False
            state.locked = True
            # Deadline only moves forward within an attempt.
            state.unlock_at = max(state.unlock_at, now + float(self._cooldown(symbol)))
            return True

    def release(self, symbol: str) -> None:
        """Free the submission lock immediately (e.g. after a failed enqueue)."""

        slot = self._slot(symbol)
        with slot.lock:
            slot.state.locked = False
            slot.state.unlock_at = 0.0

    def is_locked(self, symbol: str) -> bool:
        slot = self._slot(symbol)
        now = self._clock()
        with slot.lock:
            return slot.state.locked and now < slot.state.unlock_at

    def admit(self, symbol: str) -> GateDecision:
        """Check the position gate, then acquire the submission lock."""

        if not self.can_open(symbol):
            return GateDecision(False, REASON_POSITION_OPEN)
        if not self.try_acquire(symbol):
            return GateDecision(False, REASON_COOLDOWN)
        return GateDecision(True, REASON_OK)

    def state(self, symbol: str) -> Optional[GateState]:
        slot = self._slots.get(symbol)
        if slot is None:
            return None
        with slot.lock:
            return GateState(slot.state.can_open, slot.state.locked, slot.state.unlock_at)


__all__ = ["GateDecision", "GateState", "SymbolGate"]
