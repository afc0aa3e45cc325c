"""
Local wallet state and spending-counter discipline.

``LocalWalletState`` is the single source of truth, within one session, for

  - the spending counter the next transaction must be signed with,
  - the cached account balance,
  - the fragments submitted but not yet settled.

Every signed transaction first *reserves* a counter value and the value it
will spend.  A reservation is either released (never submitted), confirmed
(settled in a block) or rolled back (rejected by the node).  Rolled-back
counters go back into a pool and the lowest one is handed out next, so no
two outstanding fragments are ever signed with the same counter.

Nothing here performs I/O.  Misuse raises ``StateInvariantError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional

from voteflow_core.backend import AccountSnapshot
from voteflow_core.errors import StateInvariantError

logger = logging.getLogger("voteflow.state")


@dataclass(frozen=True)
class Reservation:
    """What one fragment consumed: a counter value and an amount.

    ``applied`` marks a reservation the node's balance already reflects
    (its counter is below a refreshed remote counter).
    """
    counter: Optional[int]
    value: int = 0
    applied: bool = False


class LocalWalletState:

    def __init__(self, counter: int = 0, balance: int = 0):
        if counter < 0:
            raise StateInvariantError("counter must be non-negative")
        self._next_counter = counter
        self._floor = counter             # lowest counter that may be reused
        self._released: set[int] = set()
        self._in_flight: set[int] = set()   # reserved, not yet settled
        self.balance = balance
        self.pending: dict[str, Reservation] = {}

    # ---- projections ----

    @property
    def counter(self) -> int:
        """Counter value the next reservation will use."""
        if self._released:
            return min(self._released)
        return self._next_counter

    def total_value(self) -> int:
        return self.balance

    def pending_ids(self) -> list[str]:
        return list(self.pending)

    def is_pending(self, fragment_id: str) -> bool:
        return fragment_id in self.pending

    # ---- reservations ----

    def reserve(self, value: int = 0) -> Reservation:
        """Claim the next counter value and deduct *value* from the balance."""
        if self._released:
            counter = min(self._released)
            self._released.discard(counter)
        else:
            counter = self._next_counter
            self._next_counter += 1
        if counter in self._in_flight:
            raise StateInvariantError(f"counter {counter} is already in flight")
        self._in_flight.add(counter)
        self.balance -= value
        return Reservation(counter, value)

    def release(self, reservation: Reservation) -> None:
        """Undo a reservation whose fragment never reached the node."""
        self._unwind(reservation)

    def track(self, fragment_id: str, reservation: Optional[Reservation] = None) -> None:
        """Record a submitted fragment as pending."""
        if fragment_id in self.pending:
            raise StateInvariantError(f"fragment {fragment_id} is already pending")
        self.pending[fragment_id] = reservation or Reservation(None)
        logger.debug("Tracking fragment %s (counter=%s)", fragment_id,
                     self.pending[fragment_id].counter)

    # ---- settlement ----

    def confirm(self, fragment_id: str) -> None:
        """Fragment settled in a block: forget it, keep its effects."""
        reservation = self.pending.pop(fragment_id, None)
        if reservation is None:
            return
        if reservation.counter is not None:
            self._in_flight.discard(reservation.counter)
        logger.debug("Confirmed fragment %s", fragment_id)

    def rollback(self, fragment_id: str) -> Optional[Reservation]:
        """Fragment rejected: forget it and give back what it reserved."""
        reservation = self.pending.pop(fragment_id, None)
        if reservation is None:
            return None
        self._unwind(reservation)
        logger.debug("Rolled back fragment %s (counter=%s, value=%d)",
                     fragment_id, reservation.counter, reservation.value)
        return reservation

    def confirm_all(self) -> None:
        for fragment_id in list(self.pending):
            self.confirm(fragment_id)

    def _unwind(self, reservation: Reservation) -> None:
        if not reservation.applied:
            self.balance += reservation.value
        counter = reservation.counter
        if counter is None:
            return
        if counter not in self._in_flight:
            raise StateInvariantError(f"counter {counter} was not reserved")
        self._in_flight.discard(counter)
        if counter < self._floor:
            return
        self._released.add(counter)
        # released values at the tip shrink the counter instead of leaving holes
        while self._next_counter - 1 in self._released:
            self._next_counter -= 1
            self._released.discard(self._next_counter)

    # ---- remote truth ----

    def refresh(self, snapshot: AccountSnapshot) -> None:
        """Fold a freshly fetched account snapshot into local state."""
        # fragments signed below the remote counter are already in snapshot.value
        for fragment_id, reservation in list(self.pending.items()):
            if (reservation.counter is not None and not reservation.applied
                    and reservation.counter < snapshot.counter):
                self.pending[fragment_id] = replace(reservation, applied=True)
        unapplied = sum(r.value for r in self.pending.values() if not r.applied)
        self.balance = snapshot.value - unapplied

        if not self.pending:
            self._next_counter = snapshot.counter
            self._floor = snapshot.counter
            self._released.clear()
            self._in_flight.clear()
        elif snapshot.counter > self._next_counter:
            # the node moved past everything we reserved; nothing in flight
            # can be reused, so jump ahead but keep tracking the fragments
            logger.warning(
                "Remote counter %d is ahead of local %d with %d fragments pending",
                snapshot.counter, self._next_counter, len(self.pending),
            )
            self._next_counter = snapshot.counter
            self._floor = snapshot.counter
            self._released.clear()
        elif snapshot.counter > self._floor:
            # counters below the remote one are spent on chain
            self._floor = snapshot.counter
            self._released = {c for c in self._released if c >= self._floor}
        logger.debug("Refreshed state: counter=%d balance=%d", self.counter, self.balance)

    def __repr__(self) -> str:
        return (f"LocalWalletState(counter={self.counter}, balance={self.balance}, "
                f"pending={len(self.pending)})")
