"""
Submission engine: builds signed transactions against the local wallet
state and hands them to the ledger client.

Counter discipline is enforced through ``LocalWalletState.reserve``: every
transaction built here is signed with a freshly reserved counter, and a
reservation whose fragment never reaches the node is released again, so a
failed submission leaves the state exactly as it found it.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, Sequence, Union

from voteflow_core.backend import LedgerClient
from voteflow_core.errors import BackendError
from voteflow_core.proposal import Proposal, Vote
from voteflow_core.settings import BlockDate, ChainSettings, ValidUntil, resolve_expiry
from voteflow_core.state import LocalWalletState, Reservation
from voteflow_core.transaction import (
    Transaction,
    create_transfer,
    create_vote_cast,
    sign_transaction,
)
from voteflow_core.wallet import WalletIdentity

logger = logging.getLogger("voteflow.submission")

Choice = Union[str, int]


class SubmissionEngine:

    def __init__(self, identity: WalletIdentity, state: LocalWalletState,
                 backend: LedgerClient, settings: ChainSettings,
                 clock: Callable[[], float] = time.time):
        self.identity = identity
        self.state = state
        self.backend = backend
        self.settings = settings
        self.clock = clock

    # ---- raw fragments ----

    def send(self, fragment: bytes, reservation: Optional[Reservation] = None) -> str:
        """Submit one fragment and track it as pending."""
        try:
            fragment_id = self.backend.submit_fragment(fragment)
            self._check_new_ids([fragment_id])
        except BackendError:
            if reservation is not None:
                self.state.release(reservation)
            raise
        self.state.track(fragment_id, reservation)
        logger.info("Submitted fragment %s", fragment_id, extra={
            "fragment_id": fragment_id,
            "counter": reservation.counter if reservation else None,
        })
        return fragment_id

    def send_many(self, fragments: Sequence[bytes],
                  reservations: Optional[Sequence[Reservation]] = None) -> list[str]:
        """Submit a batch in one backend call; all are tracked or none are."""
        fragments = list(fragments)
        reservations = list(reservations or [])
        if reservations and len(reservations) != len(fragments):
            raise ValueError("one reservation per fragment is required")
        try:
            ids = self.backend.submit_fragments(fragments)
            if len(ids) != len(fragments):
                raise BackendError(
                    f"node accepted {len(ids)} of {len(fragments)} fragments"
                )
            self._check_new_ids(ids)
        except BackendError:
            for reservation in reversed(reservations):
                self.state.release(reservation)
            raise
        for i, fragment_id in enumerate(ids):
            self.state.track(fragment_id, reservations[i] if reservations else None)
        logger.info("Submitted batch of %d fragments", len(ids))
        return ids

    def _check_new_ids(self, ids: Sequence[str]) -> None:
        """Every id the node hands back must be fresh, or none is tracked."""
        if len(set(ids)) != len(ids):
            raise BackendError(f"node returned duplicate fragment ids: {list(ids)}")
        already = [i for i in ids if self.state.is_pending(i)]
        if already:
            raise BackendError(f"fragments already pending: {already}")

    # ---- builders ----

    def expiry(self, valid_until: Optional[ValidUntil]) -> BlockDate:
        return resolve_expiry(valid_until, self.settings, self.clock())

    def transfer(self, destination: str, value: int,
                 valid_until: Optional[ValidUntil] = None) -> str:
        fee = self.settings.fees.transaction_fee(1, 1)
        reservation = self.state.reserve(value + fee)
        try:
            tx = create_transfer(
                self.identity.account_id, destination, value, fee,
                reservation.counter, self.expiry(valid_until),
                self.settings.block0_hash,
            )
        except ValueError:
            self.state.release(reservation)
            raise
        return self._submit(tx, reservation)

    def vote(self, proposal: Proposal, choice: Choice,
             valid_until: Optional[ValidUntil] = None) -> str:
        """Cast one vote. Raises InvalidChoice for an unknown option."""
        ballot = _ballot(proposal, choice)
        tx, reservation = self._vote_transaction(ballot, self.expiry(valid_until))
        return self._submit(tx, reservation)

    def vote_batch(self, items: Sequence[tuple[Proposal, Choice]],
                   valid_until: Optional[ValidUntil] = None) -> list[str]:
        """Cast several votes sharing one absolute expiry, in one submission."""
        ballots = [_ballot(proposal, choice) for proposal, choice in items]
        if not ballots:
            return []
        expiry = self.expiry(valid_until)
        txs: list[Transaction] = []
        reservations: list[Reservation] = []
        for ballot in ballots:
            tx, reservation = self._vote_transaction(ballot, expiry)
            txs.append(tx)
            reservations.append(reservation)
        logger.info("Casting %d votes valid until %s", len(txs), expiry)
        return self.send_many([tx.to_bytes() for tx in txs], reservations)

    def _vote_transaction(self, ballot: Vote,
                          expiry: BlockDate) -> tuple[Transaction, Reservation]:
        fee = self.settings.fees.vote_cast_fee()
        reservation = self.state.reserve(fee)
        tx = create_vote_cast(
            self.identity.account_id,
            ballot.proposal.vote_plan_id,
            ballot.proposal.proposal_index,
            ballot.choice,
            fee,
            reservation.counter,
            expiry,
            self.settings.block0_hash,
        )
        sign_transaction(tx, self.identity)
        return tx, reservation

    def _submit(self, tx: Transaction, reservation: Reservation) -> str:
        if not tx.is_signed:
            sign_transaction(tx, self.identity)
        logger.debug("Signed %s with counter %d", tx.tx_type, tx.counter)
        return self.send(tx.to_bytes(), reservation)


def _ballot(proposal: Proposal, choice: Choice) -> Vote:
    if isinstance(choice, str):
        return Vote.for_label(proposal, choice)
    return Vote(proposal, choice)
