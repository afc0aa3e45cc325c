"""
Reconciliation loop: folds the node's fragment log back into local state.

Per fragment the state machine is ``Pending -> {InABlock, Rejected}``; both
outcomes are terminal.  ``InABlock`` confirms the fragment, ``Rejected``
rolls its reservation back, and fragments the node has not logged yet stay
pending.  The loop polls until nothing is pending or the retry budget is
spent, sleeping between polls; the budget only ever shrinks.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from voteflow_core.backend import FragmentState, LedgerClient
from voteflow_core.errors import BackendError, PendingTooLong
from voteflow_core.state import LocalWalletState

logger = logging.getLogger("voteflow.reconcile")

DEFAULT_POLL_INTERVAL = 1.0
DEFAULT_RETRY_BUDGET = 60


class Reconciler:

    def __init__(self, state: LocalWalletState, backend: LedgerClient,
                 sleep: Callable[[float], None] = time.sleep):
        self.state = state
        self.backend = backend
        self.sleep = sleep

    def poll_once(self) -> tuple[list[str], list[str]]:
        """One pass over the fragment log. Returns (confirmed, rejected) ids."""
        ids = self.state.pending_ids()
        if not ids:
            return [], []
        logs = self.backend.get_fragment_logs()
        confirmed: list[str] = []
        rejected: list[str] = []
        for fragment_id in ids:
            log = logs.get(fragment_id)
            if log is None:
                continue
            if log.status.state is FragmentState.IN_A_BLOCK:
                self.state.confirm(fragment_id)
                confirmed.append(fragment_id)
            elif log.status.state is FragmentState.REJECTED:
                self.state.rollback(fragment_id)
                rejected.append(fragment_id)
                logger.warning("Fragment %s rejected: %s", fragment_id, log.status.reason,
                               extra={"fragment_id": fragment_id})
        if confirmed or rejected:
            logger.info("Reconciled %d confirmed, %d rejected, %d still pending",
                        len(confirmed), len(rejected), len(self.state.pending))
        return confirmed, rejected

    def wait_for_pending_transactions(
        self,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        retry_budget: int = DEFAULT_RETRY_BUDGET,
        cancel: Optional[threading.Event] = None,
    ) -> None:
        """Block until every pending fragment is settled.

        Raises PendingTooLong naming the outstanding fragment ids when the
        budget runs out (or *cancel* is set) before that happens.
        """
        if not self.state.pending:
            return

        budget = retry_budget
        while True:
            try:
                self.poll_once()
            except BackendError as exc:
                logger.warning("Fragment log unavailable, will retry: %s", exc)

            if not self.state.pending:
                return

            if budget <= 0 or (cancel is not None and cancel.is_set()):
                raise PendingTooLong(self.state.pending_ids())

            self.sleep(poll_interval)
            budget -= 1
