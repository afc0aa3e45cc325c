"""
Shared pytest fixtures for the VoteFlow test suite.
"""

import pytest

from voteflow_core.backend import (
    AccountSnapshot,
    FragmentLog,
    FragmentState,
    FragmentStatus,
)
from voteflow_core.controller import Controller
from voteflow_core.crypto_utils import fragment_id
from voteflow_core.errors import BackendError
from voteflow_core.proposal import Proposal, VoteStatus
from voteflow_core.settings import ChainSettings, LinearFee
from voteflow_core.state import LocalWalletState
from voteflow_core.submission import SubmissionEngine
from voteflow_core.wallet import KeyMaterial, WalletIdentity

BLOCK0_TIME = 1_700_000_000.0
# 1000 s after block 0 with 2 s slots and 60 slots/epoch -> epoch 8, slot 20
NOW = BLOCK0_TIME + 1000.0

TEST_MNEMONIC = " ".join(["abandon"] * 11 + ["about"])


class FakeLedger:
    """In-memory LedgerClient with scriptable fragment statuses."""

    def __init__(self, settings=None):
        self.settings = settings or ChainSettings(
            block0_hash="ab" * 32,
            block0_time=BLOCK0_TIME,
            slot_duration=2,
            slots_per_epoch=60,
            fees=LinearFee(constant=2, coefficient=1, vote_cast=3),
        )
        self.accounts: dict[str, AccountSnapshot] = {}
        self.proposals: list[Proposal] = []
        self.vote_statuses: dict[str, list[VoteStatus]] = {}
        self.statuses: dict[str, FragmentStatus] = {}
        self.submitted: list[bytes] = []
        self.calls: list[str] = []
        self.fail_submit = False
        self.fail_logs = 0           # number of upcoming log queries that fail
        self.log_submissions = True  # new fragments appear in the log as Pending

    # ---- scripting helpers ----

    def set_status(self, fid, state, reason=""):
        self.statuses[fid] = FragmentStatus(state, reason=reason)

    def accept(self, *ids):
        for fid in ids:
            self.set_status(fid, FragmentState.IN_A_BLOCK)

    def reject(self, *ids, reason="counter mismatch"):
        for fid in ids:
            self.set_status(fid, FragmentState.REJECTED, reason)

    # ---- LedgerClient ----

    def get_settings(self):
        self.calls.append("get_settings")
        return self.settings

    def get_account_state(self, account_id):
        self.calls.append("get_account_state")
        try:
            return self.accounts[account_id]
        except KeyError:
            raise BackendError("account not found", 404) from None

    def _accept_fragment(self, fragment):
        fid = fragment_id(fragment)
        self.submitted.append(fragment)
        if self.log_submissions:
            self.statuses.setdefault(fid, FragmentStatus(FragmentState.PENDING))
        return fid

    def submit_fragment(self, fragment):
        self.calls.append("submit_fragment")
        if self.fail_submit:
            raise BackendError("fragment refused", 400, "invalid signature")
        return self._accept_fragment(fragment)

    def submit_fragments(self, fragments):
        self.calls.append("submit_fragments")
        if self.fail_submit:
            raise BackendError("batch refused", 400)
        return [self._accept_fragment(f) for f in fragments]

    def get_fragment_logs(self):
        self.calls.append("get_fragment_logs")
        if self.fail_logs:
            self.fail_logs -= 1
            raise BackendError("logs unavailable", 503)
        return {fid: FragmentLog(fid, status) for fid, status in self.statuses.items()}

    def list_proposals(self):
        self.calls.append("list_proposals")
        return list(self.proposals)

    def get_vote_statuses(self, account_id):
        self.calls.append("get_vote_statuses")
        return self.vote_statuses.get(account_id, [])


def make_proposal(i, options=None):
    return Proposal(
        proposal_id=f"{i:064x}",
        vote_plan_id="cd" * 32,
        proposal_index=i,
        vote_options=dict(options or {"yes": 0, "no": 1}),
        title=f"Proposal {i}",
    )


@pytest.fixture
def ledger():
    """Fake node with 20 proposals."""
    node = FakeLedger()
    node.proposals = [make_proposal(i) for i in range(20)]
    return node


@pytest.fixture
def identity():
    """Deterministic wallet identity."""
    return WalletIdentity.from_key_material(KeyMaterial(bytes(range(1, 33)), bytes(32)))


@pytest.fixture
def state():
    return LocalWalletState(counter=0, balance=10_000)


@pytest.fixture
def engine(identity, state, ledger):
    return SubmissionEngine(identity, state, ledger, ledger.settings, clock=lambda: NOW)


@pytest.fixture
def sleeps():
    """Records every sleep the reconciler asks for."""
    return []


@pytest.fixture
def controller(ledger, sleeps):
    """Controller recovered from the test mnemonic and funded with 10k."""
    ctrl = Controller(ledger, poll_interval=0.5, retry_budget=3,
                      clock=lambda: NOW, sleep=sleeps.append)
    ctrl.recover_from_mnemonic(TEST_MNEMONIC)
    ledger.accounts[ctrl.account_id()] = AccountSnapshot(value=10_000, counter=0)
    ctrl.refresh_state()
    return ctrl
