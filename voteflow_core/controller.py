"""
Controller: the façade a CLI or interactive shell drives.

Composes identity recovery, local wallet state, the submission engine and
the reconciliation loop around one swappable ledger client.  Operations that
need a wallet raise ``NotInitialized`` until one has been recovered or
generated.  Every public call runs inside a single re-entrant lock so the
counter and the pending set always change together.
"""

from __future__ import annotations

import functools
import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Sequence, Union

from voteflow_core.backend import (
    AccountSnapshot,
    FragmentLog,
    LedgerClient,
    RestLedgerClient,
    RestSettings,
)
from voteflow_core.config import VoteFlowConfig, load_config
from voteflow_core.errors import NotInitialized, UnknownProposal
from voteflow_core.logging_config import setup_from_config
from voteflow_core.proposal import Proposal, VoteStatus
from voteflow_core.reconcile import DEFAULT_POLL_INTERVAL, DEFAULT_RETRY_BUDGET, Reconciler
from voteflow_core.recovery import (
    IdentitySource,
    MnemonicSource,
    QrSource,
    SecretKeySource,
    derive,
    generate,
)
from voteflow_core.settings import BySlotShift, ChainSettings, ValidUntil
from voteflow_core.state import LocalWalletState
from voteflow_core.submission import Choice, SubmissionEngine
from voteflow_core.wallet import WalletIdentity

logger = logging.getLogger("voteflow.controller")


def _locked(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            return method(self, *args, **kwargs)
    return wrapper


def _requires_wallet(method):
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        with self._lock:
            if self._identity is None:
                raise NotInitialized(method.__name__)
            return method(self, *args, **kwargs)
    return wrapper


class Controller:

    def __init__(self, backend: LedgerClient,
                 poll_interval: float = DEFAULT_POLL_INTERVAL,
                 retry_budget: int = DEFAULT_RETRY_BUDGET,
                 default_valid_until: Optional[ValidUntil] = None,
                 hd_account: int = 0,
                 hd_index: int = 0,
                 discrimination: Optional[str] = None,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], None] = time.sleep):
        self._lock = threading.RLock()
        self._backend = backend
        self._identity: Optional[WalletIdentity] = None
        self._settings: Optional[ChainSettings] = None
        self._state = LocalWalletState()
        self._engine: Optional[SubmissionEngine] = None
        self._reconciler = Reconciler(self._state, backend, sleep=sleep)
        self.poll_interval = poll_interval
        self.retry_budget = retry_budget
        self.default_valid_until = default_valid_until
        self.hd_account = hd_account
        self.hd_index = hd_index
        if discrimination not in (None, "test", "production"):
            raise ValueError(f"unknown address discrimination: {discrimination!r}")
        self.discrimination = discrimination
        self._clock = clock
        self.mnemonic: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: VoteFlowConfig, **kwargs) -> Controller:
        backend = RestLedgerClient(
            cfg.backend.address,
            RestSettings(
                use_https_for_post=cfg.backend.use_https_for_post,
                enable_debug=cfg.backend.enable_debug,
                timeout=cfg.backend.timeout_seconds,
            ),
        )
        valid_until = None
        if cfg.wallet.default_valid_until_slots:
            valid_until = BySlotShift(cfg.wallet.default_valid_until_slots)
        return cls(
            backend,
            poll_interval=cfg.reconcile.poll_interval_seconds,
            retry_budget=cfg.reconcile.retry_budget,
            default_valid_until=valid_until,
            hd_account=cfg.wallet.account,
            hd_index=cfg.wallet.index,
            discrimination=cfg.wallet.discrimination,
            **kwargs,
        )

    # ---- identity ----

    @_locked
    def recover(self, source: IdentitySource) -> WalletIdentity:
        """Recover a wallet from any identity source and start a fresh session."""
        identity = derive(source)
        self._start_session(identity)
        return identity

    def recover_from_mnemonic(self, words: str, password: str = "",
                              account: Optional[int] = None,
                              index: Optional[int] = None) -> WalletIdentity:
        return self.recover(MnemonicSource(
            words, password,
            self.hd_account if account is None else account,
            self.hd_index if index is None else index,
        ))

    def recover_from_qr(self, image: Union[str, Path], pin: str) -> WalletIdentity:
        return self.recover(QrSource(pin=pin, image=Path(image)))

    def recover_from_secret_key(self, path: Union[str, Path]) -> WalletIdentity:
        return self.recover(SecretKeySource(Path(path)))

    @_locked
    def generate(self, word_count: int = 24) -> str:
        """Create a new wallet; returns its mnemonic phrase."""
        phrase, identity = generate(word_count)
        self._start_session(identity)
        self.mnemonic = phrase
        return phrase

    def _start_session(self, identity: WalletIdentity) -> None:
        settings = self._backend.get_settings()
        self._identity = identity
        self._settings = settings
        self._state = LocalWalletState()
        self._reconciler.state = self._state
        self._engine = SubmissionEngine(identity, self._state, self._backend,
                                        settings, clock=self._clock)
        self.mnemonic = None
        logger.info("Wallet session started for %s", identity.account_id[:16],
                    extra={"account": identity.account_id})

    @property
    def is_initialized(self) -> bool:
        return self._identity is not None

    @property
    @_requires_wallet
    def identity(self) -> WalletIdentity:
        return self._identity

    @_requires_wallet
    def account_id(self) -> str:
        return self._identity.account_id

    @_requires_wallet
    def account_address(self, testing: Optional[bool] = None) -> str:
        if testing is None and self.discrimination is not None:
            testing = self.discrimination == "test"
        if testing is None:
            testing = self._settings.testing
        return self._identity.address(testing)

    # ---- backend ----

    @property
    def backend(self) -> LedgerClient:
        return self._backend

    @_locked
    def switch_backend(self, backend: LedgerClient) -> None:
        """Rebind to another node, keeping the wallet and pending fragments."""
        if self._state.pending:
            logger.warning(
                "Switching backend with %d pending fragments; their ids may be "
                "unknown to %r", len(self._state.pending), backend,
            )
        self._backend = backend
        self._reconciler.backend = backend
        if self._engine is not None:
            self._engine.backend = backend
        logger.info("Switched backend to %r", backend)

    @_requires_wallet
    def settings(self) -> ChainSettings:
        return self._settings

    # ---- account ----

    @_requires_wallet
    def get_account_state(self) -> AccountSnapshot:
        return self._backend.get_account_state(self._identity.account_id)

    @_requires_wallet
    def refresh_state(self) -> AccountSnapshot:
        snapshot = self.get_account_state()
        self._state.refresh(snapshot)
        return snapshot

    @_requires_wallet
    def total_value(self) -> int:
        return self._state.total_value()

    @_requires_wallet
    def spending_counter(self) -> int:
        return self._state.counter

    # ---- governance ----

    @_requires_wallet
    def get_proposals(self) -> list[Proposal]:
        return self._backend.list_proposals()

    @_requires_wallet
    def active_votes(self) -> list[VoteStatus]:
        return self._backend.get_vote_statuses(self._identity.account_id)

    @_requires_wallet
    def find_proposal(self, proposal_id: str) -> Proposal:
        for proposal in self.get_proposals():
            if proposal.proposal_id == proposal_id:
                return proposal
        raise UnknownProposal(proposal_id)

    @_requires_wallet
    def vote(self, proposal: Union[Proposal, str], choice: Choice,
             valid_until: Optional[ValidUntil] = None) -> str:
        """Vote on a proposal (object or chain proposal id) with an option label."""
        if isinstance(proposal, str):
            proposal = self.find_proposal(proposal)
        return self._engine.vote(proposal, choice, valid_until or self.default_valid_until)

    @_requires_wallet
    def vote_for(self, vote_plan_id: str, proposal_index: int, choice: int,
                 valid_until: Optional[ValidUntil] = None) -> str:
        """Vote by vote plan id and proposal index with a numeric choice."""
        for proposal in self.get_proposals():
            if (proposal.vote_plan_id == vote_plan_id
                    and proposal.proposal_index == proposal_index):
                return self._engine.vote(proposal, choice,
                                         valid_until or self.default_valid_until)
        raise UnknownProposal(f"voteplan({vote_plan_id}) index({proposal_index})")

    @_requires_wallet
    def votes_batch(self, votes: Sequence[tuple[Union[Proposal, str], Choice]],
                    valid_until: Optional[ValidUntil] = None) -> list[str]:
        items: list[tuple[Proposal, Choice]] = []
        proposals: Optional[dict[str, Proposal]] = None
        for proposal, choice in votes:
            if isinstance(proposal, str):
                if proposals is None:
                    proposals = {p.proposal_id: p for p in self.get_proposals()}
                if proposal not in proposals:
                    raise UnknownProposal(proposal)
                proposal = proposals[proposal]
            items.append((proposal, choice))
        return self._engine.vote_batch(items, valid_until or self.default_valid_until)

    # ---- transfers and raw fragments ----

    @_requires_wallet
    def transfer(self, destination: str, value: int,
                 valid_until: Optional[ValidUntil] = None) -> str:
        return self._engine.transfer(destination, value,
                                     valid_until or self.default_valid_until)

    @_requires_wallet
    def send_fragment(self, fragment: bytes) -> str:
        return self._engine.send(fragment)

    @_requires_wallet
    def send_fragments(self, fragments: Sequence[bytes]) -> list[str]:
        return self._engine.send_many(fragments)

    # ---- pending fragments ----

    @_requires_wallet
    def pending_transactions(self) -> list[str]:
        return self._state.pending_ids()

    @_requires_wallet
    def fragment_logs(self) -> dict[str, FragmentLog]:
        return self._backend.get_fragment_logs()

    @_requires_wallet
    def confirm_transaction(self, fragment_id: str) -> None:
        self._state.confirm(fragment_id)

    @_requires_wallet
    def remove_pending_transaction(self, fragment_id: str) -> None:
        self._state.rollback(fragment_id)

    @_requires_wallet
    def confirm_all_transactions(self) -> None:
        self._state.confirm_all()

    @_requires_wallet
    def wait_for_pending_transactions(self, poll_interval: Optional[float] = None,
                                      retry_budget: Optional[int] = None,
                                      cancel: Optional[threading.Event] = None) -> None:
        self._reconciler.wait_for_pending_transactions(
            self.poll_interval if poll_interval is None else poll_interval,
            self.retry_budget if retry_budget is None else retry_budget,
            cancel=cancel,
        )

    def __repr__(self) -> str:
        who = self._identity.account_id[:16] if self._identity else "uninitialised"
        return f"Controller({who}, {self._backend!r})"


def open_controller(path: Optional[str] = None, **kwargs) -> Controller:
    """
    Entry point for a wallet process: load ``path`` (plus ``VOTEFLOW_*``
    overrides), install logging from its ``[logging]`` section and return a
    Controller bound to the configured node.
    """
    cfg = load_config(path)
    setup_from_config(cfg)
    logger.info("Using ledger node %s", cfg.backend.address)
    return Controller.from_config(cfg, **kwargs)
