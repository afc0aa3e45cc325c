"""
Error taxonomy for VoteFlow.

Every failure the library can report is a subclass of ``VoteFlowError`` so
callers (a CLI, an interactive shell, a test harness) can catch the whole
family in one place and still match on the precise condition:

  - NotInitialized       operation needs a recovered/generated wallet
  - RecoveryFailed       identity input could not be turned into keys
      - MalformedKey       bech32 / extended key payload is invalid
      - InvalidWordCount   mnemonic has an unsupported number of words
  - UnknownProposal      no proposal matches the requested identifier
  - InvalidChoice        option label not offered by the proposal
  - BackendError         transport failure or remote rejection
  - PendingTooLong       reconciliation budget ran out
  - StateInvariantError  local bookkeeping was asked to do something impossible
"""

from __future__ import annotations

from typing import Iterable, Optional


class VoteFlowError(Exception):
    """Base class for all VoteFlow errors."""


class NotInitialized(VoteFlowError):
    def __init__(self, operation: str = ""):
        self.operation = operation
        msg = "wallet not recovered or generated"
        if operation:
            msg = f"{msg} (required by '{operation}')"
        super().__init__(msg)


class RecoveryFailed(VoteFlowError):
    """The supplied recovery input could not produce key material."""


class MalformedKey(RecoveryFailed):
    """A bech32 string or extended key payload is not well formed."""


class InvalidWordCount(RecoveryFailed):
    def __init__(self, count: int, supported: Iterable[int]):
        self.count = count
        self.supported = tuple(supported)
        super().__init__(
            f"unsupported mnemonic length {count}: expected one of "
            f"{'/'.join(str(n) for n in self.supported)} words"
        )


class UnknownProposal(VoteFlowError):
    def __init__(self, proposal_id: str):
        self.proposal_id = proposal_id
        super().__init__(f"cannot find proposal: {proposal_id}")


class InvalidChoice(VoteFlowError):
    def __init__(self, choice: str, options: Iterable[str]):
        self.choice = choice
        self.options = tuple(options)
        super().__init__(
            f"wrong choice '{choice}': expected one of {list(self.options)}"
        )


class BackendError(VoteFlowError):
    """The ledger node could not be reached or refused the request."""

    def __init__(self, message: str, status_code: Optional[int] = None,
                 body: str = ""):
        self.status_code = status_code
        self.body = body
        if status_code is not None:
            message = f"{message} (HTTP {status_code})"
        super().__init__(message)


class PendingTooLong(VoteFlowError):
    def __init__(self, fragment_ids: Iterable[str]):
        self.fragment_ids = list(fragment_ids)
        super().__init__(
            f"transactions with ids {self.fragment_ids} were pending for too long"
        )


class StateInvariantError(VoteFlowError):
    """Local wallet bookkeeping was driven into an impossible state."""
