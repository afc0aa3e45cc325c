"""
Ledger client: the wallet's only window onto the remote node.

``LedgerClient`` is the protocol the rest of the library depends on;
``RestLedgerClient`` implements it over the node's REST API with a blocking
``requests.Session``.  Every transport problem, non-2xx answer or
undecodable body is reported as ``BackendError``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Protocol

import requests

from voteflow_core.errors import BackendError
from voteflow_core.proposal import Proposal, VoteStatus
from voteflow_core.settings import BlockDate, ChainSettings

logger = logging.getLogger("voteflow.backend")


# ===================================================================
#  Remote data model
# ===================================================================

@dataclass(frozen=True)
class AccountSnapshot:
    """Account state as the node currently sees it."""
    value: int
    counter: int
    delegation: Any = None
    last_rewards: Any = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AccountSnapshot:
        counter = data.get("counter")
        if counter is None:
            # multi-lane nodes report one counter per lane; lane 0 is ours
            counters = data.get("counters") or [0]
            counter = counters[0]
        return cls(
            value=int(data.get("value", 0)),
            counter=int(counter),
            delegation=data.get("delegation"),
            last_rewards=data.get("last_rewards"),
        )


class FragmentState(Enum):
    PENDING = "Pending"
    IN_A_BLOCK = "InABlock"
    REJECTED = "Rejected"


@dataclass(frozen=True)
class FragmentStatus:
    state: FragmentState
    reason: str = ""
    date: Optional[BlockDate] = None
    block: str = ""

    @classmethod
    def from_json(cls, raw: Any) -> FragmentStatus:
        if isinstance(raw, str):
            return cls(FragmentState(raw))
        if isinstance(raw, dict) and len(raw) == 1:
            (name, detail), = raw.items()
            detail = detail or {}
            state = FragmentState(name)
            if state is FragmentState.REJECTED:
                return cls(state, reason=str(detail.get("reason", "")))
            if state is FragmentState.IN_A_BLOCK:
                date = detail.get("date")
                return cls(
                    state,
                    date=BlockDate.parse(date) if date else None,
                    block=str(detail.get("block", "")),
                )
            return cls(state)
        raise ValueError(f"unrecognised fragment status: {raw!r}")

    @property
    def is_terminal(self) -> bool:
        return self.state is not FragmentState.PENDING

    def __str__(self) -> str:
        if self.state is FragmentState.REJECTED:
            return f"Rejected({self.reason})"
        if self.state is FragmentState.IN_A_BLOCK:
            return f"InABlock({self.date}, {self.block})"
        return "Pending"


@dataclass(frozen=True)
class FragmentLog:
    fragment_id: str
    status: FragmentStatus
    received_from: str = ""
    received_at: str = ""
    last_updated_at: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FragmentLog:
        return cls(
            fragment_id=str(data["fragment_id"]),
            status=FragmentStatus.from_json(data.get("status", "Pending")),
            received_from=str(data.get("received_from", "")),
            received_at=str(data.get("received_at", "")),
            last_updated_at=str(data.get("last_updated_at", "")),
        )


class LedgerClient(Protocol):
    """Blocking request/response access to a ledger node."""

    def get_settings(self) -> ChainSettings: ...

    def get_account_state(self, account_id: str) -> AccountSnapshot: ...

    def submit_fragment(self, fragment: bytes) -> str: ...

    def submit_fragments(self, fragments: list[bytes]) -> list[str]: ...

    def get_fragment_logs(self) -> dict[str, FragmentLog]: ...

    def list_proposals(self) -> list[Proposal]: ...

    def get_vote_statuses(self, account_id: str) -> list[VoteStatus]: ...


# ===================================================================
#  REST implementation
# ===================================================================

@dataclass
class RestSettings:
    use_https_for_post: bool = False
    enable_debug: bool = False
    timeout: float = 30.0
    headers: dict[str, str] = field(default_factory=dict)


class RestLedgerClient:
    """LedgerClient over the node's HTTP API."""

    def __init__(self, address: str, settings: Optional[RestSettings] = None,
                 session: Optional[requests.Session] = None):
        if "://" not in address:
            address = f"http://{address}"
        self.address = address.rstrip("/")
        self.settings = settings or RestSettings()
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})
        self.session.headers.update(self.settings.headers)

    # ---- plumbing ----

    def _url(self, path: str, post: bool = False) -> str:
        url = f"{self.address}{path}"
        if post and self.settings.use_https_for_post and url.startswith("http://"):
            url = "https://" + url[len("http://"):]
        return url

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        url = self._url(path, post=(method == "POST"))
        if self.settings.enable_debug:
            logger.debug("%s %s %s", method, url, kwargs.get("json", ""))
        try:
            resp = self.session.request(method, url, timeout=self.settings.timeout, **kwargs)
        except requests.RequestException as exc:
            raise BackendError(f"{method} {url} failed: {exc}") from exc
        if self.settings.enable_debug:
            logger.debug("%s %s -> %d %s", method, url, resp.status_code, resp.text)
        if not resp.ok:
            raise BackendError(f"{method} {url} refused", resp.status_code, resp.text)
        return resp

    def _get_json(self, path: str) -> Any:
        resp = self._request("GET", path)
        try:
            return resp.json()
        except ValueError as exc:
            raise BackendError(f"GET {path} returned invalid JSON",
                               resp.status_code, resp.text) from exc

    # ---- LedgerClient ----

    def get_settings(self) -> ChainSettings:
        data = self._get_json("/api/v0/settings")
        try:
            return ChainSettings.from_dict(data)
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"malformed settings document: {exc}") from exc

    def get_account_state(self, account_id: str) -> AccountSnapshot:
        data = self._get_json(f"/api/v0/account/{account_id}")
        try:
            return AccountSnapshot.from_dict(data)
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"malformed account state: {exc}") from exc

    def submit_fragment(self, fragment: bytes) -> str:
        resp = self._request(
            "POST", "/api/v0/message", data=fragment,
            headers={"Content-Type": "application/octet-stream"},
        )
        return resp.text.strip().strip('"')

    def submit_fragments(self, fragments: list[bytes]) -> list[str]:
        if not fragments:
            return []
        resp = self._request(
            "POST", "/api/v1/fragments",
            json={"fail_fast": True, "fragments": [f.hex() for f in fragments]},
        )
        try:
            summary = resp.json()
        except ValueError as exc:
            raise BackendError("fragment batch returned invalid JSON",
                               resp.status_code, resp.text) from exc
        rejected = summary.get("rejected") or []
        if rejected:
            raise BackendError(
                f"{len(rejected)} of {len(fragments)} fragments rejected at submission",
                resp.status_code, resp.text,
            )
        return [str(i) for i in summary.get("accepted", [])]

    def get_fragment_logs(self) -> dict[str, FragmentLog]:
        data = self._get_json("/api/v0/fragment/logs")
        logs: dict[str, FragmentLog] = {}
        try:
            for entry in data:
                log = FragmentLog.from_dict(entry)
                logs[log.fragment_id] = log
        except (KeyError, TypeError, ValueError) as exc:
            raise BackendError(f"malformed fragment log: {exc}") from exc
        return logs

    def list_proposals(self) -> list[Proposal]:
        data = self._get_json("/api/v0/proposals")
        try:
            return [Proposal.from_dict(p) for p in data]
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"malformed proposal list: {exc}") from exc

    def get_vote_statuses(self, account_id: str) -> list[VoteStatus]:
        data = self._get_json(f"/api/v1/votes/plan/account-votes/{account_id}")
        try:
            return [VoteStatus.from_dict(v) for v in data]
        except (AttributeError, TypeError, ValueError) as exc:
            raise BackendError(f"malformed vote status list: {exc}") from exc

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> RestLedgerClient:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"RestLedgerClient({self.address})"
