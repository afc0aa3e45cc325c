"""
Governance proposals and the ballots a wallet can cast on them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from voteflow_core.errors import InvalidChoice


@dataclass(frozen=True)
class Proposal:
    """A voting item as published by the node's proposal endpoint.

    ``vote_options`` keeps the server's ordering: label -> ballot choice.
    """
    proposal_id: str
    vote_plan_id: str
    proposal_index: int
    vote_options: dict[str, int] = field(default_factory=dict)
    title: str = ""
    summary: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Proposal:
        options = data.get("chain_vote_options") or {}
        return cls(
            proposal_id=str(data.get("chain_proposal_id", data.get("proposal_id", ""))),
            vote_plan_id=str(data.get("chain_voteplan_id", "")),
            proposal_index=int(data.get("chain_proposal_index", 0)),
            vote_options={str(k): int(v) for k, v in options.items()},
            title=data.get("proposal_title", ""),
            summary=data.get("proposal_summary", ""),
        )

    def choice_for(self, label: str) -> int:
        """Numeric ballot choice for an option label."""
        try:
            return self.vote_options[label]
        except KeyError:
            raise InvalidChoice(label, self.vote_options) from None

    def has_choice(self, choice: int) -> bool:
        return choice in self.vote_options.values()

    def __str__(self) -> str:
        return f"#{self.proposal_id} [{self.title}] {self.summary}".rstrip()


@dataclass(frozen=True)
class Vote:
    """A proposal bound to exactly one of its ballot choices."""
    proposal: Proposal
    choice: int

    @classmethod
    def for_label(cls, proposal: Proposal, label: str) -> Vote:
        return cls(proposal, proposal.choice_for(label))

    def __post_init__(self):
        if not self.proposal.has_choice(self.choice):
            raise InvalidChoice(str(self.choice), self.proposal.vote_options)


@dataclass(frozen=True)
class VoteStatus:
    """Proposals of one vote plan that an account has already voted on."""
    vote_plan_id: str
    votes: tuple[int, ...] = ()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> VoteStatus:
        return cls(
            vote_plan_id=str(data.get("vote_plan_id", "")),
            votes=tuple(int(v) for v in data.get("votes", [])),
        )

    def __str__(self) -> str:
        return f"{self.vote_plan_id}: {list(self.votes)}"
