"""
Transaction builders for VoteFlow.

Two kinds of account transaction are produced:

  - **transfer**   move ``value`` from the wallet to ``destination``
  - **vote_cast**  cast ``choice`` on proposal ``proposal_index`` of
                   ``vote_plan_id``

Both carry the spending counter they were signed against and the block date
after which the node must drop them.  The signed body is canonical JSON
(sorted keys, no whitespace); the fragment bytes are that body plus the
public key and signature, and the fragment id is blake2b-256 of the bytes.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from voteflow_core.crypto_utils import fragment_id as compute_fragment_id
from voteflow_core.settings import BlockDate

TRANSFER = "transfer"
VOTE_CAST = "vote_cast"


@dataclass
class Transaction:
    tx_type: str
    account: str
    counter: int
    valid_until: BlockDate
    fee: int = 0
    value: int = 0
    destination: str = ""
    vote_plan_id: str = ""
    proposal_index: int = 0
    choice: int = 0
    block0_hash: str = ""

    public_key: bytes = field(default=b"", repr=False)
    signature: bytes = field(default=b"", repr=False)
    fragment_id: str = ""

    @property
    def cost(self) -> int:
        """Total value this transaction removes from the account."""
        return self.value + self.fee

    def body(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "type": self.tx_type,
            "account": self.account,
            "counter": self.counter,
            "fee": self.fee,
            "valid_until": str(self.valid_until),
            "block0": self.block0_hash,
        }
        if self.tx_type == TRANSFER:
            body["destination"] = self.destination
            body["value"] = self.value
        else:
            body["vote_plan_id"] = self.vote_plan_id
            body["proposal_index"] = self.proposal_index
            body["choice"] = self.choice
        return body

    def serialize_for_signing(self) -> bytes:
        return json.dumps(self.body(), sort_keys=True, separators=(",", ":")).encode()

    def apply_signature(self, public_key: bytes, signature: bytes) -> None:
        self.public_key = public_key
        self.signature = signature
        self.fragment_id = compute_fragment_id(self.to_bytes())

    @property
    def is_signed(self) -> bool:
        return bool(self.signature)

    def to_bytes(self) -> bytes:
        """Fragment bytes as submitted to the node."""
        if not self.signature:
            raise ValueError("transaction is not signed")
        envelope = {
            "body": self.body(),
            "public_key": self.public_key.hex(),
            "signature": self.signature.hex(),
        }
        return json.dumps(envelope, sort_keys=True, separators=(",", ":")).encode()

    def to_dict(self) -> dict[str, Any]:
        d = self.body()
        d["fragment_id"] = self.fragment_id
        return d

    @classmethod
    def from_bytes(cls, raw: bytes) -> Transaction:
        envelope = json.loads(raw)
        body = envelope["body"]
        tx = cls(
            tx_type=body["type"],
            account=body["account"],
            counter=int(body["counter"]),
            valid_until=BlockDate.parse(body["valid_until"]),
            fee=int(body.get("fee", 0)),
            value=int(body.get("value", 0)),
            destination=body.get("destination", ""),
            vote_plan_id=body.get("vote_plan_id", ""),
            proposal_index=int(body.get("proposal_index", 0)),
            choice=int(body.get("choice", 0)),
            block0_hash=body.get("block0", ""),
        )
        tx.apply_signature(bytes.fromhex(envelope["public_key"]),
                           bytes.fromhex(envelope["signature"]))
        return tx


def create_transfer(account: str, destination: str, value: int, fee: int,
                    counter: int, valid_until: BlockDate,
                    block0_hash: str = "") -> Transaction:
    if value <= 0:
        raise ValueError("transfer value must be positive")
    return Transaction(
        tx_type=TRANSFER,
        account=account,
        counter=counter,
        valid_until=valid_until,
        fee=fee,
        value=value,
        destination=destination,
        block0_hash=block0_hash,
    )


def create_vote_cast(account: str, vote_plan_id: str, proposal_index: int,
                     choice: int, fee: int, counter: int,
                     valid_until: BlockDate,
                     block0_hash: str = "") -> Transaction:
    return Transaction(
        tx_type=VOTE_CAST,
        account=account,
        counter=counter,
        valid_until=valid_until,
        fee=fee,
        vote_plan_id=vote_plan_id,
        proposal_index=proposal_index,
        choice=choice,
        block0_hash=block0_hash,
    )


def sign_transaction(tx: Transaction, identity: Any) -> Transaction:
    """Sign *tx* in place with *identity* (a WalletIdentity)."""
    sig = identity.sign(tx.serialize_for_signing())
    tx.apply_signature(identity.public_key, sig)
    return tx
