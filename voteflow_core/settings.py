"""
Chain settings and transaction validity windows.

``ChainSettings`` mirrors the node's ``/api/v0/settings`` document: the fee
rules used to price a fragment and the slot timing used to turn a relative
validity window into an absolute block date.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional, Union


@dataclass(frozen=True)
class LinearFee:
    """fee = constant + coefficient * (inputs + outputs) + certificate fee"""
    constant: int = 0
    coefficient: int = 0
    certificate: int = 0
    vote_plan: int = 0
    vote_cast: int = 0

    def transaction_fee(self, inputs: int, outputs: int) -> int:
        return self.constant + self.coefficient * (inputs + outputs)

    def vote_cast_fee(self) -> int:
        # an account vote spends one input and produces no outputs
        return self.transaction_fee(1, 0) + (self.vote_cast or self.certificate)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LinearFee:
        per_vote = data.get("per_vote_certificate_fees") or {}
        return cls(
            constant=int(data.get("constant", 0)),
            coefficient=int(data.get("coefficient", 0)),
            certificate=int(data.get("certificate", 0)),
            vote_plan=int(per_vote.get("certificate_vote_plan", 0)),
            vote_cast=int(per_vote.get("certificate_vote_cast", 0)),
        )


@dataclass(frozen=True)
class ChainSettings:
    block0_hash: str = ""
    block0_time: float = 0.0          # unix seconds
    slot_duration: int = 1            # seconds
    slots_per_epoch: int = 60
    discrimination: str = "test"
    fees: LinearFee = field(default_factory=LinearFee)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ChainSettings:
        return cls(
            block0_hash=data.get("block0Hash", ""),
            block0_time=_parse_time(data.get("block0Time", 0)),
            slot_duration=int(data.get("slotDuration", 1)),
            slots_per_epoch=int(data.get("slotsPerEpoch", 60)),
            discrimination=str(data.get("discrimination", "test")).lower(),
            fees=LinearFee.from_dict(data.get("fees") or {}),
        )

    @property
    def testing(self) -> bool:
        return self.discrimination != "production"


def _parse_time(value: Union[str, int, float]) -> float:
    if isinstance(value, (int, float)):
        return float(value)
    text = value.replace("Z", "+00:00")
    dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


# ===================================================================
#  Block dates and validity windows
# ===================================================================

@dataclass(frozen=True, order=True)
class BlockDate:
    epoch: int
    slot: int

    @classmethod
    def from_slots(cls, absolute_slot: int, settings: ChainSettings) -> BlockDate:
        epoch, slot = divmod(max(absolute_slot, 0), settings.slots_per_epoch)
        return cls(epoch, slot)

    @classmethod
    def from_timestamp(cls, ts: float, settings: ChainSettings) -> BlockDate:
        elapsed = max(ts - settings.block0_time, 0.0)
        return cls.from_slots(int(elapsed // settings.slot_duration), settings)

    @classmethod
    def parse(cls, text: str) -> BlockDate:
        """Parse the node's ``"epoch.slot"`` notation."""
        epoch, _, slot = text.partition(".")
        return cls(int(epoch), int(slot or 0))

    def absolute_slot(self, settings: ChainSettings) -> int:
        return self.epoch * settings.slots_per_epoch + self.slot

    def shift_slots(self, slots: int, settings: ChainSettings) -> BlockDate:
        return BlockDate.from_slots(self.absolute_slot(settings) + slots, settings)

    def to_timestamp(self, settings: ChainSettings) -> float:
        """Wall-clock start of this block date (unix seconds)."""
        return settings.block0_time + self.absolute_slot(settings) * settings.slot_duration

    def __str__(self) -> str:
        return f"{self.epoch}.{self.slot}"


@dataclass(frozen=True)
class ByBlockDate:
    date: BlockDate

    def into_expiry_date(self, settings: ChainSettings,
                         now: Optional[float] = None) -> BlockDate:
        return self.date


@dataclass(frozen=True)
class BySlotShift:
    slots: int

    def into_expiry_date(self, settings: ChainSettings,
                         now: Optional[float] = None) -> BlockDate:
        current = BlockDate.from_timestamp(time.time() if now is None else now, settings)
        return current.shift_slots(self.slots, settings)


@dataclass(frozen=True)
class ByEpochShift:
    epochs: int

    def into_expiry_date(self, settings: ChainSettings,
                         now: Optional[float] = None) -> BlockDate:
        current = BlockDate.from_timestamp(time.time() if now is None else now, settings)
        return current.shift_slots(self.epochs * settings.slots_per_epoch, settings)


ValidUntil = Union[ByBlockDate, BySlotShift, ByEpochShift]

# what the wallet uses when the caller does not ask for a window
DEFAULT_VALID_UNTIL = ByEpochShift(1)


def resolve_expiry(valid_until: Optional[ValidUntil], settings: ChainSettings,
                   now: Optional[float] = None) -> BlockDate:
    """Turn a validity window into an absolute block date, once."""
    return (valid_until or DEFAULT_VALID_UNTIL).into_expiry_date(settings, now)
