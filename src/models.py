#!/usr/bin/env python3
"""
Data types shared by the reward ingestion pipeline.

Amounts are integers (token base units) until the validator normalizes them;
from `ValidatedReward` onward they are `Decimal` display units.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


@dataclass(frozen=True)
class ScanWindow:
    """Inclusive block range queried in one cycle"""
    from_block: int
    to_block: int

    def __post_init__(self):
        if self.from_block > self.to_block:
            raise ValueError(f"Invalid scan window {self.from_block} > {self.to_block}")

    @property
    def size(self) -> int:
        return self.to_block - self.from_block + 1

    def batches(self, batch_size: int) -> Iterator[Tuple[int, int]]:
        """Split into consecutive inclusive ranges of at most `batch_size` blocks"""
        batch_size = max(1, int(batch_size))
        current = self.from_block
        while current <= self.to_block:
            end = min(current + batch_size - 1, self.to_block)
            yield current, end
            current = end + 1


@dataclass(frozen=True)
class RawEvent:
    tx_hash: str
    log_index: int
    contract_address: str
    args: Dict[str, Any]
    block_number: int


def event_key(event: RawEvent, mode: str = "tx_log") -> str:
    """Dedup identifier for one notifiable occurrence.

    `tx` keys on the transaction hash alone, `tx_log` adds the log index so
    batch distributions emitting several transfers in one transaction are
    notified individually.
    """
    tx_hash = event.tx_hash.lower()
    if mode == "tx":
        return tx_hash
    return f"{tx_hash}:{event.log_index}"


@dataclass(frozen=True)
class TokenMeta:
    symbol: str
    decimals: int
    is_fallback: bool = False


class AmountSource(Enum):
    AUTHORITATIVE = "authoritative"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class AmountResolution:
    raw_amount: int
    source: AmountSource

    @classmethod
    def authoritative(cls, raw_amount: int) -> "AmountResolution":
        return cls(raw_amount, AmountSource.AUTHORITATIVE)

    @classmethod
    def fallback(cls, raw_amount: int) -> "AmountResolution":
        return cls(raw_amount, AmountSource.FALLBACK)


@dataclass(frozen=True)
class ValidatedReward:
    recipient: str
    amount: Decimal
    source_tx_hash: str
    timestamp: datetime
    symbol: str
    block_number: int
    log_index: int
    amount_source: AmountSource


@dataclass(frozen=True)
class Rejected:
    reason: str
    event_key: str


@dataclass
class StatsSnapshot:
    total_distributed: Optional[Decimal] = None
    pool_balance: Optional[Decimal] = None
    holder_count: Optional[int] = None
    distributed_since_last: Optional[Decimal] = None
    failed_fields: List[str] = field(default_factory=list)

    def has_data(self) -> bool:
        return any(
            value is not None
            for value in (self.total_distributed, self.pool_balance, self.holder_count)
        )
