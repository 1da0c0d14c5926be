#!/usr/bin/env python3
"""
Event Validator

Turns a decoded reward event into a `ValidatedReward` or a `Rejected`:

1. zero-value transfers are rejected outright
2. the distributed amount is read back from the contract when possible,
   otherwise the event's own value is used
3. the integer amount is normalized with the reward token's decimals
4. dust below the minimum threshold is rejected
5. amounts above the sanity ceiling are rejected as likely misreads

Rejections are normal control flow; `validate` never raises for them.
"""

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional, Union

from models import (
    AmountResolution,
    RawEvent,
    Rejected,
    TokenMeta,
    ValidatedReward,
    event_key,
)
from token_meta import normalize_amount

logger = logging.getLogger(__name__)

AmountReader = Callable[[str], int]


class EventValidator:
    def __init__(
        self,
        min_amount: Decimal,
        max_amount: Decimal,
        amount_reader: Optional[AmountReader] = None,
        recipient_arg: str = "to",
        amount_arg: str = "value",
        key_mode: str = "tx_log",
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        if max_amount <= min_amount:
            raise ValueError("max_amount must be greater than min_amount")
        self.min_amount = Decimal(min_amount)
        self.max_amount = Decimal(max_amount)
        self.amount_reader = amount_reader
        self.recipient_arg = recipient_arg
        self.amount_arg = amount_arg
        self.key_mode = key_mode
        self.clock = clock

    def resolve_amount(self, recipient: str, event_value: int) -> AmountResolution:
        """Prefer the contract's own record of the distribution over the event value"""
        if self.amount_reader is None:
            return AmountResolution.fallback(event_value)

        try:
            authoritative = int(self.amount_reader(recipient))
        except Exception as exc:
            logger.debug(f"Authoritative amount read failed for {recipient}, using event value: {exc}")
            return AmountResolution.fallback(event_value)

        if authoritative <= 0:
            logger.debug(f"Authoritative amount for {recipient} is {authoritative}, using event value")
            return AmountResolution.fallback(event_value)

        return AmountResolution.authoritative(authoritative)

    def validate(self, event: RawEvent, token_meta: TokenMeta) -> Union[ValidatedReward, Rejected]:
        key = event_key(event, self.key_mode)

        recipient = event.args.get(self.recipient_arg)
        event_value = event.args.get(self.amount_arg)
        if recipient is None or not isinstance(event_value, int):
            return self._reject(key, f"missing '{self.recipient_arg}'/'{self.amount_arg}' arguments")

        if event_value == 0:
            return self._reject(key, "zero-value transfer")

        resolution = self.resolve_amount(recipient, event_value)
        amount = normalize_amount(resolution.raw_amount, token_meta.decimals)

        if amount < self.min_amount:
            return self._reject(key, f"amount {amount} {token_meta.symbol} below minimum {self.min_amount}")

        if amount > self.max_amount:
            return self._reject(
                key, f"amount {amount} {token_meta.symbol} above sanity ceiling {self.max_amount}",
                level=logging.WARNING,
            )

        return ValidatedReward(
            recipient=recipient,
            amount=amount,
            source_tx_hash=event.tx_hash,
            timestamp=self.clock(),
            symbol=token_meta.symbol,
            block_number=event.block_number,
            log_index=event.log_index,
            amount_source=resolution.source,
        )

    @staticmethod
    def _reject(key: str, reason: str, level: int = logging.INFO) -> Rejected:
        logger.log(level, f"Skipping event {key}: {reason}")
        return Rejected(reason=reason, event_key=key)
