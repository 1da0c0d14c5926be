#!/usr/bin/env python3
"""
Stats Publisher

Periodically reads the distributor's aggregate views (total distributed, pool
balance, holder count) and posts one snapshot message. Each view is read on its
own; a view that fails is left out and the message carries whatever did
succeed. Nothing is posted when every view fails.
"""

import logging
from typing import Optional

from chain_reader import ChainReader, ChainReadError
from messages import format_stats_message
from models import StatsSnapshot
from notifier import TelegramNotifier
from pipeline_state import PipelineState
from token_meta import normalize_amount

logger = logging.getLogger(__name__)


class StatsPublisher:
    def __init__(
        self,
        reader: ChainReader,
        notifier: TelegramNotifier,
        distributor_address: str,
        reward_token_address: str,
        total_distributed_view: Optional[str] = "totalDistributed()",
        holder_count_view: Optional[str] = None,
        title: str = "Reward",
        interval_seconds: int = 900,
        media_ref: Optional[str] = None,
        tz_name: str = "US/Eastern",
    ):
        self.reader = reader
        self.notifier = notifier
        self.distributor_address = distributor_address
        self.reward_token_address = reward_token_address
        self.total_distributed_view = total_distributed_view
        self.holder_count_view = holder_count_view
        self.title = title
        self.interval_seconds = interval_seconds
        self.media_ref = media_ref
        self.tz_name = tz_name

    def collect(self, state: PipelineState) -> StatsSnapshot:
        snapshot = StatsSnapshot()
        decimals = state.token_meta.decimals

        if self.total_distributed_view:
            try:
                raw_total = self.reader.view_call(self.distributor_address, self.total_distributed_view)
                snapshot.total_distributed = normalize_amount(raw_total, decimals)
            except (ChainReadError, ValueError) as exc:
                logger.warning(f"Could not read total distributed: {exc}")
                snapshot.failed_fields.append("total_distributed")

        try:
            raw_balance = self.reader.view_call(
                self.reward_token_address, "balanceOf(address)", [self.distributor_address]
            )
            snapshot.pool_balance = normalize_amount(raw_balance, decimals)
        except (ChainReadError, ValueError) as exc:
            logger.warning(f"Could not read contract balance: {exc}")
            snapshot.failed_fields.append("pool_balance")

        if self.holder_count_view:
            try:
                snapshot.holder_count = int(self.reader.view_call(self.distributor_address, self.holder_count_view))
            except (ChainReadError, ValueError) as exc:
                logger.warning(f"Could not read holder count: {exc}")
                snapshot.failed_fields.append("holder_count")

        if snapshot.total_distributed is not None and state.last_total_distributed is not None:
            snapshot.distributed_since_last = snapshot.total_distributed - state.last_total_distributed

        return snapshot

    def prime(self, state: PipelineState) -> None:
        """Remember the current total so the first update can report what was distributed since startup"""
        if state.last_total_distributed is not None or not self.total_distributed_view:
            return
        try:
            raw_total = self.reader.view_call(self.distributor_address, self.total_distributed_view)
        except (ChainReadError, ValueError) as exc:
            logger.debug(f"Could not read initial total distributed: {exc}")
            return
        state.last_total_distributed = normalize_amount(raw_total, state.token_meta.decimals)
        logger.info(f"Initial total distributed: {state.last_total_distributed} {state.token_meta.symbol}")

    def publish(self, state: PipelineState) -> bool:
        snapshot = self.collect(state)

        if not snapshot.has_data():
            logger.error("Stats update skipped: every contract view failed")
            return False

        if snapshot.failed_fields:
            logger.info(f"Publishing reduced stats update (missing: {', '.join(snapshot.failed_fields)})")

        message = format_stats_message(
            snapshot, state.token_meta.symbol, self.title, self.interval_seconds, self.tz_name
        )
        sent = self.notifier.send_message(message, self.media_ref)
        if not sent:
            logger.error("Stats update was not delivered")
            return False

        if snapshot.total_distributed is not None:
            state.last_total_distributed = snapshot.total_distributed
        logger.info(
            f"📊 Stats published | total distributed: {snapshot.total_distributed} | "
            f"balance: {snapshot.pool_balance} | holders: {snapshot.holder_count}"
        )
        return True
