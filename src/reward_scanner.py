#!/usr/bin/env python3
"""
Reward Scanner

One scan cycle of the reward ingestion pipeline:

    head block -> scan window -> fetch events -> dedup -> validate -> notify -> commit

Delivery is at-least-once. A key enters the dedup ledger only after its
notification was accepted, and the cursor moves only after the whole window
was handled. RPC failures, undecodable logs and notifier failures abort the
cycle without moving the cursor, so the same window is scanned again on the
next cycle and the ledger suppresses events that were already announced.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional

from chain_reader import ChainReader, ChainReadError, EventSpec, MalformedEventError
from event_validator import EventValidator
from messages import format_reward_message
from models import RawEvent, Rejected, ScanWindow, event_key
from notifier import TelegramNotifier
from pipeline_state import PipelineState, StateStore

logger = logging.getLogger(__name__)

DEFAULT_NOTIFY_DELAY = 1.0
DEFAULT_BLOCK_BATCH_SIZE = 2000


class NotificationError(RuntimeError):
    """The notifier did not accept a reward message"""
    pass


class RewardScanner:
    def __init__(
        self,
        reader: ChainReader,
        validator: EventValidator,
        notifier: TelegramNotifier,
        event: EventSpec,
        event_address: str,
        indexed_filters: Optional[Dict[str, Any]] = None,
        explorer_tx_url: str = "",
        media_ref: Optional[str] = None,
        tz_name: str = "US/Eastern",
        block_batch_size: int = DEFAULT_BLOCK_BATCH_SIZE,
        notify_delay: float = DEFAULT_NOTIFY_DELAY,
        store: Optional[StateStore] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.reader = reader
        self.validator = validator
        self.notifier = notifier
        self.event = event
        self.event_address = event_address
        self.indexed_filters = indexed_filters or {}
        self.explorer_tx_url = explorer_tx_url
        self.media_ref = media_ref
        self.tz_name = tz_name
        self.block_batch_size = max(1, int(block_batch_size))
        self.notify_delay = max(0.0, float(notify_delay))
        self.store = store
        self.sleep = sleep

    def run_cycle(self, state: PipelineState) -> Dict[str, Any]:
        stats = {
            "window": None,
            "events": 0,
            "notified": 0,
            "rejected": 0,
            "duplicates": 0,
            "aborted": False,
            "last_processed_block": state.cursor.last_processed_block,
        }

        try:
            current_block = self.reader.get_block_number()
        except ChainReadError as exc:
            logger.error(f"Reward scan aborted, could not read head block: {exc}")
            stats["aborted"] = True
            return stats

        window = state.cursor.advance(current_block)
        if window is None:
            logger.debug(f"No new blocks (cursor {state.cursor.last_processed_block}, head {current_block})")
            return stats

        stats["window"] = window
        logger.info(f"🔍 Checking blocks {window.from_block} → {window.to_block} for rewards")

        try:
            events = self._fetch_events(window)
            stats["events"] = len(events)
            self._process_events(events, state, stats)
        except (ChainReadError, MalformedEventError, NotificationError) as exc:
            logger.error(
                f"Reward scan of blocks {window.from_block}-{window.to_block} aborted, "
                f"cursor stays at {state.cursor.last_processed_block}: {exc}"
            )
            stats["aborted"] = True
            # keys of messages already delivered must survive a restart
            self._save(state)
            return stats

        state.cursor.commit(current_block)
        stats["last_processed_block"] = state.cursor.last_processed_block
        self._save(state)
        return stats

    def _fetch_events(self, window: ScanWindow) -> List[RawEvent]:
        events: List[RawEvent] = []
        for from_block, to_block in window.batches(self.block_batch_size):
            events.extend(self.reader.query_events(
                self.event, from_block, to_block, self.event_address, self.indexed_filters
            ))
        return events

    def _process_events(self, events: List[RawEvent], state: PipelineState, stats: Dict[str, Any]) -> None:
        for event in events:
            key = event_key(event, self.validator.key_mode)
            if state.ledger.seen(key):
                logger.debug(f"Already notified {key}")
                stats["duplicates"] += 1
                continue

            result = self.validator.validate(event, state.token_meta)
            if isinstance(result, Rejected):
                stats["rejected"] += 1
                continue

            if stats["notified"] and self.notify_delay:
                self.sleep(self.notify_delay)

            message = format_reward_message(result, self.explorer_tx_url, self.tz_name)
            if not self.notifier.send_message(message, self.media_ref):
                raise NotificationError(f"notification for {key} was not delivered")

            state.ledger.record(key)
            state.ledger.compact()
            stats["notified"] += 1
            logger.info(
                f"🎁 New reward: {result.amount} {result.symbol} to {result.recipient} "
                f"(tx {result.source_tx_hash}, {result.amount_source.value} amount)"
            )

    def _save(self, state: PipelineState) -> None:
        if self.store is not None:
            self.store.save(state)
