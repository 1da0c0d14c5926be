"""Shared fixtures: in-memory chain reader and notifier doubles"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from chain_reader import ChainReadError, EventSpec
from config_manager import DEFAULT_REWARD_EVENT
from cursor_tracker import CursorTracker
from dedup_ledger import DedupLedger
from event_validator import EventValidator
from models import RawEvent, TokenMeta
from pipeline_state import PipelineState

DISTRIBUTOR = "0x88807fDabF60fdDd7bd8fB4987dC5A63cbd31f6a"
RECIPIENT = "0x1111111111111111111111111111111111111111"
FIXED_TIME = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_event(block, value, log_index=0, tx_hash=None, recipient=RECIPIENT):
    return RawEvent(
        tx_hash=tx_hash or f"0x{block:064x}",
        log_index=log_index,
        contract_address=DISTRIBUTOR,
        args={"from": DISTRIBUTOR, "to": recipient, "value": value},
        block_number=block,
    )


class FakeChainReader:
    """Serves a fixed event list; views are answered from `views`"""

    def __init__(self, head=0, events=None, views=None):
        self.head = head
        self.events = list(events or [])
        self.views = dict(views or {})
        self.fail_head = False
        self.fail_fetch = False
        self.queries = []
        self.view_calls = []

    def get_block_number(self):
        if self.fail_head:
            raise ChainReadError("head unavailable")
        return self.head

    def query_events(self, event, from_block, to_block, address, indexed_filters=None):
        self.queries.append((from_block, to_block))
        if self.fail_fetch:
            raise ChainReadError("getLogs timed out")
        return [e for e in self.events if from_block <= e.block_number <= to_block]

    def view_call(self, address, signature, args=(), output_types=("uint256",)):
        self.view_calls.append((address, signature, tuple(args)))
        value = self.views.get(signature)
        if value is None or isinstance(value, Exception):
            raise value if isinstance(value, Exception) else ChainReadError(f"{signature} reverted")
        return value


class RecordingNotifier:
    def __init__(self, results=None):
        # results are consumed per call; once exhausted every send succeeds
        self.results = list(results or [])
        self.sent = []
        self.attempts = 0

    def send_message(self, text, media_ref=None):
        self.attempts += 1
        ok = self.results.pop(0) if self.results else True
        if ok:
            self.sent.append((text, media_ref))
        return ok

    def close(self):
        pass


@pytest.fixture
def reward_event():
    return EventSpec.parse(DEFAULT_REWARD_EVENT)


@pytest.fixture
def usdc():
    return TokenMeta(symbol="USDC", decimals=6)


@pytest.fixture
def validator():
    return EventValidator(
        min_amount=Decimal("0.000001"),
        max_amount=Decimal("1000"),
        clock=lambda: FIXED_TIME,
    )


@pytest.fixture
def make_state(usdc):
    def _make(last_block=100, lookback=1000, capacity=1000, keys=()):
        return PipelineState(
            cursor=CursorTracker(last_block, lookback_limit=lookback),
            ledger=DedupLedger(capacity=capacity, keys=keys),
            token_meta=usdc,
        )
    return _make
