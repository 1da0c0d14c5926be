"""Tests for state persistence and startup restoration"""

from decimal import Decimal

from models import TokenMeta
from pipeline_state import StateStore, restore_state

USDC = TokenMeta("USDC", 6)


class TestRestoreState:
    def test_no_saved_state_starts_at_head(self):
        state = restore_state({}, 5000, USDC, lookback_limit=1000, dedup_capacity=10)
        assert state.cursor.last_processed_block == 5000
        assert len(state.ledger) == 0

    def test_resumes_from_saved_cursor(self):
        saved = {"last_processed_block": 4800, "seen_event_keys": ["0xaa:0"], "last_total_distributed": "12.5"}
        state = restore_state(saved, 5000, USDC, lookback_limit=1000, dedup_capacity=10)
        assert state.cursor.last_processed_block == 4800
        assert state.ledger.seen("0xaa:0")
        assert state.last_total_distributed == Decimal("12.5")

    def test_saved_cursor_ahead_of_head_is_clamped(self):
        state = restore_state({"last_processed_block": 6000}, 5000, USDC, lookback_limit=1000, dedup_capacity=10)
        assert state.cursor.last_processed_block == 5000

    def test_start_block_override(self):
        saved = {"last_processed_block": 4800}
        state = restore_state(saved, 5000, USDC, lookback_limit=1000, dedup_capacity=10, start_block=4000)
        assert state.cursor.last_processed_block == 4000


class TestStateStore:
    def test_save_load_reset(self, tmp_path):
        store = StateStore(str(tmp_path / "nested" / "state.json"))
        assert store.load() == {}

        state = restore_state({"seen_event_keys": ["0xaa:0"]}, 100, USDC, lookback_limit=1000, dedup_capacity=10)
        state.last_total_distributed = Decimal("3.25")
        store.save(state)

        saved = store.load()
        assert saved["last_processed_block"] == 100
        assert saved["seen_event_keys"] == ["0xaa:0"]
        assert saved["last_total_distributed"] == "3.25"
        assert store.reset()
        assert not store.exists()

    def test_corrupt_file_loads_empty(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        assert StateStore(str(path)).load() == {}
