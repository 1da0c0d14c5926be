"""Tests for the block cursor and scan window derivation"""

import logging

import pytest

from cursor_tracker import CursorTracker
from models import ScanWindow


class TestAdvance:
    def test_window_from_cursor_to_head(self):
        tracker = CursorTracker(100, lookback_limit=1000)
        assert tracker.advance(105) == ScanWindow(100, 105)

    def test_nothing_new_returns_none(self):
        tracker = CursorTracker(100)
        assert tracker.advance(100) is None

    def test_head_behind_cursor_returns_none(self):
        """A lagging RPC must never move the cursor backwards."""
        tracker = CursorTracker(100)
        assert tracker.advance(90) is None
        assert tracker.last_processed_block == 100

    def test_lookback_clamps_window_start(self):
        tracker = CursorTracker(100, lookback_limit=1000)
        window = tracker.advance(5000)
        assert window == ScanWindow(4000, 5000)

    def test_lookback_clamp_logs_skipped_range(self, caplog):
        caplog.set_level(logging.WARNING, logger="cursor_tracker")
        CursorTracker(100, lookback_limit=1000).advance(5000)
        assert "blocks 100-3999 will not be scanned" in caplog.text

    def test_advance_does_not_commit(self):
        tracker = CursorTracker(100)
        tracker.advance(150)
        assert tracker.last_processed_block == 100


class TestCommit:
    def test_commit_moves_forward(self):
        tracker = CursorTracker(100)
        tracker.commit(150)
        assert tracker.last_processed_block == 150

    def test_commit_is_monotonic(self):
        tracker = CursorTracker(100)
        tracker.commit(80)
        assert tracker.last_processed_block == 100

    def test_negative_start_rejected(self):
        with pytest.raises(ValueError):
            CursorTracker(-1)


class TestScanWindow:
    def test_inverted_window_rejected(self):
        with pytest.raises(ValueError):
            ScanWindow(10, 5)

    def test_batches_cover_window_without_gaps(self):
        window = ScanWindow(100, 4500)
        batches = list(window.batches(2000))
        assert batches == [(100, 2099), (2100, 4099), (4100, 4500)]
        assert window.size == 4401

    def test_single_block_window(self):
        assert list(ScanWindow(7, 7).batches(2000)) == [(7, 7)]
