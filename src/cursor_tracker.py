#!/usr/bin/env python3
import logging
from typing import Optional

from models import ScanWindow

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_BLOCKS = 1000


class CursorTracker:
    """Owns the last processed block and derives the next scan window.

    The tracker never commits on its own: the scan cycle calls `commit` only
    after every event in the window was handled, so a failed cycle leaves the
    cursor where it was and the window is scanned again next time.
    """

    def __init__(self, last_processed_block: int, lookback_limit: int = DEFAULT_LOOKBACK_BLOCKS):
        if last_processed_block < 0:
            raise ValueError("last_processed_block must not be negative")
        self.last_processed_block = int(last_processed_block)
        self.lookback_limit = max(1, int(lookback_limit))

    def advance(self, current_block: int) -> Optional[ScanWindow]:
        """Window to scan for `current_block`, or None when there is nothing new"""
        if current_block < self.last_processed_block:
            logger.warning(
                f"Chain head {current_block} is behind cursor {self.last_processed_block} "
                "(lagging RPC?); skipping cycle"
            )
            return None

        if current_block == self.last_processed_block:
            return None

        from_block = max(self.last_processed_block, current_block - self.lookback_limit)
        if from_block > self.last_processed_block:
            logger.warning(
                f"Cursor {self.last_processed_block} is more than {self.lookback_limit} blocks behind "
                f"head {current_block}; blocks {self.last_processed_block}-{from_block - 1} will not be scanned"
            )

        return ScanWindow(from_block=from_block, to_block=current_block)

    def commit(self, block_number: int) -> None:
        if block_number < self.last_processed_block:
            logger.debug(f"Ignoring commit of {block_number} below cursor {self.last_processed_block}")
            return
        self.last_processed_block = int(block_number)
