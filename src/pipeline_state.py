#!/usr/bin/env python3
"""
Pipeline state shared by the scan and stats tasks.

Everything mutable lives in one `PipelineState` that the scheduler hands to
each task: the block cursor, the dedup ledger, the resolved token metadata and
the last observed distribution total. `StateStore` persists it as JSON so a
restart resumes from the saved cursor and keeps the seen-event keys.
"""

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional

from cursor_tracker import CursorTracker
from dedup_ledger import DedupLedger
from models import TokenMeta

logger = logging.getLogger(__name__)


@dataclass
class PipelineState:
    cursor: CursorTracker
    ledger: DedupLedger
    token_meta: TokenMeta
    last_total_distributed: Optional[Decimal] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_processed_block": self.cursor.last_processed_block,
            "seen_event_keys": self.ledger.to_list(),
            "last_total_distributed": (
                str(self.last_total_distributed) if self.last_total_distributed is not None else None
            ),
            "last_run": datetime.now(timezone.utc).isoformat(),
        }


class StateStore:
    def __init__(self, state_file: str):
        self.state_file = Path(state_file)

    def exists(self) -> bool:
        return self.state_file.exists()

    def load(self) -> Dict[str, Any]:
        if not self.state_file.exists():
            return {}
        try:
            with open(self.state_file, "r", encoding="utf-8") as state_fp:
                return json.load(state_fp)
        except Exception as exc:
            logger.warning(f"Failed to load state file {self.state_file}: {exc}")
            return {}

    def save(self, state: PipelineState) -> None:
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_file = self.state_file.with_suffix(".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as state_fp:
                json.dump(state.to_dict(), state_fp, indent=2)
            os.replace(tmp_file, self.state_file)
        except Exception as exc:
            logger.error(f"Failed to save state to {self.state_file}: {exc}")

    def reset(self) -> bool:
        if self.state_file.exists():
            self.state_file.unlink()
            return True
        return False


def restore_state(
    saved: Dict[str, Any],
    current_block: int,
    token_meta: TokenMeta,
    lookback_limit: int,
    dedup_capacity: int,
    start_block: Optional[int] = None,
) -> PipelineState:
    """Build the startup state from a saved snapshot (possibly empty).

    Without a saved cursor the watcher starts at the chain head, so history
    before startup is never announced. `start_block` forces the cursor.
    """
    if start_block is not None:
        last_block = max(0, int(start_block))
        logger.info(f"Starting from block {last_block} (override)")
    elif saved.get("last_processed_block") is not None:
        last_block = min(int(saved["last_processed_block"]), current_block)
        logger.info(f"Resuming from saved block {last_block} (head {current_block})")
    else:
        last_block = current_block
        logger.info(f"No saved state, starting at head block {last_block}")

    last_total = saved.get("last_total_distributed")

    return PipelineState(
        cursor=CursorTracker(last_block, lookback_limit=lookback_limit),
        ledger=DedupLedger.from_list(saved.get("seen_event_keys", []), capacity=dedup_capacity),
        token_meta=token_meta,
        last_total_distributed=Decimal(last_total) if last_total is not None else None,
    )
