#!/usr/bin/env python3
"""Telegram message templates (Markdown)"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

import pytz

from models import StatsSnapshot, ValidatedReward

SIGNIFICANT_DIGITS = 6


def format_amount(amount: Decimal) -> str:
    """At least two decimals, and enough places for six significant digits.

    0.5 -> "0.50", 1234.5 -> "1,234.50", 0.00000123 -> "0.00000123"
    """
    if amount == 0:
        return "0.00"
    places = max(2, SIGNIFICANT_DIGITS - 1 - amount.adjusted())
    quantized = amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    text = f"{quantized:,f}"
    if "." not in text:
        return f"{text}.00"
    whole, fraction = text.split(".")
    return f"{whole}.{fraction.rstrip('0').ljust(2, '0')}"


def format_time(moment: Optional[datetime] = None, tz_name: str = "US/Eastern", fmt: str = "%Y-%m-%d %H:%M:%S %Z") -> str:
    moment = moment or datetime.now(timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(pytz.timezone(tz_name)).strftime(fmt)


def escape_markdown(text: str) -> str:
    """Escape characters that legacy Telegram Markdown treats as entities"""
    for char in ("\\", "_", "*", "`", "["):
        text = text.replace(char, f"\\{char}")
    return text


def format_reward_message(reward: ValidatedReward, explorer_tx_url: str, tz_name: str = "US/Eastern") -> str:
    return (
        "🎉 *New Reward Distributed!*\n\n"
        f"💰 Amount: {format_amount(reward.amount)} {escape_markdown(reward.symbol)}\n"
        f"➡️ To: `{reward.recipient}`\n"
        f"⏰ Time: {format_time(reward.timestamp, tz_name)}\n"
        f"[🔗 View TX]({explorer_tx_url}{reward.source_tx_hash})"
    )


def format_stats_message(
    snapshot: StatsSnapshot,
    symbol: str,
    title: str,
    next_update_seconds: int,
    tz_name: str = "US/Eastern",
) -> str:
    symbol = escape_markdown(symbol)
    lines = [f"🔄 *{escape_markdown(title)} Update* ({format_time(tz_name=tz_name, fmt='%H:%M %Z')})", ""]

    if snapshot.total_distributed is not None:
        lines.append(f"💰 Total Distributed: {format_amount(snapshot.total_distributed)} {symbol}")
    if snapshot.distributed_since_last is not None and snapshot.distributed_since_last > 0:
        lines.append(f"📈 Since Last Update: +{format_amount(snapshot.distributed_since_last)} {symbol}")
    if snapshot.pool_balance is not None:
        lines.append(f"🏦 Contract Balance: {format_amount(snapshot.pool_balance)} {symbol}")
    if snapshot.holder_count is not None:
        lines.append(f"👥 Holders: {snapshot.holder_count:,}")

    minutes = max(1, round(next_update_seconds / 60))
    lines.append(f"⏱ Next Update: {minutes} minute{'s' if minutes != 1 else ''}")
    return "\n".join(lines)
