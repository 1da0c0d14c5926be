#!/usr/bin/env python3
"""
Reward token metadata (symbol and decimals).

Resolved once at startup. Reward tokens differ in precision (18 decimals for
wrapped native tokens, 6 for USDC) so decimals are always read from the token
contract; when that read fails the configured fallback is used instead of
stopping the process.
"""

import logging
from decimal import Decimal
from typing import Any, Dict

from chain_reader import ChainReader, ChainReadError
from models import TokenMeta

logger = logging.getLogger(__name__)


def resolve_token_meta(reader: ChainReader, token_address: str, fallback: Dict[str, Any]) -> TokenMeta:
    fallback_meta = TokenMeta(
        symbol=str(fallback.get('symbol', 'USDC')),
        decimals=int(fallback.get('decimals', 6)),
        is_fallback=True,
    )

    try:
        decimals = int(reader.view_call(token_address, "decimals()", output_types=("uint8",)))
        is_fallback = False
    except (ChainReadError, ValueError) as exc:
        logger.warning(
            f"Could not read decimals of {token_address}, using fallback {fallback_meta.decimals}: {exc}"
        )
        decimals = fallback_meta.decimals
        is_fallback = True

    # some tokens return bytes32 from symbol(); the symbol is display-only
    try:
        symbol = reader.view_call(token_address, "symbol()", output_types=("string",)).strip()
    except (ChainReadError, ValueError) as exc:
        logger.warning(f"Could not read symbol of {token_address}, using fallback {fallback_meta.symbol}: {exc}")
        symbol = ""

    meta = TokenMeta(symbol=symbol or fallback_meta.symbol, decimals=decimals, is_fallback=is_fallback)
    logger.info(f"Reward token {token_address}: {meta.symbol} ({meta.decimals} decimals)")
    return meta


def normalize_amount(raw_amount: int, decimals: int) -> Decimal:
    """Convert integer base units to display units without binary floating point"""
    return Decimal(int(raw_amount)).scaleb(-int(decimals))
