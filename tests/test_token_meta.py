"""Tests for token metadata resolution and amount normalization"""

from decimal import Decimal

from chain_reader import ChainReadError
from conftest import FakeChainReader
from models import TokenMeta
from token_meta import normalize_amount, resolve_token_meta

TOKEN = "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913"
FALLBACK = {"symbol": "USDC", "decimals": 6}


def test_reads_symbol_and_decimals():
    reader = FakeChainReader(views={"decimals()": 18, "symbol()": "WETH"})
    assert resolve_token_meta(reader, TOKEN, FALLBACK) == TokenMeta("WETH", 18)


def test_read_failure_uses_fallback():
    meta = resolve_token_meta(FakeChainReader(), TOKEN, FALLBACK)
    assert meta == TokenMeta("USDC", 6, is_fallback=True)


def test_symbol_failure_keeps_onchain_decimals():
    reader = FakeChainReader(views={"decimals()": 18, "symbol()": ChainReadError("bytes32 symbol")})
    meta = resolve_token_meta(reader, TOKEN, FALLBACK)
    assert meta == TokenMeta("USDC", 18, is_fallback=False)


def test_decimals_failure_keeps_onchain_symbol():
    reader = FakeChainReader(views={"symbol()": "WETH"})
    assert resolve_token_meta(reader, TOKEN, FALLBACK) == TokenMeta("WETH", 6, is_fallback=True)


def test_normalize_amount_is_exact():
    assert normalize_amount(500000, 6) == Decimal("0.5")
    assert normalize_amount(10 ** 18 + 1, 18) == Decimal("1.000000000000000001")
    assert normalize_amount(0, 6) == 0
