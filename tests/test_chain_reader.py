"""Tests for event signature parsing, log decoding and view calls"""

from unittest.mock import MagicMock

import pytest
from eth_abi import encode
from web3 import Web3

from chain_reader import ChainReader, ChainReadError, EventSpec, MalformedEventError, function_selector
from config_manager import DEFAULT_REWARD_EVENT

SENDER = "0x88807fdabf60fddd7bd8fb4987dc5a63cbd31f6a"
RECIPIENT = "0x1111111111111111111111111111111111111111"
TX_HASH = "0x" + "ab" * 32


def make_log(event, value=500000, block=103, log_index=2, topics=None):
    return {
        "topics": topics if topics is not None else [
            bytes.fromhex(event.topic[2:]),
            encode(["address"], [SENDER]),
            encode(["address"], [RECIPIENT]),
        ],
        "data": encode(["uint256"], [value]),
        "transactionHash": bytes.fromhex(TX_HASH[2:]),
        "logIndex": log_index,
        "address": SENDER,
        "blockNumber": block,
    }


def make_reader(w3):
    pool = MagicMock()
    pool.with_web3.side_effect = lambda fn: fn(w3)
    return ChainReader(pool)


class TestEventSpec:
    def test_parse_transfer(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        assert spec.name == "Transfer"
        assert spec.canonical_signature == "Transfer(address,address,uint256)"
        assert [p.name for p in spec.params if p.indexed] == ["from", "to"]

    def test_topic_is_keccak_of_canonical_signature(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        assert spec.topic == "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"

    def test_unnamed_params_get_positional_names(self):
        spec = EventSpec.parse("RewardPaid(address indexed, uint256)")
        assert [p.name for p in spec.params] == ["arg0", "arg1"]

    def test_invalid_signature(self):
        with pytest.raises(ValueError):
            EventSpec.parse("not a signature")

    def test_too_many_indexed(self):
        with pytest.raises(ValueError):
            EventSpec.parse("E(uint256 indexed a, uint256 indexed b, uint256 indexed c, uint256 indexed d)")


def test_function_selector():
    assert function_selector("balanceOf(address)").hex() == "70a08231"


class TestDecodeLog:
    def test_decodes_transfer(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        event = ChainReader.decode_log(spec, make_log(spec))
        assert event.tx_hash == TX_HASH
        assert event.log_index == 2
        assert event.block_number == 103
        assert event.args["value"] == 500000
        assert event.args["to"] == Web3.to_checksum_address(RECIPIENT)
        assert event.args["from"] == Web3.to_checksum_address(SENDER)

    def test_wrong_topic_is_malformed(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        other = EventSpec.parse("Approval(address indexed owner, address indexed spender, uint256 value)")
        with pytest.raises(MalformedEventError):
            ChainReader.decode_log(spec, make_log(other))

    def test_missing_topic_is_malformed(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        log = make_log(spec, topics=[bytes.fromhex(spec.topic[2:]), encode(["address"], [SENDER])])
        with pytest.raises(MalformedEventError):
            ChainReader.decode_log(spec, log)

    def test_truncated_data_is_malformed(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        log = make_log(spec)
        log["data"] = b"\x01"
        with pytest.raises(MalformedEventError):
            ChainReader.decode_log(spec, log)


class TestQueryEvents:
    def test_filters_and_sorts(self):
        spec = EventSpec.parse(DEFAULT_REWARD_EVENT)
        w3 = MagicMock()
        w3.eth.get_logs.return_value = [
            make_log(spec, block=105, log_index=0),
            make_log(spec, block=103, log_index=4),
            make_log(spec, block=103, log_index=1),
        ]
        reader = make_reader(w3)

        events = reader.query_events(spec, 100, 110, SENDER, {"from": SENDER})

        assert [(e.block_number, e.log_index) for e in events] == [(103, 1), (103, 4), (105, 0)]
        params = w3.eth.get_logs.call_args[0][0]
        assert params["fromBlock"] == 100
        assert params["toBlock"] == 110
        assert params["topics"][0] == spec.topic
        assert params["topics"][1] == "0x" + encode(["address"], [SENDER]).hex()
        assert len(params["topics"]) == 2

    def test_rpc_failure_raises_chain_read_error(self):
        pool = MagicMock()
        pool.with_web3.side_effect = ConnectionError("All EVM RPC endpoints failed")
        with pytest.raises(ChainReadError):
            ChainReader(pool).query_events(EventSpec.parse(DEFAULT_REWARD_EVENT), 1, 2, SENDER)


class TestViewCall:
    def test_uint_result(self):
        w3 = MagicMock()
        w3.eth.call.return_value = encode(["uint256"], [42])
        assert make_reader(w3).view_call(SENDER, "balanceOf(address)", [RECIPIENT]) == 42

        tx = w3.eth.call.call_args[0][0]
        assert tx["data"].startswith("0x70a08231")

    def test_string_result(self):
        w3 = MagicMock()
        w3.eth.call.return_value = encode(["string"], ["USDC"])
        assert make_reader(w3).view_call(SENDER, "symbol()", output_types=("string",)) == "USDC"

    def test_empty_result_raises(self):
        w3 = MagicMock()
        w3.eth.call.return_value = b""
        with pytest.raises(ChainReadError):
            make_reader(w3).view_call(SENDER, "totalDistributed()")

    def test_argument_count_mismatch(self):
        with pytest.raises(ValueError):
            make_reader(MagicMock()).view_call(SENDER, "balanceOf(address)")
