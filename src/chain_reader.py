#!/usr/bin/env python3
"""
Chain Reader

Read-only access to an EVM chain for the rewards watcher:

- current block height
- event logs of one event type in a block range, decoded into `RawEvent`s
- arbitrary read-only contract calls (`eth_call`)

Events and view functions are described with human-readable signatures, e.g.
``Transfer(address indexed from, address indexed to, uint256 value)`` and
``balanceOf(address)``. Encoding and decoding is done with eth_abi so no
full contract ABI is needed.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from web3 import Web3

from models import RawEvent
from rpc_failover import EVMProviderPool

logger = logging.getLogger(__name__)

SIGNATURE_PATTERN = re.compile(r'^\s*(\w+)\s*\((.*)\)\s*$')

# indexed parameters of these types are stored as keccak hashes in topics
DYNAMIC_TYPES = ("string", "bytes")


class ChainReadError(ConnectionError):
    """RPC call failed; recoverable, the current cycle should be retried later"""
    pass


class MalformedEventError(ValueError):
    """A log returned by the node could not be decoded as the expected event"""
    pass


def strip_0x(value: str) -> str:
    if value.startswith("0x"):
        return value[2:]
    return value


def to_hex(value: Any) -> str:
    """Normalize HexBytes/bytes/str to a 0x-prefixed lowercase hex string"""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, str):
        return "0x" + strip_0x(value).lower()
    raise TypeError(f"Cannot convert {type(value).__name__} to hex")


def to_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        return bytes.fromhex(strip_0x(value))
    raise TypeError(f"Cannot convert {type(value).__name__} to bytes")


def normalize_args(types: Sequence[str], args: Sequence[Any]) -> List[Any]:
    """Checksum address arguments; eth_abi rejects mixed-case addresses with a bad checksum"""
    return [
        Web3.to_checksum_address(value) if abi_type == "address" and isinstance(value, str) else value
        for abi_type, value in zip(types, args)
    ]


@dataclass(frozen=True)
class EventParam:
    abi_type: str
    name: str
    indexed: bool


@dataclass(frozen=True)
class EventSpec:
    name: str
    params: Tuple[EventParam, ...]

    @property
    def canonical_signature(self) -> str:
        return f"{self.name}({','.join(p.abi_type for p in self.params)})"

    @property
    def topic(self) -> str:
        return Web3.to_hex(Web3.keccak(text=self.canonical_signature))

    @classmethod
    def parse(cls, signature: str) -> "EventSpec":
        """Parse `Name(type [indexed] [name], ...)`"""
        match = SIGNATURE_PATTERN.match(signature)
        if not match:
            raise ValueError(f"Invalid event signature: {signature!r}")

        name, body = match.group(1), match.group(2).strip()
        params = []
        for position, raw_param in enumerate(p.strip() for p in body.split(",") if p.strip()):
            tokens = raw_param.split()
            abi_type = tokens[0]
            indexed = "indexed" in tokens[1:]
            names = [t for t in tokens[1:] if t != "indexed"]
            param_name = names[0] if names else f"arg{position}"
            params.append(EventParam(abi_type=abi_type, name=param_name, indexed=indexed))

        if sum(1 for p in params if p.indexed) > 3:
            raise ValueError(f"Event {name} has more than 3 indexed parameters")

        return cls(name=name, params=tuple(params))


def parse_function_signature(signature: str) -> Tuple[str, List[str]]:
    """Split `name(type,type)` into the name and the input types"""
    match = SIGNATURE_PATTERN.match(signature)
    if not match:
        raise ValueError(f"Invalid function signature: {signature!r}")
    types = [t.strip().split()[0] for t in match.group(2).split(",") if t.strip()]
    return match.group(1), types


def function_selector(signature: str) -> bytes:
    name, types = parse_function_signature(signature)
    return bytes(Web3.keccak(text=f"{name}({','.join(types)})"))[:4]


class ChainReader:
    """Read-only chain access on top of an `EVMProviderPool`"""

    def __init__(self, pool: EVMProviderPool):
        self.pool = pool

    def get_block_number(self) -> int:
        try:
            return int(self.pool.with_web3(lambda w3: w3.eth.block_number))
        except Exception as exc:
            raise ChainReadError(f"Failed to read block number: {exc}") from exc

    def query_events(
        self,
        event: EventSpec,
        from_block: int,
        to_block: int,
        address: str,
        indexed_filters: Optional[Dict[str, Any]] = None,
    ) -> List[RawEvent]:
        """Fetch and decode `event` logs emitted by `address` in [from_block, to_block]"""
        filter_params = {
            "fromBlock": from_block,
            "toBlock": to_block,
            "address": Web3.to_checksum_address(address),
            "topics": self._build_topics(event, indexed_filters or {}),
        }

        try:
            logs = self.pool.with_web3(lambda w3: w3.eth.get_logs(filter_params))
        except Exception as exc:
            raise ChainReadError(
                f"Failed to fetch {event.name} logs for blocks {from_block}-{to_block}: {exc}"
            ) from exc

        logger.debug(f"Retrieved {len(logs)} {event.name} logs for blocks {from_block}-{to_block}")

        events = [self.decode_log(event, log) for log in logs]
        events.sort(key=lambda e: (e.block_number, e.log_index))
        return events

    def view_call(
        self,
        address: str,
        signature: str,
        args: Sequence[Any] = (),
        output_types: Sequence[str] = ("uint256",),
    ) -> Any:
        """Execute a read-only call; a single output is returned unwrapped"""
        _, input_types = parse_function_signature(signature)
        if len(input_types) != len(args):
            raise ValueError(f"{signature} expects {len(input_types)} arguments, got {len(args)}")

        call_data = function_selector(signature) + encode(input_types, normalize_args(input_types, args))
        tx = {"to": Web3.to_checksum_address(address), "data": to_hex(call_data)}

        try:
            result = self.pool.with_web3(lambda w3: w3.eth.call(tx))
        except Exception as exc:
            raise ChainReadError(f"eth_call {signature} on {address} failed: {exc}") from exc

        result_bytes = to_bytes(result)
        if not result_bytes:
            raise ChainReadError(f"eth_call {signature} on {address} returned no data")

        try:
            decoded = decode(list(output_types), result_bytes)
        except Exception as exc:
            raise ChainReadError(f"Could not decode {signature} result: {exc}") from exc

        return decoded[0] if len(decoded) == 1 else decoded

    @staticmethod
    def _build_topics(event: EventSpec, indexed_filters: Dict[str, Any]) -> List[Optional[str]]:
        topics: List[Optional[str]] = [event.topic]
        for param in (p for p in event.params if p.indexed):
            value = indexed_filters.get(param.name)
            if value is None:
                topics.append(None)
            elif param.abi_type in DYNAMIC_TYPES:
                raise ValueError(f"Filtering on dynamic indexed parameter {param.name} is not supported")
            else:
                topics.append(to_hex(encode([param.abi_type], normalize_args([param.abi_type], [value]))))

        while topics and topics[-1] is None:
            topics.pop()
        return topics

    @staticmethod
    def decode_log(event: EventSpec, log: Dict[str, Any]) -> RawEvent:
        """Decode one raw log into a `RawEvent`; raises MalformedEventError"""
        try:
            topics = [to_bytes(t) for t in log["topics"]]
            if not topics or to_hex(topics[0]) != event.topic:
                raise MalformedEventError(f"Log is not a {event.name} event")

            indexed = [p for p in event.params if p.indexed]
            if len(topics) != len(indexed) + 1:
                raise MalformedEventError(
                    f"{event.name} expects {len(indexed)} indexed topics, got {len(topics) - 1}"
                )

            args: Dict[str, Any] = {}
            for param, topic in zip(indexed, topics[1:]):
                if param.abi_type in DYNAMIC_TYPES or param.abi_type.endswith("]"):
                    args[param.name] = to_hex(topic)
                else:
                    args[param.name] = decode([param.abi_type], topic)[0]

            data_params = [p for p in event.params if not p.indexed]
            if data_params:
                values = decode([p.abi_type for p in data_params], to_bytes(log.get("data", b"")))
                args.update(zip((p.name for p in data_params), values))

            for param in event.params:
                if param.abi_type == "address":
                    args[param.name] = Web3.to_checksum_address(args[param.name])

            return RawEvent(
                tx_hash=to_hex(log["transactionHash"]),
                log_index=int(log["logIndex"]),
                contract_address=Web3.to_checksum_address(log["address"]),
                args=args,
                block_number=int(log["blockNumber"]),
            )
        except MalformedEventError:
            raise
        except Exception as exc:
            raise MalformedEventError(f"Failed to decode {event.name} log: {exc}") from exc
