#!/usr/bin/env python3
import logging
import time
from typing import Callable, List, Optional, TypeVar

from web3 import Web3

logger = logging.getLogger(__name__)

T = TypeVar("T")


class EVMProviderPool:
    """Ordered list of EVM RPC endpoints with sticky failover.

    The first endpoint that answers becomes sticky until it fails or until the
    preference window elapses, after which the most preferred endpoint is tried
    again.
    """

    def __init__(self, urls: List[str], request_timeout_s: int = 15, preference_reset_minutes: int = 60):
        if not urls:
            raise ValueError("EVMProviderPool requires at least one URL")
        self.urls = urls
        self.request_timeout_s = request_timeout_s
        self.preference_reset_sec = max(1, int(preference_reset_minutes) * 60)
        self._last_reset_ts = 0.0
        self._sticky_index: Optional[int] = None
        self._clients = {}

    def _should_reset_preferences(self) -> bool:
        now = time.time()
        if self._last_reset_ts == 0.0:
            self._last_reset_ts = now
            return False
        return (now - self._last_reset_ts) >= self.preference_reset_sec

    def _maybe_reset_preferences(self) -> None:
        if self._should_reset_preferences():
            self._last_reset_ts = time.time()
            if self._sticky_index:
                logger.info(f"Resetting RPC preference back to {self._redact(self.urls[0])}")
            self._sticky_index = None

    def _build_web3(self, index: int) -> Web3:
        w3 = self._clients.get(index)
        if w3 is None:
            w3 = Web3(Web3.HTTPProvider(
                self.urls[index], request_kwargs={"timeout": self.request_timeout_s}
            ))
            self._clients[index] = w3
        return w3

    @staticmethod
    def _redact(url: str) -> str:
        # provider URLs usually embed an API key in the path
        scheme, _, rest = url.partition("://")
        host = rest.split("/", 1)[0]
        return f"{scheme}://{host}/..." if rest else url

    @property
    def active_url(self) -> str:
        index = self._sticky_index if self._sticky_index is not None else 0
        return self._redact(self.urls[index])

    def ensure_connected(self) -> Web3:
        """Return a client for the first endpoint that answers eth_blockNumber"""
        return self.with_web3(lambda w3: (w3, w3.eth.block_number))[0]

    def with_web3(self, fn: Callable[[Web3], T], max_attempts: Optional[int] = None) -> T:
        """Run `fn` against the sticky endpoint, failing over in preference order"""
        self._maybe_reset_preferences()

        attempts = 0
        last_error: Optional[Exception] = None

        # 1) Try sticky provider first if available
        if self._sticky_index is not None:
            try:
                return fn(self._build_web3(self._sticky_index))
            except Exception as e:
                last_error = e
                logger.warning(f"RPC {self._redact(self.urls[self._sticky_index])} failed, failing over: {e}")
                self._sticky_index = None

        # 2) Scan from beginning to pick the most preferred working provider
        for i in range(len(self.urls)):
            if max_attempts is not None and attempts >= max_attempts:
                break
            attempts += 1
            try:
                result = fn(self._build_web3(i))
                if self._sticky_index != i:
                    logger.debug(f"Using RPC {self._redact(self.urls[i])}")
                self._sticky_index = i
                return result
            except Exception as e:
                last_error = e
                continue

        if last_error:
            raise ConnectionError(f"All EVM RPC endpoints failed: {last_error}") from last_error
        raise ConnectionError("All EVM RPC endpoints failed")
