"""Shared fixtures: an in-memory chain behind a fake AsyncWeb3 and a fake Redis client."""

from __future__ import annotations

import asyncio
from typing import Any
from unittest.mock import AsyncMock

import pytest
from eth_abi import encode
from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3

from chain_event_relay.config import MonitoringConfig, RelayConfig, SourceChainConfig
from chain_event_relay.cursor_store import RedisCursorStore
from chain_event_relay.event_decoder import EventDecoder
from chain_event_relay.forwarder import Forwarder

CONTRACT_ADDRESS = "0x85BfE05492aFC3D04Ff3B2ca6771ACF6f853d90d"
SENDER = Web3.to_checksum_address("0x742d35cc6634c0532925a3b844bc9e7595f0beb7")
RECEIVER = Web3.to_checksum_address("0xdcc23a03e6b6aa254ca5b0be942dd5cafc9a2299")

TRANSFER_ABI = {
    "anonymous": False,
    "inputs": [
        {"indexed": True, "name": "from", "type": "address"},
        {"indexed": True, "name": "to", "type": "address"},
        {"indexed": False, "name": "value", "type": "uint256"},
    ],
    "name": "Transfer",
    "type": "event",
}
TEST_ABI = [TRANSFER_ABI]
TRANSFER_TOPIC = HexBytes(event_abi_to_log_topic(TRANSFER_ABI))


def address_topic(address: str) -> HexBytes:
    return HexBytes(b"\x00" * 12 + HexBytes(address))


def make_transfer_log(
    block_number: int,
    value: int,
    tx_index: int = 0,
    block_hash: str | None = None,
) -> dict[str, Any]:
    """Build a raw Transfer log as eth_getLogs would return it."""
    tx_hash = HexBytes(block_number.to_bytes(16, "big") + tx_index.to_bytes(16, "big"))
    return {
        "address": CONTRACT_ADDRESS,
        "topics": [TRANSFER_TOPIC, address_topic(SENDER), address_topic(RECEIVER)],
        "data": HexBytes(encode(["uint256"], [value])),
        "blockNumber": block_number,
        "blockHash": HexBytes(block_hash or block_number.to_bytes(32, "big")),
        "transactionHash": tx_hash,
        "transactionIndex": tx_index,
        "logIndex": tx_index,
        "removed": False,
    }


class FakeEth:
    """The ``w3.eth`` namespace of an in-memory chain."""

    def __init__(self, chain: "FakeChain") -> None:
        self._chain = chain

    async def _head(self) -> int:
        self._chain.calls.append(("block_number",))
        if self._chain.fail_next:
            raise self._chain.fail_next.pop(0)
        return self._chain.head

    @property
    def block_number(self):
        return self._head()

    async def _chain_id(self) -> int:
        return self._chain.chain_id

    @property
    def chain_id(self):
        return self._chain_id()

    async def get_logs(self, filter_params: dict[str, Any]) -> list[dict[str, Any]]:
        from_block = filter_params["fromBlock"]
        to_block = filter_params["toBlock"]
        self._chain.calls.append(("get_logs", from_block, to_block))
        if self._chain.fail_next:
            raise self._chain.fail_next.pop(0)
        return [
            log
            for number in range(from_block, to_block + 1)
            for log in self._chain.blocks.get(number, [])
        ]

    async def get_transaction(self, transaction_hash: Any) -> dict[str, Any]:
        return {"from": SENDER, "to": CONTRACT_ADDRESS, "hash": transaction_hash}


class FakeChain:
    """Blocks of logs keyed by number, plus a head and an RPC call journal."""

    def __init__(self, head: int = 0, chain_id: int = 1) -> None:
        self.head = head
        self.chain_id = chain_id
        self.blocks: dict[int, list[dict[str, Any]]] = {}
        self.calls: list[tuple] = []
        self.fail_next: list[Exception] = []
        self.connected = True
        self.eth = FakeEth(self)

    async def is_connected(self) -> bool:
        return self.connected

    def add_log(self, log: dict[str, Any]) -> dict[str, Any]:
        self.blocks.setdefault(log["blockNumber"], []).append(log)
        return log

    def log_ranges(self) -> list[tuple[int, int]]:
        return [(call[1], call[2]) for call in self.calls if call[0] == "get_logs"]


class FakeRedis:
    """The subset of ``redis.asyncio.Redis`` used by the cursor store."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.sets: dict[str, set[str]] = {}
        self.closed = False

    async def ping(self) -> bool:
        return True

    async def get(self, key: str) -> str | None:
        return self.values.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.values[key] = value
        return True

    async def smembers(self, key: str) -> set[str]:
        return set(self.sets.get(key, set()))

    async def sadd(self, key: str, *members: str) -> int:
        target = self.sets.setdefault(key, set())
        before = len(target)
        target.update(members)
        return len(target) - before

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            removed += int(self.sets.pop(key, None) is not None)
            removed += int(self.values.pop(key, None) is not None)
        return removed

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def chain():
    return FakeChain(head=100)


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture
def store(redis_client):
    return RedisCursorStore(redis_client, default_cursor=100)


@pytest.fixture
def decoder():
    return EventDecoder(TEST_ABI)


@pytest.fixture
def event_store():
    """Event store client whose create_event echoes the event back."""
    mock = AsyncMock()
    mock.create_event = AsyncMock(side_effect=lambda event: event)
    return mock


@pytest.fixture
def forwarder(event_store):
    return Forwarder(event_store)


@pytest.fixture
def relay_config():
    return RelayConfig(
        source_chain=SourceChainConfig(
            provider_urls=("https://rpc-a.test", "https://rpc-b.test"),
            contract_address=CONTRACT_ADDRESS,
        ),
        monitoring=MonitoringConfig(
            polling_interval=0.01,
            reconnect_base_delay=0,
            reconnect_max_delay=0,
            max_connect_attempts=2,
        ),
    )


def forwarded_events(event_store) -> list:
    """Events passed to create_event, in call order."""
    return [call.args[0] for call in event_store.create_event.call_args_list]


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Yield to the event loop until ``predicate()`` holds."""
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)
