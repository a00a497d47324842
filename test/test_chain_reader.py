#!/usr/bin/env python3
"""Unit tests for ChainReader."""

import pytest

from chain_event_relay.chain_reader import ChainReader
from conftest import CONTRACT_ADDRESS, SENDER, TRANSFER_TOPIC, make_transfer_log


@pytest.fixture
def reader(chain, decoder):
    return ChainReader(chain, contract_address=CONTRACT_ADDRESS, decoder=decoder)


class TestChainReader:
    """Test suite for ChainReader."""

    def test_filter_without_topics(self, reader):
        assert reader.build_filter(10, 20) == {
            "fromBlock": 10,
            "toBlock": 20,
            "address": CONTRACT_ADDRESS,
        }

    def test_filter_topics_are_ored(self, chain, decoder):
        """Test that topic filters go into the topic0 position as alternatives."""
        topics = (TRANSFER_TOPIC.to_0x_hex(), "0x" + "22" * 32)
        reader = ChainReader(chain, CONTRACT_ADDRESS, decoder, topics=topics)

        assert reader.build_filter(1, 1)["topics"] == [list(topics)]

    @pytest.mark.asyncio
    async def test_block_number(self, reader, chain):
        chain.head = 1234
        assert await reader.get_block_number() == 1234

    @pytest.mark.asyncio
    async def test_fetch_events_in_range(self, reader, chain):
        """Test that logs in the inclusive range are decoded in order."""
        chain.add_log(make_transfer_log(10, value=1))
        chain.add_log(make_transfer_log(10, value=2, tx_index=1))
        chain.add_log(make_transfer_log(20, value=3))
        chain.add_log(make_transfer_log(21, value=4))

        events = await reader.fetch_events(10, 20)

        assert [event.event_data["value"] for event in events] == ["1", "2", "3"]
        assert all(event.from_address == SENDER for event in events)
        assert chain.log_ranges() == [(10, 20)]

    @pytest.mark.asyncio
    async def test_fetch_events_empty(self, reader, chain):
        assert await reader.fetch_events(5, 9) == []

    @pytest.mark.asyncio
    async def test_rpc_errors_propagate(self, reader, chain):
        chain.fail_next = [TimeoutError("rpc timeout")]

        with pytest.raises(TimeoutError):
            await reader.fetch_events(1, 2)
