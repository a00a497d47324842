#!/usr/bin/env python3
"""Event decoding for the Chain Event Relay.

This module turns raw ``eth_getLogs`` entries plus their originating
transaction into structured :class:`Event` records using the contract ABI.
Decoding is best effort: a log that matches no ABI entry, or fails to decode,
still produces an Event with ``event_data=None`` because its address and hash
metadata is useful on its own.
"""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from eth_utils import event_abi_to_log_topic
from hexbytes import HexBytes
from web3 import Web3
from web3._utils.events import get_event_data

from .models import Event

logger = logging.getLogger(__name__)


def to_hex_str(value: Any) -> str:
    """Render bytes/HexBytes/str as a lowercase 0x-prefixed hex string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def normalize_value(value: Any) -> Any:
    """Convert a decoded ABI value into a JSON-safe scalar (or list of them).

    Integers are rendered as decimal strings: uint256 values routinely exceed
    what a JSON number can carry into the event store.
    """
    match value:
        case bool() | str() | None:
            return value
        case int():
            return str(value)
        case bytes() | bytearray():
            return to_hex_str(value)
        case Mapping():
            return {str(k): normalize_value(v) for k, v in value.items()}
        case list() | tuple():
            return [normalize_value(v) for v in value]
        case _:
            return str(value)


class EventDecoder:
    """Decodes raw logs of a single contract into Events."""

    def __init__(self, abi: Sequence[dict[str, Any]], codec: Any = None) -> None:
        """
        Initialize the decoder.

        Args:
            abi: Contract ABI (only ``event`` entries are used)
            codec: ABI codec; defaults to the one of a provider-less Web3 instance
        """
        self.codec = codec if codec is not None else Web3().codec

        # topic0 -> event ABI, anonymous events have no signature topic
        self.topic_to_abi: dict[bytes, dict[str, Any]] = {}
        for entry in abi:
            if entry.get("type") != "event" or entry.get("anonymous"):
                continue
            self.topic_to_abi[bytes(event_abi_to_log_topic(entry))] = {"anonymous": False, **entry}

        logger.debug(f"EventDecoder initialized with {len(self.topic_to_abi)} event signatures")

    def decode_payload(self, raw_log: Mapping[str, Any]) -> dict[str, Any] | None:
        """
        Decode the log topics/data into a name -> value mapping.

        Args:
            raw_log: Log entry as returned by ``eth_getLogs``

        Returns:
            Mapping of argument names to normalized values, or None if the log
            matches no ABI entry or cannot be decoded
        """
        topics = raw_log.get("topics") or []
        if not topics:
            return None

        try:
            topics = [HexBytes(topic) for topic in topics]
            event_abi = self.topic_to_abi.get(bytes(topics[0]))
            if event_abi is None:
                logger.debug(f"No ABI entry for topic {to_hex_str(topics[0])}")
                return None

            log_entry = {
                "logIndex": 0,
                "transactionIndex": 0,
                "address": None,
                **raw_log,
                "topics": topics,
                "data": HexBytes(raw_log.get("data") or b""),
            }
            decoded = get_event_data(self.codec, event_abi, log_entry)
        except Exception as e:
            logger.warning(
                f"Failed to decode log in tx "
                f"{to_hex_str(raw_log.get('transactionHash', b''))}: {e}"
            )
            return None

        return {name: normalize_value(value) for name, value in decoded["args"].items()}

    def decode(self, raw_log: Mapping[str, Any], transaction: Mapping[str, Any]) -> Event:
        """
        Build an Event from a raw log and its originating transaction.

        Args:
            raw_log: Log entry as returned by ``eth_getLogs``
            transaction: Transaction as returned by ``eth_getTransactionByHash``

        Returns:
            The decoded Event
        """
        to_address = transaction.get("to")
        return Event(
            from_address=transaction["from"],
            to_address=to_address if to_address else None,
            event_data=self.decode_payload(raw_log),
            block_hash=to_hex_str(raw_log["blockHash"]),
            block_number=int(raw_log["blockNumber"]),
            transaction_hash=to_hex_str(raw_log["transactionHash"]),
        )
