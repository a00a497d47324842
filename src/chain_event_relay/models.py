#!/usr/bin/env python3
"""Data models for the Chain Event Relay.

This module provides immutable data classes for representing decoded contract
events and the block ranges they are scanned over.
"""

import json
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True, slots=True)
class BlockRange:
    """Inclusive block range for a single scan.

    Attributes:
        block_start: First block to scan
        block_end: Last block to scan (the chain head at scan time)
    """

    block_start: int
    block_end: int

    def __post_init__(self) -> None:
        """Validate the range bounds."""
        if self.block_start < 0:
            raise ValueError(f"block_start must be non-negative, got {self.block_start}")
        if self.block_end < self.block_start:
            raise ValueError(
                f"block_end ({self.block_end}) must not be lower than "
                f"block_start ({self.block_start})"
            )

    def __len__(self) -> int:
        return self.block_end - self.block_start + 1


@dataclass(frozen=True, slots=True)
class Event:
    """A decoded contract log, ready to be forwarded to the event store.

    Attributes:
        from_address: Sender of the originating transaction
        to_address: Recipient of the originating transaction (None for contract creation)
        event_data: Decoded event arguments, or None when the log matched no ABI entry
        block_hash: Hash of the block containing the log
        block_number: Number of the block containing the log
        transaction_hash: Hash of the transaction that emitted the log
    """

    from_address: str
    to_address: str | None
    event_data: dict[str, Any] | None
    block_hash: str
    block_number: int
    transaction_hash: str

    def __str__(self) -> str:
        """Human-readable string representation."""
        name = "undecoded" if self.event_data is None else f"{len(self.event_data)} args"
        return (
            f"Event(block={self.block_number}, "
            f"tx={self.transaction_hash[:10]}..., "
            f"{name})"
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the wire format expected by the event store."""
        return {
            "from": self.from_address,
            "to": self.to_address,
            "eventData": self.event_data,
            "blockHash": self.block_hash,
            "blockNumber": self.block_number,
            "transactionHash": self.transaction_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Event":
        """Build an Event from its wire format (e.g. an event store response)."""
        return cls(
            from_address=data["from"],
            to_address=data.get("to"),
            event_data=data.get("eventData"),
            block_hash=data["blockHash"],
            block_number=int(data["blockNumber"]),
            transaction_hash=data["transactionHash"],
        )

    @property
    def fingerprint(self) -> str:
        """Canonical serialization used for set-membership comparison.

        Keys are sorted at every level so two structurally identical events
        always serialize to the same string.
        """
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
