"""
Chain Event Relay package.

Reorg-aware relay of a contract's log events from an EVM chain to an HTTP
event store.
"""

from .config import RelayConfig
from .event_decoder import EventDecoder
from .models import BlockRange, Event
from .relayer import EventRelay
from .scheduler import Scheduler
from .supervisor import ConnectionState, ConnectionSupervisor

__all__ = [
    "RelayConfig",
    "EventRelay",
    "EventDecoder",
    "Event",
    "BlockRange",
    "Scheduler",
    "ConnectionSupervisor",
    "ConnectionState",
]
__version__ = "0.1.0"
