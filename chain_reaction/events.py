"""
Domain events emitted by the chain state machine.

Events are append-only. Each one carries enough data for an external
indexer to rebuild per-player statistics (entries paid, wins, payouts)
without replaying state. The game never calls back into consumers; they
read the log from a cursor.
"""
import threading
from typing import Optional

from . import codec
from .assets import AssetId


class ChainEvent:
    """Base class for events. Subclasses list their payload in FIELDS."""
    NAME = ""
    FIELDS: tuple = ()
    # Payload fields holding raw addresses.
    ADDRESS_FIELDS: tuple = ()

    def __init__(self, chain_id: int, timestamp: int = 0, **payload):
        self.chain_id = chain_id
        self.timestamp = timestamp
        self.sequence: Optional[int] = None
        for name in self.FIELDS:
            setattr(self, name, payload[name])

    def to_dict(self, hex_encode: bool = False) -> dict:
        data = {
            'name': self.NAME,
            'sequence': self.sequence,
            'chain_id': self.chain_id,
            'timestamp': self.timestamp,
        }
        for name in self.FIELDS:
            value = getattr(self, name)
            if isinstance(value, AssetId):
                value = value.to_dict()
            elif hex_encode and name in self.ADDRESS_FIELDS:
                value = value.hex()
            data[name] = value
        return data

    @staticmethod
    def from_dict(data: dict) -> 'ChainEvent':
        cls = EVENT_TYPES[data['name']]
        payload = {}
        for name in cls.FIELDS:
            value = data[name]
            if name == 'asset_id':
                value = AssetId.from_dict(value)
            elif name in cls.ADDRESS_FIELDS and isinstance(value, str):
                value = bytes.fromhex(value)
            payload[name] = value
        event = cls(data['chain_id'], data.get('timestamp', 0), **payload)
        event.sequence = data.get('sequence')
        return event

    def encode(self) -> bytes:
        return codec.packb(self.to_dict())

    @staticmethod
    def decode(raw: bytes) -> 'ChainEvent':
        return ChainEvent.from_dict(codec.unpackb(raw))

    def __eq__(self, other) -> bool:
        if not isinstance(other, ChainEvent):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        fields = ", ".join(f"{name}={getattr(self, name)!r}" for name in self.FIELDS)
        return f"{self.NAME}(chain_id={self.chain_id}, {fields})"


class ChainStarted(ChainEvent):
    NAME = "ChainStarted"
    FIELDS = ('starter', 'base_entry', 'asset_id')
    ADDRESS_FIELDS = ('starter',)


class PlayerJoined(ChainEvent):
    NAME = "PlayerJoined"
    FIELDS = ('player', 'entry_fee')
    ADDRESS_FIELDS = ('player',)


class ChainEnded(ChainEvent):
    NAME = "ChainEnded"
    FIELDS = ('winner', 'payout')
    ADDRESS_FIELDS = ('winner',)


class PotBoosted(ChainEvent):
    NAME = "PotBoosted"
    FIELDS = ('amount',)


EVENT_TYPES = {
    cls.NAME: cls for cls in (ChainStarted, PlayerJoined, ChainEnded, PotBoosted)
}


class EventLog:
    """
    Append-only, in-order event log.

    Sequence numbers start at 0 and equal the event's index, so
    `events_since(current_count())` is always empty and a reader that
    remembers the count it last saw never misses or repeats an event.
    """

    def __init__(self, events: list = None):
        self._events: list[ChainEvent] = []
        self._lock = threading.Lock()
        for event in events or []:
            self.append(event)

    def append(self, event: ChainEvent) -> int:
        with self._lock:
            event.sequence = len(self._events)
            self._events.append(event)
            return event.sequence

    def current_count(self) -> int:
        with self._lock:
            return len(self._events)

    def next_sequence(self) -> int:
        return self.current_count()

    def events_since(self, count: int = 0, limit: Optional[int] = None) -> list[ChainEvent]:
        """Events with sequence >= count, oldest first."""
        if count < 0:
            raise ValueError("count must be non-negative")
        with self._lock:
            events = self._events[count:]
        if limit is not None:
            events = events[:limit]
        return list(events)

    def by_name(self, name: str) -> list[ChainEvent]:
        with self._lock:
            return [e for e in self._events if e.NAME == name]

    def __len__(self) -> int:
        return self.current_count()

    def __iter__(self):
        return iter(self.events_since(0))
