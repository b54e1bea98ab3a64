"""
LevelDB persistence for a chain game.

DB is a thin wrapper over plyvel. ChainStore lays the game out on top of
it: the state record, the fund ledger and the event log, all packed
with the msgpack codec. A committed transition is written in one batch
so a crash can never leave the state without its event or ledger entry.
"""
import logging
from contextlib import contextmanager
from typing import Optional

import plyvel

from . import codec
from .chain_state import ChainState
from .events import ChainEvent
from .ledger import FundLedger

logger = logging.getLogger(__name__)

STATE_KEY = b'chain:state'
LEDGER_KEY = b'chain:ledger'
EVENT_PREFIX = b'chain:event:'


def event_key(sequence: int) -> bytes:
    # Big-endian so iteration order equals sequence order.
    return EVENT_PREFIX + sequence.to_bytes(8, 'big')


class DB:
    """Raw key/value access. Values are opaque bytes."""

    def __init__(self, path: str, write_buffer_size: int = 4 * 1024 * 1024,
                 max_open_files: int = 100):
        try:
            self._db = plyvel.DB(
                path,
                create_if_missing=True,
                write_buffer_size=write_buffer_size,
                max_open_files=max_open_files,
            )
        except plyvel.Error as e:
            logger.error(f"Cannot open LevelDB at {path}: {e}")
            raise
        self.path = path
        self._closed = False
        logger.info(f"Opened LevelDB at {path}")

    def _ensure_open(self):
        if self._closed:
            raise RuntimeError(f"LevelDB at {self.path} is closed")

    def get(self, key: bytes) -> Optional[bytes]:
        self._ensure_open()
        return self._db.get(key)

    def put(self, key: bytes, value: bytes):
        self._ensure_open()
        self._db.put(key, value)

    @contextmanager
    def write_batch(self):
        """
        Yield a transactional batch; it is written when the block exits.

        Nothing reaches the database if the block raises.
        """
        self._ensure_open()
        batch = self._db.write_batch(transaction=True)
        try:
            yield batch
        except Exception:
            batch.clear()
            raise
        try:
            batch.write()
        except plyvel.Error as e:
            logger.error(f"Batch write to {self.path} failed: {e}")
            raise

    def get_prefix(self, prefix: bytes) -> list[tuple[bytes, bytes]]:
        """(key, value) pairs under `prefix`, in key order."""
        self._ensure_open()
        with self._db.iterator(prefix=prefix) as it:
            return list(it)

    def close(self):
        if self._closed:
            return
        self._db.close()
        self._closed = True
        logger.info(f"Closed LevelDB at {self.path}")


class ChainStore:
    """Game persistence: state, ledger and events on top of a DB."""

    def __init__(self, db: DB):
        self.db = db

    @classmethod
    def open(cls, db_path: str, **kwargs) -> 'ChainStore':
        return cls(DB(db_path, **kwargs))

    def load_state(self) -> Optional[ChainState]:
        raw = self.db.get(STATE_KEY)
        if raw is None:
            return None
        return ChainState(codec.unpackb(raw))

    def load_ledger(self) -> FundLedger:
        raw = self.db.get(LEDGER_KEY)
        if raw is None:
            return FundLedger()
        return FundLedger(codec.unpackb(raw))

    def load_events(self) -> list[ChainEvent]:
        return [ChainEvent.decode(raw) for _, raw in self.db.get_prefix(EVENT_PREFIX)]

    def save_state(self, state: ChainState):
        """Write the state alone (deployment of a fresh game)."""
        self.db.put(STATE_KEY, codec.packb(state.to_dict()))

    def commit(self, state: ChainState, ledger: FundLedger, event: ChainEvent):
        """Persist one transition atomically."""
        if event.sequence is None:
            raise ValueError("Event must have a sequence number before it is stored")
        with self.db.write_batch() as batch:
            batch.put(STATE_KEY, codec.packb(state.to_dict()))
            batch.put(LEDGER_KEY, codec.packb(ledger.to_dict()))
            batch.put(event_key(event.sequence), event.encode())
        logger.debug(f"Stored {event.NAME} #{event.sequence}")

    def close(self):
        self.db.close()
