"""
Chain game lifecycle controller.

The game is a two-state machine (inactive / active) over one ChainState:

    start  inactive -> active   seeds the chain, starter's fee goes to pot untaxed
    join   active   -> active   exact-price entry, burn cut, countdown reset
    boost  active   -> active   adds to the prize, countdown untouched
    end    active   -> inactive pays pot + boost to the last player, bumps chain_id

`apply_operation` is the pure reducer: it validates everything first and
returns a new state plus the event, or raises a ValidationError with the
input state untouched. `ChainReaction` serializes calls to the reducer
behind one lock, books the ledger, persists and publishes the event.
"""
import logging
import threading
import time
from typing import Callable, Optional

from .assets import AssetId, NATIVE_ASSET
from .chain_state import ChainState, BPS_DENOMINATOR, U256_MAX
from .config import Config, GameConfig
from .core import Operation, START, JOIN, END, BOOST
from .crypto import NULL_ADDRESS
from .db import ChainStore
from .duration import next_duration
from .errors import (
    ValidationError,
    InvalidState,
    InvalidParameter,
    WrongPayment,
    AssetMismatch,
    PrematureEnd,
)
from .events import ChainEvent, ChainStarted, PlayerJoined, ChainEnded, PotBoosted, EventLog
from .ledger import FundLedger, split_entry_fee, payout_amount
from .monitoring import Monitor
from .pricing import next_entry_price

logger = logging.getLogger(__name__)


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def _short(address) -> str:
    return address.hex()[:8] if isinstance(address, bytes) else repr(address)


def _checked_add(a: int, b: int, what: str) -> int:
    total = a + b
    if total > U256_MAX:
        raise InvalidParameter(f"{what} overflows uint256")
    return total


# ==============================================================================
# REDUCER
# ==============================================================================

def _apply_start(state: ChainState, op: Operation, now: int):
    if state.is_active:
        raise InvalidState(f"Chain {state.chain_id} is already active")

    payment = op.data['payment']
    duration_ms = op.data['duration_ms']
    multiplier_bps = op.data['multiplier_bps']
    burn_bps = op.data['burn_bps']

    if payment == 0:
        raise InvalidParameter("Starting payment must be positive")
    if multiplier_bps == 0:
        raise InvalidParameter("multiplier_bps must be positive")
    if burn_bps > BPS_DENOMINATOR:
        raise InvalidParameter(f"burn_bps must be <= {BPS_DENOMINATOR}, got {burn_bps}")
    if duration_ms < state.min_duration:
        raise InvalidParameter(
            f"duration_ms {duration_ms} is below the minimum duration {state.min_duration}"
        )
    end_timestamp = _checked_add(now, duration_ms, "end_timestamp")

    new_state = state.copy()
    new_state.is_active = True
    new_state.asset_id = op.asset
    new_state.base_entry = payment
    new_state.current_entry = payment
    new_state.multiplier_bps = multiplier_bps
    new_state.burn_bps = burn_bps
    # No previous fee to take a cut from: the starter's fee is never burned.
    new_state.pot = payment
    new_state.boost_amount = 0
    new_state.burned_amount = 0
    new_state.last_player = op.sender
    new_state.player_count = 1
    new_state.last_entry_timestamp = now
    new_state.duration_ms = duration_ms
    new_state.end_timestamp = end_timestamp

    event = ChainStarted(
        new_state.chain_id, now,
        starter=op.sender, base_entry=payment, asset_id=op.asset,
    )
    return new_state, event


def _apply_join(state: ChainState, op: Operation, now: int):
    if not state.is_active:
        raise InvalidState("No active chain to join")
    if op.asset != state.asset_id:
        raise AssetMismatch(state.asset_id, op.asset)

    price = next_entry_price(state)
    if price > U256_MAX:
        raise InvalidParameter("Next entry price overflows uint256; the chain can only be ended")

    payment = op.data['payment']
    if payment != price:
        raise WrongPayment(price, payment)

    to_pot, burn_cut = split_entry_fee(payment, state.burn_bps)
    duration = next_duration(state)
    logger.debug(f"Join: price={price} to_pot={to_pot} burn={burn_cut} countdown={duration}ms")

    new_state = state.copy()
    new_state.pot = _checked_add(state.pot, to_pot, "pot")
    new_state.burned_amount = state.burned_amount + burn_cut
    new_state.current_entry = payment
    new_state.last_player = op.sender
    new_state.player_count = state.player_count + 1
    new_state.last_entry_timestamp = now
    new_state.end_timestamp = _checked_add(now, duration, "end_timestamp")

    event = PlayerJoined(state.chain_id, now, player=op.sender, entry_fee=payment)
    return new_state, event


def _apply_end(state: ChainState, op: Operation, now: int):
    # Permissionless: anyone may settle once the countdown is over.
    if not state.is_active:
        raise InvalidState("No active chain to end")
    if now < state.end_timestamp:
        raise PrematureEnd(state.end_timestamp, now)

    winner = state.last_player
    payout = payout_amount(state)

    new_state = state.copy()
    new_state.is_active = False
    new_state.pot = 0
    new_state.boost_amount = 0
    new_state.burned_amount = 0
    new_state.player_count = 0
    new_state.last_player = NULL_ADDRESS
    new_state.chain_id = _checked_add(state.chain_id, 1, "chain_id")

    event = ChainEnded(state.chain_id, now, winner=winner, payout=payout)
    return new_state, event


def _apply_boost(state: ChainState, op: Operation, now: int):
    if not state.is_active:
        raise InvalidState("No active chain to boost")
    if op.asset != state.asset_id:
        raise AssetMismatch(state.asset_id, op.asset)

    amount = op.data['amount']
    if amount == 0:
        raise InvalidParameter("Boost amount must be positive")

    new_state = state.copy()
    new_state.boost_amount = _checked_add(state.boost_amount, amount, "boost_amount")

    event = PotBoosted(state.chain_id, now, amount=amount)
    return new_state, event


_HANDLERS = {
    START: _apply_start,
    JOIN: _apply_join,
    END: _apply_end,
    BOOST: _apply_boost,
}


def apply_operation(state: ChainState, op: Operation, now: int) -> tuple[ChainState, ChainEvent]:
    """
    Apply one operation to a state.

    Args:
        state: Current state (never modified)
        op: Operation to apply
        now: Current time in ms

    Returns:
        (new_state, event)

    Raises:
        ValidationError subclass; nothing is mutated when it does.
    """
    is_valid, error = op.validate_basic()
    if not is_valid:
        raise InvalidParameter(error)
    if not isinstance(now, int) or now < 0 or now > U256_MAX:
        raise InvalidParameter(f"Invalid timestamp: {now}")

    new_state, event = _HANDLERS[op.op_type](state, op, now)
    new_state.validate()
    return new_state, event


# ==============================================================================
# SERVICE
# ==============================================================================

class ChainReaction:
    """
    One game instance: the state record plus the single writer lock.

    Every operation and every view runs under `self.lock`, so a join's
    exact-price check can never race another join and views always see a
    fully committed state.
    """

    def __init__(self, config: GameConfig = None, store: Optional[ChainStore] = None,
                 monitor: Optional[Monitor] = None, clock: Callable[[], int] = None):
        self.config = config or GameConfig()
        self.store = store
        self.monitor = monitor
        self.clock = clock or wall_clock_ms
        self.lock = threading.RLock()

        state = store.load_state() if store else None
        if state is None:
            state = ChainState.deploy(
                self.config.duration_decrease_ms,
                self.config.min_duration_ms,
            )
            if store:
                store.save_state(state)
            logger.info(
                f"Deployed game: decrease={state.duration_decrease_ms}ms "
                f"min_duration={state.min_duration}ms"
            )
        else:
            if (state.duration_decrease_ms, state.min_duration) != (
                    self.config.duration_decrease_ms, self.config.min_duration_ms):
                logger.warning(
                    "Stored game parameters differ from config; keeping stored "
                    f"decrease={state.duration_decrease_ms}ms min_duration={state.min_duration}ms"
                )
            logger.info(f"Loaded game state: {state!r}")

        self.state = state
        self.ledger = store.load_ledger() if store else FundLedger()
        self.events = EventLog(store.load_events() if store else None)

        if self.monitor:
            self.monitor.update(self.state, next_entry_price(self.state))

    @classmethod
    def from_config(cls, config: Config, clock: Callable[[], int] = None) -> 'ChainReaction':
        """Open a persisted game as described by a full Config."""
        store = ChainStore.open(
            config.database.path,
            write_buffer_size=config.database.write_buffer_size,
            max_open_files=config.database.max_open_files,
        )
        monitor = None
        if config.monitoring.enabled:
            monitor = Monitor(config.monitoring.host, config.monitoring.port)
            monitor.start_server()
        return cls(config.game, store=store, monitor=monitor, clock=clock)

    def close(self):
        if self.monitor:
            self.monitor.stop_server()
        if self.store:
            self.store.close()

    def _now(self, now: Optional[int]) -> int:
        return self.clock() if now is None else now

    # --------------------------------------------------------------------------
    # Operations
    # --------------------------------------------------------------------------

    def submit(self, op: Operation, now: Optional[int] = None) -> ChainEvent:
        """
        Validate, apply and commit one operation.

        Returns:
            The emitted event (with its sequence number)

        Raises:
            ValidationError: operation rejected, state unchanged
        """
        started = time.time()
        with self.lock:
            now = self._now(now)
            try:
                new_state, event = apply_operation(self.state, op, now)
            except ValidationError as e:
                logger.warning(f"{op.op_type} from {_short(op.sender)} rejected: {e}")
                self._record(op.op_type, 'rejected', started)
                raise

            ledger = self.ledger.copy()
            ledger.record(event, self.state, new_state)
            ledger.check_conservation(new_state)
            event.sequence = self.events.next_sequence()

            if self.store:
                try:
                    self.store.commit(new_state, ledger, event)
                except Exception as e:
                    logger.error(f"Failed to persist {event.NAME}: {e}", exc_info=True)
                    self._record(op.op_type, 'error', started)
                    raise

            self.state = new_state
            self.ledger = ledger
            self.events.append(event)

            logger.info(f"{event!r} -> {new_state!r}")
            self._record(op.op_type, 'ok', started)
            if self.monitor:
                self.monitor.update(new_state, next_entry_price(new_state))
                if isinstance(event, ChainEnded):
                    self.monitor.record_payout(event.payout)
        return event

    def start(self, sender: bytes, payment: int, duration_ms: int, multiplier_bps: int,
              asset_id: AssetId = NATIVE_ASSET, burn_bps: int = 0,
              now: Optional[int] = None) -> ChainStarted:
        op = Operation.start(sender, payment, duration_ms, multiplier_bps, asset_id, burn_bps)
        return self.submit(op, now)

    def join(self, sender: bytes, payment: int, asset: AssetId = NATIVE_ASSET,
             now: Optional[int] = None) -> PlayerJoined:
        return self.submit(Operation.join(sender, payment, asset), now)

    def end(self, sender: bytes, now: Optional[int] = None) -> ChainEnded:
        return self.submit(Operation.end(sender), now)

    def boost(self, sender: bytes, amount: int, asset: AssetId = NATIVE_ASSET,
              now: Optional[int] = None) -> PotBoosted:
        return self.submit(Operation.boost(sender, amount, asset), now)

    def _record(self, op_type: str, status: str, started: float):
        if self.monitor:
            self.monitor.record_operation(op_type, status, time.time() - started)

    # --------------------------------------------------------------------------
    # Views
    # --------------------------------------------------------------------------

    def next_entry_price(self) -> int:
        with self.lock:
            return next_entry_price(self.state)

    def can_end(self, now: Optional[int] = None) -> bool:
        with self.lock:
            return self.state.can_end(self._now(now))

    def get_state(self) -> ChainState:
        """A copy of the committed state."""
        with self.lock:
            return self.state.copy()

    def get_game_state(self, now: Optional[int] = None) -> dict:
        """Every state field plus the derived views, from one snapshot."""
        with self.lock:
            view = self.state.to_dict(hex_encode=True)
            view['next_entry_price'] = next_entry_price(self.state)
            view['can_end'] = self.state.can_end(self._now(now))
            return view

    def balance_of(self, address: bytes, asset: AssetId = NATIVE_ASSET) -> int:
        """Winnings credited to `address` and not yet claimed."""
        with self.lock:
            return self.ledger.balance_of(address, asset)

    def events_since(self, count: int = 0, limit: Optional[int] = None) -> list[ChainEvent]:
        return self.events.events_since(count, limit)

    def __repr__(self) -> str:
        return f"ChainReaction({self.state!r})"
