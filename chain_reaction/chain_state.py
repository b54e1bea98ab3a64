"""
The single chain state record.

One ChainState exists per game instance. It is created inactive at
deployment and reused across lifecycles: start seeds the chain parameters,
join/boost mutate the balances, end drains the balances and bumps chain_id.
The controller never mutates a committed state in place; it works on a
copy and swaps the copy in once the whole transition succeeded.
"""
from .assets import AssetId, NATIVE_ASSET
from .crypto import NULL_ADDRESS

BPS_DENOMINATOR = 10_000
U256_MAX = 2 ** 256 - 1

# Fields that hold unsigned 256-bit integers.
UINT_FIELDS = (
    'chain_id',
    'base_entry',
    'current_entry',
    'multiplier_bps',
    'burn_bps',
    'pot',
    'boost_amount',
    'burned_amount',
    'player_count',
    'last_entry_timestamp',
    'duration_ms',
    'duration_decrease_ms',
    'min_duration',
    'end_timestamp',
)


class ChainState:
    """
    Full state of one chain game.

    Amounts are in the smallest unit of `asset_id`, timestamps and
    durations in milliseconds.
    """

    def __init__(self, data: dict = None):
        """
        Initialize chain state.

        Args:
            data: Dict as produced by to_dict(). None gives the deployment
                  state (inactive, zero balances, 60s decay and floor).
        """
        if data is None:
            data = self.initial_data()

        self.chain_id = int(data['chain_id'])
        self.is_active = bool(data['is_active'])
        asset = data['asset_id']
        self.asset_id = asset if isinstance(asset, AssetId) else AssetId.from_dict(asset)
        self.base_entry = int(data['base_entry'])
        self.current_entry = int(data['current_entry'])
        self.multiplier_bps = int(data['multiplier_bps'])
        self.burn_bps = int(data['burn_bps'])
        self.pot = int(data['pot'])
        self.boost_amount = int(data['boost_amount'])
        self.burned_amount = int(data['burned_amount'])
        self.last_player = bytes(data['last_player'])
        self.player_count = int(data['player_count'])
        self.last_entry_timestamp = int(data['last_entry_timestamp'])
        self.duration_ms = int(data['duration_ms'])
        self.duration_decrease_ms = int(data['duration_decrease_ms'])
        self.min_duration = int(data['min_duration'])
        self.end_timestamp = int(data['end_timestamp'])
        self.validate()

    @staticmethod
    def initial_data(duration_decrease_ms: int = 60_000,
                     min_duration: int = 60_000,
                     asset_id: AssetId = NATIVE_ASSET) -> dict:
        """Field values of a freshly deployed game."""
        return {
            'chain_id': 0,
            'is_active': False,
            'asset_id': asset_id.to_dict(),
            'base_entry': 0,
            'current_entry': 0,
            'multiplier_bps': 0,
            'burn_bps': 0,
            'pot': 0,
            'boost_amount': 0,
            'burned_amount': 0,
            'last_player': NULL_ADDRESS,
            'player_count': 0,
            'last_entry_timestamp': 0,
            'duration_ms': 0,
            'duration_decrease_ms': duration_decrease_ms,
            'min_duration': min_duration,
            'end_timestamp': 0,
        }

    @classmethod
    def deploy(cls, duration_decrease_ms: int, min_duration: int,
               asset_id: AssetId = NATIVE_ASSET) -> 'ChainState':
        return cls(cls.initial_data(duration_decrease_ms, min_duration, asset_id))

    def to_dict(self, hex_encode: bool = False) -> dict:
        """
        Convert to dict for storage.

        With hex_encode the last player address is rendered as hex so the
        result can go straight to JSON.
        """
        return {
            'chain_id': self.chain_id,
            'is_active': self.is_active,
            'asset_id': self.asset_id.to_dict(),
            'base_entry': self.base_entry,
            'current_entry': self.current_entry,
            'multiplier_bps': self.multiplier_bps,
            'burn_bps': self.burn_bps,
            'pot': self.pot,
            'boost_amount': self.boost_amount,
            'burned_amount': self.burned_amount,
            'last_player': self.last_player.hex() if hex_encode else self.last_player,
            'player_count': self.player_count,
            'last_entry_timestamp': self.last_entry_timestamp,
            'duration_ms': self.duration_ms,
            'duration_decrease_ms': self.duration_decrease_ms,
            'min_duration': self.min_duration,
            'end_timestamp': self.end_timestamp,
        }

    def copy(self) -> 'ChainState':
        return ChainState(self.to_dict())

    def can_end(self, now: int) -> bool:
        """True once the countdown of an active chain has expired."""
        return self.is_active and now >= self.end_timestamp

    def validate(self):
        """Ensure state consistency."""
        for name in UINT_FIELDS:
            value = getattr(self, name)
            if value < 0 or value > U256_MAX:
                raise ValueError(f"{name} out of uint256 range: {value}")

        if self.is_active:
            if self.multiplier_bps <= 0:
                raise ValueError("Active chain requires multiplier_bps > 0")
            if self.burn_bps > BPS_DENOMINATOR:
                raise ValueError(f"burn_bps must be <= {BPS_DENOMINATOR}")
            if self.player_count < 1:
                raise ValueError("Active chain has at least one player")
        else:
            if self.pot or self.boost_amount or self.burned_amount:
                raise ValueError("Inactive chain must hold no funds")
            if self.player_count or self.last_player != NULL_ADDRESS:
                raise ValueError("Inactive chain must have no players")

    def __eq__(self, other) -> bool:
        if not isinstance(other, ChainState):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        """String representation for debugging."""
        if not self.is_active:
            return f"ChainState(chain_id={self.chain_id}, inactive)"
        return (
            f"ChainState("
            f"chain_id={self.chain_id}, "
            f"asset={self.asset_id}, "
            f"pot={self.pot}, "
            f"boost={self.boost_amount}, "
            f"burned={self.burned_amount}, "
            f"players={self.player_count}, "
            f"current_entry={self.current_entry}, "
            f"ends_at={self.end_timestamp})"
        )
