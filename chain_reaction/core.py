"""
Operation envelope for the chain game.

An Operation is what a caller submits: who is calling, which state
transition, the funds presented (asset) and the operation's arguments.
Authentication and signing happen in the wallet layer before an operation
reaches the game; here it only needs a canonical encoding and an id.
"""
import time
from typing import Optional

from . import codec
from .assets import AssetId, NATIVE_ASSET
from .chain_state import U256_MAX
from .crypto import generate_hash, is_valid_address

START = "START"
JOIN = "JOIN"
END = "END"
BOOST = "BOOST"

OPERATION_TYPES = (START, JOIN, END, BOOST)

# Integer arguments each operation must carry.
REQUIRED_FIELDS = {
    START: ('payment', 'duration_ms', 'multiplier_bps', 'burn_bps'),
    JOIN: ('payment',),
    END: (),
    BOOST: ('amount',),
}


class Operation:
    def __init__(self,
                 sender: bytes,
                 op_type: str,
                 data: Optional[dict] = None,
                 asset: AssetId = NATIVE_ASSET,
                 timestamp: Optional[int] = None):
        self.sender = sender
        self.op_type = op_type
        self.data = data or {}
        self.asset = asset
        # Submission time in ms; the game uses its own clock for state.
        self.timestamp = timestamp if timestamp is not None else int(time.time() * 1000)

    @classmethod
    def start(cls, sender: bytes, payment: int, duration_ms: int, multiplier_bps: int,
              asset_id: AssetId = NATIVE_ASSET, burn_bps: int = 0) -> 'Operation':
        return cls(sender, START, {
            'payment': payment,
            'duration_ms': duration_ms,
            'multiplier_bps': multiplier_bps,
            'burn_bps': burn_bps,
        }, asset=asset_id)

    @classmethod
    def join(cls, sender: bytes, payment: int, asset: AssetId = NATIVE_ASSET) -> 'Operation':
        return cls(sender, JOIN, {'payment': payment}, asset=asset)

    @classmethod
    def end(cls, sender: bytes) -> 'Operation':
        return cls(sender, END)

    @classmethod
    def boost(cls, sender: bytes, amount: int, asset: AssetId = NATIVE_ASSET) -> 'Operation':
        return cls(sender, BOOST, {'amount': amount}, asset=asset)

    @classmethod
    def from_dict(cls, data: dict):
        """Creates an Operation object from a dictionary."""
        sender = data["sender"]
        if isinstance(sender, str):
            sender = bytes.fromhex(sender)
        return cls(
            sender=sender,
            op_type=data["op_type"],
            data=data.get("data", {}),
            asset=AssetId.from_dict(data["asset"]) if data.get("asset") else NATIVE_ASSET,
            timestamp=data.get("timestamp"),
        )

    def to_dict(self) -> dict:
        return {
            "sender": self.sender,
            "op_type": self.op_type,
            "data": self.data,
            "asset": self.asset.to_dict(),
            "timestamp": self.timestamp,
        }

    def encode(self) -> bytes:
        """Canonical byte representation."""
        return codec.packb(self.to_dict())

    @classmethod
    def decode(cls, raw: bytes) -> 'Operation':
        return cls.from_dict(codec.unpackb(raw))

    @property
    def id(self) -> bytes:
        """The unique hash identifier of the operation."""
        return generate_hash(self.encode())

    def validate_basic(self) -> tuple[bool, str]:
        """
        Performs shape checks that need no game state.
        Returns (is_valid, error_message)
        """
        if self.op_type not in OPERATION_TYPES:
            return False, f"Unknown operation type: {self.op_type}"

        if not is_valid_address(self.sender):
            return False, "Sender must be a non-null 20-byte address"

        if not isinstance(self.asset, AssetId):
            return False, "Asset must be an AssetId"

        for field in REQUIRED_FIELDS[self.op_type]:
            if field not in self.data:
                return False, f"{self.op_type} requires '{field}'"
            value = self.data[field]
            # bool is an int subclass; reject it explicitly.
            if not isinstance(value, int) or isinstance(value, bool):
                return False, f"{field} must be an integer"
            if value < 0 or value > U256_MAX:
                return False, f"{field} out of uint256 range"

        return True, ""

    def __repr__(self) -> str:
        sender = self.sender.hex()[:8] if isinstance(self.sender, bytes) else self.sender
        return f"Operation({self.op_type}, sender={sender}, data={self.data})"
