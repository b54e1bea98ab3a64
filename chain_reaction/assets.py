"""
Asset identifiers for chain entry fees, boosts and payouts.

An asset is either the chain's native coin or a fungible token identified
by its 32-byte token id. Assets are compared for equality only; nothing in
the game converts between them.
"""
from dataclasses import dataclass
from typing import Optional

NATIVE = "native"
TOKEN = "token"

TOKEN_ID_LENGTH = 32
# The native coin's id when it is spelled as a token id.
NATIVE_TOKEN_ID = bytes(TOKEN_ID_LENGTH)


@dataclass(frozen=True)
class AssetId:
    """Tagged asset value: {kind: native | token(id)}."""
    kind: str
    token_id: Optional[bytes] = None

    def __post_init__(self):
        if self.kind == NATIVE:
            if self.token_id is not None:
                raise ValueError("Native asset has no token id")
        elif self.kind == TOKEN:
            if not isinstance(self.token_id, bytes) or len(self.token_id) != TOKEN_ID_LENGTH:
                raise ValueError(f"Token id must be {TOKEN_ID_LENGTH} bytes")
            if self.token_id == NATIVE_TOKEN_ID:
                raise ValueError("The all-zero token id is the native asset")
        else:
            raise ValueError(f"Unknown asset kind: {self.kind}")

    @classmethod
    def native(cls) -> 'AssetId':
        return cls(NATIVE)

    @classmethod
    def token(cls, token_id) -> 'AssetId':
        """
        Build a token asset from raw bytes or a hex string.

        The all-zero id names the native coin and yields the native asset.
        """
        if isinstance(token_id, str):
            token_id = bytes.fromhex(token_id)
        if token_id == NATIVE_TOKEN_ID:
            return cls.native()
        return cls(TOKEN, token_id)

    @classmethod
    def parse(cls, value: str) -> 'AssetId':
        """
        Parse the textual form used by the CLI and config files.

        'native', an empty string or an all-zero hex id all mean the native
        asset; any other 64-char hex string is a token id.
        """
        value = (value or '').strip().lower()
        if value in ('', NATIVE):
            return cls.native()
        return cls.token(value)

    @property
    def is_native(self) -> bool:
        return self.kind == NATIVE

    def to_dict(self) -> dict:
        return {
            'kind': self.kind,
            'token_id': self.token_id.hex() if self.token_id else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'AssetId':
        if data['kind'] == NATIVE:
            return cls.native()
        return cls.token(data['token_id'])

    def __str__(self) -> str:
        # Round-trips through parse(); ledger keys rely on it.
        return NATIVE if self.is_native else self.token_id.hex()


NATIVE_ASSET = AssetId.native()
