"""
Hashing and identity helpers.

Player identities are 20-byte addresses derived from an ECDSA public key.
Key management and transaction signing live outside the game; these
helpers only produce and check addresses and hash operation payloads.
"""
import hashlib

from Crypto.Hash import keccak
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

ADDRESS_LENGTH = 20
NULL_ADDRESS = bytes(ADDRESS_LENGTH)


def generate_hash(data: bytes) -> bytes:
    """Keccak-256 digest of `data`."""
    return keccak.new(digest_bits=256, data=data).digest()


def new_player_key() -> ec.EllipticCurvePrivateKey:
    return ec.generate_private_key(ec.SECP256R1())


def address_from_public_key(public_key) -> bytes:
    """
    Address of a public key: first 20 bytes of sha256 over its DER encoding.

    Accepts a key object or its PEM text.
    """
    if isinstance(public_key, str):
        public_key = serialization.load_pem_public_key(public_key.encode())
    der = public_key.public_bytes(
        serialization.Encoding.DER,
        serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return hashlib.sha256(der).digest()[:ADDRESS_LENGTH]


def is_valid_address(address) -> bool:
    """A usable caller address: 20 bytes and not the null address."""
    return (
        isinstance(address, bytes)
        and len(address) == ADDRESS_LENGTH
        and address != NULL_ADDRESS
    )


def parse_address(value: str) -> bytes:
    """Parse a hex address (optional 0x prefix)."""
    value = value.strip()
    if value.startswith('0x'):
        value = value[2:]
    address = bytes.fromhex(value)
    if len(address) != ADDRESS_LENGTH:
        raise ValueError(f"Address must be {ADDRESS_LENGTH} bytes, got {len(address)}")
    return address
