"""
msgpack encoding with uint256 support.

msgpack integers stop at 64 bits; game amounts go up to 2**256 - 1.
Integers that do not fit are packed as ExtType(BIGINT_EXT, 32-byte
big-endian) and restored transparently on unpack.
"""
import msgpack

BIGINT_EXT = 1
BIGINT_BYTES = 32


def _default(obj):
    if isinstance(obj, int) and 0 <= obj < 2 ** (8 * BIGINT_BYTES):
        return msgpack.ExtType(BIGINT_EXT, obj.to_bytes(BIGINT_BYTES, 'big'))
    raise TypeError(f"Cannot encode {type(obj).__name__}: {obj!r}")


def _ext_hook(code: int, data: bytes):
    if code == BIGINT_EXT:
        return int.from_bytes(data, 'big')
    return msgpack.ExtType(code, data)


def packb(obj) -> bytes:
    return msgpack.packb(obj, use_bin_type=True, default=_default)


def unpackb(raw: bytes):
    return msgpack.unpackb(raw, raw=False, ext_hook=_ext_hook)
