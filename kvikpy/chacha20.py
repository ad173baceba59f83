"""ChaCha20 stream cipher with a 64-bit block counter and a 64-bit nonce."""

from __future__ import annotations

import struct

from kvikpy.errors import InvalidArgumentError

KEY_LEN = 32
NONCE_LEN = 8
BLOCK_LEN = 64

_MASK32 = 0xFFFFFFFF
_COUNTER_LIMIT = 1 << 64
_CONSTANT = b"expand 32-byte k"

_QUARTER_ROUNDS = (
    (0, 4, 8, 12),
    (1, 5, 9, 13),
    (2, 6, 10, 14),
    (3, 7, 11, 15),
    (0, 5, 10, 15),
    (1, 6, 11, 12),
    (2, 7, 8, 13),
    (3, 4, 9, 14),
)


def _rotl32(x: int, n: int) -> int:
    return ((x << n) | (x >> (32 - n))) & _MASK32


def _quarter_round(x: list[int], a: int, b: int, c: int, d: int) -> None:
    x[a] = (x[a] + x[b]) & _MASK32
    x[d] = _rotl32(x[d] ^ x[a], 16)
    x[c] = (x[c] + x[d]) & _MASK32
    x[b] = _rotl32(x[b] ^ x[c], 12)
    x[a] = (x[a] + x[b]) & _MASK32
    x[d] = _rotl32(x[d] ^ x[a], 8)
    x[c] = (x[c] + x[d]) & _MASK32
    x[b] = _rotl32(x[b] ^ x[c], 7)


def _check_counter(counter: int) -> int:
    if not 0 <= counter < _COUNTER_LIMIT:
        raise InvalidArgumentError(f"counter out of range: {counter}")
    return counter


class ChaCha20Block:
    """Keystream block generator seeded with a key and a nonce."""

    def __init__(self, key: bytes, nonce: bytes) -> None:
        key = bytes(key)
        nonce = bytes(nonce)
        if len(key) != KEY_LEN:
            raise InvalidArgumentError(f"key must be {KEY_LEN} bytes long")
        if len(nonce) != NONCE_LEN:
            raise InvalidArgumentError(f"nonce must be {NONCE_LEN} bytes long")
        self._constant = struct.unpack("<4I", _CONSTANT)
        self._key = struct.unpack("<8I", key)
        self._nonce = struct.unpack("<2I", nonce)
        self._counter = 0

    @property
    def counter(self) -> int:
        """Index of the next block to be generated."""
        return self._counter

    def set_counter(self, counter: int) -> None:
        """Seek to the block with the given index."""
        self._counter = _check_counter(counter)

    def _state(self) -> list[int]:
        return [
            *self._constant,
            *self._key,
            self._counter & _MASK32,
            self._counter >> 32,
            *self._nonce,
        ]

    def next_words(self) -> tuple[int, ...]:
        """Generate the next block as sixteen 32-bit words and advance."""
        if self._counter == _COUNTER_LIMIT - 1:
            raise OverflowError("keystream exhausted")
        state = self._state()
        working = list(state)
        for _ in range(10):
            for indices in _QUARTER_ROUNDS:
                _quarter_round(working, *indices)
        self._counter += 1
        return tuple((w + s) & _MASK32 for w, s in zip(working, state))

    def next_bytes(self) -> bytes:
        """Generate the next 64-byte block and advance."""
        return struct.pack("<16I", *self.next_words())


class ChaCha20:
    """XORs data with the ChaCha20 keystream; encryption and decryption are the same."""

    def __init__(self, key: bytes, nonce: bytes, counter: int = 0) -> None:
        self._block = ChaCha20Block(key, nonce)
        self._block.set_counter(counter)
        self._buffer = b""
        self._position = BLOCK_LEN

    def _keystream(self, length: int) -> bytes:
        parts = []
        while length > 0:
            if self._position >= BLOCK_LEN:
                self._buffer = self._block.next_bytes()
                self._position = 0
            chunk = self._buffer[self._position:self._position + length]
            self._position += len(chunk)
            length -= len(chunk)
            parts.append(chunk)
        return b"".join(parts)

    def crypt(self, data: bytes) -> bytes:
        """Return ``data`` XORed with the next bytes of the keystream."""
        data = bytes(data)
        if not data:
            return b""
        stream = self._keystream(len(data))
        mixed = int.from_bytes(data, "little") ^ int.from_bytes(stream, "little")
        return mixed.to_bytes(len(data), "little")