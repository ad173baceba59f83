"""Local layer addresses and peers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable

from kvikpy.errors import InvalidArgumentError

MAC_LEN = 6
MAX_RETAINED_ADDR_LEN = 16
RSSI_UNKNOWN = -32768
PREF_UNKNOWN = -32768


class LocalAddr:
    """Opaque local layer address made of bytes."""

    __slots__ = ("_addr",)

    def __init__(self, addr: bytes | Iterable[int] = b"") -> None:
        if isinstance(addr, int):
            raise TypeError("address must be bytes or an iterable of ints")
        self._addr = bytes(addr)

    @property
    def addr(self) -> bytes:
        return self._addr

    def is_empty(self) -> bool:
        return not self._addr

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalAddr):
            return NotImplemented
        return self._addr == other._addr

    def __hash__(self) -> int:
        return hash(self._addr)

    def __len__(self) -> int:
        return len(self._addr)

    def __str__(self) -> str:
        return self._addr.hex()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._addr!r})"


class LocalAddrMAC(LocalAddr):
    """Local layer address holding a MAC address."""

    __slots__ = ()

    def __init__(self, mac: bytes | Iterable[int] | None = None) -> None:
        super().__init__(bytes(MAC_LEN) if mac is None else mac)
        if len(self.addr) != MAC_LEN:
            raise InvalidArgumentError(f"MAC address must be {MAC_LEN} bytes long")

    @classmethod
    def zeroes(cls) -> LocalAddrMAC:
        return cls(bytes(MAC_LEN))

    @classmethod
    def broadcast(cls) -> LocalAddrMAC:
        return cls(b"\xff" * MAC_LEN)

    def to_bytes(self) -> bytes:
        return self.addr


def _ms(delta: timedelta) -> int:
    return int(delta / timedelta(milliseconds=1))


@dataclass(eq=False)
class LocalPeer:
    """A peer on the local layer; identity is given by its address alone."""

    addr: LocalAddr = field(default_factory=LocalAddr)
    channel: int = 0
    ts_diff: timedelta = timedelta(0)
    pref: int = PREF_UNKNOWN
    rssi: int = RSSI_UNKNOWN

    def is_empty(self) -> bool:
        return self.addr.is_empty()

    def retain(self) -> RetainedLocalPeer:
        """Return a compact form suitable for retained storage."""
        return RetainedLocalPeer(self.addr.addr[:MAX_RETAINED_ADDR_LEN], self.channel)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalPeer):
            return NotImplemented
        return self.addr == other.addr

    def __hash__(self) -> int:
        return hash(self.addr)

    def __str__(self) -> str:
        return (
            f"addr={self.addr}, channel={self.channel}, pref={self.pref}, "
            f"rssi={self.rssi}, tsDiff={_ms(self.ts_diff)} ms"
        )


@dataclass(frozen=True)
class RetainedLocalPeer:
    """Peer address and channel in a size-bounded form."""

    addr: bytes = b""
    channel: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "addr", bytes(self.addr))
        if len(self.addr) > MAX_RETAINED_ADDR_LEN:
            raise InvalidArgumentError("retained address too long")

    @property
    def addr_len(self) -> int:
        return len(self.addr)

    def unretain(self) -> LocalPeer:
        return LocalPeer(addr=LocalAddr(self.addr), channel=self.channel)