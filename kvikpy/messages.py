"""Local message types and publish/subscribe data structures."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import IntEnum
from typing import Callable

from kvikpy.addresses import PREF_UNKNOWN, RSSI_UNKNOWN, LocalAddr


class NodeType(IntEnum):
    UNKNOWN = 0
    CLIENT = 1
    RELAY = 2
    GATEWAY = 3


class LocalMsgType(IntEnum):
    NONE = 0x00
    OK = 0x01
    FAIL = 0x02
    PROBE_REQ = 0x10
    PROBE_RES = 0x11
    PUB_SUB_UNSUB = 0x20
    SUB_DATA = 0x21


class LocalMsgFailReason(IntEnum):
    NONE = 0x00
    DUP_ID = 0x01
    INVALID_TS = 0x02
    PROCESSING_FAILED = 0x03
    UNKNOWN_SENDER = 0x04


def local_msg_type_to_str(mt: LocalMsgType | int) -> str:
    """Name of a message type, or ``"???"`` for an unknown value."""
    try:
        return LocalMsgType(mt).name
    except ValueError:
        return "???"


def local_msg_fail_reason_to_str(fr: LocalMsgFailReason | int) -> str:
    """Name of a fail reason, or ``"???"`` for an unknown value."""
    try:
        return LocalMsgFailReason(fr).name
    except ValueError:
        return "???"


@dataclass(frozen=True)
class SubData:
    """Data delivered to a subscriber."""

    topic: str
    payload: str


@dataclass(frozen=True)
class PubData:
    """Data to publish."""

    topic: str
    payload: str

    def to_sub_data(self) -> SubData:
        return SubData(topic=self.topic, payload=self.payload)


SubCallback = Callable[[SubData], None]


@dataclass(frozen=True)
class SubReq:
    """Subscription request: a topic and the callback for its data."""

    topic: str
    callback: SubCallback


@dataclass(eq=False)
class LocalMsg:
    """Message exchanged between a node and its local layer.

    Equality covers the type, addresses and payload lists; the remaining
    fields are additional data.
    """

    type: LocalMsgType = LocalMsgType.NONE
    addr: LocalAddr = field(default_factory=LocalAddr)
    relayed_addr: LocalAddr = field(default_factory=LocalAddr)
    pubs: list[PubData] = field(default_factory=list)
    subs: list[str] = field(default_factory=list)
    unsubs: list[str] = field(default_factory=list)
    subs_data: list[SubData] = field(default_factory=list)
    id: int = 0
    ts: int = 0
    req_id: int = 0
    node_type: NodeType = NodeType.UNKNOWN
    fail_reason: LocalMsgFailReason = LocalMsgFailReason.NONE
    rssi: int = RSSI_UNKNOWN
    pref: int = PREF_UNKNOWN
    ts_diff: timedelta = timedelta(0)

    __hash__ = None  # type: ignore[assignment]

    def _key(self) -> tuple:
        return (
            self.type,
            self.addr,
            self.relayed_addr,
            self.pubs,
            self.subs,
            self.unsubs,
            self.subs_data,
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LocalMsg):
            return NotImplemented
        return self._key() == other._key()

    def __str__(self) -> str:
        pubs = ", ".join(f"{p.topic!r}: {p.payload!r}" for p in self.pubs)
        subs_data = ", ".join(f"{d.topic!r}: {d.payload!r}" for d in self.subs_data)
        ts_diff_ms = int(self.ts_diff / timedelta(milliseconds=1))
        return (
            f"type={local_msg_type_to_str(self.type)}, addr={self.addr}, "
            f"relayedAddr={self.relayed_addr}, id={self.id}, ts={self.ts}, "
            f"reqId={self.req_id}, nodeType={NodeType(self.node_type).name}, "
            f"failReason={local_msg_fail_reason_to_str(self.fail_reason)}, "
            f"rssi={self.rssi}, pref={self.pref}, tsDiff={ts_diff_ms} ms, "
            f"pubs=[{pubs}], subs={self.subs}, unsubs={self.unsubs}, "
            f"subsData=[{subs_data}]"
        )