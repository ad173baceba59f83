"""Generic node: publish/subscribe entry points, message IDs and validation."""

from __future__ import annotations

import math
import threading
import time
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Sequence

from kvikpy.addresses import LocalAddr
from kvikpy.config import NodeConfig
from kvikpy.errors import InvalidArgumentError, KvikError
from kvikpy.messages import PubData, SubCallback, SubReq
from kvikpy.randbytes import get_random_bytes

_MS = timedelta(milliseconds=1)
_U16 = 0x10000
_MAX_AGE_LIMIT = 255


def _seconds(value: float | timedelta) -> float:
    return value.total_seconds() if isinstance(value, timedelta) else float(value)


def _check_max_age(max_age: int) -> int:
    if not 1 <= max_age <= _MAX_AGE_LIMIT:
        raise InvalidArgumentError(f"max age must be in 1..{_MAX_AGE_LIMIT}, got {max_age}")
    return max_age


class MsgIdCache:
    """Remembers message IDs per peer for ``max_age`` time units.

    Time advances in ticks of ``time_unit``; an ID inserted at tick ``t``
    expires once tick ``t + max_age + 1`` is reached.
    """

    def __init__(self, time_unit: float | timedelta, max_age: int) -> None:
        self._unit = _seconds(time_unit)
        if self._unit <= 0:
            raise InvalidArgumentError("time unit must be positive")
        self._max_age = _check_max_age(max_age)
        self._start = time.monotonic()
        self._tick = 0
        self._cache: dict[LocalAddr, dict[int, set[int]]] = {}
        self._lock = threading.Lock()
        self._closed = False

    def _advance(self) -> None:
        tick = int((time.monotonic() - self._start) / self._unit)
        if tick <= self._tick:
            return
        self._tick = tick
        for addr in list(self._cache):
            buckets = {exp: ids for exp, ids in self._cache[addr].items() if exp > tick}
            if buckets:
                self._cache[addr] = buckets
            else:
                del self._cache[addr]

    @property
    def tick_num(self) -> int:
        """Number of ticks elapsed since creation."""
        with self._lock:
            self._advance()
            return self._tick

    @property
    def entries(self) -> dict[LocalAddr, dict[int, set[int]]]:
        """Snapshot: address -> expiry tick -> message IDs."""
        with self._lock:
            self._advance()
            return {
                addr: {exp: set(ids) for exp, ids in buckets.items()}
                for addr, buckets in self._cache.items()
            }

    def insert(self, addr: LocalAddr, msg_id: int) -> bool:
        """Record ``msg_id`` from ``addr``; False if it is a duplicate."""
        with self._lock:
            if self._closed:
                raise KvikError("message ID cache is closed")
            self._advance()
            buckets = self._cache.setdefault(addr, {})
            if any(msg_id in ids for ids in buckets.values()):
                return False
            buckets.setdefault(self._tick + self._max_age + 1, set()).add(msg_id)
            return True

    def close(self) -> None:
        """Drop all entries; further inserts raise."""
        with self._lock:
            self._closed = True
            self._cache.clear()


class Node(ABC):
    """Base of all node types."""

    def __init__(self, config: NodeConfig) -> None:
        _check_max_age(config.max_age)
        if config.time_unit // _MS < 1:
            raise InvalidArgumentError("time unit must be at least 1 ms")
        if config.resp_timeout < timedelta(0):
            raise InvalidArgumentError("response timeout must not be negative")
        self._node_config = config
        self._msg_id = int.from_bytes(get_random_bytes(2), "little")
        self._msg_id_cache = MsgIdCache(config.time_unit, config.max_age)

    @property
    def node_config(self) -> NodeConfig:
        return self._node_config

    def publish(self, topic: str, payload: str) -> None:
        """Publish ``payload`` to ``topic``."""
        self.publish_data(PubData(topic=topic, payload=payload))

    def publish_data(self, data: PubData) -> None:
        self.publish_bulk([data])

    def publish_bulk(self, pubs: Sequence[PubData]) -> None:
        self.pub_sub_unsub_bulk(list(pubs), [], [])

    def subscribe(self, topic: str, callback: SubCallback) -> None:
        """Subscribe to ``topic``, calling ``callback`` with received data."""
        self.subscribe_bulk([SubReq(topic=topic, callback=callback)])

    def subscribe_bulk(self, subs: Sequence[SubReq]) -> None:
        self.pub_sub_unsub_bulk([], list(subs), [])

    def unsubscribe(self, topic: str) -> None:
        self.unsubscribe_bulk([topic])

    def unsubscribe_bulk(self, topics: Sequence[str]) -> None:
        self.pub_sub_unsub_bulk([], [], list(topics))

    @abstractmethod
    def pub_sub_unsub_bulk(
        self,
        pubs: Sequence[PubData],
        subs: Sequence[SubReq],
        unsubs: Sequence[str],
    ) -> None:
        """Publish, subscribe and unsubscribe together, ideally in one packet."""

    @abstractmethod
    def unsubscribe_all(self) -> None:
        """Unsubscribe from all topics."""

    @abstractmethod
    def resubscribe_all(self) -> None:
        """Renew all subscriptions."""

    def next_msg_id(self) -> int:
        """Next 16-bit message ID; starts at a random value."""
        msg_id = self._msg_id
        self._msg_id = (self._msg_id + 1) % _U16
        return msg_id

    def validate_msg_id(self, addr: LocalAddr, msg_id: int) -> bool:
        """True unless ``msg_id`` was already seen from ``addr``."""
        return self._msg_id_cache.insert(addr, msg_id)

    def validate_msg_timestamp(self, ts: int, ts_diff: timedelta = timedelta(0)) -> bool:
        """True if ``ts`` lies within the last ``max_age`` time units."""
        unit_ms = self._node_config.time_unit // _MS
        now_ms = math.floor(time.monotonic() * 1000) + ts_diff // _MS
        now_ts = (now_ms // unit_ms) % _U16
        age = (now_ts - ts) % _U16
        return age < self._node_config.max_age

    def build_report_rssi_topic(self, peer: LocalAddr) -> str:
        """Topic under which the RSSI of ``peer`` is reported."""
        conf = self._node_config
        return conf.level_separator.join(
            [conf.report_base_topic, conf.report_rssi_subtopic, str(peer)]
        )

    def close(self) -> None:
        """Release the node's resources."""
        self._msg_id_cache.close()