"""Interfaces of the local and remote communication layers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from kvikpy.messages import LocalMsg, PubData, SubData

LocalRecvCallback = Callable[[LocalMsg], None]
RemoteRecvCallback = Callable[[SubData], None]
ReconnectCallback = Callable[[], None]


class LocalLayer(ABC):
    """Transport between nodes (e.g. a radio link).

    Implementations hand received messages to the node through
    ``_deliver``; the node's callback raises a package error on failure.
    """

    _recv_callback: Optional[LocalRecvCallback] = None

    @abstractmethod
    def send(self, msg: LocalMsg) -> None:
        """Send ``msg`` to the peer given by its address.

        Raises ``InvalidSizeError`` when the message is too big, or any
        other protocol-specific error.
        """

    @abstractmethod
    def channels(self) -> Sequence[int]:
        """Channels usable for gateway discovery; may be empty."""

    @abstractmethod
    def set_channel(self, channel: int) -> None:
        """Switch to ``channel`` (0 is the default channel).

        Raises ``NotSupportedError`` if channels cannot be changed and
        ``InvalidArgumentError`` for an invalid channel number.
        """

    def set_recv_callback(self, callback: Optional[LocalRecvCallback]) -> None:
        """Set (or with ``None`` unset) the callback for received messages."""
        self._recv_callback = callback

    def _deliver(self, msg: LocalMsg) -> bool:
        """Pass a received message to the callback; False if none is set."""
        callback = self._recv_callback
        if callback is None:
            return False
        callback(msg)
        return True


class RemoteLayer(ABC):
    """Transport between a gateway and the outside broker."""

    _recv_callback: Optional[RemoteRecvCallback] = None
    _reconnect_callback: Optional[ReconnectCallback] = None

    @abstractmethod
    def publish(self, data: PubData) -> None:
        """Publish data coming from a node."""

    @abstractmethod
    def subscribe(self, topic: str) -> None:
        """Subscribe to ``topic``."""

    @abstractmethod
    def unsubscribe(self, topic: str) -> None:
        """Unsubscribe from ``topic``; raises ``NotFoundError`` if not subscribed."""

    def set_recv_callback(self, callback: Optional[RemoteRecvCallback]) -> None:
        """Set (or with ``None`` unset) the callback for subscription data."""
        self._recv_callback = callback

    def set_reconnect_callback(self, callback: Optional[ReconnectCallback]) -> None:
        """Set (or with ``None`` unset) the callback run after a reconnect."""
        self._reconnect_callback = callback

    def _deliver(self, data: SubData) -> bool:
        """Pass received data to the callback; False if none is set."""
        callback = self._recv_callback
        if callback is None:
            return False
        callback(data)
        return True

    def _reconnected(self) -> bool:
        """Notify about a reconnect; False if no callback is set."""
        callback = self._reconnect_callback
        if callback is None:
            return False
        callback()
        return True