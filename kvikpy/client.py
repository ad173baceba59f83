"""Client node: talks to a single gateway over the local layer."""

from __future__ import annotations

import math
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import timedelta
from typing import Iterable, Optional, Sequence

from kvikpy.addresses import RSSI_UNKNOWN, LocalAddr, LocalPeer, RetainedLocalPeer
from kvikpy.config import ClientConfig
from kvikpy.errors import (
    DeliveryTimeoutError,
    DuplicateMessageIdError,
    InvalidArgumentError,
    InvalidTimestampError,
    KvikError,
    MessageProcessingError,
    NoGatewayError,
    NotFoundError,
    TooManyFailedAttemptsError,
    UnknownSenderError,
)
from kvikpy.layers import LocalLayer
from kvikpy.log import get_logger
from kvikpy.messages import (
    LocalMsg,
    LocalMsgType,
    NodeType,
    PubData,
    SubCallback,
    SubReq,
    local_msg_fail_reason_to_str,
    local_msg_type_to_str,
)
from kvikpy.node import Node
from kvikpy.timer import Timer
from kvikpy.topics import WildcardTrie

_log = get_logger("Kvik/Client")

_MS = timedelta(milliseconds=1)
_U16 = 0x10000

_VALID_RESPONSES = frozenset(
    {
        (LocalMsgType.OK, LocalMsgType.PUB_SUB_UNSUB),
        (LocalMsgType.FAIL, LocalMsgType.PROBE_REQ),
        (LocalMsgType.FAIL, LocalMsgType.PUB_SUB_UNSUB),
        (LocalMsgType.PROBE_RES, LocalMsgType.PROBE_REQ),
    }
)


@dataclass(frozen=True)
class ClientRetainedData:
    """State a client can keep across restarts (e.g. deep sleep)."""

    gw: RetainedLocalPeer = field(default_factory=RetainedLocalPeer)
    msgs_fail_count: int = 0
    time_sync_no_resp_count: int = 0


@dataclass
class _PendingMsg:
    req: LocalMsg
    broadcast: bool
    resps: list = field(default_factory=list)
    answered: threading.Event = field(default_factory=threading.Event)


class Client(Node):
    """Client node publishing and subscribing through a gateway.

    On construction the client restores a retained gateway (verified by a
    time synchronisation) or discovers one; it raises if neither succeeds.
    """

    def __init__(
        self,
        config: ClientConfig,
        local_layer: LocalLayer,
        retained: Optional[ClientRetainedData] = None,
    ) -> None:
        super().__init__(config.node)
        if local_layer is None:
            raise InvalidArgumentError("Invalid local layer parameter")

        self._conf = config
        self._ll = local_layer
        self._lock = threading.Lock()
        self._dscv_sync = threading.RLock()
        self._dscv_loop_cv = threading.Condition(self._lock)
        self._gw_wd_cv = threading.Condition(self._lock)
        self._running = True
        self._closed = False
        self._gw_wd_requested = False
        self._gw = LocalPeer()
        self._msgs_fail_count = 0
        self._time_sync_no_resp_count = 0
        self._ignore_invalid_ts = True
        self._pending: dict[int, _PendingMsg] = {}
        node = config.node
        self._sub_db: WildcardTrie[SubCallback] = WildcardTrie(
            node.level_separator, node.single_level_wildcard, node.multi_level_wildcard
        )
        self._sub_db_timer = Timer(config.sub_db.sub_lifetime, self._sub_db_tick)
        self._time_sync_timer = Timer(
            config.time_sync.reprobe_gateway_interval, self._timed_sync
        )
        self._gw_wd_thread: Optional[threading.Thread] = None

        self._ll.set_recv_callback(self._recv_local)

        try:
            self._initialize(retained)
        except BaseException:
            self._release()
            raise

        _log.info("Initialized")
        self._ignore_invalid_ts = False
        with self._lock:
            self._gw_wd_requested = False
        self._gw_wd_thread = threading.Thread(
            target=self._gw_watchdog, name="kvik-gw-watchdog", daemon=True
        )
        self._gw_wd_thread.start()

    # ----------------------------------------------------------- lifecycle

    def _initialize(self, retained: Optional[ClientRetainedData]) -> None:
        if self._restore(retained):
            _log.info("Time sync successful, GW: %s", self._gw)
            return
        self.discover_gateway(self._conf.gateway_discovery.initial_fail_threshold)
        _log.info("Gateway discovery successful, new GW: %s", self._gw)

    def _restore(self, retained: Optional[ClientRetainedData]) -> bool:
        if retained is None or retained.gw.addr_len == 0:
            return False
        self._gw = retained.gw.unretain()
        self._msgs_fail_count = retained.msgs_fail_count
        self._time_sync_no_resp_count = retained.time_sync_no_resp_count
        _log.debug("Using retained data")

        if self._gw.channel > 0:
            _log.debug("Setting local layer channel to %u", self._gw.channel)
            try:
                self._ll.set_channel(self._gw.channel)
            except KvikError:
                _log.warning("Failed to set channel")
                _log.warning("Time sync failed, doing gateway discovery")
                return False

        try:
            self.sync_time()
        except Exception:
            _log.warning("Time sync failed, doing gateway discovery")
            return False
        return True

    def _release(self) -> None:
        self._sub_db_timer.stop()
        self._time_sync_timer.stop()
        self._ll.set_recv_callback(None)
        super().close()

    def close(self) -> None:
        """Stop background work and detach from the local layer."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._running = False
            self._dscv_loop_cv.notify_all()
            self._gw_wd_cv.notify_all()

        _log.debug("Waiting for gateway discovery thread...")
        thread = self._gw_wd_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

        self._release()
        with self._lock, self._dscv_sync:
            pass
        _log.info("Deinitialized")

    def __enter__(self) -> Client:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ------------------------------------------------------ pub/sub/unsub

    def pub_sub_unsub_bulk(
        self,
        pubs: Sequence[PubData],
        subs: Sequence[SubReq],
        unsubs: Sequence[str],
    ) -> None:
        if not pubs and not subs and not unsubs:
            return

        msg = LocalMsg(
            type=LocalMsgType.PUB_SUB_UNSUB,
            pubs=list(pubs),
            subs=[sub.topic for sub in subs],
            unsubs=list(unsubs),
        )
        self._send_checked(msg, LocalMsgType.OK)

        with self._lock:
            for topic in unsubs:
                if not self._sub_db.remove(topic):
                    _log.debug("Can't unsubscribe from not-subscribed topic '%s'", topic)
            for sub in subs:
                self._sub_db.insert(sub.topic, sub.callback)

    def unsubscribe_all(self) -> None:
        with self._lock:
            topics = [topic for topic, _ in self._sub_db.items()]
        if not topics:
            return

        self._send_checked(
            LocalMsg(type=LocalMsgType.PUB_SUB_UNSUB, unsubs=topics), LocalMsgType.OK
        )

        with self._lock:
            self._sub_db.clear()

    def resubscribe_all(self) -> None:
        with self._lock:
            topics = [topic for topic, _ in self._sub_db.items()]
        if not topics:
            return

        self._send_checked(
            LocalMsg(type=LocalMsgType.PUB_SUB_UNSUB, subs=topics), LocalMsgType.OK
        )

    def _send_checked(self, msg: LocalMsg, expected: LocalMsgType) -> LocalMsg:
        resp = self._send_local(msg)
        if resp.type != expected:
            _log.warning("Received unexpected response type")
            raise MessageProcessingError(
                f"unexpected response {local_msg_type_to_str(resp.type)}"
            )
        return resp

    # --------------------------------------------------- gateway discovery

    def discover_gateway(self, max_attempts: int = 0) -> None:
        """Find the best reachable gateway.

        ``max_attempts`` of 0 means unlimited. Returns early when the client
        is closed. Raises ``TooManyFailedAttemptsError`` when out of attempts.
        """
        gd = self._conf.gateway_discovery
        delay = gd.min_delay
        attempts = 0
        channels = list(self._ll.channels())
        gws: dict[LocalAddr, LocalPeer] = {}

        _log.debug("Started, max attempts %d", max_attempts)

        while max_attempts == 0 or attempts < max_attempts:
            _log.debug("Attempt %d started", attempts + 1)

            with self._dscv_sync:
                self._ignore_invalid_ts = True
                try:
                    if not channels:
                        _log.debug("Probing default channel")
                        self._probe_channel(gws, 0)
                    else:
                        for channel in channels:
                            try:
                                self._ll.set_channel(channel)
                            except KvikError:
                                _log.warning("Can't set channel %u, skipping it", channel)
                                continue
                            _log.debug("Probing channel %u", channel)
                            self._probe_channel(gws, channel)
                finally:
                    self._ignore_invalid_ts = False

                if gws:
                    best = max(gws.values(), key=lambda peer: peer.pref)
                    with self._lock:
                        if channels:
                            try:
                                self._ll.set_channel(best.channel)
                            except KvikError:
                                _log.warning("Can't set channel %u", best.channel)
                        self._gw = replace(best)
                        self._msgs_fail_count = 0
                        self._time_sync_no_resp_count = 0

                    _log.info("Using new gateway: %s", self._gw)
                    _log.debug("Attempt %d successful", attempts + 1)

                    try:
                        self._report_gw_dscv_rssi(gws.values())
                    except Exception:
                        _log.warning("Reporting RSSI failed")
                    return

                with self._lock:
                    self._gw = LocalPeer()

            _log.debug("Attempt %d failed", attempts + 1)

            with self._lock:
                if self._dscv_loop_cv.wait_for(
                    lambda: not self._running, delay.total_seconds()
                ):
                    _log.debug("Cancelled by close")
                    return

            delay = min(delay * 2, gd.max_delay)
            attempts += 1

        _log.warning("Gateway discovery failed after %d attempts", attempts)
        raise TooManyFailedAttemptsError(
            f"gateway discovery failed after {attempts} attempts"
        )

    def _probe_channel(self, gws: dict[LocalAddr, LocalPeer], channel: int) -> None:
        try:
            responses = self._send_local_unchecked_broadcast(
                LocalMsg(type=LocalMsgType.PROBE_REQ)
            )
        except Exception as exc:
            _log.warning("Probe broadcast failed: %s", exc)
            return
        for resp in responses:
            gws.setdefault(
                resp.addr,
                LocalPeer(
                    addr=resp.addr,
                    channel=channel,
                    ts_diff=resp.ts_diff,
                    pref=resp.pref,
                    rssi=resp.rssi,
                ),
            )

    def _report_gw_dscv_rssi(self, gws: Iterable[LocalPeer]) -> None:
        if not self._conf.reporting.rssi_on_gw_discovery:
            return
        pubs = [
            PubData(topic=self.build_report_rssi_topic(gw.addr), payload=str(gw.rssi))
            for gw in gws
            if gw.rssi != RSSI_UNKNOWN
        ]
        if pubs:
            self.publish_bulk(pubs)

    def _trigger_discovery(self) -> None:
        with self._lock:
            self._gw_wd_requested = True
            self._gw_wd_cv.notify_all()

    def _gw_watchdog(self) -> None:
        while True:
            with self._lock:
                while self._running and not self._gw_wd_requested:
                    self._gw_wd_cv.wait()
                if not self._running:
                    _log.debug("Cancelled by close")
                    return
                self._gw_wd_requested = False
            try:
                self.discover_gateway(0)
            except Exception:
                _log.exception("Background gateway discovery failed")

    # ----------------------------------------------------------- time sync

    def sync_time(self) -> None:
        """Probe the gateway and synchronise time with it."""
        with self._dscv_sync:
            _log.debug("Started")
            interval = self._conf.time_sync.reprobe_gateway_interval
            if interval > timedelta(0):
                self._time_sync_timer.set_next_exec(
                    time.monotonic() + interval.total_seconds()
                )

            try:
                resp = self._send_checked(
                    LocalMsg(type=LocalMsgType.PROBE_REQ), LocalMsgType.PROBE_RES
                )
            except Exception:
                gd = self._conf.gateway_discovery
                with self._lock:
                    self._time_sync_no_resp_count += 1
                    trigger = (
                        gd.trigger_time_sync_no_resp_count == 0
                        or self._time_sync_no_resp_count
                        >= gd.trigger_time_sync_no_resp_count
                    )
                if trigger:
                    _log.warning(
                        "Too many failed time syncs, triggering background gateway discovery"
                    )
                    self._trigger_discovery()
                raise

            if self._conf.time_sync.sync_system_time:
                self._set_system_time(resp.ts_diff)

            with self._lock:
                self._gw.ts_diff = resp.ts_diff
                self._time_sync_no_resp_count = 0
                _log.debug("Successful (tsDiff=%d ms)", resp.ts_diff // _MS)

            if self._conf.reporting.rssi_on_time_sync and resp.rssi != RSSI_UNKNOWN:
                try:
                    self.publish(self.build_report_rssi_topic(self._gw.addr), str(resp.rssi))
                except Exception:
                    _log.warning("Reporting RSSI failed")

    def _timed_sync(self) -> None:
        try:
            self.sync_time()
        except Exception as exc:
            _log.warning("Periodic time sync failed: %s", exc)

    @staticmethod
    def _set_system_time(ts_diff: timedelta) -> None:
        now_ms = math.floor(time.monotonic() * 1000) + ts_diff // _MS
        try:
            time.clock_settime(time.CLOCK_REALTIME, now_ms / 1000)
        except (AttributeError, OSError) as exc:
            _log.error("Set system time failed: %s", exc)
        else:
            _log.info("Set current timestamp: %d", now_ms)

    # ------------------------------------------------------------- sending

    def _prepare_msg(self, msg: LocalMsg, broadcast: bool) -> None:
        unit_ms = self._conf.node.time_unit // _MS
        gw_ms = math.floor(time.monotonic() * 1000) + self._gw.ts_diff // _MS
        msg.addr = LocalAddr() if broadcast else self._gw.addr
        msg.id = self.next_msg_id()
        msg.ts = (gw_ms // unit_ms) % _U16
        msg.node_type = NodeType.CLIENT

    def _send_local(self, msg: LocalMsg) -> LocalMsg:
        try:
            resp = self._send_local_unchecked(msg)
            if resp.type == LocalMsgType.FAIL:
                reason = local_msg_fail_reason_to_str(resp.fail_reason)
                _log.warning("Message delivery failed with code %s", reason)
                raise MessageProcessingError(f"message delivery failed: {reason}")
        except Exception:
            gd = self._conf.gateway_discovery
            with self._lock:
                self._msgs_fail_count += 1
                trigger = (
                    gd.trigger_msgs_fail_count == 0
                    or self._msgs_fail_count >= gd.trigger_msgs_fail_count
                )
            if trigger:
                _log.warning(
                    "Too many failed messages, triggering background gateway discovery"
                )
                self._trigger_discovery()
            raise

        with self._lock:
            self._msgs_fail_count = 0
        return resp

    def _send_local_unchecked(self, msg: LocalMsg, no_resp: bool = False) -> Optional[LocalMsg]:
        pending: Optional[_PendingMsg] = None
        with self._lock:
            self._prepare_msg(msg, broadcast=False)
            if msg.addr.is_empty():
                raise NoGatewayError("no gateway known")
            if not no_resp:
                pending = _PendingMsg(req=msg, broadcast=False)
                self._pending[msg.id] = pending

        _log.debug("Message (id=%u): %s", msg.id, msg)
        try:
            self._ll.send(msg)
            if pending is None:
                _log.debug("Not waiting for response")
                return None
            if not pending.answered.wait(self._conf.node.resp_timeout.total_seconds()):
                _log.warning("Response timeout (id=%u) for: %s", msg.id, msg)
                raise DeliveryTimeoutError(f"response timeout (id={msg.id})")
            with self._lock:
                resp = pending.resps[0]
            _log.debug("Response (id=%u): %s", msg.id, resp)
            return resp
        finally:
            if pending is not None:
                with self._lock:
                    if self._pending.get(msg.id) is pending:
                        del self._pending[msg.id]

    def _send_local_unchecked_broadcast(self, msg: LocalMsg) -> list[LocalMsg]:
        with self._lock:
            self._prepare_msg(msg, broadcast=True)
            pending = _PendingMsg(req=msg, broadcast=True)
            self._pending[msg.id] = pending

        _log.debug("Broadcast message (id=%u): %s", msg.id, msg)
        try:
            self._ll.send(msg)
            time.sleep(self._conf.node.resp_timeout.total_seconds())
            with self._lock:
                resps = list(pending.resps)
        finally:
            with self._lock:
                if self._pending.get(msg.id) is pending:
                    del self._pending[msg.id]
        for resp in resps:
            _log.debug("Response (id=%u): %s", msg.id, resp)
        return resps

    # ----------------------------------------------------------- receiving

    def _recv_local(self, msg: LocalMsg) -> None:
        if msg.node_type not in (NodeType.GATEWAY, NodeType.RELAY):
            _log.debug("Received message from invalid node type: %s", msg)
            raise InvalidArgumentError("message from invalid node type")

        if msg.type in (LocalMsgType.OK, LocalMsgType.FAIL, LocalMsgType.PROBE_RES):
            self._recv_local_resp(msg)
        elif msg.type == LocalMsgType.SUB_DATA:
            self._recv_local_sub_data(msg)
        else:
            _log.warning("Received unknown message: %s", msg)
            raise InvalidArgumentError(
                f"unexpected message type {local_msg_type_to_str(msg.type)}"
            )

    def _recv_local_resp(self, msg: LocalMsg) -> None:
        with self._lock:
            if not self.validate_msg_id(msg.addr, msg.id):
                _log.debug("Discarding response with duplicate ID: %s", msg)
                raise DuplicateMessageIdError(f"duplicate message ID {msg.id}")

            if not self._ignore_invalid_ts and not self.validate_msg_timestamp(
                msg.ts, self._gw.ts_diff
            ):
                _log.debug("Discarding response with invalid timestamp: %s", msg)
                raise InvalidTimestampError(f"invalid timestamp {msg.ts}")

            pending = self._pending.get(msg.req_id)
            if pending is None:
                _log.debug("Discarding response for non-existing request: %s", msg)
                raise NotFoundError(f"no request with ID {msg.req_id}")

            if not pending.broadcast and pending.req.addr != msg.addr:
                _log.debug("Discarding response from different address: %s", msg)
                raise UnknownSenderError(f"response from unexpected address {msg.addr}")

            if (msg.type, pending.req.type) not in _VALID_RESPONSES:
                _log.debug(
                    "Response of type %s is invalid for request of type %s",
                    local_msg_type_to_str(msg.type),
                    local_msg_type_to_str(pending.req.type),
                )
                raise InvalidArgumentError("response type does not match request")

            if pending.broadcast:
                pending.resps.append(msg)
                return

            if pending.resps:
                _log.debug("Discarding response for request already having response: %s", msg)
                raise NotFoundError(f"request {msg.req_id} already answered")

            pending.resps.append(msg)
            pending.answered.set()

    def _recv_local_sub_data(self, msg: LocalMsg) -> None:
        _log.debug("Received subscriptions data: %s", msg)

        with self._lock:
            id_valid = self.validate_msg_id(msg.addr, msg.id)
            ts_valid = self.validate_msg_timestamp(msg.ts, self._gw.ts_diff)
            sender_valid = msg.addr == self._gw.addr

        if not id_valid:
            _log.debug("Message is invalid, discarding: %s", msg)
            raise DuplicateMessageIdError(f"duplicate message ID {msg.id}")
        if not ts_valid:
            _log.debug("Message is invalid, discarding: %s", msg)
            raise InvalidTimestampError(f"invalid timestamp {msg.ts}")
        if not sender_valid:
            _log.debug("Discarding data from unknown sender: %s", msg)
            raise UnknownSenderError(f"data from unknown sender {msg.addr}")

        try:
            self._send_local_unchecked(
                LocalMsg(type=LocalMsgType.OK, req_id=msg.id), no_resp=True
            )
        except Exception as exc:
            _log.warning("Acknowledging subscription data failed: %s", exc)

        for data in msg.subs_data:
            with self._lock:
                entries = self._sub_db.find(data.topic)
            for topic, callback in entries.items():
                _log.debug("Calling user callback for topic '%s'", topic)
                callback(data)

    # -------------------------------------------------------------- misc

    def _sub_db_tick(self) -> None:
        _log.debug("Renewal running")
        with self._lock:
            topics = [topic for topic, _ in self._sub_db.items()]
        if not topics:
            _log.debug("Nothing to renew")
            return
        try:
            self._send_checked(
                LocalMsg(type=LocalMsgType.PUB_SUB_UNSUB, subs=topics), LocalMsgType.OK
            )
        except Exception as exc:
            _log.warning("Subscription renewal failed: %s", exc)
        _log.debug("Renewal done")

    def retain(self) -> ClientRetainedData:
        """Snapshot of the state worth keeping across restarts."""
        with self._lock:
            return ClientRetainedData(
                gw=self._gw.retain(),
                msgs_fail_count=self._msgs_fail_count,
                time_sync_no_resp_count=self._time_sync_no_resp_count,
            )