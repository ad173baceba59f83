"""Configuration of generic nodes and of the client node type."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta


@dataclass
class NodeConfig:
    """Configuration shared by all node types.

    ``time_unit`` is the unit of message timestamps and of the ticks of the
    message ID cache. ``max_age`` is how many time units a message stays
    valid: both for replay protection and for deduplication.
    """

    time_unit: timedelta = timedelta(seconds=1)
    max_age: int = 30
    resp_timeout: timedelta = timedelta(seconds=1)
    level_separator: str = "/"
    single_level_wildcard: str = "+"
    multi_level_wildcard: str = "#"
    report_base_topic: str = "_report"
    report_rssi_subtopic: str = "rssi"


@dataclass
class GatewayDiscoveryConfig:
    """Gateway discovery behaviour of a client.

    The delay after a failed attempt starts at ``min_delay`` and doubles on
    each further failure up to ``max_delay``. ``initial_fail_threshold`` of 0
    means unlimited attempts. The trigger counts 0 and 1 are equivalent.
    """

    min_delay: timedelta = timedelta(seconds=1)
    max_delay: timedelta = timedelta(minutes=2)
    initial_fail_threshold: int = 5
    trigger_msgs_fail_count: int = 5
    trigger_time_sync_no_resp_count: int = 2


@dataclass
class ReportingConfig:
    """Which RSSI reports a client publishes."""

    rssi_on_time_sync: bool = True
    rssi_on_gw_discovery: bool = True


@dataclass
class SubDBConfig:
    """Subscription database of a client; subscriptions renew after ``sub_lifetime``."""

    sub_lifetime: timedelta = timedelta(minutes=10)


@dataclass
class TimeSyncConfig:
    """Time synchronisation with the gateway.

    A zero ``reprobe_gateway_interval`` disables periodic reprobing.
    """

    sync_system_time: bool = False
    reprobe_gateway_interval: timedelta = timedelta(minutes=60)


@dataclass
class ClientConfig:
    """Complete configuration of a client node."""

    node: NodeConfig = field(default_factory=NodeConfig)
    gateway_discovery: GatewayDiscoveryConfig = field(default_factory=GatewayDiscoveryConfig)
    reporting: ReportingConfig = field(default_factory=ReportingConfig)
    sub_db: SubDBConfig = field(default_factory=SubDBConfig)
    time_sync: TimeSyncConfig = field(default_factory=TimeSyncConfig)