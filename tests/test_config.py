from dataclasses import replace
from datetime import timedelta

from kvikpy.config import (
    ClientConfig,
    GatewayDiscoveryConfig,
    NodeConfig,
    ReportingConfig,
    SubDBConfig,
    TimeSyncConfig,
)
from kvikpy.topics import WildcardTrie


def test_gateway_discovery_defaults():
    conf = GatewayDiscoveryConfig()
    assert conf.min_delay == timedelta(seconds=1)
    assert conf.max_delay == timedelta(minutes=2)
    assert conf.initial_fail_threshold == 5
    assert conf.trigger_msgs_fail_count == 5
    assert conf.trigger_time_sync_no_resp_count == 2


def test_reporting_defaults():
    conf = ReportingConfig()
    assert conf.rssi_on_time_sync is True
    assert conf.rssi_on_gw_discovery is True


def test_sub_db_default_lifetime():
    assert SubDBConfig().sub_lifetime == timedelta(minutes=10)


def test_time_sync_defaults():
    conf = TimeSyncConfig()
    assert conf.sync_system_time is False
    assert conf.reprobe_gateway_interval == timedelta(minutes=60)


def test_min_delay_not_above_max_delay():
    conf = GatewayDiscoveryConfig()
    assert conf.min_delay <= conf.max_delay


def test_client_config_holds_default_sections():
    conf = ClientConfig()
    assert conf.node == NodeConfig()
    assert conf.gateway_discovery == GatewayDiscoveryConfig()
    assert conf.reporting == ReportingConfig()
    assert conf.sub_db == SubDBConfig()
    assert conf.time_sync == TimeSyncConfig()


def test_client_configs_do_not_share_sections():
    first = ClientConfig()
    second = ClientConfig()
    first.gateway_discovery.trigger_msgs_fail_count = 1
    first.node.max_age = 7
    assert second.gateway_discovery.trigger_msgs_fail_count == 5
    assert second.node.max_age == NodeConfig().max_age


def test_replace_changes_only_given_field():
    base = NodeConfig()
    changed = replace(base, max_age=3)
    assert changed.max_age == 3
    assert changed.time_unit == base.time_unit
    assert changed.level_separator == base.level_separator
    assert changed != base


def test_default_node_config_is_usable_for_topics():
    conf = NodeConfig()
    trie = WildcardTrie(
        conf.level_separator, conf.single_level_wildcard, conf.multi_level_wildcard
    )
    pattern = conf.level_separator.join(["a", conf.multi_level_wildcard])
    trie.insert(pattern, 1)
    assert trie.find(conf.level_separator.join(["a", "b", "c"])) == {pattern: 1}


def test_default_node_config_durations_positive():
    conf = NodeConfig()
    assert conf.time_unit > timedelta(0)
    assert conf.resp_timeout > timedelta(0)
    assert conf.max_age >= 1