# kvikpy

A small publish/subscribe messaging library for IoT-style networks. A client
node talks to a gateway over a pluggable *local layer*: it discovers the
gateway, keeps its clock in step with it, renews its subscriptions and calls
your callbacks when subscribed data arrives.

## Modules

- `kvikpy.client`: `Client`, the client node, and `ClientRetainedData`, the
  state a client can carry across restarts.
- `kvikpy.node`: `Node`, the abstract base of node types (`publish`,
  `subscribe`, `unsubscribe` and their bulk forms, message IDs, timestamp and
  duplicate checks), and `MsgIdCache`, which remembers message IDs per peer
  for a limited time.
- `kvikpy.layers`: `LocalLayer` and `RemoteLayer`, abstract transports to
  subclass for your own radio, socket or broker.
- `kvikpy.topics`: `WildcardTrie`, which matches topics against patterns with
  single-level and multi-level wildcards and configurable separators.
- `kvikpy.addresses`: `LocalAddr`, `LocalAddrMAC`, `LocalPeer` and
  `RetainedLocalPeer`.
- `kvikpy.messages`: the `LocalMsg` model, `PubData`, `SubData`, `SubReq`
  and the `NodeType`, `LocalMsgType` and `LocalMsgFailReason` enums.
- `kvikpy.config`: dataclasses configuring nodes and clients
  (`NodeConfig`, `ClientConfig` and its parts).
- `kvikpy.errors`: `KvikError` and its subclasses.
- `kvikpy.chacha20`: `ChaCha20Block` and `ChaCha20`, a ChaCha20 keystream
  cipher with a 64-bit counter and 64-bit nonce.
- `kvikpy.timer`: `Timer`, a periodic callback on a background thread.
- `kvikpy.log`: `LogLevel`, `set_log_level`, `get_log_level` and
  `get_logger`, built on the standard `logging` module.
- `kvikpy.randbytes`: `get_random_bytes`, backed by `os.urandom`.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example: topic matching

```python
from kvikpy.topics import WildcardTrie

trie = WildcardTrie("/", "+", "#")
trie.insert("sensors/+/temp", "temperature")
trie.insert("sensors/#", "everything")

print(trie.find("sensors/kitchen/temp"))
# {'sensors/+/temp': 'temperature', 'sensors/#': 'everything'}
```

`+` matches exactly one level, `#` matches one or more remaining levels.

## Example: a client

```python
from kvikpy.client import Client
from kvikpy.config import ClientConfig

with Client(ClientConfig(), my_local_layer) as client:
    client.subscribe("home/lights", lambda data: print(data.payload))
    client.publish("home/status", "online")
```

`my_local_layer` is an instance of your own `LocalLayer` subclass. It must
implement `send`, `channels` and `set_channel`, and pass received messages to
the client through `_deliver`.

A client that cannot find a gateway within
`ClientConfig().gateway_discovery.initial_fail_threshold` attempts raises
`kvikpy.errors.TooManyFailedAttemptsError`. Delivery failures are raised as
subclasses of `kvikpy.errors.KvikError`, such as `DeliveryTimeoutError`,
`MessageProcessingError` and `NoGatewayError`.

Call `client.retain()` to get a `ClientRetainedData` snapshot and pass it as
the third argument of the next `Client`; the client then tries the retained
gateway with a time synchronisation before falling back to discovery.

## What the package does not do

- It has only the client node type. There is no gateway or relay node, so
  nothing here answers probes or forwards traffic to a remote broker.
- It ships no concrete transports: `LocalLayer` and `RemoteLayer` are
  abstract, and you supply the radio, socket or broker connection.
- It has no command-line program.