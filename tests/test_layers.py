import pytest

from kvikpy.errors import InvalidArgumentError, MessageProcessingError, NotSupportedError
from kvikpy.layers import LocalLayer, RemoteLayer
from kvikpy.messages import LocalMsg, LocalMsgType, PubData, SubData


class FakeLocalLayer(LocalLayer):
    def __init__(self, channels=()):
        self.sent = []
        self._channels = list(channels)
        self.channel = 0

    def send(self, msg):
        self.sent.append(msg)

    def channels(self):
        return self._channels

    def set_channel(self, channel):
        if not self._channels:
            raise NotSupportedError("channels not supported")
        if channel not in self._channels:
            raise InvalidArgumentError("bad channel")
        self.channel = channel

    def receive(self, msg):
        return self._deliver(msg)


class FakeRemoteLayer(RemoteLayer):
    def __init__(self):
        self.published = []
        self.topics = set()

    def publish(self, data):
        self.published.append(data)

    def subscribe(self, topic):
        self.topics.add(topic)

    def unsubscribe(self, topic):
        self.topics.remove(topic)

    def receive(self, data):
        return self._deliver(data)

    def reconnect(self):
        return self._reconnected()


def test_interfaces_are_abstract():
    with pytest.raises(TypeError):
        LocalLayer()
    with pytest.raises(TypeError):
        RemoteLayer()


def test_local_deliver_without_callback():
    layer = FakeLocalLayer()
    assert layer.receive(LocalMsg()) is False


def test_local_deliver_with_callback():
    layer = FakeLocalLayer()
    received = []
    layer.set_recv_callback(received.append)
    msg = LocalMsg(type=LocalMsgType.OK)
    assert layer.receive(msg) is True
    assert received == [msg]


def test_local_unset_callback():
    layer = FakeLocalLayer()
    received = []
    layer.set_recv_callback(received.append)
    layer.set_recv_callback(None)
    assert layer.receive(LocalMsg()) is False
    assert received == []


def test_local_callback_error_propagates():
    layer = FakeLocalLayer()

    def failing(msg):
        raise MessageProcessingError("failed")

    layer.set_recv_callback(failing)
    with pytest.raises(MessageProcessingError):
        layer.receive(LocalMsg())


def test_local_channels_and_send():
    layer = FakeLocalLayer(channels=[1, 6])
    layer.set_channel(6)
    assert layer.channel == 6
    with pytest.raises(InvalidArgumentError):
        layer.set_channel(3)
    msg = LocalMsg(type=LocalMsgType.PROBE_REQ)
    layer.send(msg)
    assert layer.sent == [msg]


def test_local_no_channels():
    layer = FakeLocalLayer()
    assert list(layer.channels()) == []
    with pytest.raises(NotSupportedError):
        layer.set_channel(1)
    received = []
    layer.set_recv_callback(received.append)
    msg = LocalMsg(type=LocalMsgType.SUB_DATA)
    assert layer.receive(msg) is True
    assert received == [msg]


def test_remote_callbacks():
    layer = FakeRemoteLayer()
    data = SubData(topic="a/b", payload="1")
    assert layer.receive(data) is False
    assert layer.reconnect() is False

    received = []
    reconnects = []
    layer.set_recv_callback(received.append)
    layer.set_reconnect_callback(lambda: reconnects.append(True))
    assert layer.receive(data) is True
    assert layer.reconnect() is True
    assert received == [data]
    assert reconnects == [True]


def test_remote_operations():
    layer = FakeRemoteLayer()
    pub = PubData(topic="a", payload="b")
    layer.publish(pub)
    layer.subscribe("x")
    assert layer.published == [pub]
    assert layer.topics == {"x"}
    layer.unsubscribe("x")
    assert layer.topics == set()