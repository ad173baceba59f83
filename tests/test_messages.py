import pytest

from kvikpy.addresses import LocalAddr
from kvikpy.messages import (
    LocalMsg,
    LocalMsgFailReason,
    LocalMsgType,
    PubData,
    SubData,
    SubReq,
    local_msg_fail_reason_to_str,
    local_msg_type_to_str,
)


def test_equality():
    msg1 = LocalMsg()
    msg2 = LocalMsg()
    assert msg1 == msg2
    assert (msg1 != msg2) is False
    assert msg1.type == LocalMsgType.NONE
    assert msg1.pubs == []


@pytest.mark.parametrize(
    "changes",
    [
        {"type": LocalMsgType.FAIL},
        {"addr": LocalAddr(b"\x01")},
        {"relayed_addr": LocalAddr(b"\x01")},
        {"pubs": [PubData(topic="1", payload="2")]},
        {"subs": ["1"]},
        {"unsubs": ["1"]},
        {"subs_data": [SubData(topic="1", payload="2")]},
    ],
)
def test_different_content(changes):
    assert LocalMsg() != LocalMsg(**changes)


def test_different_id_is_additional_data():
    assert LocalMsg() == LocalMsg(id=1)


def test_different_fail_reason_is_additional_data():
    assert LocalMsg() == LocalMsg(fail_reason=LocalMsgFailReason.DUP_ID)


@pytest.mark.parametrize(
    "mt,name",
    [
        (LocalMsgType.NONE, "NONE"),
        (LocalMsgType.OK, "OK"),
        (LocalMsgType.FAIL, "FAIL"),
        (LocalMsgType.PROBE_REQ, "PROBE_REQ"),
        (LocalMsgType.PROBE_RES, "PROBE_RES"),
        (LocalMsgType.PUB_SUB_UNSUB, "PUB_SUB_UNSUB"),
        (LocalMsgType.SUB_DATA, "SUB_DATA"),
        (255, "???"),
    ],
)
def test_msg_type_to_str(mt, name):
    assert local_msg_type_to_str(mt) == name


@pytest.mark.parametrize(
    "fr,name",
    [
        (LocalMsgFailReason.NONE, "NONE"),
        (LocalMsgFailReason.DUP_ID, "DUP_ID"),
        (LocalMsgFailReason.INVALID_TS, "INVALID_TS"),
        (LocalMsgFailReason.PROCESSING_FAILED, "PROCESSING_FAILED"),
        (LocalMsgFailReason.UNKNOWN_SENDER, "UNKNOWN_SENDER"),
        (255, "???"),
    ],
)
def test_fail_reason_to_str(fr, name):
    assert local_msg_fail_reason_to_str(fr) == name


def test_pub_data_to_sub_data():
    assert PubData(topic="abc", payload="123").to_sub_data() == SubData(topic="abc", payload="123")


def test_sub_req_equality_uses_callback():
    def callback(data):
        return None

    assert SubReq("abc", callback) == SubReq("abc", callback)
    assert SubReq("abc", callback) != SubReq("def", callback)


def test_string_representation():
    msg = LocalMsg(
        type=LocalMsgType.PROBE_REQ,
        addr=LocalAddr([0x0A, 0xBC]),
        pubs=[PubData(topic="t", payload="p")],
    )
    text = str(msg)
    assert "PROBE_REQ" in text
    assert "0abc" in text
    assert "'t'" in text


def test_message_is_unhashable():
    with pytest.raises(TypeError):
        hash(LocalMsg())