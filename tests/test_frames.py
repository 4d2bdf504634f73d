import json

from infra.frames import (
    Frame, MalformedFrame, MARKET_DATA_KINDS, ORDER_KINDS,
    auth_frame, decode_frame, heartbeat_frame, subscribe_frame, unsubscribe_frame,
)
from tradesmart.models import SessionCredentials, SubscriptionKey


def test_outbound_frames_wire_format():
    creds = SessionCredentials(uid="FA12345", susertoken="tok", actid="FA99")
    assert json.loads(auth_frame(creds)) == {"t": "c", "uid": "FA12345", "actid": "FA99", "susertoken": "tok"}
    assert heartbeat_frame() == '{"t":"h"}'

    keys = [SubscriptionKey("NSE", "22"), SubscriptionKey("NFO", "35001")]
    assert subscribe_frame(keys) == '{"t":"t","k":"NSE|22#NFO|35001"}'
    assert unsubscribe_frame(keys[:1]) == '{"t":"u","k":"NSE|22"}'


def test_decode_valid_frame():
    res = decode_frame('{"t":"tk","e":"NSE","tk":"22","lp":"101.5"}')
    assert isinstance(res, Frame)
    assert res.kind == "tk"
    assert res.payload["lp"] == "101.5"

    res = decode_frame(b'{"t":"om","status":"COMPLETE"}')
    assert isinstance(res, Frame) and res.kind == "om"


def test_decode_malformed_frames_are_tagged_not_raised():
    cases = {
        "{not json": "invalid json",
        "[1,2,3]": "expected a JSON object",
        '"tk"': "expected a JSON object",
        '{"lp":"1"}': "missing 't'",
        '{"t":5}': "missing 't'",
    }
    for raw, reason in cases.items():
        res = decode_frame(raw)
        assert isinstance(res, MalformedFrame), raw
        assert reason in res.reason
        assert res.raw == raw

    assert isinstance(decode_frame(b"\xff\xfe\x00"), MalformedFrame)


def test_kind_sets():
    assert MARKET_DATA_KINDS == {"tk", "tf", "dk", "df"}
    assert ORDER_KINDS == {"om"}
