# infra/frames.py
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Union

from tradesmart.models import LIST_SEP, SessionCredentials, SubscriptionKey

JSON_SEPARATORS = (",", ":")

# inbound discriminants ("t")
TOUCHLINE_ACK = "tk"
TOUCHLINE_FEED = "tf"
DEPTH_ACK = "dk"
DEPTH_FEED = "df"
ORDER_UPDATE = "om"
CONNECT_ACK = "ck"

MARKET_DATA_KINDS = frozenset({TOUCHLINE_ACK, TOUCHLINE_FEED, DEPTH_ACK, DEPTH_FEED})
ORDER_KINDS = frozenset({ORDER_UPDATE})

# outbound discriminants
T_CONNECT = "c"
T_HEARTBEAT = "h"
T_SUBSCRIBE = "t"
T_UNSUBSCRIBE = "u"


def _json_dumps_compact(obj: Any) -> str:
    return json.dumps(obj, separators=JSON_SEPARATORS, ensure_ascii=False)


def join_keys(keys: Iterable[SubscriptionKey]) -> str:
    return LIST_SEP.join(str(k) for k in keys)


def auth_frame(creds: SessionCredentials) -> str:
    return _json_dumps_compact({
        "t": T_CONNECT,
        "uid": creds.uid,
        "actid": creds.actid,
        "susertoken": creds.susertoken,
    })


def heartbeat_frame() -> str:
    return _json_dumps_compact({"t": T_HEARTBEAT})


def subscribe_frame(keys: Iterable[SubscriptionKey]) -> str:
    return _json_dumps_compact({"t": T_SUBSCRIBE, "k": join_keys(keys)})


def unsubscribe_frame(keys: Iterable[SubscriptionKey]) -> str:
    return _json_dumps_compact({"t": T_UNSUBSCRIBE, "k": join_keys(keys)})


# ---- inbound decode: a tagged outcome, callers match on the type ----
@dataclass(frozen=True)
class Frame:
    kind: str
    payload: Dict[str, Any]


@dataclass(frozen=True)
class MalformedFrame:
    raw: Union[str, bytes]
    reason: str


DecodeResult = Union[Frame, MalformedFrame]


def decode_frame(raw: Union[str, bytes]) -> DecodeResult:
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            return MalformedFrame(raw, f"not utf-8: {e}")
    else:
        text = raw

    try:
        data = json.loads(text)
    except (json.JSONDecodeError, TypeError) as e:
        return MalformedFrame(raw, f"invalid json: {e}")

    if not isinstance(data, dict):
        return MalformedFrame(raw, f"expected a JSON object, got {type(data).__name__}")

    kind = data.get("t")
    if not isinstance(kind, str) or not kind:
        return MalformedFrame(raw, "missing 't' discriminant")

    return Frame(kind=kind, payload=data)
