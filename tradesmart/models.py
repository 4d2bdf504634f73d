# tradesmart/models.py
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from tradesmart.errors import InvalidArgument

KEY_SEP = "|"       # exchange|token
LIST_SEP = "#"      # key#key#key


def _mask(s: Optional[str]) -> str:
    if not s:
        return ""
    if len(s) <= 8:
        return "*" * len(s)
    return s[:4] + "*" * (len(s) - 8) + s[-4:]


@dataclass(frozen=True)
class SessionCredentials:
    """Authenticated session obtained out-of-band from the login exchange."""
    uid: str
    susertoken: str
    actid: str = ""

    def __post_init__(self):
        # the broker uses the user id as account id unless told otherwise
        if not self.actid:
            object.__setattr__(self, "actid", self.uid)

    def masked(self) -> str:
        return f"uid={self.uid} actid={self.actid} token={_mask(self.susertoken)}"

    def __repr__(self) -> str:
        return f"SessionCredentials({self.masked()})"


@dataclass(frozen=True)
class SubscriptionKey:
    exchange: str   # NSE / NFO / CDS / MCX / BSE / BFO
    token: str      # exchange instrument token

    def __post_init__(self):
        exch = str(self.exchange or "").strip()
        tok = str(self.token or "").strip()
        if not exch or not tok:
            raise InvalidArgument("subscription key needs exchange and token",
                                  exchange=self.exchange, token=self.token)
        if any(sep in exch + tok for sep in (KEY_SEP, LIST_SEP)):
            raise InvalidArgument("subscription key contains a separator", exchange=exch, token=tok)
        object.__setattr__(self, "exchange", exch)
        object.__setattr__(self, "token", tok)

    def __str__(self) -> str:
        return f"{self.exchange}{KEY_SEP}{self.token}"

    @classmethod
    def parse(cls, s: str) -> "SubscriptionKey":
        exch, sep, tok = str(s).partition(KEY_SEP)
        if not sep:
            raise InvalidArgument(f"not an EXCH|TOKEN key: {s!r}")
        return cls(exch, tok)

    @classmethod
    def from_instrument(cls, obj: Any) -> "SubscriptionKey":
        """
        Accepts a SubscriptionKey, an Instrument, an instrument master record
        ({"Exchange": ..., "Token": ...}), a lower-case mapping, or "EXCH|TOKEN".
        """
        if isinstance(obj, SubscriptionKey):
            return obj
        if isinstance(obj, str):
            return cls.parse(obj)
        if isinstance(obj, Mapping):
            exch = obj.get("Exchange", obj.get("exchange"))
            tok = obj.get("Token", obj.get("token"))
            return cls(exch, tok)
        exch = getattr(obj, "exchange", None)
        tok = getattr(obj, "token", None)
        if exch is None or tok is None:
            raise InvalidArgument(f"cannot build subscription key from {type(obj).__name__}")
        return cls(exch, tok)


def _num(x: Any, cast=float, default=0):
    if x is None or (isinstance(x, str) and not x.strip()):
        return default
    try:
        return cast(x)
    except (TypeError, ValueError):
        return default


@dataclass
class Instrument:
    exchange: str
    token: str
    symbol: str
    trading_symbol: str
    instrument: str = ""        # EQ / FUTIDX / OPTIDX / OPTSTK ...
    expiry: str = ""            # as published, e.g. 26-DEC-2024
    option_type: str = ""       # CE / PE / XX
    strike_price: str = ""
    lot_size: int = 1
    tick_size: float = 0.0
    raw: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> "Instrument":
        """Map an instrument master record (already parsed) onto the model."""
        return cls(
            exchange=str(row.get("Exchange", "")),
            token=str(row.get("Token", "")),
            symbol=str(row.get("Symbol", "")),
            trading_symbol=str(row.get("TradingSymbol", "")),
            instrument=str(row.get("Instrument", "") or ""),
            expiry=str(row.get("Expiry", "") or ""),
            option_type=str(row.get("OptionType", "") or ""),
            strike_price=str(row.get("StrikePrice", "") or ""),
            lot_size=int(_num(row.get("LotSize"), float, 1)),
            tick_size=_num(row.get("TickSize"), float, 0.0),
            raw=dict(row),
        )

    @property
    def key(self) -> SubscriptionKey:
        return SubscriptionKey(self.exchange, self.token)
