import pytest

from tradesmart.errors import InvalidArgument
from tradesmart.models import Instrument, SessionCredentials, SubscriptionKey


def test_session_credentials_default_account_and_masking():
    creds = SessionCredentials(uid="FA12345", susertoken="0123456789abcdef")
    assert creds.actid == "FA12345"
    assert "0123456789abcdef" not in repr(creds)
    assert "0123********cdef" in creds.masked()

    other = SessionCredentials(uid="FA12345", susertoken="x", actid="FA99")
    assert other.actid == "FA99"


def test_subscription_key_from_everything():
    expected = SubscriptionKey("NSE", "22")
    assert str(expected) == "NSE|22"
    assert SubscriptionKey.from_instrument("NSE|22") == expected
    assert SubscriptionKey.from_instrument({"Exchange": "NSE", "Token": "22"}) == expected
    assert SubscriptionKey.from_instrument({"exchange": "NSE", "token": 22}) == expected
    assert SubscriptionKey.from_instrument(expected) is expected

    inst = Instrument(exchange="NSE", token="22", symbol="ACC", trading_symbol="ACC-EQ")
    assert SubscriptionKey.from_instrument(inst) == expected
    assert inst.key == expected


@pytest.mark.parametrize("bad", ["NSE", "|22", "NSE|", "NSE|2#2", {"Exchange": "NSE"}, object()])
def test_subscription_key_rejects_invalid(bad):
    with pytest.raises(InvalidArgument):
        SubscriptionKey.from_instrument(bad)


def test_instrument_from_master_record():
    row = {
        "Exchange": "NFO", "Token": "35001", "LotSize": "25", "Symbol": "NIFTY",
        "TradingSymbol": "NIFTY26DEC24C24000", "Instrument": "OPTIDX", "Expiry": "26-DEC-2024",
        "OptionType": "CE", "StrikePrice": "24000", "TickSize": "0.05",
    }
    inst = Instrument.from_record(row)
    assert inst.exchange == "NFO" and inst.token == "35001"
    assert inst.lot_size == 25
    assert inst.tick_size == pytest.approx(0.05)
    assert inst.expiry == "26-DEC-2024"
    assert inst.raw == row

    eq = Instrument.from_record({"Exchange": "NSE", "Token": "22", "Symbol": "ACC", "TradingSymbol": "ACC-EQ",
                                 "LotSize": "", "TickSize": "bad"})
    assert eq.lot_size == 1
    assert eq.tick_size == 0.0
