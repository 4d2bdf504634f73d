# tradesmart/errors.py
from typing import Optional


class TradeSmartError(Exception):
    """Base error."""
    def __init__(self, msg: str = "", **ctx):
        super().__init__(msg)
        self.msg = msg
        self.ctx = ctx

    def __str__(self):
        base = self.msg or self.__class__.__name__
        if self.ctx:
            details = ", ".join(f"{k}={v}" for k, v in self.ctx.items())
            return f"{base} [{details}]"
        return base


class StreamError(TradeSmartError):
    """Base for feed connection errors."""

class ConnectFailure(StreamError):
    """Transport could not open, or errored before the session was authenticated."""

class NotConnected(StreamError):
    """Operation needs an open feed connection."""

class InvalidArgument(StreamError, ValueError):
    """Empty or malformed instrument list / subscription key."""

class AuthRejected(StreamError):
    """Feed answered the connect frame with a non-OK status."""


class UnexpectedDisconnect(StreamError):
    """Transport closed without a manual disconnect. Recorded, never raised to callers."""
    def __init__(self, code: Optional[int] = None, reason: str = ""):
        super().__init__("connection closed unexpectedly", code=code, reason=reason or "-")
        self.code = code
        self.reason = reason


class ReconnectExhausted(StreamError):
    """Terminal: reconnect attempts used up. Surfaced through the status callback."""
    def __init__(self, attempts: int):
        super().__init__("max reconnect attempts reached", attempts=attempts)
        self.attempts = attempts


class InstrumentNotFound(TradeSmartError, LookupError):
    """No catalog record matched the query."""

class AmbiguousInstrument(TradeSmartError, LookupError):
    """More than one catalog record matched a query that expects exactly one."""
