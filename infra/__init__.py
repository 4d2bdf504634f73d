# infra/__init__.py
from __future__ import annotations

import ssl
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, Protocol, Union

import websockets


# ========== Transport port: the feed client depends on this, not on websockets ==========
class TransportPort(Protocol):
    """
    One open bidirectional text connection.
    Iterating yields inbound frames; iteration ends (or raises ConnectionClosed)
    when the peer or the network closes the connection.
    """
    async def send(self, message: str) -> None: ...
    async def close(self, code: int = 1000, reason: str = "") -> None: ...
    def __aiter__(self) -> AsyncIterator[Union[str, bytes]]: ...


Connector = Callable[[str], Awaitable[TransportPort]]


def _ssl_context(verify: bool) -> ssl.SSLContext:
    ctx = ssl.create_default_context()
    if not verify:
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    return ctx


def websocket_connector(*,
                        ssl_verify: bool = True,
                        open_timeout: Optional[float] = 10,
                        close_timeout: float = 10,
                        **kwargs: Any,
                        ) -> Connector:
    """
    Connector backed by websockets.connect. Protocol-level pings are left off,
    the feed expects its own {"t":"h"} heartbeats.
    """
    async def _connect(url: str) -> TransportPort:
        opts = dict(ping_interval=None, open_timeout=open_timeout, close_timeout=close_timeout, **kwargs)
        if url.startswith("wss://"):
            opts["ssl"] = _ssl_context(ssl_verify)
        return await websockets.connect(url, **opts)

    return _connect


__all__ = ["TransportPort", "Connector", "websocket_connector"]
