# infra/ws_client.py
from __future__ import annotations

import asyncio
import contextlib
import inspect
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from websockets.exceptions import ConnectionClosed

from infra import Connector, TransportPort, websocket_connector
from infra.frames import (
    CONNECT_ACK, MARKET_DATA_KINDS, ORDER_KINDS, Frame, MalformedFrame,
    auth_frame, decode_frame, heartbeat_frame, subscribe_frame, unsubscribe_frame,
)
from infra.subscriptions import SubscriptionRegistry
from tradesmart.errors import (
    AuthRejected, ConnectFailure, InvalidArgument, NotConnected,
    ReconnectExhausted, StreamError, UnexpectedDisconnect,
)
from tradesmart.models import SessionCredentials, SubscriptionKey
from tradesmart.services.endpoints import DEFAULT_WS_URL, make_endpoints_from_cfg
from tradesmart.session import CredentialsProvider, resolve_credentials
from utils.logger import logger

Json = Dict[str, Any]
FrameCallback = Callable[[Json], Union[None, Awaitable[None]]]
StatusCallback = Callable[["StreamEvent", Json], Union[None, Awaitable[None]]]


class ConnState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class StreamEvent(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"
    RECONNECT_EXHAUSTED = "reconnect_exhausted"
    AUTH_REJECTED = "auth_rejected"


def _close_info(ws: Any, exc: Optional[BaseException] = None) -> Tuple[Optional[int], str]:
    frame = getattr(exc, "rcvd", None) if exc is not None else None
    if frame is not None:
        return getattr(frame, "code", None), getattr(frame, "reason", "") or ""
    return getattr(ws, "close_code", None), getattr(ws, "close_reason", "") or ""


def _as_bool(v: Any) -> bool:
    # ${VAR} values from the env arrive as strings; unset ("") keeps verification on
    if isinstance(v, str):
        return v.strip().lower() not in ("0", "false", "no", "off")
    return bool(v)


class StreamClient:
    """
    Long-lived connection to the TradeSmart push feed.

    Owns one transport at a time: opens it, authenticates with the session
    credentials, sends {"t":"h"} heartbeats while open, replays the full
    subscription set after every (re)connect, and reconnects with a fixed
    backoff after unexpected drops until reconnect_attempts is used up.

    Inbound frames are routed by their "t" discriminant to single-slot
    callbacks: on_data for touchline/depth, on_order for order events.
    Registering a callback replaces the previous one; fan-out to several
    listeners is up to the caller.

    Everything runs on one event loop; no method is thread-safe.
    """

    def __init__(self,
        credentials: Union[SessionCredentials, CredentialsProvider],
        *,
        url: str = DEFAULT_WS_URL,
        name: str = "socket",
        heartbeat_interval: float = 3.0,
        reconnect_interval: float = 10.0,
        reconnect_attempts: int = 200,
        connector: Optional[Connector] = None,
        ssl_verify: bool = True,
    ):
        if credentials is None or not name:
            raise InvalidArgument("stream client requires a name and session credentials")
        creds = resolve_credentials(credentials)
        if not creds.uid or not creds.susertoken:
            raise InvalidArgument("session credentials need uid and susertoken (login first)")
        if heartbeat_interval <= 0 or reconnect_interval < 0 or reconnect_attempts < 0:
            raise InvalidArgument(
                "invalid timing config",
                heartbeat_interval=heartbeat_interval,
                reconnect_interval=reconnect_interval,
                reconnect_attempts=reconnect_attempts,
            )

        self._creds = creds
        self.url = url
        self.name = name
        self.heartbeat_interval = heartbeat_interval
        self.reconnect_interval = reconnect_interval
        self.reconnect_attempts = reconnect_attempts
        self._connector: Connector = connector or websocket_connector(ssl_verify=ssl_verify)

        self._state = ConnState.IDLE
        self._ws: Optional[TransportPort] = None
        self._connecting = False
        self._disconnected_manually = False
        self._reconnect_count = 0
        self._exhausted = False
        self._authenticated = False
        self._last_error: Optional[StreamError] = None

        self._reader_task: Optional[asyncio.Task] = None
        self._heartbeat_task: Optional[asyncio.Task] = None
        self._reconnect_task: Optional[asyncio.Task] = None

        self._subs = SubscriptionRegistry()
        self._on_data: Optional[FrameCallback] = None
        self._on_order: Optional[FrameCallback] = None
        self._on_status: Optional[StatusCallback] = None

        logger.info(f"WS {name} init url={url} {creds.masked()} heartbeat={heartbeat_interval}s "
                    f"reconnect_interval={reconnect_interval}s reconnect_attempts={reconnect_attempts}")

    @classmethod
    def from_cfg(cls,
                 cfg: Dict[str, Any],
                 credentials: Union[SessionCredentials, CredentialsProvider],
                 *,
                 connector: Optional[Connector] = None,
                 ) -> "StreamClient":
        ep = make_endpoints_from_cfg(cfg)
        st = cfg.get("stream") or {}
        return cls(
            credentials,
            url=ep.ws_url,
            name=st.get("name", "socket"),
            heartbeat_interval=float(st.get("heartbeat_s", 3)),
            reconnect_interval=float(st.get("reconnect_interval_s", 10)),
            reconnect_attempts=int(st.get("reconnect_attempts", 200)),
            ssl_verify=_as_bool(st.get("ssl_verify", True)),
            connector=connector,
        )

    # ---- read-only state ------------------------------------------------------------
    @property
    def state(self) -> ConnState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnState.OPEN and self._ws is not None

    @property
    def subscriptions(self) -> List[SubscriptionKey]:
        return self._subs.keys()

    @property
    def reconnect_count(self) -> int:
        return self._reconnect_count

    @property
    def reconnect_exhausted(self) -> bool:
        return self._exhausted

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def last_error(self) -> Optional[StreamError]:
        return self._last_error

    # ---- callbacks --------------------------------------------------------------------
    def on_data(self, callback: Optional[FrameCallback]) -> None:
        self._on_data = callback

    def on_order(self, callback: Optional[FrameCallback]) -> None:
        self._on_order = callback

    def on_status(self, callback: Optional[StatusCallback]) -> None:
        self._on_status = callback

    # ---- lifecycle --------------------------------------------------------------------
    async def connect(self) -> None:
        """
        Open the feed and authenticate. Raises ConnectFailure if the transport
        cannot be opened; a background reconnect is still scheduled in that case
        unless disconnect() is called.
        """
        if self._connecting:
            logger.debug(f"WS {self.name} connect: already in flight, skip")
            return
        if self.is_connected:
            logger.debug(f"WS {self.name} connect: already open, skip")
            return

        if self._exhausted:
            # explicit caller connect after giving up starts a fresh reconnect budget
            self._exhausted = False
            self._reconnect_count = 0
        pending = self._reconnect_task
        if pending is not None and pending is not asyncio.current_task():
            self._cancel_reconnect()

        await self._open()

    async def _open(self) -> None:
        if self._connecting:
            return
        self._connecting = True
        self._disconnected_manually = False
        self._authenticated = False
        self._state = ConnState.CONNECTING
        try:
            logger.info(f"WS {self.name} connect: connecting to {self.url}")
            try:
                ws = await self._connector(self.url)
            except asyncio.CancelledError:
                self._state = ConnState.CLOSED
                raise
            except Exception as e:
                self._state = ConnState.CLOSED
                self._connecting = False
                err = ConnectFailure(f"could not open feed: {e}", url=self.url)
                logger.error(f"WS {self.name} connect: failed ({type(e).__name__}: {e})")
                await self._after_close(code=None, reason=str(e), failure=err)
                raise err from e

            if self._disconnected_manually:
                # disconnect() arrived while the transport was opening
                with contextlib.suppress(Exception):
                    await ws.close()
                self._state = ConnState.CLOSED
                logger.info(f"WS {self.name} connect: aborted by disconnect")
                raise ConnectFailure("connect aborted by disconnect()", url=self.url)

            self._ws = ws
            self._reconnect_count = 0
            self._last_error = None
            self._state = ConnState.OPEN
            self._start_heartbeat(ws)
            self._reader_task = asyncio.create_task(self._read_loop(ws))

            try:
                await ws.send(auth_frame(self._creds))
                await self._replay_subscriptions(ws)
            except Exception as e:
                # the reader sees the same close and drives reconnect
                err = ConnectFailure(f"feed closed during handshake: {e}", url=self.url)
                self._last_error = err
                logger.error(f"WS {self.name} connect: handshake send failed ({type(e).__name__}: {e})")
                raise err from e
        finally:
            self._connecting = False

        logger.info(f"WS {self.name} connect: connected, subs={len(self._subs)}")
        await self._emit(StreamEvent.CONNECTED, {"url": self.url, "subscriptions": len(self._subs)})

    async def disconnect(self) -> None:
        """Close the feed for good: no heartbeats, no reconnects. Safe to call at any time, any number of times."""
        self._disconnected_manually = True
        self._cancel_reconnect()
        self._stop_heartbeat()

        ws, self._ws = self._ws, None
        if ws is None:
            if self._state is not ConnState.CONNECTING and self._state is not ConnState.IDLE:
                self._state = ConnState.CLOSED
            return

        self._state = ConnState.CLOSING
        reader, self._reader_task = self._reader_task, None
        try:
            await ws.close()
        except Exception as e:
            logger.warning(f"WS {self.name} close: error while closing ({type(e).__name__}: {e})")
        if reader is not None and reader is not asyncio.current_task():
            reader.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await reader

        self._state = ConnState.CLOSED
        self._authenticated = False
        logger.info(f"WS {self.name} close: disconnected manually")
        await self._emit(StreamEvent.DISCONNECTED, {"manual": True, "code": None, "reason": ""})

    # ---- subscriptions ----------------------------------------------------------------
    def _keys_from(self, instruments: Optional[Iterable[Any]]) -> List[SubscriptionKey]:
        if instruments is None:
            items = []
        elif isinstance(instruments, (str, Mapping, SubscriptionKey)) or not isinstance(instruments, Iterable):
            # a single instrument
            items = [instruments]
        else:
            items = list(instruments)
        if not items:
            raise InvalidArgument("instruments invalid: empty list")
        return [SubscriptionKey.from_instrument(i) for i in items]

    def _require_open(self) -> TransportPort:
        if not self.is_connected:
            raise NotConnected("WebSocket is not connected.", state=self._state.value)
        return self._ws

    async def subscribe(self, instruments: Iterable[Any]) -> None:
        """
        Add instruments to the subscription set and send the whole set as one
        {"t":"t","k":"EXCH|TOKEN#..."} frame. The set is re-sent after every reconnect.
        """
        keys = self._keys_from(instruments)
        ws = self._require_open()

        added = self._subs.add(keys)
        logger.info(f"WS {self.name} subscribe: +{len(added)} total={len(self._subs)}")
        await self._send_or_raise(ws, subscribe_frame(self._subs.keys()), "subscribe")

    async def unsubscribe(self, instruments: Iterable[Any]) -> None:
        keys = self._keys_from(instruments)
        ws = self._require_open()

        removed = self._subs.remove(keys)
        if not removed:
            logger.debug(f"WS {self.name} unsubscribe: nothing registered for {[str(k) for k in keys]}")
            return
        logger.info(f"WS {self.name} unsubscribe: -{len(removed)} total={len(self._subs)}")
        await self._send_or_raise(ws, unsubscribe_frame(removed), "unsubscribe")
        if len(self._subs):
            await self._send_or_raise(ws, subscribe_frame(self._subs.keys()), "unsubscribe")

    async def _send_or_raise(self, ws: TransportPort, frame: str, op: str) -> None:
        # transport died before the reader saw the close; the registry already
        # holds the change and is replayed on reconnect
        try:
            await ws.send(frame)
        except Exception as e:
            logger.warning(f"WS {self.name} {op}: send failed ({type(e).__name__}: {e})")
            raise NotConnected(f"{op} failed, feed connection lost: {e}", state=self._state.value) from e

    async def _replay_subscriptions(self, ws: TransportPort) -> None:
        if not len(self._subs):
            return
        logger.info(f"WS {self.name} subscribe: replaying {len(self._subs)} keys")
        await ws.send(subscribe_frame(self._subs.keys()))

    # ---- heartbeat --------------------------------------------------------------------
    def _start_heartbeat(self, ws: TransportPort) -> None:
        self._stop_heartbeat()
        self._heartbeat_task = asyncio.create_task(self._heartbeat(ws))

    def _stop_heartbeat(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()

    async def _heartbeat(self, ws: TransportPort) -> None:
        frame = heartbeat_frame()
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            if self._state is not ConnState.OPEN or self._ws is not ws:
                return
            try:
                await ws.send(frame)
            except Exception as e:
                # a dead transport is reported by the reader, keep ticking until then
                logger.warning(f"WS {self.name} heartbeat: send failed ({type(e).__name__}: {e})")

    # ---- inbound ----------------------------------------------------------------------
    async def _read_loop(self, ws: TransportPort) -> None:
        code, reason = None, ""
        try:
            async for msg in ws:
                await self._dispatch(msg)
            code, reason = _close_info(ws)
        except asyncio.CancelledError:
            raise
        except ConnectionClosed as e:
            code, reason = _close_info(ws, e)
        except Exception as e:
            logger.exception(f"WS {self.name} loop: exception")
            code, reason = _close_info(ws)
            reason = reason or f"{type(e).__name__}: {e}"
        await self._on_transport_closed(ws, code, reason)

    async def _dispatch(self, msg: Union[str, bytes]) -> None:
        decoded = decode_frame(msg)
        if isinstance(decoded, MalformedFrame):
            logger.warning(f"WS {self.name} dropped malformed frame: {decoded.reason} raw={decoded.raw!r:.200}")
            return

        frame: Frame = decoded
        if frame.kind in MARKET_DATA_KINDS and self._on_data is not None:
            await self._invoke(self._on_data, frame.payload)
        elif frame.kind in ORDER_KINDS and self._on_order is not None:
            await self._invoke(self._on_order, frame.payload)
        elif frame.kind == CONNECT_ACK:
            await self._on_connect_ack(frame.payload)
        else:
            logger.debug(f"WS {self.name} message received: {frame.payload}")

    async def _on_connect_ack(self, payload: Json) -> None:
        if str(payload.get("s", "")).upper() == "OK":
            self._authenticated = True
            logger.info(f"WS {self.name} auth: session accepted")
            return
        self._authenticated = False
        self._last_error = AuthRejected("feed rejected session", status=payload.get("s"), uid=self._creds.uid)
        logger.error(f"WS {self.name} auth: rejected {payload}")
        await self._emit(StreamEvent.AUTH_REJECTED, dict(payload))

    async def _invoke(self, cb: Callable[..., Any], *args: Any) -> None:
        try:
            res = cb(*args)
            if inspect.isawaitable(res):
                await res
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"WS {self.name} callback {getattr(cb, '__name__', cb)!s} raised")

    async def _emit(self, event: StreamEvent, detail: Json) -> None:
        if self._on_status is not None:
            await self._invoke(self._on_status, event, detail)

    # ---- close & reconnect ------------------------------------------------------------
    async def _on_transport_closed(self, ws: TransportPort, code: Optional[int], reason: str) -> None:
        if ws is not self._ws:
            # already released by disconnect() or replaced
            return
        self._ws = None
        self._reader_task = None
        self._stop_heartbeat()
        self._state = ConnState.CLOSED
        self._authenticated = False
        with contextlib.suppress(Exception):
            await ws.close()
        logger.info(f"WS {self.name} close: websocket closed code={code} reason={reason or '-'}")
        await self._after_close(code, reason)

    async def _after_close(self,
                           code: Optional[int],
                           reason: str,
                           failure: Optional[StreamError] = None,
                           ) -> None:
        if self._disconnected_manually:
            return
        if failure is None:
            failure = UnexpectedDisconnect(code, reason)
            logger.warning(f"WS {self.name} {failure}")
        self._last_error = failure
        await self._emit(StreamEvent.DISCONNECTED, {"manual": False, "code": code, "reason": reason})
        await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        if self._reconnect_count >= self.reconnect_attempts:
            self._exhausted = True
            self._last_error = ReconnectExhausted(self._reconnect_count)
            logger.error(f"WS {self.name} Max reconnect attempts reached. Unable to reconnect.")
            await self._emit(StreamEvent.RECONNECT_EXHAUSTED, {"attempts": self._reconnect_count})
            return

        self._reconnect_count += 1
        attempt = self._reconnect_count
        logger.info(f"WS {self.name} Reconnect attempt {attempt} in {self.reconnect_interval}s...")
        self._reconnect_task = asyncio.create_task(self._reconnect_after(attempt))
        await self._emit(StreamEvent.RECONNECTING, {"attempt": attempt, "delay": self.reconnect_interval})

    async def _reconnect_after(self, attempt: int) -> None:
        await asyncio.sleep(self.reconnect_interval)
        if self._disconnected_manually:
            return
        try:
            await self._open()
        except ConnectFailure as e:
            logger.error(f"WS {self.name} Reconnect attempt {attempt} failed: {e}")
        finally:
            if self._reconnect_task is asyncio.current_task():
                self._reconnect_task = None

    def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
