# app/run_stream.py
import asyncio
import signal
from typing import Any, Dict, List

from infra.ws_client import StreamClient, StreamEvent
from tradesmart.models import Instrument
from tradesmart.services import JsonFileSource, InstrumentService, make_endpoints_from_cfg
from tradesmart.session import credentials_from_cfg
from utils.config import load_cfg
from utils.logger import logger


def _watchlist_query(item: Any) -> Dict[str, Any]:
    if not isinstance(item, dict):
        raise ValueError(f"Invalid cfg: stream.instruments entries must be 'EXCH|TOKEN' or a mapping, got {item!r}")
    missing = [k for k in ("exchange", "symbol") if not item.get(k)]
    if missing:
        raise ValueError(f"Invalid cfg: stream.instruments entry {item!r} missing {missing}")
    return dict(item)


async def resolve_watchlist(cfg: Dict[str, Any], instruments: InstrumentService) -> List[Any]:
    """
    stream.instruments entries are either "EXCH|TOKEN" strings or queries
    ({exchange, symbol, instrument?, expiry?, option_type?, strike_price?}) resolved via the catalog.
    """
    out: List[Any] = []
    for item in (cfg.get("stream") or {}).get("instruments") or []:
        if isinstance(item, str):
            out.append(item)
            continue
        query = _watchlist_query(item)
        exchange = query.pop("exchange")
        symbol = query.pop("symbol")
        await instruments.get_or_refresh(exchange)
        inst = instruments.resolve(exchange, symbol, **query)
        logger.info(f"Watchlist {exchange}:{symbol} {query} -> {inst.trading_symbol} ({inst.key})")
        out.append(inst)
    return out


async def main(cfg: Dict[str, Any]) -> None:
    creds = credentials_from_cfg(cfg)
    ep = make_endpoints_from_cfg(cfg)

    source = JsonFileSource(ep.instruments_dir)
    instruments = InstrumentService(source)
    watchlist = await resolve_watchlist(cfg, instruments)
    instruments.stale_exchanges({i.exchange for i in watchlist if isinstance(i, Instrument)})

    client = StreamClient.from_cfg(cfg, creds)
    client.on_data(lambda tick: logger.info(f"[TICK] {tick}"))
    client.on_order(lambda order: logger.info(f"[ORDER] {order}"))

    stop = asyncio.Event()

    def on_status(event: StreamEvent, detail: Dict[str, Any]) -> None:
        logger.info(f"[STATUS] {event.value} {detail}")
        if event is StreamEvent.RECONNECT_EXHAUSTED:
            stop.set()

    client.on_status(on_status)

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # windows
            pass

    await client.connect()
    if watchlist:
        await client.subscribe(watchlist)

    logger.info("Streaming; Ctrl-C to stop")
    try:
        await stop.wait()
    finally:
        await client.disconnect()


if __name__ == "__main__":
    asyncio.run(main(load_cfg()))
