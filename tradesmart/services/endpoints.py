# tradesmart/services/endpoints.py
from dataclasses import dataclass

DEFAULT_WS_URL = "wss://v2api.tradesmartonline.in/NorenWSTP/"
DEFAULT_INSTRUMENTS_DIR = "./instruments"


@dataclass
class Endpoints:
    # push feed (market data + order events)
    ws_url: str = DEFAULT_WS_URL
    # folder holding cached <EXCH>_symbols.json instrument masters
    instruments_dir: str = DEFAULT_INSTRUMENTS_DIR


def make_endpoints_from_cfg(cfg: dict) -> Endpoints:
    ts_cfg = cfg.get("tradesmart") or {}
    if not isinstance(ts_cfg, dict):
        raise ValueError(f"Invalid cfg: 'tradesmart' must be a mapping, got {type(ts_cfg).__name__}")

    ws_url = str(ts_cfg.get("ws_url") or DEFAULT_WS_URL).strip()
    if not ws_url.startswith(("ws://", "wss://")):
        raise ValueError(f"Invalid cfg: tradesmart.ws_url must be a ws:// or wss:// url, got {ws_url!r}")

    return Endpoints(
        ws_url=ws_url,
        instruments_dir=str(ts_cfg.get("instruments_dir") or DEFAULT_INSTRUMENTS_DIR),
    )
