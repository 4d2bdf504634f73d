# tradesmart/services/instrument_service.py
from __future__ import annotations
import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from tradesmart.errors import AmbiguousInstrument, InstrumentNotFound, InvalidArgument
from tradesmart.models import Instrument
from utils.logger import logger
from utils.time import parse_expiry, publish_cutoff


class InstrumentSource(Protocol):
    """Supplies parsed instrument master records for one exchange."""
    def load(self, exchange: str) -> List[Mapping[str, Any]]: ...


class JsonFileSource:
    """
    Reads the cached masters written by the downloader: <folder>/<EXCH>_symbols.json,
    each a JSON array of records keyed Exchange/Token/Symbol/TradingSymbol/...
    """
    def __init__(self, folder: str | Path) -> None:
        self.folder = Path(folder)

    def path_for(self, exchange: str) -> Path:
        return self.folder / f"{exchange.upper()}_symbols.json"

    def load(self, exchange: str) -> List[Mapping[str, Any]]:
        with open(self.path_for(exchange), "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, list):
            raise ValueError(f"{self.path_for(exchange)}: expected a JSON array, got {type(data).__name__}")
        return data

    def is_stale(self, exchange: str, now: Optional[datetime] = None) -> bool:
        """Missing, empty, or written before this morning's publish time."""
        p = self.path_for(exchange)
        try:
            st = p.stat()
        except FileNotFoundError:
            return True
        if st.st_size == 0:
            return True
        return datetime.fromtimestamp(st.st_mtime) < publish_cutoff(now)


def _expiry_sort_key(inst: Instrument):
    dt = parse_expiry(inst.expiry)
    # undated (cash) records after dated ones
    return (dt is None, dt or datetime.max)


class InstrumentService:
    """
    Caches instrument masters per exchange and resolves human-readable queries
    (exchange, symbol, instrument type, expiry, option type, strike) into the
    exchange tokens the feed and order entry need.
    """
    def __init__(self, source: InstrumentSource) -> None:
        self._source = source
        self._cache: Dict[str, List[Instrument]] = {}
        self._lock = asyncio.Lock()

    async def refresh(self, exchange: str) -> int:
        """Load one exchange's records into the cache; returns the record count."""
        exchange = exchange.upper()
        rows = await asyncio.to_thread(self._source.load, exchange)

        parsed: List[Instrument] = []
        for row in rows:
            try:
                parsed.append(Instrument.from_record(row))
            except Exception as e:
                logger.warning(f"Failed to map instrument record {row!r} (err={e})")

        async with self._lock:
            self._cache[exchange] = parsed
        logger.info(f"Instrument cache {exchange}: {len(parsed)} records")
        return len(parsed)

    async def get_or_refresh(self, exchange: str) -> List[Instrument]:
        rows = self._cache.get(exchange.upper())
        if rows is not None:
            return rows
        await self.refresh(exchange)
        return self._cache[exchange.upper()]

    def records(self, exchange: str) -> List[Instrument]:
        rows = self._cache.get(exchange.upper())
        if rows is None:
            raise KeyError(f"Instruments not loaded for exchange: {exchange}")
        return rows

    def find(self,
             exchange: str,
             symbol: str,
             *,
             instrument: Optional[str] = None,
             expiry: Optional[str] = None,
             option_type: Optional[str] = None,
             strike_price: Optional[str] = None,
             ) -> List[Instrument]:
        """All records matching every given field exactly, nearest expiry first. Empty fields are wildcards."""
        if not exchange or not symbol:
            raise InvalidArgument("exchange and symbol are required", exchange=exchange, symbol=symbol)

        wanted = {
            "symbol": symbol,
            "instrument": instrument,
            "expiry": expiry,
            "option_type": option_type,
            "strike_price": strike_price,
        }
        wanted = {k: str(v) for k, v in wanted.items() if v not in (None, "")}

        hits = [
            inst for inst in self.records(exchange)
            if all(getattr(inst, k) == v for k, v in wanted.items())
        ]
        hits.sort(key=_expiry_sort_key)
        return hits

    def resolve(self, exchange: str, symbol: str, **filters) -> Instrument:
        """Exactly one record for the query, or InstrumentNotFound / AmbiguousInstrument."""
        hits = self.find(exchange, symbol, **filters)
        if not hits:
            raise InstrumentNotFound("no instrument matched", exchange=exchange, symbol=symbol, **filters)
        if len(hits) > 1:
            raise AmbiguousInstrument(
                f"{len(hits)} instruments matched, narrow the query",
                exchange=exchange, symbol=symbol, **filters,
            )
        return hits[0]

    def expiry_dates(self, exchange: str, symbol: str, instrument: Optional[str] = None) -> List[str]:
        """Unique expiries for symbol (and instrument type), chronological."""
        seen = {
            inst.expiry
            for inst in self.records(exchange)
            if inst.symbol == symbol and (not instrument or inst.instrument == instrument) and inst.expiry
        }
        return sorted(seen, key=lambda e: (parse_expiry(e) is None, parse_expiry(e) or datetime.max, e))

    def stale_exchanges(self, exchanges: Iterable[str], now: Optional[datetime] = None) -> List[str]:
        """Exchanges whose cached masters need re-downloading (only for sources that track freshness)."""
        is_stale = getattr(self._source, "is_stale", None)
        if is_stale is None:
            return []
        stale = [e.upper() for e in exchanges if is_stale(e.upper(), now)]
        if stale:
            logger.warning(f"Instrument masters out of date: {stale}")
        return stale
