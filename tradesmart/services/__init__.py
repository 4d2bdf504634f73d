# tradesmart/services/__init__.py
from tradesmart.services.endpoints import Endpoints, make_endpoints_from_cfg
from tradesmart.services.instrument_service import InstrumentService, InstrumentSource, JsonFileSource

__all__ = ["Endpoints", "make_endpoints_from_cfg", "InstrumentService", "InstrumentSource", "JsonFileSource"]
