# tradesmart/__init__.py
"""
TradeSmart (Noren) client package.

Provides:
- Session credentials and the capability interface the feed consumes
- Domain models: subscription keys, instrument master records
- Error taxonomy for the streaming feed and instrument lookups
- Services: endpoints from config, instrument catalog lookups

The streaming connection manager itself lives in infra.ws_client.
"""
