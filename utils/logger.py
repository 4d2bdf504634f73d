# utils/logger.py
import os
import sys
from datetime import datetime
from pathlib import Path

from loguru import logger

DEFAULT_LOG_DIR = Path(__file__).resolve().parents[1] / "logs"


def setup_logging(log_dir=None, level: str | None = None) -> Path:
    """
    One console sink plus two files per process run:
    stream_<ts>.log with everything at DEBUG (raw frames, heartbeats), and
    alerts_<ts>.log with WARNING+ only (drops, reconnects, auth rejects).
    """
    log_dir = Path(log_dir or os.getenv("TRADESMART_LOG_DIR") or DEFAULT_LOG_DIR)
    log_dir.mkdir(parents=True, exist_ok=True)
    started = datetime.now().strftime("%Y%m%d_%H%M%S")
    stream_file = log_dir / f"stream_{started}.log"

    logger.remove()
    logger.add(
        sys.stdout,
        level=level or os.getenv("TRADESMART_LOG_LEVEL", "INFO"),
        enqueue=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | {level: <7} | {message}",
    )
    logger.add(
        stream_file,
        level="DEBUG",
        rotation="100 MB",
        retention="90 days",
        enqueue=True,
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <7} | {name}:{line} | {message}",
    )
    logger.add(
        log_dir / f"alerts_{started}.log",
        level="WARNING",
        retention="90 days",
        enqueue=True,
        encoding="utf-8",
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level} | {message}",
    )
    return stream_file


log_file = setup_logging()
logger.info(f"Logger initialized. Writing feed logs to {log_file}")
