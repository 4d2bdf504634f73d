# utils/__init__.py

from utils.logger import logger, setup_logging
from utils.config import load_cfg, resolve_env

__all__ = ["logger", "setup_logging", "load_cfg", "resolve_env"]
