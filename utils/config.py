# utils/config.py
import os
from pathlib import Path
import yaml
from dotenv import load_dotenv

from utils.logger import logger


def resolve_env(obj, missing: list | None = None):
    """Replace "${VAR}" strings (at any depth) with the value of env var VAR."""
    if isinstance(obj, dict):
        return {k: resolve_env(v, missing) for k, v in obj.items()}
    if isinstance(obj, list):
        return [resolve_env(v, missing) for v in obj]
    if isinstance(obj, str) and obj.startswith("${") and obj.endswith("}"):
        varname = obj[2:-1]
        value = os.getenv(varname)
        if value is None:
            if missing is not None:
                missing.append(varname)
            return ""
        return value
    return obj


def load_cfg(cfg_path: str | None = None):

    base_dir = Path(__file__).resolve().parents[1]

    cfg_file = Path(cfg_path) if cfg_path else (base_dir / "config.yaml")

    load_dotenv(base_dir / ".env")

    with open(cfg_file, "r", encoding="utf-8") as f:
        raw_cfg = yaml.safe_load(f) or {}

    missing: list[str] = []
    cfg = resolve_env(raw_cfg, missing)

    for name in missing:
        logger.warning(f"Config references unset env var {name}, using empty string")

    return cfg
