# idscan/settings.py
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULT_CONFIG_PATH = "config/app.yaml"
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_UPLOAD_BYTES = 10 * 1024 * 1024


def _read_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    return data or {}


def _env(key: str) -> Optional[str]:
    v = os.getenv(key)
    return v.strip() if isinstance(v, str) and v.strip() else None


def _pick(cfg: Dict[str, Any], env_key: str, cfg_key: str, default: Any = None) -> Any:
    value = _env(env_key)
    if value is not None:
        return value
    value = cfg.get(cfg_key)
    return default if value is None else value


@dataclass(frozen=True)
class Settings:
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    temperature: float = 0.1
    sync_url: Optional[str] = None
    sync_api_key: Optional[str] = None
    sync_timeout_s: float = 10.0
    sync_delay_s: float = 2.0
    max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES
    log_level: str = "INFO"


def load_settings(config_path: Optional[str] = None) -> Settings:
    """
    Resolution order (highest -> lowest):
      1) Explicit function argument
      2) IDSCAN_CONFIG_PATH env var
      3) config/app.yaml (optional)
    Individual fields can be overridden via env vars:
      - GEMINI_API_KEY (falls back to API_KEY)
      - IDSCAN_MODEL, IDSCAN_TEMPERATURE
      - IDSCAN_SYNC_URL, IDSCAN_SYNC_API_KEY, IDSCAN_SYNC_TIMEOUT_S, IDSCAN_SYNC_DELAY_S
      - IDSCAN_MAX_UPLOAD_BYTES, IDSCAN_LOG_LEVEL
    A missing API key is not an error here; the analysis client reports it.
    """
    cfg_path = (
        Path(config_path)
        if config_path
        else Path(_env("IDSCAN_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    )
    cfg = _read_yaml(cfg_path)

    api_key = _env("GEMINI_API_KEY") or _env("API_KEY") or cfg.get("api_key")

    try:
        return Settings(
            api_key=str(api_key) if api_key else None,
            model=str(_pick(cfg, "IDSCAN_MODEL", "model", DEFAULT_MODEL)),
            temperature=float(_pick(cfg, "IDSCAN_TEMPERATURE", "temperature", 0.1)),
            sync_url=_pick(cfg, "IDSCAN_SYNC_URL", "sync_url"),
            sync_api_key=_pick(cfg, "IDSCAN_SYNC_API_KEY", "sync_api_key"),
            sync_timeout_s=float(_pick(cfg, "IDSCAN_SYNC_TIMEOUT_S", "sync_timeout_s", 10.0)),
            sync_delay_s=float(_pick(cfg, "IDSCAN_SYNC_DELAY_S", "sync_delay_s", 2.0)),
            max_upload_bytes=int(
                _pick(cfg, "IDSCAN_MAX_UPLOAD_BYTES", "max_upload_bytes", DEFAULT_MAX_UPLOAD_BYTES)
            ),
            log_level=str(_pick(cfg, "IDSCAN_LOG_LEVEL", "log_level", "INFO")).upper(),
        )
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid configuration in {cfg_path}: {exc}") from exc


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
