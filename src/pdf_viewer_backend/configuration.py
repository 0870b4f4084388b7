from __future__ import annotations

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dotenv import load_dotenv
from omegaconf import DictConfig, OmegaConf

from .models import ConfigMetadata

load_dotenv()

_HERE = Path(__file__).resolve()
CONFIG_PATH = _HERE.parent / "config/config.yaml"

# Environment variable -> dotted config key
ENV_OVERRIDES: Dict[str, str] = {
    "PDF_VIEWER_GATEWAY_URL": "gateway.base_url",
    "PDF_VIEWER_GATEWAY_TIMEOUT": "gateway.timeout_s",
    "PDF_VIEWER_LOG_LEVEL": "logging.level",
    "PDF_VIEWER_MAX_FULL_PAGE_WORKERS": "render.max_full_page_workers",
}

NOTES = {
    "viewer.thumbnail_scale": "Thumbnails ignore the zoom level and always render at this scale.",
    "render.max_full_page_workers": "Upper bound on concurrent full-page renders per session.",
    "document.retain_source": "Export needs the original bytes; disabling this makes export fail.",
    "gateway.base_url": "Persistence service exposing /download/{id} and /upload?id={id}.",
}

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"


@lru_cache(maxsize=1)
def _load_default_config() -> DictConfig:
    if not CONFIG_PATH.exists():
        raise FileNotFoundError(f"Default config not found at {CONFIG_PATH}")
    return OmegaConf.load(CONFIG_PATH)


def get_default_config_container(resolve: bool = False) -> Dict[str, Any]:
    config = _load_default_config()
    return OmegaConf.to_container(config, resolve=resolve, enum_to_str=True)  # type: ignore[return-value]


def _env_dotlist() -> list[str]:
    return [f"{key}={os.environ[name]}" for name, key in ENV_OVERRIDES.items() if os.environ.get(name)]


def build_config_metadata() -> ConfigMetadata:
    return ConfigMetadata(
        defaults=get_default_config_container(resolve=False),
        environment=sorted(ENV_OVERRIDES),
        notes=NOTES,
    )


def make_runtime_config(overrides: Optional[Dict[str, Any]] = None) -> DictConfig:
    """Merge defaults, environment overrides and explicit overrides (in that order)."""
    base_container = OmegaConf.to_container(_load_default_config(), resolve=False)
    base = OmegaConf.create(base_container)
    OmegaConf.set_struct(base, True)

    env_config = OmegaConf.from_dotlist(_env_dotlist())
    cli_config = OmegaConf.create(overrides or {})
    merged = DictConfig(OmegaConf.merge(base, env_config, cli_config))
    return merged


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger("pdf_viewer_backend")
    root.setLevel(level.upper())
    if root.handlers:
        return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
