"""Configuration for techwire.

Settings are merged from, lowest priority first:
  1. ~/.techwire.yaml  (user-level)
  2. ./techwire.yaml   (project-level, overrides user-level)
  3. TECHWIRE_* environment variables
  4. explicit overrides (CLI flags)

API credentials are read from their conventional variables
(GEMINI_API_KEY, OPENAI_API_KEY, UNSPLASH_ACCESS_KEY, GITHUB_TOKEN) unless
set explicitly.

Example config file:

    # ~/.techwire.yaml
    cache_dir: ~/.cache/techwire
    cache_ttl: 7d          # or cache_ttl_days: 7
    sources: hackernews,github,lobsters
    subreddits: [programming, rust]
    closeness: 5
"""
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml

from techwire.sources import SOURCE_KEYS
from techwire.sources.reddit import DEFAULT_SUBREDDITS
from techwire.utils import parse_since_seconds

logger = logging.getLogger(__name__)

ENV_PREFIX = "TECHWIRE_"

CREDENTIAL_ENV = {
    "gemini_api_key": "GEMINI_API_KEY",
    "openai_api_key": "OPENAI_API_KEY",
    "unsplash_access_key": "UNSPLASH_ACCESS_KEY",
    "github_token": "GITHUB_TOKEN",
}

_INT_FIELDS = {"limit"}
_FLOAT_FIELDS = {"cache_ttl_days", "provider_timeout", "source_timeout", "closeness", "rate_limit_interval"}
_LIST_FIELDS = {"sources", "subreddits"}


@dataclass
class Settings:
    cache_dir: str = "~/.cache/techwire"
    cache_ttl_days: float = 7
    provider_timeout: float = 15.0
    source_timeout: float = 30.0
    closeness: float = 5
    limit: int = 20
    sources: List[str] = field(default_factory=lambda: list(SOURCE_KEYS))
    subreddits: List[str] = field(default_factory=lambda: list(DEFAULT_SUBREDDITS))
    github_language: str = ""
    placeholder_image: str = "/placeholder.svg"
    image_url_prefix: str = ""
    user_agent: str = ""
    rate_limit_interval: float = 0.5
    gemini_api_key: str = ""
    openai_api_key: str = ""
    unsplash_access_key: str = ""
    github_token: str = ""

    @property
    def cache_path(self) -> Path:
        return Path(self.cache_dir).expanduser()

    @property
    def image_dir(self) -> Path:
        return self.cache_path / "images"

    @property
    def summary_dir(self) -> Path:
        return self.cache_path / "summaries"

    @property
    def cache_ttl(self) -> float:
        """TTL in seconds."""
        return self.cache_ttl_days * 24 * 60 * 60

    def redacted(self) -> Dict[str, Any]:
        """All settings, with credentials reduced to set/unset."""
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in CREDENTIAL_ENV:
                value = "set" if value else "unset"
            out[f.name] = value
        return out


def _coerce(key: str, value: Any) -> Any:
    """Coerce a raw file/env value to the field's type. Raises ValueError."""
    if key in _LIST_FIELDS:
        if isinstance(value, str):
            return [v.strip() for v in value.split(",") if v.strip()]
        return [str(v) for v in value]
    if key in _INT_FIELDS:
        return int(value)
    if key in _FLOAT_FIELDS:
        return float(value)
    return "" if value is None else str(value)


def default_config_paths() -> List[Path]:
    return [
        Path.home() / ".techwire.yaml",
        Path.home() / ".techwire.yml",
        Path("techwire.yaml"),
        Path("techwire.yml"),
    ]


def load_config_files(paths: Optional[Sequence[Path]] = None) -> Dict[str, Any]:
    """Load config from YAML files, later files overriding earlier ones."""
    config: Dict[str, Any] = {}
    for p in paths if paths is not None else default_config_paths():
        if not p.is_file():
            continue
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"[Config] Failed to load {p}: {e}")
            continue
        if not isinstance(data, dict):
            logger.warning(f"[Config] Ignoring {p}: top level is not a mapping")
            continue
        # Normalize keys: dashes -> underscores
        config.update({str(k).replace("-", "_"): v for k, v in data.items()})
        logger.debug(f"[Config] Loaded {p}")
    return config


def load_env_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Load config from TECHWIRE_* variables plus the credential variables.

    Maps TECHWIRE_LIMIT=30 -> limit=30, TECHWIRE_SOURCES=reddit,github -> sources=[...].
    """
    environ = os.environ if environ is None else environ
    config: Dict[str, Any] = {}
    for name, env_var in CREDENTIAL_ENV.items():
        if environ.get(env_var):
            config[name] = environ[env_var]
    for key, value in environ.items():
        if key.startswith(ENV_PREFIX):
            config[key[len(ENV_PREFIX):].lower()] = value
    return config


def load_settings(
    overrides: Optional[Mapping[str, Any]] = None,
    paths: Optional[Sequence[Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Build ``Settings``. Priority: overrides > env vars > project file > user file."""
    merged = load_config_files(paths)
    merged.update(load_env_config(environ))
    merged.update({k: v for k, v in (overrides or {}).items() if v is not None})

    # "12h" / "7d" style TTL; wins over cache_ttl_days from the same merge
    ttl = merged.pop("cache_ttl", None)
    if ttl is not None:
        try:
            merged["cache_ttl_days"] = parse_since_seconds(str(ttl)) / 86400
        except ValueError as e:
            logger.warning(f"[Config] Invalid cache_ttl {ttl!r}: {e}")

    known = {f.name for f in fields(Settings)}
    values: Dict[str, Any] = {}
    for key, value in merged.items():
        if key not in known:
            logger.debug(f"[Config] Ignoring unknown setting {key!r}")
            continue
        try:
            values[key] = _coerce(key, value)
        except (TypeError, ValueError):
            logger.warning(f"[Config] Invalid value for {key}: {value!r}")
    return Settings(**values)
