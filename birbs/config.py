"""
Configuration Management

Centralized configuration from environment variables with sensible defaults.
Built once at startup and handed to each component explicitly.
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Mapping, Optional

from .core.errors import ConfigurationError
from .core.timeresolve import DEFAULT_ZONE, load_zone

# Setting attribute -> environment variable
ENV_NAMES = {
    "database": "BIRDS_DB",
    "log_filter": "BIRBS_LOG",
    "log_json": "BIRBS_LOG_JSON",
    "flickr_api_key": "FLICKR_API_KEY",
    "influx_host": "INFLUXDB_HOST",
    "influx_org": "INFLUXDB_ORG",
    "influx_token": "INFLUXDB_TOKEN",
    "influx_bucket": "INFLUXDB_BUCKET",
    "timezone": "BIRBS_TIMEZONE",
    "media_base_url": "MEDIA_BASE_URL",
    "host": "HOST",
    "port": "PORT",
    "allowed_origins": "ALLOWED_ORIGINS",
    "probe_timeout": "PROBE_TIMEOUT",
    "photo_cache_dir": "PHOTO_CACHE_DIR",
}


@dataclass(frozen=True)
class Settings:
    """Application configuration."""

    # Detections store
    database: Optional[Path] = None

    # Logging
    log_filter: str = "info"
    log_json: bool = False

    # Image search
    flickr_api_key: Optional[str] = None
    photo_cache_dir: Path = Path(".photo-cache")

    # Time-series sink
    influx_host: Optional[str] = None
    influx_org: Optional[str] = None
    influx_token: Optional[str] = None
    influx_bucket: str = "home"

    # Detections are recorded in this zone
    timezone: str = DEFAULT_ZONE

    # Station web server holding recordings and spectrograms
    media_base_url: str = "http://192.168.0.164"
    probe_timeout: float = 5.0

    # Server
    host: str = "0.0.0.0"
    port: int = 3100
    allowed_origins: tuple = field(default=("*",))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Read settings from the environment.

        Args:
            environ: Mapping to read from (defaults to ``os.environ``)

        Raises:
            ConfigurationError: A value is present but malformed
        """
        env = os.environ if environ is None else environ

        def get(name: str) -> Optional[str]:
            value = env.get(ENV_NAMES[name], "").strip()
            return value or None

        values: dict = {}
        for name in ("log_filter", "flickr_api_key", "influx_host", "influx_org",
                     "influx_token", "influx_bucket", "timezone", "host"):
            if get(name) is not None:
                values[name] = get(name)

        if get("database"):
            values["database"] = Path(get("database"))
        if get("photo_cache_dir"):
            values["photo_cache_dir"] = Path(get("photo_cache_dir"))
        if get("media_base_url"):
            values["media_base_url"] = get("media_base_url").rstrip("/")
        if get("log_json"):
            values["log_json"] = get("log_json").lower() in ("1", "true", "yes")
        if get("allowed_origins"):
            values["allowed_origins"] = tuple(
                origin.strip() for origin in get("allowed_origins").split(",") if origin.strip()
            )

        try:
            if get("port"):
                values["port"] = int(get("port"))
            if get("probe_timeout"):
                values["probe_timeout"] = float(get("probe_timeout"))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid numeric setting: {exc}") from exc

        settings = cls(**values)
        load_zone(settings.timezone)
        return settings

    def require(self, *names: str) -> "Settings":
        """Raise ``ConfigurationError`` listing every unset required value."""
        known = {f.name for f in fields(self)}
        missing = []
        for name in names:
            if name not in known:
                raise ValueError(f"Unknown setting: {name}")
            if getattr(self, name) in (None, ""):
                missing.append(ENV_NAMES[name])
        if missing:
            raise ConfigurationError(
                "Missing required environment variable(s): " + ", ".join(missing)
            )
        return self


def get_settings(*required: str) -> Settings:
    """Get validated settings from the process environment."""
    return Settings.from_env().require(*required)
