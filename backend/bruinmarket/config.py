"""BruinMarket application configuration.

Loads settings from two YAML files:
  * bruinmarket.settings.yaml: non-secret configuration
  * bruinmarket.secrets.yaml: secrets (never committed)

Both files are optional; missing files fall back to model defaults.
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

SETTINGS_FILE = Path("bruinmarket.settings.yaml")
SECRETS_FILE  = Path("bruinmarket.secrets.yaml")

IN_MEMORY_DB = ":memory:"


def _load_yaml(path: Path) -> Dict[str, Any]:
    if not path.exists():
        logger.warning("Config file not found: %s", path)
        return {}
    with path.open(encoding="utf-8") as fh:
        return yaml.safe_load(fh) or {}


# ---------------------------------------------------------------------------
# Secrets models
# ---------------------------------------------------------------------------


class JWTSecrets(BaseModel):
    secret_key: str = "change-me-in-production"
    algorithm:  str = "HS256"


class Secrets(BaseModel):
    jwt: JWTSecrets = Field(default_factory=JWTSecrets)


# ---------------------------------------------------------------------------
# Settings models
# ---------------------------------------------------------------------------


class ServerSettings(BaseModel):
    host:      str = "0.0.0.0"
    port:      int = 8080
    log_level: str = "info"
    allowed_origins: List[str] = Field(default_factory=lambda: ["*"])


class HubSettings(BaseModel):
    """Realtime hub tuning.

    ``evict_superseded`` decides what happens when a user reconnects while an
    older session is still registered: True closes the old session right away,
    False leaves it to fail on its next network operation.
    """
    outbound_queue_size:              int   = 256
    evict_superseded:                 bool  = True
    drain_timeout_seconds:            float = 5.0
    notify_sender_on_persist_failure: bool  = False

    @field_validator("outbound_queue_size")
    @classmethod
    def _positive_queue(cls, value: int) -> int:
        if value < 1:
            raise ValueError("outbound_queue_size must be at least 1")
        return value


class DatabaseSettings(BaseModel):
    path: str = "bruinmarket.duckdb"


class AuthSettings(BaseModel):
    # 7 days
    token_expire_minutes: int = 10080


class AppSettings(BaseModel):
    server:   ServerSettings   = Field(default_factory=ServerSettings)
    hub:      HubSettings      = Field(default_factory=HubSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    auth:     AuthSettings     = Field(default_factory=AuthSettings)
    secrets:  Secrets          = Field(default_factory=Secrets)


# ---------------------------------------------------------------------------
# Public loader
# ---------------------------------------------------------------------------


def _resolve_db_path(settings: AppSettings, base_dir: Path) -> None:
    raw = settings.database.path
    if raw == IN_MEMORY_DB:
        return
    path = Path(raw)
    if not path.is_absolute():
        settings.database.path = str(base_dir / path)


def load_config(
    settings_path: Optional[Path] = None,
    secrets_path: Optional[Path] = None,
) -> AppSettings:
    """Load and merge settings + secrets into a single *AppSettings* object."""
    settings_path = Path(settings_path) if settings_path else SETTINGS_FILE
    if secrets_path is None:
        secrets_path = settings_path.parent / SECRETS_FILE.name
    settings_data = _load_yaml(settings_path)
    secrets_data  = _load_yaml(Path(secrets_path))

    # Merge: secrets live under the "secrets" key in AppSettings
    settings_data["secrets"] = secrets_data

    app_settings = AppSettings(**settings_data)
    _resolve_db_path(app_settings, settings_path.parent.resolve())
    logger.info(
        "Settings loaded (server=%s:%s, database=%s, queue_size=%d, evict_superseded=%s)",
        app_settings.server.host,
        app_settings.server.port,
        app_settings.database.path,
        app_settings.hub.outbound_queue_size,
        app_settings.hub.evict_superseded,
    )
    return app_settings


_config: Optional[AppSettings] = None


def get_config() -> AppSettings:
    """Return the process-wide settings, loading them on first use."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: Optional[AppSettings]) -> None:
    """Replace (or clear, with None) the process-wide settings."""
    global _config
    _config = config
