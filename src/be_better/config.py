"""
Configuration management for the Be Better server and client.

Settings are loaded from multiple sources with a clear priority order:

    1. Environment variables (highest priority) - for containerized deployments
    2. Config file (config/server.ini) - for static deployments
    3. Built-in defaults (lowest priority) - sensible fallbacks

Configuration is loaded once at module import time and cached. The AppConfig
dataclass provides typed access to all settings.

Usage:
    from be_better.config import config

    print(config.server.port)
    print(config.client.server_url)

Environment Variable Mapping:
    BEBETTER_HOST             -> server.host
    BEBETTER_PORT             -> server.port
    BEBETTER_CORS_ORIGINS     -> security.cors_origins
    BEBETTER_SESSION_TTL_MINUTES -> session.ttl_minutes
    BEBETTER_DB_PATH          -> database.path
    BEBETTER_LOG_LEVEL        -> logging.level
    BEBETTER_SERVER_URL       -> client.server_url
    BEBETTER_TIMEOUT          -> client.timeout_seconds
    BEBETTER_STATE_PATH       -> client.state_path
    BEBETTER_SYNC_RETRIES     -> client.sync_retries
"""

import configparser
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

# =============================================================================
# PATH CONFIGURATION
# =============================================================================

# Project root directory (contains src/, config/, data/)
PROJECT_ROOT = Path(__file__).parent.parent.parent

CONFIG_DIR = PROJECT_ROOT / "config"
CONFIG_FILE = CONFIG_DIR / "server.ini"
CONFIG_EXAMPLE = CONFIG_DIR / "server.example.ini"


def _resolve(path: str) -> Path:
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return PROJECT_ROOT / p


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================


@dataclass
class ServerSettings:
    """Network server configuration."""

    host: str = "0.0.0.0"  # nosec B104 - intentional for server binding
    port: int = 3000


@dataclass
class SecuritySettings:
    """CORS configuration for browser clients."""

    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    cors_allow_credentials: bool = True


@dataclass
class SessionSettings:
    """Session management configuration."""

    ttl_minutes: int = 0  # 0 = sessions never expire


@dataclass
class DatabaseSettings:
    """Database configuration."""

    path: str = "data/be_better.db"

    @property
    def absolute_path(self) -> Path:
        """Get absolute path to database file."""
        return _resolve(self.path)


@dataclass
class LoggingSettings:
    """Logging configuration."""

    level: str = "INFO"
    format: Literal["simple", "detailed"] = "detailed"


@dataclass
class ClientSettings:
    """
    Client-side settings: where the API lives and where the local ledger is kept.

    Attributes:
        server_url: Base URL of the API server, without trailing slash.
        timeout_seconds: Timeout applied to every HTTP request.
        state_path: JSON file backing the client's durable storage.
        sync_retries: Extra attempts for a failed sync request (0 = none).
        retry_backoff_seconds: Base delay for exponential backoff between retries.
    """

    server_url: str = "http://localhost:3000"
    timeout_seconds: float = 10.0
    state_path: str = "~/.be_better/state.json"
    sync_retries: int = 0
    retry_backoff_seconds: float = 0.5

    @property
    def absolute_state_path(self) -> Path:
        """Get absolute path to the client state file."""
        return _resolve(self.state_path)


@dataclass
class AppConfig:
    """
    Complete application configuration.

    Aggregates all settings sections. Access via the module-level `config`
    singleton.
    """

    server: ServerSettings = field(default_factory=ServerSettings)
    security: SecuritySettings = field(default_factory=SecuritySettings)
    session: SessionSettings = field(default_factory=SessionSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    client: ClientSettings = field(default_factory=ClientSettings)


# =============================================================================
# CONFIGURATION LOADING
# =============================================================================


def _parse_bool(value: str) -> bool:
    """Parse a string value to boolean."""
    return value.lower() in ("true", "yes", "1", "on", "enabled")


def _parse_list(value: str) -> list[str]:
    """Parse a comma-separated string to list, stripping whitespace."""
    if not value or value.strip() == "":
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def _load_from_ini(parser: configparser.ConfigParser, cfg: AppConfig) -> None:
    """Load configuration from parsed INI file into AppConfig."""
    if parser.has_section("server"):
        if parser.has_option("server", "host"):
            cfg.server.host = parser.get("server", "host")
        if parser.has_option("server", "port"):
            cfg.server.port = parser.getint("server", "port")

    if parser.has_section("security"):
        if parser.has_option("security", "cors_origins"):
            cfg.security.cors_origins = _parse_list(parser.get("security", "cors_origins"))
        if parser.has_option("security", "cors_allow_credentials"):
            cfg.security.cors_allow_credentials = _parse_bool(
                parser.get("security", "cors_allow_credentials")
            )

    if parser.has_section("session"):
        if parser.has_option("session", "ttl_minutes"):
            cfg.session.ttl_minutes = parser.getint("session", "ttl_minutes")

    if parser.has_section("database"):
        if parser.has_option("database", "path"):
            cfg.database.path = parser.get("database", "path")

    if parser.has_section("logging"):
        if parser.has_option("logging", "level"):
            cfg.logging.level = parser.get("logging", "level").upper()
        if parser.has_option("logging", "format"):
            val = parser.get("logging", "format").lower()
            if val in ("simple", "detailed"):
                cfg.logging.format = val  # type: ignore[assignment]

    if parser.has_section("client"):
        if parser.has_option("client", "server_url"):
            cfg.client.server_url = parser.get("client", "server_url").rstrip("/")
        if parser.has_option("client", "timeout_seconds"):
            cfg.client.timeout_seconds = parser.getfloat("client", "timeout_seconds")
        if parser.has_option("client", "state_path"):
            cfg.client.state_path = parser.get("client", "state_path")
        if parser.has_option("client", "sync_retries"):
            cfg.client.sync_retries = parser.getint("client", "sync_retries")
        if parser.has_option("client", "retry_backoff_seconds"):
            cfg.client.retry_backoff_seconds = parser.getfloat("client", "retry_backoff_seconds")


def _apply_env_overrides(cfg: AppConfig) -> None:
    """Apply environment variable overrides to configuration."""
    if env_host := os.getenv("BEBETTER_HOST"):
        cfg.server.host = env_host
    if env_port := os.getenv("BEBETTER_PORT"):
        cfg.server.port = int(env_port)

    if env_cors := os.getenv("BEBETTER_CORS_ORIGINS"):
        cfg.security.cors_origins = _parse_list(env_cors)

    if env_ttl := os.getenv("BEBETTER_SESSION_TTL_MINUTES"):
        cfg.session.ttl_minutes = int(env_ttl)

    if env_db := os.getenv("BEBETTER_DB_PATH"):
        cfg.database.path = env_db

    if env_log := os.getenv("BEBETTER_LOG_LEVEL"):
        cfg.logging.level = env_log.upper()

    if env_url := os.getenv("BEBETTER_SERVER_URL"):
        cfg.client.server_url = env_url.rstrip("/")
    if env_timeout := os.getenv("BEBETTER_TIMEOUT"):
        cfg.client.timeout_seconds = float(env_timeout)
    if env_state := os.getenv("BEBETTER_STATE_PATH"):
        cfg.client.state_path = env_state
    if env_retries := os.getenv("BEBETTER_SYNC_RETRIES"):
        cfg.client.sync_retries = int(env_retries)


def load_config() -> AppConfig:
    """
    Load configuration from all sources with proper priority.

    Priority (highest wins):
        1. Environment variables
        2. config/server.ini
        3. config/server.example.ini (fallback for development)
        4. Built-in defaults

    Returns:
        AppConfig: Fully populated configuration object.
    """
    cfg = AppConfig()

    config_file = None
    if CONFIG_FILE.exists():
        config_file = CONFIG_FILE
    elif CONFIG_EXAMPLE.exists():
        config_file = CONFIG_EXAMPLE

    if config_file:
        parser = configparser.ConfigParser()
        parser.read(config_file)
        _load_from_ini(parser, cfg)

    _apply_env_overrides(cfg)

    return cfg


def reload_config() -> "AppConfig":
    """
    Reload configuration from disk and environment.

    This updates the module-level `config` singleton. Modules that copied
    values out of it at import time keep their old values.

    Returns:
        AppConfig: The newly loaded configuration.
    """
    global config
    config = load_config()
    return config


# =============================================================================
# MODULE-LEVEL SINGLETON
# =============================================================================

config = load_config()


# =============================================================================
# TEST HELPERS
# =============================================================================


class use_test_database:
    """
    Context manager for using a temporary test database.

    Usage:
        from be_better.config import use_test_database

        def test_something(tmp_path):
            with use_test_database(tmp_path / "test.db"):
                schema.init_database()

    Args:
        db_path: Path to the test database file
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self.original_path: str | None = None

    def __enter__(self) -> Path:
        """Point the database settings at the test path."""
        self.original_path = config.database.path
        config.database.path = str(self.db_path)
        return self.db_path

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Restore original database path."""
        if self.original_path is not None:
            config.database.path = self.original_path
        return None
