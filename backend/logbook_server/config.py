"""
Configuration management for the Logbook server.

Settings come from environment variables, optionally layered on top of a
key=value config file (see ServerConfig.from_file).

Invariants:
    - All settings have sensible defaults for local development
    - Registration is disabled unless explicitly allowed
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Add new config-file keys to _FILE_KEYS and to the tests
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, replace
from pathlib import Path

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class StorageConfig:
    """Local storage configuration.

    Attributes:
        database_path: SQLite database file
        wal_mode: SQLite WAL mode enabled
        busy_timeout_ms: SQLite busy timeout in milliseconds
    """

    database_path: str = "./data/logbook.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000

    @classmethod
    def from_env(cls) -> StorageConfig:
        """Load configuration from environment variables."""
        return cls(
            database_path=os.getenv("LOGBOOK_DATABASE_PATH", "./data/logbook.db"),
            wal_mode=_env_bool("LOGBOOK_SQLITE_WAL_MODE", "true"),
            busy_timeout_ms=int(os.getenv("LOGBOOK_SQLITE_BUSY_TIMEOUT_MS", "5000")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP server configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins (empty disables CORS)
    """

    host: str = "127.0.0.1"
    port: int = 4000
    cors_origins: tuple[str, ...] = ()

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("LOGBOOK_CORS_ORIGINS", "")
        return cls(
            host=os.getenv("LOGBOOK_HOST", "127.0.0.1"),
            port=int(os.getenv("LOGBOOK_PORT", "4000")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class AuthConfig:
    """Authentication configuration.

    Attributes:
        allow_registration: Whether new accounts may be created
        session_ttl_days: Session lifetime
        cookie_name: Name of the session cookie
        cookie_secure: Set the Secure flag on the session cookie
    """

    allow_registration: bool = False
    session_ttl_days: int = 30
    cookie_name: str = "session_token"
    cookie_secure: bool = False

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60

    @classmethod
    def from_env(cls) -> AuthConfig:
        """Load configuration from environment variables."""
        return cls(
            allow_registration=_env_bool("LOGBOOK_ALLOW_REGISTRATION", "false"),
            session_ttl_days=int(os.getenv("LOGBOOK_SESSION_TTL_DAYS", "30")),
            cookie_name=os.getenv("LOGBOOK_COOKIE_NAME", "session_token"),
            cookie_secure=_env_bool("LOGBOOK_COOKIE_SECURE", "false"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


# Config-file keys and the (section, attribute) they set
_FILE_KEYS = {
    "database_path": ("storage", "database_path"),
    "allow_registration": ("auth", "allow_registration"),
    "session_ttl_days": ("auth", "session_ttl_days"),
    "log_level": ("observability", "log_level"),
    "log_format": ("observability", "log_format"),
}


@dataclass
class ServerConfig:
    """Complete server configuration.

    Attributes:
        storage: Local storage configuration
        http: HTTP server configuration
        auth: Authentication configuration
        observability: Logging configuration
    """

    storage: StorageConfig = field(default_factory=StorageConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            storage=StorageConfig.from_env(),
            http=HttpConfig.from_env(),
            auth=AuthConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    @classmethod
    def from_file(cls, path: str | Path, base: ServerConfig | None = None) -> ServerConfig:
        """Load a key=value config file on top of a base configuration.

        Blank lines and lines starting with '#' are skipped, as are lines
        without '=' and unknown keys. ``listen_address`` takes ``host:port``
        (``:4000`` keeps the current host).

        Args:
            path: Config file path
            base: Starting configuration (defaults if not given)

        Raises:
            OSError: If the file cannot be read
            ValueError: If a value cannot be parsed
        """
        config = base or cls()
        sections = {
            "storage": config.storage,
            "http": config.http,
            "auth": config.auth,
            "observability": config.observability,
        }

        with open(path, encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                key, sep, value = line.partition("=")
                if not sep:
                    continue
                key = key.strip()
                value = value.strip()

                if key == "listen_address":
                    host, _, port = value.rpartition(":")
                    sections["http"] = replace(
                        sections["http"],
                        host=host or sections["http"].host,
                        port=int(port),
                    )
                    continue

                if key not in _FILE_KEYS:
                    logger.debug(f"Ignoring unknown config key: {key}")
                    continue

                section, attr = _FILE_KEYS[key]
                current = getattr(sections[section], attr)
                if isinstance(current, bool):
                    parsed: object = value == "true"
                elif isinstance(current, int):
                    parsed = int(value)
                else:
                    parsed = value
                sections[section] = replace(sections[section], **{attr: parsed})

        loaded = cls(**sections)
        loaded.validate()
        return loaded

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.auth.session_ttl_days <= 0:
            raise ValueError("session_ttl_days must be positive")
        if not 0 < self.http.port < 65536:
            raise ValueError(f"Invalid port: {self.http.port}")
        if self.observability.log_format not in ("json", "text"):
            raise ValueError(
                f"Invalid log format '{self.observability.log_format}'. Must be one of: json, text"
            )

        if not os.path.exists(os.path.dirname(self.storage.database_path) or "."):
            logger.warning(
                f"Database directory does not exist: {self.storage.database_path}. "
                "It will be created on first write."
            )

    def log_config(self) -> None:
        """Log configuration (no secrets)."""
        logger.info(
            "Server configuration loaded",
            extra={
                "database_path": self.storage.database_path,
                "http_bind": f"{self.http.host}:{self.http.port}",
                "allow_registration": self.auth.allow_registration,
                "session_ttl_days": self.auth.session_ttl_days,
                "log_level": self.observability.log_level,
            },
        )
