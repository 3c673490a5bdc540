"""
Configuration management for proctl

Handles loading and validation of configuration from JSON files and environment variables.
"""

import getpass
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
_SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


def _current_user() -> str:
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "user"


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _as_list(value: Any) -> list[str]:
    if isinstance(value, list):
        return [str(item) for item in value]
    return [item.strip() for item in str(value).split(",") if item.strip()]


def parse_size(size: str) -> int:
    """Convert a size like '10MB' to bytes."""
    text = size.strip().upper()
    for unit, factor in _SIZE_UNITS.items():
        if text.endswith(unit):
            return int(float(text[: -len(unit)]) * factor)
    return int(text)


@dataclass
class ServerConfig:
    """Process control service configuration"""
    host: str = "127.0.0.1"
    port: int = 2000
    display_name: str = field(default_factory=_current_user)
    include_system: bool = True
    stop_timeout: float = 5.0
    cors_origins: list[str] = field(default_factory=lambda: ["*"])


@dataclass
class ClientConfig:
    """Terminal client configuration"""
    api_url: str = "http://localhost:2000"
    request_timeout: float = 5.0


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: str | None = None
    max_size: str = "10MB"
    backup_count: int = 5


@dataclass
class Config:
    """Main configuration class"""
    server: ServerConfig = field(default_factory=ServerConfig)
    client: ClientConfig = field(default_factory=ClientConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: Path | None = None) -> "Config":
        """Load configuration from an optional JSON file with environment variable override"""

        data: dict[str, Any] = {}
        if config_path is not None:
            env_file = config_path.parent / ".env"
            with open(config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            env_file = Path.cwd() / ".env"

        if env_file.exists():
            load_dotenv(env_file)

        server = data.get("server", {})
        client = data.get("client", {})
        log = data.get("logging", {})
        defaults = cls()

        server_config = ServerConfig(
            host=os.getenv("PROCTL_HOST", server.get("host", defaults.server.host)),
            port=int(os.getenv("PROCTL_PORT", server.get("port", defaults.server.port))),
            display_name=os.getenv(
                "PROCTL_DISPLAY_NAME", server.get("display_name", defaults.server.display_name)
            ),
            include_system=_as_bool(
                os.getenv("PROCTL_INCLUDE_SYSTEM", server.get("include_system", defaults.server.include_system))
            ),
            stop_timeout=float(
                os.getenv("PROCTL_STOP_TIMEOUT", server.get("stop_timeout", defaults.server.stop_timeout))
            ),
            cors_origins=_as_list(
                os.getenv("PROCTL_CORS_ORIGINS", server.get("cors_origins", defaults.server.cors_origins))
            ),
        )

        client_config = ClientConfig(
            api_url=os.getenv("PROCTL_API_URL", client.get("api_url", defaults.client.api_url)),
            request_timeout=float(
                os.getenv("PROCTL_REQUEST_TIMEOUT", client.get("request_timeout", defaults.client.request_timeout))
            ),
        )

        logging_config = LoggingConfig(
            level=os.getenv("PROCTL_LOG_LEVEL", log.get("level", defaults.logging.level)).upper(),
            file=os.getenv("PROCTL_LOG_FILE", log.get("file", defaults.logging.file)),
            max_size=str(log.get("max_size", defaults.logging.max_size)),
            backup_count=int(log.get("backup_count", defaults.logging.backup_count)),
        )

        return cls(server=server_config, client=client_config, logging=logging_config)

    def validate(self) -> bool:
        """Validate configuration values"""
        errors = []

        if not 0 < self.server.port < 65536:
            errors.append("Server port must be between 1 and 65535")

        if self.server.stop_timeout <= 0:
            errors.append("Stop timeout must be positive")

        if not self.server.display_name:
            errors.append("Display name is required")

        if not self.client.api_url:
            errors.append("API URL is required")

        if self.client.request_timeout <= 0:
            errors.append("Request timeout must be positive")

        if self.logging.level.upper() not in _LOG_LEVELS:
            errors.append(f"Unknown log level: {self.logging.level}")

        try:
            parse_size(self.logging.max_size)
        except ValueError:
            errors.append(f"Invalid log max size: {self.logging.max_size}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

        return True
