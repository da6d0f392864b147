import logging
import os
import sys
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

IN_CLUSTER_TOKEN_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/token"
IN_CLUSTER_CA_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"


# =============================================================================
# Section Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration (nested in Config, uses env_nested_delimiter)."""

    level: str = "INFO"
    format: str = "%(asctime)s %(levelname)-8s [%(name)s] %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    @property
    def file(self) -> str | None:
        """Get log file path from FANOUT_LOG_FILE env var."""
        return os.environ.get("FANOUT_LOG_FILE")


class KubeConfig(BaseModel):
    """API server connection.

    An empty ``api_url`` means in-cluster: the URL comes from
    KUBERNETES_SERVICE_HOST/PORT and the service account token and CA are
    read from their mounted files.
    """

    api_url: str = ""
    token: str = ""
    token_file: str = IN_CLUSTER_TOKEN_FILE
    ca_file: str = IN_CLUSTER_CA_FILE
    verify_ssl: bool = True
    namespace: str = ""  # Empty = watch all namespaces
    request_timeout: float = 30.0
    watch_timeout_seconds: int = 300

    def resolved_url(self) -> str:
        if self.api_url:
            return self.api_url.rstrip("/")
        host = os.environ.get("KUBERNETES_SERVICE_HOST")
        port = os.environ.get("KUBERNETES_SERVICE_PORT", "443")
        if not host:
            raise ValueError(
                "kube.api_url is not set and KUBERNETES_SERVICE_HOST is missing "
                "(not running in a cluster?)"
            )
        if ":" in host:  # IPv6 literal
            host = f"[{host}]"
        return f"https://{host}:{port}"

    def resolved_token(self) -> str | None:
        if self.token:
            return self.token
        path = Path(self.token_file)
        if self.token_file and path.exists():
            return path.read_text().strip()
        return None

    def resolved_verify(self) -> bool | str:
        """Value for httpx's ``verify``: a CA bundle path, or a bool."""
        if not self.verify_ssl:
            return False
        if self.ca_file and Path(self.ca_file).exists():
            return self.ca_file
        return True


class ControllerConfig(BaseModel):
    """Reconcile loop tuning (nested in Config, uses env_nested_delimiter)."""

    workers: int | None = Field(default=None, ge=1)  # None = per-reconciler default
    backoff_base_seconds: float = 0.5
    backoff_max_seconds: float = 300.0
    dependency_retry_seconds: float = 10.0
    watch_restart_seconds: float = 5.0
    shutdown_timeout: float = 30.0


class SourcesConfig(BaseModel):
    """ListSource resolution defaults."""

    default_interval_seconds: int = Field(default=300, ge=1)  # When intervalSeconds is omitted
    http_timeout_seconds: float = 30.0
    sql_timeout_seconds: float = 30.0


class ShimConfig(BaseModel):
    """Index-resolution init container."""

    image: str = "ghcr.io/fanout-operator/fanout:latest"  # Must ship the fanout CLI
    default_env_name: str = "ITEM"


# =============================================================================
# Application Configuration
# =============================================================================


class YamlConfigSettingsSource(PydanticBaseSettingsSource):
    """Load settings from YAML file specified by FANOUT_CONFIG_FILE env var."""

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        """Get the value for a field from the YAML config."""
        yaml_data = self._load_yaml_config()
        field_value = yaml_data.get(field_name)
        return field_value, field_name, False

    def __call__(self) -> dict[str, Any]:
        """Return all settings from YAML file."""
        return self._load_yaml_config()

    def _load_yaml_config(self) -> dict[str, Any]:
        config_file = os.environ.get("FANOUT_CONFIG_FILE")
        if config_file:
            path = Path(config_file)
            if path.exists():
                return yaml.safe_load(path.read_text()) or {}
        return {}


class Config(BaseSettings):
    logging: LoggingConfig = LoggingConfig()
    kube: KubeConfig = KubeConfig()
    controller: ControllerConfig = ControllerConfig()
    sources: SourcesConfig = SourcesConfig()
    shim: ShimConfig = ShimConfig()

    model_config = {
        "env_prefix": "FANOUT_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_nested_delimiter": "__",  # Allows FANOUT_KUBE__API_URL override
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources to include YAML config.

        Priority (highest to lowest):
        1. init_settings - values passed to Config()
        2. env_settings - environment variables
        3. dotenv_settings - .env file
        4. yaml_settings - FANOUT_CONFIG_FILE yaml
        5. file_secret_settings - secrets from files
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls),
            file_secret_settings,
        )


def configure_logging(config: LoggingConfig) -> None:
    """Configure Python logging based on config.

    Should be called early in startup so every module logger picks up the
    root handlers.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(config.level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    formatter = logging.Formatter(config.format, datefmt=config.date_format)

    if config.file:
        log_path = Path(config.file).expanduser()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(config.level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    else:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(config.level)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("jsonpath_ng").setLevel(logging.WARNING)

    logging.debug("Logging configured: level=%s, file=%s", config.level, config.file)
