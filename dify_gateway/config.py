"""Gateway configuration: YAML file first, environment variables as fallback."""
import logging
import os
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from dify_gateway.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"
DEFAULT_MODEL_NAME = "default-model"
DEFAULT_BACKEND_TIMEOUT = 30.0


class GatewayConfig(BaseModel):
    """Resolved gateway settings. Read-only once loaded."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    application_name: str = "default-app"
    dify_api_endpoint: str = ""
    cors_origin: str = "*"
    models: dict[str, str] = {}
    backend_timeout: float = DEFAULT_BACKEND_TIMEOUT

    @field_validator("dify_api_endpoint")
    @classmethod
    def validate_endpoint_url(cls, v: str) -> str:
        """Validate endpoint URL format."""
        v = v.strip()
        if v and not v.startswith(("http://", "https://")):
            raise ValueError("dify_api_endpoint must start with http:// or https://")
        return v

    def validate_for_serving(self) -> None:
        """
        Raise ConfigurationError unless requests can be served with this config.

        Blank values are legal defaults when loading (nothing set in file or env),
        so these checks run when the app is created rather than in field validators.
        """
        if not self.dify_api_endpoint.strip():
            raise ConfigurationError("dify_api_endpoint must not be blank")
        if not any(name.strip() for name in self.models):
            raise ConfigurationError("at least one model must be configured")
        if self.backend_timeout <= 0:
            raise ConfigurationError("backend_timeout must be positive")


def _read_yaml(path: Path) -> Optional[dict]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError:
        return None
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{path} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")
    return data


def _from_env() -> GatewayConfig:
    load_dotenv()
    timeout = os.getenv("BACKEND_TIMEOUT", str(DEFAULT_BACKEND_TIMEOUT))
    return GatewayConfig(
        application_name=os.getenv("APPLICATION_NAME", "default-app"),
        dify_api_endpoint=os.getenv("DIFY_API_ENDPOINT", ""),
        cors_origin=os.getenv("CORS_ORIGIN", "*"),
        models={DEFAULT_MODEL_NAME: os.getenv("DIFY_API_KEY", "")},
        backend_timeout=timeout,
    )


def load_config(path: Optional[str | Path] = None) -> GatewayConfig:
    """
    Load configuration from a YAML file.
    Falls back to environment variables (and a .env file) when the file is missing.
    Raises ConfigurationError when the values cannot be parsed.
    """
    config_path = Path(path or os.getenv("CONFIG_PATH", DEFAULT_CONFIG_PATH))

    data = _read_yaml(config_path)
    try:
        if data is not None:
            logger.info(f"Loaded configuration from {config_path}")
            return GatewayConfig.model_validate(data)

        logger.info(f"No config file at {config_path}, using environment variables")
        return _from_env()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e
