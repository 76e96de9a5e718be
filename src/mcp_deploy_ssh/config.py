"""Configuration for MCP Deploy SSH.

Named environments are read from a JSON file::

    {
        "default": "production",
        "connections": {
            "production": {
                "username": "deploy",
                "key": "~/.ssh/id_ed25519",
                "servers": [
                    {"host": "web1.example.com", "roles": ["web"]},
                    {"host": "db1.example.com", "roles": ["db"]}
                ]
            }
        }
    }
"""

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigurationError
from .types import EnvironmentConfig

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".mcp-deploy-ssh"
CONNECTIONS_FILE = CONFIG_DIR / "connections.json"
CREDENTIALS_FILE = CONFIG_DIR / "credentials.enc"
SALT_FILE = CONFIG_DIR / "salt"

CONFIG_ENV = "MCP_DEPLOY_SSH_CONFIG"
MASTER_PASSWORD_ENV = "MCP_DEPLOY_SSH_MASTER_PASSWORD"
CONNECT_TIMEOUT_ENV = "MCP_DEPLOY_SSH_CONNECT_TIMEOUT"

CONNECT_TIMEOUT = 10.0


class DeployConfig(BaseModel):
    """Top-level configuration file."""

    default: str | None = None
    connections: dict[str, EnvironmentConfig] = Field(default_factory=dict)


def get_connect_timeout() -> float:
    """Connect timeout in seconds, overridable from the environment."""
    value = os.environ.get(CONNECT_TIMEOUT_ENV)
    if not value:
        return CONNECT_TIMEOUT
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{CONNECT_TIMEOUT_ENV} must be a number, got {value!r}") from e


def get_config_path() -> Path:
    return Path(os.environ.get(CONFIG_ENV) or CONNECTIONS_FILE).expanduser()


def load_config(path: Path | None = None) -> DeployConfig:
    """Load named environments from a JSON file.

    A missing file yields an empty configuration.

    Raises:
        ConfigurationError: If the file is not valid JSON or does not match
            the expected shape.
    """
    path = path or get_config_path()
    if not path.exists():
        logger.warning(f"No connections file at {path}")
        return DeployConfig()

    try:
        data = json.loads(path.read_text())
        config = DeployConfig.model_validate(data)
    except (json.JSONDecodeError, ValidationError) as e:
        raise ConfigurationError(f"Invalid connections file {path}: {e}") from e

    logger.info(f"Loaded {len(config.connections)} environments from {path}")
    return config
