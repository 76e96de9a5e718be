"""Named environments and the server currently selected for each."""

import logging
from typing import Any, Mapping

from pydantic import ValidationError

from .credentials import CredentialManager, credential_key
from .exceptions import ConfigurationError
from .types import EnvironmentConfig, ServerDefinition

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Normalized view of the user's connection configuration.

    Every environment is stored as a list of server definitions, whether it
    was written as a single definition or with a ``servers`` list.
    """

    def __init__(
        self,
        connections: Mapping[str, Any] | None = None,
        default: str | None = None,
        credential_manager: CredentialManager | None = None,
    ) -> None:
        self._servers: dict[str, list[ServerDefinition]] = {}
        self._default: str | None = None
        self._selected: dict[str, int] = {}
        self._credential_manager = credential_manager
        self.swap(connections or {}, default)

    def swap(self, connections: Mapping[str, Any], default: str | None = None) -> None:
        """Replace the configuration. Selected server indices are kept."""
        servers = {}
        for name, raw in connections.items():
            if not name:
                raise ConfigurationError("Connection names cannot be empty")
            try:
                environment = (
                    raw if isinstance(raw, EnvironmentConfig)
                    else EnvironmentConfig.model_validate(raw or {})
                )
            except ValidationError as e:
                raise ConfigurationError(f"Invalid configuration for connection '{name}': {e}") from e
            servers[name] = environment.server_definitions()

        self._servers = servers
        self._default = default
        logger.debug(f"Registry holds {len(servers)} connections")

    @property
    def names(self) -> list[str]:
        return list(self._servers)

    @property
    def default_name(self) -> str:
        if self._default:
            return self._default
        if not self._servers:
            raise ConfigurationError("No connections are configured")
        return next(iter(self._servers))

    def set_connection(self, name: str, index: int = 0) -> None:
        """Select the server used when ``name`` is resolved without an index.

        The index is checked against the server list at resolution time.
        """
        self._selected[name] = index

    def get_connection_index(self, name: str) -> int:
        return self._selected.get(name, 0)

    def get_servers(self, name: str) -> list[ServerDefinition]:
        try:
            return self._servers[name]
        except KeyError:
            raise ConfigurationError(f"Unknown connection '{name}'") from None

    def get_server_definition(self, name: str, index: int) -> ServerDefinition:
        """Return the definition for one server, gaps filled from stored credentials.

        Raises:
            ConfigurationError: If the name is unknown or the index is out of range.
        """
        servers = self.get_servers(name)
        if not 0 <= index < len(servers):
            raise ConfigurationError(
                f"Connection '{name}' has {len(servers)} server(s), no server {index}"
            )

        definition = servers[index]
        manager = self._credential_manager
        if manager is None or not manager.initialized:
            return definition
        filled = manager.fill(credential_key(name, index), definition.supplied())
        return ServerDefinition.model_validate(filled)
