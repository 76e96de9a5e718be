"""Exceptions raised while resolving and using remote connections."""


class DeployConnectionError(Exception):
    """Base class for every error raised by this package."""


class ConfigurationError(DeployConnectionError):
    """The request does not match the configured environments."""


class MissingCredentialsException(DeployConnectionError):
    """A server definition lacks a host, a username or any way to authenticate."""

    def __init__(
        self,
        name: str,
        server_index: int,
        missing: list[str],
        present: list[str],
    ) -> None:
        self.name = name
        self.server_index = server_index
        self.missing = missing
        self.present = present
        super().__init__(
            f"Missing one or more required credentials for connection "
            f"'{name}' (server {server_index}): {', '.join(missing)}. "
            f"With credentials: {', '.join(present) or 'none'}"
        )


class TransportError(DeployConnectionError):
    """The transport could not open or use a session."""


class ConnectionException(DeployConnectionError):
    """Credentials were valid but the remote server could not be reached or used."""

    def __init__(self, name: str, server_index: int, message: str) -> None:
        self.name = name
        self.server_index = server_index
        super().__init__(f"Connection '{name}' (server {server_index}): {message}")
