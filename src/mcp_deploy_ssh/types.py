"""Type definitions for MCP Deploy SSH."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_PORT = 22

CREDENTIAL_FIELDS = ("host", "username", "password", "key")


class AuthType(str, Enum):
    PASSWORD = "password"
    KEY = "key"


class ServerDefinition(BaseModel):
    """Raw credentials and roles for one physical server, as the user wrote them."""

    model_config = ConfigDict(extra="ignore")

    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: str | None = None
    key: str | None = None
    keyphrase: str | None = None
    roles: list[str] = Field(default_factory=list)

    @field_validator("host", "username", "password", "key", "keyphrase", mode="before")
    @classmethod
    def blank_is_missing(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def supplied(self) -> dict:
        """Fields that were actually given a value."""
        return self.model_dump(exclude_none=True, exclude_defaults=True)


class EnvironmentConfig(ServerDefinition):
    """A named environment: shared defaults plus an optional list of servers."""

    servers: list[ServerDefinition] = Field(default_factory=list)

    def server_definitions(self) -> list[ServerDefinition]:
        """Normalize to a list where each server inherits the shared keys."""
        shared = self.model_dump(exclude={"servers"}, exclude_none=True, exclude_defaults=True)
        if not self.servers:
            return [ServerDefinition.model_validate(shared)]
        return [
            ServerDefinition.model_validate({**shared, **server.supplied()})
            for server in self.servers
        ]


class Connection(BaseModel):
    """A resolved, validated remote target."""

    model_config = ConfigDict(frozen=True)

    name: str
    server_index: int = 0
    host: str
    port: int = DEFAULT_PORT
    username: str
    password: str | None = None
    key: str | None = None
    keyphrase: str | None = None
    roles: tuple[str, ...] = ()

    @classmethod
    def from_definition(
        cls, name: str, server_index: int, definition: ServerDefinition
    ) -> "Connection":
        """Build a Connection from an already validated definition."""
        host, port = split_host_port(definition.host or "")
        return cls(
            name=name,
            server_index=server_index,
            host=host,
            port=definition.port or port or DEFAULT_PORT,
            username=definition.username,
            password=definition.password,
            key=definition.key,
            keyphrase=definition.keyphrase,
            roles=tuple(definition.roles),
        )

    @property
    def auth_type(self) -> AuthType:
        return AuthType.KEY if self.key else AuthType.PASSWORD

    @property
    def address(self) -> str:
        return f"{self.host}:{self.port}"

    def has_role(self, role: str) -> bool:
        return role in self.roles


class StoredCredential(BaseModel):
    """Credential values stored locally for one server of a named environment."""

    host: str | None = None
    username: str | None = None
    password: str | None = None
    key: str | None = None
    keyphrase: str | None = None
    port: int | None = None
    added_at: datetime = Field(default_factory=datetime.utcnow)


class ConnectionInfo(BaseModel):
    """Information about a cached connection."""

    name: str
    server_index: int
    host: str
    port: int
    username: str
    roles: list[str]
    connected_at: datetime
    last_activity: datetime
    idle_seconds: float


class ExecResult(BaseModel):
    """Result of executing a command over SSH."""

    command: str
    stdout: str
    stderr: str
    exit_code: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def split_host_port(host: str) -> tuple[str, int | None]:
    """Split a "host:port" string. IPv6 literals are left alone."""
    if host.count(":") == 1:
        hostname, _, port = host.partition(":")
        if port.isdigit():
            return hostname, int(port)
    return host, None
