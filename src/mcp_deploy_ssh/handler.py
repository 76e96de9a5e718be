"""Resolves named environments into cached, connected remote sessions."""

import asyncio
import logging
from datetime import datetime
from typing import Sequence

from .cache import ConnectionCache, PooledConnection
from .events import EventDispatcher, EventSink, connected_topic
from .exceptions import ConnectionException, TransportError
from .registry import ConnectionRegistry
from .transport import AsyncSSHTransport, Transport
from .types import Connection, ConnectionInfo, ExecResult
from .validator import validate_credentials

logger = logging.getLogger(__name__)


class RemoteHandler:
    """Hands out validated connections, reusing them until disconnected.

    One handler lives for one deployment run. A cached connection is
    returned as-is on later calls, even if the configuration changed in the
    meantime; call :meth:`disconnect` to pick up the new configuration.
    """

    def __init__(
        self,
        registry: ConnectionRegistry,
        transport: Transport | None = None,
        events: EventSink | None = None,
    ) -> None:
        self.registry = registry
        self.transport = transport or AsyncSSHTransport()
        self.events = events or EventDispatcher()
        self._cache = ConnectionCache()
        self._lock = asyncio.Lock()

    def resolve(self, name: str | None = None, index: int | None = None) -> tuple[str, int]:
        """Fill in the default environment name and its selected server index."""
        name = name or self.registry.default_name
        if index is None:
            index = self.registry.get_connection_index(name)
        return name, index

    async def connection(self, name: str | None = None, index: int | None = None) -> Connection:
        """Get the connection for an environment, connecting on first use.

        Args:
            name: The environment name. Defaults to the registry default.
            index: The server index. Defaults to the selected server.

        Raises:
            ConfigurationError: If the name is unknown or the index out of range.
            MissingCredentialsException: If the server definition is incomplete.
            ConnectionException: If the server cannot be reached.
        """
        return (await self._acquire(name, index)).connection

    async def _acquire(self, name: str | None, index: int | None) -> PooledConnection:
        name, index = self.resolve(name, index)

        async with self._lock:
            pooled = self._cache.get(name, index)
            if pooled:
                pooled.last_activity = datetime.utcnow()
                return pooled

            definition = self.registry.get_server_definition(name, index)
            validate_credentials(name, index, definition)
            connection = Connection.from_definition(name, index, definition)

            try:
                session = await self.transport.connect(connection)
            except TransportError as e:
                logger.error(f"Failed to connect to '{name}' server {index}: {e}")
                raise ConnectionException(name, index, str(e)) from e

            now = datetime.utcnow()
            pooled = PooledConnection(
                connection=connection,
                session=session,
                connected_at=now,
                last_activity=now,
            )
            self._cache.put(name, index, pooled)
            logger.info(f"Connected to '{name}' server {index} ({connection.address})")

        # Dispatched outside the lock so listeners can use the handler.
        await self.events.dispatch(connected_topic(name), connection)
        return pooled

    async def disconnect(self, name: str | None = None, index: int | None = None) -> bool:
        """Forget the cached connection for the selected server of an environment.

        Returns:
            True if a connection was cached, False otherwise.
        """
        name, index = self.resolve(name, index)

        async with self._lock:
            pooled = self._cache.purge(name, index)
            if pooled is None:
                return False
            await self._close_session(pooled)

        logger.info(f"Disconnected from '{name}' server {index}")
        return True

    async def _drop(self, pooled: PooledConnection) -> None:
        """Purge a broken entry unless it was already replaced."""
        name, index = pooled.key
        async with self._lock:
            if self._cache.get(name, index) is not pooled:
                return
            self._cache.purge(name, index)
            await self._close_session(pooled)
        logger.warning(f"Dropped broken connection to '{name}' server {index}")

    async def run(
        self,
        commands: str | Sequence[str],
        name: str | None = None,
        index: int | None = None,
        timeout: float | None = None,
    ) -> ExecResult:
        """Run one command, or a chain of commands, on an environment's server.

        A non-zero exit status is reported in the result. A session that fails
        while running is dropped from the cache, so the next call reconnects.

        Raises:
            ConnectionException: If the session fails while running the command.
        """
        command = commands if isinstance(commands, str) else " && ".join(commands)
        pooled = await self._acquire(name, index)
        connection = pooled.connection

        logger.info(f"[{connection.name}#{connection.server_index}] $ {command}")
        try:
            result = await self.transport.execute(pooled.session, command, timeout=timeout)
        except TransportError as e:
            await self._drop(pooled)
            raise ConnectionException(connection.name, connection.server_index, str(e)) from e

        pooled.last_activity = datetime.utcnow()
        if not result.succeeded:
            logger.warning(
                f"[{connection.name}#{connection.server_index}] exited with {result.exit_code}"
            )
        return result

    def list_connections(self) -> list[ConnectionInfo]:
        return [self._get_connection_info(p) for p in self._cache.entries()]

    def _get_connection_info(self, pooled: PooledConnection) -> ConnectionInfo:
        connection = pooled.connection
        idle = (datetime.utcnow() - pooled.last_activity).total_seconds()
        return ConnectionInfo(
            name=connection.name,
            server_index=connection.server_index,
            host=connection.host,
            port=connection.port,
            username=connection.username,
            roles=list(connection.roles),
            connected_at=pooled.connected_at,
            last_activity=pooled.last_activity,
            idle_seconds=idle,
        )

    async def close(self) -> None:
        """Close every cached session."""
        async with self._lock:
            for pooled in self._cache.purge_all():
                await self._close_session(pooled)
        logger.info("All connections closed")

    async def _close_session(self, pooled: PooledConnection) -> None:
        try:
            await self.transport.close(pooled.session)
        except TransportError as e:
            logger.warning(f"Error closing {pooled.connection.address}: {e}")
