"""SSH transport used to open sessions and run commands."""

import asyncio
import logging
import os
from typing import Any, Protocol

import asyncssh

from .config import get_connect_timeout
from .exceptions import TransportError
from .types import AuthType, Connection, ExecResult

logger = logging.getLogger(__name__)

PEM_PREFIX = "-----BEGIN"


class Transport(Protocol):
    """Protocol for opening remote sessions and executing commands on them."""

    async def connect(self, connection: Connection) -> Any:
        """Open a session. Raises TransportError on failure."""
        ...

    async def execute(
        self, session: Any, command: str, timeout: float | None = None
    ) -> ExecResult:
        """Run a command. Raises TransportError on failure."""
        ...

    async def close(self, session: Any) -> None:
        ...


class AsyncSSHTransport:
    """Transport backed by asyncssh."""

    def __init__(self, connect_timeout: float | None = None) -> None:
        self.connect_timeout = connect_timeout or get_connect_timeout()

    def _load_key(self, connection: Connection) -> asyncssh.SSHKey:
        key = connection.key
        if key.lstrip().startswith(PEM_PREFIX):
            return asyncssh.import_private_key(key, connection.keyphrase)
        return asyncssh.read_private_key(os.path.expanduser(key), connection.keyphrase)

    async def connect(self, connection: Connection) -> asyncssh.SSHClientConnection:
        connect_kwargs: dict = {
            "host": connection.host,
            "port": connection.port,
            "username": connection.username,
            "known_hosts": None,
            "connect_timeout": self.connect_timeout,
        }

        try:
            if connection.auth_type == AuthType.KEY:
                connect_kwargs["client_keys"] = [self._load_key(connection)]
            else:
                connect_kwargs["password"] = connection.password
                connect_kwargs["client_keys"] = None

            conn = await asyncssh.connect(**connect_kwargs)
        except (asyncssh.Error, asyncssh.KeyImportError, OSError, asyncio.TimeoutError) as e:
            raise TransportError(
                f"Unable to connect to {connection.address} as {connection.username}: {e}"
            ) from e

        logger.info(f"Connected to {connection.address} as {connection.username}")
        return conn

    async def execute(
        self,
        session: asyncssh.SSHClientConnection,
        command: str,
        timeout: float | None = None,
    ) -> ExecResult:
        try:
            result = await asyncio.wait_for(session.run(command, check=False), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"Command timed out after {timeout} seconds") from e
        except (asyncssh.Error, OSError) as e:
            raise TransportError(f"Command failed to run: {e}") from e

        # returncode is -signal for a killed command, None if the channel closed early
        return ExecResult(
            command=command,
            stdout=str(result.stdout or ""),
            stderr=str(result.stderr or ""),
            exit_code=-1 if result.returncode is None else result.returncode,
        )

    async def close(self, session: asyncssh.SSHClientConnection) -> None:
        session.close()
        await session.wait_closed()
