"""Shared fixtures: a transport that never touches the network."""

import asyncio

import pytest

from mcp_deploy_ssh.exceptions import TransportError
from mcp_deploy_ssh.handler import RemoteHandler
from mcp_deploy_ssh.registry import ConnectionRegistry
from mcp_deploy_ssh.types import ExecResult


class FakeSession:
    def __init__(self, connection) -> None:
        self.connection = connection
        self.closed = False


class FakeTransport:
    """Records calls; hosts listed in ``unreachable`` fail to connect."""

    def __init__(self) -> None:
        self.unreachable: set[str] = set()
        self.connected: list = []
        self.executed: list[tuple[FakeSession, str]] = []
        self.closed: list[FakeSession] = []
        self.exit_code = 0
        self.execute_error: str | None = None

    async def connect(self, connection):
        await asyncio.sleep(0)
        if connection.host in self.unreachable:
            raise TransportError(f"Unable to connect to {connection.address}: refused")
        self.connected.append(connection)
        return FakeSession(connection)

    async def execute(self, session, command, timeout=None):
        if self.execute_error:
            raise TransportError(self.execute_error)
        self.executed.append((session, command))
        return ExecResult(command=command, stdout="ok\n", stderr="", exit_code=self.exit_code)

    async def close(self, session):
        session.closed = True
        self.closed.append(session)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def registry():
    return ConnectionRegistry(
        {
            "production": {
                "host": "foobar.com",
                "username": "foobar",
                "password": "foobar",
            }
        }
    )


@pytest.fixture
def handler(registry, transport):
    return RemoteHandler(registry, transport=transport)
