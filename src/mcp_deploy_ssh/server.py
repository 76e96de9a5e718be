"""MCP Deploy SSH server - named deployment environments over SSH."""

import getpass
import logging
import os
import sys
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from mcp.server.fastmcp import Context, FastMCP

from .config import MASTER_PASSWORD_ENV, load_config
from .credentials import CredentialManager, credential_key
from .environment import Environment
from .exceptions import DeployConnectionError, MissingCredentialsException
from .handler import RemoteHandler
from .registry import ConnectionRegistry

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stderr)],
)
logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Application context with shared resources."""

    credential_manager: CredentialManager
    registry: ConnectionRegistry
    handler: RemoteHandler


def get_master_password() -> str | None:
    """Get master password from environment or prompt user."""
    password = os.environ.get(MASTER_PASSWORD_ENV)
    if password:
        return password

    if sys.stdin.isatty():
        return getpass.getpass("Enter master password for stored credentials: ")

    return None


def error_payload(e: DeployConnectionError) -> dict:
    payload = {"status": "error", "type": type(e).__name__, "message": str(e)}
    if isinstance(e, MissingCredentialsException):
        payload["missing"] = e.missing
        payload["present"] = e.present
    return payload


@asynccontextmanager
async def app_lifespan(server: FastMCP) -> AsyncIterator[AppContext]:
    """Manage application lifecycle."""
    credential_manager = CredentialManager()
    password = get_master_password()
    if password:
        try:
            credential_manager.initialize(password)
        except ValueError as e:
            logger.error(f"Failed to initialize credentials: {e}")
            raise
    else:
        logger.warning(
            f"{MASTER_PASSWORD_ENV} not set, stored credentials are disabled"
        )

    config = load_config()
    registry = ConnectionRegistry(
        config.connections,
        default=config.default,
        credential_manager=credential_manager,
    )
    handler = RemoteHandler(registry)

    logger.info("MCP Deploy SSH server started")

    try:
        yield AppContext(
            credential_manager=credential_manager,
            registry=registry,
            handler=handler,
        )
    finally:
        await handler.close()
        logger.info("MCP Deploy SSH server stopped")


# Create the MCP server
mcp = FastMCP(
    "Deploy SSH",
    lifespan=app_lifespan,
)


def _app(ctx: Context) -> AppContext:
    return ctx.request_context.lifespan_context


# =============================================================================
# Connection Management Tools
# =============================================================================


@mcp.tool()
async def deploy_list_environments(ctx: Context) -> list[dict]:
    """List the configured deployment environments and their servers.

    Returns:
        One entry per environment with its servers, roles and selected server.
    """
    registry = _app(ctx).registry

    return [
        {
            "name": name,
            "selected_server": registry.get_connection_index(name),
            "servers": [
                {"index": i, "host": d.host, "username": d.username, "roles": d.roles}
                for i, d in enumerate(registry.get_servers(name))
            ],
        }
        for name in registry.names
    ]


@mcp.tool()
async def deploy_select_server(name: str, server: int, ctx: Context) -> dict:
    """Select which server of an environment is used by default.

    Args:
        name: The environment name (e.g. "production").
        server: Zero-based index of the server in the environment.
    """
    _app(ctx).registry.set_connection(name, server)
    return {"status": "selected", "name": name, "server": server}


@mcp.tool()
async def deploy_connect(
    ctx: Context, name: str | None = None, server: int | None = None
) -> dict:
    """Connect to a deployment environment.

    Connections are reused until disconnected.

    Args:
        name: The environment name. Defaults to the configured default.
        server: The server index. Defaults to the selected server.

    Returns:
        Connection details including host, username and roles.
    """
    handler = _app(ctx).handler

    try:
        connection = await handler.connection(name, server)
    except DeployConnectionError as e:
        return error_payload(e)

    return {
        "status": "connected",
        "name": connection.name,
        "server": connection.server_index,
        "host": connection.host,
        "port": connection.port,
        "username": connection.username,
        "roles": list(connection.roles),
    }


@mcp.tool()
async def deploy_disconnect(
    ctx: Context, name: str | None = None, server: int | None = None
) -> dict:
    """Drop a cached connection so the next use re-reads the configuration.

    Args:
        name: The environment name. Defaults to the configured default.
        server: The server index. Defaults to the selected server.
    """
    handler = _app(ctx).handler

    try:
        name, server = handler.resolve(name, server)
        disconnected = await handler.disconnect(name, server)
    except DeployConnectionError as e:
        return error_payload(e)

    return {
        "status": "disconnected" if disconnected else "not_connected",
        "name": name,
        "server": server,
    }


@mcp.tool()
async def deploy_list_connections(ctx: Context) -> list[dict]:
    """List cached connections with their idle time."""
    return [
        {
            "name": c.name,
            "server": c.server_index,
            "host": c.host,
            "port": c.port,
            "username": c.username,
            "roles": c.roles,
            "connected_at": c.connected_at.isoformat(),
            "last_activity": c.last_activity.isoformat(),
            "idle_seconds": round(c.idle_seconds, 1),
        }
        for c in _app(ctx).handler.list_connections()
    ]


@mcp.tool()
async def deploy_environment(
    ctx: Context, name: str | None = None, server: int | None = None
) -> dict:
    """Report line endings, path separator and operating system of a server.

    Args:
        name: The environment name. Defaults to the configured default.
        server: The server index. Defaults to the selected server.
    """
    handler = _app(ctx).handler

    try:
        result = await handler.run("uname -s", name, server)
    except DeployConnectionError as e:
        return error_payload(e)

    overrides = {}
    if result.succeeded and result.stdout.strip():
        overrides = {"line_endings": "\n", "separator": "/", "operating_system": result.stdout.strip()}
    environment = Environment(overrides)
    return {
        "line_endings": environment.get_line_endings(),
        "separator": environment.get_separator(),
        "operating_system": environment.get_operating_system(),
    }


# =============================================================================
# Command Execution Tools
# =============================================================================


@mcp.tool()
async def deploy_run(
    command: str,
    ctx: Context,
    name: str | None = None,
    server: int | None = None,
    timeout: float = 30,
) -> dict:
    """Run a command on a deployment environment's server.

    Args:
        command: The command to run.
        name: The environment name. Defaults to the configured default.
        server: The server index. Defaults to the selected server.
        timeout: Command timeout in seconds (default 30).

    Returns:
        Command output including stdout, stderr, and exit code.
    """
    handler = _app(ctx).handler

    try:
        result = await handler.run(command, name, server, timeout=timeout)
    except DeployConnectionError as e:
        return {**error_payload(e), "stdout": "", "stderr": str(e), "exit_code": -1}

    return {
        "stdout": result.stdout,
        "stderr": result.stderr,
        "exit_code": result.exit_code,
    }


# =============================================================================
# Credential Management Tools
# =============================================================================


@mcp.tool()
async def deploy_store_credentials(
    name: str,
    ctx: Context,
    server: int = 0,
    host: str | None = None,
    username: str | None = None,
    password: str | None = None,
    key: str | None = None,
    keyphrase: str | None = None,
) -> dict:
    """Store credentials for a server whose configuration is incomplete.

    Stored values only fill fields the configuration leaves empty. Fields
    left out keep their previously stored value. The connection is dropped
    so the next use picks them up.

    Args:
        name: The environment name.
        server: The server index (default 0).
        host: The hostname, optionally with ":port".
        username: The username.
        password: The password.
        key: A private key path or PEM string.
        keyphrase: The private key passphrase.
    """
    app_ctx = _app(ctx)
    if not app_ctx.credential_manager.initialized:
        return {"status": "error", "message": f"Set {MASTER_PASSWORD_ENV} to store credentials"}

    key_name = credential_key(name, server)
    app_ctx.credential_manager.update(
        key_name,
        host=host,
        username=username,
        password=password,
        key=key,
        keyphrase=keyphrase,
    )
    await app_ctx.handler.disconnect(name, server)
    return {"status": "stored", "key": key_name}


@mcp.tool()
async def deploy_delete_credentials(name: str, ctx: Context, server: int = 0) -> dict:
    """Delete stored credentials for a server.

    Args:
        name: The environment name.
        server: The server index (default 0).
    """
    app_ctx = _app(ctx)
    if not app_ctx.credential_manager.initialized:
        return {"status": "error", "message": f"Set {MASTER_PASSWORD_ENV} to manage credentials"}

    key_name = credential_key(name, server)
    if app_ctx.credential_manager.delete(key_name):
        await app_ctx.handler.disconnect(name, server)
        return {"status": "deleted", "key": key_name}
    return {"status": "not_found", "key": key_name}


def main():
    """Entry point for the MCP Deploy SSH server."""
    mcp.run()


if __name__ == "__main__":
    main()
