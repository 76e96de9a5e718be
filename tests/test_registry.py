"""Tests for ConnectionRegistry."""

from unittest.mock import patch

import pytest

from mcp_deploy_ssh.credentials import CredentialManager
from mcp_deploy_ssh.exceptions import ConfigurationError
from mcp_deploy_ssh.registry import ConnectionRegistry
from mcp_deploy_ssh.types import StoredCredential


@pytest.fixture
def credential_manager(tmp_path):
    with patch("mcp_deploy_ssh.credentials.CONFIG_DIR", tmp_path):
        with patch("mcp_deploy_ssh.credentials.CREDENTIALS_FILE", tmp_path / "credentials.enc"):
            with patch("mcp_deploy_ssh.credentials.SALT_FILE", tmp_path / "salt"):
                manager = CredentialManager()
                manager.initialize("test-master-password")
                yield manager


class TestNormalization:
    def test_single_definition_becomes_one_server(self):
        registry = ConnectionRegistry({"production": {"host": "a.com", "username": "a"}})

        servers = registry.get_servers("production")
        assert len(servers) == 1
        assert servers[0].host == "a.com"

    def test_servers_inherit_shared_keys(self):
        registry = ConnectionRegistry(
            {
                "production": {
                    "username": "deploy",
                    "key": "~/.ssh/id_ed25519",
                    "roles": ["web"],
                    "servers": [
                        {"host": "web1.com"},
                        {"host": "db1.com", "username": "dba", "roles": ["db"]},
                    ],
                }
            }
        )

        web, db = registry.get_servers("production")
        assert (web.host, web.username, web.key, web.roles) == (
            "web1.com", "deploy", "~/.ssh/id_ed25519", ["web"]
        )
        assert (db.host, db.username, db.key, db.roles) == (
            "db1.com", "dba", "~/.ssh/id_ed25519", ["db"]
        )

    def test_blank_values_count_as_missing(self):
        registry = ConnectionRegistry({"production": {"host": "a.com", "password": ""}})
        assert registry.get_server_definition("production", 0).password is None

    def test_empty_definition(self):
        registry = ConnectionRegistry({"production": {}})
        definition = registry.get_server_definition("production", 0)
        assert definition.host is None

    def test_invalid_shape_raises(self):
        with pytest.raises(ConfigurationError, match="production"):
            ConnectionRegistry({"production": {"servers": "not-a-list"}})

    def test_empty_name_raises(self):
        with pytest.raises(ConfigurationError):
            ConnectionRegistry({"": {"host": "a.com"}})


class TestDefaults:
    def test_first_connection_is_default(self):
        registry = ConnectionRegistry({"staging": {}, "production": {}})
        assert registry.default_name == "staging"

    def test_explicit_default(self):
        registry = ConnectionRegistry({"staging": {}, "production": {}}, default="production")
        assert registry.default_name == "production"

    def test_no_connections(self):
        with pytest.raises(ConfigurationError, match="No connections"):
            ConnectionRegistry().default_name


class TestSelection:
    def test_index_defaults_to_zero(self):
        assert ConnectionRegistry().get_connection_index("production") == 0

    def test_set_connection_is_not_range_checked(self):
        registry = ConnectionRegistry({"production": {"host": "a.com"}})
        registry.set_connection("production", 5)
        assert registry.get_connection_index("production") == 5

    def test_selection_survives_swap(self):
        registry = ConnectionRegistry({"production": {}})
        registry.set_connection("production", 1)
        registry.swap({"production": {"servers": [{}, {}]}})
        assert registry.get_connection_index("production") == 1

    @pytest.mark.parametrize("index", [1, -1])
    def test_out_of_range_index(self, index):
        registry = ConnectionRegistry({"production": {"host": "a.com"}})
        with pytest.raises(ConfigurationError):
            registry.get_server_definition("production", index)

    def test_unknown_name(self):
        with pytest.raises(ConfigurationError, match="Unknown connection"):
            ConnectionRegistry().get_server_definition("production", 0)


class TestStoredCredentials:
    def test_stored_values_fill_gaps(self, credential_manager):
        credential_manager.set("production#0", StoredCredential(password="stored", host="other.com"))
        registry = ConnectionRegistry(
            {"production": {"host": "a.com", "username": "a"}},
            credential_manager=credential_manager,
        )

        definition = registry.get_server_definition("production", 0)
        assert definition.password == "stored"
        assert definition.host == "a.com"

    def test_stored_values_are_per_server(self, credential_manager):
        credential_manager.set("production#1", StoredCredential(password="second"))
        registry = ConnectionRegistry(
            {"production": {"servers": [{"host": "a.com"}, {"host": "b.com"}]}},
            credential_manager=credential_manager,
        )

        assert registry.get_server_definition("production", 0).password is None
        assert registry.get_server_definition("production", 1).password == "second"

    def test_uninitialized_manager_is_ignored(self):
        registry = ConnectionRegistry(
            {"production": {"host": "a.com"}}, credential_manager=CredentialManager()
        )
        assert registry.get_server_definition("production", 0).host == "a.com"
