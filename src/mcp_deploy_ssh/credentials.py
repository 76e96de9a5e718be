"""Encrypted local storage for server credentials missing from the configuration.

Entries are keyed per server (``production#1``) and only ever fill fields
the connections file leaves empty. The vault is a single AES-GCM blob whose
associated data pins the file format, so a vault written by another tool or
format version fails to open instead of being misread.
"""

import json
import logging
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from pydantic import ValidationError

from .config import CONFIG_DIR, CREDENTIALS_FILE, MASTER_PASSWORD_ENV, SALT_FILE
from .types import StoredCredential

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 100_000
SALT_LENGTH = 16
NONCE_LENGTH = 12
VAULT_FORMAT = b"mcp-deploy-ssh/credentials/v1"


def credential_key(name: str, server_index: int = 0) -> str:
    """Storage key for one server of a named environment."""
    return f"{name}#{server_index}"


class CredentialManager:
    """Per-server credential vault unlocked with a master password."""

    def __init__(self) -> None:
        self._credentials: dict[str, StoredCredential] = {}
        self._cipher: AESGCM | None = None

    @property
    def initialized(self) -> bool:
        return self._cipher is not None

    def initialize(self, master_password: str | None = None) -> None:
        """Unlock the vault, creating it on first use.

        Args:
            master_password: The master password. If None, reads from
                MCP_DEPLOY_SSH_MASTER_PASSWORD environment variable.

        Raises:
            ValueError: If no master password is available or it does not
                open the existing vault.
        """
        password = master_password or os.environ.get(MASTER_PASSWORD_ENV)
        if not password:
            raise ValueError(
                "Master password required. Provide it directly or set "
                f"{MASTER_PASSWORD_ENV} environment variable."
            )

        CONFIG_DIR.mkdir(mode=0o700, parents=True, exist_ok=True)
        cipher = AESGCM(self._derive_key(password))
        self._credentials = self._read_vault(cipher)
        self._cipher = cipher

    def _salt(self) -> bytes:
        if not SALT_FILE.exists():
            SALT_FILE.write_bytes(os.urandom(SALT_LENGTH))
            SALT_FILE.chmod(0o600)
        return SALT_FILE.read_bytes()

    def _derive_key(self, password: str) -> bytes:
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=self._salt(),
            iterations=PBKDF2_ITERATIONS,
        )
        return kdf.derive(password.encode())

    def _read_vault(self, cipher: AESGCM) -> dict[str, StoredCredential]:
        if not CREDENTIALS_FILE.exists():
            return {}

        blob = CREDENTIALS_FILE.read_bytes()
        try:
            plain = cipher.decrypt(blob[:NONCE_LENGTH], blob[NONCE_LENGTH:], VAULT_FORMAT)
            entries = {
                key: StoredCredential.model_validate(value)
                for key, value in json.loads(plain).items()
            }
        except (InvalidTag, ValueError, ValidationError) as e:
            logger.error(f"Failed to open credential vault {CREDENTIALS_FILE}: {e!r}")
            raise ValueError("Failed to decrypt credentials. Wrong master password?") from e

        logger.info(f"Unlocked stored credentials for {len(entries)} servers")
        return entries

    def _write_vault(self) -> None:
        plain = json.dumps(
            {key: cred.model_dump(mode="json") for key, cred in self._credentials.items()}
        ).encode()
        nonce = os.urandom(NONCE_LENGTH)
        CREDENTIALS_FILE.write_bytes(nonce + self._cipher.encrypt(nonce, plain, VAULT_FORMAT))
        CREDENTIALS_FILE.chmod(0o600)

    def _check_initialized(self) -> None:
        if self._cipher is None:
            raise ValueError("CredentialManager not initialized. Call initialize() first.")

    def get(self, key: str) -> StoredCredential | None:
        """Get stored credentials for a server key, or None if not found."""
        self._check_initialized()
        return self._credentials.get(key)

    def set(self, key: str, credential: StoredCredential) -> None:
        self._check_initialized()
        self._credentials[key] = credential
        self._write_vault()
        logger.info(f"Stored credentials for {key}")

    def update(self, key: str, /, **fields) -> StoredCredential:
        """Merge new values into a server's entry; None leaves a field as it was."""
        self._check_initialized()
        current = self._credentials.get(key)
        values = current.model_dump(exclude={"added_at"}) if current else {}
        values.update({name: value for name, value in fields.items() if value is not None})
        credential = StoredCredential.model_validate(values)
        self.set(key, credential)
        return credential

    def fill(self, key: str, supplied: dict) -> dict:
        """Return ``supplied`` with absent fields taken from the stored entry."""
        self._check_initialized()
        stored = self._credentials.get(key)
        if stored is None:
            return supplied
        return {**stored.model_dump(exclude={"added_at"}, exclude_none=True), **supplied}

    def delete(self, key: str) -> bool:
        """Delete stored credentials.

        Returns:
            True if credentials were deleted, False if the key was not found.
        """
        self._check_initialized()
        if self._credentials.pop(key, None) is None:
            return False
        self._write_vault()
        logger.info(f"Deleted credentials for {key}")
        return True

    def list_keys(self) -> list[str]:
        self._check_initialized()
        return list(self._credentials.keys())

    def has_credentials(self, key: str) -> bool:
        self._check_initialized()
        return key in self._credentials
