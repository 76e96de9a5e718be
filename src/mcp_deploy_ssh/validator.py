"""Credential checks run before any network attempt."""

from dataclasses import dataclass, field

from .exceptions import MissingCredentialsException
from .types import CREDENTIAL_FIELDS, ServerDefinition

REQUIRED_FIELDS = ("host", "username")
AUTH_FIELDS = ("password", "key")


@dataclass(frozen=True)
class CredentialCheck:
    """Outcome of checking one server definition."""

    missing: list[str] = field(default_factory=list)
    present: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.missing


def check_credentials(definition: ServerDefinition) -> CredentialCheck:
    """Report which mandatory credentials are missing and which were supplied."""
    present = [name for name in CREDENTIAL_FIELDS if getattr(definition, name)]
    missing = [name for name in REQUIRED_FIELDS if name not in present]

    if not any(name in present for name in AUTH_FIELDS):
        missing.extend(AUTH_FIELDS)

    return CredentialCheck(missing=missing, present=present)


def validate_credentials(
    name: str, server_index: int, definition: ServerDefinition
) -> CredentialCheck:
    """Check a definition and raise if it cannot be used to connect.

    Raises:
        MissingCredentialsException: If host, username or both auth factors
            are missing.
    """
    check = check_credentials(definition)
    if not check.ok:
        raise MissingCredentialsException(
            name, server_index, missing=check.missing, present=check.present
        )
    return check
