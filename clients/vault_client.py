"""
Workshop secrets from HashiCorp Vault.

Two KV v2 secrets under the "workshop/" path are used: "database" (url) and
"gateway" (auth_token, collection_uuid). Each is read once per process.
"""

import os
import logging
from typing import Dict

import hvac
from hvac.exceptions import InvalidPath, Unauthorized, Forbidden

logger = logging.getLogger(__name__)

SECRET_PREFIX = "workshop"

DATABASE_FIELDS = ("url",)
GATEWAY_FIELDS = ("auth_token", "collection_uuid")

_client: "VaultClient | None" = None
_secrets: Dict[str, Dict[str, str]] = {}


class VaultClient:
    """AppRole-authenticated reader for the workshop's secrets."""

    def __init__(self, vault_addr: str | None = None):
        addr = vault_addr or os.getenv("VAULT_ADDR")
        role_id = os.getenv("VAULT_ROLE_ID")
        secret_id = os.getenv("VAULT_SECRET_ID")

        if not addr:
            raise ValueError("VAULT_ADDR environment variable is required")
        if not role_id or not secret_id:
            raise ValueError(
                "VAULT_ROLE_ID and VAULT_SECRET_ID environment variables are required"
            )

        self.vault_addr = addr
        self.client = hvac.Client(url=addr)

        try:
            login = self.client.auth.approle.login(role_id=role_id, secret_id=secret_id)
        except Exception as e:
            logger.error(f"AppRole login to {addr} failed: {e}")
            raise PermissionError(f"AppRole login to {addr} failed: {e}")
        self.client.token = login["auth"]["client_token"]

        if not self.client.is_authenticated():
            raise PermissionError(f"Vault at {addr} rejected the AppRole token")

        logger.info(f"Vault client ready: {addr}")

    def read_secret(self, path: str, fields: tuple[str, ...]) -> Dict[str, str]:
        """
        Read workshop/<path> and return only `fields` from it.

        Raises:
            PermissionError: Secret missing or not readable with this role
            KeyError: Secret lacks one of the fields
        """
        full_path = f"{SECRET_PREFIX}/{path}"

        try:
            response = self.client.secrets.kv.v2.read_secret_version(
                path=full_path, raise_on_deleted_version=True
            )
        except InvalidPath:
            logger.error(f"Secret not found: {full_path}")
            raise PermissionError(f"Secret '{full_path}' not found in Vault")
        except (Unauthorized, Forbidden) as e:
            logger.error(f"Access denied to secret {full_path}: {e}")
            raise PermissionError(f"Access denied to secret '{full_path}': {e}")

        data = response["data"]["data"]
        missing = [field for field in fields if field not in data]
        if missing:
            raise KeyError(
                f"Secret '{full_path}' lacks {', '.join(missing)}. "
                f"Available: {', '.join(data)}"
            )

        return {field: data[field] for field in fields}


def _workshop_secret(path: str, fields: tuple[str, ...]) -> Dict[str, str]:
    global _client
    if path not in _secrets:
        if _client is None:
            _client = VaultClient()
        _secrets[path] = _client.read_secret(path, fields)
    return _secrets[path]


def get_database_url() -> str:
    """PostgreSQL URL of the invoice ledger."""
    return _workshop_secret("database", DATABASE_FIELDS)["url"]


def get_gateway_config() -> Dict[str, str]:
    """Gateway credentials: auth_token and collection_uuid."""
    return dict(_workshop_secret("gateway", GATEWAY_FIELDS))
