"""
HashiCorp Vault client for fetching MySQL credentials

Credentials for each side of a sync live under a KV v2 secret, by default
`secret/schema-mirror/source` and `secret/schema-mirror/target`.
"""

import logging
import os
import re
from typing import Any, Dict, Optional

import requests

logger = logging.getLogger(__name__)

SAFE_PATH = re.compile(r"^[a-zA-Z0-9/_-]+$")
SIDES = ("source", "target")


class VaultClient:
    """
    HashiCorp Vault client for secrets management (KV v2 engine)
    """

    def __init__(
        self,
        vault_addr: Optional[str] = None,
        vault_token: Optional[str] = None,
        namespace: Optional[str] = None,
        base_path: str = "secret/schema-mirror",
    ):
        """
        Initialize Vault client

        Args:
            vault_addr: Vault server address (default: from VAULT_ADDR env var)
            vault_token: Vault authentication token (default: from VAULT_TOKEN env var)
            namespace: Vault namespace (optional, for Vault Enterprise)
            base_path: Secret path under which per-side credentials live

        Raises:
            ValueError: If vault_addr or vault_token are not provided
        """
        self.vault_addr = vault_addr or os.getenv("VAULT_ADDR")
        self.vault_token = vault_token or os.getenv("VAULT_TOKEN")
        self.namespace = namespace
        self.base_path = base_path.strip("/")

        if not self.vault_addr:
            raise ValueError(
                "Vault address not provided. Set VAULT_ADDR environment variable "
                "or pass vault_addr parameter."
            )

        if not self.vault_token:
            raise ValueError(
                "Vault token not provided. Set VAULT_TOKEN environment variable "
                "or pass vault_token parameter."
            )

        self.vault_addr = self.vault_addr.rstrip("/")

        self.headers = {
            "X-Vault-Token": self.vault_token,
            "Content-Type": "application/json",
        }
        if self.namespace:
            self.headers["X-Vault-Namespace"] = self.namespace

        logger.debug(f"Initialized Vault client for {self.vault_addr}")

    @staticmethod
    def _kv2_path(secret_path: str) -> str:
        # KV v2 reads go through <mount>/data/<path>
        if "/data/" in secret_path:
            return secret_path
        mount, _, rest = secret_path.partition("/")
        return f"{mount}/data/{rest}" if rest else f"{mount}/data"

    def get_secret(self, secret_path: str) -> Dict[str, Any]:
        """
        Fetch secret from Vault KV v2 secrets engine

        Args:
            secret_path: Path to secret (e.g., "secret/schema-mirror/source")

        Returns:
            Dictionary containing secret data

        Raises:
            ValueError: If secret_path is invalid or the secret is missing
            requests.RequestException: If Vault request fails
        """
        if not secret_path or not isinstance(secret_path, str):
            raise ValueError("secret_path must be a non-empty string")

        if ".." in secret_path or secret_path.startswith("//"):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. "
                "Path traversal attempts are not allowed."
            )

        if not SAFE_PATH.match(secret_path):
            raise ValueError(
                f"Invalid secret_path: {secret_path}. "
                "Only alphanumeric characters, slashes, underscores, and hyphens are allowed."
            )

        secret_path = self._kv2_path(secret_path)
        url = f"{self.vault_addr}/v1/{secret_path}"

        logger.debug(f"Fetching secret from: {url}")

        response = requests.get(url, headers=self.headers, timeout=10)

        if response.status_code == 404:
            raise ValueError(f"Secret not found at path: {secret_path}")

        response.raise_for_status()

        secret_data = response.json().get("data", {}).get("data", {})
        if not secret_data:
            raise ValueError(f"No data found in secret at path: {secret_path}")

        return secret_data

    def get_database_credentials(self, side: str) -> Dict[str, Any]:
        """
        Fetch MySQL credentials for one side of the sync

        Args:
            side: "source" or "target"

        Returns:
            Dictionary with host, port, user, password and (optionally)
            database. `username` is accepted as an alias of `user`.

        Raises:
            ValueError: If side is invalid or required fields are missing
        """
        if side not in SIDES:
            raise ValueError(f"Unsupported side: {side!r}. Must be 'source' or 'target'.")

        secret_data = dict(self.get_secret(f"{self.base_path}/{side}"))

        if "user" not in secret_data and "username" in secret_data:
            secret_data["user"] = secret_data.pop("username")

        missing_fields = [
            field for field in ("host", "user", "password") if field not in secret_data
        ]
        if missing_fields:
            raise ValueError(
                f"Missing required fields in {side} secret: {', '.join(missing_fields)}"
            )

        secret_data["port"] = int(secret_data.get("port", 3306))

        logger.info(f"Fetched {side} credentials from Vault")
        return secret_data

    def health_check(self) -> bool:
        """
        Check if Vault is accessible and unsealed

        Returns:
            True if Vault is healthy, False otherwise
        """
        url = f"{self.vault_addr}/v1/sys/health"

        try:
            response = requests.get(url, timeout=5)
            # 200 active, 429 standby, 472/473 replication/perf standby
            return response.status_code in [200, 429, 472, 473]
        except requests.RequestException as e:
            logger.error(f"Vault health check failed: {e}")
            return False
