"""
Connection settings for the CLI.

Each side is resolved from command-line arguments, then MIRROR_SOURCE_* /
MIRROR_TARGET_* environment variables, then defaults. With --use-vault the
host, port, user and password come from HashiCorp Vault instead, while
the schema names still come from the arguments or environment.
"""

import argparse
import logging
import os
from dataclasses import replace

from utils.vault_client import VaultClient

from schema_mirror.config import ConnectionSettings

logger = logging.getLogger(__name__)

ENV_PREFIXES = {
    "source": "MIRROR_SOURCE_",
    "target": "MIRROR_TARGET_",
}


def _from_args_or_env(args: argparse.Namespace, side: str, field: str) -> str | None:
    value = getattr(args, f"{side}_{field}", None)
    if value is not None:
        return str(value)
    return os.getenv(f"{ENV_PREFIXES[side]}{field.upper()}")


def _parse_port(value: str | None, side: str) -> int:
    if value is None:
        return 3306
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid {side} port: {value!r}")


def _settings_from_args_or_env(args: argparse.Namespace, side: str) -> ConnectionSettings:
    return ConnectionSettings(
        host=_from_args_or_env(args, side, "host") or "localhost",
        port=_parse_port(_from_args_or_env(args, side, "port"), side),
        user=_from_args_or_env(args, side, "user") or "root",
        password=_from_args_or_env(args, side, "password"),
        database=_from_args_or_env(args, side, "database") or "",
    )


def _settings_from_vault(vault_client: VaultClient, side: str, database: str) -> ConnectionSettings:
    creds = vault_client.get_database_credentials(side)
    return ConnectionSettings(
        host=creds["host"],
        port=creds["port"],
        user=creds["user"],
        password=creds["password"],
        database=database or creds.get("database", ""),
    )


def get_connection_settings(
    args: argparse.Namespace,
    vault_client: VaultClient | None = None,
) -> tuple[ConnectionSettings, ConnectionSettings]:
    """
    Resolve source and target connection settings

    Args:
        args: Parsed command-line arguments
        vault_client: Client to use with --use-vault (created from
            VAULT_ADDR / VAULT_TOKEN when omitted)

    Returns:
        Tuple of (source, target) ConnectionSettings

    Raises:
        ValueError: If the source schema is missing or a port is invalid
        requests.RequestException: If Vault cannot be reached
    """
    source_database = _from_args_or_env(args, "source", "database") or ""
    target_database = _from_args_or_env(args, "target", "database") or ""

    if getattr(args, "use_vault", False):
        vault_client = vault_client or VaultClient()
        source = _settings_from_vault(vault_client, "source", source_database)
        target = _settings_from_vault(vault_client, "target", target_database)
        logger.info("Fetched connection credentials from Vault")
    else:
        source = _settings_from_args_or_env(args, "source")
        target = _settings_from_args_or_env(args, "target")

    if not source.database:
        raise ValueError(
            "Source database not provided. Use --source-database or MIRROR_SOURCE_DATABASE."
        )

    if not target.database:
        target = replace(target, database=source.database)

    if (source.host, source.port, source.database) == (target.host, target.port, target.database):
        raise ValueError(
            f"Source and target are the same schema ({source.describe()})"
        )

    logger.debug(f"Source: {source.describe()}, target: {target.describe()}")
    return source, target
