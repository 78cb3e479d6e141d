"""
Utility modules for schema-mirror

Provides:
- db: PyMySQL connection wrapper with reconnect support
- retry: Retry decorators for transient MySQL errors
- logging: Structured logging configuration
- metrics: Sync metrics publishing to Prometheus
- tracing: OpenTelemetry tracing helpers
- sql_safety: Identifier validation and quoting
- vault_client: HashiCorp Vault integration for credentials
"""

__version__ = "1.0.0"
__all__ = ["db", "retry", "logging", "metrics", "tracing", "sql_safety", "vault_client"]
