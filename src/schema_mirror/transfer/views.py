"""
View definition rewriting for cross-server portability.

A captured CREATE VIEW names its definer, which may not exist (or lack
privileges) on the target server, and qualifies every column with the
source schema. Both are rewritten before the DDL is replayed.
"""

import re

from schema_mirror.snapshot.reader import normalize_view_definition

_ACCOUNT_PART = r"(?:`[^`]*`|'[^']*'|\"[^\"]*\"|[^\s@]+)"

DEFINER_CLAUSE = re.compile(
    rf"\s+DEFINER\s*=\s*(?:CURRENT_USER(?:\s*\(\s*\))?|{_ACCOUNT_PART}(?:@{_ACCOUNT_PART})?)",
    re.IGNORECASE,
)

SQL_SECURITY_CLAUSE = re.compile(r"\bSQL\s+SECURITY\s+(?:DEFINER|INVOKER)\b", re.IGNORECASE)

VIEW_KEYWORD = re.compile(r"\bVIEW\b", re.IGNORECASE)


def strip_definer(ddl: str) -> str:
    return DEFINER_CLAUSE.sub("", ddl, count=1)


def force_invoker_security(ddl: str) -> str:
    """Make the view run with the caller's privileges."""
    if SQL_SECURITY_CLAUSE.search(ddl):
        return SQL_SECURITY_CLAUSE.sub("SQL SECURITY INVOKER", ddl, count=1)
    return VIEW_KEYWORD.sub("SQL SECURITY INVOKER VIEW", ddl, count=1)


def rewrite_view_definition(ddl: str, schema: str) -> str:
    """
    Make a SHOW CREATE VIEW statement replayable on another server

    Args:
        ddl: Statement as returned by SHOW CREATE VIEW on the source
        schema: Source schema name, whose qualifier is removed so the view
            resolves against the schema it is created in

    Returns:
        CREATE VIEW statement without DEFINER and with SQL SECURITY INVOKER
    """
    ddl = strip_definer(ddl)
    ddl = force_invoker_security(ddl)
    return normalize_view_definition(ddl, schema)
