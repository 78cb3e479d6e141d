"""
SQL safety utilities for preventing SQL injection.

Provides identifier validation and MySQL backtick quoting for safe query
construction. Relation names cannot be bound as query parameters, so every
name that reaches a statement goes through quote_identifier first.
"""

import re

# MySQL unquoted identifiers may also contain '$'; names beginning with a digit
# are legal in MySQL but must be fully quoted, which backticks provide.
VALID_IDENTIFIER = re.compile(r"^[A-Za-z0-9_$]{1,64}$")


def validate_identifier(identifier: str) -> None:
    """
    Validate a MySQL identifier (schema, table, view or column name).

    Args:
        identifier: The identifier to validate

    Raises:
        ValueError: If the identifier is empty, too long or contains
            characters outside [A-Za-z0-9_$]
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, '_' and '$' are allowed "
            "(maximum 64 characters)."
        )


def quote_identifier(identifier: str) -> str:
    """
    Validate and backtick-quote a MySQL identifier.

    Args:
        identifier: Table, view, column or schema name

    Returns:
        Quoted identifier safe for use in SQL

    Raises:
        ValueError: If the identifier is invalid
    """
    validate_identifier(identifier)
    return f"`{identifier}`"


def quote_qualified(schema: str, name: str) -> str:
    """Quote a schema-qualified relation name: `schema`.`name`."""
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Validate an integer parameter for SQL statements.

    Args:
        value: The value to validate
        param_name: Name of the parameter (for error messages)
        min_value: Minimum allowed value (default 0)

    Raises:
        ValueError: If the value is not a valid integer or below minimum
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(
            f"Invalid {param_name}: {value!r}. Must be an integer."
        )

    if value < min_value:
        raise ValueError(
            f"Invalid {param_name}: {value}. Must be >= {min_value}."
        )
