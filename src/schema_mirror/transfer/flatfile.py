"""
Flat-file codec for table data.

Writes and reads the OUTFILE / LOAD DATA layout: every non-NULL field
enclosed, the escape character escaping itself, the enclosure and control
characters, NULL written as a bare sentinel. Binary columns travel as hex.
"""

import datetime
import decimal
import logging
from collections.abc import Iterable, Iterator, Sequence
from typing import Any, TextIO

from schema_mirror.config import FlatFileDialect
from schema_mirror.errors import FlatFileError

logger = logging.getLogger(__name__)

BINARY_TYPES = frozenset({
    "binary", "varbinary", "tinyblob", "blob", "mediumblob", "longblob", "bit",
    # Spatial values arrive in the internal SRID + WKB form
    "geometry", "point", "linestring", "polygon",
    "multipoint", "multilinestring", "multipolygon",
    "geomcollection", "geometrycollection",
})

# Characters following the escape character when reading, as LOAD DATA maps them
UNESCAPES = {"n": "\n", "r": "\r", "t": "\t", "0": "\0", "b": "\b", "Z": "\x1a"}

DEFAULT_CHUNK_SIZE = 64 * 1024


def binary_positions(column_types: Sequence[tuple[str, str]]) -> frozenset[int]:
    """Indexes of the columns whose values are hex-encoded in the data file."""
    return frozenset(
        i for i, (_, data_type) in enumerate(column_types) if data_type in BINARY_TYPES
    )


def _format_timedelta(value: datetime.timedelta) -> str:
    # MySQL TIME values arrive as timedelta and may be negative or exceed 24h
    total = value.days * 86400 + value.seconds
    sign = "-" if total < 0 or (total == 0 and value.microseconds < 0) else ""
    total = abs(total)
    text = f"{sign}{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"
    if value.microseconds:
        text += f".{abs(value.microseconds):06d}"
    return text


def to_text(value: Any) -> str:
    """Render a driver value as the text MySQL would accept back."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (int, float, decimal.Decimal)):
        return str(value)
    if isinstance(value, datetime.datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return _format_timedelta(value)
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError as e:
            raise FlatFileError(
                f"Binary value in a text column is not valid UTF-8: {e}"
            ) from e
    return str(value)


class FlatFileWriter:
    """Writes rows to an open text stream (opened with newline="")."""

    def __init__(
        self,
        stream: TextIO,
        dialect: FlatFileDialect,
        binary_columns: Iterable[int] = (),
    ):
        self.stream = stream
        self.dialect = dialect
        self.binary_columns = frozenset(binary_columns)
        self.rows_written = 0

        esc, enc = dialect.escape, dialect.enclosure
        self._escapes = str.maketrans({
            esc: esc + esc,
            enc: esc + enc,
            "\n": esc + "n",
            "\r": esc + "r",
            "\0": esc + "0",
        })

    def _field(self, index: int, value: Any) -> str:
        if value is None:
            return self.dialect.null_sentinel
        if index in self.binary_columns:
            if isinstance(value, int):
                # BIT columns may come back as integers with some converters
                value = value.to_bytes(max(1, (value.bit_length() + 7) // 8), "big")
            text = bytes(value).hex()
        else:
            text = to_text(value).translate(self._escapes)
        return f"{self.dialect.enclosure}{text}{self.dialect.enclosure}"

    def write_row(self, row: Sequence[Any]) -> None:
        self.stream.write(
            self.dialect.field_delimiter.join(
                self._field(i, value) for i, value in enumerate(row)
            )
        )
        self.stream.write(self.dialect.line_terminator)
        self.rows_written += 1

    def write_rows(self, rows: Iterable[Sequence[Any]]) -> int:
        for row in rows:
            self.write_row(row)
        return self.rows_written


class FlatFileReader:
    """
    Reads records back from a text stream, chunk by chunk.

    Iterating yields one list per record: str for text fields, bytes for
    binary columns, None for NULL.

    Raises FlatFileError on a malformed or truncated file, or when a
    record's field count differs from expected_fields.
    """

    def __init__(
        self,
        stream: TextIO,
        dialect: FlatFileDialect,
        binary_columns: Iterable[int] = (),
        expected_fields: int | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.stream = stream
        self.dialect = dialect
        self.binary_columns = frozenset(binary_columns)
        self.expected_fields = expected_fields
        self.chunk_size = chunk_size
        self.records_read = 0

    def __iter__(self) -> Iterator[list[Any]]:
        buf = ""
        pos = 0
        final = False

        while not (final and pos >= len(buf)):
            if not final:
                chunk = self.stream.read(self.chunk_size)
                buf = buf[pos:] + chunk
                pos = 0
                final = not chunk

            while pos < len(buf):
                parsed = self._parse_record(buf, pos, final)
                if parsed is None:
                    break
                fields, pos = parsed
                yield self._convert(fields)

    def _error(self, message: str) -> FlatFileError:
        return FlatFileError(f"record {self.records_read + 1}: {message}")

    def _parse_field(self, buf: str, pos: int, final: bool):
        """
        Parse one field starting at pos.

        Returns (value, next_pos), with value None for NULL, or None when the
        buffer ends before the field does and more input may follow.
        """
        d = self.dialect

        if buf.startswith(d.enclosure, pos):
            parts = []
            i = pos + 1
            while True:
                next_escape = buf.find(d.escape, i)
                next_close = buf.find(d.enclosure, i)

                if next_close == -1 and next_escape == -1:
                    if final:
                        raise self._error("unterminated enclosed field")
                    return None

                if next_escape != -1 and (next_close == -1 or next_escape < next_close):
                    parts.append(buf[i:next_escape])
                    if next_escape + 1 >= len(buf):
                        if final:
                            raise self._error("escape character at end of input")
                        return None
                    escaped = buf[next_escape + 1]
                    parts.append(UNESCAPES.get(escaped, escaped))
                    i = next_escape + 2
                else:
                    parts.append(buf[i:next_close])
                    return "".join(parts), next_close + 1

        if buf.startswith(d.null_sentinel, pos):
            return None, pos + len(d.null_sentinel)

        rest = buf[pos:]
        if not final and d.null_sentinel.startswith(rest):
            return None
        raise self._error(f"unexpected unenclosed field {rest[:20]!r}")

    def _parse_record(self, buf: str, pos: int, final: bool):
        """
        Parse one record starting at pos.

        Returns (fields, next_pos), or None when more input is needed.
        """
        d = self.dialect
        fields: list[str | None] = []

        while True:
            parsed = self._parse_field(buf, pos, final)
            if parsed is None:
                return None
            value, pos = parsed
            fields.append(value)

            if buf.startswith(d.field_delimiter, pos):
                pos += len(d.field_delimiter)
                continue
            if buf.startswith(d.line_terminator, pos):
                return fields, pos + len(d.line_terminator)
            if pos >= len(buf) and final:
                # Last record without a trailing terminator
                return fields, pos

            rest = buf[pos:]
            if not final and (
                d.field_delimiter.startswith(rest) or d.line_terminator.startswith(rest)
            ):
                return None
            raise self._error(f"expected delimiter or line terminator, got {rest[:20]!r}")

    def _convert(self, fields: list[str | None]) -> list[Any]:
        if self.expected_fields is not None and len(fields) != self.expected_fields:
            raise self._error(
                f"expected {self.expected_fields} fields, found {len(fields)}"
            )

        values: list[Any] = list(fields)
        for i in self.binary_columns:
            if i < len(values) and values[i] is not None:
                try:
                    values[i] = bytes.fromhex(values[i])
                except ValueError as e:
                    raise self._error(f"invalid hex in field {i + 1}") from e

        self.records_read += 1
        return values
