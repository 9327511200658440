"""SQL text helpers — classification, table extraction and count rewrites.

All of this is pattern matching over statement text, not parsing. Everything
that needs to know "which table does this statement touch" goes through
``extract_target_table`` so a real parser can replace it in one place.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlgate.errors import ValidationError
from sqlgate.models.query import QueryType

_LEADING_NOISE_RE = re.compile(r"\A(?:\s+|--[^\n]*(?:\n|\Z)|/\*.*?\*/)+", re.DOTALL)
_KEYWORD_RE = re.compile(r"[A-Za-z]+")
_NON_WORD_RE = re.compile(r"\W", re.ASCII)

_IDENT = r'(?:"[^"]+"|`[^`]+`|\[[^\]]+\]|[A-Za-z_][\w$#]*)'
_QUALIFIED = rf"{_IDENT}(?:\s*\.\s*{_IDENT})?"

_TARGET_TABLE_RE = re.compile(
    rf"^(?:UPDATE(?:\s+ONLY)?|DELETE\s+FROM|DELETE|INSERT\s+INTO)\s+({_QUALIFIED})",
    re.IGNORECASE,
)
_UPDATE_RE = re.compile(
    rf"^UPDATE(?:\s+ONLY)?\s+(?P<table>{_QUALIFIED})"
    r"(?:\s+(?:AS\s+)?(?!SET\b)(?P<alias>\w+))?"
    r"\s+SET\s.*?(?:\sWHERE\s+(?P<where>.*))?$",
    re.IGNORECASE | re.DOTALL,
)
_DELETE_RE = re.compile(
    rf"^DELETE\s+(?:FROM\s+)?(?P<table>{_QUALIFIED})"
    r"(?:\s+(?:AS\s+)?(?!WHERE\b)(?P<alias>\w+))?"
    r"(?:\s+WHERE\s+(?P<where>.*))?$",
    re.IGNORECASE | re.DOTALL,
)
_INSERT_SELECT_RE = re.compile(
    rf"^INSERT\s+INTO\s+{_QUALIFIED}\s*(?:\([^)]*\))?\s*(?P<select>(?:SELECT|WITH)\b.*)$",
    re.IGNORECASE | re.DOTALL,
)
_INSERT_VALUES_RE = re.compile(
    rf"^INSERT\s+INTO\s+{_QUALIFIED}\s*(?:\([^)]*\))?\s*VALUES\s*(?P<values>.*)$",
    re.IGNORECASE | re.DOTALL,
)
_BIND_NAME_RE = re.compile(r"(?<![:\w]):([A-Za-z_]\w*)")
_STRING_LITERAL_RE = re.compile(r"'(?:[^']|'')*'")

BACKUP_MARKER = "_BACKUP_"
MAX_IDENTIFIER_LENGTH = 30  # Oracle < 12.2


def strip_leading_comments(sql: str) -> str:
    """Drop leading whitespace, ``--`` line comments and ``/* */`` blocks."""
    return _LEADING_NOISE_RE.sub("", sql, count=1)


def _normalise(sql: str) -> str:
    return strip_leading_comments(sql).strip().rstrip(";").rstrip()


def classify_statement(sql: str) -> QueryType:
    """Classify by leading keyword. Unknown verbs are treated as mutating."""
    m = _KEYWORD_RE.match(strip_leading_comments(sql))
    if not m:
        return QueryType.DDL
    keyword = m.group(0).upper()
    try:
        return QueryType(keyword.lower())
    except ValueError:
        return QueryType.DDL


def extract_target_table(sql: str) -> tuple[str | None, bool]:
    """Return ``(table, True)`` for UPDATE/DELETE/INSERT, else ``(None, False)``."""
    m = _TARGET_TABLE_RE.match(_normalise(sql))
    if not m:
        return None, False
    return re.sub(r"\s*\.\s*", ".", m.group(1)), True


def build_count_query(sql: str) -> str | None:
    """Rewrite a DML statement into a row count over the rows it would touch."""
    text = _normalise(sql)

    for pattern in (_UPDATE_RE, _DELETE_RE):
        m = pattern.match(text)
        if m:
            source = re.sub(r"\s*\.\s*", ".", m.group("table"))
            if m.group("alias"):
                source = f"{source} {m.group('alias')}"
            where = f" WHERE {m.group('where').strip()}" if m.group("where") else ""
            return f"SELECT COUNT(*) AS row_count FROM {source}{where}"

    m = _INSERT_SELECT_RE.match(text)
    if m:
        return f"SELECT COUNT(*) AS row_count FROM ({m.group('select')}) counted"
    return None


def count_values_rows(sql: str) -> int | None:
    """Count the row tuples of an ``INSERT … VALUES (…), (…)`` statement."""
    m = _INSERT_VALUES_RE.match(_normalise(sql))
    if not m:
        return None

    rows = 0
    depth = 0
    quote: str | None = None
    for ch in m.group("values"):
        if quote:
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            if depth == 0:
                rows += 1
            depth += 1
        elif ch == ")":
            depth -= 1
    return rows or None


def split_qualified(table: str) -> tuple[str | None, str]:
    schema, _, name = table.rpartition(".")
    return (schema or None), name


def backup_table_name(table: str, record_id: str, schema: str | None = None) -> str:
    """``<table>_BACKUP_<id>``, unique per query record and clipped to 30 chars.

    The result is always a bare identifier: characters that would need quoting
    in the source name become underscores.
    """
    source_schema, name = split_qualified(table)
    name = _NON_WORD_RE.sub("_", name.strip('"`[]'))
    if not name or name[0].isdigit():
        name = f"T{name}"
    unique = record_id.replace("-", "")[:12].upper()
    room = MAX_IDENTIFIER_LENGTH - len(BACKUP_MARKER) - len(unique)
    backup = f"{name[:room]}{BACKUP_MARKER}{unique}"
    schema = schema or source_schema
    return f"{schema}.{backup}" if schema else backup


# ── Named parameters ──────────────────────────────────────────────


def _coerce(name: str, type_: str, value: Any) -> Any:
    if value is None:
        return None
    kind = type_.lower()
    try:
        if kind in ("string", "text", "varchar"):
            return str(value)
        if kind in ("integer", "int"):
            if isinstance(value, bool):
                raise ValueError("boolean is not an integer")
            return int(value)
        if kind in ("number", "float", "decimal", "numeric"):
            return Decimal(str(value)) if kind in ("decimal", "numeric") else float(value)
        if kind in ("boolean", "bool"):
            if isinstance(value, bool):
                return value
            lowered = str(value).strip().lower()
            if lowered in ("true", "1", "yes", "y"):
                return True
            if lowered in ("false", "0", "no", "n"):
                return False
            raise ValueError(f"not a boolean: {value!r}")
        if kind == "date":
            return value if isinstance(value, date) else date.fromisoformat(str(value))
        if kind in ("datetime", "timestamp"):
            return value if isinstance(value, datetime) else datetime.fromisoformat(str(value))
    except (ValueError, TypeError, InvalidOperation) as exc:
        raise ValidationError(f"Parameter '{name}' is not a valid {type_}: {exc}") from exc
    raise ValidationError(f"Parameter '{name}' has unsupported type '{type_}'")


def referenced_parameters(sql: str) -> set[str]:
    return set(_BIND_NAME_RE.findall(_STRING_LITERAL_RE.sub("''", sql)))


def bind_parameters(sql: str, parameters: Iterable[Mapping[str, Any]]) -> dict[str, Any]:
    """Coerce typed parameters and keep only those the statement references."""
    wanted = referenced_parameters(sql)
    bound: dict[str, Any] = {}
    for param in parameters:
        name = param["name"]
        value = _coerce(name, param.get("type", "string"), param.get("value"))
        if name in wanted:
            bound[name] = value
    missing = wanted - bound.keys()
    if missing:
        raise ValidationError(f"Missing value for parameter(s): {', '.join(sorted(missing))}")
    return bound
