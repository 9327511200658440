"""Dialect registry — maps a target's dialect tag to its adapter."""

from sqlgate.adapters.base import TargetDialect
from sqlgate.adapters.mysql import MySQLDialect
from sqlgate.adapters.oracle import OracleDialect
from sqlgate.adapters.postgres import PostgresDialect
from sqlgate.adapters.sqlite import SQLiteDialect
from sqlgate.errors import ValidationError

DIALECTS: dict[str, TargetDialect] = {
    d.name: d for d in (OracleDialect(), PostgresDialect(), MySQLDialect(), SQLiteDialect())
}


def get_dialect(name: str) -> TargetDialect:
    try:
        return DIALECTS[name]
    except KeyError:
        raise ValidationError(
            f"Unsupported dialect '{name}' (expected one of: {', '.join(sorted(DIALECTS))})"
        ) from None
