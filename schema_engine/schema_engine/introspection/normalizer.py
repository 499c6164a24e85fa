"""Dialect normalization for captured column types, defaults and view bodies.

Types are reduced to one canonical upper-case spelling per synonym group so
that ``int4`` on PostgreSQL and ``INTEGER`` on SQLite compare as equal.
Defaults are parsed with :mod:`sqlglot` and stripped of type casts
(``'active'::character varying`` becomes ``'active'``).
"""

from __future__ import annotations

import logging
import re

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError

logger = logging.getLogger(__name__)

# Canonical type aliases.  Every value must be a type name that the common
# SQL dialects accept, since captured types are replayed verbatim.
_TYPE_ALIASES: dict[str, str] = {
    "INT": "INTEGER",
    "INT4": "INTEGER",
    "SERIAL": "INTEGER",
    "INT8": "BIGINT",
    "BIGSERIAL": "BIGINT",
    "INT2": "SMALLINT",
    "FLOAT8": "DOUBLE PRECISION",
    "DOUBLE": "DOUBLE PRECISION",
    "FLOAT4": "REAL",
    "DECIMAL": "NUMERIC",
    "CHARACTER VARYING": "VARCHAR",
    "CHARACTER": "CHAR",
    "BPCHAR": "CHAR",
    "BOOL": "BOOLEAN",
    "TIMESTAMP WITHOUT TIME ZONE": "TIMESTAMP",
    "TIMESTAMP WITH TIME ZONE": "TIMESTAMPTZ",
    "TIME WITHOUT TIME ZONE": "TIME",
    "DATETIME": "TIMESTAMP",
}

# "VARCHAR(255)" -> ("VARCHAR", "255").  Multi-argument types such as
# NUMERIC(10, 2) do not match and keep their arguments in the type name.
_LENGTH_RE = re.compile(r"^(?P<base>[A-Za-z][\w ]*?)\s*\(\s*(?P<length>\d+)\s*\)$")

_CREATE_VIEW_RE = re.compile(
    r"^\s*CREATE\s+(?:OR\s+REPLACE\s+)?(?:TEMP(?:ORARY)?\s+)?VIEW\s+\S+\s+AS\s+",
    re.IGNORECASE,
)

# SQLAlchemy dialect name -> sqlglot dialect name.
_SQLGLOT_DIALECTS: dict[str, str] = {
    "postgresql": "postgres",
    "sqlite": "sqlite",
    "mysql": "mysql",
    "mariadb": "mysql",
    "mssql": "tsql",
    "oracle": "oracle",
}


def normalize_type(data_type: str) -> str:
    """Return the canonical spelling of *data_type*.

    Collapses whitespace, upper-cases, and applies the synonym table.  Any
    parenthesised arguments are preserved.
    """
    normalized = " ".join(data_type.strip().upper().split())
    base, paren, rest = normalized.partition("(")
    base = base.strip()
    canonical = _TYPE_ALIASES.get(base, base)
    if not paren:
        return canonical
    return f"{canonical}({rest.replace(' ', '')}"


def split_type_length(data_type: str) -> tuple[str, int | None]:
    """Split a single-argument type like ``VARCHAR(255)`` into name and length."""
    match = _LENGTH_RE.match(data_type.strip())
    if match is None:
        return normalize_type(data_type), None
    return normalize_type(match.group("base")), int(match.group("length"))


def normalize_default(default: str | None, dialect: str | None = None) -> str | None:
    """Strip type casts from a column default expression.

    Falls back to the trimmed input when :mod:`sqlglot` cannot parse the
    expression, so unusual dialect-specific defaults are never lost.
    """
    if default is None:
        return None
    text = default.strip()
    if not text:
        return None
    read = _SQLGLOT_DIALECTS.get(dialect or "")
    try:
        parsed = sqlglot.parse_one(text, read=read)
    except SqlglotError:
        logger.debug("Could not parse default expression %r; keeping it verbatim", text)
        return text

    stripped = parsed.transform(lambda node: node.this if isinstance(node, exp.Cast) else node)
    return stripped.sql(dialect=read)


def normalize_view_body(content: str) -> str:
    """Reduce a view definition to its SELECT body.

    Some dialects (SQLite) report the full ``CREATE VIEW ... AS`` statement
    while others (PostgreSQL) report only the body.
    """
    body = _CREATE_VIEW_RE.sub("", content.strip(), count=1)
    return body.strip().rstrip(";").strip()
