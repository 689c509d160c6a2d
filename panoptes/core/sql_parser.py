"""SQL classification for the Panoptes audit pipeline.

``classify_sql()`` maps raw SQL text to a ParsedSql: operation type and
category, main table, tables involved and a normalized form with literals
replaced by ``?``. It uses bounded regex heuristics, not a SQL grammar, and
never raises: statements it cannot read (scripts, procedure calls) simply
yield no main table.
"""

from __future__ import annotations

import re
from typing import Any, Optional

from panoptes.audit.models import ParsedSql
from panoptes.constants import DDL_KEYWORDS, DML_KEYWORDS, NORMALIZED_PLACEHOLDER

_IDENT = r"([a-zA-Z0-9_.\"`\[\]]+)"

# Main-table patterns in priority order: first pattern that matches wins.
_MAIN_TABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bFROM\s+" + _IDENT, re.IGNORECASE),
    re.compile(r"\bINTO\s+" + _IDENT, re.IGNORECASE),
    re.compile(r"\bUPDATE\s+" + _IDENT, re.IGNORECASE),
    re.compile(r"\bDELETE\s+FROM\s+" + _IDENT, re.IGNORECASE),
)

_JOIN_RE = re.compile(
    r"\b(?:INNER\s+|LEFT\s+|RIGHT\s+|FULL\s+|CROSS\s+)?JOIN\s+" + _IDENT,
    re.IGNORECASE,
)

_QUOTE_CHARS_RE = re.compile(r"[\"`\[\]]")
_STRING_LITERAL_RE = re.compile(r"'[^']*'")
_NUMBER_LITERAL_RE = re.compile(r"\b\d+(?:\.\d+)?\b")
_WHITESPACE_RE = re.compile(r"\s+")


def classify_sql(sql: Any) -> ParsedSql:
    """Classify a SQL statement.

    Empty or non-string input returns an OTHER/OTHER ParsedSql with no tables
    and an empty normalized string.
    """
    if not sql or not isinstance(sql, str) or not sql.strip():
        return ParsedSql()

    trimmed = sql.strip()
    first_word = trimmed.split(None, 1)[0].upper()

    if first_word in DML_KEYWORDS:
        operation_type, category = first_word, "DML"
    elif first_word in DDL_KEYWORDS:
        operation_type, category = "DDL", "DDL"
    else:
        operation_type, category = "OTHER", "OTHER"

    main_table = _extract_main_table(trimmed)

    tables: list[str] = [main_table] if main_table else []
    for match in _JOIN_RE.finditer(trimmed):
        table = clean_identifier(match.group(1))
        if table and table not in tables:
            tables.append(table)

    return ParsedSql(
        operation_type=operation_type,  # type: ignore[arg-type]
        operation_category=category,  # type: ignore[arg-type]
        main_table=main_table,
        tables_involved=tuple(tables),
        normalized_sql=normalize_sql(trimmed),
    )


parse_sql = classify_sql


def _extract_main_table(sql: str) -> Optional[str]:
    for pattern in _MAIN_TABLE_PATTERNS:
        match = pattern.search(sql)
        if match:
            return clean_identifier(match.group(1)) or None
    return None


def clean_identifier(identifier: str) -> str:
    """Strip double quotes, backticks and square brackets from an identifier."""
    return _QUOTE_CHARS_RE.sub("", identifier).strip()


def normalize_sql(sql: str) -> str:
    """Replace string and numeric literals with ``?`` and collapse whitespace.

    For grouping and redaction only; the result is not safe to re-execute.
    Idempotent: normalizing normalized SQL returns it unchanged.
    """
    normalized = _STRING_LITERAL_RE.sub(NORMALIZED_PLACEHOLDER, sql)
    normalized = _NUMBER_LITERAL_RE.sub(NORMALIZED_PLACEHOLDER, normalized)
    return _WHITESPACE_RE.sub(" ", normalized).strip()
