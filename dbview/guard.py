"""Read-only SQL guard.

The guard is a text classifier, not a parser. Before looking for write
keywords or a second statement it neutralizes everything an attacker could
hide behind:

* single-quoted strings, double-quoted identifiers and dollar-quoted bodies
  are replaced with an opaque placeholder;
* block and line comments are replaced with a space.

Literals and comments are matched in one left-to-right pass so that whichever
construct opens first wins (``-- it's`` is a comment, not the start of a
string). Backslash escapes inside quotes are ambiguous across backends, so the
pass runs once with and once without them and a statement must be clean under
both readings.
"""

from __future__ import annotations

import re

from .models import GuardVerdict

WRITE_KEYWORDS: tuple[str, ...] = (
    "INSERT",
    "UPDATE",
    "DELETE",
    "DROP",
    "ALTER",
    "TRUNCATE",
    "CREATE",
    "GRANT",
    "REVOKE",
    "REPLACE",
    "MERGE",
    "COPY",
    "CALL",
)

EMPTY_STATEMENT = "Empty SQL statement"
MULTIPLE_STATEMENTS = "Multiple statements are not allowed in read-only mode"

_STRING_PLACEHOLDER = " __STR__ "
_IDENTIFIER_PLACEHOLDER = " __ID__ "

_WRITE_PATTERN = re.compile(r"\b(" + "|".join(WRITE_KEYWORDS) + r")\b", re.IGNORECASE)
_WHITESPACE = re.compile(r"\s+")

# ``$`` is an identifier character, so ``x$a$`` is a name and never opens a dollar quote.
_DOLLAR_QUOTED = r"(?P<dollar>(?<![\w$])\$(?P<tag>(?:[A-Za-z_][A-Za-z0-9_]*)?)\$[\s\S]*?\$(?P=tag)\$)"
_BLOCK_COMMENT = r"(?P<block>/\*[\s\S]*?\*/)"
_LINE_COMMENT = r"(?P<line>--[^\n]*)"


def _literal_pattern(backslash_escapes: bool) -> re.Pattern[str]:
    if backslash_escapes:
        single = r"(?P<string>'(?:[^'\\]|\\[\s\S]|'')*')"
        double = r'(?P<ident>"(?:[^"\\]|\\[\s\S]|"")*")'
    else:
        single = r"(?P<string>'(?:[^']|'')*')"
        double = r'(?P<ident>"(?:[^"]|"")*")'
    return re.compile("|".join((_BLOCK_COMMENT, _LINE_COMMENT, _DOLLAR_QUOTED, single, double)))


_READINGS = (_literal_pattern(backslash_escapes=True), _literal_pattern(backslash_escapes=False))


def _neutralize(sql: str, pattern: re.Pattern[str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        if match.group("string") is not None or match.group("dollar") is not None:
            return _STRING_PLACEHOLDER
        if match.group("ident") is not None:
            return _IDENTIFIER_PLACEHOLDER
        return " "

    return _WHITESPACE.sub(" ", pattern.sub(_replace, sql)).strip()


def _classify(normalized: str) -> GuardVerdict:
    match = _WRITE_PATTERN.search(normalized)
    if match:
        keyword = match.group(1).upper()
        return GuardVerdict(
            valid=False,
            violating_keyword=keyword,
            reason=f"Statement '{keyword}' is not allowed in read-only mode",
        )
    _, separator, tail = normalized.partition(";")
    if separator and tail.strip():
        return GuardVerdict(valid=False, reason=MULTIPLE_STATEMENTS)
    return GuardVerdict(valid=True)


def validate_readonly_sql(sql: str) -> GuardVerdict:
    """Classify ``sql`` for a read-only execution path."""

    if not sql or not sql.strip():
        return GuardVerdict(valid=False, reason=EMPTY_STATEMENT)
    for pattern in _READINGS:
        verdict = _classify(_neutralize(sql, pattern))
        if not verdict.valid:
            return verdict
    return GuardVerdict(valid=True)


class SqlGuard:
    """Object form of :func:`validate_readonly_sql` for injection into services."""

    keywords = WRITE_KEYWORDS

    @staticmethod
    def validate(sql: str) -> GuardVerdict:
        return validate_readonly_sql(sql)


__all__ = [
    "EMPTY_STATEMENT",
    "MULTIPLE_STATEMENTS",
    "SqlGuard",
    "WRITE_KEYWORDS",
    "validate_readonly_sql",
]
