"""
Read-only safety validation for caller-supplied SQL.

This is a lexical blocklist over a fixed keyword set, not a parser. It is a
defense-in-depth layer: sessions are additionally opened read-only, and the
login role should only hold SELECT privileges.

Pipeline:
1. strip `--` line comments and `/* */` block comments in one left-to-right
   pass, so whichever comment opens first swallows the other marker
2. collapse whitespace and lower-case (matching only; the original text runs)
3. require a leading `select`
4. scan the forbidden patterns in order; the first hit rejects
5. reject any second statement after a `;`
"""

from __future__ import annotations

import re
from typing import List, Tuple

from query_gateway.domain.errors import RejectedError

NOT_A_READ_QUERY = "not a read query"
MULTIPLE_STATEMENTS = "multiple statements"

_COMMENT = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)
_WHITESPACE = re.compile(r"\s+")
_READ_KEYWORD = re.compile(r"^select\b")

# Word boundaries keep identifiers such as `insertedDate` or `created_at` legal.
FORBIDDEN_PATTERNS: List[Tuple[re.Pattern[str], str]] = [
    (re.compile(r"\b(insert|update|delete|merge|copy)\b"), "write operations"),
    (re.compile(r"\b(drop|create|alter|truncate)\b"), "schema modifications"),
    (re.compile(r"\b(exec|execute|sp_executesql|call)\b"), "command execution"),
    (re.compile(r"\b(xp_|sp_)\w+"), "system stored procedures"),
    (re.compile(r"\b(grant|revoke|deny)\b"), "permission changes"),
    (re.compile(r"\binto\b"), "SELECT INTO"),
    (re.compile(r"\b(openquery|openrowset|opendatasource|dblink)\b"), "linked server queries"),
    # Session state outlives the request on a pooled connection.
    (
        re.compile(r"\b(set|reset|set_config|commit|rollback|savepoint|discard)\b"),
        "session changes",
    ),
]


def clean_query(query_text: str) -> str:
    """Comment-free, whitespace-collapsed, lower-cased form used for matching."""
    cleaned = _COMMENT.sub(" ", query_text)
    return _WHITESPACE.sub(" ", cleaned).strip().lower()


def validate_query(query_text: str) -> None:
    """
    Accept a single read statement, or raise.

    A trailing `;` is allowed. A `;` inside a string literal counts as a
    statement separator, so such queries are rejected.

    Raises
    ------
    RejectedError
        With `category` set to "not a read query", the forbidden category
        that matched first, or "multiple statements".
    """
    cleaned = clean_query(query_text or "")

    if not _READ_KEYWORD.match(cleaned):
        raise RejectedError(
            "Only SELECT queries are allowed. Write operations (INSERT, UPDATE, DELETE, etc.) "
            "are not permitted.",
            category=NOT_A_READ_QUERY,
        )

    for pattern, category in FORBIDDEN_PATTERNS:
        if pattern.search(cleaned):
            raise RejectedError(
                f"Query contains forbidden keyword or pattern ({category}). "
                f"Only SELECT queries are allowed.",
                category=category,
            )

    if ";" in cleaned.rstrip("; "):
        raise RejectedError(
            "Only a single SELECT statement is allowed per query.",
            category=MULTIPLE_STATEMENTS,
        )


def is_safe_query(query_text: str) -> bool:
    """Quick boolean form of `validate_query`."""
    try:
        validate_query(query_text)
    except RejectedError:
        return False
    return True


__all__ = [
    "FORBIDDEN_PATTERNS",
    "MULTIPLE_STATEMENTS",
    "NOT_A_READ_QUERY",
    "clean_query",
    "is_safe_query",
    "validate_query",
]
