"""
Query engine.

Compiles a QueryFilters set into a storage query:
1. Equality on source, level, trace_id
2. Inclusive date range on the client date
3. Content regex as a LIKE pre-filter plus an in-process regex match

SQLite has no native regex, so the LIKE stage only narrows candidates.
It is built from a literal that every regex match must contain, which
keeps it from ever dropping a row the regex would accept.
"""

import asyncio
import re
import string
from typing import List, Optional, Pattern

import structlog

from ..models.log_record import QueryFilters, StoredLogRecord
from .exceptions import InvalidFilter
from .metrics import MetricsCollector
from .storage import DEFAULT_LIMIT, CompiledFilter, LogStorage, RawQueryResult

logger = structlog.get_logger(__name__)

LIKE_ESCAPE = "\\"


def escape_like(literal: str) -> str:
    """Escape LIKE wildcards (and the escape character itself)."""
    return (
        literal.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _skip_class(pattern: str, start: int) -> int:
    """Return the index just past the character class opening at start."""
    j = start + 1
    if j < len(pattern) and pattern[j] == "^":
        j += 1
    if j < len(pattern) and pattern[j] == "]":
        j += 1
    while j < len(pattern) and pattern[j] != "]":
        if pattern[j] == "\\":
            j += 1
        j += 1
    return j + 1


HEX_ESCAPE_WIDTHS = {"x": 2, "u": 4, "U": 8}


def _skip_escape(pattern: str, start: int) -> int:
    """Return the index just past the escape sequence at start, operands included."""
    escaped = pattern[start + 1]
    j = start + 2
    if escaped in HEX_ESCAPE_WIDTHS:
        end = min(j + HEX_ESCAPE_WIDTHS[escaped], len(pattern))
        while j < end and pattern[j] in string.hexdigits:
            j += 1
    elif escaped == "N" and j < len(pattern) and pattern[j] == "{":
        close = pattern.find("}", j)
        j = close + 1 if close != -1 else len(pattern)
    elif escaped.isdigit():
        # Octal escapes and group references; over-consuming only shortens runs
        while j < len(pattern) and pattern[j].isdigit():
            j += 1
    return j


def required_literal(pattern: str) -> Optional[str]:
    """
    Longest literal substring that any match of pattern must contain.

    Returns None when no such literal can be determined safely: patterns
    with alternation or inline flags, or ones made only of classes,
    groups and optional pieces. Group contents are never used.
    """
    if "|" in pattern or "(?" in pattern:
        return None

    runs: List[str] = []
    current: List[str] = []
    depth = 0
    i = 0

    def flush() -> None:
        if current:
            runs.append("".join(current))
            current.clear()

    while i < len(pattern):
        ch = pattern[i]

        if ch == "\\":
            if i + 1 >= len(pattern):
                break
            escaped = pattern[i + 1]
            i = _skip_escape(pattern, i)
            if depth > 0:
                continue
            if escaped.isalnum() or escaped.isspace():
                # \d, \w, \b, \1, \n ... are not single literal characters here
                flush()
            else:
                current.append(escaped)
            continue

        if ch == "[":
            flush()
            i = _skip_class(pattern, i)
            continue

        if ch == "(":
            depth += 1
            flush()
            i += 1
            continue

        if ch == ")":
            depth = max(depth - 1, 0)
            flush()
            i += 1
            continue

        if depth > 0:
            i += 1
            continue

        if ch in "*?":
            # The quantified character is optional
            if current:
                current.pop()
            flush()
            i += 1
            continue

        if ch == "{":
            if current:
                current.pop()
            flush()
            close = pattern.find("}", i)
            i = close + 1 if close != -1 else i + 1
            continue

        if ch == "+":
            flush()
            i += 1
            continue

        if ch in ".^$":
            flush()
            i += 1
            continue

        current.append(ch)
        i += 1

    flush()
    if not runs:
        return None
    return max(runs, key=len)


def compile_content_regex(pattern: str) -> Pattern[str]:
    """Compile a content regex, raising InvalidFilter on bad syntax."""
    try:
        return re.compile(pattern)
    except re.error as e:
        raise InvalidFilter(
            f"Invalid content regex: {e}",
            details={"pattern": pattern},
        )


class QueryEngine:
    """
    Compiles filters and runs them against the storage engine.

    Storage calls are blocking and run in a worker thread.
    """

    def __init__(
        self,
        storage: LogStorage,
        default_limit: int = DEFAULT_LIMIT,
        metrics: Optional[MetricsCollector] = None,
    ) -> None:
        self.storage = storage
        self.default_limit = default_limit
        self.metrics = metrics

    def compile(self, filters: QueryFilters) -> CompiledFilter:
        """Turn a filter set into a conjunction of storage predicates."""
        compiled = CompiledFilter()

        if filters.source:
            compiled.clauses.append("source = ?")
            compiled.params.append(filters.source)

        if filters.level:
            compiled.clauses.append("level = ?")
            compiled.params.append(filters.level)

        if filters.trace_id:
            compiled.clauses.append("trace_id = ?")
            compiled.params.append(filters.trace_id)

        if filters.start_date:
            compiled.clauses.append("date >= ?")
            compiled.params.append(filters.start_date)

        if filters.end_date:
            compiled.clauses.append("date <= ?")
            compiled.params.append(filters.end_date)

        if filters.content_regex:
            self._compile_content(filters.content_regex, compiled)

        return compiled

    def _compile_content(self, pattern: str, compiled: CompiledFilter) -> None:
        try:
            regex = compile_content_regex(pattern)
        except InvalidFilter as e:
            # Lenient: an unusable regex behaves as if it was omitted
            logger.warning("Ignoring content regex", error=str(e), pattern=pattern)
            if self.metrics:
                self.metrics.record_invalid_filter()
            return

        literal = required_literal(pattern)
        if literal:
            compiled.clauses.append(f"content LIKE ? ESCAPE '{LIKE_ESCAPE}'")
            compiled.params.append(f"%{escape_like(literal)}%")

        compiled.predicate = lambda content: regex.search(content) is not None

    def resolve_limit(self, limit: Optional[int]) -> int:
        if not limit or limit <= 0:
            return self.default_limit
        return limit

    async def search(self, filters: QueryFilters) -> List[StoredLogRecord]:
        """Run a structured query."""
        compiled = self.compile(filters)
        limit = self.resolve_limit(filters.limit)

        results = await asyncio.to_thread(self.storage.query, compiled, limit)

        logger.debug(
            "Query executed",
            clauses=len(compiled.clauses),
            regex=compiled.predicate is not None,
            limit=limit,
            results=len(results),
        )
        if self.metrics:
            self.metrics.record_query(len(results))

        return results

    async def raw(self, statement: str) -> RawQueryResult:
        """Run a raw SQL statement. Access control belongs to the caller."""
        logger.warning("Executing raw SQL statement", statement=statement[:200])
        result = await asyncio.to_thread(self.storage.raw_query, statement)
        if self.metrics:
            self.metrics.record_raw_query("read" if result.is_read else "write")
        return result
