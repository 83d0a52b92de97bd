"""
Wire codec for a single log record.

Line format: <date>\\t<time>\\t<level>\\t<trace-id>\\t<content>

Content escaping: backslash becomes two backslashes, then newline becomes
backslash-n. Decoding undoes both in one left-to-right scan, so literal
"\\n" text in the original content survives the round trip.

Known limitation: raw tab characters are unsupported in any field. Tabs in
content stay inside the fifth field on decode; tabs in the first four
fields shift the columns.
"""

import re
from typing import Optional

from ..models.log_record import DEFAULT_SOURCE, LogRecord
from .exceptions import MalformedRecord

FIELD_SEPARATOR = "\t"
FIELD_COUNT = 5

_ESCAPE_SEQUENCE = re.compile(r"\\(.)", re.DOTALL)
_UNESCAPES = {"n": "\n", "\\": "\\"}


def escape_content(content: str) -> str:
    """Escape backslashes, then newlines."""
    return content.replace("\\", "\\\\").replace("\n", "\\n")


def unescape_content(escaped: str) -> str:
    """Inverse of escape_content. Unknown escapes are kept verbatim."""

    def _replace(match: "re.Match[str]") -> str:
        return _UNESCAPES.get(match.group(1), match.group(0))

    return _ESCAPE_SEQUENCE.sub(_replace, escaped)


def encode_line(
    date: str,
    time: str,
    level: str,
    trace_id: Optional[str],
    content: str,
) -> str:
    """Encode the five record fields into one tab-delimited line."""
    return FIELD_SEPARATOR.join(
        (date, time, level, trace_id or "", escape_content(content))
    )


def encode_record(record: LogRecord) -> str:
    """Encode a LogRecord. The source travels in the batch envelope, not the line."""
    return encode_line(record.date, record.time, record.level, record.trace_id, record.content)


def decode_line(line: str, source: Optional[str] = None) -> LogRecord:
    """
    Decode one encoded line into a LogRecord for the given source.

    Raises:
        MalformedRecord: fewer than five fields, or empty date/time.
    """
    if not isinstance(line, str):
        raise MalformedRecord("Invalid log format: line must be a string")

    parts = line.split(FIELD_SEPARATOR, FIELD_COUNT - 1)
    if len(parts) < FIELD_COUNT:
        raise MalformedRecord(
            "Invalid log format",
            details={"fields": len(parts), "expected": FIELD_COUNT},
        )

    date, time, level, trace_id, content = parts
    if not date or not time:
        raise MalformedRecord("Invalid log format: date and time are required")

    return LogRecord(
        source=source or DEFAULT_SOURCE,
        date=date,
        time=time,
        level=level,
        trace_id=trace_id or None,
        content=unescape_content(content),
    )
