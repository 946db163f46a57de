"""Turn batch-mode tabular text into CSV rows and flat-text report blocks.

Query output arrives in the MySQL client's batch format: one row per line,
fields separated by tabs, with tab, newline, NUL and backslash inside a value
written as backslash escapes. Everything here decodes those escapes before a
value is quoted or printed, so exported text matches the stored value.
"""
from typing import List, Optional, Sequence

CONTEXT_COLUMNS = ("database_name", "table_name", "column_name")
UNKNOWN_HEADER = "row_data"

_ESCAPES = {
    "\\": "\\",
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\x00",
    "Z": "\x1a",
    "b": "\b",
}

_BATCH_ESCAPES = str.maketrans({
    "\\": "\\\\",
    "\n": "\\n",
    "\t": "\\t",
    "\r": "\\r",
    "\x00": "\\0",
})


def parse_tabular(text: str) -> List[List[str]]:
    """Split batch output into rows of raw (still escaped) fields."""
    if not text:
        return []
    if text.endswith("\n"):
        text = text[:-1]
    return [line.split("\t") for line in text.split("\n")]


def unescape_field(raw: str) -> str:
    if "\\" not in raw:
        return raw
    out = []
    i = 0
    n = len(raw)
    while i < n:
        ch = raw[i]
        if ch == "\\" and i + 1 < n:
            nxt = raw[i + 1]
            out.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def escape_field(value: str) -> str:
    """Inverse of `unescape_field` for the characters the batch format protects."""
    return value.translate(_BATCH_ESCAPES)


def decode_row(fields: Sequence[str], null_marker: str) -> List[Optional[str]]:
    return [None if f == null_marker else unescape_field(f) for f in fields]


def align(header: Sequence[str], row: Sequence[Optional[str]]) -> List[Optional[str]]:
    """Pad a row truncated by the transport so it has one field per header column."""
    if len(row) >= len(header):
        return list(row)
    return list(row) + [""] * (len(header) - len(row))


def csv_quote(value: Optional[str]) -> str:
    if value is None:
        return "NULL"
    return '"' + value.replace("\r", "").replace('"', '""') + '"'


def _header_name(name: str) -> str:
    if any(c in name for c in ',"\r\n'):
        return csv_quote(name)
    return name


def csv_header(header: Sequence[str]) -> str:
    names = list(CONTEXT_COLUMNS) + ([_header_name(h) for h in header] if header else [UNKNOWN_HEADER])
    return ",".join(names) + "\n"


def encode_csv_rows(triple, header: Sequence[str], rows: Sequence[Sequence[Optional[str]]]) -> List[str]:
    """Render decoded rows as CSV lines prefixed with the database/table/column context."""
    prefix = ",".join(csv_quote(v) for v in (triple.database, triple.table, triple.column))
    lines = []
    for row in rows:
        fields = align(header, row)
        lines.append(prefix + "," + ",".join(csv_quote(v) for v in fields) + "\n")
    return lines


def encode_text_block(triple, header: Sequence[str], rows: Sequence[Sequence[Optional[str]]]) -> str:
    parts = [
        f"# Database: {triple.database}\n",
        f"# Table: {triple.table}\n",
        f"# Column: {triple.column}\n",
    ]
    for row in rows:
        parts.append("---\n")
        for idx, value in enumerate(align(header, row)):
            name = header[idx] if idx < len(header) else f"column_{idx + 1}"
            parts.append(f"{name}={'NULL' if value is None else value}\n")
    return "".join(parts)


def tabular_rows(triple, header: Sequence[str], rows: Sequence[Sequence[Optional[str]]]) -> List[list]:
    """Rows as plain lists (context first) for cell-based outputs such as Excel."""
    return [[triple.database, triple.table, triple.column] + align(header, row) for row in rows]
