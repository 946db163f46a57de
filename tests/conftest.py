"""Pytest configuration and shared fixtures."""

import base64
import logging
import re

import pytest

from result_encoder import escape_field
from search_errors import QueryError, TransportError
from schema_enumerator import SYSTEM_SCHEMAS

_IDENT = r"`((?:[^`]|``)*)`"
_B64 = r"FROM_BASE64\('([A-Za-z0-9+/=]*)'\)"

_QUOTE_RE = re.compile(r"^SELECT QUOTE\(" + _B64 + r"\);$")
_SCHEMATA_RE = re.compile(r"^SELECT TO_BASE64\(SCHEMA_NAME\) FROM INFORMATION_SCHEMA\.SCHEMATA ")
_COLUMNS_RE = re.compile(
    r"^SELECT TO_BASE64\(TABLE_NAME\), TO_BASE64\(COLUMN_NAME\) FROM INFORMATION_SCHEMA\.COLUMNS "
    r"WHERE TABLE_SCHEMA = " + _B64 + r";$"
)
_HEADER_RE = re.compile(
    r"^SELECT TO_BASE64\(COLUMN_NAME\) FROM INFORMATION_SCHEMA\.COLUMNS "
    r"WHERE TABLE_SCHEMA = " + _B64 + r" AND TABLE_NAME = " + _B64 + r" ORDER BY ORDINAL_POSITION;$"
)
_SHOW_RE = re.compile(r"^SHOW COLUMNS FROM " + _IDENT + r"\." + _IDENT + r";$")
_SELECT_RE = re.compile(
    r"^SELECT (COUNT\(\*\)|\*) FROM " + _IDENT + r"\." + _IDENT + r" WHERE " + _IDENT
    + r" = '((?:[^'\\]|\\.)*)';$",
    re.DOTALL,
)

_UNQUOTE = {"0": "\x00", "Z": "\x1a", "n": "\n", "r": "\r", "t": "\t", "b": "\b"}


def mysql_quote(value: str) -> str:
    """What QUOTE() returns for a string."""
    out = value.replace("\\", "\\\\").replace("'", "\\'").replace("\x00", "\\0").replace("\x1a", "\\Z")
    return f"'{out}'"


def mysql_unquote(body: str) -> str:
    """Parse the body of a single-quoted MySQL string literal."""
    out = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch == "\\" and i + 1 < len(body):
            out.append(_UNQUOTE.get(body[i + 1], body[i + 1]))
            i += 2
            continue
        out.append(ch)
        i += 1
    return "".join(out)


def to_base64_wrapped(name: str) -> str:
    """MySQL TO_BASE64(): wraps every 76 characters."""
    encoded = base64.b64encode(name.encode("utf-8")).decode("ascii")
    return "\n".join(encoded[i:i + 76] for i in range(0, len(encoded), 76))


def _ident(text):
    return text.replace("``", "`")


def _b64(text):
    return base64.b64decode(text).decode("utf-8", "surrogateescape")


class FakeTable:
    def __init__(self, columns, rows=(), rejects=(), hide_catalog_header=False):
        self.columns = list(columns)
        self.rows = [list(r) for r in rows]
        # Columns whose comparison the server refuses (e.g. JSON/geometry types)
        self.rejects = set(rejects)
        self.hide_catalog_header = hide_catalog_header


class FakeServer:
    """In-memory stand-in for a MySQL server speaking batch tabular text.

    It understands exactly the statements the search tools issue, and it
    parses identifiers and literals back out of the query text.
    """
    null_marker = "\\N"

    def __init__(self, databases=None):
        self.databases = databases or {}
        self.queries = []
        self.failures = []  # (substring, exception)
        self.closed = False

    def fail_when(self, fragment, exc):
        self.failures.append((fragment, exc))

    def _render(self, rows):
        return "".join(
            "\t".join(self.null_marker if v is None else escape_field(str(v)) for v in row) + "\n"
            for row in rows
        )

    def execute(self, query):
        self.queries.append(query)
        for fragment, exc in self.failures:
            if fragment in query:
                raise exc

        m = _QUOTE_RE.match(query)
        if m:
            return self._render([[mysql_quote(_b64(m.group(1)))]])

        if _SCHEMATA_RE.match(query):
            return self._render([[to_base64_wrapped(db)] for db in self.databases if db not in SYSTEM_SCHEMAS])

        m = _COLUMNS_RE.match(query)
        if m:
            tables = self.databases.get(_b64(m.group(1)), {})
            return self._render([
                [to_base64_wrapped(t), to_base64_wrapped(c)]
                for t, table in tables.items() for c in table.columns
            ])

        m = _HEADER_RE.match(query)
        if m:
            table = self.databases.get(_b64(m.group(1)), {}).get(_b64(m.group(2)))
            if table is None or table.hide_catalog_header:
                return ""
            return self._render([[to_base64_wrapped(c)] for c in table.columns])

        m = _SHOW_RE.match(query)
        if m:
            table = self._table(_ident(m.group(1)), _ident(m.group(2)))
            return self._render([[c, "varchar(255)", "YES", "", None, ""] for c in table.columns])

        m = _SELECT_RE.match(query)
        if m:
            what, db, tbl, col, literal = m.groups()
            table = self._table(_ident(db), _ident(tbl))
            col = _ident(col)
            if col not in table.columns:
                raise QueryError(f"(1054) Unknown column '{col}' in 'where clause'", 1054)
            if col in table.rejects:
                raise QueryError("(3144) Cannot create a JSON value from a string with CHARACTER SET 'binary'.", 3144)
            value = mysql_unquote(literal)
            idx = table.columns.index(col)
            hits = [r for r in table.rows if r[idx] is not None and str(r[idx]) == value]
            if what == "COUNT(*)":
                return self._render([[len(hits)]])
            return self._render(hits)

        raise QueryError(f"(1064) You have an error in your SQL syntax near {query[:60]!r}", 1064)

    def _table(self, db, tbl):
        try:
            return self.databases[db][tbl]
        except KeyError:
            raise QueryError(f"(1146) Table '{db}.{tbl}' doesn't exist", 1146)

    def close(self):
        self.closed = True


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def transport_error():
    return TransportError("(2013) Lost connection to MySQL server during query", 2013)


@pytest.fixture
def triple_factory():
    from schema_enumerator import SchemaTriple

    def make(database="shop", table="customers", column="name"):
        return SchemaTriple(database, table, column)
    return make


@pytest.fixture
def clean_root_logger():
    root = logging.getLogger()
    before = list(root.handlers)
    level = root.level
    yield
    for h in list(root.handlers):
        if h not in before:
            root.removeHandler(h)
    root.setLevel(level)
