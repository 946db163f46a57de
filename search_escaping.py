"""Identifier quoting and server-side literal escaping.

Identifiers are quoted client-side (backtick doubling). The search term is
never escaped here: it travels to the server base64-encoded and comes back
as the output of QUOTE(), which is the server's own literal rendering.
"""
import base64
import binascii
import logging
import os
from dataclasses import dataclass
from typing import Union

from result_encoder import parse_tabular, unescape_field
from search_errors import CatalogNameError, EscapingError, QueryError, TransportError

logger = logging.getLogger("search_escaping")

FORBIDDEN_NAME_CHARS = ("\x00", "\r", "\n")


@dataclass(frozen=True)
class SearchLiteral:
    """Body of a server-quoted string literal, without the outer quotes."""
    body: str

    def sql(self) -> str:
        return f"'{self.body}'"


def escape_ident(name: str) -> str:
    name = name.replace("\r", "").replace("\n", "")
    return "`" + name.replace("`", "``") + "`"


def qualified_table(database: str, table: str) -> str:
    return f"{escape_ident(database)}.{escape_ident(table)}"


def to_base64(value: Union[str, bytes]) -> str:
    raw = value if isinstance(value, bytes) else os.fsencode(value)
    return base64.b64encode(raw).decode("ascii")


def from_base64_sql(value: Union[str, bytes]) -> str:
    """SQL expression that reproduces `value` on the server without splicing it raw."""
    return f"FROM_BASE64('{to_base64(value)}')"


def resolve_search_literal(executor, term: Union[str, bytes]) -> SearchLiteral:
    query = f"SELECT QUOTE({from_base64_sql(term)});"
    logger.debug("[SQL] %s", query)
    try:
        rows = parse_tabular(executor.execute(query))
    except (QueryError, TransportError) as e:
        raise EscapingError(f"failed to compute escaped search term via QUOTE(): {e}") from e

    if len(rows) != 1 or len(rows[0]) != 1 or rows[0][0] == executor.null_marker:
        raise EscapingError("failed to compute escaped search term via QUOTE(): no literal returned")
    quoted = unescape_field(rows[0][0])
    if len(quoted) < 2 or not (quoted.startswith("'") and quoted.endswith("'")):
        raise EscapingError(f"unexpected QUOTE() response: {quoted[:40]!r}")
    return SearchLiteral(quoted[1:-1])


def decode_catalog_name(field: str) -> str:
    """Decode a TO_BASE64() catalog value back into an identifier.

    MySQL wraps TO_BASE64 output every 76 characters, so line breaks are
    dropped before decoding.
    """
    encoded = "".join(unescape_field(field).split())
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise CatalogNameError(f"undecodable catalog name {encoded[:40]!r}: {e}") from e
    name = os.fsdecode(raw)
    if not name or any(c in name for c in FORBIDDEN_NAME_CHARS):
        raise CatalogNameError(f"catalog name {name!r} is empty or contains NUL/CR/LF")
    return name
