"""Exact-match scanning of one column at a time.

Each triple walks PENDING -> COUNTED -> MATCHED -> FETCHED, or ends SKIPPED
when the count is zero or the column rejects the comparison. Transport
errors are never caught here; they end the run.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from result_encoder import decode_row, parse_tabular, unescape_field
from schema_enumerator import SchemaTriple
from search_errors import QueryError
from search_escaping import SearchLiteral, decode_catalog_name, escape_ident, from_base64_sql, qualified_table

logger = logging.getLogger("column_scanner")


class ScanState(Enum):
    PENDING = "pending"
    COUNTED = "counted"
    MATCHED = "matched"
    FETCHED = "fetched"
    SKIPPED = "skipped"


@dataclass
class ScanUnit:
    triple: SchemaTriple
    state: ScanState = ScanState.PENDING
    count: int = 0
    header: List[str] = field(default_factory=list)
    rows: List[List[Optional[str]]] = field(default_factory=list)
    reason: Optional[str] = None

    def skip(self, reason):
        self.state = ScanState.SKIPPED
        self.reason = reason


class Scanner:
    def __init__(self, executor, literal: SearchLiteral):
        self.executor = executor
        self.literal = literal
        self._headers: Dict[Tuple[str, str], List[str]] = {}

    def _where(self, triple: SchemaTriple) -> str:
        return (
            f"FROM {qualified_table(triple.database, triple.table)} "
            f"WHERE {escape_ident(triple.column)} = {self.literal.sql()}"
        )

    def count(self, unit: ScanUnit) -> ScanUnit:
        query = f"SELECT COUNT(*) {self._where(unit.triple)};"
        logger.debug("[SQL] %s", query)
        try:
            rows = parse_tabular(self.executor.execute(query))
        except QueryError as e:
            unit.count = 0
            unit.skip(f"count rejected: {e}")
            logger.debug("Skipping %s: %s", unit.triple, unit.reason)
            return unit

        raw = rows[0][0].strip() if rows and rows[0] else ""
        unit.count = int(raw) if raw.isdigit() else 0
        unit.state = ScanState.COUNTED
        if unit.count > 0:
            unit.state = ScanState.MATCHED
        else:
            unit.skip("no match" if raw.isdigit() else f"non-numeric count {raw[:40]!r}")
        return unit

    def header(self, database: str, table: str) -> List[str]:
        """Column names of a table in declared order, cached per table."""
        key = (database, table)
        if key not in self._headers:
            self._headers[key] = self._catalog_header(database, table) or self._describe_header(database, table)
        return self._headers[key]

    def _catalog_header(self, database, table):
        query = (
            "SELECT TO_BASE64(COLUMN_NAME) FROM INFORMATION_SCHEMA.COLUMNS "
            f"WHERE TABLE_SCHEMA = {from_base64_sql(database)} AND TABLE_NAME = {from_base64_sql(table)} "
            "ORDER BY ORDINAL_POSITION;"
        )
        logger.debug("[SQL] %s", query)
        try:
            return [decode_catalog_name(row[0]) for row in parse_tabular(self.executor.execute(query)) if row and row[0]]
        except QueryError as e:
            # CatalogNameError included: fall back to SHOW COLUMNS
            logger.debug("Catalog header for %s.%s unavailable: %s", database, table, e)
            return []

    def _describe_header(self, database, table):
        query = f"SHOW COLUMNS FROM {qualified_table(database, table)};"
        logger.debug("[SQL] %s", query)
        try:
            return [unescape_field(row[0]) for row in parse_tabular(self.executor.execute(query)) if row]
        except QueryError as e:
            logger.warning("Could not read columns of %s.%s: %s", database, table, e)
            return []

    def fetch(self, unit: ScanUnit) -> ScanUnit:
        if unit.state is not ScanState.MATCHED:
            raise ValueError(f"cannot fetch {unit.triple} in state {unit.state.value}")
        query = f"SELECT * {self._where(unit.triple)};"
        logger.debug("[SQL] %s", query)
        try:
            text = self.executor.execute(query)
        except QueryError as e:
            unit.skip(f"fetch rejected: {e}")
            logger.warning("Could not fetch rows for %s: %s", unit.triple, e)
            return unit

        null_marker = self.executor.null_marker
        unit.rows = [decode_row(row, null_marker) for row in parse_tabular(text)]
        unit.header = self.header(unit.triple.database, unit.triple.table)
        unit.state = ScanState.FETCHED
        return unit

    def scan(self, triple: SchemaTriple) -> ScanUnit:
        unit = self.count(ScanUnit(triple))
        if unit.state is ScanState.MATCHED:
            self.fetch(unit)
        return unit


__all__ = ["Scanner", "ScanState", "ScanUnit"]
