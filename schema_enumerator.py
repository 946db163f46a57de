"""Discover the (database, table, column) triples a run has to scan."""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from result_encoder import parse_tabular
from search_errors import CatalogNameError, QueryError
from search_escaping import decode_catalog_name, from_base64_sql

logger = logging.getLogger("schema_enumerator")

SYSTEM_SCHEMAS = ("information_schema", "performance_schema", "mysql", "sys")


@dataclass(frozen=True)
class SchemaTriple:
    database: str
    table: str
    column: str

    def __str__(self):
        return f"{self.database}.{self.table}.{self.column}"


@dataclass
class Enumeration:
    triples: List[SchemaTriple] = field(default_factory=list)
    # (raw catalog fields, reason) for names that could not be decoded
    skipped: List[Tuple[str, str]] = field(default_factory=list)
    # reason the whole schema could not be listed
    error: Optional[str] = None


def list_databases(executor, database: Optional[str] = None, skipped: Optional[list] = None) -> List[str]:
    """Return the databases to scan, in catalog order.

    A caller-supplied database is used as-is without consulting the catalog.
    """
    if database is not None:
        return [database]

    excluded = ",".join(f"'{name}'" for name in SYSTEM_SCHEMAS)
    query = (
        "SELECT TO_BASE64(SCHEMA_NAME) FROM INFORMATION_SCHEMA.SCHEMATA "
        f"WHERE NOT (SCHEMA_NAME IN ({excluded}));"
    )
    logger.debug("[SQL] %s", query)
    names = []
    for row in parse_tabular(executor.execute(query)):
        if not row or not row[0] or row[0] == executor.null_marker:
            continue
        try:
            names.append(decode_catalog_name(row[0]))
        except CatalogNameError as e:
            logger.warning("Skipping database with unusable name: %s", e)
            if skipped is not None:
                skipped.append((row[0], str(e)))
    return names


def list_columns(executor, database: str) -> Enumeration:
    """Enumerate every (table, column) pair of one schema."""
    query = (
        "SELECT TO_BASE64(TABLE_NAME), TO_BASE64(COLUMN_NAME) FROM INFORMATION_SCHEMA.COLUMNS "
        f"WHERE TABLE_SCHEMA = {from_base64_sql(database)};"
    )
    logger.debug("[SQL] %s", query)
    result = Enumeration()
    try:
        text = executor.execute(query)
    except QueryError as e:
        logger.warning("Could not list columns of [%s]: %s", database, e)
        result.error = str(e)
        return result

    for row in parse_tabular(text):
        if len(row) < 2 or not row[0] or not row[1]:
            continue
        try:
            table = decode_catalog_name(row[0])
            column = decode_catalog_name(row[1])
        except CatalogNameError as e:
            logger.warning("Skipping %s entry with unusable name: %s", database, e)
            result.skipped.append(("\t".join(row), str(e)))
            continue
        result.triples.append(SchemaTriple(database, table, column))
    return result
