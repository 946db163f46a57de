#!/usr/bin/env python3
"""Search every table/column of a MySQL/MariaDB server for an exact value.

Matching rows are exported per database to CSV, a flat text report or an
Excel workbook under the export directory, next to a JSON-lines run log.

Run: python db_search.py -s <search_term> [-d <database>] [-f csv|txt|xlsx]
"""
import argparse
import logging
import os
import signal
import sys
import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from uuid import uuid4

import request_context
from column_scanner import Scanner, ScanState
from export_writer import ExportWriter
from logging_config import configure_logging
from schema_enumerator import list_columns, list_databases
from search_config import FORMATS, TRANSPORTS, SearchConfig
from search_errors import ConfigurationError, SearchError, TransportError
from search_escaping import resolve_search_literal
from services.db_utils import PyMySQLExecutor, credential_scope
from services.mysql_cli import MysqlCliExecutor

logger = logging.getLogger("db_search")

EXIT_OK = 0
EXIT_FATAL = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


@dataclass
class RunSummary:
    status: str = "pending"
    databases: int = 0
    columns_scanned: int = 0
    hits: int = 0
    rows_written: int = 0
    skipped: List[tuple] = field(default_factory=list)
    skipped_databases: List[tuple] = field(default_factory=list)
    files: List[str] = field(default_factory=list)


def run_search(config: SearchConfig, executor, timestamp: str, cancel: Optional[threading.Event] = None) -> RunSummary:
    """Scan the configured databases and append every hit to the exports.

    Raises EscapingError / TransportError for fatal conditions. Exports written
    before the failure stay on disk.
    """
    summary = RunSummary()
    databases = list_databases(executor, config.database, skipped=summary.skipped)
    if not databases:
        logger.info("No databases to scan.")
        summary.status = "no databases"
        return summary

    literal = resolve_search_literal(executor, config.search)
    scanner = Scanner(executor, literal)

    with ExportWriter(config.export_dir, timestamp, config.fmt, config.split_tables) as writer:
        try:
            for database in databases:
                logger.info(">>> Scanning database: [%s]", database)
                summary.databases += 1
                enumeration = list_columns(executor, database)
                summary.skipped.extend(enumeration.skipped)
                if enumeration.error is not None:
                    summary.skipped_databases.append((database, enumeration.error))
                for triple in enumeration.triples:
                    if cancel is not None and cancel.is_set():
                        logger.warning("Cancelled before %s", triple)
                        summary.status = "cancelled"
                        return summary
                    unit = scanner.scan(triple)
                    summary.columns_scanned += 1
                    if unit.state is not ScanState.FETCHED:
                        continue
                    summary.hits += 1
                    logger.info("  Found in %s -> %s rows", triple, unit.count)
                    path = writer.append(unit)
                    if path:
                        summary.rows_written += len(unit.rows)
                        logger.info("    -> appended to %s", path)
            summary.status = "done"
        finally:
            summary.files = writer.files
    return summary


def build_executor(config: SearchConfig, credential):
    if config.transport == "mysql":
        return MysqlCliExecutor(config.host, config.user, credential, port=config.port, timeout=config.query_timeout)
    return PyMySQLExecutor(config.host, config.user, credential, port=config.port, timeout=config.query_timeout)


def parse_args(argv=None) -> SearchConfig:
    defaults = SearchConfig()
    parser = argparse.ArgumentParser(description="Exact-match search across MySQL/MariaDB databases.")
    parser.add_argument("-s", "--search", required=True, help="Search term (exact match)")
    parser.add_argument("-d", "--database", default=None, help="Specific database; default scans all user databases")
    parser.add_argument("-f", "--format", dest="fmt", default="csv", help=f"Output format: {'|'.join(FORMATS)} (default: csv)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every SQL statement")
    parser.add_argument("-u", "--user", default=defaults.user, help=f"DB user (default {defaults.user})")
    parser.add_argument("-H", "--host", default=defaults.host, help=f"DB host (default {defaults.host})")
    parser.add_argument("-P", "--port", default=defaults.port, help=f"DB port (default {defaults.port})")
    parser.add_argument("--transport", default=defaults.transport, help=f"Query transport: {'|'.join(TRANSPORTS)}")
    parser.add_argument("--export-dir", default=defaults.export_dir, help="Directory for exports and the run log")
    parser.add_argument("--split-tables", action="store_true", help="Write one file per table instead of per database")
    parser.add_argument("--timeout", type=float, default=defaults.query_timeout, help="Per-query timeout in seconds")
    args = parser.parse_args(argv)
    return SearchConfig(
        search=args.search,
        database=args.database,
        fmt=args.fmt,
        verbose=args.verbose,
        user=args.user,
        host=args.host,
        port=args.port,
        transport=args.transport,
        export_dir=args.export_dir,
        split_tables=args.split_tables,
        query_timeout=args.timeout,
    ).validate()


def main(argv=None, executor_factory=build_executor, prompt=None) -> int:
    try:
        config = parse_args(argv)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_USAGE

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    os.makedirs(config.export_dir, exist_ok=True)
    logfile = os.path.join(config.export_dir, f"search_{timestamp}.log")
    file_handler = configure_logging(logging.DEBUG if config.verbose else logging.INFO, logfile)
    request_context.run_id.set(uuid4().hex)

    cancel = threading.Event()
    previous = signal.signal(signal.SIGTERM, lambda signum, frame: cancel.set())
    scope_kwargs = {"prompt": prompt} if prompt is not None else {}
    try:
        logger.info(
            "Search started: term=%r, format='%s', db='%s', user='%s', host='%s:%s'",
            config.search, config.fmt, config.database or "ALL", config.user, config.host, config.port,
        )
        with credential_scope(config.user, **scope_kwargs) as credential:
            executor = executor_factory(config, credential)
            try:
                summary = run_search(config, executor, timestamp, cancel)
            finally:
                executor.close()

        if summary.status == "cancelled":
            logger.error("Cancelled. Partial results: %s (log: %s)", config.export_dir, logfile)
            return EXIT_INTERRUPTED
        if summary.skipped:
            logger.info("Skipped %d catalog name(s) that could not be decoded", len(summary.skipped))
        if summary.skipped_databases:
            logger.warning("Skipped %d database(s) whose columns could not be listed: %s",
                           len(summary.skipped_databases), ", ".join(db for db, _ in summary.skipped_databases))
        if summary.status == "done":
            logger.info("Done. %d hit(s), %d row(s). Results: %s (log: %s)",
                        summary.hits, summary.rows_written, config.export_dir, logfile)
        return EXIT_OK
    except TransportError as e:
        logger.error("Error: database unreachable, aborting run: %s", e)
        return EXIT_FATAL
    except SearchError as e:
        logger.error("Error: %s", e)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.error("Interrupted. Partial results: %s (log: %s)", config.export_dir, logfile)
        return EXIT_INTERRUPTED
    finally:
        signal.signal(signal.SIGTERM, previous)
        request_context.run_id.set(None)
        if file_handler is not None:
            logging.getLogger().removeHandler(file_handler)
            file_handler.close()


if __name__ == "__main__":
    sys.exit(main())
