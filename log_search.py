#!/usr/bin/env python3
"""Search Apache/Nginx access logs (rotated and gzip-compressed included) for a literal string.

Output: CSV with columns logfile,matched_record.

Run: python log_search.py -s <pattern> [-p <path>] [-o <outfile>]
"""
import argparse
import glob
import gzip
import logging
import os
import re
import sys
from datetime import datetime
from typing import Dict, Iterator, List, Optional

from logging_config import configure_logging
from result_encoder import csv_quote

logger = logging.getLogger("log_search")

DEFAULT_LOG_PATTERNS = ("/var/log/apache2/*access*.log*", "/var/log/nginx/*access*.log*")
CSV_HEADER = "logfile,matched_record\n"

_LOG_SUFFIX = re.compile(r"\.log(\..*)?$")
_TOKEN_SPLIT = re.compile(r"[._-]")


def resolve_log_paths(patterns) -> List[str]:
    """Expand directories (one level, files named *.log*) and globs into existing files."""
    resolved = []
    for pattern in patterns:
        if os.path.isdir(pattern):
            matches = sorted(glob.glob(os.path.join(glob.escape(pattern), "*.log*")))
        else:
            matches = sorted(glob.glob(pattern))
        resolved.extend(p for p in matches if os.path.isfile(p))
    return resolved


def log_stem(path: str) -> str:
    return _LOG_SUFFIX.sub("", os.path.basename(path))


def default_keyword(logs, patterns) -> str:
    """Pick a name for the combined output: vhost token, then server type, then 'logs'."""
    for log in logs:
        for part in _TOKEN_SPLIT.split(log_stem(log)):
            if part and part != "access":
                return part
    for pattern in patterns:
        if "nginx" in pattern:
            return "nginx"
        if "apache" in pattern:
            return "apache"
    return "logs"


def open_log(path: str):
    if path.endswith(".gz"):
        return gzip.open(path, "rb")
    return open(path, "rb")


def search_file(path: str, needle: bytes) -> Iterator[str]:
    """Yield every line containing `needle` as a byte substring. Binary content is kept."""
    with open_log(path) as fh:
        for line in fh:
            if needle not in line:
                continue
            record = line.rstrip(b"\n")
            if record:
                yield os.fsdecode(record)


class LogExport:
    """CSV outputs with one header per file, written before the first row."""

    def __init__(self):
        self.headers_written: Dict[str, bool] = {}
        self.rows: Dict[str, int] = {}

    def ensure_header(self, outfile: str):
        if not self.headers_written.get(outfile):
            with open(outfile, "w", encoding="utf-8", errors="surrogateescape", newline="") as fh:
                fh.write(CSV_HEADER)
            self.headers_written[outfile] = True
            self.rows.setdefault(outfile, 0)

    def append(self, outfile: str, logfile: str, record: str):
        self.ensure_header(outfile)
        with open(outfile, "a", encoding="utf-8", errors="surrogateescape", newline="") as fh:
            fh.write(f"{csv_quote(logfile)},{csv_quote(record)}\n")
        self.rows[outfile] += 1

    @property
    def files(self) -> List[str]:
        return list(self.headers_written)


def run_log_search(search: str, paths: Optional[List[str]] = None, outfile: Optional[str] = None,
                   timestamp: Optional[str] = None) -> LogExport:
    timestamp = timestamp or datetime.now().strftime("%Y%m%d_%H%M%S")
    custom_path = bool(paths)
    patterns = list(paths) if custom_path else list(DEFAULT_LOG_PATTERNS)
    logs = resolve_log_paths(patterns)
    needle = os.fsencode(search)
    export = LogExport()

    if outfile:
        export.ensure_header(outfile)
    elif not custom_path:
        keyword = default_keyword(logs, patterns)

    for log in logs:
        if outfile:
            current = outfile
        elif custom_path:
            current = f"access_search_{log_stem(log)}_{timestamp}.csv"
        else:
            current = f"access_search_{keyword}_{timestamp}.csv"
        logger.debug("Scanning %s -> %s", log, current)
        try:
            for record in search_file(log, needle):
                export.append(current, log, record)
        except (OSError, EOFError) as e:
            logger.warning("Could not read %s: %s", log, e)
    return export


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Search web-server access logs and export matches to CSV.")
    parser.add_argument("-s", "--search", required=True, help="String to search (email, serial, etc.)")
    parser.add_argument("-p", "--path", action="append", default=None,
                        help="Custom log path or glob (default: apache2 and nginx access logs)")
    parser.add_argument("-o", "--output", default=None, help="Output CSV file")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)
    if not args.search:
        print("Error: -s <pattern> required", file=sys.stderr)
        return 2

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    export = run_log_search(args.search, args.path, args.output)

    files = export.files
    if not files:
        logger.info("Done. No matches found.")
    elif len(files) == 1:
        logger.info("Done. Results in %s", files[0])
    else:
        logger.info("Done. Results written to:")
        for f in files:
            logger.info("  %s", f)
    return 0


if __name__ == "__main__":
    sys.exit(main())
