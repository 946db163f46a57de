"""Per-database export files for search hits.

One file per key (the database, or database+table with split_tables). CSV
headers are emitted lazily and at most once per file. When several tables
share a CSV file the header is the one of the first table that matched.
"""
import hashlib
import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import excel_export
from result_encoder import CONTEXT_COLUMNS, UNKNOWN_HEADER, csv_header, encode_csv_rows, encode_text_block, tabular_rows

logger = logging.getLogger("export_writer")

EXTENSIONS = {"csv": "csv", "txt": "txt", "xlsx": "xlsx"}

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]")


def safe_filename_part(name: str) -> str:
    cleaned = _UNSAFE.sub("_", name) or "_"
    if cleaned != name:
        digest = hashlib.sha1(os.fsencode(name)).hexdigest()[:8]
        cleaned = f"{cleaned}-{digest}"
    return cleaned


def _key_stem(key: Tuple[str, ...]) -> str:
    stem = "_".join(safe_filename_part(part) for part in key)
    if len(key) > 1:
        # "_" also occurs inside names, so the joined parts alone are ambiguous
        digest = hashlib.sha1(b"\0".join(os.fsencode(part) for part in key)).hexdigest()[:8]
        stem = f"{stem}-{digest}"
    return stem


@dataclass
class ExportRecord:
    path: str
    header_written: bool = False
    rows_written: int = 0
    workbook: Optional[object] = None


class ExportWriter:
    def __init__(self, export_dir: str, timestamp: str, fmt: str = "csv", split_tables: bool = False):
        if fmt not in EXTENSIONS:
            raise ValueError(f"unsupported export format: {fmt}")
        self.export_dir = export_dir
        self.timestamp = timestamp
        self.fmt = fmt
        self.split_tables = split_tables
        self.records: Dict[Tuple[str, ...], ExportRecord] = {}

    def _key(self, triple) -> Tuple[str, ...]:
        if self.split_tables:
            return (triple.database, triple.table)
        return (triple.database,)

    def _record(self, triple) -> ExportRecord:
        key = self._key(triple)
        record = self.records.get(key)
        if record is None:
            stem = _key_stem(key)
            path = os.path.join(self.export_dir, f"search_{stem}_{self.timestamp}.{EXTENSIONS[self.fmt]}")
            os.makedirs(self.export_dir, exist_ok=True)
            # A file left by an earlier run under the same name already has its header
            exists = self.fmt != "xlsx" and os.path.exists(path) and os.path.getsize(path) > 0
            record = ExportRecord(path=path, header_written=exists)
            self.records[key] = record
        return record

    def _append_text(self, path: str, text: str):
        with open(path, "a", encoding="utf-8", errors="surrogateescape", newline="") as fh:
            fh.write(text)

    def append(self, unit) -> Optional[str]:
        """Append the fetched rows of one scan unit. Returns the file written, if any."""
        if not unit.rows:
            return None
        record = self._record(unit.triple)

        if self.fmt == "csv":
            chunks = []
            if not record.header_written:
                chunks.append(csv_header(unit.header))
            chunks.extend(encode_csv_rows(unit.triple, unit.header, unit.rows))
            self._append_text(record.path, "".join(chunks))
        elif self.fmt == "txt":
            self._append_text(record.path, encode_text_block(unit.triple, unit.header, unit.rows))
        else:
            if record.workbook is None:
                header = list(CONTEXT_COLUMNS) + (list(unit.header) or [UNKNOWN_HEADER])
                record.workbook = excel_export.create_results_workbook(header)
            excel_export.append_rows(record.workbook, tabular_rows(unit.triple, unit.header, unit.rows))

        record.header_written = True
        record.rows_written += len(unit.rows)
        return record.path

    def close(self):
        """Save workbooks held in memory. Text formats are already on disk."""
        for record in self.records.values():
            if record.workbook is not None:
                excel_export.save_workbook(record.workbook, record.path)
                record.workbook = None

    @property
    def files(self) -> List[str]:
        return [r.path for r in self.records.values()]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
