"""Run configuration for the database search tool."""
import os
from dataclasses import dataclass
from typing import Optional

from search_errors import ConfigurationError

# Connection defaults - read from environment so deployments can avoid flags
MARIADB_HOST = os.getenv("MARIADB_HOST", "localhost")
MARIADB_USER = os.getenv("MARIADB_USER", "root")
_port = os.getenv("MARIADB_PORT", "3306")
MARIADB_PORT = int(_port) if _port.isdigit() else 3306

EXPORT_DIR = os.getenv("SEARCH_EXPORT_DIR", "user_export")
QUERY_TIMEOUT = float(os.getenv("SEARCH_QUERY_TIMEOUT", "300"))

FORMATS = ("csv", "txt", "xlsx")
TRANSPORTS = ("pymysql", "mysql")


@dataclass
class SearchConfig:
    search: str = ""
    database: Optional[str] = None
    fmt: str = "csv"
    verbose: bool = False
    user: str = MARIADB_USER
    host: str = MARIADB_HOST
    port: int = MARIADB_PORT
    transport: str = "pymysql"
    export_dir: str = EXPORT_DIR
    split_tables: bool = False
    query_timeout: float = QUERY_TIMEOUT

    def validate(self):
        if not self.search:
            raise ConfigurationError("search term required (-s <term>)")
        if self.fmt not in FORMATS:
            raise ConfigurationError(f"format must be one of {', '.join(FORMATS)}")
        if self.transport not in TRANSPORTS:
            raise ConfigurationError(f"transport must be one of {', '.join(TRANSPORTS)}")
        if "\x00" in self.search:
            raise ConfigurationError("search term may not contain NUL")
        if self.database is not None and (self.database == "" or "\x00" in self.database):
            raise ConfigurationError("database name must be non-empty and may not contain NUL")
        try:
            self.port = int(self.port)
        except (TypeError, ValueError):
            raise ConfigurationError(f"port must be an integer, got {self.port!r}")
        if not 0 < self.port < 65536:
            raise ConfigurationError(f"port out of range: {self.port}")
        if self.query_timeout <= 0:
            raise ConfigurationError("timeout must be positive")
        return self

