"""MariaDB/MySQL query execution over pymysql, plus credential handling."""
import datetime
import getpass
import os
import time
import logging
from contextlib import contextmanager
import pymysql
import request_context
from result_encoder import escape_field
from search_errors import QueryError, TransportError

logger = logging.getLogger("services.db_utils")

PASSWORD_ENV = "MARIADB_PASSWORD"

# Server errors that mean the session itself is unusable. Client-side errors
# (2000 and above: lost connection, unknown host, timeouts) are always fatal.
TRANSPORT_ERROR_CODES = frozenset((
    1040,  # too many connections
    1044,  # access denied to database
    1045,  # access denied for user
    1053,  # server shutdown in progress
    1077,  # normal shutdown
    1129,  # host blocked
    1130,  # host not allowed
    1152,  # aborted connection
    1153,  # packet too large
    1158, 1159, 1160, 1161,  # network read/write errors
    1184,  # aborted new connection
    1203,  # max user connections
    1226,  # user resource limit
    1251,  # client does not support auth protocol
    1820,  # must reset password
    1927,  # connection killed
    3169,  # session was killed
))


def is_transport_code(code) -> bool:
    return code is not None and (code >= 2000 or code in TRANSPORT_ERROR_CODES)


class Credential:
    """Password holder whose lifetime is scoped to one run."""

    def __init__(self, password: str):
        self._password = password

    @property
    def password(self) -> str:
        if self._password is None:
            raise RuntimeError("credential already released")
        return self._password

    def wipe(self):
        self._password = None

    def __repr__(self):
        return "Credential(****)" if self._password is not None else "Credential(<released>)"


@contextmanager
def credential_scope(user: str, prompt=getpass.getpass):
    """Obtain the password once, yield it, then erase it from this process.

    The environment variable is consumed rather than copied so child
    processes started later in the run never inherit it.
    """
    password = os.environ.pop(PASSWORD_ENV, None)
    if password is None:
        password = prompt(f"Enter password for MySQL user {user}: ")
    cred = Credential(password)
    password = None
    try:
        yield cred
    finally:
        cred.wipe()
        os.environ.pop(PASSWORD_ENV, None)


def _short(query):
    return query[:200] + ('...' if len(query) > 200 else '')


class LoggingCursor:
    def __init__(self, real):
        self._real = real

    def execute(self, query, params=None):
        start = time.time()
        try:
            res = self._real.execute(query, params)
            duration = time.time() - start
            rid = request_context.run_id.get()
            logger.debug("DB execute (%.3fs) run=%s rows=%s: %s", duration, rid, getattr(self._real, 'rowcount', None), _short(query))
            return res
        except Exception as e:
            duration = time.time() - start
            rid = request_context.run_id.get()
            logger.debug("DB execute failed (%.3fs) run=%s: %s -> %s", duration, rid, _short(query), e)
            raise

    def fetchall(self):
        start = time.time()
        rows = self._real.fetchall()
        rid = request_context.run_id.get()
        logger.debug("DB fetchall (%.3fs) run=%s: rows=%s", time.time() - start, rid, len(rows))
        return rows

    def __getattr__(self, name):
        return getattr(self._real, name)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self._real.close()
        return False


def render_value(value) -> str:
    """Render one column value the way `mysql --batch` prints it (NULL excluded)."""
    if isinstance(value, (bytes, bytearray)):
        text = bytes(value).decode("utf-8", "surrogateescape")
    elif isinstance(value, datetime.timedelta):
        text = _format_timedelta(value)
    elif isinstance(value, bool):
        text = str(int(value))
    else:
        text = str(value)
    return escape_field(text)


def _format_timedelta(td):
    total = int(td.total_seconds())
    sign = "-" if total < 0 else ""
    total = abs(total)
    hours, rem = divmod(total, 3600)
    minutes, seconds = divmod(rem, 60)
    out = f"{sign}{hours:02d}:{minutes:02d}:{seconds:02d}"
    if td.microseconds and not sign:
        out += f".{td.microseconds:06d}"
    return out


def render_rows(rows, null_marker) -> str:
    return "".join(
        "\t".join(null_marker if v is None else render_value(v) for v in row) + "\n"
        for row in rows
    )


class PyMySQLExecutor:
    """Query-execution capability backed by one reused pymysql connection.

    Results come back as batch tabular text. NULL is rendered as ``\\N``,
    which cannot collide with data since literal backslashes are escaped.
    """
    null_marker = "\\N"

    def __init__(self, host, user, credential, port=3306, timeout=300.0, connect=pymysql.connect):
        self.host = host
        self.user = user
        self.port = port
        self.timeout = timeout
        self._credential = credential
        self._connect = connect
        self._conn = None

    def _connection(self):
        if self._conn is None:
            try:
                self._conn = self._connect(
                    host=self.host,
                    user=self.user,
                    password=self._credential.password,
                    port=self.port,
                    charset="utf8mb4",
                    autocommit=True,
                    connect_timeout=10,
                    read_timeout=self.timeout,
                    write_timeout=self.timeout,
                )
            except pymysql.err.MySQLError as e:
                code = e.args[0] if e.args and isinstance(e.args[0], int) else None
                logger.error("MariaDB connection error: %s", e)
                raise TransportError(f"cannot connect to {self.host}:{self.port}: {e}", code) from e
        return self._conn

    def execute(self, query: str) -> str:
        conn = self._connection()
        try:
            with LoggingCursor(conn.cursor()) as cur:
                cur.execute(query)
                rows = cur.fetchall()
        except pymysql.err.MySQLError as e:
            raise classify_error(e, query) from e
        return render_rows(rows, self.null_marker)

    def close(self):
        if self._conn is not None:
            try:
                self._conn.close()
            except pymysql.err.Error:
                logger.debug("Connection already closed")
            self._conn = None


def classify_error(exc, query):
    code = exc.args[0] if exc.args and isinstance(exc.args[0], int) else None
    message = exc.args[1] if len(exc.args) > 1 else str(exc)
    if isinstance(exc, pymysql.err.InterfaceError) or is_transport_code(code):
        return TransportError(f"({code}) {message} while executing: {_short(query)}", code)
    return QueryError(f"({code}) {message}", code)
