"""Query execution through the `mysql` command-line client, one process per query."""
import logging
import os
import re
import subprocess
import time

import request_context
from search_errors import QueryError, TransportError
from services.db_utils import is_transport_code

logger = logging.getLogger("services.mysql_cli")

_ERROR_RE = re.compile(r"ERROR (\d+)")


class MysqlCliExecutor:
    """Runs `mysql --batch --skip-column-names`, feeding the query on stdin.

    The password reaches the child only through MYSQL_PWD in its own
    environment. The client prints NULL as the bare word NULL, so this
    transport cannot tell NULL from the string 'NULL'.
    """
    null_marker = "NULL"

    def __init__(self, host, user, credential, port=3306, timeout=300.0, binary="mysql", run=subprocess.run):
        self.host = host
        self.user = user
        self.port = port
        self.timeout = timeout
        self.binary = binary
        self._credential = credential
        self._run = run

    def argv(self):
        return [
            self.binary, "--batch", "--skip-column-names",
            "--default-character-set=utf8mb4",
            "-u", self.user, "-h", self.host, "-P", str(self.port),
        ]

    def execute(self, query: str) -> str:
        env = dict(os.environ)
        env["MYSQL_PWD"] = self._credential.password
        start = time.time()
        try:
            proc = self._run(
                self.argv(),
                input=os.fsencode(query),
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"query timed out after {self.timeout}s") from e
        except OSError as e:
            raise TransportError(f"cannot run {self.binary}: {e}") from e

        logger.debug("mysql exit=%s (%.3fs) run=%s", proc.returncode, time.time() - start, request_context.run_id.get())
        if proc.returncode != 0:
            stderr = proc.stderr.decode("utf-8", "replace").strip()
            m = _ERROR_RE.search(stderr)
            code = int(m.group(1)) if m else None
            # No error number means the client itself failed
            if code is None or is_transport_code(code):
                raise TransportError(stderr or f"{self.binary} exited with status {proc.returncode}", code)
            raise QueryError(stderr, code)
        return proc.stdout.decode("utf-8", "surrogateescape").replace("\r", "")

    def close(self):
        pass
