import logging
import json
import sys
import time
import request_context

# LogRecord attributes that are never copied into the JSON payload as extras
_RESERVED = frozenset((
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename", "module",
    "exc_info", "exc_text", "stack_info", "lineno", "funcName", "created", "msecs",
    "relativeCreated", "thread", "threadName", "processName", "process", "taskName",
))


class JSONFormatter(logging.Formatter):
    """JSON-lines formatter that tags every record with the current `run_id`.

    Used for the run log written next to the exports, so a transcript can be
    correlated with the files produced by the same invocation.
    """
    def format(self, record: logging.LogRecord) -> str:
        ts = time.strftime('%Y-%m-%dT%H:%M:%S', time.localtime(record.created))
        try:
            rid = request_context.run_id.get()
        except Exception:
            rid = None

        log_record = {
            "ts": ts,
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": rid,
        }

        if record.exc_info:
            try:
                log_record["exc"] = self.formatException(record.exc_info)
            except Exception:
                log_record["exc"] = str(record.exc_info)

        # Include any user-supplied extra fields if they are JSON-serializable
        for key, value in record.__dict__.items():
            if key in _RESERVED or key in log_record:
                continue
            try:
                json.dumps({key: value})
                log_record[key] = value
            except (TypeError, ValueError):
                log_record[key] = repr(value)

        return json.dumps(log_record, ensure_ascii=False)


def configure_logging(level=logging.INFO, logfile=None):
    """Send plain messages to stdout and, when `logfile` is given, JSON lines to it.

    Returns the file handler (or None) so callers can detach it at the end of a run.
    """
    root = logging.getLogger()
    root.setLevel(level)
    # Avoid duplicate console handlers if already configured
    if not any(getattr(h, "_search_console", False) for h in root.handlers):
        console = logging.StreamHandler(sys.stdout)
        console.setFormatter(logging.Formatter("%(message)s"))
        console._search_console = True
        root.addHandler(console)
    for h in root.handlers:
        if getattr(h, "_search_console", False):
            h.setLevel(level)

    file_handler = None
    if logfile:
        file_handler = logging.FileHandler(logfile, mode="a", encoding="utf-8", errors="backslashreplace")
        file_handler.setFormatter(JSONFormatter())
        file_handler.setLevel(level)
        root.addHandler(file_handler)
    return file_handler


__all__ = ["configure_logging", "JSONFormatter"]
