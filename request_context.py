from contextvars import ContextVar

# Context variable to hold the current run id for log correlation
run_id = ContextVar('run_id', default=None)
