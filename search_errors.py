"""Error taxonomy shared by the search tools.

Configuration, escaping and transport errors end the run. Query errors are
local to one scan unit: the caller records them and moves on.
"""


class SearchError(Exception):
    """Base class for every error raised by the search tools."""


class ConfigurationError(SearchError):
    """Invalid or missing invocation options."""


class EscapingError(SearchError):
    """The server could not produce a quoted literal for the search term."""


class TransportError(SearchError):
    """The data source is unreachable or rejected the session."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class QueryError(SearchError):
    """A single statement was rejected; the connection is still usable."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class CatalogNameError(QueryError):
    """A catalog-supplied name could not be decoded into a usable identifier."""


__all__ = [
    "SearchError",
    "ConfigurationError",
    "EscapingError",
    "TransportError",
    "QueryError",
    "CatalogNameError",
]
