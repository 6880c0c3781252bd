"""
Exception hierarchy for DNS Bench.
"""


class DnsBenchError(Exception):
    """Base class for all DNS Bench errors."""


class InvalidParamsError(DnsBenchError, ValueError):
    """Run parameters were rejected before any run was started."""


class BackendError(DnsBenchError):
    """The measurement backend could not complete a run."""


class UnsupportedServerError(DnsBenchError):
    """A server address uses a transport this build cannot speak."""
