"""
Error and warning taxonomy for terminal network construction and inference.
"""


class TerminalBNError(Exception):
    """Base class for all terminalbn errors."""


class MalformedTableError(TerminalBNError, ValueError):
    """A CPT has the wrong number of rows or a row that is not a distribution."""


class NetworkConfigError(TerminalBNError):
    """Fatal configuration problem: unresolved parent, cycle, bad evidence."""


class MissingNodeWarning(UserWarning):
    """A declared node has no CPT; the network is assembled without it."""


class QueryTimeoutError(TerminalBNError):
    """Rejection sampling hit its draw cap before collecting enough matches."""

    def __init__(self, matched: int, requested: int, draws: int):
        self.matched = matched
        self.requested = requested
        self.draws = draws
        super().__init__(
            f"Only {matched}/{requested} samples matched the evidence after {draws} draws"
        )
