"""
Errors raised to callers of the ranking pipeline.

Only request problems surface as exceptions. Failing external signal calls
are recovered inside the pipeline and never reach the caller.
"""


class RankingError(Exception):
    """Base class for errors raised by the ranking pipeline."""


class InvalidRequestError(RankingError, ValueError):
    """The request was rejected before any pipeline work started."""


class UnknownProfileError(InvalidRequestError):
    """A weight profile name that is not registered was requested."""

    def __init__(self, name: str, known: list[str]):
        self.name = name
        self.known = known
        super().__init__(f"Unknown weight profile {name!r} (known: {', '.join(known)})")
