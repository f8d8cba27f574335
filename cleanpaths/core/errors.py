"""Exceptions raised by the path mapping engine."""


class CleanPathsError(Exception):
    """Base class for engine errors."""


class StoreUnavailable(CleanPathsError):
    """The mapping store could not be read or written."""


class MalformedReference(CleanPathsError, ValueError):
    """A scanned token is not a usable URL or path."""

    def __init__(self, reference: str, reason: str) -> None:
        super().__init__(f"Malformed reference {reference!r}: {reason}")
        self.reference = reference
        self.reason = reason
