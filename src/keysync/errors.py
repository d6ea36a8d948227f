"""
Structured errors for keysync.

Every failure a sync cycle can hit is a KeySyncError carrying an
ErrorKind. Context is added by wrapping: each wrap creates a new
error whose ``__cause__`` is the previous one, so the full chain
reads outermost stage first, e.g.::

    could not update authorized keys file: line 3 in authorized keys file malformed

The CLI inspects the kind to pick an exit status.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterator, Optional


class ErrorKind(str, Enum):
    """What went wrong during a sync cycle."""

    MALFORMED_LINE = "malformed_line"
    REMOTE = "remote"
    IO = "io"
    CONFIG = "config"

    @property
    def exit_code(self) -> int:
        """sysexits(3) style exit status for this kind."""
        return _EXIT_CODES[self]


_EXIT_CODES = {
    ErrorKind.MALFORMED_LINE: 65,  # EX_DATAERR
    ErrorKind.REMOTE: 69,  # EX_UNAVAILABLE
    ErrorKind.IO: 74,  # EX_IOERR
    ErrorKind.CONFIG: 78,  # EX_CONFIG
}


class KeySyncError(Exception):
    """Base error for every keysync failure.

    Args:
        message: Description of the failing stage.
        kind: Category used for reporting and exit status.
        cause: Underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.kind = kind
        if cause is not None:
            self.__cause__ = cause

    def wrap(self, message: str) -> "KeySyncError":
        """Return a new error of the same kind with this one as its cause."""
        return KeySyncError(message, self.kind, cause=self)

    def chain(self) -> Iterator[str]:
        """Yield the message of every error in the chain, outermost first."""
        err: Optional[BaseException] = self
        while err is not None:
            if isinstance(err, KeySyncError):
                yield err.message
            else:
                yield str(err) or type(err).__name__
            err = err.__cause__

    @property
    def exit_code(self) -> int:
        return self.kind.exit_code

    def __str__(self) -> str:
        return ": ".join(self.chain())


class MalformedLineError(KeySyncError):
    """A line in the authorized keys file could not be parsed.

    Args:
        lineno: 1-based line number of the offending line.
    """

    def __init__(self, lineno: int) -> None:
        super().__init__(
            f"line {lineno} in authorized keys file malformed",
            ErrorKind.MALFORMED_LINE,
        )
        self.lineno = lineno


class RemoteError(KeySyncError):
    """The key host could not be reached or answered with a non-2xx status.

    Args:
        message: What failed.
        status_code: HTTP status, when a response was received.
        cause: Underlying transport exception.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        super().__init__(message, ErrorKind.REMOTE, cause=cause)
        self.status_code = status_code


def io_error(message: str, exc: OSError) -> KeySyncError:
    """Wrap an OSError raised at a file-handling stage."""
    return KeySyncError(message, ErrorKind.IO, cause=exc)
