"""Exception hierarchy for smbaccess.

Every error raised by the package derives from `SmbError`. The concrete
classes also inherit from the builtin exception a Python caller would
expect (`ValueError`, `OSError`, `io.UnsupportedOperation`) so that generic
handlers keep working.
"""

import errno as _errno
import io
import os
from typing import Any, Optional

__all__ = [
    "SmbError",
    "AddressError",
    "AccessModeError",
    "ClosedResourceError",
    "RemoteIOError",
    "StaleHandle",
    "LoginStrategyUnavailable",
    "STALE_ERRNOS",
]

# errno values reported by a client when a handle was invalidated remotely
STALE_ERRNOS = frozenset({_errno.EBADF, _errno.ESTALE})


class SmbError(Exception):
    """Base class for all smbaccess errors."""


class AddressError(SmbError, ValueError):
    """Raised when an address is malformed or cannot be simplified."""

    def __init__(self, url: str, reason: str = "invalid url") -> None:
        super().__init__(f"{reason}: {url!r}")
        self.url = url
        self.reason = reason


class AccessModeError(SmbError, io.UnsupportedOperation):
    """Raised when an operation is forbidden by the mode a resource was opened with."""


class ClosedResourceError(SmbError, ValueError):
    """Raised when a file or directory is used after it was closed."""


class RemoteIOError(SmbError, OSError):
    """A failure reported by the remote client.

    Attributes:
        address: the url the operation was acting on
        operation: the raw primitive that failed (``"read"``, ``"open"``, ...)
        cause: the original exception raised by the client, if any
    """

    def __init__(
        self,
        address: Any,
        operation: str,
        cause: Optional[BaseException] = None,
        *,
        errno: Optional[int] = None,
        strerror: Optional[str] = None,
    ) -> None:
        if errno is None:
            errno = getattr(cause, "errno", None)
        if strerror is None:
            strerror = getattr(cause, "strerror", None)
        if strerror is None:
            if cause is not None and str(cause):
                strerror = str(cause)
            elif errno is not None:
                strerror = os.strerror(errno)
            else:
                strerror = "remote operation failed"
        super().__init__(errno, strerror)
        self.address = str(address)
        self.operation = operation
        self.cause = cause

    def __str__(self) -> str:
        if self.errno is not None:
            return (
                f"{self.operation} failed for {self.address}: "
                f"[Errno {self.errno}] {self.strerror}"
            )
        return f"{self.operation} failed for {self.address}: {self.strerror}"

    def __reduce__(self) -> Any:
        return (
            _rebuild_remote_error,
            (type(self), self.address, self.operation, self.errno, self.strerror),
        )


class StaleHandle(RemoteIOError):
    """The remote handle was invalidated out-of-band.

    Only used internally to trigger a reopen-and-retry. Should one escape it
    is still a `RemoteIOError`.
    """


class LoginStrategyUnavailable(SmbError):
    """An authentication strategy has no credentials to offer."""


def _rebuild_remote_error(
    cls: Any, address: str, operation: str, errno: Optional[int], strerror: str
) -> RemoteIOError:
    return cls(address, operation, errno=errno, strerror=strerror)
