"""Module level shortcuts acting on a shared default session.

The default session is created on first use from `SmbConfig.from_environ`
and the module level `Auth`, so callbacks registered with
`on_authentication` apply to it. Use `configure` to replace it.
"""

from __future__ import annotations

import logging
import threading
from typing import Iterator, List, Optional, Union

from .address import AddressLike, parse_address, simplify_url
from .auth import Auth, AuthCallback
from .client import SmbClient
from .config import SmbConfig
from .directory import SmbDir
from .file import DEFAULT_SEPARATOR, Separator, SmbFile
from .session import Session
from .stat import RemoteStat
from .types import ModeLike

logger = logging.getLogger(__name__)

__all__ = [
    "configure",
    "get_session",
    "on_authentication",
    "open",
    "open_file",
    "open_dir",
    "stat",
    "rename",
    "unlink",
    "delete",
    "mkdir",
    "rmdir",
    "listdir",
    "iterdir",
    "iter_lines",
    "parse_address",
    "simplify_url",
]

_auth = Auth()
_session: Optional[Session] = None
_lock = threading.Lock()


def get_session() -> Session:
    """Return the default session, creating it on first use."""
    global _session
    with _lock:
        if _session is None:
            _session = Session(config=SmbConfig.from_environ(), auth=_auth)
            logger.debug("Created the default session")
        return _session


def configure(
    client: Optional[SmbClient] = None,
    config: Optional[SmbConfig] = None,
    auth: Optional[Auth] = None,
) -> Session:
    """Replace the default session.

    Parameters:
        client: client for the new session, an `FsspecSmbClient` if not given
        config: settings, read from the environment if not given
        auth: credential resolver, the module level one if not given

    Returns:
        The new default session.
    """
    global _session, _auth
    with _lock:
        if auth is not None:
            _auth = auth
        _session = Session(
            client=client,
            config=config or SmbConfig.from_environ(),
            auth=_auth,
        )
        return _session


def on_authentication(callback: AuthCallback) -> AuthCallback:
    """Register the function asked for credentials by the default session.

    The callback receives ``(server, share, workgroup, username, password)``
    and returns None or ``(workgroup, username, password)``. It can be used
    as a decorator:

    Examples:
        >>> @smbaccess.on_authentication
        ... def credentials(server, share, workgroup, username, password):
        ...     return ("WORKGROUP", "guest", "")
    """
    return _auth.on_authentication(callback)


def open(url: AddressLike, mode: Optional[ModeLike] = None) -> Union[SmbDir, SmbFile]:
    """Open a directory, falling back to a file. A ``mode`` forces a file."""
    return get_session().open(url, mode)


def open_file(url: AddressLike, mode: ModeLike = "r") -> SmbFile:
    return get_session().open_file(url, mode)


def open_dir(url: AddressLike) -> SmbDir:
    return get_session().open_dir(url)


def stat(url: AddressLike) -> RemoteStat:
    return get_session().stat(url)


def rename(old: AddressLike, new: AddressLike) -> None:
    get_session().rename(old, new)


def unlink(*urls: AddressLike) -> int:
    """Delete files, returning how many were deleted."""
    return get_session().unlink(*urls)


delete = unlink


def mkdir(url: AddressLike) -> None:
    get_session().mkdir(url)


def rmdir(url: AddressLike) -> None:
    get_session().rmdir(url)


def listdir(url: AddressLike) -> List[str]:
    return get_session().listdir(url)


def iterdir(url: AddressLike) -> Iterator[str]:
    return get_session().iterdir(url)


def iter_lines(
    url: AddressLike, separator: Separator = DEFAULT_SEPARATOR
) -> Iterator[bytes]:
    return get_session().iter_lines(url, separator)
