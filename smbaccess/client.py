"""Clients performing the raw SMB operations.

A client owns the wire protocol: it opens handles, moves bytes, stats and
enumerates. Streams and directory snapshots only talk to the `SmbClient`
interface, so the protocol engine can be swapped out for testing.

Two implementations are provided:

* `FsspecSmbClient` drives fsspec's ``smb`` filesystem (backed by
  smbprotocol) and is the default.
* `MemorySmbClient` keeps workgroups, servers, shares and files in memory
  and can simulate stale handles.

Clients report failures as `OSError` with an ``errno``. `remote_call` turns
those into `RemoteIOError` (or `StaleHandle` for reads, writes and seeks on an
invalidated handle) at a single place.
"""

from __future__ import annotations

import errno
import logging
import os
import stat as _stat
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, TypeVar

import fsspec

from .address import Address
from .auth import Auth
from .config import DEFAULT_PORT
from .exceptions import STALE_ERRNOS, RemoteIOError, StaleHandle
from .stat import RemoteStat
from .types import EntryType, OpenMode, RawEntry

logger = logging.getLogger(__name__)

__all__ = [
    "SmbClient",
    "FsspecSmbClient",
    "MemorySmbClient",
    "remote_call",
]

T = TypeVar("T")

# errno to use for OSError subclasses raised without one (fsspec does that)
_ERRNO_BY_TYPE: Tuple[Tuple[type, int], ...] = (
    (FileNotFoundError, errno.ENOENT),
    (FileExistsError, errno.EEXIST),
    (IsADirectoryError, errno.EISDIR),
    (NotADirectoryError, errno.ENOTDIR),
    (PermissionError, errno.EACCES),
)

# only these raw operations can report an invalidated handle
_HANDLE_IO = frozenset({"read", "write", "seek"})


def remote_call(
    address: Any, operation: str, fn: Callable[..., T], *args: Any
) -> T:
    """Run one raw client operation and normalize its outcome.

    The result is passed through untouched (for reads, ``b""`` means end of
    data). Failures are translated:

    * an invalidated handle during ``read``, ``write`` or ``seek`` raises
      `StaleHandle`
    * any other `OSError` raises `RemoteIOError`

    Parameters:
        address: the address the operation acts on, for error reporting
        operation: name of the raw primitive
        fn: the client method to call
        *args: its arguments

    Returns:
        Whatever ``fn`` returned.
    """
    try:
        return fn(*args)
    except RemoteIOError:
        raise
    except OSError as err:
        code = err.errno
        if code is None:
            code = next(
                (num for kind, num in _ERRNO_BY_TYPE if isinstance(err, kind)), None
            )
        if operation in _HANDLE_IO and code in STALE_ERRNOS:
            raise StaleHandle(address, operation, err, errno=code) from err
        raise RemoteIOError(address, operation, err, errno=code) from err


def _os_error(code: int, address: Any) -> OSError:
    return OSError(code, os.strerror(code), str(address))


class SmbClient(ABC):
    """Abstract interface of the remote protocol engine.

    Handles are opaque to callers. Every method reports failures by raising
    `OSError` carrying an ``errno``; ``EBADF`` or ``ESTALE`` from `read`,
    `write` or `seek` means the handle was invalidated remotely and may be
    reopened.
    """

    @abstractmethod
    def open(self, address: Address, mode: OpenMode) -> Any:
        """Open the file at ``address`` and return a handle."""
        ...

    @abstractmethod
    def read(self, handle: Any, size: int) -> bytes:
        """Read at most ``size`` bytes; ``b""`` at end of data."""
        ...

    @abstractmethod
    def write(self, handle: Any, data: bytes) -> int:
        """Write ``data`` and return the number of bytes written."""
        ...

    @abstractmethod
    def seek(self, handle: Any, offset: int, whence: int = os.SEEK_SET) -> int:
        """Reposition the handle and return the new absolute offset."""
        ...

    @abstractmethod
    def close(self, handle: Any) -> None:
        """Release the handle."""
        ...

    @abstractmethod
    def fstat(self, handle: Any) -> RemoteStat:
        """Metadata of an open file."""
        ...

    @abstractmethod
    def stat(self, address: Address) -> RemoteStat:
        """Metadata of the resource at ``address``."""
        ...

    @abstractmethod
    def listdir(self, address: Address) -> Iterator[RawEntry]:
        """Enumerate a directory, share list, server list or workgroup list."""
        ...

    @abstractmethod
    def rename(self, old: Address, new: Address) -> None: ...

    @abstractmethod
    def unlink(self, address: Address) -> None: ...

    @abstractmethod
    def mkdir(self, address: Address) -> None: ...

    @abstractmethod
    def rmdir(self, address: Address) -> None: ...


# =============================================================================
# fsspec client
# =============================================================================


@dataclass
class _FsspecHandle:
    fs: fsspec.AbstractFileSystem
    path: str
    file: Any


def _fsspec_mode(mode: OpenMode) -> str:
    flags = str(mode)
    return flags[0] + "b" + flags[1:]


class FsspecSmbClient(SmbClient):
    """Client backed by fsspec's ``smb`` filesystem.

    One filesystem is requested per server; fsspec caches instances with
    identical arguments, so repeated operations on a server reuse its
    connection. Credentials embedded in an address win over the ones found
    by `Auth`.
    """

    protocol = "smb"

    def __init__(
        self,
        auth: Optional[Auth] = None,
        port: int = DEFAULT_PORT,
        storage_options: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Create the client.

        Parameters:
            auth: credential resolver, a default `Auth` if not given
            port: TCP port of the SMB servers
            storage_options: extra keyword arguments for the fsspec filesystem
        """
        self.auth = auth or Auth()
        self.port = port
        self.storage_options = storage_options or {}

    def filesystem(self, address: Address) -> fsspec.AbstractFileSystem:
        """Return the fsspec filesystem serving ``address``'s server."""
        if address.server is None:
            raise OSError(
                errno.EOPNOTSUPP,
                "network browsing is not supported by the fsspec backend",
                str(address),
            )
        options: Dict[str, Any] = {
            "host": address.server,
            "port": self.port,
            **self.storage_options,
        }
        credentials = self.auth.credentials_for(address)
        if credentials is not None:
            username = credentials.username
            if credentials.workgroup:
                username = f"{credentials.workgroup}\\{username}"
            options["username"] = username
            if credentials.password is not None:
                options["password"] = credentials.password
        return fsspec.filesystem(self.protocol, **options)

    def _locate(self, address: Address) -> Tuple[fsspec.AbstractFileSystem, str]:
        return self.filesystem(address), address.share_path

    def open(self, address: Address, mode: OpenMode) -> _FsspecHandle:
        fs, path = self._locate(address)
        if address.share is None:
            raise _os_error(errno.EISDIR, address)
        logger.debug(f"Opening {path} on {address.server} with mode {mode}")
        return _FsspecHandle(fs, path, fs.open(path, _fsspec_mode(mode)))

    def read(self, handle: _FsspecHandle, size: int) -> bytes:
        try:
            return handle.file.read(size)
        except ValueError as err:  # I/O operation on closed file
            raise OSError(errno.EBADF, str(err), handle.path) from err

    def write(self, handle: _FsspecHandle, data: bytes) -> int:
        try:
            written = handle.file.write(data)
            handle.file.flush()
        except ValueError as err:
            raise OSError(errno.EBADF, str(err), handle.path) from err
        return 0 if written is None else written

    def seek(
        self, handle: _FsspecHandle, offset: int, whence: int = os.SEEK_SET
    ) -> int:
        try:
            return handle.file.seek(offset, whence)
        except ValueError as err:
            raise OSError(errno.EBADF, str(err), handle.path) from err

    def close(self, handle: _FsspecHandle) -> None:
        handle.file.close()

    def fstat(self, handle: _FsspecHandle) -> RemoteStat:
        return RemoteStat.from_info(handle.fs.info(handle.path))

    def stat(self, address: Address) -> RemoteStat:
        fs, path = self._locate(address)
        return RemoteStat.from_info(fs.info(path))

    def listdir(self, address: Address) -> Iterator[RawEntry]:
        if address.share is None:
            raise OSError(
                errno.EOPNOTSUPP,
                "share enumeration is not supported by the fsspec backend",
                str(address),
            )
        fs, path = self._locate(address)
        for info in fs.ls(path, detail=True):
            name = info["name"].rstrip("/").rsplit("/", 1)[-1]
            kind = info.get("type")
            if kind == "directory":
                entry_type = EntryType.DIR
            elif kind == "link":
                entry_type = EntryType.LINK
            else:
                entry_type = EntryType.FILE
            yield RawEntry(name, entry_type)

    def rename(self, old: Address, new: Address) -> None:
        if (old.server or "").lower() != (new.server or "").lower():
            raise _os_error(errno.EXDEV, new)
        fs, path = self._locate(old)
        fs.mv(path, new.share_path)

    def unlink(self, address: Address) -> None:
        fs, path = self._locate(address)
        fs.rm_file(path)

    def mkdir(self, address: Address) -> None:
        fs, path = self._locate(address)
        fs.mkdir(path, create_parents=False)

    def rmdir(self, address: Address) -> None:
        fs, path = self._locate(address)
        fs.rmdir(path)


# =============================================================================
# In-memory client
# =============================================================================


@dataclass
class _MemoryNode:
    is_dir: bool
    data: bytearray = field(default_factory=bytearray)
    mtime: float = field(default_factory=time.time)
    ctime: float = field(default_factory=time.time)

    def stat(self) -> RemoteStat:
        if self.is_dir:
            mode, size = _stat.S_IFDIR | 0o755, 0
        else:
            mode, size = _stat.S_IFREG | 0o644, len(self.data)
        return RemoteStat(
            size=size, mode=mode, atime=self.mtime, mtime=self.mtime, ctime=self.ctime
        )


@dataclass
class _MemoryShare:
    type: EntryType
    comment: Optional[str]
    nodes: Dict[str, _MemoryNode] = field(
        default_factory=lambda: {"": _MemoryNode(is_dir=True)}
    )


@dataclass
class _MemoryServer:
    workgroup: str
    comment: Optional[str]
    shares: Dict[str, _MemoryShare] = field(default_factory=dict)


@dataclass
class _MemoryHandle:
    address: Address
    node: _MemoryNode
    mode: OpenMode
    position: int = 0
    stale: bool = False
    closed: bool = False


def _node_key(address: Address) -> str:
    return (address.path or "").rstrip("/")


def _parent_key(key: str) -> str:
    return key[: key.rfind("/")] if "/" in key else ""


class MemorySmbClient(SmbClient):
    """A client keeping a whole SMB network in memory.

    Intended for tests and offline work. Servers and shares are declared
    with `add_server` and `add_share`; files can be seeded with
    `write_file`. Stale handles are simulated with `invalidate`,
    `inject_stale_reads` and `inject_stale_writes`.

    Example:
        >>> client = MemorySmbClient()
        >>> client.add_share("server", "share")
        >>> client.write_file("smb://server/share/hello.txt", b"hi")
    """

    def __init__(self) -> None:
        self._servers: Dict[str, _MemoryServer] = {}
        self._handles: List[_MemoryHandle] = []
        self._stale_reads = 0
        self._stale_writes = 0

    # -- network layout ------------------------------------------------------

    def add_server(
        self, name: str, workgroup: str = "WORKGROUP", comment: Optional[str] = None
    ) -> None:
        """Declare a server in ``workgroup``."""
        self._servers.setdefault(name, _MemoryServer(workgroup, comment))

    def add_share(
        self,
        server: str,
        share: str,
        type: EntryType = EntryType.FILE_SHARE,
        comment: Optional[str] = None,
    ) -> None:
        """Declare a share, creating its server if needed."""
        self.add_server(server)
        self._servers[server].shares.setdefault(share, _MemoryShare(type, comment))

    def write_file(self, address: Any, data: bytes) -> None:
        """Create or replace a file, creating the missing parent directories."""
        address = Address.parse(str(address))
        share = self._share(address)
        key = _node_key(address)
        parts = key.split("/")
        for depth in range(2, len(parts)):
            share.nodes.setdefault("/".join(parts[:depth]), _MemoryNode(is_dir=True))
        share.nodes[key] = _MemoryNode(is_dir=False, data=bytearray(data))

    def read_file(self, address: Any) -> bytes:
        """Return the content of a file."""
        address = Address.parse(str(address))
        node = self._node(address)
        if node.is_dir:
            raise _os_error(errno.EISDIR, address)
        return bytes(node.data)

    # -- stale handle simulation ---------------------------------------------

    def invalidate(self, handle: _MemoryHandle) -> None:
        """Make a handle stale, as if the server dropped it."""
        handle.stale = True

    def invalidate_all(self) -> None:
        for handle in self._handles:
            handle.stale = True

    def inject_stale_reads(self, count: int = 1) -> None:
        """Fail the next ``count`` reads with ``EBADF``."""
        self._stale_reads = count

    def inject_stale_writes(self, count: int = 1) -> None:
        """Fail the next ``count`` writes with ``EBADF``."""
        self._stale_writes = count

    @property
    def open_handles(self) -> int:
        return sum(1 for handle in self._handles if not handle.closed)

    # -- lookups -------------------------------------------------------------

    def _server(self, address: Address) -> _MemoryServer:
        server = self._servers.get(address.server or "")
        if server is None:
            raise _os_error(errno.ENOENT, address)
        return server

    def _share(self, address: Address) -> _MemoryShare:
        share = self._server(address).shares.get(address.share or "")
        if share is None:
            raise _os_error(errno.ENOENT, address)
        return share

    def _node(self, address: Address) -> _MemoryNode:
        node = self._share(address).nodes.get(_node_key(address))
        if node is None:
            raise _os_error(errno.ENOENT, address)
        return node

    def _live(self, handle: _MemoryHandle) -> _MemoryHandle:
        if handle.closed or handle.stale:
            raise _os_error(errno.EBADF, handle.address)
        return handle

    # -- SmbClient -----------------------------------------------------------

    def open(self, address: Address, mode: OpenMode) -> _MemoryHandle:
        if address.share is None:
            self._server(address)
            raise _os_error(errno.EISDIR, address)
        share = self._share(address)
        key = _node_key(address)
        if not key:
            raise _os_error(errno.EISDIR, address)

        node = share.nodes.get(key)
        if node is None:
            parent = share.nodes.get(_parent_key(key))
            if not mode.create or parent is None or not parent.is_dir:
                raise _os_error(errno.ENOENT, address)
            node = share.nodes[key] = _MemoryNode(is_dir=False)
        elif node.is_dir:
            raise _os_error(errno.EISDIR, address)
        if mode.truncate:
            node.data.clear()
            node.mtime = time.time()

        handle = _MemoryHandle(address, node, mode)
        self._handles.append(handle)
        return handle

    def read(self, handle: _MemoryHandle, size: int) -> bytes:
        self._live(handle)
        if self._stale_reads:
            self._stale_reads -= 1
            raise _os_error(errno.EBADF, handle.address)
        if not handle.mode.readable:
            raise _os_error(errno.EACCES, handle.address)
        data = bytes(handle.node.data[handle.position : handle.position + size])
        handle.position += len(data)
        return data

    def write(self, handle: _MemoryHandle, data: bytes) -> int:
        self._live(handle)
        if self._stale_writes:
            self._stale_writes -= 1
            raise _os_error(errno.EBADF, handle.address)
        if not handle.mode.writable:
            raise _os_error(errno.EACCES, handle.address)
        content = handle.node.data
        if handle.mode.append:
            handle.position = len(content)
        if handle.position > len(content):
            content.extend(bytes(handle.position - len(content)))
        content[handle.position : handle.position + len(data)] = data
        handle.position += len(data)
        handle.node.mtime = time.time()
        return len(data)

    def seek(
        self, handle: _MemoryHandle, offset: int, whence: int = os.SEEK_SET
    ) -> int:
        self._live(handle)
        if whence == os.SEEK_SET:
            position = offset
        elif whence == os.SEEK_CUR:
            position = handle.position + offset
        elif whence == os.SEEK_END:
            position = len(handle.node.data) + offset
        else:
            raise _os_error(errno.EINVAL, handle.address)
        if position < 0:
            raise _os_error(errno.EINVAL, handle.address)
        handle.position = position
        return position

    def close(self, handle: _MemoryHandle) -> None:
        if handle.closed:
            raise _os_error(errno.EBADF, handle.address)
        handle.closed = True
        self._handles.remove(handle)
        if handle.stale:
            raise _os_error(errno.EBADF, handle.address)

    def fstat(self, handle: _MemoryHandle) -> RemoteStat:
        return self._live(handle).node.stat()

    def stat(self, address: Address) -> RemoteStat:
        if address.share is None:
            self._server(address)
            return _MemoryNode(is_dir=True).stat()
        return self._node(address).stat()

    def listdir(self, address: Address) -> Iterator[RawEntry]:
        if address.server is None:
            workgroups = sorted({s.workgroup for s in self._servers.values()})
            return iter([RawEntry(name, EntryType.WORKGROUP) for name in workgroups])

        if address.share is None and address.server not in self._servers:
            members = [
                RawEntry(name, EntryType.SERVER, server.comment)
                for name, server in sorted(self._servers.items())
                if server.workgroup == address.server
            ]
            if not members:
                raise _os_error(errno.ENOENT, address)
            return iter(members)

        if address.share is None:
            shares = self._server(address).shares
            return iter(
                [
                    RawEntry(name, share.type, share.comment)
                    for name, share in sorted(shares.items())
                ]
            )

        nodes = self._share(address).nodes
        key = _node_key(address)
        node = nodes.get(key)
        if node is None:
            raise _os_error(errno.ENOENT, address)
        if not node.is_dir:
            raise _os_error(errno.ENOTDIR, address)
        return iter(
            [
                RawEntry(
                    child.rsplit("/", 1)[-1],
                    EntryType.DIR if nodes[child].is_dir else EntryType.FILE,
                )
                for child in sorted(nodes)
                if child and _parent_key(child) == key
            ]
        )

    def rename(self, old: Address, new: Address) -> None:
        if (old.server, old.share) != (new.server, new.share):
            raise _os_error(errno.EXDEV, new)
        nodes = self._share(old).nodes
        source, target = _node_key(old), _node_key(new)
        if not source or source not in nodes:
            raise _os_error(errno.ENOENT, old)
        parent = nodes.get(_parent_key(target))
        if not target or parent is None or not parent.is_dir:
            raise _os_error(errno.ENOENT, new)
        if target in nodes:
            if nodes[target].is_dir:
                raise _os_error(errno.EISDIR, new)
            del nodes[target]
        for key in [k for k in nodes if k == source or k.startswith(source + "/")]:
            nodes[target + key[len(source) :]] = nodes.pop(key)

    def unlink(self, address: Address) -> None:
        node = self._node(address)
        if node.is_dir:
            raise _os_error(errno.EISDIR, address)
        del self._share(address).nodes[_node_key(address)]

    def mkdir(self, address: Address) -> None:
        nodes = self._share(address).nodes
        key = _node_key(address)
        if key in nodes:
            raise _os_error(errno.EEXIST, address)
        parent = nodes.get(_parent_key(key))
        if parent is None:
            raise _os_error(errno.ENOENT, address)
        if not parent.is_dir:
            raise _os_error(errno.ENOTDIR, address)
        nodes[key] = _MemoryNode(is_dir=True)

    def rmdir(self, address: Address) -> None:
        nodes = self._share(address).nodes
        key = _node_key(address)
        if not key:
            raise _os_error(errno.EBUSY, address)
        node = self._node(address)
        if not node.is_dir:
            raise _os_error(errno.ENOTDIR, address)
        if any(_parent_key(k) == key for k in nodes if k):
            raise _os_error(errno.ENOTEMPTY, address)
        del nodes[key]
