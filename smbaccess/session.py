"""A client and a configuration bound together."""

from __future__ import annotations

import logging
from typing import Iterator, List, Optional, Union

from .address import AddressLike, parse_address
from .auth import Auth
from .client import FsspecSmbClient, SmbClient, remote_call
from .config import SmbConfig
from .directory import SmbDir
from .exceptions import RemoteIOError
from .file import DEFAULT_SEPARATOR, Separator, SmbFile
from .stat import RemoteStat
from .types import ModeLike

logger = logging.getLogger(__name__)

__all__ = ["Session"]


class Session:
    """Entry point for working with SMB resources.

    A session holds the client every file and directory it opens goes
    through, along with the settings those objects use.

    Example:
        >>> session = Session()
        >>> session.listdir("smb://server/share")
        ['docs', 'readme.txt']
    """

    def __init__(
        self,
        client: Optional[SmbClient] = None,
        config: Optional[SmbConfig] = None,
        auth: Optional[Auth] = None,
    ) -> None:
        """Create a session.

        Parameters:
            client: client to use, a `FsspecSmbClient` when not given
            config: settings, `SmbConfig` defaults when not given
            auth: credential resolver for the default client
        """
        self.config = config or SmbConfig()
        self.auth = auth or Auth()
        if client is None:
            client = FsspecSmbClient(auth=self.auth, port=self.config.port)
        self.client = client
        logger.debug(f"Session created with {type(client).__name__}")

    def __repr__(self) -> str:
        return f"Session(client={type(self.client).__name__})"

    def open(
        self, url: AddressLike, mode: Optional[ModeLike] = None
    ) -> Union[SmbDir, SmbFile]:
        """Open a directory or a file.

        Without a ``mode`` the url is tried as a directory first and opened
        as a read-only file if that fails.

        Parameters:
            url: address to open
            mode: file access mode; forces ``url`` to be opened as a file

        Returns:
            An `SmbDir` or an `SmbFile`.
        """
        if mode is not None:
            return self.open_file(url, mode)
        try:
            return self.open_dir(url)
        except RemoteIOError as err:
            logger.debug(f"{url} is not a directory ({err}), opening it as a file")
        return self.open_file(url, "r")

    def open_file(self, url: AddressLike, mode: ModeLike = "r") -> SmbFile:
        return SmbFile(url, mode, client=self.client, config=self.config)

    def open_dir(self, url: AddressLike) -> SmbDir:
        return SmbDir(url, session=self)

    def stat(self, url: AddressLike) -> RemoteStat:
        address = parse_address(url)
        return remote_call(address, "stat", self.client.stat, address)

    def rename(self, old: AddressLike, new: AddressLike) -> None:
        """Rename ``old`` to ``new``; both must be on the same server."""
        source, target = parse_address(old), parse_address(new)
        remote_call(source, "rename", self.client.rename, source, target)

    def unlink(self, *urls: AddressLike) -> int:
        """Delete files.

        Returns:
            The number of files deleted. The first failure is raised and the
            remaining files are left alone.
        """
        for url in urls:
            address = parse_address(url)
            remote_call(address, "unlink", self.client.unlink, address)
        return len(urls)

    delete = unlink

    def mkdir(self, url: AddressLike) -> None:
        address = parse_address(url)
        remote_call(address, "mkdir", self.client.mkdir, address)

    def rmdir(self, url: AddressLike) -> None:
        address = parse_address(url)
        remote_call(address, "rmdir", self.client.rmdir, address)

    def listdir(self, url: AddressLike) -> List[str]:
        """Names of the entries of a directory, share, server or workgroup."""
        with self.open_dir(url) as snapshot:
            return snapshot.names()

    def iterdir(self, url: AddressLike) -> Iterator[str]:
        with self.open_dir(url) as snapshot:
            for entry in snapshot:
                yield entry.name

    def iter_lines(
        self, url: AddressLike, separator: Separator = DEFAULT_SEPARATOR
    ) -> Iterator[bytes]:
        """Yield the lines of a file, closing it once they are consumed."""
        with self.open_file(url, "r") as stream:
            while True:
                line = stream.readline(separator)
                if not line:
                    return
                yield line
