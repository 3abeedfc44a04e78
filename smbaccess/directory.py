"""Directory listings.

Opening an `SmbDir` enumerates the remote directory once; afterwards the
snapshot is navigated locally and never goes back to the server. The same
class lists shares of a server, servers of a workgroup and the workgroups
of the network.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple, Union

from .address import Address, AddressLike, parse_address
from .client import remote_call
from .exceptions import ClosedResourceError, SmbError
from .stat import RemoteStat
from .types import EntryType, RawEntry

if TYPE_CHECKING:
    from .file import SmbFile
    from .session import Session

logger = logging.getLogger(__name__)

__all__ = [
    "DirEntry",
    "EntryType",
    "SmbDir",
    "open_entry",
]

# entry types that open as a listing
_LISTABLE = frozenset(
    {EntryType.DIR, EntryType.FILE_SHARE, EntryType.SERVER, EntryType.WORKGROUP}
)


@dataclass(frozen=True)
class DirEntry:
    """One entry of a directory snapshot.

    Attributes:
        url: address of the entry itself
        name: short name as listed by the server
        type: what kind of resource the entry is
        comment: free text the server attached to the entry (shares, servers)
    """

    url: str
    name: str
    type: EntryType
    comment: Optional[str] = None
    session: Optional[Session] = field(default=None, compare=False, repr=False)

    def __repr__(self) -> str:
        return f"DirEntry(name={self.name!r}, type={self.type.name})"

    def __str__(self) -> str:
        return self.url

    @property
    def address(self) -> Address:
        return parse_address(self.url)

    def is_workgroup(self) -> bool:
        return self.type is EntryType.WORKGROUP

    def is_server(self) -> bool:
        return self.type is EntryType.SERVER

    def is_file_share(self) -> bool:
        return self.type is EntryType.FILE_SHARE

    def is_printer_share(self) -> bool:
        return self.type is EntryType.PRINTER_SHARE

    def is_comms_share(self) -> bool:
        return self.type is EntryType.COMMS_SHARE

    def is_ipc_share(self) -> bool:
        return self.type is EntryType.IPC_SHARE

    def is_dir(self) -> bool:
        return self.type is EntryType.DIR

    def is_file(self) -> bool:
        return self.type is EntryType.FILE

    def is_link(self) -> bool:
        return self.type is EntryType.LINK

    def stat(self) -> RemoteStat:
        return self._session().stat(self.url)

    def open(self) -> Union[SmbDir, SmbFile]:
        """Open the entry, see `open_entry`."""
        return open_entry(self)

    def _session(self) -> Session:
        if self.session is None:
            raise SmbError(f"{self.name!r} is not attached to a session")
        return self.session


def open_entry(entry: DirEntry) -> Union[SmbDir, SmbFile]:
    """Open a directory entry according to its type.

    Directories, file shares, servers and workgroups open as an `SmbDir`;
    regular files open read-only as an `SmbFile`.

    Raises:
        SmbError: For printer, comms and IPC shares and for links.
    """
    if entry.type in _LISTABLE:
        return entry._session().open_dir(entry.url)
    if entry.type is EntryType.FILE:
        return entry._session().open_file(entry.url, "r")
    raise SmbError("can't open that file type")


def _child_url(parent: Address, raw: RawEntry) -> str:
    # servers are top level in the address grammar
    if raw.type is EntryType.SERVER and parent.server is not None:
        return parent.server_url(raw.name).url
    return parent.join(raw.name).url


class SmbDir:
    """A snapshot of a remote listing taken when it was opened.

    Entries come back in enumeration order. `read` walks them forward with
    a cursor; `at` indexes them without moving it.
    """

    def __init__(self, address: AddressLike, *, session: Session) -> None:
        """Enumerate ``address``.

        Parameters:
            address: url of a directory, share, server or workgroup
            session: session whose client performs the enumeration

        Raises:
            RemoteIOError: If the listing fails; no snapshot is created.
        """
        self._address = parse_address(address)
        self._session = session
        client = session.client
        raw_entries = remote_call(
            self._address, "listdir", lambda: list(client.listdir(self._address))
        )
        self._entries: Tuple[DirEntry, ...] = tuple(
            DirEntry(
                url=_child_url(self._address, raw),
                name=raw.name,
                type=EntryType(raw.type),
                comment=raw.comment,
                session=session,
            )
            for raw in raw_entries
        )
        self._cursor = 0
        self._closed = False
        logger.debug(f"Listed {len(self._entries)} entries in {self._address!r}")

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"<{status} SmbDir {self._address!r}, {len(self._entries)} entries>"

    def __enter__(self) -> SmbDir:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _check_open(self) -> None:
        if self._closed:
            raise ClosedResourceError("I/O operation on closed directory")

    @property
    def url(self) -> str:
        return self._address.url

    @property
    def address(self) -> Address:
        return self._address

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        self._check_open()
        return len(self._entries)

    def read(self) -> Optional[DirEntry]:
        """Return the entry under the cursor and advance, None when exhausted."""
        self._check_open()
        if not 0 <= self._cursor < len(self._entries):
            return None
        entry = self._entries[self._cursor]
        self._cursor += 1
        return entry

    def each(self) -> Iterator[DirEntry]:
        """Yield the entries from the cursor onwards, advancing it."""
        while True:
            entry = self.read()
            if entry is None:
                return
            yield entry

    __iter__ = each

    def at(self, index: int) -> Optional[DirEntry]:
        """Entry number ``index``, None outside ``[0, len)`` (negative included)."""
        self._check_open()
        if 0 <= index < len(self._entries):
            return self._entries[index]
        return None

    def tell(self) -> int:
        self._check_open()
        return self._cursor

    def seek(self, index: int) -> int:
        """Move the cursor; indices past the end leave the snapshot exhausted."""
        self._check_open()
        if index < 0:
            raise ValueError(f"negative directory position {index}")
        self._cursor = index
        return index

    def rewind(self) -> int:
        return self.seek(0)

    def to_list(self) -> List[DirEntry]:
        self._check_open()
        return list(self._entries)

    def names(self) -> List[str]:
        self._check_open()
        return [entry.name for entry in self._entries]

    def close(self) -> None:
        self._closed = True
