"""Type definitions shared by the clients, streams and directory snapshots."""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import IntEnum
from typing import NamedTuple, Optional, Union

__all__ = [
    "EntryType",
    "RawEntry",
    "OpenMode",
    "ModeLike",
]


class EntryType(IntEnum):
    """Kind of a directory entry.

    The values are the ``SMBC_*`` codes used by libsmbclient, so numbers
    coming from other SMB tooling can be converted with ``EntryType(code)``.
    """

    WORKGROUP = 1
    SERVER = 2
    FILE_SHARE = 3
    PRINTER_SHARE = 4
    COMMS_SHARE = 5
    IPC_SHARE = 6
    DIR = 7
    FILE = 8
    LINK = 9


class RawEntry(NamedTuple):
    """A directory entry as produced by a client, before it is composed."""

    name: str
    type: EntryType
    comment: Optional[str] = None


@dataclass(frozen=True)
class OpenMode:
    """Access flags a remote file is opened with.

    Attributes:
        readable: reads are allowed
        writable: writes are allowed
        append: every write goes to the end of the file
        create: the file is created if missing
        truncate: an existing file is emptied on open
    """

    readable: bool = True
    writable: bool = False
    append: bool = False
    create: bool = False
    truncate: bool = False

    @classmethod
    def parse(cls, mode: ModeLike) -> OpenMode:
        """Convert an ``open()`` style mode string.

        Accepted modes are ``r``, ``r+``, ``w``, ``w+``, ``a`` and ``a+``.
        A ``b`` anywhere in the string is ignored since all streams are
        binary.

        Raises:
            ValueError: For any other mode.
        """
        if isinstance(mode, OpenMode):
            return mode
        if not isinstance(mode, str):
            raise TypeError(f"mode must be a string, got {type(mode).__name__}")

        flags = mode.replace("b", "")
        if flags not in ("r", "r+", "w", "w+", "a", "a+") or mode.count("b") > 1:
            raise ValueError(f"illegal access mode {mode}")

        update = flags.endswith("+")
        if flags[0] == "r":
            return cls(readable=True, writable=update)
        if flags[0] == "w":
            return cls(readable=update, writable=True, create=True, truncate=True)
        return cls(readable=update, writable=True, append=True, create=True)

    def for_reopen(self) -> OpenMode:
        """The flags to reopen an already open file with (never truncates)."""
        return replace(self, truncate=False)

    def __str__(self) -> str:
        if self.append:
            base = "a"
        elif self.truncate:
            base = "w"
        else:
            base = "r"
        if base == "r":
            return "r+" if self.writable else "r"
        return base + "+" if self.readable else base


ModeLike = Union[str, OpenMode]
