"""Buffered, line oriented access to remote files.

`SmbFile` puts one fixed-size read-ahead buffer in front of a raw client
handle. Reads are served from the buffer and refill it when it runs dry;
writes go straight through to the handle. When the server silently drops
the handle, the stream reopens the file, seeks back to where it was and
retries the failed call once.
"""

from __future__ import annotations

import errno
import logging
import os
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, List, Optional, TypeVar, Union

from tenacity import Retrying, retry_if_exception_type, stop_after_attempt

from .address import Address, AddressLike, parse_address
from .client import SmbClient, remote_call
from .config import SmbConfig
from .exceptions import (
    AccessModeError,
    ClosedResourceError,
    RemoteIOError,
    StaleHandle,
)
from .stat import RemoteStat
from .types import ModeLike, OpenMode

logger = logging.getLogger(__name__)

__all__ = ["SmbFile", "DEFAULT_SEPARATOR"]

T = TypeVar("T")


class _DefaultSeparator:
    def __repr__(self) -> str:
        return "DEFAULT_SEPARATOR"


DEFAULT_SEPARATOR: Any = _DefaultSeparator()
"""Placeholder for the separator configured in `SmbConfig.line_separator`."""

Separator = Union[bytes, bytearray, str, None, _DefaultSeparator]

# an empty separator selects paragraph mode
_PARAGRAPH = b"\n\n"


@dataclass
class _StreamState:
    """Everything shared by a stream and its clones.

    The remote handle always sits at ``logical_start + valid``, and the
    logical position of the stream is ``logical_start + cursor``.
    """

    address: Address
    mode: OpenMode
    client: SmbClient
    config: SmbConfig
    handle: Any
    buffer: bytearray
    valid: int = 0
    cursor: int = 0
    logical_start: int = 0
    at_end: bool = False
    sync: bool = True
    lineno: int = 0
    last_line: Optional[bytes] = None
    references: int = 1


class SmbFile:
    """A file on an SMB share, opened for reading and/or writing.

    Streams are binary: reads return ``bytes`` and end of data is reported
    as ``b""`` (or ``None`` for `read_byte`), never as an exception. ``str``
    arguments to `write` and `readline` are encoded with the configured
    encoding.

    Example:
        >>> with session.open_file("smb://server/share/notes.txt") as f:
        ...     for line in f:
        ...         print(line)
    """

    def __init__(
        self,
        address: AddressLike,
        mode: ModeLike = "r",
        *,
        client: SmbClient,
        config: Optional[SmbConfig] = None,
    ) -> None:
        """Open a remote file.

        Parameters:
            address: url of the file
            mode: one of ``r``, ``r+``, ``w``, ``w+``, ``a`` or ``a+``
            client: client performing the raw operations
            config: buffer size, separator and encoding settings

        Raises:
            AddressError: If ``address`` does not parse.
            ValueError: If ``mode`` is not a valid access mode.
            RemoteIOError: If the remote file cannot be opened.
        """
        address = parse_address(address)
        open_mode = OpenMode.parse(mode)
        config = config or SmbConfig()
        handle = remote_call(address, "open", client.open, address, open_mode)
        logger.debug(f"Opened {address!r} with mode {open_mode}")
        self._state = _StreamState(
            address=address,
            mode=open_mode,
            client=client,
            config=config,
            handle=handle,
            buffer=bytearray(config.buffer_size),
        )
        self._closed = False

    @classmethod
    def _from_state(cls, state: _StreamState) -> SmbFile:
        stream = cls.__new__(cls)
        stream._state = state
        stream._closed = False
        return stream

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"<{status} SmbFile {self._state.address!r}, mode {self.mode!r}>"

    def __enter__(self) -> SmbFile:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -- properties ----------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._state.address

    @property
    def name(self) -> str:
        return self._state.address.url

    @property
    def mode(self) -> str:
        return str(self._state.mode)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lineno(self) -> int:
        """Number of lines returned by `readline` so far."""
        return self._state.lineno

    @lineno.setter
    def lineno(self, value: int) -> None:
        self._state.lineno = int(value)

    @property
    def last_line(self) -> Optional[bytes]:
        """The last line returned by `readline`, None before the first one."""
        return self._state.last_line

    @property
    def sync(self) -> bool:
        return self._state.sync

    @sync.setter
    def sync(self, value: bool) -> None:
        self._state.sync = bool(value)

    def readable(self) -> bool:
        self._check_open()
        return self._state.mode.readable

    def writable(self) -> bool:
        self._check_open()
        return self._state.mode.writable

    def seekable(self) -> bool:
        return True

    # -- checks --------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise ClosedResourceError("I/O operation on closed file")

    def _check_readable(self) -> None:
        self._check_open()
        if not self._state.mode.readable:
            raise AccessModeError("File not open for reading")

    def _check_writable(self) -> None:
        self._check_open()
        if not self._state.mode.writable:
            raise AccessModeError("File not open for writing")

    # -- raw access ----------------------------------------------------------

    def _raw(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        return remote_call(self._state.address, operation, fn, *args)

    def _recovering(self, operation: str, position: int, call: Callable[[], T]) -> T:
        """Run ``call``, reopening the file once if its handle went stale.

        ``position`` is the remote offset the handle is put back at before
        the retry.
        """
        retrying = Retrying(
            retry=retry_if_exception_type(StaleHandle),
            stop=stop_after_attempt(2),
            before_sleep=lambda retry_state: self._reopen(position),
            reraise=True,
        )
        try:
            return retrying(call)
        except StaleHandle as err:
            raise RemoteIOError(
                self._state.address, operation, err.cause, errno=err.errno
            ) from err

    def _reopen(self, position: int) -> None:
        state = self._state
        logger.info(f"Reopening stale handle of {state.address!r} at offset {position}")
        try:
            state.client.close(state.handle)
        except OSError as err:
            logger.debug(f"Closing stale handle of {state.address!r} failed: {err}")
        state.handle = self._raw(
            "open", state.client.open, state.address, state.mode.for_reopen()
        )
        self._raw("seek", state.client.seek, state.handle, position, os.SEEK_SET)

    def _fill(self) -> int:
        """Slide the buffer past the consumed bytes and read the next block."""
        state = self._state
        state.logical_start += state.valid
        state.valid = state.cursor = 0

        def read() -> bytes:
            return self._raw(
                "read", state.client.read, state.handle, len(state.buffer)
            )

        data = self._recovering("read", state.logical_start, read)
        state.buffer[: len(data)] = data
        state.valid = len(data)
        state.at_end = not data
        return state.valid

    def _available(self) -> int:
        """Bytes left in the buffer, refilling it if it is used up."""
        state = self._state
        if state.cursor == state.valid:
            return self._fill()
        return state.valid - state.cursor

    def _separator(self, separator: Separator) -> Optional[bytes]:
        if separator is DEFAULT_SEPARATOR:
            return self._state.config.line_separator
        if separator is None:
            return None
        if isinstance(separator, str):
            separator = separator.encode(self._state.config.encoding)
        return bytes(separator) or _PARAGRAPH

    # -- reading -------------------------------------------------------------

    def read_byte(self) -> Optional[int]:
        """Read one byte, None at end of data."""
        self._check_readable()
        if not self._available():
            return None
        state = self._state
        value = state.buffer[state.cursor]
        state.cursor += 1
        return value

    def readchar(self) -> int:
        """Read one byte.

        Raises:
            EOFError: At end of data.
        """
        value = self.read_byte()
        if value is None:
            raise EOFError("end of file reached")
        return value

    def unread_byte(self, value: int) -> None:
        """Push ``value`` back so that the next read returns it.

        Only the buffered copy is changed, the remote file is left alone.

        Raises:
            ValueError: If the stream is at offset 0.
        """
        self._check_readable()
        state = self._state
        if state.cursor > 0:
            state.cursor -= 1
            state.buffer[state.cursor] = value
            return

        position = self.tell() - 1
        if position < 0:
            raise ValueError("cannot push back before the start of the file")
        self._reposition(position)
        self._fill()
        state.valid = max(state.valid, 1)
        state.buffer[0] = value

    def read(self, size: int = -1) -> bytes:
        """Read at most ``size`` bytes; any ``size <= 0`` reads everything left.

        Returns:
            The bytes read, ``b""`` at end of data.
        """
        self._check_readable()
        state = self._state
        remaining = size if size > 0 else None
        chunks: List[bytes] = []
        while remaining is None or remaining > 0:
            available = self._available()
            if not available:
                break
            take = available if remaining is None else min(available, remaining)
            chunks.append(bytes(state.buffer[state.cursor : state.cursor + take]))
            state.cursor += take
            if remaining is not None:
                remaining -= take
        return b"".join(chunks)

    def readline(self, separator: Separator = DEFAULT_SEPARATOR) -> bytes:
        """Read up to and including the next ``separator``.

        Parameters:
            separator: bytes (or str) ending a line. ``b""`` means paragraph
                mode, a blank line ends the record. ``None`` reads the rest
                of the file. Defaults to `SmbConfig.line_separator`.

        Returns:
            The line with its separator; the last line of a file may come
            without one. ``b""`` at end of data.
        """
        self._check_readable()
        sep = self._separator(separator)
        if sep is None:
            line = self.read()
        else:
            line = self._scan_line(sep)
        if line:
            self._state.lineno += 1
            self._state.last_line = line
        return line

    def _scan_line(self, sep: bytes) -> bytes:
        state = self._state
        line = bytearray()
        while self._available():
            window = state.buffer[state.cursor : state.valid]
            # a separator can straddle two buffer loads
            start = max(0, len(line) - len(sep) + 1)
            offset = len(line)
            line += window
            found = line.find(sep, start)
            if found != -1:
                end = found + len(sep)
                state.cursor += end - offset
                del line[end:]
                break
            state.cursor = state.valid
        return bytes(line)

    def readlines(self, separator: Separator = DEFAULT_SEPARATOR) -> List[bytes]:
        """Read all remaining lines."""
        return list(iter(lambda: self.readline(separator), b""))

    def __iter__(self) -> Iterator[bytes]:
        return self

    def __next__(self) -> bytes:
        line = self.readline()
        if not line:
            raise StopIteration
        return line

    def iter_bytes(self) -> Iterator[int]:
        """Yield the remaining bytes one at a time."""
        while True:
            value = self.read_byte()
            if value is None:
                return
            yield value

    def eof(self) -> bool:
        """Whether the stream is at end of data, refilling the buffer if needed."""
        self._check_readable()
        return not self._available()

    # -- writing -------------------------------------------------------------

    def write(self, data: Union[bytes, bytearray, memoryview, str]) -> int:
        """Write ``data`` at the current position (at the end in append mode).

        Returns:
            The number of bytes written.

        Raises:
            AccessModeError: If the stream is not writable.
            RemoteIOError: If the write fails, or reports nothing written
                while `SmbConfig.trust_zero_writes` is off.
        """
        self._check_writable()
        state = self._state
        if isinstance(data, str):
            data = data.encode(state.config.encoding)
        payload = bytes(data)
        if not payload:
            return 0

        position = state.logical_start + state.cursor

        def write() -> int:
            self._raw("seek", state.client.seek, state.handle, position, os.SEEK_SET)
            return self._raw("write", state.client.write, state.handle, payload)

        written = self._recovering("write", position, write)
        if written == 0:
            if not state.config.trust_zero_writes:
                raise RemoteIOError(
                    state.address, "write", strerror="no bytes written", errno=errno.EIO
                )
            written = len(payload)

        if state.mode.append:
            end = self._raw("seek", state.client.seek, state.handle, 0, os.SEEK_CUR)
        else:
            end = position + written
        state.logical_start = end
        state.valid = state.cursor = 0
        state.at_end = False
        return written

    def write_byte(self, value: int) -> int:
        return self.write(bytes([value]))

    def writelines(self, lines: Iterable[Union[bytes, str]]) -> None:
        for line in lines:
            self.write(line)

    def printf(self, template: Union[bytes, str], *args: Any) -> int:
        """Write ``template % args``; returns the number of bytes written."""
        return self.write(template % args)

    def __lshift__(self, data: Union[bytes, str]) -> SmbFile:
        """Write ``data`` and return the stream: ``f << "a" << b"b"``."""
        self.write(data)
        return self

    def flush(self) -> None:
        """Writes are not buffered, so there is nothing to flush."""
        self._check_open()

    # -- positioning ---------------------------------------------------------

    def tell(self) -> int:
        self._check_open()
        return self._state.logical_start + self._state.cursor

    def _reposition(self, position: int) -> None:
        state = self._state
        state.logical_start = position
        state.valid = state.cursor = 0
        state.at_end = False

        def seek() -> int:
            return self._raw(
                "seek", state.client.seek, state.handle, position, os.SEEK_SET
            )

        self._recovering("seek", position, seek)

    def seek(self, offset: int, whence: int = os.SEEK_SET) -> int:
        """Move to a new position and prefetch from there.

        Parameters:
            offset: byte offset relative to ``whence``
            whence: ``os.SEEK_SET``, ``os.SEEK_CUR`` or ``os.SEEK_END``

        Returns:
            The new absolute position.

        Raises:
            ValueError: If ``whence`` is invalid or the target is negative.
        """
        self._check_open()
        if whence == os.SEEK_SET:
            target = offset
        elif whence == os.SEEK_CUR:
            target = self.tell() + offset
        elif whence == os.SEEK_END:
            target = self.stat().size + offset
        else:
            raise ValueError(f"invalid whence ({whence}, should be 0, 1 or 2)")
        if target < 0:
            raise ValueError(f"negative seek position {target}")

        self._reposition(target)
        if self._state.mode.readable:
            self._fill()
        return target

    def rewind(self) -> int:
        """Seek to the start. The line counter is left alone."""
        return self.seek(0)

    # -- misc ----------------------------------------------------------------

    def stat(self) -> RemoteStat:
        self._check_open()
        state = self._state
        return self._raw("fstat", state.client.fstat, state.handle)

    def clone(self) -> SmbFile:
        """Return a second stream sharing this one's handle and position.

        The handle is closed when the last of the clones is closed.
        """
        self._check_open()
        self._state.references += 1
        return SmbFile._from_state(self._state)

    def close(self) -> None:
        """Close this stream; closing twice is harmless."""
        if self._closed:
            return
        self._closed = True
        state = self._state
        state.references -= 1
        if state.references == 0:
            logger.debug(f"Closing {state.address!r}")
            self._raw("close", state.client.close, state.handle)
