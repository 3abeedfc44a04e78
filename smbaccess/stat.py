"""Metadata of remote files and directories."""

from __future__ import annotations

import stat as _stat
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

__all__ = ["RemoteStat"]


@dataclass(frozen=True)
class RemoteStat:
    """Immutable snapshot of the metadata of a remote resource.

    Times are POSIX timestamps as reported by the client; use the
    ``*_datetime`` helpers for timezone-aware values.
    """

    size: int = 0
    mode: int = 0
    atime: float = 0.0
    mtime: float = 0.0
    ctime: float = 0.0
    uid: int = 0
    gid: int = 0

    @property
    def size_or_none(self) -> Optional[int]:
        """The size, or None for empty resources."""
        return self.size or None

    def is_dir(self) -> bool:
        return _stat.S_ISDIR(self.mode)

    def is_file(self) -> bool:
        return _stat.S_ISREG(self.mode)

    @property
    def mtime_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.mtime, tz=timezone.utc)

    @property
    def atime_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.atime, tz=timezone.utc)

    @property
    def ctime_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.ctime, tz=timezone.utc)

    @classmethod
    def from_stat_result(cls, st: Any) -> RemoteStat:
        """Build from an ``os.stat_result`` like object."""
        return cls(
            size=int(st.st_size),
            mode=int(st.st_mode),
            atime=float(st.st_atime),
            mtime=float(st.st_mtime),
            ctime=float(st.st_ctime),
            uid=int(getattr(st, "st_uid", 0)),
            gid=int(getattr(st, "st_gid", 0)),
        )

    @classmethod
    def from_info(cls, info: Mapping[str, Any]) -> RemoteStat:
        """Build from an fsspec ``info()`` dictionary.

        fsspec backends disagree on key names, so the usual spellings of
        each time field are tried in turn.
        """
        if info.get("type") == "directory":
            mode = _stat.S_IFDIR | 0o755
        else:
            mode = _stat.S_IFREG | 0o644
        mode = int(info.get("mode") or mode)

        mtime = _timestamp(info, "mtime", "time", "LastModified", "modified")
        atime = _timestamp(info, "atime") or mtime
        ctime = _timestamp(info, "ctime", "created") or mtime
        return cls(
            size=int(info.get("size") or 0),
            mode=mode,
            atime=atime,
            mtime=mtime,
            ctime=ctime,
            uid=int(info.get("uid") or 0),
            gid=int(info.get("gid") or 0),
        )


def _timestamp(info: Mapping[str, Any], *keys: str) -> float:
    for key in keys:
        value = info.get(key)
        if value is None:
            continue
        if isinstance(value, datetime):
            return value.timestamp()
        return float(value)
    return 0.0
