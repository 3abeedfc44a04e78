"""Tests for open modes and remote metadata."""

import os
import stat
from datetime import datetime, timezone

import pytest
from smbaccess.stat import RemoteStat
from smbaccess.types import OpenMode


class TestOpenMode:
    @pytest.mark.parametrize(
        "mode,readable,writable,append,truncate",
        [
            ("r", True, False, False, False),
            ("r+", True, True, False, False),
            ("w", False, True, False, True),
            ("w+", True, True, False, True),
            ("a", False, True, True, False),
            ("a+", True, True, True, False),
        ],
    )
    def test_parse(self, mode, readable, writable, append, truncate) -> None:
        parsed = OpenMode.parse(mode)
        assert parsed.readable is readable
        assert parsed.writable is writable
        assert parsed.append is append
        assert parsed.truncate is truncate
        assert str(parsed) == mode

    @pytest.mark.parametrize("mode", ["rb", "br", "r+b", "wb"])
    def test_binary_flag_ignored(self, mode) -> None:
        assert str(OpenMode.parse(mode)) == mode.replace("b", "")

    @pytest.mark.parametrize("mode", ["", "x", "rw", "rbb", "+", "ra"])
    def test_illegal(self, mode) -> None:
        with pytest.raises(ValueError, match="illegal access mode"):
            OpenMode.parse(mode)

    def test_not_a_string(self) -> None:
        with pytest.raises(TypeError):
            OpenMode.parse(1)  # type: ignore

    def test_parsed_mode_returned_as_is(self) -> None:
        mode = OpenMode.parse("a+")
        assert OpenMode.parse(mode) is mode

    def test_reopen_never_truncates(self) -> None:
        reopened = OpenMode.parse("w+").for_reopen()
        assert reopened.truncate is False
        assert reopened.readable and reopened.writable and reopened.create


class TestRemoteStat:
    def test_from_stat_result(self) -> None:
        st = os.stat_result((stat.S_IFREG | 0o600, 0, 0, 1, 10, 20, 42, 1.0, 2.0, 3.0))
        result = RemoteStat.from_stat_result(st)
        assert result.size == 42
        assert result.is_file()
        assert (result.uid, result.gid) == (10, 20)
        assert (result.atime, result.mtime, result.ctime) == (1.0, 2.0, 3.0)

    def test_from_info_directory(self) -> None:
        result = RemoteStat.from_info({"name": "d", "type": "directory", "size": 0})
        assert result.is_dir()
        assert not result.is_file()
        assert result.size_or_none is None

    def test_from_info_time_spellings(self) -> None:
        modified = datetime(2024, 5, 1, tzinfo=timezone.utc)
        result = RemoteStat.from_info(
            {"type": "file", "size": 7, "LastModified": modified, "created": 5}
        )
        assert result.size_or_none == 7
        assert result.mtime_datetime == modified
        assert result.atime == result.mtime
        assert result.ctime == 5.0
        assert result.ctime_datetime.tzinfo is timezone.utc

    def test_defaults(self) -> None:
        result = RemoteStat()
        assert result.size == 0
        assert not result.is_dir()
