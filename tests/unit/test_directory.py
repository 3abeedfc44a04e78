"""Tests for directory snapshots and entry dispatch."""

import errno
from unittest.mock import patch

import pytest
from smbaccess import NETWORK_ROOT
from smbaccess.directory import DirEntry, SmbDir, open_entry
from smbaccess.exceptions import ClosedResourceError, RemoteIOError, SmbError
from smbaccess.file import SmbFile
from smbaccess.types import EntryType

DOCS_URL = "smb://fileserver/public/docs"


class TestSnapshot:
    """Test navigating a snapshot."""

    def test_entries_in_enumeration_order(self, session) -> None:
        with session.open_dir("smb://fileserver/public") as snapshot:
            assert snapshot.names() == ["docs", "readme.txt"]
            assert [entry.type for entry in snapshot.to_list()] == [
                EntryType.DIR,
                EntryType.FILE,
            ]

    def test_child_urls(self, session) -> None:
        with session.open_dir("smb://fileserver/public") as snapshot:
            assert [entry.url for entry in snapshot] == [
                "smb://fileserver/public/docs",
                "smb://fileserver/public/readme.txt",
            ]

    def test_child_urls_without_doubled_separator(self, session) -> None:
        with session.open_dir("smb://fileserver/public/") as snapshot:
            assert snapshot.at(0).url == "smb://fileserver/public/docs"

    def test_at_in_and_out_of_range(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            count = len(snapshot)
            assert count == 2
            for index in range(count):
                assert snapshot.at(index) is not None
            assert snapshot.at(count) is None
            assert snapshot.at(-1) is None
            assert snapshot.tell() == 0

    def test_rewind_replays_entries(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            first = list(snapshot)
            assert snapshot.read() is None
            assert snapshot.rewind() == 0
            second = [snapshot.read(), snapshot.read()]
            assert first == second
            assert [entry.name for entry in first] == ["a.txt", "b.txt"]

    def test_read_advances_cursor(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            assert snapshot.read().name == "a.txt"
            assert snapshot.tell() == 1
            assert snapshot.read().name == "b.txt"
            assert snapshot.read() is None

    def test_seek(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            snapshot.seek(1)
            assert snapshot.read().name == "b.txt"
            snapshot.seek(10)
            assert snapshot.read() is None
            with pytest.raises(ValueError):
                snapshot.seek(-1)

    def test_each_starts_at_cursor(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            snapshot.read()
            assert [entry.name for entry in snapshot.each()] == ["b.txt"]

    def test_navigation_never_requeries(self, session, client) -> None:
        with patch.object(client, "listdir", wraps=client.listdir) as spy:
            snapshot = session.open_dir(DOCS_URL)
            list(snapshot)
            snapshot.rewind()
            snapshot.seek(1)
            snapshot.at(0)
            snapshot.to_list()
            snapshot.close()
        assert spy.call_count == 1

    def test_snapshot_is_not_refreshed(self, session, client) -> None:
        snapshot = session.open_dir(DOCS_URL)
        client.write_file(DOCS_URL + "/c.txt", b"late")
        assert snapshot.names() == ["a.txt", "b.txt"]
        snapshot.close()

    def test_close(self, session) -> None:
        snapshot = session.open_dir(DOCS_URL)
        snapshot.close()
        snapshot.close()
        assert snapshot.closed
        for operation in (snapshot.read, snapshot.rewind, snapshot.to_list):
            with pytest.raises(ClosedResourceError):
                operation()
        with pytest.raises(ClosedResourceError):
            snapshot.at(0)

    def test_url(self, session) -> None:
        with SmbDir(DOCS_URL, session=session) as snapshot:
            assert snapshot.url == DOCS_URL
            assert snapshot.address.share == "public"


class TestListingErrors:
    """Test that enumeration failures abort the open."""

    def test_missing_directory(self, session) -> None:
        with pytest.raises(RemoteIOError) as excinfo:
            session.open_dir("smb://fileserver/public/nothing")
        assert excinfo.value.errno == errno.ENOENT
        assert excinfo.value.operation == "listdir"

    def test_listing_a_file(self, session) -> None:
        with pytest.raises(RemoteIOError) as excinfo:
            session.open_dir(DOCS_URL + "/a.txt")
        assert excinfo.value.errno == errno.ENOTDIR

    def test_unknown_server(self, session) -> None:
        with pytest.raises(RemoteIOError):
            session.open_dir("smb://nowhere")


class TestNetworkListings:
    """Test share, server and workgroup listings."""

    def test_shares_of_server(self, session) -> None:
        with session.open_dir("smb://fileserver") as snapshot:
            entries = snapshot.to_list()
        assert [entry.name for entry in entries] == ["IPC$", "printer", "public"]
        assert [entry.type for entry in entries] == [
            EntryType.IPC_SHARE,
            EntryType.PRINTER_SHARE,
            EntryType.FILE_SHARE,
        ]
        assert entries[0].comment == "IPC Service"
        assert entries[2].url == "smb://fileserver/public"

    def test_workgroups(self, session) -> None:
        with session.open_dir(NETWORK_ROOT) as snapshot:
            entries = snapshot.to_list()
        assert [entry.url for entry in entries] == ["smb://LAB", "smb://WORKGROUP"]
        assert all(entry.is_workgroup() for entry in entries)

    def test_servers_get_top_level_urls(self, session) -> None:
        with session.open_dir("smb://WORKGROUP") as snapshot:
            (entry,) = snapshot.to_list()
        assert entry.is_server()
        assert entry.url == "smb://fileserver"
        assert entry.comment == "Main file server"

    def test_servers_keep_credentials(self, session) -> None:
        with session.open_dir("smb://guest:pw@LAB") as snapshot:
            assert snapshot.at(0).url == "smb://guest:pw@labbox"


class TestDirEntry:
    """Test entry predicates and dispatch."""

    @pytest.mark.parametrize(
        "entry_type,predicate",
        [
            (EntryType.WORKGROUP, "is_workgroup"),
            (EntryType.SERVER, "is_server"),
            (EntryType.FILE_SHARE, "is_file_share"),
            (EntryType.PRINTER_SHARE, "is_printer_share"),
            (EntryType.COMMS_SHARE, "is_comms_share"),
            (EntryType.IPC_SHARE, "is_ipc_share"),
            (EntryType.DIR, "is_dir"),
            (EntryType.FILE, "is_file"),
            (EntryType.LINK, "is_link"),
        ],
    )
    def test_exactly_one_predicate_holds(self, entry_type, predicate) -> None:
        entry = DirEntry(url="smb://s/x", name="x", type=entry_type)
        predicates = [name for name in dir(entry) if name.startswith("is_")]
        assert [name for name in predicates if getattr(entry, name)()] == [predicate]

    def test_type_codes(self) -> None:
        assert EntryType(7) is EntryType.DIR
        assert EntryType.FILE == 8

    def test_entries_are_immutable(self) -> None:
        entry = DirEntry(url="smb://s/x", name="x", type=EntryType.FILE)
        with pytest.raises(AttributeError):
            entry.name = "y"  # type: ignore

    def test_equality_ignores_session(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            entry = snapshot.at(0)
        assert entry == DirEntry(
            url=DOCS_URL + "/a.txt", name="a.txt", type=EntryType.FILE
        )

    def test_open_directory(self, session) -> None:
        with session.open_dir("smb://fileserver/public") as snapshot:
            child = snapshot.at(0).open()
        assert isinstance(child, SmbDir)
        assert child.names() == ["a.txt", "b.txt"]

    def test_open_file_read_only(self, session) -> None:
        with session.open_dir(DOCS_URL) as snapshot:
            stream = open_entry(snapshot.at(0))
        assert isinstance(stream, SmbFile)
        assert stream.mode == "r"
        assert stream.read() == b"a\nb\nc"
        stream.close()

    def test_open_share_server_and_workgroup(self, session) -> None:
        with session.open_dir(NETWORK_ROOT) as network:
            workgroup = network.at(1).open()
        server = workgroup.at(0).open()
        share = server.at(2).open()
        assert share.names() == ["docs", "readme.txt"]

    @pytest.mark.parametrize("index", [0, 1])
    def test_unopenable_types(self, session, index) -> None:
        with session.open_dir("smb://fileserver") as snapshot:
            entry = snapshot.at(index)
        with pytest.raises(SmbError, match="can't open that file type"):
            entry.open()

    def test_open_link(self, session) -> None:
        entry = DirEntry(
            url="smb://fileserver/public/ln",
            name="ln",
            type=EntryType.LINK,
            session=session,
        )
        with pytest.raises(SmbError):
            entry.open()

    def test_detached_entry(self) -> None:
        entry = DirEntry(url="smb://s/share/x", name="x", type=EntryType.FILE)
        with pytest.raises(SmbError, match="session"):
            entry.open()

    def test_stat(self, session) -> None:
        with session.open_dir("smb://fileserver/public") as snapshot:
            assert snapshot.at(1).stat().size == 12
            assert snapshot.at(0).stat().is_dir()
