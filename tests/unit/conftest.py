"""Pytest configuration and shared fixtures for unit tests."""

import pytest
from smbaccess import MemorySmbClient, Session, SmbConfig
from smbaccess.types import EntryType

# =============================================================================
# In-memory network
# =============================================================================

README_URL = "smb://fileserver/public/readme.txt"
DOCS_URL = "smb://fileserver/public/docs"


@pytest.fixture
def client() -> MemorySmbClient:
    """A small network with two workgroups.

    WORKGROUP/fileserver exports ``public`` (a file share), ``printer`` and
    ``IPC$``; LAB/labbox exports ``scratch``.
    """
    client = MemorySmbClient()
    client.add_server("fileserver", comment="Main file server")
    client.add_share("fileserver", "public", comment="Public files")
    client.add_share("fileserver", "printer", EntryType.PRINTER_SHARE)
    client.add_share("fileserver", "IPC$", EntryType.IPC_SHARE, "IPC Service")
    client.add_server("labbox", workgroup="LAB")
    client.add_share("labbox", "scratch")

    client.write_file(README_URL, b"hello\nworld\n")
    client.write_file(DOCS_URL + "/a.txt", b"a\nb\nc")
    client.write_file(DOCS_URL + "/b.txt", b"")
    return client


@pytest.fixture
def config() -> SmbConfig:
    """A tiny buffer so that a few bytes already span several refills."""
    return SmbConfig(buffer_size=8)


@pytest.fixture
def session(client: MemorySmbClient, config: SmbConfig) -> Session:
    return Session(client=client, config=config)
