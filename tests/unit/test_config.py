"""Tests for SmbConfig."""

import pytest
from smbaccess.config import DEFAULT_BUFFER_SIZE, SmbConfig


class TestDefaults:
    def test_defaults(self) -> None:
        config = SmbConfig()
        assert config.buffer_size == DEFAULT_BUFFER_SIZE == 4096
        assert config.line_separator == b"\n"
        assert config.port == 445
        assert config.encoding == "utf-8"
        assert config.trust_zero_writes is True

    def test_frozen(self) -> None:
        with pytest.raises(AttributeError):
            SmbConfig().port = 1  # type: ignore

    @pytest.mark.parametrize(
        "kwargs",
        [{"buffer_size": 0}, {"line_separator": b""}, {"port": 0}, {"port": 70000}],
    )
    def test_validation(self, kwargs) -> None:
        with pytest.raises(ValueError):
            SmbConfig(**kwargs)


class TestFromEnviron:
    """Test loading settings from environment variables."""

    def test_empty_environment(self) -> None:
        assert SmbConfig.from_environ({}) == SmbConfig()

    def test_overrides(self) -> None:
        config = SmbConfig.from_environ(
            {
                "SMBACCESS_BUFFER_SIZE": "128",
                "SMBACCESS_PORT": "1445",
                "SMBACCESS_ENCODING": "latin-1",
                "SMBACCESS_TRUST_ZERO_WRITES": "no",
            }
        )
        assert config == SmbConfig(
            buffer_size=128, port=1445, encoding="latin-1", trust_zero_writes=False
        )

    @pytest.mark.parametrize("value", ["1", "TRUE", "yes", " on "])
    def test_truthy_flags(self, value) -> None:
        config = SmbConfig.from_environ({"SMBACCESS_TRUST_ZERO_WRITES": value})
        assert config.trust_zero_writes is True

    def test_bad_integer(self) -> None:
        with pytest.raises(ValueError, match="SMBACCESS_BUFFER_SIZE"):
            SmbConfig.from_environ({"SMBACCESS_BUFFER_SIZE": "big"})

    def test_bad_flag(self) -> None:
        with pytest.raises(ValueError, match="SMBACCESS_TRUST_ZERO_WRITES"):
            SmbConfig.from_environ({"SMBACCESS_TRUST_ZERO_WRITES": "maybe"})

    def test_reads_os_environ(self, monkeypatch) -> None:
        monkeypatch.setenv("SMBACCESS_PORT", "4450")
        assert SmbConfig.from_environ().port == 4450
