"""Runtime configuration for smbaccess.

Values can be set explicitly or picked up from ``SMBACCESS_*`` environment
variables through `SmbConfig.from_environ`.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "SmbConfig",
    "DEFAULT_BUFFER_SIZE",
    "DEFAULT_PORT",
]

# Size of the read-ahead buffer of a remote stream (4kB)
DEFAULT_BUFFER_SIZE = 4096

DEFAULT_PORT = 445

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class SmbConfig:
    """Immutable settings shared by the streams and snapshots of a session.

    Attributes:
        buffer_size: capacity of the read-ahead buffer of each stream, in bytes
        line_separator: separator used by ``readline()`` when none is given
        port: TCP port used to reach SMB servers
        encoding: encoding used when ``str`` data or separators are passed in
        trust_zero_writes: treat a raw write that reports zero bytes for a
            non-empty payload as fully written. Some servers report 0 for
            successful writes; set to False to get an error instead.
    """

    buffer_size: int = DEFAULT_BUFFER_SIZE
    line_separator: bytes = b"\n"
    port: int = DEFAULT_PORT
    encoding: str = "utf-8"
    trust_zero_writes: bool = True

    def __post_init__(self) -> None:
        """Validate the settings."""
        if self.buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {self.buffer_size}")
        if not self.line_separator:
            raise ValueError("line_separator cannot be empty")
        if not 0 < self.port < 65536:
            raise ValueError(f"port must be between 1 and 65535, got {self.port}")

    @classmethod
    def from_environ(cls, environ: Optional[Mapping[str, str]] = None) -> SmbConfig:
        """Build a configuration from ``SMBACCESS_*`` environment variables.

        Parameters:
            environ: mapping to read from, defaults to ``os.environ``

        Returns:
            A new SmbConfig; unset variables keep their defaults.

        Raises:
            ValueError: If a variable holds a value of the wrong kind.
        """
        env = os.environ if environ is None else environ
        kwargs = {}

        if "SMBACCESS_BUFFER_SIZE" in env:
            kwargs["buffer_size"] = _int_setting(env, "SMBACCESS_BUFFER_SIZE")
        if "SMBACCESS_PORT" in env:
            kwargs["port"] = _int_setting(env, "SMBACCESS_PORT")
        if env.get("SMBACCESS_ENCODING"):
            kwargs["encoding"] = env["SMBACCESS_ENCODING"]
        if "SMBACCESS_TRUST_ZERO_WRITES" in env:
            kwargs["trust_zero_writes"] = _bool_setting(
                env, "SMBACCESS_TRUST_ZERO_WRITES"
            )

        if kwargs:
            logger.debug(f"Configuration overrides from environment: {sorted(kwargs)}")
        return cls(**kwargs)


def _int_setting(env: Mapping[str, str], name: str) -> int:
    try:
        return int(env[name])
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {env[name]!r}") from None


def _bool_setting(env: Mapping[str, str], name: str) -> bool:
    value = env[name].strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {env[name]!r}")
