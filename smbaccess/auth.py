"""Credential resolution for SMB servers.

Credentials for a server are looked up through a chain of strategies, tried
in order until one of them has something to offer:

* ``"address"``: user and password embedded in the address itself
* ``"callback"``: a function registered with `Auth.on_authentication`
* ``"environment"``: ``SMB_USERNAME``, ``SMB_PASSWORD`` and ``SMB_WORKGROUP``
* ``"netrc"``: the entry for the server in ``~/.netrc`` (or ``$NETRC``)
"""

from __future__ import annotations

import logging
import netrc
import os
import platform
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping, Optional, Sequence, Tuple

from .address import Address
from .exceptions import LoginStrategyUnavailable, SmbError

logger = logging.getLogger(__name__)

__all__ = [
    "Auth",
    "AuthCallback",
    "Credentials",
    "STRATEGIES",
    "netrc_path",
]

STRATEGIES = ("address", "callback", "environment", "netrc")

AuthCallback = Callable[
    [str, str, Optional[str], Optional[str], Optional[str]],
    Optional[Sequence[Optional[str]]],
]


@dataclass(frozen=True)
class Credentials:
    """Username, password and workgroup used to log in to a server."""

    username: str
    password: Optional[str] = None
    workgroup: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, workgroup={self.workgroup!r})"


def netrc_path() -> Path:
    """Location of the netrc file, honouring the ``NETRC`` variable."""
    if "NETRC" in os.environ:
        return Path(os.environ["NETRC"])
    name = "_netrc" if platform.system() == "Windows" else ".netrc"
    return Path.home() / name


class Auth:
    """Resolves the credentials to present to a server."""

    def __init__(
        self,
        strategies: Sequence[str] = STRATEGIES,
        environ: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Create a resolver.

        Parameters:
            strategies: names of the strategies to try, in order
            environ: mapping used by the ``environment`` strategy, defaults
                to ``os.environ``
        """
        unknown = [s for s in strategies if s not in STRATEGIES]
        if unknown:
            raise ValueError(f"Unknown authentication strategies: {unknown}")
        self.strategies = tuple(strategies)
        self._environ = environ
        self._callback: Optional[AuthCallback] = None

    def on_authentication(self, callback: AuthCallback) -> AuthCallback:
        """Register the function asked for credentials.

        The callback receives ``(server, share, workgroup, username,
        password)`` and returns either None or a ``(workgroup, username,
        password)`` triple. It is returned unchanged so this method can be
        used as a decorator.
        """
        if not callable(callback):
            raise TypeError("authentication callback must be callable")
        self._callback = callback
        return callback

    def credentials_for(self, address: Address) -> Optional[Credentials]:
        """Return the credentials for ``address``, or None to connect anonymously."""
        for strategy in self.strategies:
            try:
                credentials = getattr(self, f"_from_{strategy}")(address)
            except LoginStrategyUnavailable as err:
                logger.debug(err)
                continue
            logger.debug(f"Using {strategy} credentials for server {address.server}")
            return credentials
        return None

    def _from_address(self, address: Address) -> Credentials:
        if address.username is None:
            raise LoginStrategyUnavailable(f"No credentials embedded in {address!r}")
        return Credentials(address.username, address.password)

    def _from_callback(self, address: Address) -> Credentials:
        if self._callback is None:
            raise LoginStrategyUnavailable("No authentication callback registered")
        answer = self._callback(
            address.server or "",
            address.share or "",
            None,
            address.username,
            address.password,
        )
        if answer is None:
            raise LoginStrategyUnavailable(
                f"Authentication callback declined server {address.server}"
            )
        workgroup, username, password = _unpack_answer(answer)
        if not username:
            raise LoginStrategyUnavailable(
                f"Authentication callback gave no username for {address.server}"
            )
        return Credentials(username, password, workgroup)

    def _from_environment(self, address: Address) -> Credentials:
        env = os.environ if self._environ is None else self._environ
        username = env.get("SMB_USERNAME")
        if not username:
            raise LoginStrategyUnavailable("SMB_USERNAME is not set")
        return Credentials(username, env.get("SMB_PASSWORD"), env.get("SMB_WORKGROUP"))

    def _from_netrc(self, address: Address) -> Credentials:
        path = netrc_path()
        if not path.exists():
            raise LoginStrategyUnavailable(f"No .netrc found at {path}")
        try:
            entry = netrc.netrc(str(path)).authenticators(address.server or "")
        except netrc.NetrcParseError as err:
            raise LoginStrategyUnavailable(f"Unable to parse {path}: {err}") from err
        if entry is None:
            raise LoginStrategyUnavailable(
                f"No entry for server {address.server} in {path}"
            )
        login, account, password = entry
        return Credentials(login, password, account or None)


def _unpack_answer(
    answer: Sequence[Optional[str]],
) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    if not isinstance(answer, (list, tuple)) or len(answer) != 3:
        raise SmbError(
            "authentication callback should return workgroup, username and password"
        )
    workgroup, username, password = answer
    return workgroup, username, password
