"""
Fetch a user's published public keys from a key host.

GitHub serves every account's keys as plain text at
``https://github.com/<user>.keys``, one key per line. Any host
answering the same format works with a different URL template.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests

from . import DEFAULT_URL_TEMPLATE, __version__
from .errors import RemoteError

logger = logging.getLogger("keysync.fetcher")

USER_AGENT = f"keysync/{__version__}"


class KeyFetcher:
    """HTTP client for a key listing endpoint.

    Args:
        url_template: URL with an ``{identity}`` placeholder.
        timeout: Request timeout in seconds, None to wait indefinitely.
        session: Optional requests session to reuse connections.
    """

    def __init__(
        self,
        url_template: str = DEFAULT_URL_TEMPLATE,
        timeout: Optional[float] = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url_template = url_template
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)

    def url_for(self, identity: str) -> str:
        return self.url_template.format(identity=identity)

    def fetch(self, identity: str) -> list[str]:
        """Return the raw key lines published for *identity*.

        Blank lines are skipped and line terminators removed.

        Raises:
            RemoteError: On transport failure or a non-2xx status.
        """
        url = self.url_for(identity)
        logger.debug("GET %s", url)

        try:
            resp = self._session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteError(f"could not make request to {url}", cause=exc) from exc

        if not 200 <= resp.status_code < 300:
            raise RemoteError(
                f"invalid status code: {resp.status_code}",
                status_code=resp.status_code,
            )

        keys = parse_key_listing(resp.text)
        logger.debug("Fetched %d key(s) for %s", len(keys), identity)
        return keys


def parse_key_listing(body: str) -> list[str]:
    """Split a newline-delimited key listing into key lines."""
    keys = []
    for line in body.split("\n"):
        line = line.rstrip("\r")
        if line.strip():
            keys.append(line)
    return keys


def fetch_keys(
    identity: str,
    url_template: str = DEFAULT_URL_TEMPLATE,
    timeout: Optional[float] = 30.0,
) -> list[str]:
    """Fetch keys for *identity* with a one-off KeyFetcher."""
    with requests.Session() as session:
        return KeyFetcher(url_template, timeout=timeout, session=session).fetch(identity)
