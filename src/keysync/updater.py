"""
Apply a reconciliation to the authorized_keys file on disk.

The file is opened read+write without truncation, read whole,
reconciled in memory, then overwritten in place and truncated to the
new length. Nothing is written until the new content is fully known,
so a malformed file or a fetch failure leaves it untouched.

Bytes that are not valid UTF-8 are carried through as surrogate
escapes and written back unchanged.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Optional

from . import MARKER
from .errors import KeySyncError, io_error
from .fetcher import KeyFetcher
from .models import ReconcileResult, SyncConfig
from .reconcile import reconcile, split_lines

logger = logging.getLogger("keysync.updater")


def update_authorized_keys(
    path: Path,
    keys: Iterable[str],
    marker: str = MARKER,
) -> ReconcileResult:
    """Reconcile *keys* into the authorized_keys file at *path*.

    Args:
        path: Existing authorized_keys file.
        keys: Raw key lines as fetched.
        marker: Ownership annotation.

    Returns:
        The ReconcileResult that was written.

    Raises:
        MalformedLineError: If the file has an unparseable line.
        KeySyncError: With kind IO if any file operation fails.
    """
    path = Path(path).expanduser()

    try:
        fh = open(path, "r+", encoding="utf-8", errors="surrogateescape", newline="")
    except OSError as exc:
        raise io_error("could not open authorized keys file", exc) from exc

    with fh:
        try:
            current = fh.read()
        except OSError as exc:
            raise io_error("could not read authorized keys file", exc) from exc

        result = reconcile(keys, split_lines(current), marker)
        content = result.render()

        if content == current:
            logger.debug("%s already up to date", path)
            return result

        try:
            fh.seek(0)
        except OSError as exc:
            raise io_error("could not seek authorized keys file", exc) from exc
        try:
            fh.write(content)
            fh.flush()
        except OSError as exc:
            raise io_error("could not copy new contents to authorized keys file", exc) from exc
        try:
            fh.truncate()
        except OSError as exc:
            raise io_error("could not truncate authorized keys file", exc) from exc

    logger.info(
        "Updated %s (%d added, %d removed)", path, len(result.added), len(result.removed)
    )
    return result


def sync_keys(
    config: SyncConfig,
    fetcher: Optional[KeyFetcher] = None,
) -> ReconcileResult:
    """Run one fetch-then-reconcile-then-write cycle.

    Args:
        config: Sync configuration.
        fetcher: KeyFetcher to use, built from the config if omitted.

    Raises:
        KeySyncError: Wrapped with the failing stage.
    """
    fetcher = fetcher or KeyFetcher(config.url_template, timeout=config.request_timeout)

    try:
        keys = fetcher.fetch(config.identity)
    except KeySyncError as exc:
        raise exc.wrap("could not get public keys") from exc

    try:
        return update_authorized_keys(config.authorized_keys_path, keys, config.marker)
    except KeySyncError as exc:
        raise exc.wrap("could not update authorized keys file") from exc
