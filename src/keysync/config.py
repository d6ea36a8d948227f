"""
Configuration loading and logging setup.

Settings come from an optional YAML file and from command line flags;
flags win. Example file::

    identity: octocat
    sync_interval: 5m
    authorized_keys_path: ~/.ssh/authorized_keys
    url_template: https://github.com/{identity}.keys
"""

from __future__ import annotations

import logging
import math
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from .errors import ErrorKind, KeySyncError
from .models import SyncConfig

logger = logging.getLogger("keysync.config")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


def parse_duration(text: str) -> float:
    """Parse a duration such as ``90s``, ``1m``, ``1h30m`` or ``500ms``.

    A bare number is taken as seconds.

    Returns:
        Duration in seconds.

    Raises:
        ValueError: If the text is not a positive duration.
    """
    text = str(text).strip()
    if not text:
        raise ValueError("empty duration")

    try:
        seconds = float(text)
    except ValueError:
        seconds = 0.0
        pos = 0
        for match in _DURATION_PART.finditer(text):
            if match.start() != pos:
                break
            seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
            pos = match.end()
        if pos != len(text):
            raise ValueError(f"invalid duration: {text!r}")

    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"duration must be positive: {text!r}")
    return seconds


def load_config(path: Path) -> dict[str, Any]:
    """Read settings from a YAML config file.

    Returns:
        Mapping of settings, empty if the file is empty.

    Raises:
        KeySyncError: With kind CONFIG if the file is unreadable or
            not a mapping.
    """
    path = Path(path).expanduser()
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except OSError as exc:
        raise KeySyncError(f"could not read config file {path}", ErrorKind.CONFIG, cause=exc) from exc
    except yaml.YAMLError as exc:
        raise KeySyncError(f"could not parse config file {path}", ErrorKind.CONFIG, cause=exc) from exc

    if not isinstance(data, dict):
        raise KeySyncError(f"config file {path} must contain a mapping", ErrorKind.CONFIG)

    interval = data.get("sync_interval")
    if isinstance(interval, str):
        try:
            data["sync_interval"] = parse_duration(interval)
        except ValueError as exc:
            raise KeySyncError(f"bad sync_interval in {path}", ErrorKind.CONFIG, cause=exc) from exc

    logger.debug("Loaded config from %s", path)
    return data


def build_config(file_values: Optional[dict[str, Any]] = None, **overrides: Any) -> SyncConfig:
    """Merge file settings with command line overrides.

    Overrides that are None are ignored, so unset flags fall back to
    the file and then to the model defaults.

    Raises:
        KeySyncError: With kind CONFIG if the result does not validate.
    """
    values = dict(file_values or {})
    values.update({k: v for k, v in overrides.items() if v is not None})
    try:
        return SyncConfig(**values)
    except ValidationError as exc:
        raise KeySyncError("invalid configuration", ErrorKind.CONFIG, cause=exc) from exc


def setup_logging(verbose: bool = False, log_file: Optional[Path] = None) -> None:
    """Configure console logging and an optional log file."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format=LOG_FORMAT)

    if log_file is not None:
        log_file = Path(log_file).expanduser()
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(log_file)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
