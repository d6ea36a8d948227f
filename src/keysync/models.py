"""
Pydantic models for keysync configuration and reconciliation results.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from . import DEFAULT_AUTHORIZED_KEYS, DEFAULT_SYNC_INTERVAL, DEFAULT_URL_TEMPLATE, MARKER


class SyncConfig(BaseModel):
    """Everything a sync cycle needs to know.

    Attributes:
        identity: Account whose published keys are synced.
        url_template: Key listing URL, ``{identity}`` is substituted.
        authorized_keys_path: Target file, must already exist.
        sync_interval: Seconds between periodic cycles.
        once: Run a single cycle and exit.
        marker: Annotation identifying lines keysync manages.
        request_timeout: HTTP timeout in seconds, None for no timeout.
    """

    identity: str
    url_template: str = DEFAULT_URL_TEMPLATE
    authorized_keys_path: Path = Field(default=Path(DEFAULT_AUTHORIZED_KEYS), validate_default=True)
    sync_interval: float = Field(default=DEFAULT_SYNC_INTERVAL, gt=0)
    once: bool = False
    marker: str = MARKER
    request_timeout: Optional[float] = Field(default=30.0, gt=0)

    @field_validator("identity")
    @classmethod
    def identity_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("identity must not be empty")
        return v

    @field_validator("url_template")
    @classmethod
    def template_has_identity(cls, v: str) -> str:
        if "{identity}" not in v:
            raise ValueError("url_template must contain '{identity}'")
        return v

    @field_validator("authorized_keys_path")
    @classmethod
    def expand_path(cls, v: Path) -> Path:
        return Path(v).expanduser()

    @field_validator("marker")
    @classmethod
    def marker_not_blank(cls, v: str) -> str:
        if not v.strip() or v != v.strip():
            raise ValueError("marker must be non-empty without surrounding whitespace")
        return v


class ReconcileResult(BaseModel):
    """Outcome of merging a fetched key set into authorized_keys lines.

    ``lines`` holds the new file content without line terminators.
    ``added`` lists identities appended, in append order; ``removed``
    lists managed identities dropped, in file order.
    """

    lines: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        """True when keys were added or removed."""
        return bool(self.added or self.removed)

    def render(self) -> str:
        """Join the lines into file content, one ``\\n`` after each."""
        return "".join(f"{line}\n" for line in self.lines)
