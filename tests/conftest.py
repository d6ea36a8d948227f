"""Shared test fixtures for keysync."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from keysync.models import SyncConfig

RSA_A = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC1"
RSA_C = "ssh-rsa AAAAB3NzaC1yc2EAAAADAQABAAABAQC3"
ED_B = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAIB2"
ED_D = "ssh-ed25519 AAAAC3NzaC1lZDI1NTE5AAAAID4"


@pytest.fixture
def authorized_keys(tmp_path: Path) -> Path:
    """Provide an empty authorized_keys file in a temporary .ssh dir."""
    ssh_dir = tmp_path / ".ssh"
    ssh_dir.mkdir()
    path = ssh_dir / "authorized_keys"
    path.write_text("")
    return path


@pytest.fixture
def sync_config(authorized_keys: Path) -> SyncConfig:
    return SyncConfig(
        identity="octocat",
        authorized_keys_path=authorized_keys,
        sync_interval=60,
    )


@pytest.fixture
def fake_fetcher():
    """A KeyFetcher stand-in returning RSA_A and RSA_C."""
    fetcher = MagicMock()
    fetcher.fetch.return_value = [RSA_A, RSA_C]
    return fetcher
