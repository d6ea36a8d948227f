"""
keysync — keep a user's published SSH keys in authorized_keys.

Fetches the public keys a user publishes on a key host (GitHub by
default) and merges them into a local authorized_keys file. Lines
keysync did not write are never touched.
"""

import os

__version__ = "0.1.0"

MARKER = "synced from github"
DEFAULT_URL_TEMPLATE = "https://github.com/{identity}.keys"
DEFAULT_AUTHORIZED_KEYS = os.path.join("~", ".ssh", "authorized_keys")
DEFAULT_SYNC_INTERVAL = 60.0
