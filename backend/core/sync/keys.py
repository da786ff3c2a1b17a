"""
Object Key Parsing

Storage notifications carry keys shaped like

    {siteId}/{branch}/raw/{relativePath}

decode_key() undoes the storage provider's encoding and splits the key into
its parts. siteId and branch are checked against a strict identifier charset
so that traversal or injection attempts riding in a key never reach the
catalog or the bucket.
"""

import re
from dataclasses import dataclass
from urllib.parse import unquote

from backend.core.sync.errors import SyncError

KEY_PATTERN = re.compile(r"^([^/]+)/([^/]+)/raw/(.+)$", re.DOTALL)
IDENTIFIER_PATTERN = re.compile(r"^[\w-]+$", re.ASCII)


class InvalidKeyError(SyncError):
    """Notification key cannot be turned into a site file reference."""
    pass


class InvalidKeyFormatError(InvalidKeyError):
    """Key does not look like {siteId}/{branch}/raw/{path}."""
    pass


class InvalidIdentifierError(InvalidKeyError):
    """siteId or branch contains characters outside [A-Za-z0-9_-]."""
    pass


@dataclass(frozen=True)
class ObjectKey:
    """A decoded storage key."""
    site_id: str
    branch: str
    path: str

    @property
    def storage_key(self) -> str:
        """Key of the raw object in the bucket."""
        return build_key(self.site_id, self.branch, self.path)


def build_key(site_id: str, branch: str, path: str) -> str:
    return f"{site_id}/{branch}/raw/{path}"


def unescape_key(raw_key: str) -> str:
    """
    Undo storage-provider key encoding.

    Spaces arrive as literal '+', so those are replaced before
    percent-decoding; decoding first would turn an encoded '%2B' into a
    '+' that then wrongly becomes a space.
    """
    return unquote(raw_key.replace("+", " "))


def decode_key(raw_key: str) -> ObjectKey:
    """
    Parse and validate a notification key.

    Args:
        raw_key: Key exactly as delivered in the notification

    Returns:
        ObjectKey with site_id, branch and repository-relative path

    Raises:
        InvalidKeyFormatError: If the key does not match the raw/ layout
        InvalidIdentifierError: If siteId or branch is not a plain identifier
    """
    key = unescape_key(raw_key)

    match = KEY_PATTERN.match(key)
    if not match:
        raise InvalidKeyFormatError(f"Invalid key format: {raw_key}")
    site_id, branch, path = match.groups()

    if not IDENTIFIER_PATTERN.match(site_id) or not IDENTIFIER_PATTERN.match(branch):
        raise InvalidIdentifierError(f"Invalid siteId or branch: {site_id}, {branch}")

    return ObjectKey(site_id=site_id, branch=branch, path=path)
