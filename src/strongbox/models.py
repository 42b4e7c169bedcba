"""Value objects for vault and credential records.

Binary fields stay ``bytes`` inside the process. They are converted to
standard base64 text only when a record crosses the storage boundary
(``to_row`` / ``from_row``).
"""

import base64
import binascii
import hmac
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from .errors import StorageFailure


class SecretBytes:
    """Wipeable container for key material.

    Holds its bytes in a bytearray so they can be zeroed in place once the
    owning operation finishes. Use as a context manager to guarantee the wipe
    on every exit path.
    """

    __slots__ = ("_buf", "_wiped")

    def __init__(self, data):
        self._buf = bytearray(data)
        self._wiped = False

    def __bytes__(self) -> bytes:
        if self._wiped:
            raise ValueError("secret material already wiped")
        return bytes(self._buf)

    def __len__(self) -> int:
        return len(self._buf)

    def __eq__(self, other) -> bool:
        if isinstance(other, SecretBytes):
            other = other._buf
        if not isinstance(other, (bytes, bytearray)):
            return NotImplemented
        return hmac.compare_digest(bytes(self._buf), bytes(other))

    __hash__ = None

    def __repr__(self) -> str:
        if self._wiped:
            return "SecretBytes(<wiped>)"
        return f"SecretBytes(<{len(self._buf)} bytes>)"

    def __enter__(self) -> "SecretBytes":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.wipe()

    @property
    def wiped(self) -> bool:
        return self._wiped

    def wipe(self) -> None:
        """Zero the buffer (best effort: copies handed out earlier survive)."""
        self._buf[:] = bytes(len(self._buf))
        self._wiped = True


def encode_b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def decode_b64(text: str) -> bytes:
    """Decode a standard base64 column value.

    Raises:
        StorageFailure: If the stored text is not valid base64

    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise StorageFailure(f"Corrupt base64 field: {e}") from e


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as e:
        raise StorageFailure(f"Corrupt timestamp: {value!r}") from e


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class VaultRecord:
    """The singleton vault row: salt, vault public key and sealed private key."""

    salt: bytes
    public_key: bytes
    encrypted_private_key: bytes
    private_key_nonce: bytes
    opslimit: int
    memlimit: int
    created_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "salt": encode_b64(self.salt),
            "public_key": encode_b64(self.public_key),
            "secret": encode_b64(self.encrypted_private_key),
            "nonce": encode_b64(self.private_key_nonce),
            "opslimit": self.opslimit,
            "memlimit": self.memlimit,
            "created_at": _format_time(self.created_at),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "VaultRecord":
        return cls(
            salt=decode_b64(row["salt"]),
            public_key=decode_b64(row["public_key"]),
            encrypted_private_key=decode_b64(row["secret"]),
            private_key_nonce=decode_b64(row["nonce"]),
            opslimit=row["opslimit"],
            memlimit=row["memlimit"],
            created_at=_parse_time(row["created_at"]),
        )


@dataclass
class CredentialRecord:
    """One stored credential, keyed by (label, user)."""

    label: str
    user: str
    ephemeral_public_key: bytes
    encrypted_secret: bytes
    secret_nonce: bytes
    id: Optional[int] = None
    access_count: int = 0
    accessed_at: Optional[datetime] = None    # None until first retrieval
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_row(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "user": self.user,
            "ephemeral": encode_b64(self.ephemeral_public_key),
            "secret": encode_b64(self.encrypted_secret),
            "nonce": encode_b64(self.secret_nonce),
        }

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "CredentialRecord":
        return cls(
            id=row["id"],
            label=row["label"],
            user=row["user"],
            ephemeral_public_key=decode_b64(row["ephemeral"]),
            encrypted_secret=decode_b64(row["secret"]),
            secret_nonce=decode_b64(row["nonce"]),
            access_count=row["access_count"],
            accessed_at=_parse_time(row["accessed_at"]),
            created_at=_parse_time(row["created_at"]),
            updated_at=_parse_time(row["updated_at"]),
        )

    @property
    def display_name(self) -> str:
        return f"{self.label} ({self.user})"
