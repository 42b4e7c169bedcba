"""Vault operations wired to their collaborators.

VaultService receives the store and the audit logger explicitly; it keeps
no module-level state. Every operation that needs the vault private key
unlocks it, uses it and wipes it before returning.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Tuple, Union

from . import audit
from .config import Settings
from .envelope import decrypt_credential, init_vault, seal_credential, unlock_vault
from .errors import AlreadyExists, AuthenticationFailure, NotFound, ValidationFailure
from .models import CredentialRecord, SecretBytes, VaultRecord
from .ranking import SearchResult, rank
from .storage import VaultStore

# A secret, or a callable that reads one once the password is verified
SecretSource = Union[bytes, Callable[[], bytes]]


def credential_target(label: str, user: str) -> str:
    return f"{label or '-'}/{user or '-'}"


def _read_secret(secret: SecretSource) -> bytes:
    value = secret() if callable(secret) else secret
    if not value:
        raise ValidationFailure("Secret must not be empty")
    return value


class VaultService:
    """High-level vault operations used by the CLI."""

    def __init__(self, store: VaultStore, audit_logger=None,
                 settings: Optional[Settings] = None):
        self.store = store
        self.audit_logger = audit_logger
        self.settings = settings or Settings()

    @classmethod
    def from_settings(cls, settings: Settings) -> "VaultService":
        """Build a service with the default SQLite store and audit log."""
        store = VaultStore(settings.db_path, settings.access_reset_threshold)
        audit_logger = audit.AuditLogger(settings.log_path, settings.log_retention_days)
        return cls(store, audit_logger, settings)

    def _audit(self, action: str, result: str, target: str, reason: Optional[str] = None) -> None:
        if self.audit_logger is not None:
            self.audit_logger.log_event(action, result, target, reason)

    # Vault

    def is_initialized(self) -> bool:
        return self.store.is_initialized()

    def init(self, password: bytes, confirm: Optional[bytes] = None) -> VaultRecord:
        """Create the vault.

        Raises:
            AlreadyExists: If a vault is already initialized (nothing is written)
            ValidationFailure: Empty password or confirmation mismatch

        """
        if self.store.is_initialized():
            self._audit("INIT", audit.DENIED, "-", "exists")
            raise AlreadyExists("Vault already initialized")

        try:
            record = init_vault(password, confirm, self.settings.opslimit, self.settings.memlimit)
        except ValidationFailure as e:
            self._audit("INIT", audit.DENIED, "-", str(e))
            raise

        stored = self.store.put_vault_record(record)
        self._audit("INIT", audit.OK, "-")
        return stored

    @contextmanager
    def unlocked(self, password: bytes, action: str,
                 target: str) -> Iterator[Tuple[VaultRecord, SecretBytes]]:
        """Yield (vault_record, vault_private_key); the key is wiped on exit.

        Raises:
            NotFound: Vault not initialized
            AuthenticationFailure: Incorrect master password

        """
        try:
            record = self.store.get_vault_record()
        except NotFound:
            self._audit(action, audit.DENIED, target, "not-initialized")
            raise

        try:
            private_key = unlock_vault(record, password)
        except AuthenticationFailure:
            self._audit(action, audit.DENIED, target, "wrong-password")
            raise

        with private_key:
            yield record, private_key

    def verify_password(self, password: bytes, action: str = "UNLOCK",
                        target: str = "-") -> VaultRecord:
        """Check the master password; returns the vault record (public half only)."""
        with self.unlocked(password, action, target) as (record, _):
            return record

    # Credentials

    def exists(self, label: str, user: str) -> bool:
        try:
            self.store.get_credential(label, user)
        except NotFound:
            return False
        return True

    def add(self, label: str, user: str, secret: SecretSource, password: bytes,
            overwrite: bool = False) -> CredentialRecord:
        """Encrypt and store a credential.

        Sealing only needs the vault public key, so the password is checked
        once up front. ``secret`` may be a callable; it is only invoked after
        the password is accepted.

        Raises:
            ValidationFailure: Empty label, user or secret
            AlreadyExists: (label, user) is taken and overwrite is False
            AuthenticationFailure: Incorrect master password

        """
        target = credential_target(label, user)
        try:
            if not label or not user:
                raise ValidationFailure("Label and user must not be empty")
            if not callable(secret) and not secret:
                raise ValidationFailure("Secret must not be empty")

            vault = self.verify_password(password, "ADD", target)
            if not overwrite and self.exists(label, user):
                self._audit("ADD", audit.DENIED, target, "exists")
                raise AlreadyExists(f"Credential {label} ({user}) already exists")

            record = seal_credential(vault.public_key, label, user, _read_secret(secret))
        except ValidationFailure:
            self._audit("ADD", audit.DENIED, target, "invalid")
            raise

        stored = self.store.put_credential(record)
        self._audit("ADD", audit.OK, target)
        return stored

    def update(self, credential_id: int, secret: SecretSource, password: bytes) -> CredentialRecord:
        """Replace the secret of an existing credential under a fresh ephemeral key."""
        existing = self._lookup_for("UPDATE", credential_id)
        target = credential_target(existing.label, existing.user)

        try:
            if not callable(secret) and not secret:
                raise ValidationFailure("Secret must not be empty")
            vault = self.verify_password(password, "UPDATE", target)
            record = seal_credential(vault.public_key, existing.label, existing.user,
                                     _read_secret(secret))
        except ValidationFailure:
            self._audit("UPDATE", audit.DENIED, target, "invalid")
            raise

        stored = self.store.put_credential(record)
        self._audit("UPDATE", audit.OK, target)
        return stored

    def lookup(self, label: str, user: str) -> CredentialRecord:
        try:
            return self.store.get_credential(label, user)
        except NotFound:
            self._audit("GET", audit.DENIED, credential_target(label, user), "not-found")
            raise

    def lookup_id(self, credential_id: int) -> CredentialRecord:
        return self.store.get_credential_by_id(credential_id)

    def _lookup_for(self, action: str, credential_id: int) -> CredentialRecord:
        try:
            return self.store.get_credential_by_id(credential_id)
        except NotFound:
            self._audit(action, audit.DENIED, f"#{credential_id}", "not-found")
            raise

    def reveal(self, credential: CredentialRecord, password: bytes, action: str = "GET",
               now: Optional[datetime] = None) -> bytes:
        """Decrypt one credential and record the access.

        Raises:
            AuthenticationFailure: Wrong password, or the record was tampered with

        """
        target = credential_target(credential.label, credential.user)

        with self.unlocked(password, action, target) as (_, private_key):
            try:
                secret = decrypt_credential(private_key, credential)
            except AuthenticationFailure:
                self._audit(action, audit.ERROR, target, "tampered")
                raise

        self.store.bump_access(credential.id, 1, now or datetime.now(timezone.utc))
        self._audit(action, audit.OK, target)
        return secret

    def get(self, label: str, user: str, password: bytes) -> bytes:
        return self.reveal(self.lookup(label, user), password, "GET")

    def find(self, query_label: str, query_user: str = "",
             now: Optional[datetime] = None) -> List[SearchResult]:
        """Rank all credentials against the query (no decryption)."""
        results = rank(
            query_label,
            query_user,
            self.store.list_all_credentials(),
            now,
            self.settings.search_threshold
        )
        if not results:
            self._audit("SEARCH", audit.DENIED, credential_target(query_label, query_user), "no-match")
        return results

    def search(self, query_label: str, query_user: str, password: bytes,
               now: Optional[datetime] = None) -> Tuple[SearchResult, bytes]:
        """Decrypt the best-ranked credential for a query.

        Raises:
            NotFound: Nothing scores above the threshold

        """
        results = self.find(query_label, query_user, now)
        if not results:
            raise NotFound("No suitable match found")

        best = results[0]
        return best, self.reveal(best.credential, password, "SEARCH", now)

    def list_credentials(self, label_filter: Optional[str] = None,
                         user_filter: Optional[str] = None) -> List[CredentialRecord]:
        return self.store.list_credentials(label_filter, user_filter)

    def delete(self, credential_id: int, password: bytes) -> CredentialRecord:
        """Permanently delete a credential after verifying the master password."""
        record = self._lookup_for("DELETE", credential_id)
        target = credential_target(record.label, record.user)

        self.verify_password(password, "DELETE", target)
        self.store.delete_credential(credential_id)

        self._audit("DELETE", audit.OK, target)
        return record
