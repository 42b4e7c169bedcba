"""Envelope scheme protecting the vault key and every credential secret.

The master password only ever protects one thing: the vault's X25519 private
key, sealed under an Argon2id-derived key. Each credential secret is sealed
under SHA-256(X25519(ephemeral_private, vault_public)), with a fresh
ephemeral key pair per credential whose private half is never stored.
Decryption recomputes the same shared point as
X25519(vault_private, ephemeral_public).
"""

import hmac
from typing import Optional, Tuple

from .crypto import (
    MEM_LIMIT,
    NONCE_SIZE,
    OPS_LIMIT,
    PRIVATE_KEY_SIZE,
    derive_key,
    generate_keypair,
    generate_salt,
    open_sealed,
    seal,
    shared_key,
    validate_kdf_limits,
)
from .errors import AuthenticationFailure, StorageFailure, ValidationFailure
from .models import CredentialRecord, SecretBytes, VaultRecord


def init_vault(
    password: bytes,
    confirm: Optional[bytes] = None,
    opslimit: int = OPS_LIMIT,
    memlimit: int = MEM_LIMIT
) -> VaultRecord:
    """Create a new vault record from a master password.

    Args:
        password: Master password
        confirm: Re-entered password; must match byte for byte when given
        opslimit: Argon2id time cost recorded in the vault
        memlimit: Argon2id memory cost (bytes) recorded in the vault

    Returns:
        VaultRecord ready to be persisted

    Raises:
        ValidationFailure: Empty password, mismatched confirmation or bad limits

    """
    if not password:
        raise ValidationFailure("Master password must not be empty")
    if confirm is not None and not hmac.compare_digest(password, confirm):
        raise ValidationFailure("Passwords do not match")
    validate_kdf_limits(opslimit, memlimit)

    salt = generate_salt()
    private_key, public_key = generate_keypair()

    with private_key, derive_key(password, salt, opslimit, memlimit) as unlock_key:
        ciphertext, nonce = seal(unlock_key, bytes(private_key))

    return VaultRecord(
        salt=salt,
        public_key=public_key,
        encrypted_private_key=ciphertext,
        private_key_nonce=nonce,
        opslimit=opslimit,
        memlimit=memlimit
    )


def unlock_vault(record: VaultRecord, password: bytes) -> SecretBytes:
    """Recover the vault private key with the master password.

    A failed AEAD open is the only password check there is. The returned key
    should be used as a context manager so it is wiped when the caller is
    done with it.

    Raises:
        AuthenticationFailure: Incorrect master password
        StorageFailure: The decrypted key has an impossible length

    """
    with derive_key(password, record.salt, record.opslimit, record.memlimit) as unlock_key:
        try:
            plaintext = open_sealed(
                unlock_key, record.encrypted_private_key, record.private_key_nonce
            )
        except AuthenticationFailure as e:
            raise AuthenticationFailure("Incorrect master password") from e

    private_key = SecretBytes(plaintext)
    if len(private_key) != PRIVATE_KEY_SIZE:
        private_key.wipe()
        raise StorageFailure("Corrupt vault private key")
    return private_key


def encrypt_credential(vault_public_key: bytes, secret: bytes) -> Tuple[bytes, bytes, bytes]:
    """Seal a credential secret for the vault public key.

    Returns:
        (ephemeral_public_key, ciphertext, nonce)

    """
    ephemeral_private, ephemeral_public = generate_keypair()

    with ephemeral_private, shared_key(ephemeral_private, vault_public_key) as key:
        ciphertext, nonce = seal(key, secret)

    return ephemeral_public, ciphertext, nonce


def decrypt_credential(vault_private_key: SecretBytes, record: CredentialRecord) -> bytes:
    """Open a credential secret with the unlocked vault private key.

    Raises:
        ValidationFailure: Malformed nonce or ephemeral key
        AuthenticationFailure: Ciphertext was tampered with or is corrupt

    """
    if len(record.secret_nonce) != NONCE_SIZE:
        raise ValidationFailure(
            f"Nonce must be {NONCE_SIZE} bytes, got {len(record.secret_nonce)}"
        )

    with shared_key(vault_private_key, record.ephemeral_public_key) as key:
        try:
            return open_sealed(key, record.encrypted_secret, record.secret_nonce)
        except AuthenticationFailure as e:
            raise AuthenticationFailure(
                f"Credential {record.display_name} failed authentication"
            ) from e


def seal_credential(vault_public_key: bytes, label: str, user: str,
                    secret: bytes) -> CredentialRecord:
    """Build a new CredentialRecord holding an encrypted secret."""
    if not label or not user:
        raise ValidationFailure("Label and user must not be empty")
    if not secret:
        raise ValidationFailure("Secret must not be empty")

    ephemeral_public, ciphertext, nonce = encrypt_credential(vault_public_key, secret)
    return CredentialRecord(
        label=label,
        user=user,
        ephemeral_public_key=ephemeral_public,
        encrypted_secret=ciphertext,
        secret_nonce=nonce
    )
