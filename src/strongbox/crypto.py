"""Cryptographic primitives backed by libsodium via pynacl.

- Argon2id password-based key derivation
- X25519 key pairs and Diffie-Hellman
- XChaCha20-Poly1305 (IETF) authenticated encryption
"""

import nacl.bindings
import nacl.encoding
import nacl.exceptions
import nacl.hash
import nacl.pwhash
import nacl.utils

from .errors import AuthenticationFailure, ValidationFailure
from .models import SecretBytes

# Constants
SALT_SIZE = nacl.pwhash.argon2id.SALTBYTES              # 16
KEY_SIZE = nacl.bindings.crypto_aead_xchacha20poly1305_ietf_KEYBYTES    # 32
NONCE_SIZE = nacl.bindings.crypto_aead_xchacha20poly1305_ietf_NPUBBYTES  # 24
PUBLIC_KEY_SIZE = nacl.bindings.crypto_scalarmult_BYTES
PRIVATE_KEY_SIZE = nacl.bindings.crypto_scalarmult_SCALARBYTES
OPS_LIMIT = nacl.pwhash.argon2id.OPSLIMIT_INTERACTIVE
MEM_LIMIT = nacl.pwhash.argon2id.MEMLIMIT_INTERACTIVE   # 64 MiB
OPS_LIMIT_MIN = nacl.pwhash.argon2id.OPSLIMIT_MIN
MEM_LIMIT_MIN = nacl.pwhash.argon2id.MEMLIMIT_MIN


def generate_salt() -> bytes:
    return nacl.utils.random(SALT_SIZE)


def validate_kdf_limits(opslimit: int, memlimit: int) -> None:
    if opslimit < OPS_LIMIT_MIN:
        raise ValidationFailure(f"opslimit must be at least {OPS_LIMIT_MIN}")
    if memlimit < MEM_LIMIT_MIN:
        raise ValidationFailure(f"memlimit must be at least {MEM_LIMIT_MIN} bytes")


def derive_key(password: bytes, salt: bytes, opslimit: int = OPS_LIMIT,
               memlimit: int = MEM_LIMIT) -> SecretBytes:
    """Derive a 32-byte symmetric key from a password using Argon2id.

    Same (password, salt, limits) always yields the same key, so the unlock
    key is re-derived on every unlock and never stored.

    Raises:
        ValidationFailure: If the salt length or cost limits are invalid

    """
    if len(salt) != SALT_SIZE:
        raise ValidationFailure(f"Salt must be {SALT_SIZE} bytes, got {len(salt)}")
    validate_kdf_limits(opslimit, memlimit)

    return SecretBytes(nacl.pwhash.argon2id.kdf(
        KEY_SIZE,
        password,
        salt,
        opslimit=opslimit,
        memlimit=memlimit
    ))


def generate_keypair():
    """Generate an X25519 key pair.

    Returns:
        (private_key, public_key) as (SecretBytes, bytes)

    """
    private_key = SecretBytes(nacl.utils.random(PRIVATE_KEY_SIZE))
    public_key = nacl.bindings.crypto_scalarmult_base(bytes(private_key))
    return private_key, public_key


def shared_key(private_key: SecretBytes, public_key: bytes) -> SecretBytes:
    """Diffie-Hellman between our private key and their public key, hashed.

    Raw X25519 output is not uniformly random, so it is run through SHA-256
    before being used as a cipher key. The raw point is wiped here.

    Raises:
        ValidationFailure: If the public key has the wrong length
        AuthenticationFailure: If libsodium rejects the point

    """
    if len(public_key) != PUBLIC_KEY_SIZE:
        raise ValidationFailure(
            f"Public key must be {PUBLIC_KEY_SIZE} bytes, got {len(public_key)}"
        )

    try:
        point = SecretBytes(nacl.bindings.crypto_scalarmult(bytes(private_key), public_key))
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailure("Key agreement failed: invalid public key") from e

    with point:
        return SecretBytes(nacl.hash.sha256(bytes(point), encoder=nacl.encoding.RawEncoder))


def _check_key(key: SecretBytes) -> None:
    if len(key) != KEY_SIZE:
        raise ValidationFailure(f"Key must be {KEY_SIZE} bytes, got {len(key)}")


def seal(key: SecretBytes, plaintext: bytes):
    """Encrypt plaintext with XChaCha20-Poly1305 under a fresh random nonce.

    Returns:
        (ciphertext, nonce) where ciphertext includes the 16-byte tag

    """
    _check_key(key)
    nonce = nacl.utils.random(NONCE_SIZE)
    ciphertext = nacl.bindings.crypto_aead_xchacha20poly1305_ietf_encrypt(
        plaintext, None, nonce, bytes(key)
    )
    return ciphertext, nonce


def open_sealed(key: SecretBytes, ciphertext: bytes, nonce: bytes) -> bytes:
    """Decrypt and authenticate a sealed message.

    Raises:
        ValidationFailure: If the nonce or key length is wrong
        AuthenticationFailure: If the tag does not verify

    """
    if len(nonce) != NONCE_SIZE:
        raise ValidationFailure(f"Nonce must be {NONCE_SIZE} bytes, got {len(nonce)}")
    _check_key(key)

    try:
        return nacl.bindings.crypto_aead_xchacha20poly1305_ietf_decrypt(
            ciphertext, None, nonce, bytes(key)
        )
    except nacl.exceptions.CryptoError as e:
        raise AuthenticationFailure("Decryption failed") from e
