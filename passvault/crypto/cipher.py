"""Password-based AES-128-CBC + HMAC-SHA256 encryption and salted SHA-512 hashing."""

import os
import secrets

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.backends import default_backend
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from passvault.common.config import get_settings
from passvault.common.errors import CipherError, InvalidArgument
from passvault.common.utils import b64d, b64e, sha512_hex

IV_LENGTH = 16
AES_KEY_LENGTH = 16  # AES-128
MAC_KEY_LENGTH = 32
TAG_LENGTH = 32  # HMAC-SHA256


def pad_pkcs7(data: bytes) -> bytes:
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    return padder.update(data) + padder.finalize()


def unpad_pkcs7(data: bytes) -> bytes:
    """Strip PKCS#7 padding; ValueError when it is malformed"""
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    return unpadder.update(data) + unpadder.finalize()


def derive_keys(passphrase: str) -> tuple[bytes, bytes]:
    """
    Derive the AES key and the MAC key from a passphrase.

    Uses PBKDF2-HMAC-SHA256 with the deployment salt and iteration count
    from the process settings, so both peers derive the same keys.

    Returns:
        tuple: (aes_key, mac_key)
    """
    settings = get_settings()
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=AES_KEY_LENGTH + MAC_KEY_LENGTH,
        salt=settings.salt,
        iterations=settings.iterations,
        backend=default_backend()
    )
    material = kdf.derive(passphrase.encode('utf-8'))
    return material[:AES_KEY_LENGTH], material[AES_KEY_LENGTH:]


def _tag(mac_key: bytes, data: bytes) -> hmac.HMAC:
    h = hmac.HMAC(mac_key, hashes.SHA256(), backend=default_backend())
    h.update(data)
    return h


def encrypt(plaintext: str, passphrase: str) -> str:
    """
    Encrypt a string under a passphrase.

    Args:
        plaintext: Text to protect
        passphrase: Secret the user supplies for this operation

    Returns:
        base64(iv || ciphertext || tag), safe to put on a protocol line
    """
    if not passphrase:
        raise InvalidArgument("empty passphrase")

    aes_key, mac_key = derive_keys(passphrase)

    # Generate random IV
    iv = os.urandom(IV_LENGTH)

    cipher = Cipher(
        algorithms.AES(aes_key),
        modes.CBC(iv),
        backend=default_backend()
    )
    encryptor = cipher.encryptor()
    ciphertext = encryptor.update(pad_pkcs7(plaintext.encode('utf-8'))) + encryptor.finalize()

    # Encrypt-then-MAC over IV and ciphertext
    tag = _tag(mac_key, iv + ciphertext).finalize()

    return b64e(iv + ciphertext + tag)


def decrypt(blob: str, passphrase: str) -> str:
    """
    Decrypt a blob produced by encrypt().

    Args:
        blob: base64(iv || ciphertext || tag)
        passphrase: Passphrase used at encryption time

    Returns:
        Decrypted text

    Raises:
        InvalidArgument: blob is not base64 or is shorter than the IV
        CipherError: wrong passphrase, tampered or truncated data
    """
    if not passphrase:
        raise InvalidArgument("empty passphrase")

    combined = b64d(blob)
    if len(combined) < IV_LENGTH:
        raise InvalidArgument("blob shorter than IV")

    iv = combined[:IV_LENGTH]
    body = combined[IV_LENGTH:]
    if len(body) < TAG_LENGTH + 16 or (len(body) - TAG_LENGTH) % 16:
        raise CipherError("truncated ciphertext")
    ciphertext, tag = body[:-TAG_LENGTH], body[-TAG_LENGTH:]

    aes_key, mac_key = derive_keys(passphrase)

    try:
        _tag(mac_key, iv + ciphertext).verify(tag)
    except InvalidSignature as e:
        raise CipherError("authentication failed") from e

    cipher = Cipher(
        algorithms.AES(aes_key),
        modes.CBC(iv),
        backend=default_backend()
    )
    decryptor = cipher.decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()

    try:
        return unpad_pkcs7(padded).decode('utf-8')
    except (ValueError, UnicodeDecodeError) as e:
        raise CipherError("corrupt plaintext") from e


def hash_secret(secret: str) -> str:
    """
    Hash a secret with the deployment salt.

    Returns:
        Hex string of SHA-512(salt || secret)
    """
    return sha512_hex(get_settings().salt + secret.encode('utf-8'))


def verify_secret(secret: str, digest: str) -> bool:
    """Constant-time check of a secret against a stored hash_secret() digest."""
    return secrets.compare_digest(hash_secret(secret), digest)
