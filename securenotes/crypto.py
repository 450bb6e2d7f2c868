"""Symmetric encryption of note fields.

Ciphertext uses the OpenSSL "salted" envelope: the bytes ``Salted__``, an
8-byte random salt, then AES-256-CBC ciphertext with PKCS#7 padding, all
base64 encoded. The AES key and IV come from the passphrase and salt via
OpenSSL's ``EVP_BytesToKey`` (MD5, one round), which is what the envelope
requires. The passphrase is otherwise used as-is; there is no separate
password hash, so a failed decryption is how a wrong password shows up.
"""

import base64
import binascii
import hashlib
import os

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from .errors import DecryptionError

SALT_HEADER = b"Salted__"
SALT_SIZE = 8
KEY_SIZE = 32
IV_SIZE = 16
BLOCK_SIZE = 16


def _bytes_to_key(passphrase: bytes, salt: bytes) -> tuple[bytes, bytes]:
    """Derive AES key and IV the way OpenSSL's EVP_BytesToKey does."""
    derived = b""
    block = b""
    while len(derived) < KEY_SIZE + IV_SIZE:
        block = hashlib.md5(block + passphrase + salt).digest()
        derived += block
    return derived[:KEY_SIZE], derived[KEY_SIZE:KEY_SIZE + IV_SIZE]


def encrypt(plaintext: str, key: str) -> str:
    """Encrypt text with a passphrase.

    Args:
        plaintext: Text to encrypt
        key: The user's passphrase

    Returns:
        Base64 ciphertext; differs on every call because of the random salt
    """
    salt = os.urandom(SALT_SIZE)
    aes_key, iv = _bytes_to_key(key.encode("utf-8"), salt)

    padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
    padded = padder.update(plaintext.encode("utf-8")) + padder.finalize()

    encryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return base64.b64encode(SALT_HEADER + salt + ciphertext).decode("ascii")


def decrypt(ciphertext: str, key: str) -> str:
    """Decrypt text produced by :func:`encrypt`.

    Raises:
        DecryptionError: If the ciphertext is malformed or the key is wrong
    """
    try:
        raw = base64.b64decode(ciphertext, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecryptionError("Ciphertext is not valid base64") from e

    header_size = len(SALT_HEADER) + SALT_SIZE
    body = raw[header_size:]
    if not raw.startswith(SALT_HEADER) or not body or len(body) % BLOCK_SIZE:
        raise DecryptionError("Ciphertext is malformed")

    salt = raw[len(SALT_HEADER):header_size]
    aes_key, iv = _bytes_to_key(key.encode("utf-8"), salt)

    decryptor = Cipher(algorithms.AES(aes_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(body) + decryptor.finalize()

    try:
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        data = unpadder.update(padded) + unpadder.finalize()
        return data.decode("utf-8")
    except (ValueError, UnicodeDecodeError) as e:
        # Bad padding or garbage bytes: almost always the wrong password
        raise DecryptionError("Decryption failed, the password may be wrong") from e
