"""Secret generation and per-device payload encryption.

Payloads are encrypted with AES in CBC mode with PKCS#7 padding and
returned as standard base64, which is the wire format the upstream push
service decrypts on the client. There is no authentication tag: this layer
gives confidentiality only, not integrity.
"""
import base64
import logging
import secrets
import string
from typing import Union

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from ..exceptions import EntropyFailure, InvalidIVLength, InvalidKeyLength, ValidationError

logger = logging.getLogger(__name__)

# 88 printable symbols; generated secrets are ASCII so characters == bytes
SECRET_ALPHABET = string.ascii_letters + string.digits + "!@#$%^&*()-_=+[]{}|;:,.<>?"

AES_BLOCK_BYTES = algorithms.AES.block_size // 8
VALID_KEY_LENGTHS = (16, 24, 32)

BytesLike = Union[str, bytes]


def _to_bytes(value: BytesLike) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def is_valid_key_length(key: BytesLike) -> bool:
    return len(_to_bytes(key)) in VALID_KEY_LENGTHS


class CryptoEngine:
    """Generates device key material and encrypts payloads under it."""

    def generate_secret(self, length: int) -> str:
        """Return ``length`` random symbols drawn from ``SECRET_ALPHABET``.

        Raises:
            ValidationError: If length is not positive
            EntropyFailure: If the OS random source fails
        """
        if length <= 0:
            raise ValidationError("length must be positive")
        try:
            return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))
        except (OSError, NotImplementedError) as e:
            logger.error(f"Random source unavailable: {e}")
            raise EntropyFailure(f"generate secret: {e}") from e

    def encrypt(self, plaintext: BytesLike, key: BytesLike, iv: BytesLike) -> str:
        """Encrypt with AES-CBC/PKCS#7 and return base64 ciphertext.

        Identical inputs always produce identical output.

        Raises:
            InvalidKeyLength: Key is not 16, 24 or 32 bytes
            InvalidIVLength: IV is not 16 bytes
        """
        key_bytes = _to_bytes(key)
        iv_bytes = _to_bytes(iv)
        if len(key_bytes) not in VALID_KEY_LENGTHS:
            raise InvalidKeyLength(f"key must be 16, 24 or 32 bytes, got {len(key_bytes)}")
        if len(iv_bytes) != AES_BLOCK_BYTES:
            raise InvalidIVLength(f"iv must be {AES_BLOCK_BYTES} bytes, got {len(iv_bytes)}")

        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(_to_bytes(plaintext)) + padder.finalize()
        encryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv_bytes)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return base64.b64encode(ciphertext).decode("ascii")

    def decrypt(self, ciphertext_b64: str, key: BytesLike, iv: BytesLike) -> bytes:
        """Inverse of ``encrypt``; used to verify what a device will receive."""
        key_bytes = _to_bytes(key)
        iv_bytes = _to_bytes(iv)
        if len(key_bytes) not in VALID_KEY_LENGTHS:
            raise InvalidKeyLength(f"key must be 16, 24 or 32 bytes, got {len(key_bytes)}")
        if len(iv_bytes) != AES_BLOCK_BYTES:
            raise InvalidIVLength(f"iv must be {AES_BLOCK_BYTES} bytes, got {len(iv_bytes)}")

        decryptor = Cipher(algorithms.AES(key_bytes), modes.CBC(iv_bytes)).decryptor()
        padded = decryptor.update(base64.b64decode(ciphertext_b64)) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return unpadder.update(padded) + unpadder.finalize()
