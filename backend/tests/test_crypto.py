"""Tests for secret generation and AES-CBC payload encryption."""
import base64
from unittest.mock import patch

import pytest

from pushrelay.exceptions import (
    EntropyFailure,
    InvalidCredential,
    InvalidIVLength,
    InvalidKeyLength,
    RelayError,
    ValidationError,
)
from pushrelay.services.crypto import SECRET_ALPHABET, CryptoEngine


@pytest.fixture
def crypto():
    return CryptoEngine()


class TestGenerateSecret:

    def test_length_and_alphabet(self, crypto):
        secret = crypto.generate_secret(32)
        assert len(secret) == 32
        assert len(secret.encode("utf-8")) == 32
        assert set(secret) <= set(SECRET_ALPHABET)

    def test_alphabet_is_large_enough(self):
        assert len(set(SECRET_ALPHABET)) >= 80

    def test_values_differ(self, crypto):
        assert crypto.generate_secret(32) != crypto.generate_secret(32)

    @pytest.mark.parametrize("length", [0, -1])
    def test_rejects_non_positive_length(self, crypto, length):
        with pytest.raises(ValidationError):
            crypto.generate_secret(length)

    def test_length_error_is_relay_error(self, crypto):
        with pytest.raises(RelayError):
            crypto.generate_secret(0)

    def test_random_source_failure(self, crypto):
        with patch("pushrelay.services.crypto.secrets.choice", side_effect=OSError("no entropy")):
            with pytest.raises(EntropyFailure):
                crypto.generate_secret(16)


class TestEncrypt:

    KEY = "0123456789abcdef0123456789ABCDEF"
    IV = "abcdef0123456789"

    def test_known_vector(self, crypto):
        # NIST SP 800-38A F.2.1 CBC-AES128, first block
        key = bytes.fromhex("2b7e151628aed2a6abf7158809cf4f3c")
        iv = bytes.fromhex("000102030405060708090a0b0c0d0e0f")
        plaintext = bytes.fromhex("6bc1bee22e409f96e93d7e117393172a")
        ciphertext = base64.b64decode(crypto.encrypt(plaintext, key, iv))
        assert ciphertext[:16].hex() == "7649abac8119b246cee98e9b12e9197d"
        # A full block of PKCS#7 padding follows an aligned plaintext
        assert len(ciphertext) == 32

    def test_deterministic(self, crypto):
        first = crypto.encrypt('{"body":"hi"}', self.KEY, self.IV)
        second = crypto.encrypt('{"body":"hi"}', self.KEY, self.IV)
        assert first == second

    @pytest.mark.parametrize("key_length", [16, 24, 32])
    def test_round_trip_for_each_key_size(self, crypto, key_length):
        key = self.KEY[:key_length]
        ciphertext = crypto.encrypt("hello device", key, self.IV)
        assert crypto.decrypt(ciphertext, key, self.IV) == b"hello device"

    def test_output_is_standard_base64(self, crypto):
        ciphertext = crypto.encrypt("x" * 40, self.KEY, self.IV)
        raw = base64.b64decode(ciphertext, validate=True)
        assert len(raw) % 16 == 0

    @pytest.mark.parametrize("key", ["", "short", "0123456789abcdef0", "k" * 33])
    def test_invalid_key_length(self, crypto, key):
        with pytest.raises(InvalidKeyLength):
            crypto.encrypt("body", key, self.IV)

    @pytest.mark.parametrize("iv", ["", "abc", "abcdef01234567890"])
    def test_invalid_iv_length(self, crypto, iv):
        with pytest.raises(InvalidIVLength):
            crypto.encrypt("body", self.KEY, iv)

    def test_length_errors_are_credential_errors(self):
        assert issubclass(InvalidKeyLength, InvalidCredential)
        assert issubclass(InvalidIVLength, InvalidCredential)
