"""
tests/test_crypto.py -- Unit tests for auth/crypto.py.

Coverage:
  - AES-GCM envelopes: round trip, fresh nonce per call, hex layout
  - Tamper, wrong-key and malformed-envelope detection (CryptoError)
  - Legacy 16-byte nonces still decrypt
  - decrypt_tolerant(): sentinel instead of raising, "" for empty envelopes
  - bcrypt: salted hashes, verify, mismatch on garbage hashes
  - generate_password(): length bounds and character classes
"""

from __future__ import annotations

import secrets
import string

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from auth.crypto import DECRYPTION_FAILED, NONCE_SIZE, TAG_SIZE, CryptoSuite, SecretResult
from core.errors import CryptoError, ValidationError

from conftest import TEST_KEY


def _flip_last_hex_digit(segment: str) -> str:
    last = segment[-1]
    return segment[:-1] + ("0" if last != "0" else "1")


class TestEncryption:
    def test_round_trip(self, crypto: CryptoSuite) -> None:
        envelope = crypto.encrypt_secret("hunter2")
        assert crypto.decrypt_secret(envelope) == "hunter2"

    def test_round_trip_unicode(self, crypto: CryptoSuite) -> None:
        plain = "pässwörd-密码-🔑"
        assert crypto.decrypt_secret(crypto.encrypt_secret(plain)) == plain

    def test_envelope_layout(self, crypto: CryptoSuite) -> None:
        nonce, tag, ciphertext = crypto.encrypt_secret("abc").split(":")
        assert len(bytes.fromhex(nonce)) == NONCE_SIZE
        assert len(bytes.fromhex(tag)) == TAG_SIZE
        assert len(bytes.fromhex(ciphertext)) == 3
        assert all(c in string.hexdigits.lower() for c in nonce + tag + ciphertext)

    def test_same_plaintext_gives_different_envelopes(self, crypto: CryptoSuite) -> None:
        assert crypto.encrypt_secret("same") != crypto.encrypt_secret("same")

    def test_plaintext_not_in_envelope(self, crypto: CryptoSuite) -> None:
        envelope = crypto.encrypt_secret("visible-secret")
        assert "visible-secret" not in envelope
        assert b"visible-secret".hex() not in envelope

    def test_tampered_ciphertext_rejected(self, crypto: CryptoSuite) -> None:
        nonce, tag, ciphertext = crypto.encrypt_secret("hunter2").split(":")
        with pytest.raises(CryptoError):
            crypto.decrypt_secret(f"{nonce}:{tag}:{_flip_last_hex_digit(ciphertext)}")

    def test_tampered_tag_rejected(self, crypto: CryptoSuite) -> None:
        nonce, tag, ciphertext = crypto.encrypt_secret("hunter2").split(":")
        with pytest.raises(CryptoError):
            crypto.decrypt_secret(f"{nonce}:{_flip_last_hex_digit(tag)}:{ciphertext}")

    def test_tampered_nonce_rejected(self, crypto: CryptoSuite) -> None:
        nonce, tag, ciphertext = crypto.encrypt_secret("hunter2").split(":")
        with pytest.raises(CryptoError):
            crypto.decrypt_secret(f"{_flip_last_hex_digit(nonce)}:{tag}:{ciphertext}")

    def test_wrong_key_rejected(self, crypto: CryptoSuite) -> None:
        envelope = crypto.encrypt_secret("hunter2")
        other = CryptoSuite(secrets.token_bytes(32), bcrypt_rounds=4)
        with pytest.raises(CryptoError):
            other.decrypt_secret(envelope)

    @pytest.mark.parametrize(
        "envelope",
        [
            "garbage",
            "aa:bb",
            "aa:bb:cc:dd",
            "zz:" + "00" * TAG_SIZE + ":00",
            "00" * NONCE_SIZE + ":" + "00" * 4 + ":00",
            ":" + "00" * TAG_SIZE + ":00",
        ],
    )
    def test_malformed_envelope_rejected(self, crypto: CryptoSuite, envelope: str) -> None:
        with pytest.raises(CryptoError):
            crypto.decrypt_secret(envelope)

    def test_legacy_sixteen_byte_nonce_decrypts(self, crypto: CryptoSuite) -> None:
        nonce = secrets.token_bytes(16)
        sealed = AESGCM(TEST_KEY).encrypt(nonce, b"legacy", None)
        envelope = f"{nonce.hex()}:{sealed[-TAG_SIZE:].hex()}:{sealed[:-TAG_SIZE].hex()}"
        assert crypto.decrypt_secret(envelope) == "legacy"

    def test_missing_key_raises_crypto_error(self) -> None:
        suite = CryptoSuite(None)
        with pytest.raises(CryptoError):
            suite.encrypt_secret("x")

    def test_short_key_raises_crypto_error(self) -> None:
        suite = CryptoSuite(b"too-short")
        with pytest.raises(CryptoError):
            suite.encrypt_secret("x")


class TestTolerantDecrypt:
    def test_success(self, crypto: CryptoSuite) -> None:
        result = crypto.decrypt_tolerant(crypto.encrypt_secret("ok"))
        assert result == SecretResult.success("ok")
        assert result.value == "ok"

    def test_failure_returns_sentinel(self, crypto: CryptoSuite) -> None:
        result = crypto.decrypt_tolerant("not:an:envelope", record_id="abc")
        assert result.ok is False
        assert result.value == DECRYPTION_FAILED

    def test_empty_envelope_is_empty_secret(self, crypto: CryptoSuite) -> None:
        result = crypto.decrypt_tolerant("")
        assert result.ok is True
        assert result.value == ""


class TestCredentialHashing:
    def test_hash_verifies(self, crypto: CryptoSuite) -> None:
        hashed = crypto.hash_credential("correct horse")
        assert hashed != "correct horse"
        assert crypto.verify_credential("correct horse", hashed) is True

    def test_hashes_are_salted(self, crypto: CryptoSuite) -> None:
        first = crypto.hash_credential("same-password")
        second = crypto.hash_credential("same-password")
        assert first != second
        assert crypto.verify_credential("same-password", first)
        assert crypto.verify_credential("same-password", second)

    def test_wrong_password_fails(self, crypto: CryptoSuite) -> None:
        hashed = crypto.hash_credential("right")
        assert crypto.verify_credential("wrong", hashed) is False

    def test_garbage_hash_is_a_mismatch(self, crypto: CryptoSuite) -> None:
        assert crypto.verify_credential("anything", "not-a-bcrypt-hash") is False


class TestGeneratePassword:
    def test_default_length(self) -> None:
        assert len(CryptoSuite.generate_password()) == 20

    @pytest.mark.parametrize("length", [8, 32, 128])
    def test_requested_length(self, length: int) -> None:
        assert len(CryptoSuite.generate_password(length)) == length

    def test_contains_every_class(self) -> None:
        for _ in range(20):
            password = CryptoSuite.generate_password(8)
            assert any(c in string.ascii_lowercase for c in password)
            assert any(c in string.ascii_uppercase for c in password)
            assert any(c in string.digits for c in password)
            assert any(not c.isalnum() for c in password)

    @pytest.mark.parametrize("length", [0, 7, 129])
    def test_out_of_range_rejected(self, length: int) -> None:
        with pytest.raises(ValidationError):
            CryptoSuite.generate_password(length)
