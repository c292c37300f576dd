from dataclasses import replace

from app.core.encryption import (
    DECRYPTION_FAILED_PLACEHOLDER, EncryptedPayload, MessageCipher, derive_key, get_cipher,
)


def test_round_trip_uses_fresh_iv():
    cipher = get_cipher()
    first = cipher.encrypt("hello world")
    second = cipher.encrypt("hello world")

    assert first.iv != second.iv
    assert first.ciphertext != second.ciphertext
    assert len(bytes.fromhex(first.iv)) == 12
    assert len(bytes.fromhex(first.auth_tag)) == 16
    assert cipher.decrypt(first) == "hello world"


def test_unicode_and_empty_plaintext():
    cipher = get_cipher()
    for text in ["", "안녕하세요 👋", "a" * 5000]:
        assert cipher.decrypt(cipher.encrypt(text)) == text


def test_tampered_ciphertext_returns_placeholder():
    cipher = get_cipher()
    payload = cipher.encrypt("secret")
    flipped = format(int(payload.ciphertext[:2], 16) ^ 0x01, "02x") + payload.ciphertext[2:]

    assert cipher.decrypt(replace(payload, ciphertext=flipped)) == DECRYPTION_FAILED_PLACEHOLDER


def test_wrong_key_returns_placeholder():
    payload = MessageCipher("key-one").encrypt("secret")
    assert MessageCipher("key-two").decrypt(payload) == DECRYPTION_FAILED_PLACEHOLDER


def test_missing_iv_or_tag_returns_placeholder():
    cipher = get_cipher()
    payload = cipher.encrypt("secret")

    assert cipher.decrypt(EncryptedPayload(payload.ciphertext, None, payload.auth_tag)) == DECRYPTION_FAILED_PLACEHOLDER
    assert cipher.decrypt(EncryptedPayload(payload.ciphertext, payload.iv, None)) == DECRYPTION_FAILED_PLACEHOLDER
    assert cipher.decrypt(EncryptedPayload("zz-not-hex", payload.iv, payload.auth_tag)) == DECRYPTION_FAILED_PLACEHOLDER


def test_key_derivation_is_deterministic():
    assert derive_key("abc") == derive_key("abc")
    assert derive_key("abc") != derive_key("abd")
    assert len(derive_key("abc")) == 32
