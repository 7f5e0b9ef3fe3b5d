from __future__ import annotations

from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from ..constants import STORAGE_KEY_LEN, STORAGE_NONCE_LEN


def aes_encrypt_gcm(plaintext: bytes, *, key: bytes, iv: bytes, aad: bytes | None = None) -> bytes:
    if len(key) != STORAGE_KEY_LEN:
        raise ValueError("AES-256-GCM key must be 32 bytes")
    if len(iv) != STORAGE_NONCE_LEN:
        raise ValueError("AES-GCM IV must be 12 bytes")
    return AESGCM(bytes(key)).encrypt(bytes(iv), bytes(plaintext), aad)


def aes_decrypt_gcm(
    ciphertext_and_tag: bytes, *, key: bytes, iv: bytes, aad: bytes | None = None
) -> bytes:
    """
    Decrypt and authenticate. Raises `cryptography.exceptions.InvalidTag` on a
    wrong key, tampered ciphertext or truncated tag.
    """

    if len(key) != STORAGE_KEY_LEN:
        raise ValueError("AES-256-GCM key must be 32 bytes")
    if len(iv) != STORAGE_NONCE_LEN:
        raise ValueError("AES-GCM IV must be 12 bytes")
    return AESGCM(bytes(key)).decrypt(bytes(iv), bytes(ciphertext_and_tag), aad)
