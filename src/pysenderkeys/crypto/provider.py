from __future__ import annotations

import secrets
from typing import Protocol

from ..constants import (
    CHAIN_KEY_LEN,
    DISTRIBUTION_ID_LEN,
    DISTRIBUTION_SEAL_INFO,
    STORAGE_KEY_LEN,
    STORAGE_NONCE_LEN,
)
from ..keys import SenderKey
from .aes import aes_decrypt_gcm, aes_encrypt_gcm
from .curve import generate_keypair, public_from_private, shared_key
from .hkdf import blake2b_keyed, hkdf_sha256

_X25519_KEY_LEN = 32
_GCM_TAG_LEN = 16


class CryptoProvider(Protocol):
    key_size: int
    nonce_size: int

    def generate_sender_key(self) -> SenderKey: ...

    def keyed_hash(self, context: bytes, key: bytes, *, length: int) -> bytes: ...

    def random_nonce(self) -> bytes: ...

    def encrypt(self, plaintext: bytes, key: bytes, nonce: bytes) -> bytes: ...

    def decrypt(self, ciphertext: bytes, key: bytes, nonce: bytes) -> bytes: ...

    def seal_distribution(self, payload: bytes, recipient_public_key: bytes) -> bytes: ...

    def open_distribution(self, sealed: bytes, recipient_private_key: bytes) -> bytes: ...


class DefaultCryptoProvider:
    """
    Crypto primitives via `cryptography` and `hashlib`.

    - sender keys: 16 random bytes of distribution id + 32 random bytes of chain key
    - keyed hash: BLAKE2b keyed with the input secret (libsodium generichash layout)
    - cipher: AES-256-GCM, 12-byte nonce
    - sealed distribution: ephemeral X25519 -> HKDF-SHA256 -> AES-256-GCM,
      laid out as `ephemeral_public(32) || nonce(12) || ciphertext+tag`
    """

    key_size = STORAGE_KEY_LEN
    nonce_size = STORAGE_NONCE_LEN

    def generate_sender_key(self) -> SenderKey:
        return SenderKey(
            distribution_id=bytearray(secrets.token_bytes(DISTRIBUTION_ID_LEN)),
            chain_key=bytearray(secrets.token_bytes(CHAIN_KEY_LEN)),
            chain_index=0,
        )

    def keyed_hash(self, context: bytes, key: bytes, *, length: int) -> bytes:
        return blake2b_keyed(key=key, data=context, length=length)

    def random_nonce(self) -> bytes:
        return secrets.token_bytes(self.nonce_size)

    def encrypt(self, plaintext: bytes, key: bytes, nonce: bytes) -> bytes:
        return aes_encrypt_gcm(plaintext, key=key, iv=nonce)

    def decrypt(self, ciphertext: bytes, key: bytes, nonce: bytes) -> bytes:
        return aes_decrypt_gcm(ciphertext, key=key, iv=nonce)

    def seal_distribution(self, payload: bytes, recipient_public_key: bytes) -> bytes:
        if len(recipient_public_key) != _X25519_KEY_LEN:
            raise ValueError("expected 32-byte X25519 public key")
        eph = generate_keypair()
        key = self._seal_key(
            shared_key(eph.private, recipient_public_key), eph.public, bytes(recipient_public_key)
        )
        nonce = self.random_nonce()
        ct = aes_encrypt_gcm(payload, key=key, iv=nonce, aad=eph.public)
        return eph.public + nonce + ct

    def open_distribution(self, sealed: bytes, recipient_private_key: bytes) -> bytes:
        if len(sealed) < _X25519_KEY_LEN + self.nonce_size + _GCM_TAG_LEN:
            raise ValueError("sealed distribution too short")
        eph_pub = bytes(sealed[:_X25519_KEY_LEN])
        nonce = bytes(sealed[_X25519_KEY_LEN : _X25519_KEY_LEN + self.nonce_size])
        ct = bytes(sealed[_X25519_KEY_LEN + self.nonce_size :])
        our_pub = public_from_private(recipient_private_key)
        key = self._seal_key(shared_key(recipient_private_key, eph_pub), eph_pub, our_pub)
        return aes_decrypt_gcm(ct, key=key, iv=nonce, aad=eph_pub)

    def _seal_key(self, dh_out: bytes, eph_pub: bytes, recipient_pub: bytes) -> bytes:
        return hkdf_sha256(
            ikm=dh_out,
            length=self.key_size,
            salt=eph_pub + recipient_pub,
            info=DISTRIBUTION_SEAL_INFO,
        )
