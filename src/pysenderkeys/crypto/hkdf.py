from __future__ import annotations

import hashlib

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF


def hkdf_sha256(*, ikm: bytes, length: int, salt: bytes, info: bytes = b"") -> bytes:
    if length <= 0:
        raise ValueError("length must be > 0")
    return HKDF(algorithm=hashes.SHA256(), length=length, salt=salt, info=info).derive(ikm)


def blake2b_keyed(*, key: bytes, data: bytes, length: int) -> bytes:
    """
    Keyed BLAKE2b, equivalent to libsodium's `crypto_generichash(length, data, key)`.

    BLAKE2b accepts keys of at most 64 bytes and digests of 1..64 bytes.
    """

    if not 0 < length <= hashlib.blake2b.MAX_DIGEST_SIZE:
        raise ValueError("blake2b digest length must be in 1..64")
    if len(key) > hashlib.blake2b.MAX_KEY_SIZE:
        raise ValueError("blake2b key must be at most 64 bytes")
    return hashlib.blake2b(bytes(data), digest_size=length, key=bytes(key)).digest()
