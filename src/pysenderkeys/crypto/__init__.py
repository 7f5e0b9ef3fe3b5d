from __future__ import annotations

from .aes import aes_decrypt_gcm, aes_encrypt_gcm
from .curve import KeyPair, generate_keypair
from .hkdf import blake2b_keyed, hkdf_sha256
from .provider import CryptoProvider, DefaultCryptoProvider

__all__ = [
    "CryptoProvider",
    "DefaultCryptoProvider",
    "KeyPair",
    "aes_decrypt_gcm",
    "aes_encrypt_gcm",
    "blake2b_keyed",
    "generate_keypair",
    "hkdf_sha256",
]
