from __future__ import annotations

from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey


@dataclass(slots=True)
class KeyPair:
    public: bytes
    private: bytes


def generate_keypair() -> KeyPair:
    priv = X25519PrivateKey.generate()
    pub = priv.public_key()
    return KeyPair(
        private=priv.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ),
        public=pub.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        ),
    )


def public_from_private(private_key: bytes) -> bytes:
    priv = X25519PrivateKey.from_private_bytes(bytes(private_key))
    return priv.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )


def shared_key(private_key: bytes, public_key: bytes) -> bytes:
    priv = X25519PrivateKey.from_private_bytes(bytes(private_key))
    pub = X25519PublicKey.from_public_bytes(bytes(public_key))
    return priv.exchange(pub)
