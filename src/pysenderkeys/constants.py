from __future__ import annotations

# Domain separation for the at-rest storage key (keyed BLAKE2b over this context).
STORAGE_KEY_CONTEXT = b"haven-local-crypto-store"

DISTRIBUTION_ID_LEN = 16
CHAIN_KEY_LEN = 32

# distribution_id(16) || chain_key(32) || chain_index(uint32 BE)
DISTRIBUTION_PAYLOAD_LEN = DISTRIBUTION_ID_LEN + CHAIN_KEY_LEN + 4

# AES-256-GCM
STORAGE_KEY_LEN = 32
STORAGE_NONCE_LEN = 12

# HKDF label for sealed per-member distribution payloads.
DISTRIBUTION_SEAL_INFO = b"SenderKeyDistribution"

SNAPSHOT_VERSION = 1

DEFAULT_DB_PATH = ":memory:"
SESSIONS_TABLE = "sessions"
SCHEMA_VERSION = 1
