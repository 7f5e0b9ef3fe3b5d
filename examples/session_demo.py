from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from pysenderkeys import CryptoSessionContext, MemberKey, SealedDistribution, SessionConfig
from pysenderkeys.crypto import KeyPair, generate_keypair

# user id -> (session, identity key pair)
Directory = dict[str, tuple[CryptoSessionContext, KeyPair]]


class LoopbackTransport:
    """Delivers one user's sender key distributions straight into other local sessions."""

    def __init__(self, sender_id: str, directory: Directory) -> None:
        self.sender_id = sender_id
        self.directory = directory

    async def get_channel_member_keys(self, channel_id: str) -> list[MemberKey]:
        return [MemberKey(user_id, kp.public) for user_id, (_, kp) in self.directory.items()]

    async def distribute_sender_keys(
        self, channel_id: str, distributions: list[SealedDistribution]
    ) -> None:
        for d in distributions:
            session, _ = self.directory[d.to_user_id]
            session.process_distribution(channel_id, self.sender_id, d.payload)


async def main() -> None:
    logging.basicConfig(level=logging.DEBUG)
    db = Path("./crypto-demo.db").resolve()
    directory: Directory = {}

    # A real client would load the identity key from its credential store.
    alice_kp, bob_kp = generate_keypair(), generate_keypair()
    async with CryptoSessionContext(
        LoopbackTransport("alice", directory), config=SessionConfig(db_path=str(db))
    ) as alice, CryptoSessionContext(LoopbackTransport("bob", directory)) as bob:
        directory["alice"] = (alice, alice_kp)
        directory["bob"] = (bob, bob_kp)

        print("alice login:", (await alice.login("alice", alice_kp.private)).outcome.value)
        await bob.login("bob", bob_kp.private)

        key = await alice.ensure_distributed("general")
        print("alice sender key:", key.distribution_hex)
        print("bob knows:", [e.key.distribution_hex for e in bob.list_received_keys("general")])

        await alice.logout()
        print(f"persisted to {db}")


if __name__ == "__main__":
    asyncio.run(main())
