#!/usr/bin/env python3
"""
Unit tests for relay_server.presence.registry
"""

import asyncio
import unittest

import fakes  # noqa: F401
from relay_server.presence.registry import PresenceRegistry
from relay_server.presence.sessions import SessionDirectory


class TestPresenceRegistry(unittest.IsolatedAsyncioTestCase):
    """Test cases for the roster."""

    def setUp(self):
        self.directory = SessionDirectory()
        self.registry = PresenceRegistry(self.directory)

    async def test_register_is_idempotent(self):
        self.assertTrue(await self.registry.register("alice"))
        self.assertFalse(await self.registry.register("alice"))
        self.assertEqual(self.registry.snapshot(), frozenset({"alice"}))
        self.assertEqual(len(self.registry), 1)

    async def test_unregister_without_connections_removes(self):
        await self.registry.register("carol")
        self.assertTrue(await self.registry.unregister("carol"))
        self.assertNotIn("carol", self.registry)

    async def test_unregister_keeps_identity_with_live_connection(self):
        """An identity stays present while any connection references it."""
        await self.directory.bind("dave", object())
        await self.registry.register("dave")

        self.assertFalse(await self.registry.unregister("dave"))
        self.assertIn("dave", self.registry)

    async def test_unregister_is_idempotent(self):
        self.assertFalse(await self.registry.unregister("ghost"))
        await self.registry.register("ghost")
        await self.registry.unregister("ghost")
        self.assertFalse(await self.registry.unregister("ghost"))

    async def test_snapshot_is_stable_after_return(self):
        await self.registry.register("alice")
        snap = self.registry.snapshot()
        await self.registry.register("bob")

        self.assertEqual(snap, frozenset({"alice"}))
        self.assertEqual(self.registry.snapshot(), frozenset({"alice", "bob"}))

    async def test_concurrent_updates_are_not_lost(self):
        names = [f"user{i}" for i in range(50)]
        await asyncio.gather(*(self.registry.register(n) for n in names))
        await asyncio.gather(*(self.registry.unregister(n) for n in names[::2]))

        self.assertEqual(self.registry.snapshot(), frozenset(names[1::2]))

    async def test_identities_on_other_shards_do_not_wait(self):
        """A held lock for alice's shard does not block bob on another shard."""
        other = next(n for n in (f"bob{i}" for i in range(1000))
                     if self.directory.shard_of(n) != self.directory.shard_of("alice"))

        async with self.registry.lock_for("alice"):
            registered = await asyncio.wait_for(self.registry.register(other), timeout=1)
            pending = asyncio.create_task(self.registry.register("alice"))
            await asyncio.sleep(0)
            self.assertFalse(pending.done())

        self.assertTrue(registered)
        self.assertTrue(await pending)
        self.assertEqual(self.registry.snapshot(), frozenset({"alice", other}))

    async def test_clear(self):
        await self.registry.register("alice")
        self.registry.clear()
        self.assertEqual(self.registry.snapshot(), frozenset())


if __name__ == '__main__':
    unittest.main()
