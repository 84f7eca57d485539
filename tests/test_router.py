#!/usr/bin/env python3
"""
Unit tests for relay_server.routing.router

Covers send_message, signal and add_user:
- Exactly one persisted record per chat message, whatever the fan-out
- Delivery to every connection of the recipient
- Failure isolation between connections
- PersistenceError surfaced with nothing delivered
- Per-recipient ordering while persistence is slow
"""

import asyncio
import unittest
from unittest.mock import AsyncMock

from fakes import FakeWriter, build_stack
from relay_common.protocol_definitions import ChatMessage, MessageType
from relay_server.errors import IdentityConflictError, PersistenceError
from relay_server.routing.connection import Connection
from relay_server.storage.message_log import InMemoryMessageLog


def chat(sender="alice", recipient="bob", content="hi", msg_type=MessageType.CHAT):
    return ChatMessage(sender=sender, recipient=recipient, content=content, type=msg_type)


class GatedMessageLog(InMemoryMessageLog):
    """Holds saves of messages whose content is 'slow' until the gate opens."""

    def __init__(self):
        super().__init__()
        self.gate = asyncio.Event()

    async def save(self, message):
        if message.content == "slow":
            await self.gate.wait()
        if message.content == "fail":
            raise PersistenceError("disk full")
        return await super().save(message)


class TestRouter(unittest.IsolatedAsyncioTestCase):
    """Test cases for Router."""

    async def asyncSetUp(self):
        self.stack = build_stack()
        self.router = self.stack.router

    async def asyncTearDown(self):
        await self.stack.lifecycle.shutdown()

    async def connect(self, identity=None, writer=None):
        """Open a connection and optionally register it."""
        writer = writer or FakeWriter()
        connection = self.stack.lifecycle.open(writer)
        if identity is not None:
            await self.router.add_user(identity, connection)
        return connection, writer

    async def flush(self, *connections):
        for c in connections:
            await c.flush()

    def delivered(self, writer, queue="messages"):
        return [f["payload"] for f in writer.frames() if f["destination"].endswith("/queue/" + queue)]

    # --- send_message ---

    async def test_send_reaches_every_connection_of_recipient(self):
        """Bob on two devices gets two copies; one record is stored."""
        phone, phone_w = await self.connect("bob")
        laptop, laptop_w = await self.connect("bob")

        stored = await self.router.send_message(chat())
        await self.flush(phone, laptop)

        self.assertEqual(len(self.stack.message_log), 1)
        self.assertIsNotNone(stored.id)
        for writer in (phone_w, laptop_w):
            self.assertEqual(self.delivered(writer), [stored.to_dict()])
            self.assertIn("/user/bob/queue/messages", writer.destinations())

    async def test_send_to_offline_recipient_is_persisted(self):
        """Offline bob: stored and retrievable, nothing delivered."""
        alice, alice_w = await self.connect("alice")

        stored = await self.router.send_message(chat(content="hi"))
        await self.flush(alice)

        history = await self.router.history("alice", "bob")
        self.assertEqual([m.id for m in history], [stored.id])
        self.assertEqual(self.delivered(alice_w), [])

    async def test_exactly_one_record_regardless_of_fan_out(self):
        for count in (0, 1, 3):
            stack = build_stack()
            for _ in range(count):
                await stack.router.add_user("bob", stack.lifecycle.open(FakeWriter()))
            await stack.router.send_message(chat())
            self.assertEqual(len(stack.message_log), 1, f"{count} connections")
            await stack.lifecycle.shutdown()

    async def test_persistence_failure_is_raised_and_nothing_delivered(self):
        bob, bob_w = await self.connect("bob")
        self.stack.message_log.save = AsyncMock(side_effect=PersistenceError("disk full"))

        with self.assertRaises(PersistenceError):
            await self.router.send_message(chat())
        await self.flush(bob)

        self.assertEqual(self.delivered(bob_w), [])
        self.assertEqual(len(self.router.chain), 0)

    async def test_broken_connection_does_not_block_others(self):
        broken, _ = await self.connect("bob", FakeWriter(fail=True))
        healthy, healthy_w = await self.connect("bob")
        await broken.flush()  # the roster write fails and breaks the socket
        self.assertFalse(broken.is_open)

        stored = await self.router.send_message(chat())
        await self.flush(healthy)

        self.assertEqual(self.delivered(healthy_w), [stored.to_dict()])

    async def test_full_queue_on_one_connection_does_not_fail_send(self):
        # Never started, so nothing drains its single slot
        stalled = Connection(99, FakeWriter(), max_pending=1)
        stalled.deliver({"destination": "filler", "payload": None})
        await self.router.add_user("bob", stalled)
        fast, fast_w = await self.connect("bob")

        stored = await self.router.send_message(chat())
        await self.flush(fast)

        self.assertEqual(self.delivered(fast_w), [stored.to_dict()])
        self.assertEqual(stalled.pending, 1)
        self.assertEqual(len(self.stack.message_log), 1)
        await stalled.close()

    async def test_file_message_uses_messages_queue(self):
        bob, bob_w = await self.connect("bob")
        await self.router.send_message(chat(content="/files/a.png", msg_type=MessageType.FILE))
        await self.flush(bob)

        self.assertEqual([m["type"] for m in self.delivered(bob_w)], ["FILE"])

    async def test_deliveries_follow_invocation_order(self):
        """A slow write does not let a later message overtake it."""
        log = GatedMessageLog()
        self.stack = build_stack(message_log=log)
        self.router = self.stack.router
        bob, bob_w = await self.connect("bob")

        first = asyncio.create_task(self.router.send_message(chat(content="slow")))
        await asyncio.sleep(0)
        second = asyncio.create_task(self.router.send_message(chat(content="fast")))
        for _ in range(5):
            await asyncio.sleep(0)

        await self.flush(bob)
        self.assertEqual(self.delivered(bob_w), [])  # "fast" is stored but waits its turn
        self.assertEqual(len(log), 1)

        log.gate.set()
        await asyncio.gather(first, second)
        await self.flush(bob)

        self.assertEqual([m["content"] for m in self.delivered(bob_w)], ["slow", "fast"])

    async def test_failed_send_does_not_let_later_send_overtake(self):
        """slow, fail, fast: 'fast' still waits for 'slow'."""
        log = GatedMessageLog()
        self.stack = build_stack(message_log=log)
        self.router = self.stack.router
        bob, bob_w = await self.connect("bob")

        tasks = []
        for content in ("slow", "fail", "fast"):
            tasks.append(asyncio.create_task(self.router.send_message(chat(content=content))))
            await asyncio.sleep(0)
        for _ in range(5):
            await asyncio.sleep(0)

        await self.flush(bob)
        self.assertEqual(self.delivered(bob_w), [])

        log.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        await self.flush(bob)

        self.assertIsInstance(results[1], PersistenceError)
        self.assertEqual([m["content"] for m in self.delivered(bob_w)], ["slow", "fast"])
        self.assertEqual(len(self.router.chain), 0)

    # --- signal ---

    async def test_signal_is_routed_without_persistence(self):
        bob, bob_w = await self.connect("bob")
        signal = chat(content='{"sdp": "offer"}', msg_type=MessageType.SIGNAL)

        delivered = await self.router.signal(signal)
        await self.flush(bob)

        self.assertEqual(delivered, 1)
        self.assertEqual(len(self.stack.message_log), 0)
        self.assertEqual(self.delivered(bob_w, "webrtc"), [signal.to_dict()])
        self.assertEqual(self.delivered(bob_w, "messages"), [])

    async def test_signal_to_offline_recipient_is_silent(self):
        signal = chat(content='{"candidate": "x"}', msg_type=MessageType.SIGNAL)

        self.assertEqual(await self.router.signal(signal), 0)
        self.assertEqual(len(self.stack.message_log), 0)

    # --- add_user ---

    async def test_add_user_broadcasts_roster_to_everyone(self):
        """Unregistered connections also receive the roster."""
        lurker, lurker_w = await self.connect()
        alice, alice_w = await self.connect("alice")
        await self.connect("bob")
        await self.flush(lurker, alice)

        rosters = [f["payload"] for f in lurker_w.frames() if f["destination"] == "/topic/public"]
        self.assertEqual(rosters, [["alice"], ["alice", "bob"]])
        self.assertEqual(alice_w.frames()[-1]["payload"], ["alice", "bob"])

    async def test_add_user_twice_is_idempotent(self):
        alice, _ = await self.connect("alice")
        before = self.stack.registry.snapshot()
        await self.router.add_user("alice", alice)

        self.assertEqual(self.stack.registry.snapshot(), before)
        self.assertEqual(self.stack.directory.connections_for("alice"), frozenset({alice}))

    async def test_add_user_with_other_identity_is_rejected(self):
        alice, _ = await self.connect("alice")

        with self.assertRaises(IdentityConflictError):
            await self.router.add_user("mallory", alice)
        self.assertEqual(self.stack.registry.snapshot(), frozenset({"alice"}))
        self.assertEqual(alice.identity, "alice")


if __name__ == '__main__':
    unittest.main()
