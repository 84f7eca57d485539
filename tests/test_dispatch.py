#!/usr/bin/env python3
"""
Unit tests for RelayServer.dispatch

Each decoded frame is handed straight to dispatch on a connection backed by
a FakeWriter, so error replies can be checked without a socket.
"""

import unittest
from unittest.mock import AsyncMock

from fakes import FakeWriter
from relay_server.errors import PersistenceError
from relay_server.main_server import RelayServer
from relay_server.utils.config import RelayConfig


class TestDispatch(unittest.IsolatedAsyncioTestCase):
    """Test cases for frame dispatch and error replies."""

    async def asyncSetUp(self):
        self.server = RelayServer(RelayConfig(host='127.0.0.1', port=0, db_path=None))
        await self.server.message_log.open()

    async def asyncTearDown(self):
        await self.server.stop()

    async def connect(self, identity=None):
        writer = FakeWriter()
        connection = self.server.lifecycle.open(writer)
        if identity is not None:
            await self.server.dispatch(connection, {"destination": "add-user",
                                                    "payload": {"sender": identity, "type": "JOIN"}})
        return connection, writer

    async def frames_for(self, connection, writer, destination):
        await connection.flush()
        return [f["payload"] for f in writer.frames() if f["destination"] == destination]

    async def test_persistence_failure_is_reported_to_sender(self):
        alice, alice_w = await self.connect("alice")
        bob, bob_w = await self.connect("bob")
        self.server.message_log.save = AsyncMock(side_effect=PersistenceError("disk full"))

        await self.server.dispatch(alice, {"destination": "send-message",
                                           "payload": {"sender": "alice", "recipient": "bob", "content": "hi"}})

        errors = await self.frames_for(alice, alice_w, "/user/queue/errors")
        self.assertEqual([e["code"] for e in errors], ["PERSISTENCE_FAILED"])
        self.assertEqual(await self.frames_for(bob, bob_w, "/user/bob/queue/messages"), [])
        self.assertTrue(alice.is_open)

    async def test_second_identity_on_connection_is_a_conflict(self):
        alice, alice_w = await self.connect("alice")

        await self.server.dispatch(alice, {"destination": "add-user", "payload": {"sender": "mallory"}})

        errors = await self.frames_for(alice, alice_w, "/user/queue/errors")
        self.assertEqual([e["code"] for e in errors], ["IDENTITY_CONFLICT"])
        self.assertEqual(self.server.registry.snapshot(), frozenset({"alice"}))

    async def test_unknown_destination(self):
        conn, writer = await self.connect()

        await self.server.dispatch(conn, {"destination": "shout", "payload": {}})

        errors = await self.frames_for(conn, writer, "/user/queue/errors")
        self.assertEqual([e["code"] for e in errors], ["UNKNOWN_DESTINATION"])

    async def test_non_object_frame_is_malformed(self):
        conn, writer = await self.connect()

        await self.server.dispatch(conn, ["send-message"])

        errors = await self.frames_for(conn, writer, "/user/queue/errors")
        self.assertEqual([e["code"] for e in errors], ["MALFORMED_FRAME"])

    async def test_out_of_range_timestamp_is_malformed_payload(self):
        conn, writer = await self.connect("alice")

        await self.server.dispatch(conn, {"destination": "send-message", "payload": {
            "sender": "alice", "recipient": "bob", "content": "hi",
            "timestamp": "0001-01-01T00:00:00+01:00"}})

        errors = await self.frames_for(conn, writer, "/user/queue/errors")
        self.assertEqual([e["code"] for e in errors], ["MALFORMED_PAYLOAD"])
        self.assertEqual(len(self.server.message_log), 0)

    async def test_signal_is_routed_to_webrtc_queue(self):
        alice, _ = await self.connect("alice")
        bob, bob_w = await self.connect("bob")

        await self.server.dispatch(alice, {"destination": "webrtc-signal", "payload": {
            "sender": "alice", "recipient": "bob", "content": '{"sdp": "offer"}'}})

        [signal] = await self.frames_for(bob, bob_w, "/user/bob/queue/webrtc")
        self.assertEqual(signal["type"], "SIGNAL")
        self.assertEqual(signal["content"], '{"sdp": "offer"}')
        self.assertEqual(len(self.server.message_log), 0)


if __name__ == '__main__':
    unittest.main()
