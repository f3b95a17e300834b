#!/usr/bin/env python3
"""
Unit tests for the live status stream.
"""

import json

import pytest

from tunesmith.services.status_broadcaster import StatusBroadcaster, format_sse

def parse_frame(frame):
    event_line, data_line = frame.strip().split("\n")
    return event_line[len("event: "):], json.loads(data_line[len("data: "):])

class TestStatusBroadcaster:
    """Unit tests for StatusBroadcaster."""

    def test_format_sse(self):
        assert format_sse("ping") == "event: ping\ndata: {}\n\n"
        assert format_sse("status-message", {"message": "café"}) == \
            'event: status-message\ndata: {"message": "café"}\n\n'

    def test_send_without_subscribers_is_a_no_op(self):
        broadcaster = StatusBroadcaster()
        broadcaster.send("liked-start", broadcaster.create_context("liked-songs"), {"total": 3})

        assert not broadcaster.has_subscribers()
        assert broadcaster.context_for("liked-songs") is None

    def test_subscriber_receives_connected_then_tagged_events(self):
        broadcaster = StatusBroadcaster()
        queue = broadcaster.subscribe()
        context = broadcaster.context_for("generate-playlists")

        broadcaster.generate_start(context, model="gemini-pro")
        broadcaster.status_error(context, "Something failed")

        assert parse_frame(queue.get_nowait()) == ("connected", {})
        event, payload = parse_frame(queue.get_nowait())
        assert event == "generate-start"
        assert payload == {
            "model": "gemini-pro",
            "requestId": context.request_id,
            "operation": "generate-playlists"
        }
        assert parse_frame(queue.get_nowait())[1]["message"] == "Something failed"

    def test_every_subscriber_gets_every_event(self):
        broadcaster = StatusBroadcaster()
        first, second = broadcaster.subscribe(), broadcaster.subscribe()

        broadcaster.status_message(None, "hello")

        for queue in (first, second):
            queue.get_nowait()
            assert parse_frame(queue.get_nowait()) == ("status-message", {"message": "hello"})

    def test_unsubscribe(self):
        broadcaster = StatusBroadcaster()
        queue = broadcaster.subscribe()
        broadcaster.unsubscribe(queue)

        assert broadcaster.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_stream_emits_heartbeat_and_unsubscribes(self):
        broadcaster = StatusBroadcaster(heartbeat_seconds=0.01)
        stream = broadcaster.stream()

        assert (await stream.__anext__()).startswith("event: connected")
        assert broadcaster.subscriber_count == 1
        assert (await stream.__anext__()).startswith("event: ping")

        await stream.aclose()
        assert broadcaster.subscriber_count == 0
