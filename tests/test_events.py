"""Tests del EventBus (registro explícito de observadores)."""

import pytest

from monitor_api.core.events import EventBus


class TestEventBus:

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers_in_order(self):
        bus = EventBus(("data",))
        calls = []

        async def async_handler(payload):
            calls.append(("async", payload))

        bus.on("data", lambda p: calls.append(("sync", p)))
        bus.on("data", async_handler)

        await bus.emit("data", 1)

        assert calls == [("sync", 1), ("async", 1)]

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self):
        bus = EventBus(("data",))
        received = []

        def broken(payload):
            raise RuntimeError("boom")

        bus.on("data", broken)
        bus.on("data", received.append)

        await bus.emit("data", "x")

        assert received == ["x"]

    @pytest.mark.asyncio
    async def test_off_removes_handler(self):
        bus = EventBus(("data",))
        received = []
        bus.on("data", received.append)
        bus.off("data", received.append)

        await bus.emit("data", "x")

        assert received == []
        assert bus.listener_count("data") == 0

    def test_unknown_event_rejected(self):
        bus = EventBus(("connected",))

        with pytest.raises(ValueError):
            bus.on("conected", print)
