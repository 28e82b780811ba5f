import asyncio

from loadmatch.services.event_dispatcher import (
    EventDispatcher,
    EventType,
    drain_background_events,
    emit_event,
    emit_in_background,
    get_dispatcher,
    subscribe,
)


class TestEmit:
    async def test_no_handlers(self):
        assert await emit_event(EventType.SUGGESTIONS_REFRESHED, {"trip_id": "trip-1"}) == 0

    async def test_sync_and_async_handlers_receive_event(self):
        seen = []

        def sync_handler(event):
            seen.append(("sync", event.data["trip_id"]))

        async def async_handler(event):
            seen.append(("async", event.owner_id))

        subscribe(EventType.SUGGESTIONS_REFRESHED, sync_handler)
        subscribe(EventType.SUGGESTIONS_REFRESHED, async_handler)
        subscribe(EventType.SUGGESTIONS_REFRESHED, sync_handler)

        delivered = await emit_event(EventType.SUGGESTIONS_REFRESHED, {"trip_id": "trip-1"}, owner_id="owner-1")

        assert delivered == 2
        assert sorted(seen) == [("async", "owner-1"), ("sync", "trip-1")]

    async def test_failing_handlers_do_not_reach_emitter(self):
        calls = []

        def broken(event):
            raise RuntimeError("boom")

        async def broken_async(event):
            raise RuntimeError("boom")

        async def healthy(event):
            calls.append(event.type)

        for handler in (broken, broken_async, healthy):
            subscribe(EventType.SUGGESTION_CLAIMED, handler)

        assert await emit_event(EventType.SUGGESTION_CLAIMED, {}) == 1
        assert calls == [EventType.SUGGESTION_CLAIMED]

    async def test_handlers_are_scoped_to_event_type(self):
        calls = []
        subscribe(EventType.SUGGESTION_CLAIMED, calls.append)

        await emit_event(EventType.SUGGESTION_ACTIONED, {})
        assert calls == []

    def test_dispatcher_is_shared(self):
        assert EventDispatcher() is get_dispatcher()


class TestBackgroundDispatch:
    async def test_events_delivered_in_order_after_caller_returns(self):
        seen = []
        subscribe(EventType.SUGGESTION_ACTIONED, lambda event: seen.append(event.type))
        subscribe(EventType.SUGGESTION_CLAIMED, lambda event: seen.append(event.type))

        emit_in_background(
            [EventType.SUGGESTION_ACTIONED, EventType.SUGGESTION_CLAIMED], {"suggestion_id": "sug-1"}
        )
        assert seen == []

        await drain_background_events()
        assert seen == [EventType.SUGGESTION_ACTIONED, EventType.SUGGESTION_CLAIMED]

    async def test_cancelling_the_caller_does_not_cancel_dispatch(self):
        release = asyncio.Event()
        delivered = []

        async def slow(event):
            await release.wait()
            delivered.append(event.data["suggestion_id"])

        subscribe(EventType.SUGGESTION_CLAIMED, slow)

        async def request():
            emit_in_background([EventType.SUGGESTION_CLAIMED], {"suggestion_id": "sug-1"})
            await asyncio.sleep(10)

        caller = asyncio.create_task(request())
        await asyncio.sleep(0)
        caller.cancel()
        release.set()

        await drain_background_events()
        assert delivered == ["sug-1"]
