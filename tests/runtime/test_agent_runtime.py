"""Tests for AgentRuntime using the in-memory room."""

import asyncio
import random

import pytest

from roomflow.client.events import JoinEvent, MessageEvent
from roomflow.config.settings import AgentSettings, ProactiveSettings
from roomflow.core.errors import RoomNotJoinedError
from roomflow.runtime.agent import AgentRuntime
from roomflow.testing import FakeReasoner, FakeRoom


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(
        server_url="http://room.test",
        agent_name="Bot",
        reply_probability=1.0,
        proactive=ProactiveSettings(enabled=True, check_interval_s=60),
    )


@pytest.fixture
def room() -> FakeRoom:
    room = FakeRoom("Bot")
    room.add_member("alice")
    return room


def _runtime(settings, room, reasoner, clock) -> AgentRuntime:
    return AgentRuntime(settings, room, reasoner, rng=random.Random(1), clock=clock)


async def _wait_for(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


class TestReplyPath:
    async def test_mention_reply_targets_sender(self, settings, room, clock):
        trigger = room.post("alice", "@Bot are you there?", mentions={"Bot"})
        runtime = _runtime(settings, room, FakeReasoner(["yes, here!"]), clock)

        outcome = await runtime.handle_message(trigger)

        assert outcome == "sent"
        assert room.sent == [
            {"content": "@alice yes, here!", "reply_to": trigger.id, "is_mention_reply": True}
        ]
        assert runtime.strategy.is_in_cooldown()

    async def test_existing_mention_is_not_duplicated(self, settings, room, clock):
        trigger = room.post("alice", "@Bot hi", mentions={"Bot"})
        runtime = _runtime(settings, room, FakeReasoner(["@Alice hi back"]), clock)

        await runtime.handle_message(trigger)

        assert room.sent[0]["content"] == "@Alice hi back"

    async def test_general_reply(self, settings, room, clock):
        trigger = room.post("alice", "what does everyone think about rust")
        runtime = _runtime(settings, room, FakeReasoner(["I like it"]), clock)

        assert await runtime.handle_message(trigger) == "sent"
        assert room.sent[0] == {"content": "I like it", "reply_to": trigger.id, "is_mention_reply": False}

    async def test_prompt_carries_sanitized_history(self, settings, room, clock):
        trigger = room.post("alice", "<b>hello</b> @Bot", mentions={"Bot"})
        reasoner = FakeReasoner(["hi"])
        runtime = _runtime(settings, room, reasoner, clock)

        await runtime.handle_message(trigger)

        system_prompt, user_prompt = reasoner.calls[0]
        assert '"Bot"' in system_prompt
        assert "[USER_MESSAGE]hello @Bot[/USER_MESSAGE]" in user_prompt

    async def test_own_message_is_ignored(self, settings, room, clock):
        own = room.post("Bot", "I said something", kind="agent")
        reasoner = FakeReasoner(["again"])
        runtime = _runtime(settings, room, reasoner, clock)

        assert await runtime.handle_message(own) == "strategy_skip"
        assert reasoner.calls == []

    async def test_cooldown_skips_unmentioned(self, settings, room, clock):
        first = room.post("alice", "first topic")
        runtime = _runtime(settings, room, FakeReasoner(["ok"]), clock)
        await runtime.handle_message(first)

        second = room.post("alice", "second topic")

        assert await runtime.handle_message(second) == "strategy_skip"
        assert len(room.sent) == 1

    async def test_saturated_message_is_skipped(self, settings, room, clock):
        trigger = room.post("alice", "thoughts?")
        room.post("helper1", "mine", kind="agent", reply_to=trigger.id)
        room.post("helper2", "also mine", kind="agent", reply_to=trigger.id)
        reasoner = FakeReasoner(["me too"])
        runtime = _runtime(settings, room, reasoner, clock)

        assert await runtime.handle_message(trigger) == "reply_saturation"
        assert reasoner.calls == []

    async def test_looping_agent_is_ignored(self, settings, room, clock):
        for _ in range(3):
            trigger = room.post("echo", "we should really use option A here", kind="agent")
        runtime = _runtime(settings, room, FakeReasoner(["sure"]), clock)

        assert await runtime.handle_message(trigger) == "agent_loop"
        assert room.sent == []

    async def test_second_looping_agent_is_ignored(self, settings, room, clock):
        for _ in range(3):
            room.post("echo", "we should really use option A here", kind="agent")
        for _ in range(3):
            trigger = room.post("parrot", "option B is clearly the better choice", kind="agent")
        runtime = _runtime(settings, room, FakeReasoner(["sure"]), clock)

        assert await runtime.handle_message(trigger) == "agent_loop"
        assert room.sent == []

    async def test_skip_from_model(self, settings, room, clock):
        trigger = room.post("alice", "nice weather")
        runtime = _runtime(settings, room, FakeReasoner(["[SKIP]"]), clock)

        assert await runtime.handle_message(trigger) == "model_skip"
        assert room.sent == []
        assert not runtime.strategy.is_in_cooldown()

    async def test_dangerous_output_is_dropped(self, settings, room, clock):
        trigger = room.post("alice", "how do I clean up?")
        runtime = _runtime(settings, room, FakeReasoner(["just sudo rm -rf /"]), clock)

        assert await runtime.handle_message(trigger) == "filtered"
        assert room.sent == []

    async def test_reasoner_failure_is_a_skip(self, settings, room, clock):
        trigger = room.post("alice", "hello")
        runtime = _runtime(settings, room, FakeReasoner(error=RuntimeError("boom")), clock)

        assert await runtime.handle_message(trigger) == "error"

    async def test_room_read_failure_is_a_skip(self, settings, room, clock):
        trigger = room.post("alice", "hello")
        room.fail_reads = True
        runtime = _runtime(settings, room, FakeReasoner(["hi"]), clock)

        assert await runtime.handle_message(trigger) == "error"

    async def test_hung_send_times_out_and_releases_lock(self, settings, room, clock):
        async def never_returns(*args, **kwargs):
            await asyncio.sleep(3600)

        settings = settings.model_copy(update={"request_timeout_s": 0.05})
        trigger = room.post("alice", "hello")
        room.send_message = never_returns
        runtime = _runtime(settings, room, FakeReasoner(["hi"]), clock)

        outcome = await asyncio.wait_for(runtime.handle_message(trigger), 1.0)

        assert outcome == "error"
        assert not runtime._lock.locked()
        assert not runtime.strategy.is_in_cooldown()


class TestRejectionBackoff:
    async def test_rejection_doubles_backoff(self, settings, room, clock):
        room.reject_with = 429
        room.retry_after_ms = 3000
        trigger = room.post("alice", "@Bot ping", mentions={"Bot"})
        runtime = _runtime(settings, room, FakeReasoner(["pong"]), clock)

        assert await runtime.handle_message(trigger) == "rejected"
        assert runtime.strategy.backoff_multiplier == 2
        assert runtime.strategy.is_in_cooldown()

    async def test_success_resets_backoff(self, settings, room, clock):
        room.reject_with = 429
        runtime = _runtime(settings, room, FakeReasoner(["pong"]), clock)
        await runtime.handle_message(room.post("alice", "@Bot ping", mentions={"Bot"}))

        room.reject_with = None
        await runtime.handle_message(room.post("alice", "@Bot ping again", mentions={"Bot"}))

        assert runtime.strategy.backoff_multiplier == 1.0
        assert len(room.sent) == 1


class TestProactive:
    async def test_proactive_tick_speaks_topic(self, settings, room, clock):
        runtime = _runtime(settings, room, FakeReasoner(["Anyone reading something good?"]), clock)

        assert await runtime.proactive.tick() == "spoke"
        assert room.turn_requests == ["Bot"]
        assert room.sent == [
            {"content": "Anyone reading something good?", "reply_to": None, "is_mention_reply": False}
        ]

    async def test_proactive_rejection_counts_as_backoff(self, settings, room, clock):
        room.reject_with = 429
        runtime = _runtime(settings, room, FakeReasoner(["A topic"]), clock)

        assert await runtime.proactive.tick() == "error"
        assert runtime.strategy.backoff_multiplier == 2


class TestLifecycle:
    async def test_join_refused_raises(self, settings, room, clock):
        room.join_allowed = False
        runtime = _runtime(settings, room, FakeReasoner(), clock)

        with pytest.raises(RoomNotJoinedError):
            await runtime.start()

    async def test_stream_messages_are_handled(self, settings, room, clock):
        runtime = _runtime(settings, room, FakeReasoner(["hey alice"]), clock)
        await runtime.start()
        try:
            assert room.joined
            assert runtime.proactive.is_running

            trigger = room.post("alice", "@Bot hi", mentions={"Bot"})
            room.push_event(MessageEvent(message=trigger))

            await _wait_for(lambda: len(room.sent) == 1)
        finally:
            await runtime.stop()

        assert room.sent[0]["content"] == "@alice hey alice"

    async def test_stop_is_idempotent(self, settings, room, clock):
        runtime = _runtime(settings, room, FakeReasoner(), clock)
        await runtime.start()

        await runtime.stop()
        await runtime.stop()

        assert room.closed
        assert runtime.is_running is False
        assert runtime.proactive.is_running is False

    async def test_join_events_are_tracked(self, settings, room, clock):
        runtime = _runtime(settings, room, FakeReasoner(), clock)

        runtime.dispatch_event(JoinEvent(name="carol", kind="human"))

        assert runtime.events[-1].name == "carol"
        assert runtime.events[-1].type == "join"
