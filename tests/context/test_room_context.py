"""Tests for room context building."""

from roomflow.context.room import RoomEvent, build_room_context, extract_topics
from roomflow.core.clock import MINUTE_MS
from tests.fixtures import make_identity, make_message


class TestBuildRoomContext:
    def test_marks_recent_joiners_as_new(self, clock):
        now = int(clock())
        members = [
            make_identity("Bot", "agent", joined_at=now - 60 * MINUTE_MS),
            make_identity("newbie", joined_at=now - MINUTE_MS),
        ]

        context = build_room_context("Bot", members, [], clock=clock)

        assert context.is_new_member is False
        assert context.member("newbie").is_new is True
        assert context.member("Bot").is_new is False

    def test_counts_messages_per_member(self, clock):
        members = [make_identity("alice"), make_identity("bob")]
        messages = [
            make_message("one", sender="alice"),
            make_message("two", sender="alice"),
            make_message("three", sender="bob"),
        ]

        context = build_room_context("Bot", members, messages, clock=clock)

        assert context.member("alice").message_count == 2
        assert context.member("bob").message_count == 1

    def test_detects_ongoing_thread(self, clock):
        now = int(clock())
        messages = [
            make_message("what about databases", sender="alice", timestamp=now - 3000),
            make_message("postgres mostly", sender="bob", timestamp=now - 2000),
            make_message("postgres replication setup", sender="alice", timestamp=now - 1000),
        ]

        context = build_room_context("Bot", [], messages, clock=clock)

        thread = context.conversation_dynamics.ongoing_thread
        assert thread is not None
        assert thread.participants == ["alice", "bob"]
        assert thread.topic == "postgres replication setup"

    def test_single_speaker_is_not_a_thread(self, clock):
        messages = [make_message(f"msg {i}", sender="alice") for i in range(3)]
        context = build_room_context("Bot", [], messages, clock=clock)
        assert context.conversation_dynamics.ongoing_thread is None

    def test_dominant_speaker_among_recent_messages(self, clock):
        now = int(clock())
        messages = [
            make_message("a", sender="alice", timestamp=now - 1000),
            make_message("b", sender="bob", timestamp=now - 900),
            make_message("c", sender="bob", timestamp=now - 800),
        ]

        dynamics = build_room_context("Bot", [], messages, clock=clock).conversation_dynamics

        assert dynamics.active_speakers == ["alice", "bob"]
        assert dynamics.dominant_speaker == "bob"

    def test_events_are_carried_through(self, clock):
        events = [RoomEvent("join", "carol", int(clock()))]
        context = build_room_context("Bot", [], [], events, clock=clock)
        assert context.recent_events == events


class TestExtractTopics:
    def test_skips_short_words_and_stopwords(self):
        messages = [make_message("What about the python packaging story, again?")]
        assert extract_topics(messages) == ["python", "packaging", "story", "again"]

    def test_limits_topic_count(self):
        messages = [make_message("alpha bravo charlie delta foxtrot golfer hotel")]
        assert len(extract_topics(messages, limit=3)) == 3
