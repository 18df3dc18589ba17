"""Tests for the reply decision engine."""

from roomflow.context.room import (
    ConversationDynamics,
    MemberInfo,
    OngoingThread,
    RoomContext,
)
from roomflow.flow.decision import (
    DIRECTLY_MENTIONED,
    GENERAL,
    NEW_MEMBER_GREETING,
    ONGOING_THREAD,
    REPLY_SATURATION,
    ReplyDecisionEngine,
)
from tests.fixtures import make_message


def _context(thread: OngoingThread | None = None, members=None) -> RoomContext:
    return RoomContext(
        my_name="Bot",
        member_list=members or [],
        conversation_dynamics=ConversationDynamics(ongoing_thread=thread),
    )


def _agent_replies(trigger_id: str, count: int):
    return [
        make_message("reply", sender=f"agent{i}", kind="agent", reply_to=trigger_id)
        for i in range(count)
    ]


class TestReplyDecisionEngine:
    def test_mention_responds_to_sender(self):
        trigger = make_message("@Bot help", sender="alice", mentions={"Bot"})

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(), [trigger])

        assert decision.respond is True
        assert decision.reason == DIRECTLY_MENTIONED
        assert decision.mention_target == "alice"

    def test_mention_overrides_saturation(self):
        trigger = make_message("@bot thoughts?", id="t", mentions={"bot"})
        recent = [trigger, *_agent_replies("t", 5)]

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(), recent)

        assert decision.reason == DIRECTLY_MENTIONED

    def test_two_agent_replies_saturate(self):
        trigger = make_message("anyone?", id="t")
        recent = [trigger, *_agent_replies("t", 2)]

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(), recent)

        assert decision.respond is False
        assert decision.reason == REPLY_SATURATION

    def test_human_replies_do_not_saturate(self):
        trigger = make_message("anyone?", id="t")
        recent = [trigger] + [
            make_message("me!", sender=f"human{i}", reply_to="t") for i in range(3)
        ]

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(), recent)

        assert decision.respond is True

    def test_skips_thread_between_others(self):
        thread = OngoingThread(participants=["alice", "bob"], topic="databases")
        trigger = make_message("indexes matter", sender="bob")

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(thread), [trigger])

        assert decision.respond is False
        assert decision.reason == ONGOING_THREAD

    def test_joins_thread_it_is_part_of(self):
        thread = OngoingThread(participants=["alice", "Bot"], topic="databases")
        trigger = make_message("indexes matter", sender="alice")

        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(thread), [trigger])

        assert decision.reason == GENERAL

    def test_greets_new_member_first_message(self):
        members = [MemberInfo("newbie", "human", joined_at=0, is_new=True, message_count=1)]
        trigger = make_message("hi all", sender="newbie")

        decision = ReplyDecisionEngine("Bot").decide(
            trigger, _context(members=members), [trigger]
        )

        assert decision.respond is True
        assert decision.reason == NEW_MEMBER_GREETING
        assert decision.mention_target == "newbie"

    def test_new_member_second_message_is_general(self):
        members = [MemberInfo("newbie", "human", joined_at=0, is_new=True, message_count=2)]
        first = make_message("hi all", sender="newbie")
        trigger = make_message("anyone here?", sender="newbie")

        decision = ReplyDecisionEngine("Bot").decide(
            trigger, _context(members=members), [first, trigger]
        )

        assert decision.reason == GENERAL
        assert decision.mention_target is None

    def test_general_fallback(self):
        trigger = make_message("nice weather")
        decision = ReplyDecisionEngine("Bot").decide(trigger, _context(), [trigger])
        assert decision.respond is True
        assert decision.reason == GENERAL

    def test_agent_reply_count(self):
        messages = [*_agent_replies("t", 3), make_message("x", kind="agent", reply_to="other")]
        assert ReplyDecisionEngine.agent_reply_count("t", messages) == 3
