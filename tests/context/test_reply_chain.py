"""Tests for reply-chain tracing."""

from roomflow.context.reply_chain import trace_reply_chain
from tests.fixtures import make_message


def _chain(length: int):
    messages = []
    parent = None
    for i in range(length):
        msg = make_message(f"msg {i}", id=f"c{i}", timestamp=i, reply_to=parent)
        messages.append(msg)
        parent = msg.id
    return messages


class TestTraceReplyChain:
    def test_returns_chain_oldest_first(self):
        messages = _chain(3)
        chain = trace_reply_chain("c2", messages)
        assert [m.id for m in chain] == ["c0", "c1", "c2"]

    def test_message_without_parent_is_its_own_chain(self):
        msg = make_message("root", id="root")
        assert trace_reply_chain("root", [msg]) == [msg]

    def test_unknown_target_returns_empty(self):
        assert trace_reply_chain("missing", _chain(2)) == []

    def test_stops_at_missing_parent(self):
        orphan = make_message("orphan", id="o", reply_to="deleted-long-ago")
        assert [m.id for m in trace_reply_chain("o", [orphan])] == ["o"]

    def test_depth_limit_keeps_nearest_ancestors(self):
        messages = _chain(10)
        chain = trace_reply_chain("c9", messages, max_depth=5)
        assert [m.id for m in chain] == ["c5", "c6", "c7", "c8", "c9"]

    def test_cycle_terminates(self):
        a = make_message("a", id="a", reply_to="b")
        b = make_message("b", id="b", reply_to="a")
        chain = trace_reply_chain("a", [a, b])
        assert {m.id for m in chain} == {"a", "b"}
        assert len(chain) == 2

    def test_self_reply_terminates(self):
        loop = make_message("loop", id="x", reply_to="x")
        assert trace_reply_chain("x", [loop]) == [loop]
