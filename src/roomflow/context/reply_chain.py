"""Reply-chain tracing with cycle and depth protection."""

from __future__ import annotations

from typing import Iterable

from roomflow.core.types import Message

MAX_CHAIN_DEPTH = 5


def trace_reply_chain(
    target_id: str,
    messages: Iterable[Message],
    max_depth: int = MAX_CHAIN_DEPTH,
) -> list[Message]:
    """
    Follow reply_to references starting at target_id.

    Stops on a missing parent, a revisited id or max_depth steps.

    Returns:
        The chain oldest-first, ending with the target message.
    """
    by_id = {m.id: m for m in messages}
    chain: list[Message] = []
    visited: set[str] = set()
    current_id: str | None = target_id

    while current_id and len(chain) < max_depth:
        if current_id in visited:
            break
        visited.add(current_id)

        msg = by_id.get(current_id)
        if msg is None:
            break

        chain.append(msg)
        current_id = msg.reply_to

    chain.reverse()
    return chain
