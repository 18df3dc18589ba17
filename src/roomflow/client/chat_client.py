"""
HTTP + server-sent-events client for the room server.

Implements RoomTransport and TurnService for one connected identity.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import OrderedDict
from typing import Any, AsyncIterator

import httpx
from pydantic import ValidationError

from roomflow.core.clock import MINUTE_MS, Clock, now_ms
from roomflow.core.errors import RoomNotJoinedError
from roomflow.core.types import (
    Activity,
    Identity,
    Message,
    SenderKind,
    SendResult,
    TurnResult,
)

from .events import JoinEvent, LeaveEvent, MessageEvent, NoticeEvent, RoomStreamEvent
from .payloads import (
    ActivityPayload,
    ErrorPayload,
    MemberPayload,
    MessagePayload,
    NamePayload,
    TurnPayload,
)

logger = logging.getLogger(__name__)

DEDUP_TTL_MS = 5 * MINUTE_MS
DEDUP_CLEANUP_SIZE = 100
MAX_RECONNECT_DELAY_S = 30.0


class ChatClient:
    """
    Client for one identity in the room.

    Example:
        client = ChatClient("http://localhost:3000", "Bot")
        await client.join()
        async for event in client.stream():
            ...
        await client.close()
    """

    def __init__(
        self,
        server_url: str,
        name: str,
        kind: SenderKind = "agent",
        timeout: float = 5.0,
        http_client: httpx.AsyncClient | None = None,
        clock: Clock = now_ms,
    ):
        self.server_url = server_url.rstrip("/")
        self.name = name
        self.kind = kind
        self.timeout = timeout
        self._http_client = http_client
        self._clock = clock

        self.member: Identity | None = None
        self._closed = False
        self._reconnect_attempts = 0
        self._processed: OrderedDict[str, float] = OrderedDict()
        self.last_message_timestamp = 0

    @property
    def is_joined(self) -> bool:
        return self.member is not None

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None or self._http_client.is_closed:
            self._http_client = httpx.AsyncClient(
                base_url=self.server_url, timeout=self.timeout
            )
        return self._http_client

    async def close(self) -> None:
        """Stop streaming and close the HTTP client."""
        self._closed = True
        if self._http_client and not self._http_client.is_closed:
            await self._http_client.aclose()

    async def join(self) -> Identity | None:
        """Join the room. Returns the member record, or None on failure."""
        try:
            client = await self._get_http_client()
            response = await client.post("/join", json={"name": self.name, "type": self.kind})
            response.raise_for_status()
            self.member = MemberPayload.model_validate(response.json()["data"]).to_identity()
        except (httpx.HTTPError, KeyError, ValidationError) as e:
            logger.error(f"Failed to join room as {self.name}: {e}")
            return None

        logger.info(f"Joined room as {self.name}")
        return self.member

    async def get_messages(self, since: int = 0, limit: int = 20) -> list[Message]:
        try:
            client = await self._get_http_client()
            response = await client.get("/messages", params={"since": since, "limit": limit})
            response.raise_for_status()
            return [MessagePayload.model_validate(m).to_message() for m in response.json()]
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error(f"Failed to get messages: {e}")
            return []

    async def get_recent_messages(self, limit: int = 20) -> list[Message]:
        return await self.get_messages(limit=limit)

    async def get_members(self) -> list[Identity]:
        try:
            client = await self._get_http_client()
            response = await client.get("/members")
            response.raise_for_status()
            return [MemberPayload.model_validate(m).to_identity() for m in response.json()]
        except (httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error(f"Failed to get members: {e}")
            return []

    async def send_message(
        self,
        content: str,
        reply_to: str | None = None,
        is_mention_reply: bool = False,
    ) -> SendResult:
        """
        Send a message. Rejections are returned, not retried.

        Raises:
            RoomNotJoinedError: If join() has not succeeded
        """
        if not self.is_joined:
            raise RoomNotJoinedError(f"{self.name} has not joined the room")

        body = {
            "sender": self.name,
            "content": content,
            "replyTo": reply_to,
            "isMentionReply": is_mention_reply,
        }
        try:
            client = await self._get_http_client()
            response = await client.post("/messages", json=body)
        except httpx.HTTPError as e:
            logger.error(f"Failed to send message: {e}")
            return SendResult(success=False, error=str(e))

        if response.is_success:
            message = MessagePayload.model_validate(response.json()["data"]).to_message()
            logger.info(f"Message sent: {content[:50]}")
            return SendResult(success=True, message=message, status_code=response.status_code)

        error = _parse_error(response)
        if response.status_code == 429:
            logger.warning(f"Rate limited, retry after {error.retry_after}ms: {error.error}")
        else:
            logger.error(f"Failed to send message ({response.status_code}): {error.error}")
        return SendResult(
            success=False,
            error=error.error or response.reason_phrase,
            status_code=response.status_code,
            retry_after_ms=error.retry_after,
        )

    async def get_activity(self) -> Activity:
        client = await self._get_http_client()
        response = await client.get("/activity")
        response.raise_for_status()
        return ActivityPayload.model_validate(response.json()).to_activity()

    async def request_turn(self, name: str) -> TurnResult:
        client = await self._get_http_client()
        response = await client.post("/proactive/request-turn", json={"agentName": name})
        response.raise_for_status()
        return TurnPayload.model_validate(response.json()["data"]).to_turn()

    async def stream(self) -> AsyncIterator[RoomStreamEvent]:
        """
        Yield room events until close().

        Reconnects with exponential backoff (capped at 30s) and drops
        message events already seen in the last five minutes.
        """
        while not self._closed:
            try:
                client = await self._get_http_client()
                logger.info(
                    f"Connecting to stream {self.server_url}/stream "
                    f"(attempt {self._reconnect_attempts + 1})"
                )
                async with client.stream("GET", "/stream", timeout=None) as response:
                    response.raise_for_status()
                    self._reconnect_attempts = 0
                    async for event_type, data in _iter_sse(response):
                        event = self._to_event(event_type, data)
                        if event is not None:
                            yield event
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._closed:
                    break
                logger.warning(f"Stream error: {e}")

            if self._closed:
                break
            delay = self.reconnect_delay_s()
            self._reconnect_attempts += 1
            logger.info(f"Reconnecting stream in {delay:.0f}s")
            await asyncio.sleep(delay)

    def reconnect_delay_s(self) -> float:
        return min(2.0**self._reconnect_attempts, MAX_RECONNECT_DELAY_S)

    def is_duplicate(self, message_id: str) -> bool:
        """Record message_id; True if it was already seen within the TTL."""
        now = self._clock()
        if message_id in self._processed:
            return True
        self._processed[message_id] = now
        if len(self._processed) >= DEDUP_CLEANUP_SIZE:
            while self._processed:
                oldest_id, seen_at = next(iter(self._processed.items()))
                if now - seen_at <= DEDUP_TTL_MS:
                    break
                self._processed.pop(oldest_id)
        return False

    def _to_event(self, event_type: str, data: dict[str, Any]) -> RoomStreamEvent | None:
        try:
            if event_type == "message":
                message = MessagePayload.model_validate(data).to_message()
                if self.is_duplicate(message.id):
                    logger.debug(f"Duplicate message ignored: {message.id}")
                    return None
                self.last_message_timestamp = max(self.last_message_timestamp, message.timestamp)
                return MessageEvent(message=message)
            if event_type == "join":
                payload = NamePayload.model_validate(data)
                return JoinEvent(name=payload.name, kind=payload.type)
            if event_type == "leave":
                return LeaveEvent(name=NamePayload.model_validate(data).name)
            if event_type in ("mute", "unmute", "kick"):
                payload = NamePayload.model_validate(data)
                return NoticeEvent(type=event_type, name=payload.name, raw=data)
        except ValidationError as e:
            logger.error(f"Failed to parse {event_type} event: {e}")
            return None

        logger.debug(f"Ignoring stream event: {event_type}")
        return None


async def _iter_sse(response: httpx.Response) -> AsyncIterator[tuple[str, dict[str, Any]]]:
    """Parse a text/event-stream body into (event, json data) pairs."""
    event_type = "message"
    data_lines: list[str] = []

    async for line in response.aiter_lines():
        if not line:
            if data_lines:
                try:
                    yield event_type, json.loads("\n".join(data_lines))
                except json.JSONDecodeError as e:
                    logger.error(f"Failed to parse stream data: {e}")
            event_type = "message"
            data_lines = []
        elif line.startswith("event:"):
            event_type = line[len("event:"):].strip()
        elif line.startswith("data:"):
            data_lines.append(line[len("data:"):].strip())


def _parse_error(response: httpx.Response) -> ErrorPayload:
    try:
        return ErrorPayload.model_validate(response.json())
    except (ValueError, ValidationError):
        return ErrorPayload(error=response.text)
