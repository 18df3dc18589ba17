"""
HTTP room server.

Starlette app exposing the room API and a server-sent-events stream. Every
inbound message passes validation, mute and anti-spam checks and the shared
AdmissionController before it is stored and broadcast.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from collections.abc import AsyncIterator
from dataclasses import asdict
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from roomflow.flow.admission import AdmissionController
from roomflow.security.validation import SecurityMonitor, Severity, validate_message

from .event_buffer import EventBuffer
from .store import INACTIVE_MEMBER_MS, MIN_SEND_INTERVAL_MS, RoomStore

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_AGENT_MESSAGES = 3
CLEANUP_INTERVAL_S = 5 * 60


def _sse(event: str, data: Any) -> str:
    return f"event: {event}\ndata: {json.dumps(data)}\n\n"


class RoomServer:
    """
    One chat room served over HTTP.

    Example:
        server = RoomServer(port=3000)
        await server.start()
        ...
        await server.stop()
    """

    def __init__(
        self,
        store: RoomStore | None = None,
        admission: AdmissionController | None = None,
        event_buffer: EventBuffer | None = None,
        monitor: SecurityMonitor | None = None,
        host: str = "0.0.0.0",
        port: int = 3000,
        min_send_interval_ms: int = MIN_SEND_INTERVAL_MS,
        max_consecutive_agents: int = MAX_CONSECUTIVE_AGENT_MESSAGES,
        inactive_member_ms: int = INACTIVE_MEMBER_MS,
        cleanup_interval_s: float = CLEANUP_INTERVAL_S,
    ):
        self.store = store or RoomStore()
        self.admission = admission or AdmissionController()
        self.event_buffer = event_buffer or EventBuffer()
        self.monitor = monitor or SecurityMonitor()
        self.host = host
        self.port = port
        self.min_send_interval_ms = min_send_interval_ms
        self.max_consecutive_agents = max_consecutive_agents
        self.inactive_member_ms = inactive_member_ms
        self.cleanup_interval_s = cleanup_interval_s

        self._subscribers: dict[str, asyncio.Queue[tuple[str, Any]]] = {}
        self._app: Starlette | None = None
        self._server_task: asyncio.Task[Any] | None = None
        self._cleanup_task: asyncio.Task[None] | None = None

    @property
    def app(self) -> Starlette:
        if self._app is None:
            self._app = self.build_app()
        return self._app

    def build_app(self) -> Starlette:
        routes = [
            Route("/join", self._handle_join, methods=["POST"]),
            Route("/members", self._handle_members, methods=["GET"]),
            Route("/messages", self._handle_get_messages, methods=["GET"]),
            Route("/messages", self._handle_post_message, methods=["POST"]),
            Route("/stream", self._handle_stream, methods=["GET"]),
            Route("/health", self._handle_health, methods=["GET"]),
            Route("/activity", self._handle_activity, methods=["GET"]),
            Route("/events", self._handle_events, methods=["GET"]),
            Route("/proactive/request-turn", self._handle_request_turn, methods=["POST"]),
        ]
        return Starlette(routes=routes)

    # Broadcasting

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> tuple[str, asyncio.Queue[tuple[str, Any]]]:
        client_id = uuid.uuid4().hex[:10]
        queue: asyncio.Queue[tuple[str, Any]] = asyncio.Queue()
        self._subscribers[client_id] = queue
        return client_id, queue

    def unsubscribe(self, client_id: str) -> None:
        self._subscribers.pop(client_id, None)

    def broadcast(self, event: str, data: Any) -> None:
        for queue in list(self._subscribers.values()):
            queue.put_nowait((event, data))

    # Handlers

    async def _read_json(self, request: Request) -> dict[str, Any] | None:
        try:
            body = await request.json()
        except ValueError:
            return None
        return body if isinstance(body, dict) else None

    async def _handle_join(self, request: Request) -> JSONResponse:
        body = await self._read_json(request) or {}
        name, kind = body.get("name"), body.get("type")

        if not name or not kind:
            return JSONResponse({"success": False, "error": "Missing name or type"}, status_code=400)
        if kind not in ("human", "agent"):
            return JSONResponse(
                {"success": False, "error": "Invalid type, must be human or agent"},
                status_code=400,
            )

        member, is_new = self.store.add_member(name, kind)
        if is_new:
            self.broadcast("join", {"name": name, "type": kind})
            self.event_buffer.add_event("join", name)

        return JSONResponse({"success": True, "data": member.to_dict()})

    async def _handle_members(self, request: Request) -> JSONResponse:
        return JSONResponse([m.to_dict() for m in self.store.get_members()])

    async def _handle_get_messages(self, request: Request) -> JSONResponse:
        try:
            since = int(request.query_params.get("since", 0))
            limit = int(request.query_params.get("limit", 50))
        except ValueError:
            return JSONResponse({"success": False, "error": "Invalid since or limit"}, status_code=400)

        messages = self.store.get_messages(since=since, limit=limit)
        return JSONResponse([m.to_dict() for m in messages])

    async def _handle_post_message(self, request: Request) -> JSONResponse:
        body = await self._read_json(request) or {}
        sender = body.get("sender")
        content = body.get("content")
        reply_to = body.get("replyTo")
        is_mention_reply = bool(body.get("isMentionReply"))

        if not sender or not content:
            return JSONResponse({"success": False, "error": "Missing sender or content"}, status_code=400)

        member = self.store.get_member(sender)
        if member is None:
            return JSONResponse(
                {"success": False, "error": "Sender not found. Please join the chat first."},
                status_code=404,
            )
        kind = member.kind

        validation = validate_message(sender, content, kind)
        if not validation.valid:
            self.monitor.record("input_violation", "medium", sender, validation.reason or "")
            return JSONResponse({"success": False, "error": validation.reason}, status_code=400)

        if self.store.is_muted(sender):
            return JSONResponse(
                {"success": False, "error": "You are muted", "mutedUntil": member.muted_until},
                status_code=403,
            )

        # Agent replies to a mention skip the legacy anti-spam checks
        if not (is_mention_reply and kind == "agent"):
            allowed, retry_after = self.store.check_min_interval(sender, self.min_send_interval_ms)
            if not allowed:
                return self._rate_limited(sender, "Rate limit exceeded", retry_after)

            if kind == "agent" and self.store.consecutive_agent_count() >= self.max_consecutive_agents:
                return self._rate_limited(
                    sender, "Too many consecutive agent messages", None, severity="low"
                )

        result = self.admission.admit(sender, kind, self.store.get_all_messages())
        if not result.allowed:
            return self._rate_limited(sender, result.reason or "Rate limit exceeded", result.retry_after_ms)

        message = self.store.add_message(
            sender, kind, validation.sanitized_content or content, reply_to
        )
        self.broadcast("message", message.to_dict())
        return JSONResponse({"success": True, "data": message.to_dict()}, status_code=201)

    def _rate_limited(
        self, sender: str, reason: str, retry_after: int | None, severity: Severity = "low"
    ) -> JSONResponse:
        self.monitor.record("rate_limit", severity, sender, reason)
        body: dict[str, Any] = {"success": False, "error": reason}
        if retry_after is not None:
            body["retryAfter"] = retry_after
        return JSONResponse(body, status_code=429)

    async def _handle_stream(self, request: Request) -> StreamingResponse:
        client_id, queue = self.subscribe()
        logger.debug(f"Stream client connected: {client_id}")

        async def event_stream() -> AsyncIterator[str]:
            try:
                yield _sse("connected", {"clientId": client_id})
                while True:
                    event, data = await queue.get()
                    yield _sse(event, data)
            finally:
                self.unsubscribe(client_id)
                logger.debug(f"Stream client disconnected: {client_id}")

        return StreamingResponse(
            event_stream(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    async def _handle_health(self, request: Request) -> JSONResponse:
        return JSONResponse(
            {
                "status": "ok",
                "members": len(self.store.get_members()),
                "messages": len(self.store.get_all_messages()),
                "streamClients": self.subscriber_count,
            }
        )

    async def _handle_activity(self, request: Request) -> JSONResponse:
        activity = self.store.get_activity_status()
        return JSONResponse(
            {"isIdle": activity.is_idle, "lastMessageTime": activity.last_message_time}
        )

    async def _handle_events(self, request: Request) -> JSONResponse:
        since = request.query_params.get("since")
        try:
            events = self.event_buffer.get_recent_events(int(since) if since else None)
        except ValueError:
            return JSONResponse({"success": False, "error": "Invalid since"}, status_code=400)
        return JSONResponse([asdict(e) for e in events])

    async def _handle_request_turn(self, request: Request) -> JSONResponse:
        body = await self._read_json(request) or {}
        agent_name = body.get("agentName")
        if not agent_name:
            return JSONResponse({"success": False, "error": "Missing agentName"}, status_code=400)

        result = self.store.request_proactive_turn(agent_name)
        return JSONResponse(
            {
                "success": result.granted,
                "data": {"granted": result.granted, "lockUntil": result.lock_until},
            }
        )

    # Moderation

    def mute_member(self, name: str, duration_ms: int) -> bool:
        member = self.store.mute(name, duration_ms)
        if member is None:
            return False
        self.broadcast("mute", {"name": name, "duration": duration_ms})
        self.event_buffer.add_event("mute", name, f"Muted for {duration_ms}ms")
        return True

    def unmute_member(self, name: str) -> bool:
        if self.store.unmute(name) is None:
            return False
        self.broadcast("unmute", {"name": name})
        self.event_buffer.add_event("unmute", name)
        return True

    def kick_member(self, name: str) -> bool:
        if not self.store.remove_member(name):
            return False
        self.admission.forget(name)
        self.broadcast("kick", {"name": name})
        self.event_buffer.add_event("kick", name)
        return True

    def cleanup_inactive(self) -> list[str]:
        """Remove idle members and announce their departure."""
        removed = self.store.cleanup_inactive_members(self.inactive_member_ms)
        for name in removed:
            self.admission.forget(name)
            self.broadcast("leave", {"name": name})
            self.event_buffer.add_event("leave", name)
        if removed:
            logger.info(f"Cleaned up inactive members: {', '.join(removed)}")
        return removed

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval_s)
            try:
                self.cleanup_inactive()
            except Exception as e:
                logger.error(f"Inactive member cleanup failed: {e}", exc_info=True)

    async def start(self) -> None:
        """Serve with uvicorn in a background task."""
        import uvicorn

        config = uvicorn.Config(self.app, host=self.host, port=self.port, log_level="warning")
        server = uvicorn.Server(config)

        logger.info(f"Starting room server on {self.host}:{self.port}")
        self._server_task = asyncio.create_task(server.serve())
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())

    async def stop(self) -> None:
        for task in (self._cleanup_task, self._server_task):
            if task is None:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._cleanup_task = None
        self._server_task = None
        logger.info("Room server stopped")

