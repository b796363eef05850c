"""
WebSocket connection manager for the Simulix backend.

- Channel subscriptions (``job:{id}``) for background job updates
- Ping/pong keep-alive
- The tradeoff worker protocol: a ``CALCULATE_TRADEOFF`` message is
  answered on the same connection with ``TRADEOFF_COMPLETE`` or
  ``TRADEOFF_ERROR``
"""

import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from api.shared.logger import get_logger
from api.simulations.tradeoff import (
    TRADEOFF_COMPLETE,
    InlineTradeoffCalculator,
    TradeoffCalculator,
    handle_worker_message,
)

logger = get_logger(__name__)


class MessageType(str, Enum):
    """Types of WebSocket messages."""

    # Job-related messages
    JOB_STARTED = "job_started"
    JOB_PROGRESS = "job_progress"
    JOB_COMPLETED = "job_completed"
    JOB_FAILED = "job_failed"
    JOB_CANCELLED = "job_cancelled"
    JOB_METRICS = "job_metrics"

    # Tradeoff worker protocol
    CALCULATE_TRADEOFF = "CALCULATE_TRADEOFF"
    TRADEOFF_COMPLETE = "TRADEOFF_COMPLETE"
    TRADEOFF_ERROR = "TRADEOFF_ERROR"

    # System messages
    PING = "ping"
    PONG = "pong"
    ERROR = "error"
    CONNECTED = "connected"
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBSCRIBED = "subscribed"
    UNSUBSCRIBED = "unsubscribed"


@dataclass
class WebSocketMessage:
    """Represents a WebSocket message."""

    type: MessageType
    channel: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[str] = None
    error: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "type": self.type.value,
            "channel": self.channel,
            "data": self.data,
            "timestamp": self.timestamp,
        }
        if self.error is not None:
            payload["error"] = self.error
        return payload

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "WebSocketMessage":
        """Parse an incoming message.

        Worker-protocol messages carry their payload under ``params``;
        everything else uses ``data``.

        Raises:
            ValueError: On invalid JSON or an unknown message type.
        """
        payload = json.loads(json_str)
        if not isinstance(payload, dict):
            raise ValueError("message must be a JSON object")
        body = payload.get("data", payload.get("params")) or {}
        return cls(
            type=MessageType(payload.get("type", "error")),
            channel=payload.get("channel", ""),
            data=body if isinstance(body, dict) else {},
            timestamp=payload.get("timestamp"),
        )


class WebSocketManager:
    """
    Manages WebSocket connections for real-time updates.

    Supports channel-based subscriptions for targeted message delivery.
    """

    def __init__(self, tradeoff_calculator: Optional[TradeoffCalculator] = None):
        self._connections: Set[WebSocket] = set()
        # channel -> subscribed sockets
        self._channels: Dict[str, Set[WebSocket]] = {}
        self._connection_info: Dict[WebSocket, Dict[str, Any]] = {}
        self._lock = asyncio.Lock()
        self._tradeoff_calculator = tradeoff_calculator or InlineTradeoffCalculator()

    def set_tradeoff_calculator(self, calculator: TradeoffCalculator) -> None:
        self._tradeoff_calculator = calculator

    @property
    def tradeoff_calculator(self) -> TradeoffCalculator:
        return self._tradeoff_calculator

    async def connect(self, websocket: WebSocket, client_id: Optional[str] = None) -> None:
        """Accept a new WebSocket connection and confirm it."""
        await websocket.accept()

        async with self._lock:
            self._connections.add(websocket)
            self._connection_info[websocket] = {
                "client_id": client_id,
                "connected_at": datetime.now().isoformat(),
                "subscriptions": set(),
            }

        await self.send_to_connection(
            websocket,
            WebSocketMessage(
                type=MessageType.CONNECTED,
                channel="system",
                data={
                    "client_id": client_id,
                    "message": "Connected to Simulix WebSocket server",
                },
            ),
        )

    async def disconnect(self, websocket: WebSocket) -> None:
        """Drop a connection and all of its subscriptions."""
        async with self._lock:
            subscriptions = self._connection_info.get(websocket, {}).get("subscriptions", set())
            for channel in subscriptions:
                if channel in self._channels:
                    self._channels[channel].discard(websocket)
                    if not self._channels[channel]:
                        del self._channels[channel]

            self._connections.discard(websocket)
            self._connection_info.pop(websocket, None)

    async def subscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            self._channels.setdefault(channel, set()).add(websocket)
            if websocket in self._connection_info:
                self._connection_info[websocket]["subscriptions"].add(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.SUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    async def unsubscribe(self, websocket: WebSocket, channel: str) -> None:
        async with self._lock:
            if channel in self._channels:
                self._channels[channel].discard(websocket)
                if not self._channels[channel]:
                    del self._channels[channel]

            if websocket in self._connection_info:
                self._connection_info[websocket]["subscriptions"].discard(channel)

        await self.send_to_connection(
            websocket,
            WebSocketMessage(type=MessageType.UNSUBSCRIBED, channel=channel, data={"channel": channel}),
        )

    async def send_to_connection(self, websocket: WebSocket, message: WebSocketMessage) -> bool:
        """Send a message to one connection; drops the connection on failure."""
        try:
            await websocket.send_text(message.to_json())
            return True
        except Exception as e:
            logger.warning("Error sending WebSocket message: %s", e)
            await self.disconnect(websocket)
            return False

    async def broadcast_to_channel(self, channel: str, message: WebSocketMessage) -> int:
        """Broadcast to every subscriber of a channel.

        Returns:
            Number of connections that received the message
        """
        async with self._lock:
            subscribers = list(self._channels.get(channel, set()))

        sent_count = 0
        disconnected = []
        for websocket in subscribers:
            try:
                await websocket.send_text(message.to_json())
                sent_count += 1
            except Exception:
                disconnected.append(websocket)

        for ws in disconnected:
            await self.disconnect(ws)

        return sent_count

    def get_channel_subscribers(self, channel: str) -> int:
        return len(self._channels.get(channel, set()))

    def get_connection_count(self) -> int:
        return len(self._connections)

    async def handle_message(self, websocket: WebSocket, message_text: str) -> Optional[WebSocketMessage]:
        """
        Handle an incoming WebSocket message.

        Returns:
            Response message or None
        """
        try:
            message = WebSocketMessage.from_json(message_text)
        except (json.JSONDecodeError, ValueError) as e:
            return WebSocketMessage(
                type=MessageType.ERROR,
                channel="system",
                data={"error": f"Invalid message format: {e}"},
            )

        if message.type == MessageType.PING:
            return WebSocketMessage(
                type=MessageType.PONG,
                channel="system",
                data={"timestamp": datetime.now().isoformat()},
            )

        if message.type in (MessageType.SUBSCRIBE, MessageType.UNSUBSCRIBE):
            channel = message.data.get("channel")
            if channel:
                if message.type == MessageType.SUBSCRIBE:
                    await self.subscribe(websocket, channel)
                else:
                    await self.unsubscribe(websocket, channel)
            return None

        if message.type == MessageType.CALCULATE_TRADEOFF:
            return await self.handle_tradeoff(message)

        return None

    async def handle_tradeoff(self, message: WebSocketMessage) -> WebSocketMessage:
        reply = await handle_worker_message(
            {"type": message.type.value, "params": message.data},
            self._tradeoff_calculator,
        )
        if reply["type"] == TRADEOFF_COMPLETE:
            return WebSocketMessage(
                type=MessageType.TRADEOFF_COMPLETE,
                channel=message.channel or "tradeoff",
                data=reply["data"],
            )
        return WebSocketMessage(
            type=MessageType.TRADEOFF_ERROR,
            channel=message.channel or "tradeoff",
            error=reply["error"],
        )


# Global WebSocket manager instance
ws_manager = WebSocketManager()


# ============= Helper Functions for Job Updates =============


def _job_channel(job_id: str) -> str:
    return f"job:{job_id}"


async def notify_job_started(job_id: str, job_data: Dict[str, Any]) -> None:
    channel = _job_channel(job_id)
    await ws_manager.broadcast_to_channel(
        channel, WebSocketMessage(type=MessageType.JOB_STARTED, channel=channel, data=job_data),
    )


async def notify_job_progress(
    job_id: str,
    progress: float,
    message: str = "",
    metrics: Optional[Dict[str, Any]] = None,
) -> None:
    channel = _job_channel(job_id)
    msg = WebSocketMessage(
        type=MessageType.JOB_PROGRESS,
        channel=channel,
        data={
            "job_id": job_id,
            "progress": progress,
            "message": message,
            "metrics": metrics or {},
        },
    )
    await ws_manager.broadcast_to_channel(channel, msg)


async def notify_job_metrics(job_id: str, metrics: Dict[str, Any]) -> None:
    channel = _job_channel(job_id)
    await ws_manager.broadcast_to_channel(
        channel,
        WebSocketMessage(
            type=MessageType.JOB_METRICS,
            channel=channel,
            data={"job_id": job_id, "metrics": metrics},
        ),
    )


async def notify_job_completed(job_id: str, result: Dict[str, Any]) -> None:
    channel = _job_channel(job_id)
    await ws_manager.broadcast_to_channel(
        channel,
        WebSocketMessage(
            type=MessageType.JOB_COMPLETED,
            channel=channel,
            data={"job_id": job_id, "result": result},
        ),
    )


async def notify_job_failed(job_id: str, error: str, traceback: Optional[str] = None) -> None:
    channel = _job_channel(job_id)
    await ws_manager.broadcast_to_channel(
        channel,
        WebSocketMessage(
            type=MessageType.JOB_FAILED,
            channel=channel,
            data={"job_id": job_id, "error": error, "traceback": traceback},
        ),
    )


async def notify_job_cancelled(job_id: str) -> None:
    channel = _job_channel(job_id)
    await ws_manager.broadcast_to_channel(
        channel,
        WebSocketMessage(type=MessageType.JOB_CANCELLED, channel=channel, data={"job_id": job_id}),
    )

