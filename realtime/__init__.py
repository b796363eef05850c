"""
WebSocket module for the Simulix backend.

Real-time job updates and the tradeoff worker protocol.
"""

from .manager import (
    MessageType,
    WebSocketManager,
    WebSocketMessage,
    notify_job_cancelled,
    notify_job_completed,
    notify_job_failed,
    notify_job_metrics,
    notify_job_progress,
    notify_job_started,
    ws_manager,
)

__all__ = [
    "WebSocketManager",
    "WebSocketMessage",
    "MessageType",
    "ws_manager",
    "notify_job_started",
    "notify_job_progress",
    "notify_job_metrics",
    "notify_job_completed",
    "notify_job_failed",
    "notify_job_cancelled",
]
