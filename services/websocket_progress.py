"""WebSocket progress manager for real-time reel generation updates."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from typing import Any, Dict, Set, Tuple
from uuid import uuid4

from fastapi import WebSocket

from shared.utils import setup_logging

logger = setup_logging("websocket-progress")

# Events after which a job produces no further updates
TERMINAL_EVENTS = {"job_completed", "job_failed", "job_removed"}


class WebSocketProgressManager:
    """Track WebSocket connections and their generation job subscriptions."""

    def __init__(self) -> None:
        self._connections: Dict[str, WebSocket] = {}
        self._job_subscriptions: Dict[str, Set[str]] = defaultdict(set)
        self._client_jobs: Dict[str, Set[str]] = defaultdict(set)
        self._latest: Dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, client_id: str | None = None) -> str:
        """Accept WebSocket connection and register client."""
        client_key = client_id or str(uuid4())
        await websocket.accept()
        async with self._lock:
            self._connections[client_key] = websocket
        return client_key

    async def disconnect(self, client_id: str) -> None:
        """Remove client connection and subscriptions."""
        websocket: WebSocket | None = None
        async with self._lock:
            websocket = self._connections.pop(client_id, None)
            subscribed_jobs = self._client_jobs.pop(client_id, set())
            for job_id in subscribed_jobs:
                subscribers = self._job_subscriptions.get(job_id)
                if subscribers:
                    subscribers.discard(client_id)
                    if not subscribers:
                        self._job_subscriptions.pop(job_id, None)
        if websocket:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Client {client_id} already closed: {e}")

    async def subscribe(self, client_id: str, job_id: str) -> dict[str, Any] | None:
        """Subscribe a client to a job and return the last update seen for it, if any."""
        async with self._lock:
            if client_id not in self._connections:
                raise RuntimeError("Client not connected")
            self._job_subscriptions[job_id].add(client_id)
            self._client_jobs[client_id].add(job_id)
            return self._latest.get(job_id)

    async def unsubscribe(self, client_id: str, job_id: str | None = None) -> None:
        """Unsubscribe a client from a job or from all jobs."""
        async with self._lock:
            if client_id not in self._connections:
                return

            if job_id is None:
                job_ids = list(self._client_jobs.get(client_id, set()))
            else:
                job_ids = [job_id]

            for jid in job_ids:
                subscribers = self._job_subscriptions.get(jid)
                if subscribers:
                    subscribers.discard(client_id)
                    if not subscribers:
                        self._job_subscriptions.pop(jid, None)
            if job_id is None:
                self._client_jobs.pop(client_id, None)
            else:
                self._client_jobs.get(client_id, set()).discard(job_id)

    async def send_progress_update(self, job_id: str, progress_data: dict[str, Any]) -> None:
        """Send progress update to all subscribers of a job."""
        recipients: list[Tuple[str, WebSocket]] = []
        async with self._lock:
            if progress_data.get("type") in TERMINAL_EVENTS:
                self._latest.pop(job_id, None)
            else:
                self._latest[job_id] = progress_data
            client_ids = list(self._job_subscriptions.get(job_id, set()))
            for client_id in client_ids:
                websocket = self._connections.get(client_id)
                if websocket:
                    recipients.append((client_id, websocket))

        for client_id, websocket in recipients:
            try:
                await websocket.send_json(progress_data)
            except Exception as e:
                logger.warning(f"Dropping client {client_id} after failed send for job {job_id}: {e}")
                await self.disconnect(client_id)

    async def reset(self) -> None:
        """Clear all connections and subscriptions (primarily for tests)."""
        async with self._lock:
            connections = list(self._connections.items())
            self._connections.clear()
            self._job_subscriptions.clear()
            self._client_jobs.clear()
            self._latest.clear()

        for client_id, websocket in connections:
            try:
                await websocket.close()
            except RuntimeError as e:
                logger.debug(f"Client {client_id} already closed: {e}")


# Shared manager instance
websocket_manager = WebSocketProgressManager()
