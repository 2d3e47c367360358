"""Best-effort peer message relay over WebSockets.

Any JSON message with a string ``type`` received from one client is forwarded
to every other connected client. Nothing here knows about analysis jobs, and
delivery is not guaranteed: job status is only authoritative via polling.
"""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from .config import PING_INTERVAL, RELAY_HOST, RELAY_PORT

logger = logging.getLogger("securecode")

INVALID_MESSAGE = {"type": "error", "message": "Invalid message format"}


class PeerConnection(ABC):
    """Transport-independent view of one connected client."""

    def __init__(self) -> None:
        self.id = str(uuid.uuid4())
        self.is_alive = True

    def mark_alive(self) -> None:
        self.is_alive = True

    @abstractmethod
    async def send(self, text: str) -> None:
        ...

    @abstractmethod
    async def ping(self) -> None:
        """Send a ping; the transport must call ``mark_alive`` on the pong."""

    @abstractmethod
    async def terminate(self) -> None:
        ...


def parse_message(raw: Union[str, bytes]) -> Optional[Dict[str, Any]]:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            return None
    try:
        message = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(message, dict) or not isinstance(message.get("type"), str):
        return None
    return message


class PeerRelay:
    def __init__(self, ping_interval: float = PING_INTERVAL) -> None:
        self.ping_interval = ping_interval
        self._clients: Dict[str, PeerConnection] = {}
        self._heartbeat: Optional[asyncio.Task] = None

    @property
    def clients(self) -> List[PeerConnection]:
        return list(self._clients.values())

    def register(self, conn: PeerConnection) -> None:
        conn.is_alive = True
        self._clients[conn.id] = conn
        logger.info("Relay connection opened id=%s clients=%d", conn.id, len(self._clients))

    def unregister(self, conn: PeerConnection) -> None:
        if self._clients.pop(conn.id, None) is not None:
            logger.info("Relay connection closed id=%s clients=%d", conn.id, len(self._clients))

    async def _safe_send(self, conn: PeerConnection, text: str) -> bool:
        try:
            await asyncio.wait_for(conn.send(text), self.ping_interval)
            return True
        except asyncio.TimeoutError:
            logger.warning("Relay send to %s timed out", conn.id)
            return False
        except (ConnectionClosed, OSError) as exc:
            logger.debug("Relay send to %s failed: %s", conn.id, exc)
            return False

    async def broadcast(
        self, message: Dict[str, Any], exclude: Optional[PeerConnection] = None
    ) -> int:
        text = json.dumps(message)
        targets = [c for c in self.clients if exclude is None or c.id != exclude.id]
        sent = await asyncio.gather(*(self._safe_send(c, text) for c in targets))
        return sum(1 for ok in sent if ok)

    async def handle_message(self, conn: PeerConnection, raw: Union[str, bytes]) -> int:
        message = parse_message(raw)
        if message is None:
            logger.warning("Relay rejected malformed message from %s", conn.id)
            await self._safe_send(conn, json.dumps(INVALID_MESSAGE))
            return 0
        return await self.broadcast(message, exclude=conn)

    async def _ping(self, conn: PeerConnection) -> None:
        # A ping that times out leaves the peer not-alive; the next sweep drops it.
        try:
            await asyncio.wait_for(conn.ping(), self.ping_interval)
        except asyncio.TimeoutError:
            logger.info("Relay ping to %s timed out", conn.id)
        except (ConnectionClosed, OSError) as exc:
            logger.debug("Relay ping to %s failed: %s", conn.id, exc)

    async def _terminate(self, conn: PeerConnection) -> None:
        logger.info("Terminating unresponsive relay connection %s", conn.id)
        try:
            await asyncio.wait_for(conn.terminate(), self.ping_interval)
        except (asyncio.TimeoutError, ConnectionClosed, OSError) as exc:
            logger.debug("Relay terminate for %s failed: %s", conn.id, exc)

    async def sweep(self) -> List[str]:
        """One liveness round: drop peers that missed the last ping, ping the rest.

        Peers are handled concurrently and every call is bounded by
        ``ping_interval``, so one stalled client cannot hold up the round.
        """
        clients = self.clients
        dead = [conn for conn in clients if not conn.is_alive]
        live = [conn for conn in clients if conn.is_alive]
        for conn in dead:
            self.unregister(conn)
        for conn in live:
            conn.is_alive = False
        await asyncio.gather(
            *(self._terminate(conn) for conn in dead),
            *(self._ping(conn) for conn in live),
        )
        return [conn.id for conn in dead]

    async def run_heartbeat(self) -> None:
        while True:
            await asyncio.sleep(self.ping_interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Relay heartbeat sweep failed")

    def start_heartbeat(self) -> None:
        if self._heartbeat is None or self._heartbeat.done():
            self._heartbeat = asyncio.get_running_loop().create_task(self.run_heartbeat())

    async def stop_heartbeat(self) -> None:
        if self._heartbeat is not None:
            self._heartbeat.cancel()
            try:
                await self._heartbeat
            except asyncio.CancelledError:
                pass
            self._heartbeat = None

    async def serve(self, conn: PeerConnection, messages: AsyncIterator[Union[str, bytes]]) -> None:
        self.register(conn)
        try:
            async for raw in messages:
                await self.handle_message(conn, raw)
        finally:
            self.unregister(conn)


class WebSocketPeer(PeerConnection):
    """Adapter over a ``websockets`` server connection."""

    def __init__(self, websocket: ServerConnection) -> None:
        super().__init__()
        self.websocket = websocket

    async def send(self, text: str) -> None:
        await self.websocket.send(text)

    async def ping(self) -> None:
        pong_waiter = await self.websocket.ping()
        pong_waiter.add_done_callback(self._on_pong)

    def _on_pong(self, fut: asyncio.Future) -> None:
        if not fut.cancelled() and fut.exception() is None:
            self.mark_alive()

    async def terminate(self) -> None:
        self.websocket.transport.abort()


async def start_relay_server(
    relay: PeerRelay, host: str = RELAY_HOST, port: int = RELAY_PORT
) -> Server:
    async def handler(websocket: ServerConnection) -> None:
        conn = WebSocketPeer(websocket)
        try:
            await relay.serve(conn, websocket)
        except ConnectionClosed as exc:
            logger.debug("Relay connection %s dropped: %s", conn.id, exc)

    # Built-in keepalive is off; the relay runs its own ping sweep.
    server = await serve(handler, host, port, ping_interval=None)
    relay.start_heartbeat()
    logger.info("Relay listening on ws://%s:%s", host, port)
    return server


async def stop_relay_server(relay: PeerRelay, server: Server) -> None:
    await relay.stop_heartbeat()
    server.close()
    await server.wait_closed()


__all__ = [
    "INVALID_MESSAGE",
    "PeerConnection",
    "PeerRelay",
    "WebSocketPeer",
    "parse_message",
    "start_relay_server",
    "stop_relay_server",
]
