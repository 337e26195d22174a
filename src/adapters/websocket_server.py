import json
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from http import HTTPStatus

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed, ConnectionClosedError
from websockets.http11 import Request, Response

from domain.controller import SessionController
from domain.dispatcher import TranscriptionDispatcher
from domain.session import SessionRegistry
from ports.channel import ClientChannelPort

logger = logging.getLogger(__name__)

HEALTH_PATH = "/health"


class WebSocketClientChannel:
    def __init__(self, connection: ServerConnection) -> None:
        self._connection = connection
        self._open = True

    @property
    def open(self) -> bool:
        return self._open

    def mark_closed(self) -> None:
        self._open = False

    async def send(self, message: dict) -> None:
        if not self._open:
            return
        try:
            await self._connection.send(json.dumps(message))
        except ConnectionClosed:
            self._open = False
            logger.debug("Client %s went away while sending %s", self._connection.id, message.get("type"))


class LiveTranscriptionServer:
    def __init__(
        self,
        controller_factory: Callable[[ClientChannelPort], SessionController],
        registry: SessionRegistry,
        dispatcher: TranscriptionDispatcher,
        host: str = "0.0.0.0",
        port: int = 3000,
    ) -> None:
        self._controller_factory = controller_factory
        self._registry = registry
        self._dispatcher = dispatcher
        self._host = host
        self._port = port
        self._server: Server | None = None

    @property
    def port(self) -> int:
        if self._server is None:
            return self._port
        return self._server.sockets[0].getsockname()[1]

    async def start(self) -> None:
        self._server = await serve(
            self._handle_client,
            self._host,
            self._port,
            process_request=self._process_request,
            max_size=None,
        )
        logger.info("Server running on ws://%s:%d", self._host, self.port)

    async def stop(self) -> None:
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
        await self._registry.stop_all()
        await self._dispatcher.shutdown()
        logger.info("Server stopped")

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        if request.path != HEALTH_PATH:
            return None
        body = json.dumps(
            {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "sessions": len(self._registry),
            }
        )
        response = connection.respond(HTTPStatus.OK, body + "\n")
        del response.headers["Content-Type"]
        response.headers["Content-Type"] = "application/json"
        return response

    async def _handle_client(self, connection: ServerConnection) -> None:
        logger.info("Client connected: %s", connection.remote_address)
        channel = WebSocketClientChannel(connection)
        controller = self._controller_factory(channel)
        try:
            async for message in connection:
                await controller.handle_message(message)
        except ConnectionClosedError as exc:
            logger.warning("Client connection dropped: %s", exc)
        finally:
            channel.mark_closed()
            await controller.close()
            logger.info("Client disconnected: %s", connection.remote_address)
