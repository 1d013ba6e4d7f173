"""
WebSocket relay to the remote sleep analysis service.

Carries heart rate samples and pings out, and classification messages
back in. A closed or failed connection is terminal for the channel;
there is no reconnect.
"""

import asyncio
import inspect
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets

logger = logging.getLogger(__name__)

# Relay configuration
RELAY_URI = "ws://127.0.0.1:2222"
OPEN_TIMEOUT = 10.0  # seconds

MessageHandler = Callable[[str], Awaitable[None] | None]
CloseHandler = Callable[[], Awaitable[None] | None]
Connector = Callable[[str], Awaitable[Any]]


class RelayChannel:
    """
    Duplex message channel to the analysis service.

    Outbound messages are JSON strings; inbound messages are handed to the
    registered message handlers as received.
    """

    def __init__(
        self,
        uri: str = RELAY_URI,
        open_timeout: float = OPEN_TIMEOUT,
        connector: Connector = websockets.connect,
    ):
        """
        Initialize the relay channel.

        Args:
            uri: WebSocket URI of the analysis service
            open_timeout: Seconds to wait for the connection to open
            connector: Callable returning an awaitable connection for a URI
        """
        self.uri = uri
        self.open_timeout = open_timeout
        self._connector = connector
        self._connection: Optional[Any] = None
        self._message_handlers: list[MessageHandler] = []
        self._close_handlers: list[CloseHandler] = []
        self._closed = asyncio.Event()

    def on_message(self, handler: MessageHandler) -> None:
        self._message_handlers.append(handler)

    def on_close(self, handler: CloseHandler) -> None:
        self._close_handlers.append(handler)

    @property
    def is_open(self) -> bool:
        return self._connection is not None and not self._closed.is_set()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    async def open(self) -> bool:
        """
        Open the connection to the analysis service.

        Returns:
            True if connected; on failure the error is logged and the
            channel is closed
        """
        logger.info(f"Connecting to relay {self.uri}")
        try:
            self._connection = await asyncio.wait_for(
                self._connector(self.uri), timeout=self.open_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Relay connection timeout after {self.open_timeout}s")
        except (OSError, websockets.exceptions.WebSocketException) as e:
            logger.error(f"Relay error: {e}")
        else:
            logger.info(f"Connected to relay {self.uri}")
            return True

        await self._mark_closed()
        return False

    async def send(self, message: str | dict[str, Any]) -> bool:
        """
        Send a message to the analysis service.

        Returns:
            True if the message was handed to the connection
        """
        if not self.is_open:
            logger.debug("Relay not open, dropping message")
            return False

        if not isinstance(message, str):
            message = json.dumps(message)

        try:
            await self._connection.send(message)
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"Relay connection closed while sending: {e}")
            await self._mark_closed()
            return False
        logger.debug(f"Sent to relay: {message}")
        return True

    async def run(self) -> None:
        """Dispatch inbound messages until the connection closes."""
        if self._connection is None:
            raise RuntimeError("Relay not opened")

        try:
            async for message in self._connection:
                logger.debug(f"Received from relay: {message}")
                if isinstance(message, bytes):
                    try:
                        message = message.decode("utf-8")
                    except UnicodeDecodeError as e:
                        logger.warning(f"Skipping undecodable relay frame {message.hex()}: {e}")
                        continue
                for handler in list(self._message_handlers):
                    result = handler(message)
                    if inspect.isawaitable(result):
                        await result
        except websockets.exceptions.ConnectionClosed as e:
            logger.info(f"Relay connection closed: {e}")
        except OSError as e:
            logger.error(f"Relay error: {e}")
        finally:
            await self._mark_closed()

    async def close(self) -> None:
        """Close the connection and run close handlers."""
        if self._connection is not None and not self.closed:
            await self._connection.close()
        await self._mark_closed()

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def _mark_closed(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        logger.info("Relay connection closed")
        for handler in list(self._close_handlers):
            result = handler()
            if inspect.isawaitable(result):
                await result
