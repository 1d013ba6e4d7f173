"""
Mi Band relay client.

Connects to the band, authenticates, then streams heart rate to the
analysis service and raises alerts for the classifications it returns.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

import websockets

from .alerts import AlertProcessor
from .auth import AUTH_TIMEOUT, Authenticator
from .crypto import AuthKey
from .errors import ConfigurationError, MiBandError
from .events import Event, EventEmitter
from .link import CONNECT_TIMEOUT, SCAN_TIMEOUT, WRITE_TIMEOUT, BleakLink, Link
from .relay import OPEN_TIMEOUT, RELAY_URI, Connector, RelayChannel
from .session import KEEPALIVE_INTERVAL, STALE_AFTER, TelemetrySession

logger = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    """Client configuration."""
    auth_key: AuthKey
    address: Optional[str] = None
    relay_uri: str = RELAY_URI
    scan_timeout: float = SCAN_TIMEOUT
    connect_timeout: float = CONNECT_TIMEOUT
    write_timeout: float = WRITE_TIMEOUT
    auth_timeout: float = AUTH_TIMEOUT
    relay_open_timeout: float = OPEN_TIMEOUT
    keepalive_interval: float = KEEPALIVE_INTERVAL
    stale_after: float = STALE_AFTER

    @classmethod
    def from_hex(cls, auth_key_hex: str, **kwargs) -> "ClientConfig":
        """Build a config from the hex auth key; raises ConfigurationError if malformed."""
        return cls(auth_key=AuthKey(auth_key_hex), **kwargs)


class MiBandClient:
    """
    Runs one device session from connect to relay close.

    Each run owns its own link, authenticator, relay channel and telemetry
    session; nothing is shared between clients.
    """

    def __init__(
        self,
        config: ClientConfig,
        link: Optional[Link] = None,
        events: Optional[EventEmitter] = None,
        relay_connector: Connector = websockets.connect,
    ):
        self.config = config
        self.link = link or BleakLink(
            address=config.address,
            scan_timeout=config.scan_timeout,
            connect_timeout=config.connect_timeout,
            write_timeout=config.write_timeout,
        )
        self.events = events or EventEmitter()
        self.relay_connector = relay_connector
        self.authenticator: Authenticator | None = None
        self.relay: RelayChannel | None = None
        self.session: TelemetrySession | None = None
        self._link_lost_task: asyncio.Task | None = None
        self.link.on_disconnect(self._on_link_lost)

    async def run(self) -> None:
        """
        Run the full flow.

        1. Connect to the band
        2. Authenticate
        3. Open the relay
        4. Start the telemetry session
        5. Relay classifications into alerts until the relay closes

        Raises:
            MiBandError: If connecting or authenticating fails
        """
        await self.link.connect()
        try:
            self.events.emit(Event.CONNECTED)
            endpoints = self.link.endpoints

            self.authenticator = Authenticator(
                endpoints.auth,
                self.config.auth_key,
                timeout=self.config.auth_timeout,
            )
            await self.authenticator.authenticate()
            self.events.emit(Event.AUTHENTICATED)

            await self._stream(endpoints.hr_control, endpoints.hr_measure)
        finally:
            await self.link.disconnect()

    def _on_link_lost(self) -> None:
        """Stop streaming once the band drops; the relay close stops the session."""
        logger.warning("Band connection lost, closing relay")
        if self.relay is not None and not self.relay.closed:
            self._link_lost_task = asyncio.get_running_loop().create_task(self.relay.close())

    async def _stream(self, hr_control, hr_measure) -> None:
        self.relay = RelayChannel(
            self.config.relay_uri,
            open_timeout=self.config.relay_open_timeout,
            connector=self.relay_connector,
        )
        alerts = AlertProcessor(self.events)
        self.relay.on_message(alerts.handle_message)
        if not await self.relay.open():
            logger.error("Relay unavailable, not starting heart rate stream")
            return

        self.session = TelemetrySession(
            hr_control,
            hr_measure,
            self.relay,
            events=self.events,
            keepalive_interval=self.config.keepalive_interval,
            stale_after=self.config.stale_after,
        )
        try:
            await self.session.start()
            await self.relay.run()
        finally:
            await self.session.stop()
            await self.relay.close()


async def main(
    auth_key_hex: str,
    address: Optional[str] = None,
    relay_uri: str = RELAY_URI,
    keepalive_interval: float = KEEPALIVE_INTERVAL,
    verbose: bool = False,
) -> int:
    """
    Main entry point for the client.

    Args:
        auth_key_hex: Auth key as 32 hex characters
        address: Optional band address; scans by service if omitted
        relay_uri: WebSocket URI of the analysis service
        keepalive_interval: Seconds between relay pings
        verbose: Enable verbose logging

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    # Configure logging
    log_level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        config = ClientConfig.from_hex(
            auth_key_hex,
            address=address,
            relay_uri=relay_uri,
            keepalive_interval=keepalive_interval,
        )
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    client = MiBandClient(config)
    client.events.on(Event.HEARTRATE, lambda bpm: print(f"♥ {bpm} bpm"))
    client.events.on(Event.ALERT, lambda message: print(f"! {message}"))

    try:
        await client.run()
    except MiBandError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0
