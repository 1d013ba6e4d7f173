"""
BLE link to the band.

Uses the bleak library to find and connect to the band and exposes its
characteristics as endpoints that can be written and subscribed to.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.backends.device import BLEDevice
from bleak.exc import BleakError

from .errors import LinkError

logger = logging.getLogger(__name__)

# Service advertised by Mi Band 4/5
ADVERTISEMENT_SERVICE_UUID = "0000fee0-0000-1000-8000-00805f9b34fb"

# Timeouts (seconds)
SCAN_TIMEOUT = 30.0
CONNECT_TIMEOUT = 20.0
WRITE_TIMEOUT = 5.0

NotificationHandler = Callable[[bytes], None]
DisconnectHandler = Callable[[], None]


class EndpointId(Enum):
    """Characteristic UUIDs used by the relay."""
    AUTH = "00000009-0000-3512-2118-0009af100700"
    HR_CONTROL = "00002a39-0000-1000-8000-00805f9b34fb"
    HR_MEASURE = "00002a37-0000-1000-8000-00805f9b34fb"
    SENSOR = "00000001-0000-3512-2118-0009af100700"


class Endpoint(Protocol):
    """An addressable characteristic on the band."""

    async def write(self, data: bytes) -> None:
        """Write raw bytes to the characteristic."""
        ...

    async def subscribe(self, handler: NotificationHandler) -> None:
        """Deliver each notification payload to handler."""
        ...


@dataclass(frozen=True)
class EndpointSet:
    """The four endpoints resolved after connecting."""
    auth: Endpoint
    hr_control: Endpoint
    hr_measure: Endpoint
    sensor: Endpoint


class Link(Protocol):
    """Anything that can connect to a band and hand out its endpoints."""

    @property
    def endpoints(self) -> EndpointSet:
        ...

    async def connect(self) -> None:
        ...

    async def disconnect(self) -> None:
        ...

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        ...


class BleakEndpoint:
    """Endpoint backed by a characteristic on a connected BleakClient."""

    def __init__(
        self,
        client: BleakClient,
        endpoint_id: EndpointId,
        write_timeout: float = WRITE_TIMEOUT,
        response: bool = True,
    ):
        self.client = client
        self.endpoint_id = endpoint_id
        self.write_timeout = write_timeout
        self.response = response

    @property
    def uuid(self) -> str:
        return self.endpoint_id.value

    async def write(self, data: bytes) -> None:
        logger.debug(f"Write to {self.endpoint_id.name} ({len(data)} bytes): {data.hex()}")
        try:
            await asyncio.wait_for(
                self.client.write_gatt_char(self.uuid, data, response=self.response),
                timeout=self.write_timeout,
            )
        except asyncio.TimeoutError as e:
            raise LinkError(
                f"Write to {self.endpoint_id.name} timed out after {self.write_timeout}s"
            ) from e
        except BleakError as e:
            raise LinkError(f"Write to {self.endpoint_id.name} failed: {e}") from e

    async def subscribe(self, handler: NotificationHandler) -> None:
        def notification_handler(
            characteristic: BleakGATTCharacteristic,
            data: bytearray,
        ) -> None:
            logger.debug(f"Notification from {self.endpoint_id.name} ({len(data)} bytes): {data.hex()}")
            handler(bytes(data))

        try:
            await asyncio.wait_for(
                self.client.start_notify(self.uuid, notification_handler),
                timeout=self.write_timeout,
            )
        except asyncio.TimeoutError as e:
            raise LinkError(
                f"Subscribe to {self.endpoint_id.name} timed out after {self.write_timeout}s"
            ) from e
        except BleakError as e:
            raise LinkError(f"Subscribe to {self.endpoint_id.name} failed: {e}") from e
        logger.info(f"Subscribed to {self.endpoint_id.name} notifications")


class BleakLink:
    """
    BLE link to a single band.

    Finds the band by address if one is given, otherwise by the Mi Band
    advertisement service, then connects and resolves the endpoints.
    """

    def __init__(
        self,
        address: Optional[str] = None,
        scan_timeout: float = SCAN_TIMEOUT,
        connect_timeout: float = CONNECT_TIMEOUT,
        write_timeout: float = WRITE_TIMEOUT,
    ):
        self.address = address
        self.scan_timeout = scan_timeout
        self.connect_timeout = connect_timeout
        self.write_timeout = write_timeout
        self.client: BleakClient | None = None
        self._endpoints: EndpointSet | None = None
        self._disconnect_handlers: list[DisconnectHandler] = []
        self._disconnecting = False

    @property
    def endpoints(self) -> EndpointSet:
        if self._endpoints is None:
            raise LinkError("Not connected to band")
        return self._endpoints

    @property
    def is_connected(self) -> bool:
        return self.client is not None and self.client.is_connected

    def on_disconnect(self, handler: DisconnectHandler) -> None:
        """Call handler when the band drops the connection."""
        self._disconnect_handlers.append(handler)

    def _handle_disconnect(self, client: BleakClient) -> None:
        self._endpoints = None
        if self._disconnecting:
            return
        logger.warning("Band disconnected")
        for handler in list(self._disconnect_handlers):
            handler()

    async def scan(self) -> BLEDevice:
        """Find the band, by address or by advertised service."""
        try:
            if self.address:
                logger.info(f"Scanning for band {self.address}...")
                device = await BleakScanner.find_device_by_address(
                    self.address, timeout=self.scan_timeout
                )
            else:
                logger.info(f"Scanning for band (service: {ADVERTISEMENT_SERVICE_UUID})...")
                device = await BleakScanner.find_device_by_filter(
                    lambda d, ad: ADVERTISEMENT_SERVICE_UUID in [
                        s.lower() for s in (ad.service_uuids or [])
                    ],
                    timeout=self.scan_timeout,
                )
        except BleakError as e:
            raise LinkError(f"Scan failed: {e}") from e

        if device is None:
            raise LinkError("No band found")

        logger.info(f"Found band: {device.name} ({device.address})")
        return device

    async def connect(self) -> None:
        """Connect to the band and resolve its endpoints."""
        device = await self.scan()
        self._disconnecting = False
        self.client = BleakClient(
            device,
            disconnected_callback=self._handle_disconnect,
            timeout=self.connect_timeout,
        )

        logger.info(f"Connecting to {device.address}...")
        try:
            await self.client.connect()
        except (BleakError, asyncio.TimeoutError) as e:
            raise LinkError(f"Connection failed: {e}") from e
        logger.info("Connected through GATT")

        self._endpoints = EndpointSet(
            # The auth characteristic only accepts write-without-response
            auth=BleakEndpoint(self.client, EndpointId.AUTH, self.write_timeout, response=False),
            hr_control=BleakEndpoint(self.client, EndpointId.HR_CONTROL, self.write_timeout),
            hr_measure=BleakEndpoint(self.client, EndpointId.HR_MEASURE, self.write_timeout),
            sensor=BleakEndpoint(self.client, EndpointId.SENSOR, self.write_timeout),
        )
        logger.info("Endpoints initialized")

    async def disconnect(self) -> None:
        """Disconnect from the band."""
        self._disconnecting = True
        self._endpoints = None
        if self.client and self.client.is_connected:
            try:
                await self.client.disconnect()
            except BleakError as e:
                raise LinkError(f"Disconnect failed: {e}") from e
            logger.info("Disconnected")

    async def __aenter__(self) -> "BleakLink":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()
