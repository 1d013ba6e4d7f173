"""
Telemetry session: continuous heart rate streaming to the relay.

Started once the band is authenticated. Configures continuous HR
measurement, forwards every sample to the relay and runs a keepalive
loop that pings the relay and restarts measurement when samples stop.
"""

import asyncio
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from .errors import LinkError
from .events import Event, EventEmitter
from .link import Endpoint
from .protocol import (
    HR_START_CONTINUOUS,
    HR_STOP_CONTINUOUS,
    HR_STOP_MANUAL,
    HeartRateSample,
    build_ping,
    parse_heart_rate,
)
from .relay import RelayChannel

logger = logging.getLogger(__name__)

KEEPALIVE_INTERVAL = 30.0  # seconds between pings
STALE_AFTER = 30.0  # seconds without a sample before measurement is restarted


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class TelemetrySession:
    """
    Streams heart rate samples from the band to the relay.

    Notifications are queued by the endpoint callback and drained by a
    single pump task. last_sample_at is shared with the keepalive loop and
    guarded by a lock.
    """

    def __init__(
        self,
        hr_control: Endpoint,
        hr_measure: Endpoint,
        relay: RelayChannel,
        events: Optional[EventEmitter] = None,
        keepalive_interval: float = KEEPALIVE_INTERVAL,
        stale_after: float = STALE_AFTER,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Initialize the session.

        Args:
            hr_control: Endpoint accepting HR measurement commands
            hr_measure: Endpoint notifying HR measurements
            relay: Open relay channel samples are forwarded to
            events: Emitter for heartrate events
            keepalive_interval: Seconds between keepalive ticks
            stale_after: Seconds without a sample before the stream is stale
            clock: Returns the current aware datetime
        """
        self.hr_control = hr_control
        self.hr_measure = hr_measure
        self.relay = relay
        self.events = events or EventEmitter()
        self.keepalive_interval = keepalive_interval
        self.stale_after = timedelta(seconds=stale_after)
        self.clock = clock

        self._lock = threading.Lock()
        self._last_sample_at = self.clock()
        self._notification_queue: asyncio.Queue[bytes] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._keepalive_task: asyncio.Task | None = None
        self._stopped = False

        self.relay.on_close(self.stop)

    @property
    def last_sample_at(self) -> datetime:
        with self._lock:
            return self._last_sample_at

    @last_sample_at.setter
    def last_sample_at(self, value: datetime) -> None:
        with self._lock:
            self._last_sample_at = value

    @property
    def is_running(self) -> bool:
        return not self._stopped and self._keepalive_task is not None

    async def start(self) -> None:
        """Configure continuous HR measurement and start the keepalive loop."""
        logger.info("Starting heart rate measurement")
        self.last_sample_at = self.clock()

        # Reset any manual or continuous measurement left running
        await self.hr_control.write(HR_STOP_MANUAL)
        await self.hr_control.write(HR_STOP_CONTINUOUS)

        await self.hr_measure.subscribe(self._notification_handler)
        self._pump_task = asyncio.create_task(self._pump())

        await self.hr_control.write(HR_START_CONTINUOUS)

        self._keepalive_task = asyncio.create_task(self._keepalive_loop())
        logger.info("Heart rate measurement started")

    async def stop(self) -> None:
        """Stop issuing writes and cancel background tasks."""
        if self._stopped:
            return
        self._stopped = True

        current = asyncio.current_task()
        for task in (self._keepalive_task, self._pump_task):
            if task is None or task is current:
                continue
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._keepalive_task = None
        self._pump_task = None
        logger.info("Telemetry session stopped")

    def _notification_handler(self, data: bytes) -> None:
        self._notification_queue.put_nowait(bytes(data))

    async def _pump(self) -> None:
        while not self._stopped:
            data = await self._notification_queue.get()
            try:
                await self.process_measurement(data)
            except Exception as e:
                logger.error(f"Failed to relay heart rate notification {data.hex()}: {e}")
            finally:
                self._notification_queue.task_done()

    async def process_measurement(self, data: bytes) -> Optional[HeartRateSample]:
        """Forward one HR measurement notification to the relay."""
        if self._stopped:
            return None

        try:
            bpm = parse_heart_rate(data)
        except ValueError as e:
            logger.warning(f"Dropping heart rate notification: {e}")
            return None

        logger.info(f"Received heart rate value: {bpm}")
        sample = HeartRateSample(timestamp=self.clock(), bpm=bpm)
        await self.relay.send(sample.build())
        self.last_sample_at = sample.timestamp
        self.events.emit(Event.HEARTRATE, bpm=bpm)
        return sample

    async def keepalive_tick(self) -> bool:
        """
        Ping the relay, restarting measurement first if samples went stale.

        The ping is sent even when the restart write fails.

        Returns:
            True if the stream was stale
        """
        if self._stopped:
            return False

        elapsed = self.clock() - self.last_sample_at
        stale = elapsed > self.stale_after
        if stale:
            logger.warning(
                f"No heart rate received for {elapsed.total_seconds():.0f}s, restarting measurement"
            )
            try:
                await self.hr_control.write(HR_START_CONTINUOUS)
            except LinkError as e:
                logger.error(f"Keepalive write failed: {e}")
        else:
            logger.info("Sending ping...")
        await self.relay.send(build_ping())
        return stale

    async def _keepalive_loop(self) -> None:
        while not self._stopped:
            await asyncio.sleep(self.keepalive_interval)
            await self.keepalive_tick()
