"""Turns sleep-stage classifications from the relay into local alerts."""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from .events import Event, EventEmitter
from .protocol import SleepStage, parse_classification

logger = logging.getLogger(__name__)


@dataclass
class Alert:
    """A local alert raised for one classification."""
    message: str
    stage: Optional[SleepStage]
    raised_at: datetime = field(default_factory=lambda: datetime.now().astimezone())

    @property
    def is_drowsy(self) -> bool:
        return self.stage in (SleepStage.LIGHT_SLEEP, SleepStage.DEEP_SLEEP)


class AlertProcessor:
    """
    Consumes classification messages and raises alerts.

    Awake produces "Awake."; light or deep sleep produces a drowsiness
    alert and a warning log entry. Stages outside the known set are
    reported as unknown rather than treated as drowsiness.
    """

    def __init__(
        self,
        events: Optional[EventEmitter] = None,
        clock: Callable[[], datetime] = lambda: datetime.now().astimezone(),
    ):
        self.events = events or EventEmitter()
        self.clock = clock

    def handle_message(self, message: str) -> Optional[Alert]:
        """Handle one raw relay message; malformed messages are logged and ignored."""
        try:
            value = parse_classification(message)
        except ValueError as e:
            logger.warning(f"Ignoring relay message: {e}")
            return None
        return self.process(value)

    def process(self, value: int) -> Alert:
        """Raise the alert for a raw sleepStage value."""
        now = self.clock()
        try:
            stage = SleepStage(value)
        except ValueError:
            logger.error(f"Unknown sleep stage: {value}")
            alert = Alert(message=f"Unknown sleep stage: {value}", stage=None, raised_at=now)
        else:
            if stage == SleepStage.AWAKE:
                alert = Alert(message="Awake.", stage=stage, raised_at=now)
            else:
                logger.warning(
                    f"Drowsiness detected! State: {stage.label} - Time: {now.isoformat()}"
                )
                alert = Alert(
                    message=f"Drowsiness detected — state: {stage.label}",
                    stage=stage,
                    raised_at=now,
                )

        self.events.emit(Event.ALERT, message=alert.message)
        return alert
