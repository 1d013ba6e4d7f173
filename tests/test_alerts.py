"""Tests for turning classifications into alerts."""

import logging
from datetime import datetime, timezone

from miband_relay.alerts import AlertProcessor
from miband_relay.events import Event, EventEmitter
from miband_relay.protocol import SleepStage

NOW = datetime(2024, 3, 1, 22, 0, 0, tzinfo=timezone.utc)


def make_processor():
    alerts = []
    events = EventEmitter()
    events.on(Event.ALERT, lambda message: alerts.append(message))
    return AlertProcessor(events, clock=lambda: NOW), alerts


def test_deep_sleep_raises_drowsiness_alert_and_warning(caplog):
    processor, alerts = make_processor()

    with caplog.at_level(logging.WARNING, logger="miband_relay.alerts"):
        alert = processor.handle_message('{"sleepStage": 2}')

    assert alert.stage == SleepStage.DEEP_SLEEP
    assert alert.is_drowsy
    assert "Deep" in alert.message
    assert alerts == [alert.message]
    warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
    assert len(warnings) == 1
    assert "Deep sleep" in warnings[0].getMessage()
    assert NOW.isoformat() in warnings[0].getMessage()


def test_light_sleep_raises_drowsiness_alert():
    processor, alerts = make_processor()
    alert = processor.handle_message('{"sleepStage": 1}')
    assert alert.message == "Drowsiness detected — state: Light sleep"
    assert alerts == [alert.message]


def test_awake_alert_has_no_warning(caplog):
    processor, alerts = make_processor()

    with caplog.at_level(logging.DEBUG, logger="miband_relay.alerts"):
        alert = processor.handle_message('{"sleepStage": 0}')

    assert alert.message == "Awake."
    assert not alert.is_drowsy
    assert alerts == ["Awake."]
    assert not [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_unknown_stage_fails_closed(caplog):
    processor, alerts = make_processor()

    with caplog.at_level(logging.WARNING, logger="miband_relay.alerts"):
        alert = processor.process(7)

    assert alert.stage is None
    assert not alert.is_drowsy
    assert alert.message == "Unknown sleep stage: 7"
    assert alerts == ["Unknown sleep stage: 7"]
    assert "Drowsiness" not in caplog.text


def test_malformed_message_is_ignored(caplog):
    processor, alerts = make_processor()

    with caplog.at_level(logging.WARNING, logger="miband_relay.alerts"):
        assert processor.handle_message("not json") is None
        assert processor.handle_message('{"type": "pong"}') is None

    assert alerts == []
    assert "Ignoring relay message" in caplog.text
