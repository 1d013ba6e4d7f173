"""Unit tests for opcode parsing and relay message encoding."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from miband_relay.protocol import (
    AuthOpcode,
    HeartRateSample,
    SleepStage,
    build_challenge_response,
    build_ping,
    format_timestamp,
    parse_auth_notification,
    parse_classification,
    parse_heart_rate,
)


def test_parse_auth_notification_splits_opcode_and_payload():
    challenge = bytes(range(16))
    opcode, payload = parse_auth_notification(b"\x10\x02\x01" + challenge)
    assert opcode == AuthOpcode.CHALLENGE
    assert payload == challenge


@pytest.mark.parametrize(
    "data, expected",
    [
        (b"\x10\x01\x01", AuthOpcode.KEY_OK),
        (b"\x10\x03\x01", AuthOpcode.AUTHENTICATED),
        (b"\x10\x03\x08", AuthOpcode.AUTH_FAILED),
        (b"\x10\x03\x04", None),
        (b"\x10", None),
        (b"", None),
    ],
)
def test_parse_auth_notification_opcodes(data, expected):
    opcode, _ = parse_auth_notification(data)
    assert opcode == expected


def test_build_challenge_response():
    ciphertext = b"\xaa" * 16
    assert build_challenge_response(ciphertext) == b"\x03\x00" + ciphertext
    with pytest.raises(ValueError):
        build_challenge_response(b"\xaa" * 15)


def test_parse_heart_rate_reads_flags_then_bpm():
    assert parse_heart_rate(b"\x00\x48") == 72
    assert parse_heart_rate(bytearray([0x00, 0x3c])) == 60
    # Trailing bytes are ignored
    assert parse_heart_rate(b"\x00\x48\x01\x02") == 72


def test_parse_heart_rate_rejects_short_payload():
    with pytest.raises(ValueError):
        parse_heart_rate(b"\x48")


def test_format_timestamp_is_utc_iso_with_millis():
    local = timezone(timedelta(hours=2))
    timestamp = datetime(2024, 3, 1, 23, 15, 4, 120500, tzinfo=local)
    assert format_timestamp(timestamp) == "2024-03-01T21:15:04.120Z"


def test_heart_rate_sample_message():
    timestamp = datetime(2024, 3, 1, 21, 15, 4, 120000, tzinfo=timezone.utc)
    sample = HeartRateSample(timestamp=timestamp, bpm=72)

    message = json.loads(sample.build())

    assert message == {"dateTime": "2024-03-01T21:15:04.120Z", "bpm": 72}

    decoded = HeartRateSample.parse(sample.build())
    assert decoded.bpm == 72
    assert decoded.timestamp == timestamp


def test_build_ping():
    assert json.loads(build_ping()) == {"type": "ping"}


@pytest.mark.parametrize(
    "message, expected",
    [
        ('{"sleepStage": 0}', 0),
        ('{"sleepStage": 2}', 2),
        ('{"sleepStage": 7, "confidence": 0.4}', 7),
    ],
)
def test_parse_classification(message, expected):
    assert parse_classification(message) == expected


@pytest.mark.parametrize(
    "message",
    ["not json", "[1, 2]", "{}", '{"sleepStage": "2"}', '{"sleepStage": true}', '{"sleepStage": 1.5}'],
)
def test_parse_classification_rejects_malformed(message):
    with pytest.raises(ValueError):
        parse_classification(message)


def test_sleep_stage_labels():
    assert SleepStage(0).label == "Awake"
    assert SleepStage(1).label == "Light sleep"
    assert SleepStage(2).label == "Deep sleep"
