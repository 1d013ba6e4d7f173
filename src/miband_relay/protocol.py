"""
Mi Band wire protocol and relay message definitions.

Auth notification format: [Opcode (3 bytes)][Payload (variable)]
HR measurement format:    [Flags (1 byte)][BPM (1 byte)], read as int16 big-endian
Relay messages are JSON objects.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any, Optional

from .crypto import CHALLENGE_SIZE

OPCODE_SIZE = 3

# Host -> band commands
START_PAIRING = bytes([0x02, 0x00])
CHALLENGE_RESPONSE_PREFIX = bytes([0x03, 0x00])

HR_STOP_MANUAL = bytes([0x15, 0x02, 0x00])
HR_STOP_CONTINUOUS = bytes([0x15, 0x01, 0x00])
HR_START_CONTINUOUS = bytes([0x15, 0x01, 0x01])


class AuthOpcode(Enum):
    """Band -> host auth notifications."""
    KEY_OK = b"\x10\x01\x01"
    CHALLENGE = b"\x10\x02\x01"
    AUTHENTICATED = b"\x10\x03\x01"
    AUTH_FAILED = b"\x10\x03\x08"


class SleepStage(IntEnum):
    """Sleep stages reported by the analysis service."""
    AWAKE = 0
    LIGHT_SLEEP = 1
    DEEP_SLEEP = 2

    @property
    def label(self) -> str:
        labels = {
            SleepStage.AWAKE: "Awake",
            SleepStage.LIGHT_SLEEP: "Light sleep",
            SleepStage.DEEP_SLEEP: "Deep sleep",
        }
        return labels[self]


def parse_auth_notification(data: bytes) -> tuple[Optional[AuthOpcode], bytes]:
    """
    Split an auth notification into opcode and payload.

    Returns:
        Tuple of (opcode, payload); opcode is None when unrecognized
    """
    try:
        opcode = AuthOpcode(bytes(data[:OPCODE_SIZE]))
    except ValueError:
        return None, bytes(data[OPCODE_SIZE:])
    return opcode, bytes(data[OPCODE_SIZE:])


def build_challenge_response(ciphertext: bytes) -> bytes:
    """Build the challenge response command."""
    if len(ciphertext) != CHALLENGE_SIZE:
        raise ValueError(f"Ciphertext must be {CHALLENGE_SIZE} bytes")
    return CHALLENGE_RESPONSE_PREFIX + ciphertext


def parse_heart_rate(data: bytes) -> int:
    """
    Decode the BPM value from an HR measurement notification.

    The band sends [flags=0x00, bpm], which reads as a big-endian int16.
    """
    if len(data) < 2:
        raise ValueError(f"Heart rate payload too short: {len(data)} bytes")
    return int.from_bytes(data[:2], "big", signed=True)


def format_timestamp(timestamp: datetime) -> str:
    """Render a timestamp as UTC ISO-8601 with milliseconds, e.g. 2024-03-01T22:15:04.120Z."""
    utc = timestamp.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    """Inverse of format_timestamp."""
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return datetime.fromisoformat(value)


@dataclass
class HeartRateSample:
    """
    One heart rate measurement, sent to the relay as:

    {"dateTime": "<ISO-8601>", "bpm": <int>}
    """
    timestamp: datetime
    bpm: int

    def to_message(self) -> dict[str, Any]:
        return {"dateTime": format_timestamp(self.timestamp), "bpm": self.bpm}

    def build(self) -> str:
        """Build the JSON text sent over the relay."""
        return json.dumps(self.to_message())

    @classmethod
    def parse(cls, message: str) -> "HeartRateSample":
        data = json.loads(message)
        return cls(timestamp=parse_timestamp(data["dateTime"]), bpm=int(data["bpm"]))


def build_ping() -> str:
    """Build the relay keepalive message."""
    return json.dumps({"type": "ping"})


def parse_classification(message: str) -> int:
    """
    Extract the raw sleepStage value from a classification message.

    Raises:
        ValueError: If the message is not JSON or has no integer sleepStage
    """
    data = json.loads(message)
    if not isinstance(data, dict):
        raise ValueError(f"Classification must be a JSON object: {message!r}")
    stage = data.get("sleepStage")
    if isinstance(stage, bool) or not isinstance(stage, int):
        raise ValueError(f"Missing or non-integer sleepStage: {message!r}")
    return stage
