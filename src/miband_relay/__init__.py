"""
Mi Band heart rate relay.

This package implements a BLE central (GATT client) that authenticates
with a Mi Band using its shared AES-128 key, streams heart rate samples
to a remote sleep analysis service over a WebSocket and raises local
alerts for the sleep stages it reports back.
"""

from .crypto import (
    AuthKey,
    encrypt_challenge,
    KEY_SIZE,
    BLOCK_SIZE,
    CHALLENGE_SIZE,
    ZERO_IV,
)
from .errors import (
    MiBandError,
    ConfigurationError,
    LinkError,
    ProtocolError,
    AuthenticationRejected,
    HandshakeTimeout,
)
from .protocol import (
    AuthOpcode,
    SleepStage,
    HeartRateSample,
    START_PAIRING,
    HR_STOP_MANUAL,
    HR_STOP_CONTINUOUS,
    HR_START_CONTINUOUS,
)
from .link import (
    Endpoint,
    EndpointId,
    EndpointSet,
    BleakLink,
)
from .auth import (
    AuthState,
    Authenticator,
)
from .events import (
    Event,
    EventEmitter,
)
from .relay import RelayChannel
from .session import TelemetrySession
from .alerts import Alert, AlertProcessor
from .client import (
    MiBandClient,
    ClientConfig,
)

__all__ = [
    # Crypto
    "AuthKey",
    "encrypt_challenge",
    "KEY_SIZE",
    "BLOCK_SIZE",
    "CHALLENGE_SIZE",
    "ZERO_IV",
    # Errors
    "MiBandError",
    "ConfigurationError",
    "LinkError",
    "ProtocolError",
    "AuthenticationRejected",
    "HandshakeTimeout",
    # Protocol
    "AuthOpcode",
    "SleepStage",
    "HeartRateSample",
    "START_PAIRING",
    "HR_STOP_MANUAL",
    "HR_STOP_CONTINUOUS",
    "HR_START_CONTINUOUS",
    # Link
    "Endpoint",
    "EndpointId",
    "EndpointSet",
    "BleakLink",
    # Auth
    "AuthState",
    "Authenticator",
    # Events
    "Event",
    "EventEmitter",
    # Relay
    "RelayChannel",
    # Session
    "TelemetrySession",
    # Alerts
    "Alert",
    "AlertProcessor",
    # Client
    "MiBandClient",
    "ClientConfig",
]
