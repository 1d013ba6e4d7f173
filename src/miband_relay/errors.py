"""
Exceptions raised by the Mi Band relay.

Everything raised to callers derives from MiBandError so the CLI can map
a failed run to a non-zero exit code.
"""


class MiBandError(Exception):
    """Base class for all relay errors."""


class ConfigurationError(MiBandError, ValueError):
    """Invalid configuration, detected before touching the wireless link."""


class LinkError(MiBandError):
    """The band could not be found, connected, or addressed."""


class ProtocolError(MiBandError):
    """The band sent something the handshake does not understand."""


class AuthenticationRejected(MiBandError):
    """The band rejected the challenge response."""


class HandshakeTimeout(MiBandError):
    """No handshake notification arrived within the configured timeout."""
