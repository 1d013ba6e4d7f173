"""
Authentication state machine for the band's shared-key handshake.

States:
    IDLE -> CHALLENGE_AWAITED -> AUTHENTICATED
                              -> FAILED
"""

import asyncio
import logging
from enum import Enum, auto
from typing import Awaitable, Callable, Optional

from .crypto import CHALLENGE_SIZE, AuthKey, encrypt_challenge
from .errors import AuthenticationRejected, HandshakeTimeout, ProtocolError
from .link import Endpoint
from .protocol import (
    START_PAIRING,
    AuthOpcode,
    build_challenge_response,
    parse_auth_notification,
)

logger = logging.getLogger(__name__)

AUTH_TIMEOUT = 10.0  # seconds

ChallengeCipher = Callable[[bytes, bytes], bytes]


class AuthState(Enum):
    """Handshake states."""
    IDLE = auto()
    CHALLENGE_AWAITED = auto()
    AUTHENTICATED = auto()
    FAILED = auto()


class Authenticator:
    """
    Drives the challenge-response handshake over the auth endpoint.

    Notifications are queued by the endpoint callback and processed one at
    a time by authenticate(), so each write completes before the next
    notification is looked at.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        auth_key: AuthKey,
        cipher: ChallengeCipher = encrypt_challenge,
        timeout: float = AUTH_TIMEOUT,
        on_authenticated: Optional[Callable[[], Awaitable[None] | None]] = None,
    ):
        """
        Initialize the authenticator.

        Args:
            endpoint: The band's auth endpoint
            auth_key: Key shared with the band
            cipher: Block encrypt function taking (key, challenge)
            timeout: Seconds to wait for each handshake notification
            on_authenticated: Called once the band accepts the response
        """
        self.endpoint = endpoint
        self.auth_key = auth_key
        self.cipher = cipher
        self.timeout = timeout
        self.on_authenticated = on_authenticated
        self.state = AuthState.IDLE
        self._notification_queue: asyncio.Queue[bytes] = asyncio.Queue()

    def _notification_handler(self, data: bytes) -> None:
        self._notification_queue.put_nowait(bytes(data))

    async def authenticate(self) -> None:
        """
        Run the handshake to completion.

        Raises:
            AuthenticationRejected: The band answered 10 03 08
            ProtocolError: The band sent an unrecognized response
            HandshakeTimeout: No notification within the timeout
        """
        if self.state != AuthState.IDLE:
            raise ProtocolError(f"Handshake already run, state: {self.state.name}")

        logger.info("Starting authentication...")
        await self.endpoint.subscribe(self._notification_handler)
        await self.endpoint.write(START_PAIRING)

        while self.state != AuthState.AUTHENTICATED:
            try:
                data = await asyncio.wait_for(
                    self._notification_queue.get(), timeout=self.timeout
                )
            except asyncio.TimeoutError:
                self.state = AuthState.FAILED
                logger.error(f"Authentication timeout after {self.timeout}s")
                raise HandshakeTimeout(
                    f"No handshake response within {self.timeout}s"
                ) from None
            await self.handle_notification(data)

        if self.on_authenticated is not None:
            result = self.on_authenticated()
            if asyncio.iscoroutine(result):
                await result

    async def handle_notification(self, data: bytes) -> None:
        """Advance the state machine on one auth notification."""
        opcode, payload = parse_auth_notification(data)

        if opcode == AuthOpcode.KEY_OK:
            logger.info("Set new key OK")
        elif opcode == AuthOpcode.CHALLENGE:
            await self._respond_to_challenge(payload)
        elif opcode == AuthOpcode.AUTHENTICATED:
            self.state = AuthState.AUTHENTICATED
            logger.info("Authentication successful, state: AUTHENTICATED")
        elif opcode == AuthOpcode.AUTH_FAILED:
            self.state = AuthState.FAILED
            logger.error("Received authentication failure")
            raise AuthenticationRejected("Band rejected the challenge response")
        else:
            self.state = AuthState.FAILED
            cmd = bytes(data[:3]).hex()
            logger.error(f"Unrecognized handshake response, cmd='{cmd}'")
            raise ProtocolError(f"Unrecognized handshake response, cmd='{cmd}'")

    async def _respond_to_challenge(self, challenge: bytes) -> None:
        if len(challenge) != CHALLENGE_SIZE:
            self.state = AuthState.FAILED
            raise ProtocolError(
                f"Challenge must be {CHALLENGE_SIZE} bytes, got {len(challenge)}"
            )

        logger.info(f"Received authentication challenge: {challenge.hex()}")
        ciphertext = self.cipher(self.auth_key.value, challenge)

        logger.info("Sending authentication response")
        await self.endpoint.write(build_challenge_response(ciphertext))
        self.state = AuthState.CHALLENGE_AWAITED
