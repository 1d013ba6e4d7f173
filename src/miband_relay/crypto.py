"""
Cryptographic utilities for the Mi Band authentication handshake.

The band proves key possession by having the host encrypt a 16-byte
challenge with AES-128-CBC. The device protocol fixes the IV at all
zeros and uses no padding, so a single block is encrypted as-is.
"""

import re
from dataclasses import dataclass, field

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.backends import default_backend

from .errors import ConfigurationError

# Constants
KEY_SIZE = 16  # 128 bits
BLOCK_SIZE = 16  # AES block size
CHALLENGE_SIZE = 16
ZERO_IV = bytes(BLOCK_SIZE)

_AUTH_KEY_PATTERN = re.compile(r"[0-9a-fA-F]{32}")


@dataclass(frozen=True)
class AuthKey:
    """
    The shared secret paired with the band.

    Constructed from the 32-character hex string Gadgetbridge and similar
    tools export, e.g. '94359d5b8b092e1286a43cfb62ee7923'.
    """
    hex: str
    value: bytes = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not isinstance(self.hex, str) or not _AUTH_KEY_PATTERN.fullmatch(self.hex):
            raise ConfigurationError(
                "Invalid auth key, must be 32 hex characters such as "
                "'94359d5b8b092e1286a43cfb62ee7923'"
            )
        object.__setattr__(self, "value", bytes.fromhex(self.hex))

    def __repr__(self) -> str:
        return "AuthKey(<redacted>)"


def encrypt_challenge(key: bytes, challenge: bytes, iv: bytes = ZERO_IV) -> bytes:
    """
    Encrypt a challenge using AES-128-CBC without padding.

    Args:
        key: 16-byte encryption key
        challenge: Data to encrypt, a multiple of the block size
        iv: 16-byte IV (the band expects all zeros)

    Returns:
        Ciphertext of the same length as the challenge
    """
    if len(key) != KEY_SIZE:
        raise ValueError(f"Key must be {KEY_SIZE} bytes")
    if len(iv) != BLOCK_SIZE:
        raise ValueError(f"IV must be {BLOCK_SIZE} bytes")
    if len(challenge) == 0 or len(challenge) % BLOCK_SIZE != 0:
        raise ValueError("Challenge length must be a multiple of block size")

    cipher = Cipher(algorithms.AES(key), modes.CBC(iv), backend=default_backend())
    encryptor = cipher.encryptor()
    return encryptor.update(challenge) + encryptor.finalize()
